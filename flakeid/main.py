"""
FastAPI Snowflake ID Service

An HTTP service that issues and parses configurable Snowflake-style IDs.
Layouts, epochs and tick granularity come from named presets or from custom
values supplied per request.

Key Features:
    - Batch ID generation with sequence rollover into following ticks
    - Decoding of single IDs and newline-separated batches
    - Overflow flags for IDs that carry bits their layout cannot account for
    - CSV export of batch decode results
    - Optional Redis-backed generator state shared between worker processes

Architecture:
    - FastAPI for the web framework and automatic API documentation
    - In-memory encoders, one per node identity, for single-process deployments
    - Redis optimistic transactions for multi-process deployments
    - Structured logging for monitoring and debugging

Every ID crosses the API as a decimal string.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Body, FastAPI, HTTPException, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from redis.exceptions import ConnectionError, ResponseError, TimeoutError

from flakeid.core.config import settings
from flakeid.core.exceptions import (
    ClockBeforeEpochError,
    EncoderRegistryFullError,
    GeneratorStateConflictError,
    InvalidClockConfigError,
    InvalidFieldWidthError,
    NodeIdOutOfRangeError,
    NotADecimalIntegerError,
    TimestampFieldOverflowError,
    TimestampOutOfRangeError,
)
from flakeid.database import connect_to_redis, get_redis_client
from flakeid.database.repo import issue_ids
from flakeid.database.schema import (
    DecodeResultOut,
    GenerateRequest,
    ParsedIdOut,
    ParseRequest,
    SchemeSelection,
)
from flakeid.services.export import render_csv, render_text
from flakeid.services.logger import setup_logger
from flakeid.services.registry import EncoderRegistry, configured_scheme
from flakeid.utils.layout import ClockConfig, Layout
from flakeid.utils.parser import decode, decode_batch
from flakeid.utils.presets import Preset
from flakeid.utils.snowflake import validate_node_ids

logger = setup_logger()

# Resolve the configured scheme and check the default node identity
default_layout, default_clock = configured_scheme()
validate_node_ids(default_layout, settings.NODE_PRIMARY, settings.NODE_SECONDARY)
encoder_registry = EncoderRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan event handler.

    Connects to Redis when generator state is shared between processes, and
    closes the connection on shutdown.

    Raises:
        HTTPException: 503 Service Unavailable if Redis initialization fails
    """
    logger.info(
        "Starting flakeid service (layout=%s, clock=%s, backend=%s)...",
        default_layout,
        default_clock,
        settings.STATE_BACKEND,
    )

    try:
        if settings.STATE_BACKEND == "redis":
            app.state.redis = connect_to_redis()
            await app.state.redis.ping()

        yield

        logger.info("Application is shutting down.")

        if settings.STATE_BACKEND == "redis":
            await app.state.redis.aclose()

    except ConnectionError as e:
        logger.error(f"Redis connection failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Redis connection failed",
        )


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _resolve_scheme(selection: SchemeSelection) -> tuple[Layout, ClockConfig]:
    """Pick the layout and clock a request asks for.

    Raises:
        HTTPException: 422 if the custom layout or clock is invalid.
    """
    if selection.preset is not None:
        layout, clock = selection.preset.layout, selection.preset.clock
    else:
        layout, clock = default_layout, default_clock

    try:
        if selection.layout is not None:
            layout = selection.layout.to_layout()
        if selection.clock is not None:
            clock = selection.clock.to_clock()
    except (InvalidFieldWidthError, InvalidClockConfigError) as e:
        logger.error("Invalid scheme requested: %s", e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    return layout, clock


@app.get(
    "/presets",
    response_model=list[dict],
    summary="List layout presets",
    description="""
    List the named layouts the service knows about, with their field widths,
    epoch and tick granularity.
    """,
)
async def list_presets():
    """Return every preset with its layout and clock."""
    return [preset.describe() for preset in Preset]


@app.post(
    "/generate",
    status_code=status.HTTP_201_CREATED,
    response_model=dict,
    summary="Generate IDs",
    description="""
    Generate one or more IDs for a node identity.

    The layout and clock come from the configured preset unless the request
    names another preset or supplies a custom layout and clock. IDs within a
    batch share one generator state: once a tick has issued all of its
    sequence values, the batch continues in the following tick.

    IDs are returned as decimal strings because they routinely exceed the
    53-bit integer range of JSON number parsers.
    """,
    responses={
        201: {
            "description": "IDs generated successfully",
            "content": {
                "application/json": {
                    "example": {
                        "ids": ["1724603154034098176", "1724603154034098177"],
                        "layout": {
                            "timestamp_bits": 41,
                            "node_primary_bits": 5,
                            "node_secondary_bits": 5,
                            "sequence_bits": 12,
                            "total_bits": 63,
                        },
                        "clock": {"epoch_ms": 1288834974657, "tick_ms": 1},
                    }
                }
            },
        },
        409: {
            "description": "The configured scheme cannot represent the current time",
            "content": {
                "application/json": {
                    "example": {"detail": "Clock reads 0 ms, before the epoch ..."}
                }
            },
        },
        422: {"description": "Invalid layout, clock, node id or count"},
        503: {"description": "Shared generator state unavailable or contended"},
    },
)
async def generate_ids(
    request: GenerateRequest,
    format: str = Query("json", pattern="^(json|text)$", description="json or text"),
):
    """Generate a batch of IDs.

    Args:
        request (GenerateRequest): Count, node ids and scheme selection.
        format (str): Response format, json or text (one ID per line).

    Returns:
        dict | PlainTextResponse: The generated IDs with the layout and clock used.
    """
    layout, clock = _resolve_scheme(request)
    node_primary = (
        settings.NODE_PRIMARY if request.node_primary is None else request.node_primary
    )
    node_secondary = (
        settings.NODE_SECONDARY
        if request.node_secondary is None
        else request.node_secondary
    )

    try:
        if settings.STATE_BACKEND == "redis":
            ids = await issue_ids(
                get_redis_client(),
                layout,
                clock,
                node_primary,
                node_secondary,
                request.count,
            )
        else:
            ids = encoder_registry.issue(
                layout, clock, node_primary, node_secondary, request.count
            )
    except NodeIdOutOfRangeError as e:
        logger.error("Invalid node id: %s", e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except (ClockBeforeEpochError, TimestampFieldOverflowError) as e:
        logger.error("Scheme cannot represent the current time: %s", e)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    except GeneratorStateConflictError as e:
        logger.warning("Generator state contended: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    except EncoderRegistryFullError as e:
        logger.warning("No encoder available: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    except (ConnectionError, ResponseError, TimeoutError) as e:
        logger.error("ID generation failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ID generation failed",
        )

    if format == "text":
        return PlainTextResponse(
            render_text(ids), status_code=status.HTTP_201_CREATED
        )

    return {"ids": ids, "layout": layout.as_dict(), "clock": clock.as_dict()}


@app.get(
    "/parse/{id_text}",
    response_model=ParsedIdOut,
    summary="Parse a single ID",
    description="""
    Decode one decimal ID under the configured layout, or under the preset
    named in the query string.

    IDs that carry more bits than the layout accounts for are still decoded;
    the response flags them instead of failing.
    """,
    responses={
        422: {
            "description": "Not a decimal integer, or timestamp out of range",
            "content": {
                "application/json": {
                    "example": {
                        "detail": "ID must be a non-negative decimal integer."
                    }
                }
            },
        },
    },
)
async def parse_id(
    id_text: str = Path(
        ...,
        description="The ID to decode, as decimal text",
        examples=["1724603154034098176"],
    ),
    preset: Optional[Preset] = Query(None, description="Layout preset to decode with"),
):
    """Decode one ID.

    Args:
        id_text (str): The ID as decimal text.
        preset (Optional[Preset]): Preset to decode with instead of the default.

    Returns:
        ParsedIdOut: The decoded fields and overflow flags.
    """
    layout, clock = _resolve_scheme(SchemeSelection(preset=preset))
    try:
        return ParsedIdOut.from_parsed(decode(layout, clock, id_text))
    except (NotADecimalIntegerError, TimestampOutOfRangeError) as e:
        logger.warning("Rejected ID %r: %s", id_text, e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )


@app.post(
    "/parse",
    summary="Parse IDs in batch",
    description="""
    Decode newline-separated IDs. Blank lines are ignored and every other
    line yields either a decoded record or an error message, in input order.
    One bad line never discards the rest of the batch.

    Pass `format=csv` to receive the results as CSV with one row per line.
    """,
    responses={
        200: {
            "description": "Per-line decode results",
            "content": {
                "application/json": {
                    "example": {
                        "results": [
                            {
                                "line": 1,
                                "text": "abc",
                                "parsed": None,
                                "error": "ID must be a non-negative decimal integer.",
                            }
                        ]
                    }
                },
                "text/csv": {},
            },
        },
    },
)
async def parse_ids(
    request: ParseRequest = Body(...),
    format: str = Query("json", pattern="^(json|csv)$", description="json or csv"),
):
    """Decode a batch of IDs.

    Args:
        request (ParseRequest): Newline-separated IDs and scheme selection.
        format (str): Response format, json or csv.

    Returns:
        dict | PlainTextResponse: Per-line results.
    """
    layout, clock = _resolve_scheme(request)
    results = decode_batch(layout, clock, request.content)

    if format == "csv":
        return PlainTextResponse(render_csv(results), media_type="text/csv")

    return {"results": [DecodeResultOut.from_result(result) for result in results]}
