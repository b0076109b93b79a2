"""
Generator State Repository

Keeps the GeneratorState of one node identity in Redis so that several worker
processes can issue IDs for that identity without duplicates. Each update is
an optimistic transaction: the state hash is WATCHed, the next IDs are
computed locally with the same step function the in-memory encoder uses, and
the new state is written inside MULTI/EXEC. If another writer touched the hash
in between, the transaction is rejected and the caller decides whether to
retry.

Key Layout:
    <prefix>:<ts>-<primary>-<secondary>-<seq>:<epoch>:<tick>:<node_primary>:<node_secondary>

    Hash fields:
        - offset: tick of the last issued ID
        - sequence: next sequence value within that tick
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import ResponseError, TimeoutError, WatchError

from flakeid.core.config import settings
from flakeid.core.exceptions import GeneratorStateConflictError
from flakeid.services.logger import setup_logger
from flakeid.utils.layout import ClockConfig, Layout
from flakeid.utils.snowflake import (
    GeneratorState,
    advance,
    current_millis,
    validate_node_ids,
)

logger = setup_logger()


def state_key(
    layout: Layout, clock: ClockConfig, node_primary: int, node_secondary: int
) -> str:
    """Builds the Redis key that identifies one generator identity."""
    return (
        f"{settings.STATE_KEY_PREFIX}:"
        f"{layout.timestamp_bits}-{layout.node_primary_bits}-"
        f"{layout.node_secondary_bits}-{layout.sequence_bits}:"
        f"{clock.epoch_ms}:{clock.tick_ms}:{node_primary}:{node_secondary}"
    )


def _state_from_hash(data: dict) -> GeneratorState:
    if not data:
        return GeneratorState()
    return GeneratorState(
        current_timestamp_offset=int(data["offset"]),
        current_sequence=int(data["sequence"]),
    )


async def read_state(
    redis_client: redis.Redis,
    layout: Layout,
    clock: ClockConfig,
    node_primary: int,
    node_secondary: int,
) -> GeneratorState:
    """Returns the persisted state of an identity, or a fresh one."""
    data = await redis_client.hgetall(
        state_key(layout, clock, node_primary, node_secondary)
    )
    return _state_from_hash(data)


async def issue_ids(
    redis_client: redis.Redis,
    layout: Layout,
    clock: ClockConfig,
    node_primary: int,
    node_secondary: int,
    count: int,
    now_ms: Optional[int] = None,
) -> list[str]:
    """Issue count IDs against the shared state of one identity.

    Args:
        redis_client (redis.Redis): Async Redis client.
        layout (Layout): Bit layout of the identity.
        clock (ClockConfig): Epoch and tick granularity.
        node_primary (int): Primary node id.
        node_secondary (int): Secondary node id.
        count (int): Number of IDs to issue.
        now_ms (Optional[int]): Clock reading; defaults to the system clock.

    Returns:
        list[str]: The IDs as decimal strings, strictly increasing.

    Raises:
        NodeIdOutOfRangeError: If a node id does not fit its field.
        ClockBeforeEpochError: If the clock reads before the epoch.
        TimestampFieldOverflowError: If the layout has run out of ticks.
        GeneratorStateConflictError: If another writer changed the state.
        ResponseError: If the Redis operation fails.
        TimeoutError: If the Redis operation times out.
    """
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    validate_node_ids(layout, node_primary, node_secondary)

    key = state_key(layout, clock, node_primary, node_secondary)
    if now_ms is None:
        now_ms = current_millis()

    pipe = redis_client.pipeline()
    try:
        await pipe.watch(key)

        state = _state_from_hash(await pipe.hgetall(key))
        ids = []
        for _ in range(count):
            id_value, state = advance(
                layout, clock, state, node_primary, node_secondary, now_ms
            )
            ids.append(str(id_value))

        pipe.multi()
        pipe.hset(
            name=key,
            mapping={
                "offset": state.current_timestamp_offset,
                "sequence": state.current_sequence,
            },
        )
        await pipe.execute()

        logger.info("Issued %d IDs for key: %s", len(ids), key)
        return ids

    except WatchError as e:
        logger.error(f"Watched key modified during transaction: {e}")
        raise GeneratorStateConflictError(
            f"Generator state {key} was modified by another writer."
        ) from e
    except (ResponseError, TimeoutError) as e:
        logger.error("Redis operation failed while issuing IDs: %s", e)
        raise
    finally:
        await pipe.reset()
