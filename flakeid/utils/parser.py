"""
Snowflake ID Parser Module

Decomposes decimal identifiers back into their fields under a Layout and a
ClockConfig. Values that carry more bits than the layout accounts for are not
rejected: they are decoded and flagged, so a batch of mixed input can be
inspected line by line. Only an ID that fits its layout but whose timestamp
cannot be expressed as a calendar date is an error.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import re
from typing import Optional

from flakeid.core.exceptions import NotADecimalIntegerError, TimestampOutOfRangeError
from flakeid.services.logger import setup_logger
from flakeid.utils.layout import ClockConfig, Layout

logger = setup_logger()

_DECIMAL_RE = re.compile(r"[0-9]+")
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class OverflowFlags:
    """Non-fatal signals that an ID does not fit its declared layout."""

    total_bits_exceeded: bool = False
    timestamp_field_exceeded: bool = False

    @property
    def any(self) -> bool:
        return self.total_bits_exceeded or self.timestamp_field_exceeded


@dataclass(frozen=True)
class ParsedId:
    """An ID decomposed into its fields.

    Attributes:
        id: The decimal text that was parsed.
        timestamp_offset: Raw ticks since the epoch, not masked to the field.
        instant_ms: Wall-clock milliseconds the tick corresponds to.
        instant: The same instant as an aware UTC datetime, or None for a
            flagged ID whose timestamp falls outside the calendar range.
        node_primary: Primary node field.
        node_secondary: Secondary node field.
        sequence: Sequence field.
        overflow: Flags for bits the layout cannot account for.
    """

    id: str
    timestamp_offset: int
    instant_ms: int
    instant: Optional[datetime]
    node_primary: int
    node_secondary: int
    sequence: int
    overflow: OverflowFlags = field(default_factory=OverflowFlags)

    @property
    def timestamp_iso(self) -> str:
        if self.instant is None:
            return ""
        return self.instant.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def as_record(self) -> dict:
        """Flattens the parsed ID for tabular export."""
        return {
            "id": self.id,
            "timestamp_ms": self.instant_ms,
            "timestamp_iso": self.timestamp_iso,
            "timestamp_offset": self.timestamp_offset,
            "node_primary": self.node_primary,
            "node_secondary": self.node_secondary,
            "sequence": self.sequence,
            "total_bits_exceeded": self.overflow.total_bits_exceeded,
            "timestamp_field_exceeded": self.overflow.timestamp_field_exceeded,
        }


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one non-blank line of a batch."""

    line: int
    text: str
    parsed: Optional[ParsedId] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _parse_decimal(id_text: str) -> int:
    if not isinstance(id_text, str) or not _DECIMAL_RE.fullmatch(id_text):
        raise NotADecimalIntegerError("ID must be a non-negative decimal integer.")
    try:
        return int(id_text)
    except ValueError as e:
        # Inputs past the interpreter's int/str conversion limit.
        raise NotADecimalIntegerError(f"ID is too long to parse: {e}") from None


def _to_datetime(instant_ms: int) -> datetime:
    try:
        return _UNIX_EPOCH + timedelta(milliseconds=instant_ms)
    except OverflowError:
        raise TimestampOutOfRangeError(
            f"Timestamp {instant_ms} ms is outside the representable date range."
        ) from None


def decode(layout: Layout, clock: ClockConfig, id_text: str) -> ParsedId:
    """Decodes one decimal ID under a layout and clock.

    Args:
        layout: The layout the ID is assumed to follow.
        clock: The epoch and tick granularity of the timestamp field.
        id_text: The ID as base-10 text.

    Returns:
        The parsed fields, with overflow flags set where the ID carries bits
        the layout cannot account for.

    Raises:
        NotADecimalIntegerError: If id_text is not made of ASCII digits only.
        TimestampOutOfRangeError: If the ID fits the layout but its timestamp
            is not a representable date.
    """
    id_value = _parse_decimal(id_text)

    sequence = id_value & layout.sequence_mask
    node_secondary = (id_value >> layout.node_secondary_shift) & layout.node_secondary_mask
    node_primary = (id_value >> layout.node_primary_shift) & layout.node_primary_mask
    timestamp_offset = id_value >> layout.timestamp_shift

    overflow = OverflowFlags(
        total_bits_exceeded=id_value > layout.max_value,
        timestamp_field_exceeded=timestamp_offset > layout.timestamp_mask,
    )
    if overflow.any:
        logger.debug("ID %s does not fit layout %s: %s", id_text, layout, overflow)

    instant_ms = clock.instant_for(timestamp_offset)
    try:
        instant = _to_datetime(instant_ms)
    except TimestampOutOfRangeError:
        # A flagged ID is still reported; only a layout-consistent one fails.
        if not overflow.any:
            raise
        instant = None

    return ParsedId(
        id=id_text,
        timestamp_offset=timestamp_offset,
        instant_ms=instant_ms,
        instant=instant,
        node_primary=node_primary,
        node_secondary=node_secondary,
        sequence=sequence,
        overflow=overflow,
    )


def decode_batch(layout: Layout, clock: ClockConfig, text: str) -> list[DecodeResult]:
    """Decodes newline-separated IDs, one result or error per non-blank line.

    Lines are separated by "\n" only; surrounding whitespace, including a
    trailing "\r", is stripped. Blank lines are skipped and line numbers refer
    to the original input.
    """
    results = []
    for line_number, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.strip()
        if not line:
            continue
        try:
            results.append(
                DecodeResult(
                    line=line_number, text=line, parsed=decode(layout, clock, line)
                )
            )
        except (NotADecimalIntegerError, TimestampOutOfRangeError) as e:
            logger.debug("Line %d rejected: %s", line_number, e)
            results.append(DecodeResult(line=line_number, text=line, error=str(e)))

    logger.info(
        "Decoded %d lines, %d rejected",
        len(results),
        sum(1 for result in results if not result.ok),
    )
    return results
