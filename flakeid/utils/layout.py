"""
Bit Layout Module

Describes how an identifier is split into bit fields and how its timestamp
field maps onto wall-clock time.

Field Order (most significant first):

    | timestamp | node_primary | node_secondary | sequence |

    - Each field width is an integer in [0, 63]
    - A zero-width field has a zero mask and is effectively absent
    - The total width may exceed 63 bits; this is reported, not rejected

Python integers are unbounded, so composing and decomposing IDs of any total
width is exact.
"""

from dataclasses import dataclass, field

from flakeid.core.exceptions import InvalidClockConfigError, InvalidFieldWidthError
from flakeid.services.logger import setup_logger

logger = setup_logger()

MAX_FIELD_BITS = 63
SAFE_TOTAL_BITS = 63


def _mask(bits: int) -> int:
    return (1 << bits) - 1


@dataclass(frozen=True)
class Layout:
    """An immutable split of an identifier into four bit fields.

    Attributes:
        timestamp_bits: Width of the timestamp offset field.
        node_primary_bits: Width of the primary node field (e.g. datacenter).
        node_secondary_bits: Width of the secondary node field (e.g. worker).
        sequence_bits: Width of the per-tick sequence counter.
    """

    timestamp_bits: int
    node_primary_bits: int
    node_secondary_bits: int
    sequence_bits: int

    sequence_shift: int = field(init=False, repr=False)
    node_secondary_shift: int = field(init=False, repr=False)
    node_primary_shift: int = field(init=False, repr=False)
    timestamp_shift: int = field(init=False, repr=False)

    def __post_init__(self):
        for name in (
            "timestamp_bits",
            "node_primary_bits",
            "node_secondary_bits",
            "sequence_bits",
        ):
            value = getattr(self, name)
            if (
                isinstance(value, bool)
                or not isinstance(value, int)
                or not 0 <= value <= MAX_FIELD_BITS
            ):
                raise InvalidFieldWidthError(name, value)

        object.__setattr__(self, "sequence_shift", 0)
        object.__setattr__(self, "node_secondary_shift", self.sequence_bits)
        object.__setattr__(
            self, "node_primary_shift", self.sequence_bits + self.node_secondary_bits
        )
        object.__setattr__(
            self,
            "timestamp_shift",
            self.sequence_bits + self.node_secondary_bits + self.node_primary_bits,
        )

    @property
    def total_bits(self) -> int:
        return (
            self.timestamp_bits
            + self.node_primary_bits
            + self.node_secondary_bits
            + self.sequence_bits
        )

    @property
    def timestamp_mask(self) -> int:
        return _mask(self.timestamp_bits)

    @property
    def node_primary_mask(self) -> int:
        return _mask(self.node_primary_bits)

    @property
    def node_secondary_mask(self) -> int:
        return _mask(self.node_secondary_bits)

    @property
    def sequence_mask(self) -> int:
        return _mask(self.sequence_bits)

    @property
    def max_value(self) -> int:
        """Largest integer the layout can account for."""
        return _mask(self.total_bits)

    @property
    def exceeds_safe_width(self) -> bool:
        """True when the layout no longer fits a signed 64-bit integer."""
        return self.total_bits > SAFE_TOTAL_BITS

    def as_dict(self) -> dict:
        return {
            "timestamp_bits": self.timestamp_bits,
            "node_primary_bits": self.node_primary_bits,
            "node_secondary_bits": self.node_secondary_bits,
            "sequence_bits": self.sequence_bits,
            "total_bits": self.total_bits,
        }


@dataclass(frozen=True)
class ClockConfig:
    """Maps the timestamp field onto wall-clock milliseconds.

    Attributes:
        epoch_ms: Reference instant, in milliseconds since the Unix epoch.
        tick_ms: Milliseconds represented by one unit of the timestamp field.
    """

    epoch_ms: int
    tick_ms: int = 1

    def __post_init__(self):
        if isinstance(self.epoch_ms, bool) or not isinstance(self.epoch_ms, int):
            raise InvalidClockConfigError(
                f"epoch_ms must be an integer, got {self.epoch_ms!r}"
            )
        if (
            isinstance(self.tick_ms, bool)
            or not isinstance(self.tick_ms, int)
            or self.tick_ms <= 0
        ):
            raise InvalidClockConfigError(
                f"tick_ms must be a positive integer, got {self.tick_ms!r}"
            )

    def tick_for(self, now_ms: int) -> int:
        """Returns the number of whole ticks elapsed since the epoch."""
        return (now_ms - self.epoch_ms) // self.tick_ms

    def instant_for(self, timestamp_offset: int) -> int:
        """Returns the wall-clock millisecond at which a tick starts."""
        return self.epoch_ms + timestamp_offset * self.tick_ms

    def as_dict(self) -> dict:
        return {"epoch_ms": self.epoch_ms, "tick_ms": self.tick_ms}


def build_layout(
    timestamp_bits: int,
    node_primary_bits: int,
    node_secondary_bits: int,
    sequence_bits: int,
) -> Layout:
    """Builds a layout from four field widths.

    Args:
        timestamp_bits: Width of the timestamp field (0-63).
        node_primary_bits: Width of the primary node field (0-63).
        node_secondary_bits: Width of the secondary node field (0-63).
        sequence_bits: Width of the sequence field (0-63).

    Returns:
        The layout with its masks and shifts derived.

    Raises:
        InvalidFieldWidthError: If any width is outside [0, 63] or not an int.
    """
    layout = Layout(
        timestamp_bits=timestamp_bits,
        node_primary_bits=node_primary_bits,
        node_secondary_bits=node_secondary_bits,
        sequence_bits=sequence_bits,
    )
    if layout.exceeds_safe_width:
        logger.warning(
            "Layout uses %d bits, more than the %d that fit a signed 64-bit integer.",
            layout.total_bits,
            SAFE_TOTAL_BITS,
        )
    return layout
