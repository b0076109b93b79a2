class FlakeIdError(Exception):
    """Base class for every error raised while building, issuing or parsing IDs."""

    pass


class InvalidFieldWidthError(FlakeIdError):
    """Raised when a layout field width is not an integer in [0, 63]."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(
            f"{field} must be an integer between 0 and 63, got {value!r}"
        )


class InvalidClockConfigError(FlakeIdError):
    """Raised when a clock configuration cannot be used (e.g. tick_ms <= 0)."""

    pass


class NodeIdOutOfRangeError(FlakeIdError):
    """Raised when a node identifier does not fit its declared field width."""

    def __init__(self, field: str, bits: int, value: int):
        self.field = field
        self.bits = bits
        self.value = value
        super().__init__(
            f"{field} must be between 0 and {(1 << bits) - 1} "
            f"({bits} bits), got {value}"
        )


class ClockBeforeEpochError(FlakeIdError):
    """Raised when the wall clock reads earlier than the configured epoch."""

    pass


class TimestampFieldOverflowError(FlakeIdError):
    """Raised when the elapsed ticks no longer fit the timestamp field."""

    pass


class NotADecimalIntegerError(FlakeIdError):
    """Raised when an ID is not a non-negative base-10 integer."""

    pass


class TimestampOutOfRangeError(FlakeIdError):
    """Raised when a decoded timestamp cannot be expressed as a calendar date."""

    pass


class GeneratorStateConflictError(FlakeIdError):
    """Raised when another writer changed a shared generator state mid-update."""

    pass


class EncoderRegistryFullError(FlakeIdError):
    """Raised when every in-memory encoder slot is held by a live identity."""

    pass
