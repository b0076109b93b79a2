"""
Snowflake ID Generator Module

A configurable implementation of Twitter's Snowflake algorithm. The bit split,
epoch and tick granularity come from a Layout and a ClockConfig, so the same
generator issues Twitter, Sonyflake, Discord or custom-shaped identifiers.

Algorithm Overview:

    | timestamp | node_primary | node_secondary | sequence |

    - Timestamp: ticks elapsed since the configured epoch
    - Node ids: one or two externally assigned identifiers (may be zero-width)
    - Sequence: counter distinguishing IDs issued within the same tick

Sequence Rollover:
    When a tick has already issued sequence_mask + 1 IDs, the generator moves
    to the next tick itself instead of waiting on the wall clock. Output is
    strictly increasing for a single generator instance, even when a batch
    runs ahead of real time.

Thread Safety:
    - Each IdEncoder owns one GeneratorState guarded by a threading.Lock()
    - One encoder must be bound to each (layout, clock, node ids) identity
    - Processes sharing an identity go through database.repo instead

Clock Considerations:
    - A clock reading before the epoch raises ClockBeforeEpochError
    - A clock reading past the timestamp field raises TimestampFieldOverflowError
    - A clock that reads behind the last issued tick reuses that tick
    - Failed calls never mutate the generator state

Based on: Twitter's Snowflake algorithm
"""

from dataclasses import dataclass, replace
import threading
import time
from typing import Optional

from flakeid.core.exceptions import (
    ClockBeforeEpochError,
    NodeIdOutOfRangeError,
    TimestampFieldOverflowError,
)
from flakeid.services.logger import setup_logger
from flakeid.utils.layout import ClockConfig, Layout

logger = setup_logger()


@dataclass
class GeneratorState:
    """Mutable counter state of one generator.

    Attributes:
        current_timestamp_offset: Tick of the last issued ID, -1 before the first.
        current_sequence: Next sequence value to issue within that tick.
    """

    current_timestamp_offset: int = -1
    current_sequence: int = 0


def current_millis() -> int:
    """Returns the current timestamp in milliseconds."""
    return int(time.time() * 1000)


def validate_node_ids(layout: Layout, node_primary: int, node_secondary: int):
    """Checks that both node ids fit their fields.

    Raises:
        NodeIdOutOfRangeError: If either id is not an integer, is negative,
            or is wider than its field.
    """
    _check_node_id("node_primary", layout.node_primary_bits, node_primary)
    _check_node_id("node_secondary", layout.node_secondary_bits, node_secondary)


def _check_node_id(field: str, bits: int, value: int):
    if (
        isinstance(value, bool)
        or not isinstance(value, int)
        or not 0 <= value < (1 << bits)
    ):
        raise NodeIdOutOfRangeError(field, bits, value)


def _check_timestamp_field(layout: Layout, timestamp_offset: int):
    if timestamp_offset > layout.timestamp_mask:
        raise TimestampFieldOverflowError(
            f"Timestamp offset {timestamp_offset} does not fit in "
            f"{layout.timestamp_bits} bits."
        )


def compose(
    layout: Layout,
    timestamp_offset: int,
    node_primary: int,
    node_secondary: int,
    sequence: int,
) -> int:
    """Packs already-validated field values into one integer."""
    return (
        (timestamp_offset << layout.timestamp_shift)
        | (node_primary << layout.node_primary_shift)
        | (node_secondary << layout.node_secondary_shift)
        | sequence
    )


def advance(
    layout: Layout,
    clock: ClockConfig,
    state: GeneratorState,
    node_primary: int,
    node_secondary: int,
    now_ms: int,
) -> tuple[int, GeneratorState]:
    """Issues one ID from a state without mutating it.

    Args:
        layout: Bit layout of the identifier.
        clock: Epoch and tick granularity.
        state: State after the previous issuance.
        node_primary: Primary node id, already validated.
        node_secondary: Secondary node id, already validated.
        now_ms: Wall-clock reading in milliseconds since the Unix epoch.

    Returns:
        The composed ID and the state to persist for the next call.

    Raises:
        ClockBeforeEpochError: If now_ms predates the epoch.
        TimestampFieldOverflowError: If the tick no longer fits the layout.
    """
    timestamp_offset = clock.tick_for(now_ms)
    if timestamp_offset < 0:
        raise ClockBeforeEpochError(
            f"Clock reads {now_ms} ms, before the epoch {clock.epoch_ms} ms."
        )
    _check_timestamp_field(layout, timestamp_offset)

    sequence = state.current_sequence
    if timestamp_offset > state.current_timestamp_offset:
        sequence = 0
    elif timestamp_offset < state.current_timestamp_offset:
        logger.debug(
            "Clock tick %d is behind last issued tick %d, reusing it.",
            timestamp_offset,
            state.current_timestamp_offset,
        )
        timestamp_offset = state.current_timestamp_offset

    if sequence > layout.sequence_mask:
        timestamp_offset = state.current_timestamp_offset + 1
        sequence = 0
        _check_timestamp_field(layout, timestamp_offset)

    id_value = compose(layout, timestamp_offset, node_primary, node_secondary, sequence)
    next_state = replace(
        state,
        current_timestamp_offset=timestamp_offset,
        current_sequence=sequence + 1,
    )
    return id_value, next_state


class IdEncoder:
    """A thread-safe generator bound to one layout, clock and node identity.

    Attributes:
        layout: The bit layout of issued IDs.
        clock: The epoch and tick granularity.
        node_primary: Primary node id (e.g. datacenter).
        node_secondary: Secondary node id (e.g. worker).
        state: The generator state, mutated only by encode().
    """

    def __init__(
        self,
        layout: Layout,
        clock: ClockConfig,
        node_primary: int = 0,
        node_secondary: int = 0,
    ):
        """Initializes a new generator instance.

        Raises:
            NodeIdOutOfRangeError: If a node id does not fit its field.
        """
        validate_node_ids(layout, node_primary, node_secondary)

        self.layout = layout
        self.clock = clock
        self.node_primary = node_primary
        self.node_secondary = node_secondary
        self.state = GeneratorState()
        self.lock = threading.Lock()

    def _issue(self, count: int, now_ms: int) -> list[str]:
        state = self.state
        ids = []
        for _ in range(count):
            id_value, state = advance(
                self.layout,
                self.clock,
                state,
                self.node_primary,
                self.node_secondary,
                now_ms,
            )
            ids.append(str(id_value))
        self.state = state
        return ids

    def encode(self, now_ms: Optional[int] = None) -> str:
        """Generates a new unique ID.

        Args:
            now_ms: Clock reading to use; defaults to the system clock.

        Returns:
            The ID as a base-10 string.

        Raises:
            ClockBeforeEpochError: If the clock reads before the epoch.
            TimestampFieldOverflowError: If the layout has run out of ticks.
        """
        with self.lock:
            if now_ms is None:
                now_ms = current_millis()
            return self._issue(1, now_ms)[0]

    def encode_batch(self, count: int, now_ms: Optional[int] = None) -> list[str]:
        """Generates count IDs against one shared state.

        The clock is read once; IDs beyond one tick's capacity roll into the
        following ticks. The batch is all or nothing: if any ID fails, the
        state is left as it was before the call.

        Raises:
            ValueError: If count is negative.
        """
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")

        with self.lock:
            if now_ms is None:
                now_ms = current_millis()
            ids = self._issue(count, now_ms)

        logger.debug("Issued %d IDs at %d ms", len(ids), now_ms)
        return ids
