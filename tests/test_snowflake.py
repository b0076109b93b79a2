"""Tests for the ID encoder."""

import threading

import pytest

from flakeid.core.exceptions import (
    ClockBeforeEpochError,
    NodeIdOutOfRangeError,
    TimestampFieldOverflowError,
)
from flakeid.utils.layout import ClockConfig, build_layout
from flakeid.utils.parser import decode
from flakeid.utils.snowflake import GeneratorState, IdEncoder, advance

from .conftest import FROZEN_NOW_MS


class TestIdEncoderInit:
    """Tests for encoder construction."""

    def test_node_ids_within_range(self, twitter_layout, twitter_clock) -> None:
        encoder = IdEncoder(twitter_layout, twitter_clock, 31, 31)
        assert encoder.state == GeneratorState()

    @pytest.mark.parametrize(
        "primary, secondary, field",
        [(32, 0, "node_primary"), (0, 32, "node_secondary"), (-1, 0, "node_primary")],
    )
    def test_node_id_out_of_range(
        self, twitter_layout, twitter_clock, primary, secondary, field
    ) -> None:
        with pytest.raises(NodeIdOutOfRangeError) as exc_info:
            IdEncoder(twitter_layout, twitter_clock, primary, secondary)
        assert exc_info.value.field == field
        assert exc_info.value.bits == 5
        assert "5 bits" in str(exc_info.value)

    def test_zero_width_field_rejects_non_zero(
        self, sonyflake_layout, sonyflake_clock
    ) -> None:
        with pytest.raises(NodeIdOutOfRangeError) as exc_info:
            IdEncoder(sonyflake_layout, sonyflake_clock, 1, 0)
        assert exc_info.value.field == "node_primary"
        assert exc_info.value.bits == 0

    @pytest.mark.parametrize("primary, secondary", [(1.5, 0), (0, True), (0, "1")])
    def test_node_id_must_be_an_integer(
        self, twitter_layout, twitter_clock, primary, secondary
    ) -> None:
        with pytest.raises(NodeIdOutOfRangeError):
            IdEncoder(twitter_layout, twitter_clock, primary, secondary)


class TestEncode:
    """Tests for single ID issuance."""

    def test_twitter_scenario(self, twitter_layout, twitter_clock) -> None:
        encoder = IdEncoder(twitter_layout, twitter_clock, 1, 2)
        ids = [int(encoder.encode(FROZEN_NOW_MS)) for _ in range(3)]

        assert ids[0] == 1724551110456385536
        assert len({id_value >> 12 for id_value in ids}) == 1
        assert [id_value & 0xFFF for id_value in ids] == [0, 1, 2]

    def test_returns_decimal_string(self, twitter_layout, twitter_clock) -> None:
        id_text = IdEncoder(twitter_layout, twitter_clock).encode(FROZEN_NOW_MS)
        assert isinstance(id_text, str)
        assert id_text.isdigit()

    def test_uses_system_clock_by_default(self, twitter_layout, twitter_clock) -> None:
        parsed = decode(
            twitter_layout, twitter_clock, IdEncoder(twitter_layout, twitter_clock).encode()
        )
        assert parsed.instant_ms > FROZEN_NOW_MS

    def test_sequence_rollover(self, tiny_layout, tiny_clock) -> None:
        encoder = IdEncoder(tiny_layout, tiny_clock)
        count = tiny_layout.sequence_mask + 2
        parsed = [
            decode(tiny_layout, tiny_clock, encoder.encode(FROZEN_NOW_MS))
            for _ in range(count)
        ]

        assert [p.timestamp_offset for p in parsed[:-1]] == [100] * (count - 1)
        assert [p.sequence for p in parsed[:-1]] == list(range(count - 1))
        assert parsed[-1].timestamp_offset == 101
        assert parsed[-1].sequence == 0

    def test_sequence_restarts_on_new_tick(self, tiny_layout, tiny_clock) -> None:
        encoder = IdEncoder(tiny_layout, tiny_clock)
        encoder.encode(FROZEN_NOW_MS)
        encoder.encode(FROZEN_NOW_MS)
        parsed = decode(tiny_layout, tiny_clock, encoder.encode(FROZEN_NOW_MS + 5))
        assert parsed.timestamp_offset == 105
        assert parsed.sequence == 0

    def test_monotonic_with_non_decreasing_clock(self, tiny_layout, tiny_clock) -> None:
        encoder = IdEncoder(tiny_layout, tiny_clock, 3, 1)
        clock_readings = [FROZEN_NOW_MS] * 9 + [FROZEN_NOW_MS + 1] * 3 + [
            FROZEN_NOW_MS + 4
        ] * 6
        ids = [int(encoder.encode(now)) for now in clock_readings]
        assert all(earlier < later for earlier, later in zip(ids, ids[1:]))

    def test_clock_behind_synthesized_tick_stays_monotonic(
        self, tiny_layout, tiny_clock
    ) -> None:
        encoder = IdEncoder(tiny_layout, tiny_clock)
        ids = encoder.encode_batch(10, FROZEN_NOW_MS)
        later = encoder.encode(FROZEN_NOW_MS)
        assert int(later) > int(ids[-1])

    def test_clock_moving_backwards_reuses_last_tick(
        self, tiny_layout, tiny_clock
    ) -> None:
        encoder = IdEncoder(tiny_layout, tiny_clock)
        first = encoder.encode(FROZEN_NOW_MS)
        second = encoder.encode(FROZEN_NOW_MS - 50)
        assert int(second) > int(first)
        assert decode(tiny_layout, tiny_clock, second).timestamp_offset == 100

    def test_clock_before_epoch(self, twitter_layout, twitter_clock) -> None:
        encoder = IdEncoder(twitter_layout, twitter_clock)
        with pytest.raises(ClockBeforeEpochError):
            encoder.encode(twitter_clock.epoch_ms - 1)
        assert encoder.state == GeneratorState()

    def test_clock_before_epoch_with_coarse_tick(
        self, sonyflake_layout, sonyflake_clock
    ) -> None:
        encoder = IdEncoder(sonyflake_layout, sonyflake_clock)
        with pytest.raises(ClockBeforeEpochError):
            encoder.encode(sonyflake_clock.epoch_ms - 1)

    def test_timestamp_field_overflow(self) -> None:
        layout = build_layout(4, 0, 0, 4)
        clock = ClockConfig(epoch_ms=0)
        encoder = IdEncoder(layout, clock)
        encoder.encode(15)
        with pytest.raises(TimestampFieldOverflowError):
            encoder.encode(16)
        assert encoder.state == GeneratorState(
            current_timestamp_offset=15, current_sequence=1
        )

    def test_rollover_past_last_tick_overflows(self) -> None:
        layout = build_layout(4, 0, 0, 1)
        encoder = IdEncoder(layout, ClockConfig(epoch_ms=0))
        encoder.encode_batch(2, now_ms=15)
        before = encoder.state
        with pytest.raises(TimestampFieldOverflowError):
            encoder.encode(15)
        assert encoder.state == before

    def test_failed_batch_leaves_state_untouched(self) -> None:
        layout = build_layout(4, 0, 0, 1)
        encoder = IdEncoder(layout, ClockConfig(epoch_ms=0))
        encoder.encode(14)
        before = encoder.state
        with pytest.raises(TimestampFieldOverflowError):
            encoder.encode_batch(4, now_ms=14)
        assert encoder.state == before
        assert encoder.encode_batch(3, now_ms=14) == ["29", "30", "31"]

    def test_zero_sequence_bits_advance_every_call(self) -> None:
        layout = build_layout(20, 0, 0, 0)
        encoder = IdEncoder(layout, ClockConfig(epoch_ms=0))
        assert encoder.encode_batch(3, now_ms=7) == ["7", "8", "9"]

    def test_oversized_layout_exceeds_64_bits(self) -> None:
        layout = build_layout(63, 20, 0, 12)
        clock = ClockConfig(epoch_ms=0)
        id_text = IdEncoder(layout, clock).encode(FROZEN_NOW_MS)
        assert int(id_text) > 2**64
        assert decode(layout, clock, id_text).timestamp_offset == FROZEN_NOW_MS


class TestEncodeBatch:
    """Tests for batch issuance."""

    def test_batch_matches_repeated_calls(self, tiny_layout, tiny_clock) -> None:
        batch = IdEncoder(tiny_layout, tiny_clock).encode_batch(7, FROZEN_NOW_MS)
        single = IdEncoder(tiny_layout, tiny_clock)
        assert batch == [single.encode(FROZEN_NOW_MS) for _ in range(7)]

    def test_batch_larger_than_a_tick(self, twitter_layout, twitter_clock) -> None:
        ids = IdEncoder(twitter_layout, twitter_clock).encode_batch(4097, FROZEN_NOW_MS)
        last = decode(twitter_layout, twitter_clock, ids[-1])
        assert last.sequence == 0
        assert last.timestamp_offset == twitter_clock.tick_for(FROZEN_NOW_MS) + 1
        assert len(set(ids)) == 4097

    def test_empty_batch(self, twitter_layout, twitter_clock) -> None:
        assert IdEncoder(twitter_layout, twitter_clock).encode_batch(0) == []

    def test_negative_count(self, twitter_layout, twitter_clock) -> None:
        with pytest.raises(ValueError):
            IdEncoder(twitter_layout, twitter_clock).encode_batch(-1)

    def test_concurrent_callers_never_duplicate(
        self, twitter_layout, twitter_clock
    ) -> None:
        encoder = IdEncoder(twitter_layout, twitter_clock, 4, 9)
        issued = []
        issued_lock = threading.Lock()

        def worker():
            ids = [encoder.encode(FROZEN_NOW_MS) for _ in range(500)]
            with issued_lock:
                issued.extend(ids)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(issued) == len(set(issued)) == 4000


class TestAdvance:
    """Tests for the pure issuance step."""

    def test_does_not_mutate_input_state(self, tiny_layout, tiny_clock) -> None:
        state = GeneratorState()
        id_value, next_state = advance(
            tiny_layout, tiny_clock, state, 0, 0, FROZEN_NOW_MS
        )
        assert state == GeneratorState()
        assert next_state == GeneratorState(
            current_timestamp_offset=100, current_sequence=1
        )
        assert id_value == 100 << tiny_layout.timestamp_shift
