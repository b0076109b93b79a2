import threading
from typing import Optional

from flakeid.core.config import settings
from flakeid.core.exceptions import EncoderRegistryFullError
from flakeid.services.logger import setup_logger
from flakeid.utils.layout import ClockConfig, Layout, build_layout
from flakeid.utils.presets import Preset
from flakeid.utils.snowflake import IdEncoder, current_millis

logger = setup_logger()


def configured_scheme() -> tuple[Layout, ClockConfig]:
    """Resolve the layout and clock from settings.

    The preset named by PRESET supplies the defaults; any of the bit-width,
    EPOCH or TICK_MS settings that are set override the preset's values.
    """
    preset = Preset(settings.PRESET)
    base_layout = preset.layout
    base_clock = preset.clock

    layout = build_layout(
        _pick(settings.TIMESTAMP_BITS, base_layout.timestamp_bits),
        _pick(settings.NODE_PRIMARY_BITS, base_layout.node_primary_bits),
        _pick(settings.NODE_SECONDARY_BITS, base_layout.node_secondary_bits),
        _pick(settings.SEQUENCE_BITS, base_layout.sequence_bits),
    )
    clock = ClockConfig(
        epoch_ms=_pick(settings.EPOCH, base_clock.epoch_ms),
        tick_ms=_pick(settings.TICK_MS, base_clock.tick_ms),
    )
    return layout, clock


def _pick(override, default):
    return default if override is None else override


def _is_idle(encoder: IdEncoder, now_ms: int) -> bool:
    # Once the clock has moved past the last issued tick, a fresh encoder
    # for the same identity starts on a later tick and cannot repeat an ID.
    return encoder.clock.tick_for(now_ms) > encoder.state.current_timestamp_offset


class EncoderRegistry:
    """Binds each live (layout, clock, node ids) identity to exactly one encoder.

    Identities come from request data, so the registry is bounded: encoders
    whose last tick is in the past are dropped when room is needed, and a new
    identity is refused once max_encoders live ones are held.
    """

    def __init__(self, max_encoders: Optional[int] = None):
        self.max_encoders = (
            settings.MAX_ENCODERS if max_encoders is None else max_encoders
        )
        self._encoders: dict[tuple, IdEncoder] = {}
        self._latest_ms = 0
        self._lock = threading.Lock()

    def issue(
        self,
        layout: Layout,
        clock: ClockConfig,
        node_primary: int,
        node_secondary: int,
        count: int,
        now_ms: Optional[int] = None,
    ) -> list[str]:
        """Issue count IDs from the encoder bound to an identity.

        Lookup, eviction and issuance share one lock, so an encoder is never
        dropped while a caller still holds it. Clock readings are clamped to
        the latest one seen, so an identity recreated after eviction never
        reuses an evicted tick.

        Raises:
            NodeIdOutOfRangeError: If a node id does not fit its field.
            ClockBeforeEpochError: If the clock reads before the epoch.
            TimestampFieldOverflowError: If the layout has run out of ticks.
            EncoderRegistryFullError: If no slot is free for a new identity.
        """
        if now_ms is None:
            now_ms = current_millis()

        key = (layout, clock, node_primary, node_secondary)
        with self._lock:
            now_ms = max(now_ms, self._latest_ms)
            self._latest_ms = now_ms

            encoder = self._encoders.get(key)
            if encoder is not None:
                return encoder.encode_batch(count, now_ms)

            self._make_room(now_ms)
            encoder = IdEncoder(layout, clock, node_primary, node_secondary)
            ids = encoder.encode_batch(count, now_ms)
            self._encoders[key] = encoder
            logger.info("Created encoder for %s %s node=(%d, %d)", *key)
            return ids

    def _make_room(self, now_ms: int):
        if len(self._encoders) >= self.max_encoders:
            self._evict_idle(now_ms)
        if len(self._encoders) >= self.max_encoders:
            logger.warning(
                "Encoder registry full (%d live identities)", len(self._encoders)
            )
            raise EncoderRegistryFullError(
                f"All {self.max_encoders} encoder slots are in use."
            )

    def _evict_idle(self, now_ms: int):
        idle = [
            key
            for key, encoder in self._encoders.items()
            if _is_idle(encoder, now_ms)
        ]
        for key in idle:
            del self._encoders[key]
        logger.debug("Evicted %d idle encoders", len(idle))

    def __len__(self) -> int:
        return len(self._encoders)
