from enum import Enum

from flakeid.utils.layout import ClockConfig, Layout, build_layout


class Preset(str, Enum):
    """Well-known identifier layouts.

    - twitter: datacenter/worker split, millisecond ticks from 2010-11-04.
    - sonyflake: 16-bit machine id, 10 ms ticks from 2014-09-01.
    - discord: worker/process split, millisecond ticks from 2015-01-01.
    - instagram: 13-bit logical shard, millisecond ticks from 2011-08-24.
    """

    TWITTER = "twitter"
    SONYFLAKE = "sonyflake"
    DISCORD = "discord"
    INSTAGRAM = "instagram"

    @property
    def layout(self) -> Layout:
        bits, _, _ = _PRESET_VALUES[self]
        return build_layout(*bits)

    @property
    def clock(self) -> ClockConfig:
        _, epoch_ms, tick_ms = _PRESET_VALUES[self]
        return ClockConfig(epoch_ms=epoch_ms, tick_ms=tick_ms)

    def describe(self) -> dict:
        return {
            "name": self.value,
            "layout": self.layout.as_dict(),
            "clock": self.clock.as_dict(),
        }


# (timestamp, node_primary, node_secondary, sequence) bits, epoch ms, tick ms
_PRESET_VALUES = {
    Preset.TWITTER: ((41, 5, 5, 12), 1288834974657, 1),
    Preset.SONYFLAKE: ((39, 0, 16, 8), 1409529600000, 10),
    Preset.DISCORD: ((42, 5, 5, 12), 1420070400000, 1),
    Preset.INSTAGRAM: ((41, 13, 0, 10), 1314220021721, 1),
}
