"""Configurable Snowflake-style ID generation and parsing."""

from flakeid.utils.layout import ClockConfig, Layout, build_layout
from flakeid.utils.parser import DecodeResult, OverflowFlags, ParsedId, decode, decode_batch
from flakeid.utils.presets import Preset
from flakeid.utils.snowflake import GeneratorState, IdEncoder

__all__ = [
    "ClockConfig",
    "DecodeResult",
    "GeneratorState",
    "IdEncoder",
    "Layout",
    "OverflowFlags",
    "ParsedId",
    "Preset",
    "build_layout",
    "decode",
    "decode_batch",
]
