from typing import Optional

from pydantic import BaseModel, Field, model_validator

from flakeid.core.config import settings
from flakeid.utils.layout import ClockConfig, Layout, build_layout
from flakeid.utils.parser import DecodeResult, ParsedId
from flakeid.utils.presets import Preset


class LayoutSpec(BaseModel):
    """Request model for a custom bit layout.

    Args:
        timestamp_bits (int): Width of the timestamp field.
        node_primary_bits (int): Width of the primary node field.
        node_secondary_bits (int): Width of the secondary node field.
        sequence_bits (int): Width of the sequence field.
    """

    timestamp_bits: int = Field(..., description="Timestamp field width", example=41)
    node_primary_bits: int = Field(
        ..., description="Primary node field width", example=5
    )
    node_secondary_bits: int = Field(
        ..., description="Secondary node field width", example=5
    )
    sequence_bits: int = Field(..., description="Sequence field width", example=12)

    def to_layout(self) -> Layout:
        return build_layout(
            self.timestamp_bits,
            self.node_primary_bits,
            self.node_secondary_bits,
            self.sequence_bits,
        )


class ClockSpec(BaseModel):
    """Request model for a custom clock.

    Args:
        epoch_ms (int): Epoch in milliseconds since the Unix epoch.
        tick_ms (int): Milliseconds per timestamp unit.
    """

    epoch_ms: int = Field(
        ..., description="Epoch in ms since the Unix epoch", example=1288834974657
    )
    tick_ms: int = Field(1, description="Milliseconds per timestamp unit", example=1)

    def to_clock(self) -> ClockConfig:
        return ClockConfig(epoch_ms=self.epoch_ms, tick_ms=self.tick_ms)


class SchemeSelection(BaseModel):
    """Selects a preset, or a custom layout and clock that override it.

    Args:
        preset (Optional[Preset]): Named layout; defaults to the configured one.
        layout (Optional[LayoutSpec]): Custom layout overriding the preset's.
        clock (Optional[ClockSpec]): Custom clock overriding the preset's.
    """

    preset: Optional[Preset] = Field(
        None, description="Named layout preset", example="twitter"
    )
    layout: Optional[LayoutSpec] = Field(None, description="Custom bit layout")
    clock: Optional[ClockSpec] = Field(None, description="Custom epoch and tick")


class GenerateRequest(SchemeSelection):
    """Request model for generating a batch of IDs.

    Args:
        count (int): Number of IDs to generate.
        node_primary (Optional[int]): Primary node id; defaults to settings.
        node_secondary (Optional[int]): Secondary node id; defaults to settings.
    """

    count: int = Field(1, description="Number of IDs to generate", example=3)
    node_primary: Optional[int] = Field(
        None, description="Primary node id (e.g. datacenter)", example=1
    )
    node_secondary: Optional[int] = Field(
        None, description="Secondary node id (e.g. worker)", example=2
    )

    @model_validator(mode="after")
    def validate_count(self):
        """Keep the batch size within the configured bound."""

        if not 1 <= self.count <= settings.MAX_BATCH_COUNT:
            raise ValueError(
                f"count must be between 1 and {settings.MAX_BATCH_COUNT}."
            )
        return self


class ParseRequest(SchemeSelection):
    """Request model for decoding newline-separated IDs.

    Args:
        content (str): One decimal ID per line; blank lines are ignored.
    """

    content: str = Field(
        ...,
        description="Newline-separated decimal IDs",
        example="1724603154034098176\n1724603154034098177",
    )


class ParsedIdOut(BaseModel):
    """Response model for one decoded ID. Integers wider than 53 bits are strings."""

    id: str
    timestamp_ms: str
    timestamp_iso: str
    timestamp_offset: str
    node_primary: int
    node_secondary: int
    sequence: int
    total_bits_exceeded: bool
    timestamp_field_exceeded: bool

    @classmethod
    def from_parsed(cls, parsed: ParsedId) -> "ParsedIdOut":
        record = parsed.as_record()
        record["timestamp_ms"] = str(record["timestamp_ms"])
        record["timestamp_offset"] = str(record["timestamp_offset"])
        return cls(**record)


class DecodeResultOut(BaseModel):
    """Response model for one line of a batch decode."""

    line: int
    text: str
    parsed: Optional[ParsedIdOut] = None
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: DecodeResult) -> "DecodeResultOut":
        return cls(
            line=result.line,
            text=result.text,
            parsed=ParsedIdOut.from_parsed(result.parsed) if result.parsed else None,
            error=result.error,
        )
