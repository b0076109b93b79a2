"""Shared fixtures for flakeid tests."""

import pytest

from flakeid.utils.layout import ClockConfig, build_layout
from flakeid.utils.presets import Preset

FROZEN_NOW_MS = 1700000000000


@pytest.fixture
def twitter_layout():
    return Preset.TWITTER.layout


@pytest.fixture
def twitter_clock():
    return Preset.TWITTER.clock


@pytest.fixture
def sonyflake_layout():
    return Preset.SONYFLAKE.layout


@pytest.fixture
def sonyflake_clock():
    return Preset.SONYFLAKE.clock


@pytest.fixture
def tiny_layout():
    """Two sequence bits so rollover is reachable in a few calls."""
    return build_layout(10, 2, 2, 2)


@pytest.fixture
def tiny_clock():
    return ClockConfig(epoch_ms=FROZEN_NOW_MS - 100, tick_ms=1)
