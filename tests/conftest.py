"""Shared pytest fixtures for ambiance_core tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import soundfile as sf

from ambiance_core.models import Area, ChannelLayout, Container
from ambiance_core.timeline import Timeline

from factories import SAMPLE_RATE, dc, make_items, sine

# ============================================================================
# Timeline Fixtures
# ============================================================================


@pytest.fixture
def timeline() -> Timeline:
    """Timeline with a 100 Hz sine, a DC source and a stereo sine registered."""
    host = Timeline()
    host.register_source("sine.wav", sine(100.0, 20.0), SAMPLE_RATE)
    host.register_source("dc.wav", dc(0.5, 20.0), SAMPLE_RATE)
    host.register_source("stereo.wav", sine(100.0, 20.0, channels=2), SAMPLE_RATE)
    return host


@pytest.fixture
def wav_file(tmp_path: Path) -> Path:
    """A 2 second mono 48 kHz sine written to disk."""
    path = tmp_path / "tone.wav"
    sf.write(str(path), sine(100.0, 2.0, sample_rate=48000), 48000)
    return path


# ============================================================================
# Container Fixtures
# ============================================================================


@pytest.fixture
def mono_container() -> Container:
    """Mono container with four 3 second items."""
    return Container(name="Birds", items=make_items(4), channel_layout=ChannelLayout.MONO)


@pytest.fixture
def area_container() -> Container:
    """Container of 12 pool entries: 3 items with 3 areas each plus 3 plain items."""
    items = make_items(6, length=6.0)
    for item in items[:3]:
        item.areas = [Area(0.0, 2.0, "a"), Area(2.0, 4.0, "b"), Area(4.0, 6.0, "c")]
    return Container(name="Wind", items=items, channel_layout=ChannelLayout.MONO)
