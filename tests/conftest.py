"""Shared test fixtures."""

from pathlib import Path

import pytest

from zoomreel.timeline import TimelineModel, load_timeline

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_timeline_path() -> Path:
    return FIXTURES_DIR / "sample_timeline.json"


@pytest.fixture
def sample_timeline(sample_timeline_path) -> TimelineModel:
    return load_timeline(sample_timeline_path)


@pytest.fixture
def model() -> TimelineModel:
    """An untouched 10-second 1080p recording with audio."""
    return TimelineModel(duration=10.0, width=1920, height=1080, has_audio=True)
