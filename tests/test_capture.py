"""Tests for click-to-zoom capture during recording."""

import pytest

from zoomreel.capture import CaptureState, ZoomCapture, event_to_region
from zoomreel.errors import CaptureStateError
from zoomreel.models import BoundingBox, Point, ZoomEvent
from zoomreel.timeline import TimelineModel

SURFACE = BoundingBox(left=0, top=0, width=1000, height=500)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def capture():
    return ZoomCapture(SURFACE, clock=FakeClock())


class TestEventToRegion:
    def test_fixed_length_and_scale(self):
        region = event_to_region(ZoomEvent(timestamp=1500, x=30, y=40))
        assert (region.start_time, region.end_time, region.scale) == (1.5, 5.5, 1.5)
        assert region.center == Point(30, 40)

    def test_clamped_to_duration(self):
        region = event_to_region(ZoomEvent(timestamp=8000, x=0, y=0), duration=10.0)
        assert region.end_time == 10.0

    def test_past_end_dropped(self):
        assert event_to_region(ZoomEvent(timestamp=10000, x=0, y=0), duration=10.0) is None


class TestZoomCapture:
    def test_rapid_clicks_stay_separate(self, capture):
        capture.start()
        capture.click(100, 50, timestamp_ms=1000)
        capture.click(900, 450, timestamp_ms=1200)
        events = capture.stop()

        assert events == [ZoomEvent(1000, 10.0, 10.0), ZoomEvent(1200, 90.0, 90.0)]
        regions = capture.regions()
        assert [r.start_time for r in regions] == [1.0, 1.2]
        assert [r.end_time for r in regions] == pytest.approx([5.0, 5.2])
        assert all(r.scale == 1.5 for r in regions)

    def test_clock_timestamps(self):
        clock = FakeClock()
        capture = ZoomCapture(SURFACE, clock=clock)
        capture.start()
        clock.now += 2.5
        event = capture.click(500, 250)
        assert event.timestamp == pytest.approx(2500.0)

    def test_clicks_ignored_unless_recording(self, capture):
        assert capture.click(10, 10, timestamp_ms=0) is None
        capture.start()
        capture.stop()
        assert capture.click(10, 10, timestamp_ms=0) is None
        assert capture.events == []

    def test_click_outside_surface_clamped(self, capture):
        capture.start()
        event = capture.click(-50, 600, timestamp_ms=0)
        assert (event.x, event.y) == (0.0, 100.0)

    def test_state_errors(self, capture):
        with pytest.raises(CaptureStateError):
            capture.stop()
        capture.start()
        with pytest.raises(CaptureStateError):
            capture.start()
        with pytest.raises(CaptureStateError):
            capture.commit(TimelineModel(duration=5.0, width=640, height=480))
        capture.stop()
        assert capture.state is CaptureState.STOPPED

    def test_commit_inserts_sorted_and_drops_late_clicks(self, capture):
        model = TimelineModel(duration=6.0, width=1920, height=1080)
        capture.start()
        capture.click(500, 250, timestamp_ms=3000)
        capture.click(500, 250, timestamp_ms=500)
        capture.click(500, 250, timestamp_ms=7000)
        capture.stop()

        regions = capture.commit(model)
        assert [r.start_time for r in model.zoom_regions] == [0.5, 3.0]
        assert model.zoom_regions[1].end_time == 6.0
        assert regions == model.zoom_regions

    def test_commit_only_once(self, capture):
        model = TimelineModel(duration=10.0, width=1920, height=1080)
        capture.start()
        capture.click(500, 250, timestamp_ms=1000)
        capture.stop()
        capture.commit(model)

        assert capture.state is CaptureState.COMMITTED
        with pytest.raises(CaptureStateError):
            capture.commit(model)
        assert len(model.zoom_regions) == 1
