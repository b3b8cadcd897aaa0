"""Recording-time zoom capture.

While a recording runs, each click on the capture surface becomes a
ZoomEvent. When the recording stops, the events turn into fixed-length
zoom regions on the timeline. Rapid clicks are kept as separate, possibly
overlapping regions; overlap is resolved at render time.
"""

import enum
import logging
import time
from typing import Callable

from zoomreel.coords import to_normalized
from zoomreel.errors import CaptureStateError
from zoomreel.models import BoundingBox, Point, ZoomEvent, ZoomRegion
from zoomreel.timeline import TimelineModel

logger = logging.getLogger(__name__)

FIXED_ZOOM_DURATION = 4.0
FIXED_ZOOM_SCALE = 1.5


class CaptureState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    COMMITTED = "committed"


def event_to_region(event: ZoomEvent, duration: float | None = None) -> ZoomRegion | None:
    """Convert a click into its zoom region, clamped to ``duration``.

    Returns None when the click lands at or after the end of the media.
    """
    start = event.timestamp / 1000.0
    end = start + FIXED_ZOOM_DURATION
    if duration is not None:
        if start >= duration:
            return None
        end = min(end, duration)
    return ZoomRegion(
        start_time=start,
        end_time=end,
        scale=FIXED_ZOOM_SCALE,
        center=Point(event.x, event.y),
    )


class ZoomCapture:
    """Idle -> Recording -> Stopped -> Committed state machine for click-to-zoom."""

    def __init__(
        self,
        surface: BoundingBox,
        intrinsic: tuple[int, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.surface = surface
        self.intrinsic = intrinsic
        self.clock = clock
        self.state = CaptureState.IDLE
        self.events: list[ZoomEvent] = []
        self._started_at: float | None = None

    def start(self) -> None:
        if self.state is not CaptureState.IDLE:
            raise CaptureStateError(f"Cannot start capture while {self.state.value}")
        self.events = []
        self._started_at = self.clock()
        self.state = CaptureState.RECORDING
        logger.info("Zoom capture started")

    def click(self, x: float, y: float, timestamp_ms: float | None = None) -> ZoomEvent | None:
        """Record a click at pointer position (x, y); ignored unless recording."""
        if self.state is not CaptureState.RECORDING:
            return None
        if timestamp_ms is None:
            timestamp_ms = (self.clock() - self._started_at) * 1000.0
        point = to_normalized(x, y, self.surface, self.intrinsic)
        event = ZoomEvent(timestamp=timestamp_ms, x=point.x, y=point.y)
        self.events.append(event)
        logger.debug("Zoom click at %.0fms (%.1f%%, %.1f%%)", event.timestamp, event.x, event.y)
        return event

    def stop(self) -> list[ZoomEvent]:
        if self.state is not CaptureState.RECORDING:
            raise CaptureStateError(f"Cannot stop capture while {self.state.value}")
        self.state = CaptureState.STOPPED
        logger.info("Zoom capture stopped with %d clicks", len(self.events))
        return list(self.events)

    def regions(self, duration: float | None = None) -> list[ZoomRegion]:
        """Zoom regions for the captured clicks, in timestamp order."""
        regions = []
        for event in sorted(self.events, key=lambda e: e.timestamp):
            region = event_to_region(event, duration)
            if region is None:
                logger.warning("Dropping zoom click at %.0fms: past end of media", event.timestamp)
                continue
            regions.append(region)
        return regions

    def commit(self, model: TimelineModel) -> list[ZoomRegion]:
        """Insert the captured regions into ``model`` and return them."""
        if self.state is not CaptureState.STOPPED:
            raise CaptureStateError(f"Cannot commit capture while {self.state.value}")
        regions = self.regions(model.duration)
        model.add_zoom_regions(regions)
        self.state = CaptureState.COMMITTED
        logger.info("Committed %d zoom regions", len(regions))
        return regions
