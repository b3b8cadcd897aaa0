"""Live preview: turns the timeline plus a playback position into a transform.

Runs on every playback time update, so it stays a plain loop over the model
with no intermediate collections when nothing is active.
"""

from zoomreel.models import IDENTITY, PreviewFrame, Transform
from zoomreel.timeline import TimelineModel

_NO_OVERLAYS: tuple = ()
_IDLE_FRAME = PreviewFrame(transform=IDENTITY, active_overlays=_NO_OVERLAYS)


def active_zoom_index(model: TimelineModel, current_time: float) -> int | None:
    """Index of the first zoom region containing ``current_time``, if any.

    First match in array order wins when regions overlap; the compiled
    export gates its zoom stages the same way.
    """
    for i, region in enumerate(model.zoom_regions):
        if region.start_time <= current_time <= region.end_time:
            return i
    return None


def evaluate(model: TimelineModel, current_time: float) -> PreviewFrame:
    """Return the transform and text overlays to show at ``current_time``."""
    index = active_zoom_index(model, current_time)
    if index is None:
        transform = IDENTITY
    else:
        region = model.zoom_regions[index]
        # Re-center ``center`` under a scale() anchored at the element center.
        transform = Transform(
            scale=region.scale,
            translate_x_pct=50.0 - region.center.x,
            translate_y_pct=50.0 - region.center.y,
        )

    overlays = _NO_OVERLAYS
    for overlay in model.text_overlays:
        if overlay.start_time <= current_time <= overlay.end_time:
            overlays = overlays + (overlay,)

    if transform is IDENTITY and overlays is _NO_OVERLAYS:
        return _IDLE_FRAME
    return PreviewFrame(transform=transform, active_overlays=overlays)
