"""ZoomReel: timeline effects for screen recordings with WYSIWYG export."""

__version__ = "0.1.0"
