"""Exception types raised across ZoomReel."""


class ZoomReelError(Exception):
    pass


class ValidationError(ZoomReelError, ValueError):
    """A timeline edit violates a bound. The model is left unchanged."""

    def __init__(self, field: str, bound: str, value=None):
        self.field = field
        self.bound = bound
        self.value = value
        detail = f" (got {value!r})" if value is not None else ""
        super().__init__(f"{field} must satisfy {bound}{detail}")


class InvalidTimelineError(ZoomReelError, ValueError):
    """The timeline is valid field-by-field but compiles to a degenerate program."""
    pass


class TranscodeError(ZoomReelError, RuntimeError):
    """The transcoding engine failed; ``diagnostics`` is its output verbatim."""

    def __init__(self, diagnostics: str, returncode: int | None = None):
        self.diagnostics = diagnostics
        self.returncode = returncode
        super().__init__(diagnostics or f"transcode failed (rc={returncode})")


class ConcurrentExportError(ZoomReelError, RuntimeError):
    pass


class CaptureStateError(ZoomReelError, RuntimeError):
    pass
