"""Exceptions raised by the render pipeline.

Every stage failure is a ``RenderError``. ``public_message`` is what
callers and pollers see; ``str(exc)`` may carry more detail and is only
logged server-side.
"""

from typing import List, Optional


class RenderError(Exception):
    """Base exception for all render pipeline failures."""

    stage: str = "internal"
    public_message: str = "Render failed due to an internal error"

    def __init__(self, message: Optional[str] = None, *, public_message: Optional[str] = None):
        self.message = message or self.__class__.public_message
        if public_message is not None:
            self.public_message = public_message
        elif message is not None:
            self.public_message = message
        super().__init__(self.message)


class JobValidationError(RenderError):
    """The render request is structurally incomplete. Raised before any I/O."""

    stage = "validation"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid render request: " + "; ".join(self.errors))


class AcquisitionError(RenderError):
    """A scene asset could not be downloaded."""

    stage = "downloading"

    def __init__(self, scene_index: int, kind: str, reason: str):
        self.scene_index = scene_index
        self.kind = kind
        self.reason = reason
        super().__init__(f"Failed to download {kind} for scene {scene_index}: {reason}")


class CompilationError(RenderError):
    """The transcoder command could not be built (catalog or contract gap)."""

    stage = "processing"

    def __init__(self, message: str):
        super().__init__(message, public_message="Render failed due to an internal error")


class TranscodeError(RenderError):
    """ffmpeg exited unsuccessfully. ``diagnostics`` holds its stderr verbatim."""

    stage = "rendering"

    def __init__(
        self,
        message: str,
        diagnostics: str = "",
        returncode: Optional[int] = None,
    ):
        self.diagnostics = diagnostics
        self.returncode = returncode
        super().__init__(message)


class TranscodeTimeout(TranscodeError):
    """ffmpeg exceeded the allowed run time and was killed."""


class UploadError(RenderError):
    """The rendered artifact could not be written to object storage."""

    stage = "uploading"


class InternalError(RenderError):
    """Anything unexpected. Wraps the original exception as ``__cause__``."""

    def __init__(self, message: str):
        super().__init__(message, public_message=RenderError.public_message)
