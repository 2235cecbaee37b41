"""Exception hierarchy shared by the detection pipeline and its collaborators."""

from __future__ import annotations


class FaceWatchError(Exception):
    """Base class for all FaceWatch errors."""


class SourceNotReadyError(FaceWatchError):
    """A frame was requested before the source knew its size or had a frame."""


class DetectionFailedError(FaceWatchError):
    """A detector rejected or raised while processing a frame."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AcquisitionFailedError(FaceWatchError):
    """A camera could not be opened or an uploaded image could not be decoded."""


class SchedulerStateError(FaceWatchError, RuntimeError):
    """A pipeline operation was invoked in a state that does not allow it."""


class InvalidDetectionError(FaceWatchError, ValueError):
    """Detection geometry or confidence is outside its valid range."""
