"""Frame sources: where the scheduler reads pixels from.

Two variants exist:

* ``ContinuousSource`` -- a live feed. A capture thread publishes frames with
  ``push()``; readers always see the most recent one. The native size follows
  the latest frame and is unknown until the first frame arrives.
* ``SingleShotSource`` -- a decoded still image. Every read returns the same
  ``Frame`` object.
"""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

import numpy as np

from facewatch.errors import SourceNotReadyError
from facewatch.pipeline.detection import Frame, FrameSize

if TYPE_CHECKING:
    from numpy.typing import NDArray


class SourceKind(StrEnum):
    CONTINUOUS = "continuous"
    SINGLE_SHOT = "single_shot"


def _freeze(image: NDArray[np.uint8]) -> tuple[NDArray[np.uint8], FrameSize]:
    array = np.asarray(image)
    if array.ndim != 3 or array.shape[2] != 3:
        raise ValueError(f"Expected an HxWx3 image, got shape {array.shape}")
    if array.dtype != np.uint8:
        raise ValueError(f"Expected a uint8 image, got {array.dtype}")
    if array.flags.writeable:
        array = array.view()
        array.flags.writeable = False
    return array, FrameSize(width=int(array.shape[1]), height=int(array.shape[0]))


class FrameSource(ABC):
    """Common read interface for continuous and single-shot sources."""

    kind: ClassVar[SourceKind]

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    def is_ready(self) -> bool:
        """Return True once native dimensions are known and a frame can be read."""

    @abstractmethod
    def native_size(self) -> FrameSize:
        """Return the native pixel size.

        Raises:
            SourceNotReadyError: If the source is not ready yet.
        """

    @abstractmethod
    def current_frame(self) -> Frame:
        """Return a handle to the current frame.

        Raises:
            SourceNotReadyError: If the source is not ready yet.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, ready={self.is_ready()})"


class ContinuousSource(FrameSource):
    """Latest-frame-wins holder for a live feed."""

    kind = SourceKind.CONTINUOUS

    def __init__(self, name: str = "camera") -> None:
        super().__init__(name)
        self._lock = threading.Lock()
        self._latest: Frame | None = None
        self._frame_ids = itertools.count(1)

    def push(self, image: NDArray[np.uint8]) -> Frame:
        """Publish a new live frame, replacing the previous one."""
        array, size = _freeze(image)
        with self._lock:
            frame = Frame(image=array, size=size, frame_id=next(self._frame_ids))
            self._latest = frame
        return frame

    def close(self) -> None:
        """Drop the current frame; the source is not ready until the next push."""
        with self._lock:
            self._latest = None

    def is_ready(self) -> bool:
        with self._lock:
            return self._latest is not None

    def native_size(self) -> FrameSize:
        return self.current_frame().size

    def current_frame(self) -> Frame:
        with self._lock:
            frame = self._latest
        if frame is None:
            raise SourceNotReadyError(f"No frame received yet from {self.name}")
        return frame


class SingleShotSource(FrameSource):
    """A still image read once per activation."""

    kind = SourceKind.SINGLE_SHOT

    def __init__(self, image: NDArray[np.uint8] | None = None, name: str = "image") -> None:
        super().__init__(name)
        self._frame: Frame | None = None
        if image is not None:
            self.load(image)

    def load(self, image: NDArray[np.uint8]) -> Frame:
        """Attach the decoded image. Replaces any previously loaded one."""
        array, size = _freeze(image)
        self._frame = Frame(image=array, size=size, frame_id=1)
        return self._frame

    def is_ready(self) -> bool:
        return self._frame is not None

    def native_size(self) -> FrameSize:
        return self.current_frame().size

    def current_frame(self) -> Frame:
        if self._frame is None:
            raise SourceNotReadyError(f"Image {self.name!r} has not finished loading")
        return self._frame
