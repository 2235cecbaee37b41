"""Detection value types.

All coordinates are in the pixel space of the frame a detection was computed
from. Scaling to a display surface is the overlay's job.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from facewatch.errors import InvalidDetectionError

if TYPE_CHECKING:
    from collections.abc import Iterable

    import numpy as np
    from numpy.typing import NDArray


@dataclass(frozen=True)
class FrameSize:
    """Native pixel dimensions of a frame."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Frame size must be positive, got {self.width}x{self.height}")


@dataclass(frozen=True, eq=False)
class Frame:
    """Read-only handle to one frame of pixel data.

    ``image`` is an HxWx3 RGB uint8 array flagged as non-writeable.
    """

    image: NDArray[np.uint8] = field(repr=False)
    size: FrameSize
    frame_id: int


@dataclass(frozen=True)
class Detection:
    """A single face bounding box with its confidence score."""

    x: float
    y: float
    width: float
    height: float
    confidence: float

    def __post_init__(self) -> None:
        values = (self.x, self.y, self.width, self.height, self.confidence)
        if not all(math.isfinite(v) for v in values):
            raise InvalidDetectionError(f"Detection values must be finite: {values}")
        if self.x < 0 or self.y < 0:
            raise InvalidDetectionError(f"Detection offset must be non-negative: ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise InvalidDetectionError(f"Detection extent must be positive: {self.width}x{self.height}")
        if not 0.0 <= self.confidence <= 1.0:
            raise InvalidDetectionError(f"Confidence must be within [0, 1]: {self.confidence}")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def fits(self, size: FrameSize) -> bool:
        """Return True if the box lies entirely inside a frame of ``size``."""
        return self.right <= size.width and self.bottom <= size.height

    def clamp_to(self, size: FrameSize) -> Detection | None:
        """Return this box clipped to ``size``, or None if nothing remains inside."""
        if self.fits(size):
            return self
        x = min(self.x, float(size.width))
        y = min(self.y, float(size.height))
        width = min(self.right, float(size.width)) - x
        height = min(self.bottom, float(size.height)) - y
        if width <= 0 or height <= 0:
            return None
        return Detection(x=x, y=y, width=width, height=height, confidence=self.confidence)

    @classmethod
    def from_corners(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        confidence: float,
        size: FrameSize,
    ) -> Detection | None:
        """Build a detection from corner coordinates, clipping them to ``size``.

        Returns None when the clipped box is empty.
        """
        left = min(max(0.0, float(x1)), float(size.width))
        top = min(max(0.0, float(y1)), float(size.height))
        right = min(max(0.0, float(x2)), float(size.width))
        bottom = min(max(0.0, float(y2)), float(size.height))
        if right - left <= 0 or bottom - top <= 0:
            return None
        return cls(
            x=left,
            y=top,
            width=right - left,
            height=bottom - top,
            confidence=min(max(0.0, float(confidence)), 1.0),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "confidence": self.confidence,
        }


def clamp_batch(detections: Iterable[Detection], size: FrameSize) -> list[Detection]:
    """Clip every detection to ``size`` and drop the ones left empty."""
    clamped: list[Detection] = []
    for detection in detections:
        fitted = detection.clamp_to(size)
        if fitted is not None:
            clamped.append(fitted)
    return clamped
