"""Face detector capability and the reference random model.

The scheduler only talks to ``FaceDetector`` (async). Blocking models follow
the ``FaceModel`` protocol and are adapted with ``PooledFaceDetector``, which
runs them on the ``InferencePool`` and turns their raw boxes into clamped
``Detection`` values.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from facewatch.errors import DetectionFailedError
from facewatch.pipeline.detection import Detection

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from facewatch.config import Settings
    from facewatch.ml.inference import InferencePool
    from facewatch.pipeline.detection import Frame, FrameSize

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RawDetection:
    """Raw face detection result before conversion to a ``Detection``.

    Coordinates are ``[x1, y1, x2, y2]`` in pixel space of the input image.
    """

    bbox: NDArray[np.float32]
    score: float


class FaceDetector(Protocol):
    """Protocol for detectors the scheduler can drive."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    async def detect(self, frame: Frame) -> Sequence[Detection]:
        """Detect faces in a frame without modifying it.

        Raises:
            DetectionFailedError: If the frame could not be processed.
        """
        ...


class FaceModel(Protocol):
    """Protocol for blocking face detection models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def detect(self, image: NDArray[np.uint8]) -> list[RawDetection]:
        """Detect faces in an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            List of raw detections with bounding boxes and scores.
        """
        ...


class RandomFaceModel:
    """Placeholder model that reports 1-3 randomly placed faces.

    Box geometry follows the demo it stands in for: the top-left corner lands
    anywhere that leaves ~100 px of room, boxes are 80-140 px wide and
    100-180 px tall, and everything is clipped to the image. Passing
    ``fixed`` makes every call return exactly those boxes.
    """

    model_name = "random"

    def __init__(
        self,
        *,
        min_faces: int = 1,
        max_faces: int = 3,
        min_confidence: float = 0.7,
        seed: int | None = None,
        fixed: Sequence[Detection] | None = None,
    ) -> None:
        if max_faces < min_faces:
            raise ValueError("max_faces must be >= min_faces")
        if not 0.0 <= min_confidence < 1.0:
            raise ValueError("min_confidence must be within [0, 1)")
        self._min_faces = min_faces
        self._max_faces = max_faces
        self._min_confidence = min_confidence
        self._fixed = list(fixed) if fixed is not None else None
        self._rng = np.random.default_rng(seed)
        self._rng_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> RandomFaceModel:
        return cls(
            min_faces=settings.random_min_faces,
            max_faces=settings.random_max_faces,
            min_confidence=settings.random_min_confidence,
            seed=settings.random_seed,
        )

    def detect(self, image: NDArray[np.uint8]) -> list[RawDetection]:
        height, width = int(image.shape[0]), int(image.shape[1])
        if self._fixed is not None:
            return [
                RawDetection(
                    bbox=np.array([d.x, d.y, d.right, d.bottom], dtype=np.float32),
                    score=d.confidence,
                )
                for d in self._fixed
            ]

        with self._rng_lock:
            count = int(self._rng.integers(self._min_faces, self._max_faces + 1))
            draws = self._rng.random((count, 5))

        raw: list[RawDetection] = []
        for rx, ry, rw, rh, rc in draws:
            x = max(0.0, rx * (width - 100))
            y = max(0.0, ry * (height - 100))
            box_width = min(80 + rw * 60, width - x)
            box_height = min(100 + rh * 80, height - y)
            if box_width <= 0 or box_height <= 0:
                continue
            confidence = self._min_confidence + rc * (1.0 - self._min_confidence)
            raw.append(
                RawDetection(
                    bbox=np.array([x, y, x + box_width, y + box_height], dtype=np.float32),
                    score=float(confidence),
                )
            )
        return raw


class PooledFaceDetector:
    """Runs a blocking ``FaceModel`` on the inference pool."""

    def __init__(self, model: FaceModel, pool: InferencePool) -> None:
        self._model = model
        self._pool = pool

    @property
    def model_name(self) -> str:
        return self._model.model_name

    async def detect(self, frame: Frame) -> list[Detection]:
        try:
            raw = await self._pool.run(self._model.detect, frame.image)
        except TimeoutError as exc:
            raise DetectionFailedError("inference pool is saturated") from exc
        return to_detections(raw, frame.size)


def to_detections(raw: Sequence[RawDetection], size: FrameSize) -> list[Detection]:
    """Convert raw model boxes to detections clipped to ``size``."""
    detections: list[Detection] = []
    for item in raw:
        x1, y1, x2, y2 = (float(v) for v in item.bbox[:4])
        detection = Detection.from_corners(x1, y1, x2, y2, item.score, size)
        if detection is not None:
            detections.append(detection)
    return detections


def build_detector(settings: Settings, pool: InferencePool) -> FaceDetector:
    """Create the detector selected by ``settings.detector``."""
    if settings.detector == "random":
        model = RandomFaceModel.from_settings(settings)
    else:
        raise ValueError(f"Unknown detector: {settings.detector}")
    logger.info("Using face detector %s", model.model_name)
    return PooledFaceDetector(model, pool)
