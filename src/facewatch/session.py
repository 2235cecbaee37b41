"""Caller-facing controls for the demo.

``DetectionSession`` pairs frame sources with the scheduler the way the UI
expects: a live camera whose detection can be toggled, or an uploaded image
analysed on demand. Every switch goes through ``scheduler.stop()`` followed by a
fresh ``scheduler.start()``.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from facewatch.capture.camera import OpenCVCamera
from facewatch.capture.image_loader import load_image_source
from facewatch.errors import AcquisitionFailedError, SchedulerStateError
from facewatch.pipeline.scheduler import DetectionScheduler
from facewatch.render.overlay import CAMERA_BOX_COLOR, IMAGE_BOX_COLOR, render_overlay

if TYPE_CHECKING:
    from collections.abc import Callable

    from facewatch.capture.camera import CaptureDevice
    from facewatch.config import Settings
    from facewatch.errors import DetectionFailedError
    from facewatch.ml.face_detector import FaceDetector
    from facewatch.pipeline.detection import Detection, FrameSize
    from facewatch.pipeline.frame_source import FrameSource
    from facewatch.pipeline.scheduler import Activation

logger = logging.getLogger(__name__)


class SessionMode(StrEnum):
    CAMERA = "camera"
    IMAGE = "image"


@dataclass(frozen=True)
class Notification:
    """A transient message for the user, like a toast."""

    level: str
    message: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SessionStatus:
    mode: SessionMode | None
    camera_active: bool
    detecting: bool
    native_size: FrameSize | None
    detections: list[Detection]


class DetectionSession:
    """Owns the current source, the scheduler and the latest detections."""

    def __init__(
        self,
        settings: Settings,
        detector: FaceDetector,
        *,
        camera_factory: Callable[[], CaptureDevice] | None = None,
        scheduler: DetectionScheduler | None = None,
    ) -> None:
        self._settings = settings
        self._detector = detector
        self._camera_factory = camera_factory or (lambda: OpenCVCamera.from_settings(settings))
        self.scheduler = scheduler or DetectionScheduler.from_settings(settings)
        self._camera: CaptureDevice | None = None
        self._source: FrameSource | None = None
        self._mode: SessionMode | None = None
        self._detections: list[Detection] = []
        self._notifications: deque[Notification] = deque(maxlen=settings.notification_history)

    # -- State --------------------------------------------------------------

    @property
    def detector(self) -> FaceDetector:
        return self._detector

    @property
    def mode(self) -> SessionMode | None:
        return self._mode

    @property
    def camera_active(self) -> bool:
        return self._camera is not None and self._camera.is_open

    @property
    def detections(self) -> list[Detection]:
        return list(self._detections)

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    def status(self) -> SessionStatus:
        native_size = None
        if self._source is not None and self._source.is_ready():
            native_size = self._source.native_size()
        return SessionStatus(
            mode=self._mode,
            camera_active=self.camera_active,
            detecting=self.scheduler.activation is not None,
            native_size=native_size,
            detections=self.detections,
        )

    # -- Camera -------------------------------------------------------------

    def start_camera(self) -> None:
        """Open the camera and make it the current source.

        Raises:
            AcquisitionFailedError: If the camera cannot be opened.
        """
        if self.camera_active:
            return
        self._switch_off()

        camera = self._camera_factory()
        try:
            camera.open()
        except AcquisitionFailedError:
            logger.exception("Error accessing camera")
            self._notify("error", "Failed to access camera. Please check permissions.")
            raise

        self._camera = camera
        self._source = camera.source
        self._mode = SessionMode.CAMERA
        self._notify("success", "Camera started successfully")

    def stop_camera(self) -> None:
        """Stop detection, release the camera and clear the detections."""
        if self._mode is not SessionMode.CAMERA:
            return
        self._switch_off()
        self._notify("info", "Camera stopped")

    def start_detection(self) -> None:
        """Start detection on the current source.

        On the live camera this starts periodic detection. On a loaded image
        it runs one fresh analysis; use ``analyze()`` to wait for its result.

        Raises:
            SchedulerStateError: If neither the camera nor an image is active.
        """
        if self._source is None or (self._mode is SessionMode.CAMERA and not self.camera_active):
            raise SchedulerStateError("Start the camera or load an image before starting detection")
        if self.scheduler.activation is not None:
            return
        if self._mode is SessionMode.IMAGE:
            self._start_image_analysis(self._source)
            return
        self.scheduler.start(
            self._source,
            self._detector,
            self._on_result,
            on_error=self._on_error,
        )

    def stop_detection(self) -> None:
        self.scheduler.stop()

    # -- Image --------------------------------------------------------------

    def load_image(self, data: bytes, name: str = "image") -> None:
        """Replace the current source with an uploaded image without detecting.

        Raises:
            AcquisitionFailedError: If the upload cannot be decoded.
        """
        try:
            source = load_image_source(data, self._settings, name=name)
        except AcquisitionFailedError:
            self._notify("error", "Please select a valid image file")
            raise

        self._switch_off()
        self._source = source
        self._mode = SessionMode.IMAGE
        self._notify("success", "Image uploaded successfully")

    async def analyze(self) -> list[Detection]:
        """Run detection once on the loaded image and return the batch.

        Can be repeated on the same image. An analysis already in progress is
        superseded by the new one.

        Raises:
            SchedulerStateError: If no image is loaded.
        """
        if self._mode is not SessionMode.IMAGE or self._source is None:
            raise SchedulerStateError("Load an image before analyzing it")
        self.scheduler.stop()
        activation, delivered = self._start_image_analysis(self._source)
        await activation.wait()
        if not delivered:
            # Superseded by another start/stop before the result arrived.
            return []
        return delivered[-1]

    async def analyze_image(self, data: bytes, name: str = "image") -> list[Detection]:
        """Load an uploaded image and analyze it once.

        Raises:
            AcquisitionFailedError: If the upload cannot be decoded.
        """
        self.load_image(data, name=name)
        return await self.analyze()

    # -- Rendering / reset --------------------------------------------------

    def render_overlay(self, display: FrameSize | None = None) -> bytes | None:
        """PNG of the current frame with the latest boxes, or None without a frame."""
        if self._source is None or not self._source.is_ready():
            return None
        color = IMAGE_BOX_COLOR if self._mode is SessionMode.IMAGE else CAMERA_BOX_COLOR
        return render_overlay(self._source.current_frame(), self._detections, display=display, color=color)

    def reset(self) -> None:
        """Stop everything and forget the current source and detections."""
        self._switch_off()

    async def aclose(self) -> None:
        await self.scheduler.aclose()
        self._switch_off()

    # -- Internal -----------------------------------------------------------

    def _switch_off(self) -> None:
        self.scheduler.stop()
        if self._camera is not None:
            self._camera.close()
            self._camera = None
        self._source = None
        self._mode = None
        self._detections = []

    def _start_image_analysis(self, source: FrameSource) -> tuple[Activation, list[list[Detection]]]:
        delivered: list[list[Detection]] = []
        failures: list[DetectionFailedError] = []

        def on_error(error: DetectionFailedError) -> None:
            failures.append(error)
            self._on_error(error)

        def on_result(detections: list[Detection]) -> None:
            delivered.append(detections)
            self._on_result(detections)
            if not failures:
                count = len(detections)
                self._notify("success", f"Detected {count} face{'s' if count != 1 else ''}")

        self._notify("info", "Analyzing image for faces...")
        activation = self.scheduler.start(source, self._detector, on_result, on_error=on_error)
        return activation, delivered

    def _on_result(self, detections: list[Detection]) -> None:
        self._detections = list(detections)

    def _on_error(self, error: DetectionFailedError) -> None:
        self._notify("error", "Face detection failed. Please try again.")
        logger.debug("Detection failure reported to session: %s", error.reason)

    def _notify(self, level: str, message: str) -> None:
        self._notifications.append(Notification(level=level, message=message))
        logger.info("[%s] %s", level, message)
