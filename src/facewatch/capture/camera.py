"""Live camera capture.

``OpenCVCamera`` owns the capture device. A daemon thread reads frames,
converts them from BGR to RGB and publishes them into a ``ContinuousSource``.
The scheduler only ever sees the source.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Protocol

import cv2

from facewatch.errors import AcquisitionFailedError
from facewatch.pipeline.frame_source import ContinuousSource

if TYPE_CHECKING:
    from facewatch.config import Settings

logger = logging.getLogger(__name__)

READ_FAILURE_BACKOFF_SECONDS: float = 0.05
MAX_CONSECUTIVE_READ_FAILURES: int = 100
READER_JOIN_TIMEOUT_SECONDS: float = 2.0


class CaptureDevice(Protocol):
    """Protocol for anything that feeds a live ``ContinuousSource``."""

    @property
    def source(self) -> ContinuousSource:
        """The source frames are published into."""
        ...

    @property
    def is_open(self) -> bool:
        """True between a successful open() and close()."""
        ...

    def open(self) -> None:
        """Acquire the device and start publishing frames.

        Raises:
            AcquisitionFailedError: If the device cannot be opened.
        """
        ...

    def close(self) -> None:
        """Stop publishing frames and release the device."""
        ...

class OpenCVCamera:
    """Camera backed by ``cv2.VideoCapture``.

    The reader thread owns the capture handle once ``open()`` returns and
    releases it when it exits. ``close()`` waits a bounded time for that; a
    read that is still blocked finishes later and its frame is dropped.
    """

    def __init__(self, device: int = 0, width: int = 640, height: int = 480) -> None:
        self._device = device
        self._width = width
        self._height = height
        self._source = ContinuousSource(name=f"camera:{device}")
        self._cap: cv2.VideoCapture | None = None
        self._reader: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._publish_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenCVCamera:
        return cls(
            device=settings.camera_device,
            width=settings.camera_width,
            height=settings.camera_height,
        )

    @property
    def source(self) -> ContinuousSource:
        return self._source

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        if self._cap is not None:
            return

        cap = cv2.VideoCapture(self._device)
        if not cap.isOpened():
            cap.release()
            raise AcquisitionFailedError(f"Could not open camera device {self._device}")

        # Requested size is a hint; the source reports whatever the device delivers.
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        self._cap = cap
        # Each reader gets its own event so a reader left over from a slow
        # close() never resumes after a reopen.
        self._stop_event = threading.Event()
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(cap, self._stop_event),
            name=f"camera-reader-{self._device}",
            daemon=True,
        )
        self._reader.start()
        logger.info("Camera %s opened (requested %dx%d)", self._device, self._width, self._height)

    def close(self) -> None:
        if self._cap is None:
            return
        with self._publish_lock:
            self._stop_event.set()
        if self._reader is not None:
            self._reader.join(timeout=READER_JOIN_TIMEOUT_SECONDS)
            if self._reader.is_alive():
                logger.warning("Camera %s reader still blocked; it releases the device on exit", self._device)
            self._reader = None
        self._cap = None
        self._source.close()
        logger.info("Camera %s closed", self._device)

    def _read_loop(self, cap: cv2.VideoCapture, stop_event: threading.Event) -> None:
        failures = 0
        try:
            while not stop_event.is_set():
                ok, frame = cap.read()
                if not ok or frame is None:
                    failures += 1
                    if failures == MAX_CONSECUTIVE_READ_FAILURES:
                        logger.warning("Camera %s returned no frames %d times in a row", self._device, failures)
                    time.sleep(READ_FAILURE_BACKOFF_SECONDS)
                    continue
                failures = 0
                rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                with self._publish_lock:
                    if stop_event.is_set():
                        break
                    self._source.push(rgb)
        finally:
            cap.release()
            logger.debug("Camera %s device released", self._device)
