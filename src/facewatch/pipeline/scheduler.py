"""Detection scheduler.

Drives a ``FaceDetector`` against a ``FrameSource`` on the event loop:

    start() -> timer task (continuous) or one-shot runner (single shot)
            -> _tick() -> detection task -> on_result()

At most one detection call is in flight per scheduler. Every ``start()`` and
``stop()`` bumps the activation id; a detection call remembers the id it was
issued under and its result is only delivered if that id is still current.
``stop()`` therefore never has to abort a running detector: a late result is
simply dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from facewatch.errors import DetectionFailedError, SchedulerStateError, SourceNotReadyError
from facewatch.pipeline.detection import clamp_batch
from facewatch.pipeline.frame_source import SourceKind

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from facewatch.config import Settings
    from facewatch.ml.face_detector import FaceDetector
    from facewatch.pipeline.detection import Detection, Frame
    from facewatch.pipeline.frame_source import FrameSource

    ResultCallback = Callable[[list[Detection]], None]
    ErrorCallback = Callable[[DetectionFailedError], None]

logger = logging.getLogger(__name__)

DEFAULT_CADENCE_SECONDS: float = 0.5


class SchedulerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class SchedulerStats:
    """Counters over the lifetime of a scheduler instance."""

    ticks: int = 0
    issued: int = 0
    skipped_busy: int = 0
    skipped_not_ready: int = 0
    delivered: int = 0
    discarded: int = 0
    failed: int = 0


@dataclass
class Activation:
    """One start()..stop() session of a scheduler."""

    id: int
    mode: SourceKind
    source: FrameSource
    detector: FaceDetector
    on_result: ResultCallback = field(repr=False)
    on_error: ErrorCallback | None = field(default=None, repr=False)
    _finished: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    async def wait(self) -> None:
        """Block until this activation is stopped or its single shot completes."""
        await self._finished.wait()

    def _finish(self) -> None:
        self._finished.set()


class DetectionScheduler:
    """Runs detections on a cadence with stale-result suppression."""

    def __init__(
        self,
        *,
        cadence: float = DEFAULT_CADENCE_SECONDS,
        detect_timeout: float | None = None,
        name: str = "detection",
    ) -> None:
        if cadence <= 0:
            raise ValueError("cadence must be positive")
        self.name = name
        self._default_cadence = cadence
        self._detect_timeout = detect_timeout
        self._state = SchedulerState.IDLE
        self._generation = 0
        self._activation: Activation | None = None
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._stats = SchedulerStats()

    @classmethod
    def from_settings(cls, settings: Settings) -> DetectionScheduler:
        return cls(cadence=settings.detection_interval, detect_timeout=settings.detect_timeout)

    # -- Public API ---------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def activation(self) -> Activation | None:
        """The current activation, or None when no session is running."""
        return self._activation

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    def start(
        self,
        source: FrameSource,
        detector: FaceDetector,
        on_result: ResultCallback,
        *,
        cadence: float | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Activation:
        """Begin detecting on ``source``. Must be called from the event loop.

        Continuous sources are sampled every ``cadence`` seconds until
        ``stop()``; single-shot sources are read once and the scheduler
        returns to idle by itself.

        Raises:
            SchedulerStateError: If already running, or if a single-shot
                source is not ready or given a cadence.
        """
        if self._state is SchedulerState.RUNNING:
            raise SchedulerStateError(f"Scheduler {self.name!r} is already running; call stop() first")

        if source.kind is SourceKind.SINGLE_SHOT:
            if cadence is not None:
                raise SchedulerStateError("Single-shot sources are read once; cadence does not apply")
            if not source.is_ready():
                raise SchedulerStateError(f"Single-shot source {source.name!r} is not ready")
            interval = 0.0
        else:
            interval = self._default_cadence if cadence is None else cadence
            if interval <= 0:
                raise ValueError("cadence must be positive")

        loop = asyncio.get_running_loop()
        self._generation += 1
        activation = Activation(
            id=self._generation,
            mode=source.kind,
            source=source,
            detector=detector,
            on_result=on_result,
            on_error=on_error,
        )
        self._activation = activation
        self._state = SchedulerState.RUNNING
        self._idle.clear()

        if activation.mode is SourceKind.CONTINUOUS:
            runner = self._run_timer(activation, interval)
        else:
            runner = self._run_single_shot(activation)
        self._timer = loop.create_task(runner, name=f"{self.name}-activation-{activation.id}")
        self._timer.add_done_callback(self._log_runner_failure)

        logger.info(
            "Detection started (activation=%d, mode=%s, source=%s, detector=%s%s)",
            activation.id,
            activation.mode,
            source.name,
            detector.model_name,
            f", cadence={interval:.3f}s" if interval else "",
        )
        return activation

    def stop(self) -> None:
        """Stop the current activation. Safe to call in any state.

        No result callback fires for the stopped activation after this
        returns. A call still in flight is left to finish and its result is
        discarded.
        """
        if self._state is not SchedulerState.RUNNING:
            return

        activation = self._activation
        self._generation += 1
        self._activation = None
        self._cancel_timer()

        if self._in_flight is not None:
            self._state = SchedulerState.STOPPING
        else:
            self._set_idle()

        if activation is not None:
            activation._finish()
            logger.info("Detection stopped (activation=%d, state=%s)", activation.id, self._state)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until the scheduler reaches the idle state."""
        await asyncio.wait_for(self._idle.wait(), timeout=timeout)

    async def aclose(self) -> None:
        """Stop and cancel any in-flight call. Used at shutdown."""
        self.stop()
        task = self._in_flight
        if task is not None:
            task.cancel()
            await asyncio.wait({task})

    # -- Internal -----------------------------------------------------------

    async def _run_timer(self, activation: Activation, interval: float) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            # Missed periods are dropped rather than fired back to back.
            while next_tick <= loop.time():
                next_tick += interval
            self._tick(activation)

    async def _run_single_shot(self, activation: Activation) -> None:
        stale = self._in_flight
        if stale is not None:
            await asyncio.wait({stale})

        task = self._tick(activation)
        if task is not None:
            await asyncio.wait({task})

        if activation.id == self._generation:
            self._activation = None
            self._timer = None
            self._set_idle()
            activation._finish()
            logger.debug("Single-shot activation %d complete", activation.id)

    def _tick(self, activation: Activation) -> asyncio.Task[None] | None:
        self._stats.ticks += 1
        if self._in_flight is not None:
            self._stats.skipped_busy += 1
            logger.debug("Skipping tick: detection still in flight (activation=%d)", activation.id)
            return None

        try:
            frame = activation.source.current_frame()
        except SourceNotReadyError:
            self._stats.skipped_not_ready += 1
            logger.debug("Skipping tick: source %s not ready", activation.source.name)
            return None

        task = asyncio.get_running_loop().create_task(
            self._detect(activation, frame),
            name=f"{self.name}-detect-{activation.id}-{frame.frame_id}",
        )
        self._in_flight = task
        self._stats.issued += 1
        return task

    async def _detect(self, activation: Activation, frame: Frame) -> None:
        failure: DetectionFailedError | None = None
        try:
            detections = await self._call_detector(activation.detector, frame)
        except DetectionFailedError as exc:
            failure = exc
            detections = []
        finally:
            self._in_flight = None
            if self._state is SchedulerState.STOPPING:
                self._set_idle()

        if activation.id != self._generation:
            self._stats.discarded += 1
            logger.debug(
                "Discarding stale result from activation %d (current=%d)",
                activation.id,
                self._generation,
            )
            return

        if failure is not None:
            self._stats.failed += 1
            logger.warning("Face detection failed: %s", failure.reason)
            if activation.on_error is not None:
                try:
                    activation.on_error(failure)
                except Exception:
                    logger.exception("Error callback raised")

        self._stats.delivered += 1
        try:
            activation.on_result(clamp_batch(detections, frame.size))
        except Exception:
            logger.exception("Result callback raised")

    async def _call_detector(self, detector: FaceDetector, frame: Frame) -> Sequence[Detection]:
        try:
            if self._detect_timeout is None:
                return list(await detector.detect(frame))
            return list(await asyncio.wait_for(detector.detect(frame), timeout=self._detect_timeout))
        except DetectionFailedError:
            raise
        except TimeoutError as exc:
            raise DetectionFailedError(f"detector timed out after {self._detect_timeout}s") from exc
        except Exception as exc:
            raise DetectionFailedError(str(exc) or type(exc).__name__) from exc

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_idle(self) -> None:
        self._state = SchedulerState.IDLE
        self._idle.set()

    @staticmethod
    def _log_runner_failure(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduler runner %s crashed", task.get_name(), exc_info=exc)
