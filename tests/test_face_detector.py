"""Tests for the random face model and the pooled detector adapter."""

from __future__ import annotations

import asyncio
import threading

import numpy as np
import pytest

from facewatch.config import Settings
from facewatch.errors import DetectionFailedError
from facewatch.ml.face_detector import (
    PooledFaceDetector,
    RandomFaceModel,
    RawDetection,
    build_detector,
    to_detections,
)
from facewatch.ml.inference import InferencePool
from facewatch.pipeline.detection import Detection, FrameSize
from facewatch.pipeline.frame_source import SingleShotSource


def _image(width: int, height: int) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


class TestRandomFaceModel:
    @pytest.mark.parametrize(("width", "height"), [(640, 480), (1920, 1080), (120, 90), (50, 40)])
    def test_geometry_stays_inside_frame(self, width: int, height: int) -> None:
        model = RandomFaceModel(seed=1234)
        size = FrameSize(width, height)
        for _ in range(200):
            raw = model.detect(_image(width, height))
            for d in to_detections(raw, size):
                assert d.x >= 0
                assert d.y >= 0
                assert d.right <= width
                assert d.bottom <= height
                assert 0.0 <= d.confidence <= 1.0

    def test_face_count_and_confidence_range(self) -> None:
        model = RandomFaceModel(seed=7)
        for _ in range(200):
            raw = model.detect(_image(640, 480))
            assert 1 <= len(raw) <= 3
            assert all(0.7 <= r.score < 1.0 for r in raw)

    def test_seed_makes_output_reproducible(self) -> None:
        a = RandomFaceModel(seed=42).detect(_image(640, 480))
        b = RandomFaceModel(seed=42).detect(_image(640, 480))
        assert [r.bbox.tolist() for r in a] == [r.bbox.tolist() for r in b]

    def test_fixed_detections(self) -> None:
        face = Detection(x=100, y=50, width=120, height=140, confidence=0.85)
        raw = RandomFaceModel(fixed=[face]).detect(_image(640, 480))
        assert to_detections(raw, FrameSize(640, 480)) == [face]

    def test_rejects_bad_ranges(self) -> None:
        with pytest.raises(ValueError):
            RandomFaceModel(min_faces=3, max_faces=1)
        with pytest.raises(ValueError):
            RandomFaceModel(min_confidence=1.0)

    def test_from_settings(self) -> None:
        settings = Settings(random_min_faces=2, random_max_faces=2, random_min_confidence=0.9, random_seed=3)
        model = RandomFaceModel.from_settings(settings)
        raw = model.detect(_image(640, 480))
        assert len(raw) == 2
        assert all(r.score >= 0.9 for r in raw)


def test_to_detections_clips_and_drops() -> None:
    size = FrameSize(100, 100)
    raw = [
        RawDetection(bbox=np.array([90, 90, 150, 150], dtype=np.float32), score=0.9),
        RawDetection(bbox=np.array([120, 10, 130, 20], dtype=np.float32), score=0.9),
    ]
    assert to_detections(raw, size) == [Detection(x=90, y=90, width=10, height=10, confidence=0.9)]


class TestPooledFaceDetector:
    async def test_runs_model_off_the_event_loop(self) -> None:
        threads: list[str] = []

        class RecordingModel:
            model_name = "recording"

            def detect(self, image: np.ndarray) -> list[RawDetection]:
                threads.append(threading.current_thread().name)
                return [RawDetection(bbox=np.array([0, 0, 10, 10], dtype=np.float32), score=0.5)]

        pool = InferencePool(max_concurrent=1)
        try:
            detector = PooledFaceDetector(RecordingModel(), pool)
            frame = SingleShotSource(_image(20, 20)).current_frame()
            detections = await detector.detect(frame)
        finally:
            pool.shutdown()

        assert detector.model_name == "recording"
        assert detections == [Detection(x=0, y=0, width=10, height=10, confidence=0.5)]
        assert threads[0].startswith("face-inference")

    async def test_saturated_pool_raises_detection_failed(self) -> None:
        class SlowModel:
            model_name = "slow"

            def __init__(self) -> None:
                self.release = threading.Event()

            def detect(self, image: np.ndarray) -> list[RawDetection]:
                self.release.wait(timeout=2.0)
                return []

        model = SlowModel()
        pool = InferencePool(max_concurrent=1, queue_timeout=0.05)
        detector = PooledFaceDetector(model, pool)
        frame = SingleShotSource(_image(20, 20)).current_frame()
        try:
            first = asyncio.create_task(detector.detect(frame))
            await asyncio.sleep(0.01)
            with pytest.raises(DetectionFailedError, match="saturated"):
                await detector.detect(frame)
            model.release.set()
            assert await first == []
        finally:
            model.release.set()
            pool.shutdown()


async def test_build_detector_uses_random_model() -> None:
    pool = InferencePool()
    try:
        detector = build_detector(Settings(), pool)
        assert detector.model_name == "random"
    finally:
        pool.shutdown()
