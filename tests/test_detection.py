"""Tests for detection value types."""

from __future__ import annotations

import math
from dataclasses import fields

import numpy as np
import pytest

from facewatch.errors import InvalidDetectionError
from facewatch.pipeline.detection import Detection, Frame, FrameSize, clamp_batch

SIZE = FrameSize(width=640, height=480)


class TestDetection:
    def test_valid_detection(self) -> None:
        d = Detection(x=100, y=50, width=120, height=140, confidence=0.85)
        assert d.right == 220
        assert d.bottom == 190
        assert d.fits(SIZE)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"x": -1, "y": 0, "width": 10, "height": 10, "confidence": 0.5},
            {"x": 0, "y": -0.5, "width": 10, "height": 10, "confidence": 0.5},
            {"x": 0, "y": 0, "width": 0, "height": 10, "confidence": 0.5},
            {"x": 0, "y": 0, "width": 10, "height": -3, "confidence": 0.5},
            {"x": 0, "y": 0, "width": 10, "height": 10, "confidence": 1.01},
            {"x": 0, "y": 0, "width": 10, "height": 10, "confidence": -0.1},
            {"x": math.nan, "y": 0, "width": 10, "height": 10, "confidence": 0.5},
            {"x": 0, "y": 0, "width": math.inf, "height": 10, "confidence": 0.5},
        ],
    )
    def test_invalid_geometry_rejected(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(InvalidDetectionError):
            Detection(**kwargs)

    def test_invalid_detection_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            Detection(x=0, y=0, width=10, height=10, confidence=2.0)

    def test_is_immutable(self) -> None:
        d = Detection(x=1, y=1, width=1, height=1, confidence=0.5)
        with pytest.raises(AttributeError):
            d.x = 5  # type: ignore[misc]

    def test_clamp_keeps_fitting_box(self) -> None:
        d = Detection(x=0, y=0, width=640, height=480, confidence=1.0)
        assert d.clamp_to(SIZE) is d

    def test_clamp_trims_overflow(self) -> None:
        d = Detection(x=600, y=450, width=100, height=100, confidence=0.7)
        clamped = d.clamp_to(SIZE)
        assert clamped == Detection(x=600, y=450, width=40, height=30, confidence=0.7)

    def test_clamp_drops_box_outside_frame(self) -> None:
        d = Detection(x=700, y=10, width=20, height=20, confidence=0.7)
        assert d.clamp_to(SIZE) is None

    def test_from_corners_clips_to_frame(self) -> None:
        d = Detection.from_corners(-10, -5, 50, 500, 0.9, SIZE)
        assert d == Detection(x=0, y=0, width=50, height=480, confidence=0.9)

    def test_from_corners_empty_box(self) -> None:
        assert Detection.from_corners(10, 10, 10, 40, 0.9, SIZE) is None

    def test_to_dict(self) -> None:
        d = Detection(x=1, y=2, width=3, height=4, confidence=0.5)
        assert d.to_dict() == {"x": 1, "y": 2, "width": 3, "height": 4, "confidence": 0.5}


class TestFrameSize:
    def test_rejects_non_positive(self) -> None:
        with pytest.raises(ValueError):
            FrameSize(width=0, height=10)


def test_clamp_batch_drops_empty_boxes() -> None:
    inside = Detection(x=10, y=10, width=10, height=10, confidence=0.9)
    outside = Detection(x=900, y=10, width=10, height=10, confidence=0.9)
    assert clamp_batch([inside, outside], SIZE) == [inside]


class TestFrame:
    def test_frame_holds_pixels_size_and_id(self) -> None:
        image = np.zeros((4, 6, 3), dtype=np.uint8)
        frame = Frame(image, FrameSize(6, 4), 7)

        assert [f.name for f in fields(Frame)] == ["image", "size", "frame_id"]
        assert frame.image is image
        assert frame.size == FrameSize(6, 4)
        assert frame.frame_id == 7

    def test_frames_compare_by_identity(self) -> None:
        image = np.zeros((2, 2, 3), dtype=np.uint8)
        first = Frame(image, FrameSize(2, 2), 1)
        second = Frame(image, FrameSize(2, 2), 1)
        assert first == first
        assert first != second
