"""Tests for overlay scaling and rendering."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image

from facewatch.pipeline.detection import Detection, FrameSize
from facewatch.pipeline.frame_source import SingleShotSource
from facewatch.render.overlay import (
    IMAGE_BOX_COLOR,
    confidence_label,
    draw_detections,
    render_overlay,
    scale_detections,
)

FACE = Detection(x=100, y=50, width=120, height=140, confidence=0.85)


class TestScaleDetections:
    def test_scales_by_display_over_native(self) -> None:
        scaled = scale_detections([FACE], FrameSize(640, 480), FrameSize(320, 240))
        assert scaled == [Detection(x=50, y=25, width=60, height=70, confidence=0.85)]

    def test_same_size_is_identity(self) -> None:
        assert scale_detections([FACE], FrameSize(640, 480), FrameSize(640, 480)) == [FACE]

    def test_axes_scale_independently(self) -> None:
        scaled = scale_detections([FACE], FrameSize(640, 480), FrameSize(1280, 480))
        assert scaled[0].x == 200
        assert scaled[0].width == 240
        assert scaled[0].y == 50


def test_confidence_label_rounds_to_percent() -> None:
    assert confidence_label(FACE) == "85%"
    assert confidence_label(Detection(x=0, y=0, width=1, height=1, confidence=0.996)) == "100%"


def test_draw_detections_paints_box_outline() -> None:
    image = Image.new("RGB", (640, 480))
    draw_detections(image, [FACE], color="#ff0000", line_width=2)
    assert image.getpixel((100, 120)) == (255, 0, 0)
    assert image.getpixel((160, 120)) == (0, 0, 0)


class TestRenderOverlay:
    def test_returns_png_at_native_size(self) -> None:
        frame = SingleShotSource(np.zeros((480, 640, 3), dtype=np.uint8)).current_frame()
        png = render_overlay(frame, [FACE], color=IMAGE_BOX_COLOR)
        with Image.open(io.BytesIO(png)) as image:
            assert image.format == "PNG"
            assert image.size == (640, 480)

    def test_resizes_to_display(self) -> None:
        frame = SingleShotSource(np.zeros((480, 640, 3), dtype=np.uint8)).current_frame()
        png = render_overlay(frame, [FACE], display=FrameSize(320, 240))
        with Image.open(io.BytesIO(png)) as image:
            assert image.size == (320, 240)

    def test_does_not_touch_frame_pixels(self) -> None:
        frame = SingleShotSource(np.zeros((48, 64, 3), dtype=np.uint8)).current_frame()
        render_overlay(frame, [Detection(x=1, y=1, width=10, height=10, confidence=0.5)])
        assert not frame.image.any()
