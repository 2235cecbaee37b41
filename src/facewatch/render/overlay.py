"""Overlay rendering: detection boxes and confidence labels on top of a frame."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

from PIL import Image, ImageDraw, ImageFont

from facewatch.pipeline.detection import Detection

if TYPE_CHECKING:
    from collections.abc import Sequence

    from facewatch.pipeline.detection import Frame, FrameSize

CAMERA_BOX_COLOR = "#3b82f6"
IMAGE_BOX_COLOR = "#8b5cf6"


def scale_detections(
    detections: Sequence[Detection],
    native: FrameSize,
    display: FrameSize,
) -> list[Detection]:
    """Map detections from native frame pixels to a display surface.

    The scale factor per axis is displayed size / native size.
    """
    sx = display.width / native.width
    sy = display.height / native.height
    if sx == 1.0 and sy == 1.0:
        return list(detections)
    return [
        Detection(
            x=d.x * sx,
            y=d.y * sy,
            width=d.width * sx,
            height=d.height * sy,
            confidence=d.confidence,
        )
        for d in detections
    ]


def confidence_label(detection: Detection) -> str:
    return f"{round(detection.confidence * 100)}%"


def draw_detections(
    image: Image.Image,
    detections: Sequence[Detection],
    *,
    color: str = CAMERA_BOX_COLOR,
    line_width: int = 3,
    font_size: int = 16,
) -> Image.Image:
    """Draw boxes and labels onto ``image`` in place and return it."""
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default(size=font_size)
    for detection in detections:
        draw.rectangle(
            (detection.x, detection.y, detection.right, detection.bottom),
            outline=color,
            width=line_width,
        )
        draw.text(
            (detection.x, max(0.0, detection.y - font_size - 5)),
            confidence_label(detection),
            fill=color,
            font=font,
        )
    return image


def render_overlay(
    frame: Frame,
    detections: Sequence[Detection],
    *,
    display: FrameSize | None = None,
    color: str = CAMERA_BOX_COLOR,
) -> bytes:
    """Render ``frame`` with its detections as PNG bytes.

    When ``display`` is given the frame is resized to it and the boxes are
    scaled to match.
    """
    image = Image.fromarray(frame.image).copy()
    boxes: Sequence[Detection] = detections
    if display is not None and display != frame.size:
        image = image.resize((display.width, display.height))
        boxes = scale_detections(detections, frame.size, display)

    draw_detections(image, boxes, color=color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
