"""Shared fixtures: a fake camera and PNG upload helpers."""

from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from facewatch.errors import AcquisitionFailedError
from facewatch.pipeline.frame_source import ContinuousSource


class FakeCamera:
    """Capture device that publishes one synthetic frame on open()."""

    def __init__(self, width: int = 640, height: int = 480, *, fail: bool = False) -> None:
        self._source = ContinuousSource(name="fake-camera")
        self._width = width
        self._height = height
        self._fail = fail
        self._open = False
        self.open_calls = 0
        self.close_calls = 0

    @property
    def source(self) -> ContinuousSource:
        return self._source

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self.open_calls += 1
        if self._fail:
            raise AcquisitionFailedError("Could not open camera device 0")
        self._open = True
        self._source.push(np.zeros((self._height, self._width, 3), dtype=np.uint8))

    def close(self) -> None:
        self.close_calls += 1
        self._open = False
        self._source.close()


def png_bytes(width: int = 320, height: int = 240) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 180, 160)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def fake_camera() -> FakeCamera:
    return FakeCamera()
