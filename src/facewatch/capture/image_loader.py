"""Uploaded image decoding.

Handles format detection, decoding, EXIF orientation, color space
conversion and size validation, producing a ready ``SingleShotSource``.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from facewatch.errors import AcquisitionFailedError
from facewatch.pipeline.frame_source import SingleShotSource

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from facewatch.config import Settings

logger = logging.getLogger(__name__)


class ImageTooLargeError(AcquisitionFailedError):
    """The upload exceeds the configured file size or pixel limits."""


def decode_image(data: bytes, *, max_file_size: int, max_image_pixels: int) -> NDArray[np.uint8]:
    """Decode raw image bytes into an RGB uint8 numpy array.

    Args:
        data: Raw file bytes (any format Pillow can read).
        max_file_size: Largest accepted upload in bytes.
        max_image_pixels: Largest accepted width * height.

    Returns:
        HxWx3 RGB uint8 numpy array, upright according to EXIF orientation.

    Raises:
        AcquisitionFailedError: If the bytes are empty or not a readable image.
        ImageTooLargeError: If a size limit is exceeded.
    """
    if not data:
        raise AcquisitionFailedError("Uploaded file is empty")
    if len(data) > max_file_size:
        raise ImageTooLargeError(f"Uploaded file is {len(data)} bytes; limit is {max_file_size}")

    try:
        with Image.open(io.BytesIO(data)) as image:
            pixels = image.width * image.height
            if pixels > max_image_pixels:
                raise ImageTooLargeError(f"Image has {pixels} pixels; limit is {max_image_pixels}")
            upright = ImageOps.exif_transpose(image)
            return np.asarray(upright.convert("RGB"), dtype=np.uint8)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as exc:
        raise AcquisitionFailedError("Uploaded file is not a valid image") from exc


def load_image_source(data: bytes, settings: Settings, name: str = "image") -> SingleShotSource:
    """Decode an upload into a single-shot source ready for the scheduler."""
    image = decode_image(
        data,
        max_file_size=settings.max_file_size,
        max_image_pixels=settings.max_image_pixels,
    )
    logger.info("Loaded image %s (%dx%d)", name, image.shape[1], image.shape[0])
    return SingleShotSource(image, name=name)
