"""
Page image transforms: decode, rotate onto a sized canvas, re-encode.

Rotation angles are in degrees, positive values rotating counter-clockwise
as displayed (OpenCV convention). A page whose measured skew is ``angle`` is
corrected by rotating it by ``-angle``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .errors import DecodeError, EncodeError, StraightenError, TransformError

logger = logging.getLogger(__name__)

# Within this many degrees of an axis-aligned rotation the canvas is not grown,
# scans usually carry enough margin to absorb the clipped corners.
CROP_LIMIT_DEGREES = 5

JPEG_QUALITY = 95


@dataclass
class TransformedPage:
    """Output bytes for one page."""

    index: int
    data: bytes
    ext: str
    angle: float
    passthrough: bool
    # Horizontal and vertical resolution the page is laid out at
    dpi: Optional[Tuple[float, float]] = None


def decode_image(raw: bytes, page: Optional[int] = None) -> np.ndarray:
    """Decode encoded image bytes, keeping depth and channel count."""
    buffer = np.frombuffer(raw, dtype=np.uint8)
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise DecodeError(f"could not decode image: {e}", page=page) from e
    if image is None:
        raise DecodeError(
            f"could not decode image ({len(raw)} bytes)", page=page
        )
    return image


def to_8bit(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint8:
        return image
    if image.dtype == np.uint16:
        return (image >> 8).astype(np.uint8)
    return np.clip(image, 0, 255).astype(np.uint8)


def white(image: np.ndarray) -> Tuple[float, float, float, float]:
    if np.issubdtype(image.dtype, np.integer):
        value = float(np.iinfo(image.dtype).max)
    else:
        value = 255.0
    return (value, value, value, value)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Return an 8-bit single channel copy of ``image``."""
    image = to_8bit(image)
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def is_quarter_turn(angle: float) -> bool:
    return (
        abs(angle - 90) <= CROP_LIMIT_DEGREES
        or abs(angle + 90) <= CROP_LIMIT_DEGREES
    )


def canvas_size(width: int, height: int, angle: float) -> Tuple[int, int]:
    """
    Size of the canvas that receives an image rotated by ``angle`` degrees.

    Near 0° the input size is kept, near ±90° it is swapped; in both cases
    corners may be clipped. Any other angle gets the full bounding box of the
    rotated image so no content is lost.

    Returns:
        (width, height) of the output canvas
    """
    if abs(angle) <= CROP_LIMIT_DEGREES:
        return width, height
    if is_quarter_turn(angle):
        return height, width

    radians = math.radians(angle)
    cos_a = abs(math.cos(radians))
    sin_a = abs(math.sin(radians))
    new_width = int(width * cos_a + height * sin_a)
    new_height = int(width * sin_a + height * cos_a)
    return new_width, new_height


def rotate_image(
    image: np.ndarray,
    angle: float,
    interpolation: int = cv2.INTER_CUBIC,
    border_value=None,
) -> np.ndarray:
    """
    Rotate ``image`` about its centre into a new canvas sized by ``canvas_size``.

    Uncovered canvas is filled with ``border_value``, white for the image's
    depth by default.
    """
    if border_value is None:
        border_value = white(image)
    h, w = image.shape[:2]
    center = (w / 2, h / 2)
    new_w, new_h = canvas_size(w, h, angle)

    rotation_matrix = cv2.getRotationMatrix2D(center, angle, 1.0)

    # Adjust the rotation matrix to account for translation
    rotation_matrix[0, 2] += (new_w / 2) - center[0]
    rotation_matrix[1, 2] += (new_h / 2) - center[1]

    return cv2.warpAffine(
        image,
        rotation_matrix,
        (new_w, new_h),
        flags=interpolation,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=border_value,
    )


def encode_jpeg(image: np.ndarray, quality: int = JPEG_QUALITY) -> bytes:
    """Encode as JPEG with 4:4:4 chroma sampling."""
    image = to_8bit(image)
    if image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)

    params = [
        cv2.IMWRITE_JPEG_QUALITY,
        quality,
        cv2.IMWRITE_JPEG_SAMPLING_FACTOR,
        cv2.IMWRITE_JPEG_SAMPLING_FACTOR_444,
    ]
    try:
        ok, buffer = cv2.imencode(".jpg", image, params)
    except cv2.error as e:
        raise EncodeError(f"JPEG encoding failed: {e}") from e
    if not ok:
        raise EncodeError("JPEG encoding failed")
    return buffer.tobytes()


def straighten_image(
    raw: bytes,
    image: np.ndarray,
    angle: float,
    orienter=None,
    quality: int = JPEG_QUALITY,
) -> bytes:
    """
    Return ``raw`` untouched when ``angle`` is 0, else the corrected image as JPEG.

    Args:
        raw: Encoded bytes of the page image
        image: Decoded pixels of ``raw``
        angle: Measured skew in degrees; the image is rotated by ``-angle``
        orienter: Optional upright normalizer applied after rotation
        quality: JPEG quality of the re-encoded image

    Returns:
        Encoded image bytes
    """
    if angle == 0:
        return raw

    try:
        rotated = rotate_image(image, -angle)
    except cv2.error as e:
        raise TransformError(f"rotation by {-angle:.3f}° failed: {e}") from e

    upright = rotated
    if orienter is not None:
        try:
            upright = orienter.make_upright(rotated)
        except StraightenError:
            raise
        except Exception as e:
            raise TransformError(f"orientation failed: {e}") from e
        if upright is not rotated:
            logger.debug("Orientation corrected after rotating by %.3f°", -angle)

    return encode_jpeg(upright, quality)


def transform_page(
    page, angle: float, orienter=None, quality: int = JPEG_QUALITY
) -> TransformedPage:
    """Straighten one ``PageImage``, tagging any error with its page index."""
    dpi = page.dpi
    if angle == 0:
        return TransformedPage(page.index, page.raw, page.ext, angle, True, dpi)

    try:
        data = straighten_image(page.raw, page.image, angle, orienter, quality)
    except StraightenError as e:
        if e.page is None:
            e.page = page.index
        raise

    # A quarter-turn canvas swaps the axes the resolutions apply to
    if dpi is not None and is_quarter_turn(angle):
        dpi = (dpi[1], dpi[0])
    return TransformedPage(page.index, data, "jpg", angle, False, dpi)
