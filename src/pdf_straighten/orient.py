"""
Upright normalizers.

An orienter takes a decoded page image and returns it turned to reading
orientation. When no change is needed it must return the very same object,
so callers can tell the two cases apart with ``is``.
"""

import logging

import cv2
import numpy as np
import pytesseract

from .errors import TransformError
from .transform import to_gray

logger = logging.getLogger(__name__)

# Tesseract reports the clockwise rotation that makes the page upright
OSD_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


class NullOrienter:
    """Leaves every image as it is."""

    def make_upright(self, image: np.ndarray) -> np.ndarray:
        return image


class TesseractOrienter:
    """Quarter-turn orientation correction using Tesseract's OSD mode."""

    def __init__(self, min_confidence: float = 2.0, tesseract_config: str = ""):
        self.min_confidence = min_confidence
        self.tesseract_config = tesseract_config

    def make_upright(self, image: np.ndarray) -> np.ndarray:
        try:
            osd = pytesseract.image_to_osd(
                to_gray(image),
                config=self.tesseract_config,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractError as e:
            # Blank or nearly blank pages carry no orientation information
            if "Too few characters" in str(e.message):
                logger.debug("OSD found too few characters, keeping orientation")
                return image
            raise TransformError(f"orientation detection failed: {e.message}") from e
        except OSError as e:
            raise TransformError(f"could not run tesseract: {e}") from e

        rotate = int(osd.get("rotate", 0)) % 360
        confidence = float(osd.get("orientation_conf", 0.0))
        logger.debug("OSD result: rotate=%s, confidence=%.2f", rotate, confidence)

        if rotate == 0 or rotate not in OSD_ROTATIONS:
            return image
        if confidence < self.min_confidence:
            logger.debug(
                "OSD confidence %.2f < %.2f, keeping orientation",
                confidence, self.min_confidence,
            )
            return image
        return cv2.rotate(image, OSD_ROTATIONS[rotate])
