"""
Skew angle estimation and per-page angle resolution.

The estimator searches a symmetric window of candidate angles and keeps the
one whose horizontal projection profile is sharpest: text lines and the white
gaps between them line up with pixel rows when the page is straight.
"""

import logging
import math
from typing import Iterable, List

import cv2
import numpy as np

from .transform import rotate_image

logger = logging.getLogger(__name__)


def normalize_angle(angle: float) -> float:
    """
    Reinterpret a near quarter-turn as a small correction.

    Rotating a page by ~90° would turn portrait into landscape, which is rarely
    wanted, so an angle strictly between 80° and 100° becomes ``angle - 90``.
    """
    if 80 < angle < 100:
        return angle - 90
    return angle


def resolve_angles(angles: Iterable[float], allow_90_degrees: bool = False) -> List[float]:
    """Apply ``normalize_angle`` to every page unless quarter turns are allowed."""
    if allow_90_degrees:
        return list(angles)
    return [normalize_angle(angle) for angle in angles]


def needs_straightening(angles: Iterable[float]) -> bool:
    return any(angle != 0 for angle in angles)


def candidate_angles(max_angle: float, step: float) -> List[float]:
    """Multiples of ``step`` in ``[-max_angle, max_angle]``, smallest magnitude first."""
    count = int(math.floor(max_angle / step + 1e-9))
    angles = [round(i * step, 4) for i in range(-count, count + 1)]
    return sorted(angles, key=abs)


class ProjectionProfileEstimator:
    """
    Best-fit skew angle of a grayscale page image.

    Args:
        step: Angular resolution of the search in degrees
        max_side: Images are downscaled so their longer side is at most this
        min_gain: Relative score improvement over 0° required to report a skew
        min_ink_fraction: Pages with less ink than this are reported straight
    """

    def __init__(
        self,
        step: float = 0.1,
        max_side: int = 1000,
        min_gain: float = 0.02,
        min_ink_fraction: float = 0.001,
    ):
        if step <= 0:
            raise ValueError(f"step must be positive, got {step}")
        self.step = step
        self.max_side = max_side
        self.min_gain = min_gain
        self.min_ink_fraction = min_ink_fraction

    def estimate(
        self, gray: np.ndarray, max_angle: float, include_90_degrees: bool = False
    ) -> float:
        """
        Returns the skew in degrees within ``±max_angle`` (or ``90 ± max_angle``
        when ``include_90_degrees`` is set), or 0.0 if no rotation is warranted.
        """
        if max_angle < 0:
            raise ValueError(f"max_angle must not be negative, got {max_angle}")

        ink = self._ink_mask(gray)
        ink_fraction = float(ink.mean()) if ink.size else 0.0
        if ink_fraction < self.min_ink_fraction:
            logger.debug("Ink fraction %.4f too low, assuming straight", ink_fraction)
            return 0.0

        candidates = candidate_angles(max_angle, self.step)
        if include_90_degrees:
            candidates += [round(90 + angle, 4) for angle in candidates]

        baseline = self._score(ink, 0.0)
        best_angle, best_score = 0.0, baseline
        for angle in candidates:
            score = self._score(ink, angle)
            if score > best_score:
                best_angle, best_score = angle, score

        logger.debug(
            "Best angle %.2f° (score %.0f, baseline %.0f)",
            best_angle, best_score, baseline,
        )
        if best_score <= baseline * (1 + self.min_gain):
            return 0.0
        return best_angle

    def _ink_mask(self, gray: np.ndarray) -> np.ndarray:
        h, w = gray.shape[:2]
        scale = self.max_side / max(h, w, 1)
        if scale < 1:
            gray = cv2.resize(
                gray,
                (max(1, int(w * scale)), max(1, int(h * scale))),
                interpolation=cv2.INTER_AREA,
            )
        # Ink is 1, paper is 0
        _, ink = cv2.threshold(gray, 0, 1, cv2.THRESH_BINARY_INV | cv2.THRESH_OTSU)
        return ink.astype(np.float32)

    def _score(self, ink: np.ndarray, angle: float) -> float:
        rotated = rotate_image(ink, -angle, interpolation=cv2.INTER_LINEAR, border_value=0)
        profile = rotated.sum(axis=1, dtype=np.float64)
        return float(np.sum(np.diff(profile) ** 2))
