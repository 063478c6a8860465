"""
Shared fixtures: synthetic page images and PDFs.
"""

import cv2
import fitz
import img2pdf
import numpy as np
import pytest

from pdf_straighten.transform import rotate_image


def make_page(width=850, height=1100, angle=0.0, seed=0):
    """White page with dark text-like bars, rotated by ``angle`` degrees."""
    rng = np.random.default_rng(seed)
    img = np.full((height, width), 255, dtype=np.uint8)
    for y in range(120, height - 120, 36):
        right = int(rng.integers(width // 2, width - 100))
        img[y:y + 12, 100:right] = 20
    if angle:
        img = rotate_image(img, angle)
    return img


def jpeg_bytes(img, quality=90):
    ok, buffer = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, quality])
    assert ok
    return buffer.tobytes()


def with_jfif_dpi(data, dpi):
    """Set the pixel density in the JFIF header of an OpenCV-encoded JPEG."""
    assert data[2:4] == b"\xff\xe0" and data[6:11] == b"JFIF\x00"
    density = bytes([1]) + dpi.to_bytes(2, "big") * 2
    return data[:13] + density + data[18:]


def scanned_pdf(*pages):
    """PDF with one JPEG per page, built the way scanners lay them out."""
    return img2pdf.convert([jpeg_bytes(page) for page in pages])


def fitz_pdf(page_layouts):
    """
    PDF built with PyMuPDF. Each layout is a dict with optional ``images``
    (list of encoded images) and ``text``.
    """
    doc = fitz.open()
    for layout in page_layouts:
        page = doc.new_page(width=612, height=792)
        images = layout.get("images", [])
        for i, data in enumerate(images):
            top = i * 792 / max(len(images), 1)
            rect = fitz.Rect(0, top, 612, top + 792 / max(len(images), 1))
            page.insert_image(rect, stream=data)
        if layout.get("text"):
            page.insert_text((72, 72), layout["text"])
    data = doc.tobytes()
    doc.close()
    return data


class StubEstimator:
    """Returns preset angles, one call per page."""

    def __init__(self, angles):
        self.angles = list(angles)
        self.calls = []

    def estimate(self, gray, max_angle, include_90_degrees=False):
        self.calls.append((gray.shape, max_angle, include_90_degrees))
        return self.angles[len(self.calls) - 1]


class RecordingOrienter:
    def __init__(self, result=None):
        self.result = result
        self.seen = []

    def make_upright(self, image):
        self.seen.append(image.shape)
        return image if self.result is None else self.result


@pytest.fixture
def straight_page():
    return make_page()


@pytest.fixture
def skewed_page():
    return make_page(angle=1.5, seed=1)


@pytest.fixture
def three_page_pdf():
    """Three scanned pages of different sizes so their order is visible."""
    return scanned_pdf(
        make_page(850, 1100, seed=1),
        make_page(900, 1150, seed=2),
        make_page(820, 1060, seed=3),
    )
