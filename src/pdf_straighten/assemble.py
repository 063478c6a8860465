"""
Build a PDF from page images.

Each page is sized to its own image, so landscape and portrait pages keep
their shape. JPEG pages are embedded as-is, without re-encoding.

Pages that know the resolution of the page they came from are laid out at
that resolution, so a re-encoded page keeps the physical size of the original
no matter what density its image header claims.
"""

import logging
from typing import Iterable, Optional, Tuple, Union

import fitz  # PyMuPDF
import img2pdf

from .errors import AssemblyError
from .transform import TransformedPage

logger = logging.getLogger(__name__)


def _page_pdf(data: bytes, dpi: Optional[Tuple[float, float]]) -> bytes:
    if dpi is None:
        return img2pdf.convert(data)
    return img2pdf.convert(data, layout_fun=img2pdf.get_fixed_dpi_layout_fun(dpi))


def build_pdf(images: Iterable[Union[bytes, TransformedPage]]) -> bytes:
    """
    Create a PDF with one page per image, in the given order.

    Args:
        images: Encoded images, or ``TransformedPage`` objects

    Returns:
        The PDF document as bytes
    """
    pages = [
        (image.data, image.dpi) if isinstance(image, TransformedPage) else (bytes(image), None)
        for image in images
    ]
    if not pages:
        raise AssemblyError("no pages to assemble")

    logger.debug("Assembling %s pages", len(pages))
    try:
        if all(dpi is None for _, dpi in pages):
            return img2pdf.convert([data for data, _ in pages])

        merged = fitz.open()
        try:
            for data, dpi in pages:
                with fitz.open(stream=_page_pdf(data, dpi), filetype="pdf") as single:
                    merged.insert_pdf(single)
            return merged.tobytes(garbage=1)
        finally:
            merged.close()
    except Exception as e:
        raise AssemblyError(str(e)) from e
