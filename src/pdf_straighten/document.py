"""
Scanned PDF documents: classification, per-page angles and straightening.

A scanned document holds exactly one raster image per page. Pages are always
processed and returned in reading order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

import fitz  # PyMuPDF
import numpy as np

from .assemble import build_pdf
from .deskew import ProjectionProfileEstimator
from .errors import (
    ClassificationError,
    EstimationError,
    ExtractionError,
    StraightenError,
)
from .transform import JPEG_QUALITY, TransformedPage, decode_image, to_gray, transform_page

logger = logging.getLogger(__name__)

# A page image smaller than this is more likely a logo than a scanned page
MIN_SCAN_WIDTH = 800
MIN_SCAN_HEIGHT = 600


@dataclass
class PageImage:
    """The single embedded image of a page, decoded on first access."""

    index: int
    raw: bytes
    ext: str
    # Pixels per inch along x and y, from the size of the page it fills
    dpi: Optional[Tuple[float, float]] = None

    @cached_property
    def image(self) -> np.ndarray:
        return decode_image(self.raw, page=self.index)

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]

    @property
    def channels(self) -> int:
        return 1 if self.image.ndim == 2 else self.image.shape[2]


@dataclass
class PageEvent:
    """Reported to the observer as each page is measured or straightened."""

    page: int
    raw_size: int
    angle: float


Observer = Callable[[PageEvent], None]


def _map_pages(func, pages, workers: int) -> Iterator:
    """Apply ``func`` to every page, yielding results in page order as they complete."""
    if workers <= 1:
        for page in pages:
            yield func(page)
        return
    # Executor.map pulls pages from the iterator in this thread
    with ThreadPoolExecutor(max_workers=workers) as pool:
        yield from pool.map(func, pages)


def _measure(page: PageImage, estimator, max_angle: float, include_90_degrees: bool) -> float:
    try:
        gray = to_gray(page.image)
        return estimator.estimate(gray, max_angle, include_90_degrees)
    except StraightenError:
        raise
    except Exception as e:
        raise EstimationError(f"angle estimation failed: {e}", page=page.index) from e


def _page_dpi(image_info, box) -> Optional[Tuple[float, float]]:
    """Resolution at which the image covers the unrotated page box."""
    width, height = image_info[2], image_info[3]
    if box.is_empty or not width or not height:
        return None
    return width * 72 / box.width, height * 72 / box.height


class Document:
    """
    A PDF opened for straightening.

    The document owns its PyMuPDF handle; ``close()`` releases it and may be
    called any number of times. Use it as a context manager.
    """

    def __init__(self, fz: fitz.Document, name: str = "<memory>"):
        self._fz = fz
        self.name = name
        self.num_pages = fz.page_count

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Document":
        path = Path(path)
        try:
            fz = fitz.open(str(path), filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"cannot open {path}: {e}") from e
        return cls(fz, path.name)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Document":
        try:
            fz = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"cannot open document: {e}") from e
        return cls(fz)

    def close(self):
        if self._fz is not None:
            self._fz.close()
            self._fz = None

    @property
    def closed(self) -> bool:
        return self._fz is None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"Document({self.name!r}, pages={self.num_pages})"

    def _engine(self) -> fitz.Document:
        if self._fz is None:
            raise ValueError("document is closed")
        return self._fz

    def is_scanned(self) -> bool:
        """
        True if every page is a single full-page image with no text layer.

        A text check alone is not enough: a page with one high resolution logo
        and a text layer that fails to extract would pass it. Requiring the one
        image to be at least ``MIN_SCAN_WIDTH`` x ``MIN_SCAN_HEIGHT`` pixels
        rules that out.
        """
        fz = self._engine()
        min_pixels = MIN_SCAN_WIDTH * MIN_SCAN_HEIGHT

        for index in range(self.num_pages):
            try:
                page = fz.load_page(index)
                images = page.get_images(full=True)
            except Exception as e:
                raise ClassificationError(f"cannot list images: {e}", page=index) from e

            if len(images) != 1:
                logger.debug("Page %s has %s images, not scanned", index + 1, len(images))
                return False

            width, height = images[0][2], images[0][3]
            if width * height < min_pixels:
                logger.debug(
                    "Page %s image is %sx%s, too small for a scan",
                    index + 1, width, height,
                )
                return False

            try:
                text = page.get_text()
            except Exception as e:
                raise ClassificationError(f"cannot extract text: {e}", page=index) from e

            if text.strip():
                logger.debug("Page %s has a text layer, not scanned", index + 1)
                return False

        return True

    def page_image(self, index: int) -> PageImage:
        """Extract the single embedded image of page ``index`` (0-based)."""
        fz = self._engine()
        try:
            page = fz.load_page(index)
            images = page.get_images(full=True)
            box = page.cropbox
        except Exception as e:
            raise ExtractionError(f"cannot list images: {e}", page=index) from e

        if len(images) != 1:
            raise ExtractionError(
                f"expected exactly one image, found {len(images)}", page=index
            )

        xref = images[0][0]
        try:
            info = fz.extract_image(xref)
        except Exception as e:
            raise ExtractionError(f"cannot read image stream: {e}", page=index) from e

        if not info or not info.get("image"):
            raise ExtractionError("image has no readable stream", page=index)

        ext = info.get("ext") or "bin"
        if ext == "jpeg":
            ext = "jpg"
        return PageImage(index, info["image"], ext, _page_dpi(images[0], box))

    def pages(self) -> Iterator[PageImage]:
        for index in range(self.num_pages):
            yield self.page_image(index)

    def page_angles(
        self,
        max_angle: float,
        include_90_degrees: bool,
        estimator=None,
        observer: Optional[Observer] = None,
        workers: int = 1,
    ) -> List[float]:
        """
        Raw skew angle of every page, in degrees, in page order.

        Args:
            max_angle: Search window is ``[-max_angle, max_angle]``
            include_90_degrees: Also test the window around 90°
            estimator: Object with ``estimate(gray, max_angle, include_90_degrees)``
            observer: Called with a ``PageEvent`` per page
            workers: Threads used for estimation

        Returns:
            One angle per page; 0 where the page is straight
        """
        if max_angle < 0:
            raise ValueError(f"max_angle must not be negative, got {max_angle}")
        if estimator is None:
            estimator = ProjectionProfileEstimator()

        def measure(page: PageImage) -> Tuple[int, float]:
            return len(page.raw), _measure(page, estimator, max_angle, include_90_degrees)

        angles = []
        for index, (raw_size, angle) in enumerate(_map_pages(measure, self.pages(), workers)):
            if observer is not None:
                observer(PageEvent(index, raw_size, angle))
            angles.append(angle)
        return angles

    def straightened_images(
        self,
        angles: Sequence[float],
        orienter=None,
        observer: Optional[Observer] = None,
        workers: int = 1,
        quality: int = JPEG_QUALITY,
    ) -> List[TransformedPage]:
        """
        Straighten every page by its angle from ``page_angles``.

        Pages with angle 0 keep their original bytes. The observer gets a
        ``PageEvent`` per page as soon as that page is done.
        """
        if len(angles) != self.num_pages:
            raise ValueError(
                f"got {len(angles)} angles for a document of {self.num_pages} pages"
            )

        def transform(page: PageImage) -> Tuple[int, TransformedPage]:
            return len(page.raw), transform_page(page, angles[page.index], orienter, quality)

        transformed = []
        for raw_size, page in _map_pages(transform, self.pages(), workers):
            if observer is not None:
                observer(PageEvent(page.index, raw_size, page.angle))
            transformed.append(page)
        return transformed

    def straighten(
        self,
        angles: Sequence[float],
        orienter=None,
        observer: Optional[Observer] = None,
        workers: int = 1,
        quality: int = JPEG_QUALITY,
    ) -> bytes:
        """Build a new PDF from the straightened pages."""
        pages = self.straightened_images(
            angles, orienter, observer=observer, workers=workers, quality=quality
        )
        return build_pdf(pages)

    def straighten_one_pass(
        self,
        max_angle: float,
        orienter=None,
        estimator=None,
        observer: Optional[Observer] = None,
        workers: int = 1,
        quality: int = JPEG_QUALITY,
    ) -> bytes:
        """Measure and straighten each page in a single pass, without quarter turns."""
        if max_angle < 0:
            raise ValueError(f"max_angle must not be negative, got {max_angle}")
        if estimator is None:
            estimator = ProjectionProfileEstimator()

        def process(page: PageImage) -> Tuple[int, TransformedPage]:
            angle = _measure(page, estimator, max_angle, False)
            return len(page.raw), transform_page(page, angle, orienter, quality)

        transformed = []
        for raw_size, page in _map_pages(process, self.pages(), workers):
            if observer is not None:
                observer(PageEvent(page.index, raw_size, page.angle))
            transformed.append(page)
        return build_pdf(transformed)
