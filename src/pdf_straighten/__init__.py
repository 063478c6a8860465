"""
Scanned PDF Straightening Tools

Corrects small skew in scanned PDFs, one page image at a time:
- document.py: Scanned-document check, per-page angles, straightening
- deskew.py: Skew angle estimation and 90° normalization
- transform.py: Rotation with canvas sizing and JPEG re-encoding
- assemble.py: Rebuild a PDF from page images

Usage:
    pdf-straighten input.pdf [--images] [--config config.toml] [--verbose]
    pdf-straighten-dump input_dir output_dir [--config config.toml] [--verbose]
"""

from .assemble import build_pdf
from .deskew import ProjectionProfileEstimator, normalize_angle, resolve_angles
from .document import Document, PageEvent, PageImage
from .errors import (
    AssemblyError,
    ClassificationError,
    DecodeError,
    EncodeError,
    EstimationError,
    ExtractionError,
    StraightenError,
    TransformError,
)
from .orient import NullOrienter, TesseractOrienter
from .transform import TransformedPage, canvas_size, straighten_image

__version__ = "0.1.0"
__description__ = "Straighten skewed pages of scanned PDF documents"
