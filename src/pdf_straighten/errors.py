"""
Exceptions raised by the straightening pipeline.

Every stage raises one of these and never substitutes a default value for a
failure. Errors tied to a page carry its 0-based index in ``page``.
"""

from typing import Optional


class StraightenError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, page: Optional[int] = None):
        super().__init__(message)
        self.page = page

    def __str__(self):
        message = super().__str__()
        if self.page is None:
            return message
        return f"page {self.page + 1}: {message}"


class ExtractionError(StraightenError):
    """A page does not hold exactly one image, or the image stream is unreadable."""


class DecodeError(StraightenError):
    """Embedded image bytes could not be decoded."""


class EstimationError(StraightenError):
    """The angle estimator failed."""


class TransformError(StraightenError):
    """Rotating or orienting a page image failed."""


class EncodeError(TransformError):
    """Re-encoding a transformed page image failed."""


class AssemblyError(StraightenError):
    """The output document could not be built."""


class ClassificationError(StraightenError):
    """Text extraction or image enumeration failed while classifying a document."""


class ConfigError(StraightenError):
    """The configuration file could not be loaded."""
