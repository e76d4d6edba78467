"""Error types raised by needlesdk.

Every error derives from :class:`NeedleVisionError` and also from the builtin
exception that best describes it, so callers can catch either.
"""
from __future__ import annotations

from typing import Optional


class NeedleVisionError(Exception):
    """Base class for all needlesdk errors."""


class ConfigurationError(NeedleVisionError, ValueError):
    """Invalid builder or analyzer input (length, patch size, margin, scales)."""


class OutOfBoundsError(NeedleVisionError, ValueError):
    """A reference point lies outside the image extent."""


class DegenerateCalibrationError(NeedleVisionError, ValueError):
    """The two reference points coincide, so no mm/px ratio exists."""


class ImageIOError(NeedleVisionError, OSError):
    """Reading, decoding or writing an image or template file failed."""


class InvalidImageError(ImageIOError):
    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class TemplateFormatError(ImageIOError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class MatchFailureError(NeedleVisionError, RuntimeError):
    def __init__(self, patch_name: str, message: Optional[str] = None):
        super().__init__(message or f"feature match failed: {patch_name}")
        self.patch_name = patch_name


class TemplateReleasedError(NeedleVisionError, RuntimeError):
    """The template was used after close()."""


class RuntimeInitError(NeedleVisionError, RuntimeError):
    """The OpenCV runtime could not be initialised."""
