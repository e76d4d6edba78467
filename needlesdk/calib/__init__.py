"""Calibration helpers for needlesdk.

This subpackage builds calibrated needle templates from an image, two tip
points and a known length, and persists them as an image + metadata pair.
"""

from .template import CalibratedTemplate, DEFAULT_PATCH_SIZE, extract_patch
from .builder import TemplateBuilder, DEFAULT_MARGIN
from .store import save_template, load_template, load_template_from_streams, load_template_from_bytes

__all__ = [
    "CalibratedTemplate",
    "TemplateBuilder",
    "DEFAULT_PATCH_SIZE",
    "DEFAULT_MARGIN",
    "extract_patch",
    "save_template",
    "load_template",
    "load_template_from_streams",
    "load_template_from_bytes",
]
