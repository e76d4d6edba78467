"""needlesdk: template-based needle length measurement on OpenCV."""

from .errors import (
    NeedleVisionError,
    ConfigurationError,
    OutOfBoundsError,
    DegenerateCalibrationError,
    ImageIOError,
    InvalidImageError,
    TemplateFormatError,
    MatchFailureError,
    TemplateReleasedError,
    RuntimeInitError,
)
from .calib import CalibratedTemplate, TemplateBuilder, load_template, save_template
from .measure import AnalyzerConfig, LengthAnalyzer, MeasurementResult
from .runtime import ensure_initialized

__version__ = "0.1.0"

__all__ = [
    "NeedleVisionError",
    "ConfigurationError",
    "OutOfBoundsError",
    "DegenerateCalibrationError",
    "ImageIOError",
    "InvalidImageError",
    "TemplateFormatError",
    "MatchFailureError",
    "TemplateReleasedError",
    "RuntimeInitError",
    "CalibratedTemplate",
    "TemplateBuilder",
    "load_template",
    "save_template",
    "AnalyzerConfig",
    "LengthAnalyzer",
    "MeasurementResult",
    "ensure_initialized",
]
