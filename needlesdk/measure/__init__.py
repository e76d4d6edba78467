# needlesdk/measure/__init__.py
"""
Public API for needlesdk.measure

Entry point:
- LengthAnalyzer(template, config).analyze(path | bytes | ndarray) -> MeasurementResult

Lower-level pieces (MatchEngine, generate_scales, compute_confidence,
draw_measurement) are re-exported for callers that drive matching directly.
"""

from .schema import AnalyzerConfig, MatchResult, MeasurementResult
from .match import MatchEngine, generate_scales
from .core import LengthAnalyzer, compute_confidence
from .drawing import draw_measurement

__all__ = [
    "AnalyzerConfig",
    "MatchResult",
    "MeasurementResult",
    "MatchEngine",
    "generate_scales",
    "LengthAnalyzer",
    "compute_confidence",
    "draw_measurement",
]
