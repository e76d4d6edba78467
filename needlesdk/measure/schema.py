# needlesdk/measure/schema.py
from __future__ import annotations
import json
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Sequence, Tuple

from ..errors import ConfigurationError

Point = Tuple[float, float]


@dataclass(frozen=True)
class MatchResult:
    location: Point    # centre of the best window, target image coords
    score: float       # TM_CCOEFF_NORMED peak, [-1, 1]
    scale: float       # winning scale factor
    size: int          # side of the scaled patch


@dataclass
class AnalyzerConfig:
    # scale search, inclusive range; `scales` overrides it when given
    min_scale: float = 0.6
    max_scale: float = 1.3
    scale_step: float = 0.1
    scales: Optional[Sequence[float]] = None
    parallel: bool = False             # run the two tip searches on two threads
    save_visualization: bool = False   # write <stem>_analyzed<ext> next to path targets

    @classmethod
    def from_dict(cls, cfg: Optional[Dict[str, Any]]) -> "AnalyzerConfig":
        cfg = dict(cfg or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(cfg) - known)
        if unknown:
            raise ConfigurationError(f"unknown analyzer config keys: {', '.join(unknown)}")
        return cls(**cfg)


@dataclass(frozen=True)
class MeasurementResult:
    length: float            # mm
    pixel_length: float
    point_a: Point
    point_b: Point
    confidence: float        # heuristic, [0.5, 0.99]
    processing_time: float   # seconds
    template_id: str

    @property
    def processing_time_ms(self) -> int:
        return int(round(self.processing_time * 1000.0))

    @property
    def tip1(self) -> Tuple[int, int]:
        return int(self.point_a[0]), int(self.point_a[1])

    @property
    def tip2(self) -> Tuple[int, int]:
        return int(self.point_b[0]), int(self.point_b[1])

    def __str__(self) -> str:
        return (f"MeasurementResult(length={self.length:.4f}mm, pixel={self.pixel_length:.3f}, "
                f"confidence={self.confidence:.3f}, time={self.processing_time_ms}ms)")

    def to_report(self) -> str:
        return (
            "Measurement result\n"
            "==================\n"
            f"Length:     {self.length:.4f} mm\n"
            f"Pixels:     {self.pixel_length:.3f} px\n"
            f"Tip 1:      ({self.point_a[0]:.2f}, {self.point_a[1]:.2f})\n"
            f"Tip 2:      ({self.point_b[0]:.2f}, {self.point_b[1]:.2f})\n"
            f"Confidence: {self.confidence * 100:.2f}%\n"
            f"Time:       {self.processing_time_ms} ms\n"
            f"Template:   {self.template_id}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lengthMm": round(self.length, 4),
            "pixelLength": round(self.pixel_length, 3),
            "tip1": {"x": round(self.point_a[0], 2), "y": round(self.point_a[1], 2)},
            "tip2": {"x": round(self.point_b[0], 2), "y": round(self.point_b[1], 2)},
            "confidence": round(self.confidence, 3),
            "processingTimeMs": self.processing_time_ms,
            "templateId": self.template_id,
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)
