# needlesdk/measure/core.py
from __future__ import annotations
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional, Tuple, Union

import numpy as np
import cv2

from ..calib.store import load_template, load_template_from_streams
from ..calib.template import CalibratedTemplate, distance
from ..errors import ImageIOError, InvalidImageError
from ..runtime import ensure_initialized
from ..utils import decode_image, describe, is_valid, read_image, to_gray, to_uint8
from .drawing import draw_measurement
from .match import MatchEngine, generate_scales
from .schema import AnalyzerConfig, MatchResult, MeasurementResult

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.85
MIN_CONFIDENCE = 0.5
MAX_CONFIDENCE = 0.99

Target = Union[str, "os.PathLike[str]", bytes, bytearray, memoryview, np.ndarray]


def compute_confidence(pixel_length: float, reference_pixel_length: float) -> float:
    """
    Plausibility heuristic, not a statistical confidence.

    Penalises measured pixel lengths that stray from the template's own
    reference pixel length; always clamped to [0.5, 0.99].
    """
    hi = max(pixel_length, reference_pixel_length)
    ratio = min(pixel_length, reference_pixel_length) / hi if hi > 0 else 0.0
    return float(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, BASE_CONFIDENCE * ratio)))


def _load_target(target: Target) -> Tuple[np.ndarray, Optional[str]]:
    """Decode or clone the target; returns (image, source path or None)."""
    if isinstance(target, np.ndarray):
        if not is_valid(target):
            raise InvalidImageError(f"target image is empty ({describe(target)})")
        return to_uint8(target.copy()), None
    if isinstance(target, (bytes, bytearray, memoryview)):
        return decode_image(target), None
    if isinstance(target, (str, os.PathLike)):
        p = os.fspath(target)
        return read_image(p), p
    raise InvalidImageError(f"unsupported target type: {type(target).__name__}")


def analyzed_path(path: str) -> str:
    root, ext = os.path.splitext(path)
    return f"{root}_analyzed{ext or '.png'}"


class LengthAnalyzer:
    """
    Measures needle length in target images against one calibrated template.

    The analyzer never mutates its template; ``analyze`` may be called from
    several threads at once.
    """

    def __init__(self, template: CalibratedTemplate, config: Optional[Union[AnalyzerConfig, Dict[str, Any]]] = None,
                 *, owns_template: bool = False):
        ensure_initialized()
        if config is None:
            config = AnalyzerConfig()
        elif isinstance(config, dict):
            config = AnalyzerConfig.from_dict(config)
        self.config = config
        self.template = template
        self._owns_template = owns_template
        scales = config.scales if config.scales is not None else generate_scales(
            config.min_scale, config.max_scale, config.scale_step)
        self.engine = MatchEngine(scales)

    @classmethod
    def _owning(cls, template: CalibratedTemplate, config) -> "LengthAnalyzer":
        try:
            return cls(template, config, owns_template=True)
        except Exception:
            template.close()
            raise

    @classmethod
    def from_file(cls, template_image_path: Union[str, Path], config=None) -> "LengthAnalyzer":
        return cls._owning(load_template(template_image_path), config)

    @classmethod
    def from_streams(cls, image_stream: BinaryIO, meta_stream, config=None) -> "LengthAnalyzer":
        return cls._owning(load_template_from_streams(image_stream, meta_stream), config)

    @property
    def scales(self):
        return list(self.engine.scales)

    # ---- lifecycle ----
    def close(self) -> None:
        if self._owns_template:
            self.template.close()

    def __enter__(self) -> "LengthAnalyzer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- measuring ----
    def _find_tips(self, gray: np.ndarray) -> Tuple[MatchResult, MatchResult]:
        patch_a, patch_b = self.template.patch_a, self.template.patch_b
        if self.config.parallel:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="needle-match") as pool:
                fa = pool.submit(self.engine.find_best_match, gray, patch_a, "tip1")
                fb = pool.submit(self.engine.find_best_match, gray, patch_b, "tip2")
                return fa.result(), fb.result()
        return (self.engine.find_best_match(gray, patch_a, "tip1"),
                self.engine.find_best_match(gray, patch_b, "tip2"))

    def analyze(self, target: Target) -> MeasurementResult:
        """
        Measure the needle in ``target``.

        Args:
            target: image path, encoded image bytes, or an in-memory BGR/gray array.

        Returns:
            MeasurementResult in the template's length unit (mm).

        Raises:
            InvalidImageError: the target cannot be read/decoded or is empty.
            MatchFailureError: a tip patch found no valid window at any scale.
        """
        t0 = time.perf_counter()
        image, src = _load_target(target)
        gray = to_gray(image)

        m1, m2 = self._find_tips(gray)
        pixel_len = distance(m1.location, m2.location)
        length = pixel_len * self.template.scale_ratio
        confidence = compute_confidence(pixel_len, self.template.reference_pixel_length)
        elapsed = time.perf_counter() - t0

        result = MeasurementResult(
            length=length,
            pixel_length=pixel_len,
            point_a=m1.location,
            point_b=m2.location,
            confidence=confidence,
            processing_time=elapsed,
            template_id=self.template.template_id,
        )
        logger.info("template %s: %.4f mm (%.2f px, scales %.2f/%.2f, scores %.3f/%.3f, conf %.3f) in %d ms",
                    result.template_id, length, pixel_len, m1.scale, m2.scale, m1.score, m2.score,
                    confidence, result.processing_time_ms)

        if src is not None and self.config.save_visualization:
            self.save_visualization(image, result, analyzed_path(src))
        return result

    def generate_visualization(self, image: np.ndarray, result: MeasurementResult) -> np.ndarray:
        return draw_measurement(image, result)

    def save_visualization(self, image: np.ndarray, result: MeasurementResult, out_path: str) -> str:
        out = self.generate_visualization(image, result)
        if not cv2.imwrite(out_path, out):
            raise ImageIOError(f"failed to write visualization: {out_path}")
        logger.debug("wrote visualization %s", out_path)
        return out_path
