# needlesdk/measure/match.py
from __future__ import annotations
import logging
from typing import List, Optional, Sequence

import cv2
import numpy as np

from ..errors import ConfigurationError, MatchFailureError
from .schema import MatchResult

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCALE = 0.6
DEFAULT_MAX_SCALE = 1.3
DEFAULT_SCALE_STEP = 0.1


def generate_scales(min_scale: float = DEFAULT_MIN_SCALE,
                    max_scale: float = DEFAULT_MAX_SCALE,
                    step: float = DEFAULT_SCALE_STEP) -> List[float]:
    """Inclusive, ascending scale set; the default gives 0.6, 0.7, ..., 1.3."""
    if not step > 0:
        raise ConfigurationError(f"scale step must be > 0, got {step}")
    if not (min_scale > 0 and max_scale >= min_scale):
        raise ConfigurationError(f"invalid scale range [{min_scale}, {max_scale}]")
    # epsilon keeps float noise in (max-min)/step from dropping the last scale
    count = int(np.floor((max_scale - min_scale) / step + 1e-9)) + 1
    return [round(min_scale + i * step, 10) for i in range(count)]


def _check_scales(scales: Sequence[float]) -> List[float]:
    out = [float(s) for s in scales]
    if not out:
        raise ConfigurationError("scale set is empty")
    bad = [s for s in out if not s > 0]
    if bad:
        raise ConfigurationError(f"scale factors must be > 0, got {bad}")
    return out


class MatchEngine:
    """
    Multi-scale normalized cross-correlation search for one square patch.

    For every scale the patch is resized, correlated against the whole target
    with ``TM_CCOEFF_NORMED`` and the global peak kept; the scale with the
    highest peak wins. Stateless after construction, so one engine can serve
    concurrent searches.
    """

    def __init__(self, scales: Optional[Sequence[float]] = None):
        self.scales = _check_scales(scales) if scales is not None else generate_scales()

    def find_best_match(self, gray: np.ndarray, patch: np.ndarray, name: str = "patch") -> MatchResult:
        H, W = gray.shape[:2]
        side = int(patch.shape[0])
        if patch.dtype != gray.dtype:
            patch = patch.astype(gray.dtype)

        best_score = float("-inf")
        best_scale = 1.0
        best_size = side
        best_loc = None

        for s in self.scales:
            size = int(round(side * s))
            if size < 1 or size > W or size > H:
                logger.debug("%s: skip scale %.2f (%dpx patch vs %dx%d target)", name, s, size, W, H)
                continue

            try:
                scaled = cv2.resize(patch, (size, size), interpolation=cv2.INTER_LINEAR)
                resp = cv2.matchTemplate(gray, scaled, cv2.TM_CCOEFF_NORMED)
                _, max_val, _, max_loc = cv2.minMaxLoc(resp)
            except cv2.error as e:
                raise MatchFailureError(name, f"feature match failed: {name} at scale {s:.2f}: {e}") from e
            logger.debug("%s: scale %.2f -> %.4f at %s", name, s, max_val, max_loc)

            if np.isfinite(max_val) and max_val > best_score:
                best_score = float(max_val)
                best_scale = s
                best_size = size
                best_loc = max_loc

        if best_loc is None:
            raise MatchFailureError(
                name, f"feature match failed: {name} (no valid window for {side}px patch in {W}x{H} target)")

        center = (best_loc[0] + best_size / 2.0, best_loc[1] + best_size / 2.0)
        logger.debug("%s: best scale %.2f score %.4f centre (%.1f, %.1f)",
                     name, best_scale, best_score, center[0], center[1])
        return MatchResult(location=center, score=best_score, scale=best_scale, size=best_size)
