"""Programmatic (non-GUI) construction of calibrated templates.

Example::

    template = (TemplateBuilder()
                .load_image("needle.jpg")
                .set_reference_length(50.0)
                .set_point_a(100, 200)
                .set_point_b(500, 200)
                .set_template_id("needle_50mm")
                .build())
"""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from ..errors import ConfigurationError, OutOfBoundsError
from ..utils import describe, is_valid, read_image
from .store import save_template
from .template import DEFAULT_PATCH_SIZE, CalibratedTemplate, Point

logger = logging.getLogger(__name__)

DEFAULT_MARGIN = 30


def crop_box(a: Point, b: Point, margin: int, width: int, height: int) -> Tuple[int, int, int, int]:
    """Bounding box (x1, y1, x2, y2) of two points grown by ``margin``, clamped to the image."""
    x1 = int(math.floor(min(a[0], b[0]))) - margin
    y1 = int(math.floor(min(a[1], b[1]))) - margin
    x2 = int(math.ceil(max(a[0], b[0]))) + margin
    y2 = int(math.ceil(max(a[1], b[1]))) + margin
    # the box always holds both point pixels, even with a zero margin
    x2 = max(x2, int(math.floor(max(a[0], b[0]))) + 1)
    y2 = max(y2, int(math.floor(max(a[1], b[1]))) + 1)
    x1 = max(0, x1)
    y1 = max(0, y1)
    x2 = min(width, x2)
    y2 = min(height, y2)
    return x1, y1, x2, y2


class TemplateBuilder:
    def __init__(self):
        self._image: Optional[np.ndarray] = None
        self._length: float = 0.0
        self._point_a: Optional[Point] = None
        self._point_b: Optional[Point] = None
        self._template_id = f"template_{int(time.time() * 1000)}"
        self._patch_size = DEFAULT_PATCH_SIZE
        self._margin = DEFAULT_MARGIN

    # ---- setters ----
    def set_image(self, image: np.ndarray) -> "TemplateBuilder":
        """Use a copy of ``image`` (BGR or gray); the caller keeps ownership of theirs."""
        self._image = None if image is None else np.array(image, copy=True)
        return self

    def load_image(self, path: Union[str, Path]) -> "TemplateBuilder":
        self._image = read_image(path)
        return self

    def set_reference_length(self, length_mm: float) -> "TemplateBuilder":
        if not length_mm > 0:
            raise ConfigurationError(f"reference length must be > 0, got {length_mm}")
        self._length = float(length_mm)
        return self

    def set_point_a(self, x: float, y: float) -> "TemplateBuilder":
        self._point_a = (float(x), float(y))
        return self

    def set_point_b(self, x: float, y: float) -> "TemplateBuilder":
        self._point_b = (float(x), float(y))
        return self

    def set_points(self, a: Point, b: Point) -> "TemplateBuilder":
        self.set_point_a(*a)
        return self.set_point_b(*b)

    def set_template_id(self, template_id: str) -> "TemplateBuilder":
        self._template_id = str(template_id)
        return self

    def set_patch_size(self, size: int) -> "TemplateBuilder":
        if int(size) <= 0:
            raise ConfigurationError(f"patch size must be > 0, got {size}")
        self._patch_size = int(size)
        return self

    def set_margin(self, margin: int) -> "TemplateBuilder":
        if int(margin) < 0:
            raise ConfigurationError(f"margin must be >= 0, got {margin}")
        self._margin = int(margin)
        return self

    # ---- terminal ----
    def _validate(self) -> None:
        if not is_valid(self._image):
            raise ConfigurationError(f"template image not set ({describe(self._image)})")
        if not self._length > 0:
            raise ConfigurationError("reference length not set or not positive")
        if self._patch_size <= 0:
            raise ConfigurationError(f"patch size must be > 0, got {self._patch_size}")
        if self._margin < 0:
            raise ConfigurationError(f"margin must be >= 0, got {self._margin}")
        if self._point_a is None or self._point_b is None:
            raise ConfigurationError("both reference points must be set")
        h, w = self._image.shape[:2]
        for name, (x, y) in (("point a", self._point_a), ("point b", self._point_b)):
            if not (0 <= x <= w - 1 and 0 <= y <= h - 1):
                raise OutOfBoundsError(f"{name} ({x}, {y}) is outside the {w}x{h} image")

    def build(self) -> CalibratedTemplate:
        self._validate()
        h, w = self._image.shape[:2]
        a, b = self._point_a, self._point_b
        x1, y1, x2, y2 = crop_box(a, b, self._margin, w, h)
        roi = self._image[y1:y2, x1:x2]

        template = CalibratedTemplate(
            self._template_id,
            roi,
            self._length,
            (a[0] - x1, a[1] - y1),
            (b[0] - x1, b[1] - y1),
            self._patch_size,
        )
        logger.info("built template %s: crop (%d,%d)-(%d,%d) of %dx%d, %.6f mm/px",
                    self._template_id, x1, y1, x2, y2, w, h, template.scale_ratio)
        return template

    def build_and_save(self, base_path: Union[str, Path]) -> Path:
        """Build, persist as ``<base>.png`` + ``<base>.meta`` and release; returns the meta path."""
        with self.build() as template:
            return save_template(template, base_path)

    def release(self) -> None:
        self._image = None
