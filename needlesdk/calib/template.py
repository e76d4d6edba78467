"""Calibrated needle template: reference image, two tip points and mm/px ratio."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional, Tuple

import numpy as np

from ..errors import ConfigurationError, DegenerateCalibrationError, TemplateReleasedError
from ..utils import describe, is_valid, to_gray, to_uint8

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

DEFAULT_PATCH_SIZE = 30


def distance(p: Point, q: Point) -> float:
    return float(math.hypot(q[0] - p[0], q[1] - p[1]))


def extract_patch(gray: np.ndarray, center: Point, size: int) -> Tuple[np.ndarray, bool]:
    """
    Crop a ``size x size`` patch of ``gray`` centred on ``center``.

    Returns (patch, ok). When the centred window does not fit inside the
    image the patch is an all-zero block of the same size and dtype and
    ``ok`` is False; a partial crop is never returned.
    """
    h, w = gray.shape[:2]
    half = size // 2
    x1 = int(center[0]) - half
    y1 = int(center[1]) - half
    if x1 < 0 or y1 < 0 or x1 + size > w or y1 + size > h:
        return np.zeros((size, size), dtype=gray.dtype), False
    return gray[y1:y1 + size, x1:x1 + size].copy(), True


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


class CalibratedTemplate:
    """
    Immutable calibration artifact.

    Holds an owned 8-bit copy of the calibration image, its grayscale derivation,
    the two reference points, the mm/px ratio and the two tip patches used
    for matching. Arrays are flagged read-only, so one template can be shared
    by any number of concurrent analyses. Call :meth:`close` (or use ``with``)
    to drop the buffers.
    """

    def __init__(
        self,
        template_id: str,
        image: np.ndarray,
        reference_length: float,
        point_a: Point,
        point_b: Point,
        patch_size: int = DEFAULT_PATCH_SIZE,
        created_at: Optional[datetime] = None,
    ):
        if not is_valid(image):
            raise ConfigurationError(f"template image is empty ({describe(image)})")
        if not reference_length > 0:
            raise ConfigurationError(f"reference length must be > 0, got {reference_length}")
        if int(patch_size) <= 0:
            raise ConfigurationError(f"patch size must be > 0, got {patch_size}")

        pa = (float(point_a[0]), float(point_a[1]))
        pb = (float(point_b[0]), float(point_b[1]))
        pixel_dist = distance(pa, pb)
        if pixel_dist <= 0.0:
            raise DegenerateCalibrationError(f"reference points coincide at {pa}")

        self._template_id = str(template_id)
        self._reference_length = float(reference_length)
        self._point_a = pa
        self._point_b = pb
        self._patch_size = int(patch_size)
        self._reference_pixel_length = pixel_dist
        self._scale_ratio = self._reference_length / pixel_dist
        self._created_at = created_at or datetime.now()

        self._image = _frozen(np.array(to_uint8(image), copy=True))
        self._gray = _frozen(to_gray(self._image))

        patch_a, ok_a = extract_patch(self._gray, pa, self._patch_size)
        patch_b, ok_b = extract_patch(self._gray, pb, self._patch_size)
        for name, ok, p in (("tip1", ok_a, pa), ("tip2", ok_b, pb)):
            if not ok:
                logger.warning("%s patch at %s does not fit in %s; using blank patch",
                               name, p, describe(self._gray))
        self._patch_a = _frozen(patch_a)
        self._patch_b = _frozen(patch_b)
        self._closed = False

        logger.debug("template %s: %.3f mm over %.2f px -> %.6f mm/px",
                     self._template_id, self._reference_length, pixel_dist, self._scale_ratio)

    # ---- lifecycle ----
    def close(self) -> None:
        self._image = None
        self._gray = None
        self._patch_a = None
        self._patch_b = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "CalibratedTemplate":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _require_open(self) -> None:
        if self._closed:
            raise TemplateReleasedError(f"template {self._template_id} has been released")

    # ---- accessors ----
    @property
    def template_id(self) -> str:
        return self._template_id

    @property
    def reference_length(self) -> float:
        return self._reference_length

    @property
    def reference_point_a(self) -> Point:
        return self._point_a

    @property
    def reference_point_b(self) -> Point:
        return self._point_b

    @property
    def scale_ratio(self) -> float:
        """Millimetres per pixel."""
        return self._scale_ratio

    @property
    def reference_pixel_length(self) -> float:
        return self._reference_pixel_length

    @property
    def patch_size(self) -> int:
        return self._patch_size

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def reference_image(self) -> np.ndarray:
        self._require_open()
        return self._image.copy()

    @property
    def gray_image(self) -> np.ndarray:
        self._require_open()
        return self._gray.copy()

    @property
    def patch_a(self) -> np.ndarray:
        self._require_open()
        return self._patch_a

    @property
    def patch_b(self) -> np.ndarray:
        self._require_open()
        return self._patch_b

    @property
    def image_size(self) -> Tuple[int, int]:
        self._require_open()
        return self._image.shape[1], self._image.shape[0]

    def __repr__(self) -> str:
        return (f"CalibratedTemplate(id={self._template_id!r}, length={self._reference_length}mm, "
                f"mm_per_px={self._scale_ratio:.6f}, patch={self._patch_size})")
