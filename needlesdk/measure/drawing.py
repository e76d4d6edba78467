from typing import Tuple
import numpy as np
import cv2

from .schema import MeasurementResult


def _to_bgr(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    return img.copy()


def _draw_tip(out: np.ndarray, pt: Tuple[int, int]):
    cv2.circle(out, pt, 8, (0, 0, 255), -1, cv2.LINE_AA)
    cv2.circle(out, pt, 10, (255, 255, 255), 2, cv2.LINE_AA)


def draw_measurement(img: np.ndarray, result: MeasurementResult, units: str = "mm") -> np.ndarray:
    """Annotated BGR copy of ``img``: tip markers, the measured segment and a length label."""
    out = _to_bgr(img)
    t1, t2 = result.tip1, result.tip2

    cv2.line(out, t1, t2, (0, 255, 0), 3, cv2.LINE_AA)
    _draw_tip(out, t1)
    _draw_tip(out, t2)

    label = f"{result.length:.3f} {units}"
    font, scale, thick = cv2.FONT_HERSHEY_SIMPLEX, 0.8, 2
    (tw, th), baseline = cv2.getTextSize(label, font, scale, thick)
    tx = (t1[0] + t2[0]) // 2 - tw // 2
    ty = (t1[1] + t2[1]) // 2 - th - 10
    # keep the label on-canvas for needles near the top edge
    tx = int(np.clip(tx, 5, max(5, out.shape[1] - tw - 5)))
    ty = int(np.clip(ty, th + 5, max(th + 5, out.shape[0] - baseline - 5)))

    cv2.rectangle(out, (tx - 5, ty - th - 5), (tx + tw + 5, ty + baseline + 5), (0, 0, 0), -1)
    cv2.putText(out, label, (tx, ty), font, scale, (0, 255, 255), thick, cv2.LINE_AA)
    return out
