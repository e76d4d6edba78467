"""Image decode/encode helpers shared by the calibration and measure code."""
from __future__ import annotations

import os
from typing import BinaryIO, Union

import cv2
import numpy as np

from .errors import ImageIOError, InvalidImageError

PathLike = Union[str, "os.PathLike[str]"]
Buffer = Union[bytes, bytearray, memoryview]


def is_valid(img) -> bool:
    return isinstance(img, np.ndarray) and img.ndim in (2, 3) and img.shape[0] > 0 and img.shape[1] > 0


def describe(img) -> str:
    if img is None:
        return "image is None"
    if not isinstance(img, np.ndarray) or img.size == 0:
        return "image is empty"
    ch = 1 if img.ndim == 2 else img.shape[2]
    return f"image[{img.shape[1]}x{img.shape[0]}, channels={ch}, dtype={img.dtype}]"


def to_uint8(img: np.ndarray) -> np.ndarray:
    """
    Bring ``img`` to 8-bit depth, the only depth the matcher works in.

    uint8 passes through unchanged; uint16 keeps its high byte; floats are
    read as [0, 1] when their max is <= 1, else as [0, 255], and are clipped.
    Any other dtype raises :class:`InvalidImageError`.
    """
    if img.dtype == np.uint8:
        return img
    if img.dtype == np.uint16:
        return (img >> 8).astype(np.uint8)
    if np.issubdtype(img.dtype, np.floating):
        f = np.nan_to_num(img.astype(np.float64), nan=0.0, posinf=255.0, neginf=0.0)
        if f.size and f.max() <= 1.0:
            f = f * 255.0
        return np.clip(np.rint(f), 0, 255).astype(np.uint8)
    raise InvalidImageError(f"unsupported image depth: {describe(img)}")


def to_gray(img: np.ndarray) -> np.ndarray:
    """Single-channel copy of ``img`` (BGR, BGRA or already gray)."""
    if img.ndim == 2:
        return img.copy()
    if img.shape[2] == 1:
        return img[:, :, 0].copy()
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def read_image(path: PathLike, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    p = os.fspath(path)
    img = cv2.imread(p, flags)
    if img is None or not is_valid(img):
        raise InvalidImageError(f"could not read image: {p}", source=p)
    return img


def decode_image(buf: Buffer, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    data = np.frombuffer(bytes(buf), dtype=np.uint8)
    if data.size == 0:
        raise InvalidImageError("could not decode image: empty buffer")
    try:
        img = cv2.imdecode(data, flags)
    except cv2.error as e:
        raise InvalidImageError(f"could not decode image: {e}") from e
    if img is None or not is_valid(img):
        raise InvalidImageError("could not decode image bytes")
    return img


def read_image_stream(stream: BinaryIO, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    try:
        data = stream.read()
    except OSError as e:
        raise ImageIOError(f"failed to read image stream: {e}") from e
    return decode_image(data, flags)


def encode_image(img: np.ndarray, ext: str = ".png") -> bytes:
    if not ext.startswith("."):
        ext = "." + ext
    ok, buf = cv2.imencode(ext, img)
    if not ok:
        raise ImageIOError(f"failed to encode image as {ext}")
    return buf.tobytes()


def to_png_bytes(img: np.ndarray) -> bytes:
    return encode_image(img, ".png")


def to_jpeg_bytes(img: np.ndarray) -> bytes:
    return encode_image(img, ".jpg")
