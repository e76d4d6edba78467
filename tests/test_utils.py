import io

import numpy as np
import pytest

from needlesdk import InvalidImageError
from needlesdk import utils


def test_png_bytes_decode_losslessly():
    img = np.random.default_rng(1).integers(0, 256, (20, 30, 3), dtype=np.uint8)
    assert np.array_equal(utils.decode_image(utils.to_png_bytes(img)), img)
    assert np.array_equal(utils.read_image_stream(io.BytesIO(utils.to_png_bytes(img))), img)


def test_jpeg_bytes_have_jpeg_magic():
    img = np.zeros((8, 8, 3), np.uint8)
    assert utils.to_jpeg_bytes(img)[:2] == b"\xff\xd8"
    assert utils.encode_image(img, "png")[:4] == b"\x89PNG"


@pytest.mark.parametrize("buf", [b"", b"garbage", bytearray(b"\x89PNG\r\n")])
def test_decode_failures(buf):
    with pytest.raises(InvalidImageError):
        utils.decode_image(buf)


def test_to_gray_variants():
    bgr = np.zeros((4, 5, 3), np.uint8)
    bgra = np.zeros((4, 5, 4), np.uint8)
    gray = np.ones((4, 5), np.uint8)
    assert utils.to_gray(bgr).shape == (4, 5)
    assert utils.to_gray(bgra).shape == (4, 5)
    out = utils.to_gray(gray)
    assert np.array_equal(out, gray) and out is not gray
    assert utils.to_gray(gray[:, :, None]).shape == (4, 5)


def test_is_valid_and_describe():
    assert utils.is_valid(np.zeros((2, 3), np.uint8))
    assert not utils.is_valid(np.zeros((0, 3), np.uint8))
    assert not utils.is_valid(None)
    assert utils.describe(None) == "image is None"
    assert utils.describe(np.zeros((2, 3, 3), np.uint8)) == "image[3x2, channels=3, dtype=uint8]"


def test_to_uint8_depths():
    img = np.array([[0, 128, 255]], np.uint8)
    assert utils.to_uint8(img) is img
    assert np.array_equal(utils.to_uint8(img.astype(np.uint16) * 257), img)
    assert np.array_equal(utils.to_uint8(img.astype(np.float64) / 255), img)
    assert np.array_equal(utils.to_uint8(img.astype(np.float32)), img)
    assert np.array_equal(utils.to_uint8(np.array([[np.nan, 300.0, -4.0]])), [[0, 255, 0]])
    with pytest.raises(InvalidImageError):
        utils.to_uint8(img.astype(np.int16))


def test_module_docstring():
    assert utils.__doc__.startswith("Image decode/encode helpers")
