import json

import cv2
import numpy as np
import pytest

from needlesdk import (
    AnalyzerConfig,
    ConfigurationError,
    InvalidImageError,
    LengthAnalyzer,
    MatchFailureError,
    MeasurementResult,
)
from needlesdk.utils import to_png_bytes


def test_measures_synthetic_needle(needle_template, needle_image):
    res = LengthAnalyzer(needle_template).analyze(needle_image)
    assert isinstance(res, MeasurementResult)
    assert res.length == pytest.approx(50.0, abs=2.0)
    assert res.pixel_length == pytest.approx(400.0, abs=15.0)
    assert res.confidence > 0.5
    assert res.processing_time > 0
    assert res.template_id == "test_template"
    assert res.point_a == pytest.approx((100.0, 200.0), abs=3.0)
    assert res.point_b == pytest.approx((500.0, 200.0), abs=3.0)


def test_scaled_target(needle_template, needle_image):
    scaled = cv2.resize(needle_image, (480, 320))
    res = LengthAnalyzer(needle_template).analyze(scaled)
    assert res.length == pytest.approx(40.0, abs=5.0)


def test_self_consistency_on_reference_image(needle_template):
    res = LengthAnalyzer(needle_template).analyze(needle_template.reference_image)
    assert abs(res.length - needle_template.reference_length) / needle_template.reference_length <= 0.05


def test_idempotent(needle_template, needle_image):
    analyzer = LengthAnalyzer(needle_template)
    r1 = analyzer.analyze(needle_image)
    r2 = analyzer.analyze(needle_image)
    assert (r1.point_a, r1.point_b, r1.pixel_length, r1.length) == (r2.point_a, r2.point_b, r2.pixel_length, r2.length)


def test_does_not_mutate_template_or_target(needle_template, needle_image):
    before_patch = needle_template.patch_a.copy()
    before_img = needle_image.copy()
    LengthAnalyzer(needle_template).analyze(needle_image)
    assert np.array_equal(needle_template.patch_a, before_patch)
    assert np.array_equal(needle_image, before_img)


def test_parallel_matches_sequential(needle_template, needle_image):
    seq = LengthAnalyzer(needle_template).analyze(needle_image)
    par = LengthAnalyzer(needle_template, AnalyzerConfig(parallel=True)).analyze(needle_image)
    assert (par.point_a, par.point_b) == (seq.point_a, seq.point_b)


def test_accepts_gray_bytes_and_path(tmp_path, needle_template, needle_image):
    analyzer = LengthAnalyzer(needle_template)
    gray = cv2.cvtColor(needle_image, cv2.COLOR_BGR2GRAY)
    r_gray = analyzer.analyze(gray)
    r_bytes = analyzer.analyze(to_png_bytes(needle_image))
    path = tmp_path / "target.png"
    cv2.imwrite(str(path), needle_image)
    r_path = analyzer.analyze(path)
    r_str = analyzer.analyze(str(path))
    for r in (r_bytes, r_path, r_str):
        assert r.length == pytest.approx(r_gray.length)
    assert not (tmp_path / "target_analyzed.png").exists()


def test_saves_visualization_for_path_targets(tmp_path, needle_template, needle_image):
    path = tmp_path / "target.png"
    cv2.imwrite(str(path), needle_image)
    LengthAnalyzer(needle_template, {"save_visualization": True}).analyze(path)
    vis = cv2.imread(str(tmp_path / "target_analyzed.png"))
    assert vis is not None and vis.shape == needle_image.shape


def test_generate_visualization_leaves_input(needle_template, needle_image):
    analyzer = LengthAnalyzer(needle_template)
    res = analyzer.analyze(needle_image)
    before = needle_image.copy()
    out = analyzer.generate_visualization(needle_image, res)
    assert out.shape == needle_image.shape
    assert not np.array_equal(out, needle_image)
    assert np.array_equal(needle_image, before)


def test_from_file_and_streams(saved_template, needle_image):
    with LengthAnalyzer.from_file(saved_template) as a1:
        r1 = a1.analyze(needle_image)
        assert a1.template.template_id == "test_template"
    assert a1.template.closed

    meta = saved_template.with_suffix(".meta")
    with saved_template.open("rb") as img_f, meta.open("rb") as meta_f:
        a2 = LengthAnalyzer.from_streams(img_f, meta_f)
    r2 = a2.analyze(needle_image)
    assert r2.length == pytest.approx(r1.length)
    assert r1.length == pytest.approx(50.0, abs=2.0)


def test_custom_scales(needle_template, needle_image):
    analyzer = LengthAnalyzer(needle_template, AnalyzerConfig(scales=[1.0]))
    assert analyzer.scales == [1.0]
    assert analyzer.analyze(needle_image).length == pytest.approx(50.0, abs=1.0)
    assert len(LengthAnalyzer(needle_template).scales) == 8


def test_bad_config(needle_template):
    with pytest.raises(ConfigurationError):
        LengthAnalyzer(needle_template, {"scale_step": 0})
    with pytest.raises(ConfigurationError):
        LengthAnalyzer(needle_template, {"bogus": 1})


def test_invalid_targets(tmp_path, needle_template):
    analyzer = LengthAnalyzer(needle_template)
    with pytest.raises(InvalidImageError):
        analyzer.analyze(str(tmp_path / "invalid" / "image.jpg"))
    with pytest.raises(InvalidImageError):
        analyzer.analyze(b"")
    with pytest.raises(InvalidImageError):
        analyzer.analyze(b"\x00\x01garbage")
    with pytest.raises(InvalidImageError):
        analyzer.analyze(np.zeros((0, 10, 3), np.uint8))
    with pytest.raises(InvalidImageError):
        analyzer.analyze(12345)


def test_target_too_small(needle_template):
    with pytest.raises(MatchFailureError) as ei:
        LengthAnalyzer(needle_template).analyze(np.zeros((12, 12, 3), np.uint8))
    assert ei.value.patch_name == "tip1"


def test_result_serialisation(needle_template, needle_image):
    res = LengthAnalyzer(needle_template).analyze(needle_image)
    data = json.loads(res.to_json())
    assert set(data) == {"lengthMm", "pixelLength", "tip1", "tip2", "confidence", "processingTimeMs", "templateId"}
    assert set(data["tip1"]) == {"x", "y"}
    assert data["templateId"] == "test_template"
    assert data["lengthMm"] == pytest.approx(res.length, abs=1e-4)
    report = res.to_report()
    assert "mm" in report and "test_template" in report
    assert "MeasurementResult(length=" in str(res)


def test_draw_on_gray_image():
    from needlesdk.measure import draw_measurement
    res = MeasurementResult(12.5, 100.0, (5.0, 5.0), (105.0, 5.0), 0.85, 0.01, "t")
    out = draw_measurement(np.zeros((40, 120), np.uint8), res)
    assert out.shape == (40, 120, 3)
    assert out.any()


@pytest.mark.parametrize("convert", [
    lambda img: img.astype(np.uint16) * 257,
    lambda img: img.astype(np.float64) / 255,
    lambda img: img.astype(np.float32),
])
def test_other_bit_depth_targets(needle_template, needle_image, convert):
    res = LengthAnalyzer(needle_template).analyze(convert(needle_image))
    assert res.length == pytest.approx(50.0, abs=2.0)


def test_unsupported_target_depth(needle_template, needle_image):
    with pytest.raises(InvalidImageError):
        LengthAnalyzer(needle_template).analyze(needle_image.astype(np.int64))


def test_sixteen_bit_template_measures(needle_image):
    from needlesdk import CalibratedTemplate
    wide = needle_image.astype(np.uint16) * 257
    template = CalibratedTemplate("t16", wide, 50.0, (100, 200), (500, 200))
    res = LengthAnalyzer(template).analyze(wide)
    assert res.length == pytest.approx(50.0, abs=2.0)


def test_bad_config_closes_loaded_template(monkeypatch, saved_template):
    import needlesdk.measure.core as core
    loaded = []
    real = core.load_template

    def tracking_load(path):
        t = real(path)
        loaded.append(t)
        return t

    monkeypatch.setattr(core, "load_template", tracking_load)
    with pytest.raises(ConfigurationError):
        LengthAnalyzer.from_file(saved_template, {"scale_step": 0})
    assert len(loaded) == 1 and loaded[0].closed
