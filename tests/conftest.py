import cv2
import numpy as np
import pytest

from needlesdk import TemplateBuilder


def draw_needle(width=600, height=400, p1=(100, 200), p2=(500, 200), thickness=3):
    img = np.zeros((height, width, 3), dtype=np.uint8)
    cv2.line(img, p1, p2, (255, 255, 255), thickness)
    return img


@pytest.fixture
def needle_image():
    return draw_needle()


@pytest.fixture
def needle_template(needle_image):
    template = (TemplateBuilder()
                .set_image(needle_image)
                .set_reference_length(50.0)
                .set_point_a(100, 200)
                .set_point_b(500, 200)
                .set_template_id("test_template")
                .build())
    yield template
    template.close()


@pytest.fixture
def saved_template(tmp_path, needle_image):
    base = tmp_path / "test_template"
    (TemplateBuilder()
     .set_image(needle_image)
     .set_reference_length(50.0)
     .set_points((100, 200), (500, 200))
     .set_template_id("test_template")
     .build_and_save(base))
    return tmp_path / "test_template.png"


@pytest.fixture
def make_needle():
    return draw_needle
