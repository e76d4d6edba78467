"""Template persistence: ``<base>.png`` image plus ``<base>.meta`` key=value file."""

from __future__ import annotations

import io
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, Optional, TextIO, Union

import cv2

from ..errors import ImageIOError, TemplateFormatError
from ..utils import decode_image, read_image, read_image_stream
from .template import DEFAULT_PATCH_SIZE, CalibratedTemplate

logger = logging.getLogger(__name__)

IMAGE_EXT = ".png"
META_EXT = ".meta"

KEY_ID = "template.id"
KEY_CREATED = "template.created"
KEY_LENGTH = "needle.length.mm"
KEY_TIP1_X, KEY_TIP1_Y = "tip1.x", "tip1.y"
KEY_TIP2_X, KEY_TIP2_Y = "tip2.x", "tip2.y"
KEY_PATCH = "tip.patch.size"
KEY_MM_PER_PX = "mm.per.pixel"

REQUIRED_FLOATS = (KEY_LENGTH, KEY_TIP1_X, KEY_TIP1_Y, KEY_TIP2_X, KEY_TIP2_Y)


def meta_path_for(image_path: Union[str, Path]) -> Path:
    return Path(image_path).expanduser().with_suffix(META_EXT)


# ---- metadata text ----
def parse_meta(lines: Iterable[str]) -> Dict[str, str]:
    """Parse ``key=value`` (or ``key: value``) lines; ``#`` and ``!`` start comments."""
    props: Dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if not line or line[0] in "#!":
            continue
        cut = [i for i in (line.find("="), line.find(":")) if i >= 0]
        if not cut:
            props[line] = ""
            continue
        i = min(cut)
        props[line[:i].strip()] = line[i + 1:].strip()
    return props


def format_meta(template: CalibratedTemplate) -> str:
    a, b = template.reference_point_a, template.reference_point_b
    rows = [
        "# needle template metadata",
        f"{KEY_ID}={template.template_id}",
        f"{KEY_CREATED}={template.created_at.isoformat(timespec='seconds')}",
        f"{KEY_LENGTH}={template.reference_length!r}",
        f"{KEY_TIP1_X}={a[0]!r}",
        f"{KEY_TIP1_Y}={a[1]!r}",
        f"{KEY_TIP2_X}={b[0]!r}",
        f"{KEY_TIP2_Y}={b[1]!r}",
        f"{KEY_PATCH}={template.patch_size}",
        f"{KEY_MM_PER_PX}={template.scale_ratio!r}",
    ]
    return "\n".join(rows) + "\n"


def _float(props: Dict[str, str], key: str) -> float:
    if key not in props or props[key] == "":
        raise TemplateFormatError(f"template metadata is missing '{key}'", field=key)
    try:
        val = float(props[key])
    except ValueError as e:
        raise TemplateFormatError(f"template metadata '{key}' is not a number: {props[key]!r}", field=key) from e
    if not math.isfinite(val):
        raise TemplateFormatError(f"template metadata '{key}' is not finite: {props[key]!r}", field=key)
    return val


def template_from_meta(image, props: Dict[str, str]) -> CalibratedTemplate:
    """Build a template from a decoded image and parsed metadata."""
    vals = {k: _float(props, k) for k in REQUIRED_FLOATS}
    if vals[KEY_LENGTH] <= 0:
        raise TemplateFormatError(f"template metadata '{KEY_LENGTH}' must be > 0, got {props[KEY_LENGTH]!r}",
                                  field=KEY_LENGTH)

    h, w = image.shape[:2]
    for kx, ky in ((KEY_TIP1_X, KEY_TIP1_Y), (KEY_TIP2_X, KEY_TIP2_Y)):
        for key, val, hi in ((kx, vals[kx], w - 1), (ky, vals[ky], h - 1)):
            if not 0 <= val <= hi:
                raise TemplateFormatError(
                    f"template metadata '{key}'={props[key]!r} is outside the {w}x{h} template image", field=key)

    patch_size = DEFAULT_PATCH_SIZE
    if props.get(KEY_PATCH):
        try:
            patch_size = int(props[KEY_PATCH])
        except ValueError as e:
            raise TemplateFormatError(f"template metadata '{KEY_PATCH}' is not an integer: {props[KEY_PATCH]!r}",
                                      field=KEY_PATCH) from e
        if patch_size <= 0:
            raise TemplateFormatError(f"template metadata '{KEY_PATCH}' must be > 0, got {patch_size}",
                                      field=KEY_PATCH)

    created: Optional[datetime] = None
    if props.get(KEY_CREATED):
        try:
            created = datetime.fromisoformat(props[KEY_CREATED])
        except ValueError:
            logger.debug("ignoring unparsable %s=%r", KEY_CREATED, props[KEY_CREATED])

    template = CalibratedTemplate(
        props.get(KEY_ID) or "UNKNOWN",
        image,
        vals[KEY_LENGTH],
        (vals[KEY_TIP1_X], vals[KEY_TIP1_Y]),
        (vals[KEY_TIP2_X], vals[KEY_TIP2_Y]),
        patch_size,
        created_at=created,
    )

    stored = props.get(KEY_MM_PER_PX)
    if stored:
        try:
            stored_ratio = float(stored)
        except ValueError:
            stored_ratio = float("nan")
        if not math.isclose(stored_ratio, template.scale_ratio, rel_tol=1e-6):
            logger.warning("template %s: stored %s=%s differs from recomputed %.9f",
                           template.template_id, KEY_MM_PER_PX, stored, template.scale_ratio)
    return template


# ---- files ----
def save_template(template: CalibratedTemplate, base_path: Union[str, Path]) -> Path:
    """Write ``<base>.png`` and ``<base>.meta``; returns the metadata path."""
    base = Path(base_path).expanduser()
    base.parent.mkdir(parents=True, exist_ok=True)
    img_path = base.parent / (base.name + IMAGE_EXT)
    meta_path = base.parent / (base.name + META_EXT)

    if not cv2.imwrite(str(img_path), template.reference_image):
        raise ImageIOError(f"failed to write template image: {img_path}")
    try:
        with meta_path.open("w", encoding="utf-8") as f:
            f.write(format_meta(template))
    except OSError as e:
        raise ImageIOError(f"failed to write template metadata: {meta_path}") from e

    logger.info("saved template %s to %s", template.template_id, img_path)
    return meta_path


def load_template(image_path: Union[str, Path]) -> CalibratedTemplate:
    """Load a template from its image file and the sibling ``.meta`` file."""
    p = Path(image_path).expanduser()
    image = read_image(p)
    meta_path = meta_path_for(p)
    try:
        with meta_path.open("r", encoding="utf-8") as f:
            props = parse_meta(f)
    except OSError as e:
        raise TemplateFormatError(f"could not read template metadata: {meta_path}") from e

    template = template_from_meta(image, props)
    logger.info("loaded template %s from %s", template.template_id, p)
    return template


def load_template_from_streams(image_stream: BinaryIO, meta_stream: Union[BinaryIO, TextIO]) -> CalibratedTemplate:
    """Load a template from an encoded image stream and a metadata stream (bytes or text)."""
    image = read_image_stream(image_stream)
    try:
        raw = meta_stream.read()
    except OSError as e:
        raise TemplateFormatError("could not read template metadata stream") from e
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TemplateFormatError("template metadata stream is not UTF-8 text") from e
    template = template_from_meta(image, parse_meta(io.StringIO(raw)))
    logger.info("loaded template %s from streams", template.template_id)
    return template


def load_template_from_bytes(image_bytes: bytes, meta_text: Union[str, bytes]) -> CalibratedTemplate:
    if isinstance(meta_text, (bytes, bytearray)):
        meta_text = meta_text.decode("utf-8")
    return template_from_meta(decode_image(image_bytes), parse_meta(meta_text.splitlines()))
