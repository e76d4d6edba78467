#!/usr/bin/env python3
"""Build a calibrated needle template from one image and two tip points."""

import argparse
import logging
import sys

from needlesdk import NeedleVisionError, TemplateBuilder
from needlesdk.calib import DEFAULT_MARGIN, DEFAULT_PATCH_SIZE


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description=__doc__)
    ap.add_argument("--image", required=True, help="Calibration image with the needle in view.")
    ap.add_argument("--length", type=float, required=True, help="Known needle length in mm.")
    ap.add_argument("--p1", type=float, nargs=2, required=True, metavar=("X", "Y"), help="Tip 1 pixel coords.")
    ap.add_argument("--p2", type=float, nargs=2, required=True, metavar=("X", "Y"), help="Tip 2 pixel coords.")
    ap.add_argument("--out", required=True, help="Output base path (writes BASE.png and BASE.meta).")
    ap.add_argument("--id", default=None, help="Template id (default: template_<millis>).")
    ap.add_argument("--patch-size", type=int, default=DEFAULT_PATCH_SIZE)
    ap.add_argument("--margin", type=int, default=DEFAULT_MARGIN, help="Crop margin around the tips in px.")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    builder = TemplateBuilder()
    try:
        builder.load_image(args.image)
        builder.set_reference_length(args.length)
        builder.set_points(tuple(args.p1), tuple(args.p2))
        builder.set_patch_size(args.patch_size)
        builder.set_margin(args.margin)
        if args.id:
            builder.set_template_id(args.id)
        meta = builder.build_and_save(args.out)
    except NeedleVisionError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    finally:
        builder.release()

    print(f"[INFO] template written: {args.out}.png, {meta}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
