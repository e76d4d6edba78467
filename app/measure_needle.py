#!/usr/bin/env python3
"""Measure needle length in an image against a saved template."""

import argparse
import logging
import sys

import cv2

from needlesdk import AnalyzerConfig, LengthAnalyzer, NeedleVisionError
from needlesdk.utils import read_image


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description=__doc__)
    ap.add_argument("--template", required=True, help="Template image (BASE.png, BASE.meta beside it).")
    ap.add_argument("--image", required=True, help="Target image.")
    ap.add_argument("--json", action="store_true", help="Print the machine-readable result.")
    ap.add_argument("--min-scale", type=float, default=0.6)
    ap.add_argument("--max-scale", type=float, default=1.3)
    ap.add_argument("--scale-step", type=float, default=0.1)
    ap.add_argument("--parallel", action="store_true", help="Search both tips on separate threads.")
    ap.add_argument("--save-vis", action="store_true", help="Write <image>_analyzed.<ext> next to the target.")
    ap.add_argument("--show", action="store_true", help="Display the annotated result.")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    cfg = AnalyzerConfig(
        min_scale=args.min_scale,
        max_scale=args.max_scale,
        scale_step=args.scale_step,
        parallel=args.parallel,
        save_visualization=args.save_vis,
    )
    try:
        with LengthAnalyzer.from_file(args.template, cfg) as analyzer:
            res = analyzer.analyze(args.image)
            vis = analyzer.generate_visualization(read_image(args.image), res) if args.show else None
    except NeedleVisionError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print(res.to_json(indent=2) if args.json else res.to_report())

    if vis is not None:
        cv2.imshow("Needle measurement", vis)
        print("[INFO] press any key to close")
        cv2.waitKey(0)
        cv2.destroyAllWindows()
    return 0


if __name__ == "__main__":
    sys.exit(main())
