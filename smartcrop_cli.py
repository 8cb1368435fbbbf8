#!/usr/bin/env python3
"""Content-aware crop worker.

Contract:
- Input: ``--input <image>`` plus an optional target ``--width`` / ``--height``.
- Output: one JSON object to stdout:
  {
    "crop": [x, y, width, height],
    "score": {"detail": ..., "saturation": ..., "skin": ..., "total": ...},
    "out_path": "..." | null,
    "size": [width, height] | null
  }
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

from PIL import Image

from smartcrop_analyzer import Analyzer
from smartcrop_config import CropSettings
from smartcrop_image import Interpolation, apply_crop

DEFAULT_QUALITY = 85


def log_err(message: str) -> None:
    print(message, file=sys.stderr)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find the most interesting crop of an image.")
    parser.add_argument("--input", required=True, help="Input image path")
    parser.add_argument("--output", default="", help="Optional path to write the cropped image to")
    parser.add_argument("--width", type=int, default=0, help="Crop width")
    parser.add_argument("--height", type=int, default=0, help="Crop height")
    parser.add_argument(
        "--resize",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Resize the written crop to the requested size",
    )
    parser.add_argument("--quality", type=int, default=DEFAULT_QUALITY, help="JPEG quality 0..100")
    parser.add_argument("--face-detection", action="store_true", help="Use a Haar cascade instead of skin tones")
    parser.add_argument("--haar-cascade", default="", help="Haar cascade XML path")
    parser.add_argument(
        "--interpolation",
        default=Interpolation.BICUBIC.value,
        choices=[item.value for item in Interpolation],
        help="Resampling filter for prescaling and resizing",
    )
    parser.add_argument("--debug", action="store_true", help="Write debug heat maps and log verbosely")
    parser.add_argument("--debug-dir", default=".", help="Directory for debug images")
    return parser.parse_args(argv)


def clamp_quality(value: int) -> int:
    return max(0, min(100, int(value)))


def crop_dimensions(img_w: int, img_h: int, width: int, height: int) -> tuple[int, int]:
    # Without a target, crop a square of the smaller image side.
    if width == 0 and height == 0:
        side = min(img_w, img_h)
        return side, side
    return width, height


def build_settings(args: argparse.Namespace) -> CropSettings:
    overrides: dict[str, object] = {"interpolation": Interpolation(args.interpolation)}
    if args.face_detection:
        overrides["face_detection"] = True
    if args.haar_cascade:
        overrides["haar_cascade_path"] = args.haar_cascade
    if args.debug:
        overrides["debug_mode"] = True
        overrides["debug_dir"] = args.debug_dir
    return CropSettings.from_env(**overrides)


def save_image(img: Image.Image, out_path: str, quality: int) -> str:
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    if out_path.lower().endswith((".jpg", ".jpeg")):
        img.convert("RGB").save(out_path, quality=clamp_quality(quality), optimize=True)
    else:
        img.save(out_path)
    return out_path


def run(args: argparse.Namespace) -> dict[str, Any]:
    source = args.input.strip()
    if not source:
        raise RuntimeError("input is required")
    if not os.path.isfile(source):
        raise RuntimeError(f"input image not found: {source}")

    settings = build_settings(args)

    with Image.open(source) as opened:
        img = opened.convert("RGB")

    width, height = crop_dimensions(img.width, img.height, args.width, args.height)
    crop, score = Analyzer(settings).find_best_crop(img, width, height)

    out_path: str | None = None
    size: list[int] | None = None
    out = args.output.strip()
    if out:
        if args.resize:
            cropped = apply_crop(img, crop, width, height, settings.interpolation)
        else:
            cropped = apply_crop(img, crop)
        out_path = save_image(cropped, out, args.quality)
        size = [int(cropped.width), int(cropped.height)]

    return {
        "crop": crop.as_list(),
        "score": score.as_dict(),
        "out_path": out_path,
        "size": size,
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        info = run(args)
        print(json.dumps(info, separators=(",", ":")))
        return 0
    except Exception as err:  # noqa: BLE001
        log_err(f"smartcrop failed: {err}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
