"""Debug overlays of detector heat and the chosen crop."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from smartcrop_scoring import importance_map

if TYPE_CHECKING:
    from smartcrop_config import CropSettings
    from smartcrop_scoring import Crop

logger = logging.getLogger(__name__)

# Edges, skin, saturation, then a few extra for custom detectors.
DEBUG_COLORS: list[tuple[int, int, int]] = [
    (0, 255, 0),
    (255, 0, 0),
    (0, 0, 255),
    (255, 128, 0),
    (128, 0, 128),
    (64, 255, 255),
    (255, 64, 255),
    (255, 255, 64),
    (255, 255, 255),
]


class DebugImage:
    """Accumulates detector heat maps into one color-coded RGB image."""

    def __init__(self, height: int, width: int, out_dir: str = ".") -> None:
        self.img = np.zeros((height, width, 3), dtype=np.uint8)
        self.out_dir = out_dir
        self._next_color = 0

    def _pop_color(self) -> tuple[int, int, int]:
        color = DEBUG_COLORS[self._next_color]
        self._next_color = (self._next_color + 1) % len(DEBUG_COLORS)
        return color

    def add_detected(self, heat: np.ndarray) -> None:
        color = np.asarray(self._pop_color(), dtype=np.float64)
        h = min(self.img.shape[0], heat.shape[0])
        w = min(self.img.shape[1], heat.shape[1])
        region = heat[:h, :w]
        hot = region > 0
        scaled = (region[..., None].astype(np.float64) / 255.0) * color
        current = self.img[:h, :w]
        current[hot] = np.clip(scaled[hot], 0, 255).astype(np.uint8)

    def draw_crop(self, crop: Crop, settings: CropSettings) -> None:
        """Tint pixels green where the crop's importance is positive, red where negative."""
        height, width = self.img.shape[:2]
        ys, xs = np.mgrid[0:height, 0:width]
        imp = importance_map(crop, xs, ys, settings)

        out = self.img.astype(np.float64)
        out[..., 1] += np.where(imp > 0, imp * 32.0, 0.0)
        out[..., 0] += np.where(imp < 0, imp * -64.0, 0.0)
        self.img = np.clip(out, 0, 255).astype(np.uint8)

    def write(self, debug_type: str) -> str:
        return write_png(self.img, os.path.join(self.out_dir, f"smartcrop_{debug_type}.png"))


def write_png(image: np.ndarray, path: str) -> str:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    Image.fromarray(image).save(path, format="PNG")
    logger.debug("Wrote debug image %s", path)
    return path
