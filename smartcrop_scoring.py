"""Crop candidates, positional importance and per-candidate scoring.

The heat canvas is an HxWx3 uint8 array: R holds skin (or face) heat,
G holds edge/detail heat and B holds saturation heat.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from smartcrop_config import CropSettings


@dataclass(frozen=True)
class Crop:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x < self.right and self.y <= y < self.bottom

    def as_box(self) -> tuple[int, int, int, int]:
        """Return ``(x0, y0, x1, y1)`` with exclusive right/bottom edges."""
        return self.x, self.y, self.right, self.bottom

    def as_list(self) -> list[int]:
        return [self.x, self.y, self.width, self.height]


@dataclass(frozen=True)
class Score:
    detail: float = 0.0
    saturation: float = 0.0
    skin: float = 0.0
    total: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {
            "detail": float(self.detail),
            "saturation": float(self.saturation),
            "skin": float(self.skin),
            "total": float(self.total),
        }


@dataclass(frozen=True)
class ChannelWeights:
    """Weights and biases the scorer folds into the total."""

    detail_weight: float = 0.0
    skin_weight: float = 0.0
    skin_bias: float = 0.0
    saturation_weight: float = 0.0
    saturation_bias: float = 0.0


@dataclass(frozen=True)
class HeatSamples:
    """Heat canvas read at the scoring stride, flattened in row-major order."""

    xs: np.ndarray
    ys: np.ndarray
    skin: np.ndarray
    detail: np.ndarray
    saturation: np.ndarray


# ---------------------------------------------------------------------------
# Importance field
# ---------------------------------------------------------------------------


def thirds(x: float) -> float:
    x = ((math.fmod(x - (1.0 / 3.0) + 1.0, 2.0) * 0.5) - 0.5) * 16.0
    return max(1.0 - x * x, 0.0)


def _thirds_array(x: np.ndarray) -> np.ndarray:
    x = ((np.fmod(x - (1.0 / 3.0) + 1.0, 2.0) * 0.5) - 0.5) * 16.0
    return np.maximum(1.0 - x * x, 0.0)


def importance(crop: Crop, x: float, y: float, settings: CropSettings) -> float:
    """Attention weight of pixel ``(x, y)`` for a candidate ``crop``.

    Pixels outside the crop all get ``settings.outside_importance``. Inside,
    the weight peaks at the centre, drops sharply within ``edge_radius`` of
    the border and, with ``rule_of_thirds`` on, gets a bonus near the thirds
    gridlines.
    """
    if not crop.contains(x, y):
        return settings.outside_importance

    xf = (x - crop.x) / crop.width
    yf = (y - crop.y) / crop.height

    px = abs(0.5 - xf) * 2.0
    py = abs(0.5 - yf) * 2.0

    dx = max(px - 1.0 + settings.edge_radius, 0.0)
    dy = max(py - 1.0 + settings.edge_radius, 0.0)
    d = (dx * dx + dy * dy) * settings.edge_weight

    s = 1.41 - math.sqrt(px * px + py * py)
    if settings.rule_of_thirds:
        s += (max(0.0, s + d + 0.5) * 1.2) * (thirds(px) + thirds(py))

    return s + d


def importance_map(crop: Crop, xs: np.ndarray, ys: np.ndarray, settings: CropSettings) -> np.ndarray:
    """Vectorised ``importance`` over matching arrays of sample coordinates."""
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    inside = (xs >= crop.x) & (xs < crop.right) & (ys >= crop.y) & (ys < crop.bottom)

    px = np.abs(0.5 - (xs - crop.x) / crop.width) * 2.0
    py = np.abs(0.5 - (ys - crop.y) / crop.height) * 2.0

    dx = np.maximum(px - 1.0 + settings.edge_radius, 0.0)
    dy = np.maximum(py - 1.0 + settings.edge_radius, 0.0)
    d = (dx * dx + dy * dy) * settings.edge_weight

    s = 1.41 - np.sqrt(px * px + py * py)
    if settings.rule_of_thirds:
        s = s + (np.maximum(0.0, s + d + 0.5) * 1.2) * (_thirds_array(px) + _thirds_array(py))

    return np.where(inside, s + d, settings.outside_importance)


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


def iter_crops(
    width: int,
    height: int,
    crop_width: float,
    crop_height: float,
    min_scale: float,
    settings: CropSettings,
) -> Iterator[Crop]:
    """Yield candidate crops: scale descending, then y, then x ascending.

    A zero ``crop_width`` or ``crop_height`` falls back to the smaller image
    dimension. Calling again restarts the same sequence.
    """
    min_dimension = float(min(width, height))
    crop_w = float(crop_width) if crop_width else min_dimension
    crop_h = float(crop_height) if crop_height else min_dimension

    scale = settings.max_scale
    while scale >= min_scale:
        scaled_w = crop_w * scale
        scaled_h = crop_h * scale
        cw = int(scaled_w)
        ch = int(scaled_h)
        if cw > 0 and ch > 0:
            y = 0
            while y + scaled_h <= height:
                x = 0
                while x + scaled_w <= width:
                    yield Crop(x=x, y=y, width=cw, height=ch)
                    x += settings.step
                y += settings.step
        scale -= settings.scale_step


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def sample_canvas(canvas: np.ndarray, settings: CropSettings) -> HeatSamples:
    """Read the heat canvas once at the scoring stride."""
    height, width = canvas.shape[:2]
    ds = settings.score_down_sample
    ys_axis = np.arange(0, height - ds + 1, ds)
    xs_axis = np.arange(0, width - ds + 1, ds)
    ys, xs = np.meshgrid(ys_axis, xs_axis, indexing="ij")

    picked = canvas[ys, xs].astype(np.float64) / 255.0
    return HeatSamples(
        xs=xs.ravel(),
        ys=ys.ravel(),
        skin=picked[..., 0].ravel(),
        detail=picked[..., 1].ravel(),
        saturation=picked[..., 2].ravel(),
    )


def score_crop(crop: Crop, samples: HeatSamples, weights: ChannelWeights, settings: CropSettings) -> Score:
    imp = importance_map(crop, samples.xs, samples.ys, settings)
    det = samples.detail

    skin = float(np.sum(samples.skin * (det + weights.skin_bias) * imp))
    detail = float(np.sum(det * imp))
    saturation = float(np.sum(samples.saturation * (det + weights.saturation_bias) * imp))

    # Per unit area.
    total = (
        detail * weights.detail_weight + skin * weights.skin_weight + saturation * weights.saturation_weight
    ) / (crop.width * crop.height)

    return Score(detail=detail, saturation=saturation, skin=skin, total=total)
