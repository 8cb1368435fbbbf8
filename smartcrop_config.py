"""Tunables for the crop analyzer.

One ``CropSettings`` value is built per analyzer and passed down to every
stage; nothing reads module globals at analysis time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from smartcrop_image import Interpolation

ENV_PREFIX = "SMARTCROP_"
DEFAULT_HAAR_CASCADE_NAME = "haarcascade_frontalface_alt.xml"

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CropSettings:
    # Detector weights and thresholds
    detail_weight: float = 0.2
    skin_color: tuple[float, float, float] = (0.78, 0.57, 0.44)
    skin_bias: float = 0.01
    skin_brightness_min: float = 0.2
    skin_brightness_max: float = 1.0
    skin_threshold: float = 0.8
    skin_weight: float = 1.8
    saturation_brightness_min: float = 0.05
    saturation_brightness_max: float = 0.9
    saturation_threshold: float = 0.4
    saturation_bias: float = 0.2
    saturation_weight: float = 0.1
    face_bias: float = 0.9
    face_weight: float = 1.8

    # Search
    score_down_sample: int = 8
    step: int = 8
    scale_step: float = 0.1
    min_scale: float = 0.9
    max_scale: float = 1.0

    # Importance field
    edge_radius: float = 0.4
    edge_weight: float = -20.0
    outside_importance: float = -0.5
    rule_of_thirds: bool = True

    # Prescale
    prescale: bool = True
    prescale_min: float = 400.0

    # Collaborators
    face_detection: bool = False
    haar_cascade_path: str = ""
    interpolation: Interpolation = Interpolation.BICUBIC
    debug_mode: bool = False
    debug_dir: str = "."

    def __post_init__(self) -> None:
        if self.step < 1:
            raise ValueError("step must be >= 1")
        if self.score_down_sample < 1:
            raise ValueError("score_down_sample must be >= 1")
        if self.scale_step <= 0:
            raise ValueError("scale_step must be > 0")
        if not 0 < self.min_scale <= self.max_scale:
            raise ValueError("expected 0 < min_scale <= max_scale")
        if self.prescale_min <= 0:
            raise ValueError("prescale_min must be > 0")
        if not 0 <= self.skin_threshold < 1:
            raise ValueError("skin_threshold must be in [0, 1)")
        if not 0 <= self.saturation_threshold < 1:
            raise ValueError("saturation_threshold must be in [0, 1)")
        if len(self.skin_color) != 3:
            raise ValueError("skin_color needs three components")
        # Accept plain strings for the enum field.
        object.__setattr__(self, "interpolation", Interpolation(self.interpolation))

    @classmethod
    def from_env(cls, **overrides: object) -> CropSettings:
        """Build settings from SMARTCROP_* environment variables plus overrides."""
        values: dict[str, object] = {}

        face = os.getenv(f"{ENV_PREFIX}FACE_DETECTION", "").strip().lower()
        if face:
            values["face_detection"] = face in _TRUE_VALUES

        cascade = os.getenv(f"{ENV_PREFIX}HAAR_CASCADE", "").strip()
        if cascade:
            values["haar_cascade_path"] = cascade

        interpolation = os.getenv(f"{ENV_PREFIX}INTERPOLATION", "").strip().lower()
        if interpolation:
            values["interpolation"] = Interpolation(interpolation)

        debug = os.getenv(f"{ENV_PREFIX}DEBUG", "").strip().lower()
        if debug:
            values["debug_mode"] = debug in _TRUE_VALUES

        debug_dir = os.getenv(f"{ENV_PREFIX}DEBUG_DIR", "").strip()
        if debug_dir:
            values["debug_dir"] = debug_dir

        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def with_overrides(self, **overrides: object) -> CropSettings:
        return replace(self, **overrides)  # type: ignore[arg-type]
