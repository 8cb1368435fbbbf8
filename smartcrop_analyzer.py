"""Content-aware crop analyzer.

Pipeline:
    source image -> prescale -> detector passes -> heat canvas
    -> candidate crops -> score each -> best crop -> map back to source

``find_best_crop`` is the entry point. Each call builds its own canvas and
candidate sequence, so one ``Analyzer`` can serve many threads.
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Iterable, Sequence
from enum import StrEnum
from typing import Any

import numpy as np

from smartcrop_config import CropSettings
from smartcrop_debug import DebugImage, write_png
from smartcrop_detectors import Detector, check_registry, default_detectors, weights_for
from smartcrop_errors import InvalidTargetError
from smartcrop_image import PillowResizer, Resizer, to_rgb_array
from smartcrop_scoring import Crop, Score, iter_crops, sample_canvas, score_crop

logger = logging.getLogger(__name__)


class AnalysisState(StrEnum):
    IDLE = "idle"
    PRESCALING = "prescaling"
    DETECTING = "detecting"
    SEARCHING_CANDIDATES = "searching_candidates"
    SCORING = "scoring"
    SELECTED = "selected"
    RESCALING_RESULT = "rescaling_result"
    DONE = "done"
    FAILED = "failed"


def chop(x: float) -> float:
    """Round toward zero."""
    if x < 0:
        return float(math.ceil(x))
    return float(math.floor(x))


class Analyzer:
    """Finds the best crop of an image for a requested size."""

    def __init__(
        self,
        settings: CropSettings | None = None,
        resizer: Resizer | None = None,
        detectors: Sequence[Detector] | None = None,
    ) -> None:
        self.settings = settings or CropSettings()
        self.resizer = resizer or PillowResizer(self.settings.interpolation)
        if detectors is not None:
            check_registry(detectors)
            self._detectors: tuple[Detector, ...] | None = tuple(detectors)
        else:
            self._detectors = None

    def detectors(self) -> list[Detector]:
        """Return the detector passes in paint order."""
        if self._detectors is not None:
            return list(self._detectors)
        return default_detectors(self.settings)

    # -- Public API ---------------------------------------------------------

    def find_best_crop(self, image: Any, width: int, height: int) -> tuple[Crop, Score]:
        """Return the highest scoring crop of ``image`` with ``width``:``height`` aspect.

        Args:
            image: PIL image or HxWx3/HxWx4 RGB(A) array.
            width: Target width; 0 derives it from the image.
            height: Target height; 0 derives it from the image.

        Returns:
            The crop in source image coordinates and its score.

        Raises:
            InvalidTargetError: If both sides are 0 or either is negative.
            DetectorUnavailableError: If the face classifier cannot be loaded.
            DetectorInputInvalidError: If the image is missing or empty.
        """
        state = AnalysisState.IDLE
        try:
            if width < 0 or height < 0:
                raise InvalidTargetError(f"crop size can't be negative: {width}x{height}")
            if width == 0 and height == 0:
                raise InvalidTargetError("Expect either a height or width")

            rgb = to_rgb_array(image)
            img_h, img_w = rgb.shape[:2]

            state = self._enter(AnalysisState.PRESCALING)
            scale = min(
                img_w / width if width else math.inf,
                img_h / height if height else math.inf,
            )
            low, prescale_factor = self._prescale(rgb)
            low_h, low_w = low.shape[:2]

            crop_width = chop(width * scale * prescale_factor)
            crop_height = chop(height * scale * prescale_factor)
            # The prescaled canvas is truncated too; shrink the crop to fit it, keeping the aspect.
            fit = min(
                1.0,
                low_w / crop_width if crop_width else math.inf,
                low_h / crop_height if crop_height else math.inf,
            )
            if fit < 1.0:
                crop_width = min(float(low_w), chop(crop_width * fit))
                crop_height = min(float(low_h), chop(crop_height * fit))
            # A very thin target must not collapse to the "derive from image" sentinel.
            if width and crop_width < 1:
                crop_width = 1.0
            if height and crop_height < 1:
                crop_height = 1.0
            real_min_scale = min(self.settings.max_scale, max(1.0 / scale, self.settings.min_scale))

            logger.info("original resolution: %dx%d", img_w, img_h)
            logger.info(
                "scale: %f, cropw: %f, croph: %f, minscale: %f",
                scale,
                crop_width,
                crop_height,
                real_min_scale,
            )

            state = self._enter(AnalysisState.DETECTING)
            detectors = self.detectors()
            canvas = self._detect(low, detectors)

            state = self._enter(AnalysisState.SEARCHING_CANDIDATES)
            candidates = iter_crops(
                low_w,
                low_h,
                crop_width,
                crop_height,
                real_min_scale,
                self.settings,
            )

            state = self._enter(AnalysisState.SCORING)
            top_crop, top_score = self._search(canvas, candidates, detectors)

            state = self._enter(AnalysisState.SELECTED)
            if self.settings.debug_mode:
                self._write_debug(low, canvas, detectors, top_crop)

            state = self._enter(AnalysisState.RESCALING_RESULT)
            if prescale_factor != 1.0:
                top_crop = Crop(
                    x=int(chop(top_crop.x / prescale_factor)),
                    y=int(chop(top_crop.y / prescale_factor)),
                    width=int(chop(top_crop.width / prescale_factor)),
                    height=int(chop(top_crop.height / prescale_factor)),
                )

            self._enter(AnalysisState.DONE)
            return top_crop, top_score
        except Exception:
            logger.debug("crop analysis failed while %s", state)
            self._enter(AnalysisState.FAILED)
            raise

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _enter(state: AnalysisState) -> AnalysisState:
        logger.debug("state=%s", state)
        return state

    def _prescale(self, rgb: np.ndarray) -> tuple[np.ndarray, float]:
        img_h, img_w = rgb.shape[:2]
        factor = 1.0
        if self.settings.prescale:
            f = self.settings.prescale_min / min(img_w, img_h)
            if f < 1.0:
                factor = f
        logger.info("prescale factor %f", factor)

        if factor == 1.0:
            return rgb, factor

        low_w = max(1, int(img_w * factor))
        low_h = max(1, int(img_h * factor))
        low = to_rgb_array(self.resizer.resize(rgb, low_w, low_h))
        return low, factor

    def _detect(self, image: np.ndarray, detectors: Sequence[Detector]) -> np.ndarray:
        height, width = image.shape[:2]
        canvas = np.zeros((height, width, 3), dtype=np.uint8)

        for detector in detectors:
            heat = np.asarray(detector.detect(image), dtype=np.uint8)
            if heat.shape != (height, width):
                raise ValueError(
                    f"detector {detector.name!r} returned shape {heat.shape}, expected {(height, width)}"
                )
            canvas[..., detector.channel] = heat
        return canvas

    def _write_debug(
        self,
        image: np.ndarray,
        canvas: np.ndarray,
        detectors: Sequence[Detector],
        top_crop: Crop,
    ) -> None:
        """Write the debug images; only called once a crop has been selected."""
        out_dir = self.settings.debug_dir
        write_png(image, os.path.join(out_dir, "smartcrop_prescale.png"))

        height, width = image.shape[:2]
        debug = DebugImage(height, width, out_dir)
        for detector in detectors:
            debug.add_detected(canvas[..., detector.channel])
            debug.write(detector.name)
        debug.draw_crop(top_crop, self.settings)
        debug.write("final")

    def _search(
        self,
        canvas: np.ndarray,
        candidates: Iterable[Crop],
        detectors: Sequence[Detector],
    ) -> tuple[Crop, Score]:
        samples = sample_canvas(canvas, self.settings)
        weights = weights_for(detectors)

        top_crop: Crop | None = None
        top_score: Score | None = None
        count = 0
        for crop in candidates:
            count += 1
            score = score_crop(crop, samples, weights, self.settings)
            # Strictly greater: the first candidate seen wins ties.
            if top_score is None or score.total > top_score.total:
                top_crop = crop
                top_score = score

        if top_crop is None or top_score is None:
            raise InvalidTargetError("no crop candidate fits the image")
        logger.debug("scored %d candidates, top %s total=%f", count, top_crop, top_score.total)
        return top_crop, top_score


def find_best_crop(
    image: Any,
    width: int,
    height: int,
    settings: CropSettings | None = None,
) -> tuple[Crop, Score]:
    """Run a default analyzer once."""
    return Analyzer(settings).find_best_crop(image, width, height)
