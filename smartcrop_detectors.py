"""Heat detectors.

Each detector turns an HxWx3 RGB uint8 image into one HxW uint8 heat
channel. The analyzer paints every detector's output into its channel of
the shared canvas.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

import cv2
import numpy as np

from smartcrop_config import DEFAULT_HAAR_CASCADE_NAME
from smartcrop_errors import DetectorInputInvalidError, DetectorUnavailableError
from smartcrop_scoring import ChannelWeights

if TYPE_CHECKING:
    from smartcrop_config import CropSettings

logger = logging.getLogger(__name__)

SKIN_CHANNEL = 0
DETAIL_CHANNEL = 1
SATURATION_CHANNEL = 2

FaceBox = tuple[int, int, int, int]


class Detector(Protocol):
    """Protocol for heat detectors."""

    name: str
    weight: float
    bias: float
    channel: int

    def detect(self, image: np.ndarray) -> np.ndarray:
        """Return an HxW uint8 heat map for an HxWx3 RGB uint8 image."""
        ...


class FaceLocator(Protocol):
    """Protocol for the external face-finding capability."""

    def locate(self, image: np.ndarray) -> list[FaceBox]:
        """Return ``(x, y, width, height)`` boxes for faces in an RGB image."""
        ...


# ---------------------------------------------------------------------------
# Pixel helpers
# ---------------------------------------------------------------------------


def _check_image(image: np.ndarray | None) -> np.ndarray:
    if image is None:
        raise DetectorInputInvalidError("img can't be None")
    if image.ndim != 3 or image.shape[0] == 0 or image.shape[1] == 0:
        raise DetectorInputInvalidError(f"expected a non-empty HxWx3 image, got shape {image.shape}")
    return image


def cie(image: np.ndarray) -> np.ndarray:
    """Per-pixel luma approximation on the 0-255 scale.

    The channel weighting is not a real CIE luminance; crops depend on it
    as is.
    """
    rgb = image[..., :3].astype(np.float64)
    return 0.5126 * rgb[..., 2] + 0.7152 * rgb[..., 1] + 0.0722 * rgb[..., 0]


def saturation(image: np.ndarray) -> np.ndarray:
    """HSL saturation of every pixel, in [0, 1]."""
    rgb = image[..., :3].astype(np.float64) / 255.0
    maximum = rgb.max(axis=-1)
    minimum = rgb.min(axis=-1)
    d = maximum - minimum
    total = maximum + minimum
    lightness = total / 2.0

    denom = np.where(lightness > 0.5, 2.0 - total, total)
    out = np.zeros_like(d)
    np.divide(d, denom, out=out, where=(d > 0) & (denom > 0))
    return out


def skin_score(image: np.ndarray, skin_color: Sequence[float]) -> np.ndarray:
    """``1 - distance`` between each pixel's unit RGB vector and ``skin_color``."""
    rgb = image[..., :3].astype(np.float64)
    mag = np.sqrt(np.sum(rgb * rgb, axis=-1))
    unit = np.zeros_like(rgb)
    np.divide(rgb, mag[..., None], out=unit, where=mag[..., None] > 0)

    diff = unit - np.asarray(skin_color, dtype=np.float64)
    score = 1.0 - np.sqrt(np.sum(diff * diff, axis=-1))
    # Black has no direction.
    return np.where(mag > 0, score, 0.0)


def _to_heat(values: np.ndarray) -> np.ndarray:
    return np.clip(values, 0.0, 255.0).astype(np.uint8)


def _band_heat(
    value: np.ndarray,
    lightness: np.ndarray,
    threshold: float,
    brightness_min: float,
    brightness_max: float,
) -> np.ndarray:
    mask = (value > threshold) & (lightness >= brightness_min) & (lightness <= brightness_max)
    heat = (value - threshold) * (255.0 / (1.0 - threshold))
    return _to_heat(np.where(mask, heat, 0.0))


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


class EdgeDetector:
    """Discrete Laplacian of the luma approximation; busy regions run hot."""

    name = "edge"
    channel = DETAIL_CHANNEL
    bias = 0.0

    def __init__(self, weight: float = 0.2) -> None:
        self.weight = weight

    def detect(self, image: np.ndarray) -> np.ndarray:
        image = _check_image(image)
        lum = cie(image)
        heat = np.zeros(lum.shape, dtype=np.uint8)
        if lum.shape[0] < 3 or lum.shape[1] < 3:
            return heat

        lap = (
            4.0 * lum[1:-1, 1:-1]
            - lum[:-2, 1:-1]
            - lum[1:-1, :-2]
            - lum[1:-1, 2:]
            - lum[2:, 1:-1]
        )
        heat[1:-1, 1:-1] = _to_heat(lap)
        return heat


class SkinDetector:
    name = "skin"
    channel = SKIN_CHANNEL

    def __init__(
        self,
        weight: float = 1.8,
        bias: float = 0.01,
        threshold: float = 0.8,
        brightness_min: float = 0.2,
        brightness_max: float = 1.0,
        skin_color: Sequence[float] = (0.78, 0.57, 0.44),
    ) -> None:
        self.weight = weight
        self.bias = bias
        self.threshold = threshold
        self.brightness_min = brightness_min
        self.brightness_max = brightness_max
        self.skin_color = tuple(skin_color)

    def detect(self, image: np.ndarray) -> np.ndarray:
        image = _check_image(image)
        lightness = cie(image) / 255.0
        skin = skin_score(image, self.skin_color)
        return _band_heat(skin, lightness, self.threshold, self.brightness_min, self.brightness_max)


class SaturationDetector:
    name = "saturation"
    channel = SATURATION_CHANNEL

    def __init__(
        self,
        weight: float = 0.1,
        bias: float = 0.2,
        threshold: float = 0.4,
        brightness_min: float = 0.05,
        brightness_max: float = 0.9,
    ) -> None:
        self.weight = weight
        self.bias = bias
        self.threshold = threshold
        self.brightness_min = brightness_min
        self.brightness_max = brightness_max

    def detect(self, image: np.ndarray) -> np.ndarray:
        image = _check_image(image)
        lightness = cie(image) / 255.0
        sat = saturation(image)
        return _band_heat(sat, lightness, self.threshold, self.brightness_min, self.brightness_max)


class HaarCascadeLocator:
    """Finds faces with an OpenCV Haar cascade.

    An empty ``cascade_path`` resolves to OpenCV's bundled frontal face
    cascade. The cascade is loaded on every call.
    """

    def __init__(self, cascade_path: str = "") -> None:
        self.cascade_path = cascade_path or default_cascade_path()

    def locate(self, image: np.ndarray) -> list[FaceBox]:
        image = _check_image(image)
        if not self.cascade_path:
            raise DetectorUnavailableError("FaceDetector's haar cascade path not specified")
        if not os.path.exists(self.cascade_path):
            raise DetectorUnavailableError(f"haar cascade not found: {self.cascade_path}")

        try:
            cascade = cv2.CascadeClassifier(self.cascade_path)
        except cv2.error as err:
            raise DetectorUnavailableError(f"FaceDetector failed loading cascade file {self.cascade_path}") from err
        if cascade.empty():
            raise DetectorUnavailableError(f"FaceDetector failed loading cascade file {self.cascade_path}")

        gray = cv2.cvtColor(np.ascontiguousarray(image[..., :3]), cv2.COLOR_RGB2GRAY)
        faces = cascade.detectMultiScale(gray)
        if faces is None or len(faces) == 0:
            return []
        return [(int(fx), int(fy), int(fw), int(fh)) for fx, fy, fw, fh in faces]


class FaceDetector:
    """Paints a solid disc over every face the locator reports."""

    name = "face"
    channel = SKIN_CHANNEL

    def __init__(self, locator: FaceLocator, weight: float = 1.8, bias: float = 0.9) -> None:
        self.locator = locator
        self.weight = weight
        self.bias = bias

    def detect(self, image: np.ndarray) -> np.ndarray:
        image = _check_image(image)
        heat = np.zeros(image.shape[:2], dtype=np.uint8)

        faces = self.locator.locate(image)
        logger.debug("Faces detected: %d", len(faces))

        for x, y, width, height in faces:
            logger.debug("Face: x: %d y: %d w: %d h: %d", x, y, width, height)
            radius = width // 2
            if radius <= 0:
                continue
            cv2.circle(heat, (x + width // 2, y + height // 2), radius, 255, thickness=-1)
        return heat


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def default_cascade_path() -> str:
    base = getattr(getattr(cv2, "data", None), "haarcascades", "")
    if not base:
        return ""
    return os.path.join(base, DEFAULT_HAAR_CASCADE_NAME)


def default_detectors(settings: CropSettings) -> list[Detector]:
    """Edge, then face or skin, then saturation."""
    region: Detector
    if settings.face_detection:
        region = FaceDetector(
            HaarCascadeLocator(settings.haar_cascade_path),
            weight=settings.face_weight,
            bias=settings.face_bias,
        )
    else:
        region = SkinDetector(
            weight=settings.skin_weight,
            bias=settings.skin_bias,
            threshold=settings.skin_threshold,
            brightness_min=settings.skin_brightness_min,
            brightness_max=settings.skin_brightness_max,
            skin_color=settings.skin_color,
        )

    return [
        EdgeDetector(weight=settings.detail_weight),
        region,
        SaturationDetector(
            weight=settings.saturation_weight,
            bias=settings.saturation_bias,
            threshold=settings.saturation_threshold,
            brightness_min=settings.saturation_brightness_min,
            brightness_max=settings.saturation_brightness_max,
        ),
    ]


def check_registry(detectors: Sequence[Detector]) -> None:
    """Reject detector lists that would paint one channel twice.

    Skin and face share the R channel, so this is also what keeps them
    from running together.
    """
    seen: dict[int, str] = {}
    for detector in detectors:
        if detector.channel not in (SKIN_CHANNEL, DETAIL_CHANNEL, SATURATION_CHANNEL):
            raise ValueError(f"detector {detector.name!r} uses unknown channel {detector.channel}")
        if detector.channel in seen:
            raise ValueError(
                f"detectors {seen[detector.channel]!r} and {detector.name!r} both write channel {detector.channel}"
            )
        seen[detector.channel] = detector.name


def weights_for(detectors: Sequence[Detector]) -> ChannelWeights:
    by_channel = {detector.channel: detector for detector in detectors}
    detail = by_channel.get(DETAIL_CHANNEL)
    skin = by_channel.get(SKIN_CHANNEL)
    sat = by_channel.get(SATURATION_CHANNEL)
    return ChannelWeights(
        detail_weight=detail.weight if detail is not None else 0.0,
        skin_weight=skin.weight if skin is not None else 0.0,
        skin_bias=skin.bias if skin is not None else 0.0,
        saturation_weight=sat.weight if sat is not None else 0.0,
        saturation_bias=sat.bias if sat is not None else 0.0,
    )
