"""Image helpers: array normalisation, resizing and crop application."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np
from PIL import Image

from smartcrop_errors import DetectorInputInvalidError

if TYPE_CHECKING:
    from smartcrop_scoring import Crop


class Interpolation(StrEnum):
    NEAREST = "nearest"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"
    LANCZOS = "lanczos"


_RESAMPLING = {
    Interpolation.NEAREST: Image.Resampling.NEAREST,
    Interpolation.BILINEAR: Image.Resampling.BILINEAR,
    Interpolation.BICUBIC: Image.Resampling.BICUBIC,
    Interpolation.LANCZOS: Image.Resampling.LANCZOS,
}


class Resizer(Protocol):
    """Protocol for the prescale collaborator."""

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        """Return ``image`` resized to exactly ``width`` x ``height``."""
        ...


class PillowResizer:
    """Resizes HxWx3 uint8 arrays through Pillow."""

    def __init__(self, interpolation: Interpolation = Interpolation.BICUBIC) -> None:
        self.interpolation = Interpolation(interpolation)

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            raise ValueError(f"cannot resize to {width}x{height}")
        pil_img = Image.fromarray(image)
        resized = pil_img.resize((width, height), _RESAMPLING[self.interpolation])
        return np.asarray(resized.convert("RGB"), dtype=np.uint8)


def to_rgb_array(image: Any) -> np.ndarray:
    """Normalise a PIL image or numpy array into an HxWx3 RGB uint8 array.

    Arrays are taken to be RGB (or RGBA, or single channel). Alpha is dropped.

    Raises:
        DetectorInputInvalidError: If the image is missing or has no pixels.
    """
    if image is None:
        raise DetectorInputInvalidError("image can't be None")

    if isinstance(image, Image.Image):
        if image.width <= 0 or image.height <= 0:
            raise DetectorInputInvalidError("image has no pixels")
        return np.asarray(image.convert("RGB"), dtype=np.uint8)

    arr = np.asarray(image)
    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.ndim != 3 or arr.shape[2] not in (1, 3, 4):
        raise DetectorInputInvalidError(f"unsupported image shape {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise DetectorInputInvalidError("image has no pixels")

    if arr.shape[2] == 1:
        arr = np.repeat(arr, 3, axis=2)
    elif arr.shape[2] == 4:
        arr = arr[:, :, :3]

    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    return np.ascontiguousarray(arr)


def apply_crop(
    image: Image.Image,
    crop: Crop,
    width: int = 0,
    height: int = 0,
    interpolation: Interpolation = Interpolation.BICUBIC,
) -> Image.Image:
    """Cut ``crop`` out of ``image`` and resize it to ``width`` x ``height``.

    A zero side is derived from the crop's aspect ratio; when both are zero
    the crop is returned at its own size.
    """
    cropped = image.crop(crop.as_box())
    if width <= 0 and height <= 0:
        return cropped
    if width <= 0:
        width = max(1, int(round(crop.width * height / crop.height)))
    if height <= 0:
        height = max(1, int(round(crop.height * width / crop.width)))
    if cropped.size == (width, height):
        return cropped
    return cropped.resize((width, height), _RESAMPLING[Interpolation(interpolation)])
