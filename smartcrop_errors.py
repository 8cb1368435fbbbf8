"""Errors raised by the crop analyzer.

Every error is terminal for the current call; the analyzer never returns a
partial crop.
"""

from __future__ import annotations


class SmartCropError(Exception):
    """Base class for analyzer failures."""


class InvalidTargetError(SmartCropError, ValueError):
    """Requested crop size has no usable width or height."""


class DetectorUnavailableError(SmartCropError, RuntimeError):
    """An external detector resource is missing or failed to load."""


class DetectorInputInvalidError(SmartCropError, ValueError):
    """A detector was handed a missing or zero-sized image."""
