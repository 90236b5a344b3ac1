"""Exceptions raised while turning GOES images into fog percentages."""

from __future__ import annotations


class FogError(Exception):
    """Base class for fog pipeline failures."""


class MissingCalibration(FogError):
    """An image lacks scale/offset metadata for a required band."""

    def __init__(self, band: str, timestamp=None):
        self.band = band
        self.timestamp = timestamp
        super().__init__(f'no scale/offset for band {band} (image {timestamp})')


class GeometryMismatch(FogError):
    """Bands (or masks) that must share one pixel grid do not."""


class EmptyIntersection(FogError):
    """Image has no valid pixel inside the region of interest."""


class EmptyWindow(FogError):
    """No usable image for the requested time window and region."""
