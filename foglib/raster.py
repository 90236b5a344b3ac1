"""Georeferenced raster data model: pixel grids, regions and images."""

from __future__ import annotations

import dataclasses
import itertools
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np
import pandas as pd

from foglib.constants import GRID_RES, TARGET_CRS
from foglib.errors import GeometryMismatch


@dataclass(frozen=True)
class GridSpec:
    """North-up regular pixel grid.

    Row 0 is the top (y0) edge and column 0 the left (x0) edge, so the
    centre of pixel (r, c) is (x0 + (c + 0.5) * dx, y0 - (r + 0.5) * dy).
    For EPSG:4326 grids x is longitude and y is latitude [degrees].
    """
    crs: str
    x0: float
    y0: float
    dx: float
    dy: float
    nrows: int
    ncols: int

    @property
    def shape(self) -> tuple[int, int]:
        return (self.nrows, self.ncols)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(x_min, y_min, x_max, y_max) of the outer pixel edges."""
        return (self.x0, self.y0 - self.nrows * self.dy,
                self.x0 + self.ncols * self.dx, self.y0)

    def x_axis(self) -> np.ndarray:
        return self.x0 + (np.arange(self.ncols) + 0.5) * self.dx

    def y_axis(self) -> np.ndarray:
        return self.y0 - (np.arange(self.nrows) + 0.5) * self.dy

    def pixel_centers(self) -> tuple[np.ndarray, np.ndarray]:
        """2-D (x, y) arrays of pixel-centre coordinates."""
        return np.meshgrid(self.x_axis(), self.y_axis())

    def index_of(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Nearest (row, col) indices for coordinates; -1 where out of grid."""
        with np.errstate(invalid='ignore'):
            col = np.floor((x - self.x0) / self.dx)
            row = np.floor((self.y0 - y) / self.dy)
        ok = (np.isfinite(row) & np.isfinite(col) &
              (row >= 0) & (row < self.nrows) &
              (col >= 0) & (col < self.ncols))
        row = np.where(ok, row, -1).astype(np.int64)
        col = np.where(ok, col, -1).astype(np.int64)
        return row, col


@dataclass(frozen=True)
class Region:
    """Rectangular region of interest in geographic coordinates [degrees]."""
    lon_min: float
    lat_min: float
    lon_max: float
    lat_max: float

    def __post_init__(self):
        if not (-180.0 <= self.lon_min < self.lon_max <= 180.0):
            raise ValueError(f'invalid longitude range [{self.lon_min}, {self.lon_max}]')
        if not (-90.0 <= self.lat_min < self.lat_max <= 90.0):
            raise ValueError(f'invalid latitude range [{self.lat_min}, {self.lat_max}]')

    @classmethod
    def from_bbox(cls, bbox) -> Region:
        """Build from (lon_min, lat_min, lon_max, lat_max)."""
        lon_min, lat_min, lon_max, lat_max = (float(v) for v in bbox)
        return cls(lon_min, lat_min, lon_max, lat_max)

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return (self.lon_min, self.lat_min, self.lon_max, self.lat_max)

    def polygon(self) -> list[tuple[float, float]]:
        """Closed (lon, lat) ring, counter-clockwise from the south-west corner."""
        return [
            (self.lon_min, self.lat_min), (self.lon_max, self.lat_min),
            (self.lon_max, self.lat_max), (self.lon_min, self.lat_max),
            (self.lon_min, self.lat_min),
        ]

    def grid(self, res: float = GRID_RES, crs: str = TARGET_CRS) -> GridSpec:
        """Target grid anchored at the north-west corner covering the region."""
        # Tolerance keeps an exact multiple of res from gaining a column.
        nrows = max(int(np.ceil((self.lat_max - self.lat_min) / res - 1e-9)), 1)
        ncols = max(int(np.ceil((self.lon_max - self.lon_min) / res - 1e-9)), 1)
        return GridSpec(crs=crs, x0=self.lon_min, y0=self.lat_max,
                        dx=res, dy=res, nrows=nrows, ncols=ncols)


def to_utc_naive(timestamp) -> pd.Timestamp | None:
    """Timestamp as naive UTC; aware inputs are converted, None passes through."""
    if timestamp is None:
        return None
    ts = pd.Timestamp(timestamp)
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts


def _frozen_view(arr: Any) -> np.ndarray:
    view = np.asarray(arr).view()
    view.flags.writeable = False
    return view


# Sequence number that keeps default image ids unique within a process
_image_seq = itertools.count(1)


@dataclass(frozen=True)
class RasterImage:
    """Named 2-D bands on one grid, stamped with an acquisition time.

    Band arrays are exposed as read-only views; every transform builds a
    new image through :meth:`with_bands`, which keeps the image id. The
    timestamp is stored as naive UTC. Without an explicit ``image_id``
    the image gets '<ISO time>#<n>', so two images taken at the same
    time stay distinct.
    """
    bands: Mapping[str, np.ndarray]
    grid: GridSpec
    timestamp: Any = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    nodata: float | None = np.nan
    image_id: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'bands', MappingProxyType(
            {name: _frozen_view(arr) for name, arr in self.bands.items()}))
        object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata)))
        object.__setattr__(self, 'timestamp', to_utc_naive(self.timestamp))
        if not self.image_id:
            stamp = self.timestamp.isoformat() if self.timestamp is not None else 'image'
            object.__setattr__(self, 'image_id', f'{stamp}#{next(_image_seq)}')

    @property
    def band_names(self) -> list[str]:
        return list(self.bands)

    @property
    def shape(self) -> tuple[int, int]:
        return self.grid.shape

    def band(self, name: str) -> np.ndarray:
        try:
            return self.bands[name]
        except KeyError:
            raise KeyError(f'band {name!r} not in image {self.image_id} '
                           f'(has {self.band_names})') from None

    def with_bands(self, bands: Mapping[str, np.ndarray], **changes: Any) -> RasterImage:
        """New image with ``bands`` replacing all current bands."""
        return dataclasses.replace(self, bands=dict(bands), **changes)

    def check_shared_grid(self, names=None) -> None:
        """Raise GeometryMismatch unless every named band matches the grid shape."""
        for name in (names if names is not None else self.band_names):
            arr = self.band(name)
            if arr.shape != self.grid.shape:
                raise GeometryMismatch(
                    f'band {name} has shape {arr.shape}, grid is {self.grid.shape} '
                    f'(image {self.image_id})')
