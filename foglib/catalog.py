"""Imagery catalogs: time-ordered GOES images filtered by date and region."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

import numpy as np
import pandas as pd

from foglib.constants import FOG_BANDS, TARGET_CRS
from foglib.geometry import get_transformer
from foglib.io import file_start_time, list_mcmip_files, read_mcmip_file, MCMIP_PATTERN
from foglib.raster import GridSpec, RasterImage, Region, to_utc_naive

logger = logging.getLogger(__name__)


class ImageCatalog(Protocol):
    """Catalog interface used by the pipeline driver."""

    def search(self, region: Region, start: pd.Timestamp,
               end: pd.Timestamp) -> list[RasterImage]:
        """Images with start <= timestamp < end that overlap ``region``, in time order."""
        ...


def footprint(grid: GridSpec, n: int = 21) -> tuple[float, float, float, float] | None:
    """Approximate (lon_min, lat_min, lon_max, lat_max) covered by ``grid``.

    Samples an n x n lattice of pixel centres; off-disk samples are
    ignored. None when no sample maps to the Earth.
    """
    if grid.nrows == 0 or grid.ncols == 0:
        return None
    cols = np.linspace(0, grid.ncols - 1, min(n, grid.ncols))
    rows = np.linspace(0, grid.nrows - 1, min(n, grid.nrows))
    x = grid.x0 + (cols + 0.5) * grid.dx
    y = grid.y0 - (rows + 0.5) * grid.dy
    x2d, y2d = np.meshgrid(x, y)
    if grid.crs != TARGET_CRS:
        x2d, y2d = get_transformer(grid.crs, TARGET_CRS).transform(x2d, y2d)
        x2d, y2d = np.asarray(x2d), np.asarray(y2d)
    ok = np.isfinite(x2d) & np.isfinite(y2d)
    if not ok.any():
        return None
    # Pad by one pixel so edge pixels of lat/lon grids count.
    pad_x = grid.dx if grid.crs == TARGET_CRS else 0.0
    pad_y = grid.dy if grid.crs == TARGET_CRS else 0.0
    return (float(x2d[ok].min()) - pad_x, float(y2d[ok].min()) - pad_y,
            float(x2d[ok].max()) + pad_x, float(y2d[ok].max()) + pad_y)


def overlaps(grid: GridSpec, region: Region) -> bool:
    """True if the grid footprint intersects the region bounding box."""
    fp = footprint(grid)
    if fp is None:
        return False
    lon_min, lat_min, lon_max, lat_max = fp
    return not (lon_max < region.lon_min or lon_min > region.lon_max or
                lat_max < region.lat_min or lat_min > region.lat_max)


def in_window(timestamp, start: pd.Timestamp, end: pd.Timestamp) -> bool:
    """Half-open [start, end) test in naive UTC; images without a timestamp never match."""
    if timestamp is None:
        return False
    return to_utc_naive(start) <= to_utc_naive(timestamp) < to_utc_naive(end)


class InMemoryCatalog:
    """Catalog over images that were already fetched."""

    def __init__(self, images: Iterable[RasterImage]):
        self.images = list(images)

    def search(self, region: Region, start: pd.Timestamp,
               end: pd.Timestamp) -> list[RasterImage]:
        found = [img for img in self.images
                 if in_window(img.timestamp, start, end) and overlaps(img.grid, region)]
        return sorted(found, key=lambda img: pd.Timestamp(img.timestamp))


class LocalCatalog:
    """Catalog over a directory tree of GOES ABI L2 MCMIP NetCDF files.

    Dates are filtered on the file name scan-start token before any file
    is opened; each matching file is read only over the region.
    """

    def __init__(self, data_dir: str, pattern: str = MCMIP_PATTERN, bands=FOG_BANDS):
        self.data_dir = data_dir
        self.pattern = pattern
        self.bands = tuple(bands)

    def files(self, start: pd.Timestamp, end: pd.Timestamp) -> list[str]:
        """MCMIP files whose scan started in [start, end)."""
        return [f for f in list_mcmip_files(self.data_dir, self.pattern)
                if in_window(file_start_time(f), start, end)]

    def search(self, region: Region, start: pd.Timestamp,
               end: pd.Timestamp) -> list[RasterImage]:
        files = self.files(start, end)
        logger.info('%d MCMIP files in %s for [%s, %s)', len(files), self.data_dir,
                    start.date(), end.date())
        images = []
        for filepath in files:
            image = read_mcmip_file(filepath, bands=self.bands, region=region)
            if overlaps(image.grid, region):
                images.append(image)
            else:
                logger.debug('%s does not cover %s', image.image_id, region.bbox)
        return images
