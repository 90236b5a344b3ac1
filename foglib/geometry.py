"""Reprojection of native satellite images onto the common lat/lon grid."""

from __future__ import annotations

import functools
import logging

import numpy as np
from matplotlib.path import Path
from pyproj import Transformer

from foglib.errors import EmptyIntersection
from foglib.raster import GridSpec, RasterImage, Region

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=16)
def get_transformer(src_crs: str, dst_crs: str) -> Transformer:
    """Cached always_xy pyproj transformer."""
    return Transformer.from_crs(src_crs, dst_crs, always_xy=True)


def source_indices(src: GridSpec, dst: GridSpec) -> tuple[np.ndarray, np.ndarray]:
    """Nearest source (row, col) for every destination pixel centre.

    Destination pixels that fall outside the source grid, or off the
    Earth disk for geostationary sources, get index -1.
    """
    x, y = dst.pixel_centers()
    if src.crs != dst.crs:
        x, y = get_transformer(dst.crs, src.crs).transform(x, y)
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        # pyproj returns inf for points the source projection cannot see
        x[~np.isfinite(x)] = np.nan
        y[~np.isfinite(y)] = np.nan
    return src.index_of(x, y)


def reproject(image: RasterImage, grid: GridSpec) -> RasterImage:
    """Nearest-neighbour resample of every band onto ``grid``.

    Nearest-neighbour never creates values outside the input range, which
    keeps temperature thresholds meaningful. Unsampled pixels are NaN.
    """
    if image.grid == grid:
        return image.with_bands({k: np.array(v) for k, v in image.bands.items()})

    image.check_shared_grid()
    row, col = source_indices(image.grid, grid)
    hit = row >= 0

    out = {}
    for name, src in image.bands.items():
        arr = np.full(grid.shape, np.nan, dtype=np.float64)
        arr[hit] = src[row[hit], col[hit]]
        out[name] = arr
    return image.with_bands(out, grid=grid)


def clip_to_polygon(image: RasterImage, polygon) -> RasterImage:
    """Set pixels whose centre lies outside ``polygon`` to NaN.

    Args:
        image: image on a grid whose CRS matches the polygon coordinates.
        polygon: sequence of (x, y) vertices, e.g. Region.polygon().
    """
    x, y = image.grid.pixel_centers()
    inside = Path(np.asarray(polygon, dtype=np.float64)).contains_points(
        np.column_stack([x.ravel(), y.ravel()])).reshape(image.shape)
    if inside.all():
        return image
    return image.with_bands(
        {k: np.where(inside, v, np.nan) for k, v in image.bands.items()})


def valid_pixels(image: RasterImage, names=None) -> np.ndarray:
    """True where every named band carries finite data."""
    names = names if names is not None else image.band_names
    valid = np.ones(image.shape, dtype=bool)
    for name in names:
        valid &= np.isfinite(image.band(name))
    return valid


def normalize(image: RasterImage, region: Region, grid: GridSpec | None = None) -> RasterImage:
    """Reproject to the region's target grid and clip to the region.

    Every image normalized against the same region and grid lands on an
    identical pixel grid.

    Raises:
        GeometryMismatch: bands do not share one grid.
        EmptyIntersection: no pixel inside the region has data in all bands.
    """
    grid = grid if grid is not None else region.grid()
    image.check_shared_grid()
    out = clip_to_polygon(reproject(image, grid), region.polygon())
    out.check_shared_grid()

    n_valid = int(valid_pixels(out).sum())
    if n_valid == 0:
        raise EmptyIntersection(f'image {image.image_id} has no data inside {region.bbox}')
    logger.debug('%s: %d of %d pixels valid after normalization',
                 image.image_id, n_valid, grid.nrows * grid.ncols)
    return out
