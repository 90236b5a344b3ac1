"""GOES ABI L2 MCMIP NetCDF reading and GeoTIFF export."""

from __future__ import annotations

import glob
import logging
import os
import re
from datetime import datetime

import numpy as np
import pandas as pd
import rasterio
import xarray as xr
from rasterio.transform import from_origin

from foglib.constants import FOG_BANDS, GOES16_PROJ, OFFSET_SUFFIX, SCALE_SUFFIX
from foglib.geometry import get_transformer
from foglib.raster import GridSpec, RasterImage, Region, to_utc_naive

logger = logging.getLogger(__name__)

MCMIP_PATTERN = 'OR_ABI-L2-MCMIP*_G16_s*.nc'

_START_TOKEN = re.compile(r'_s(\d{13})')


def file_start_time(filepath: str) -> pd.Timestamp | None:
    """Scan start time from the '_sYYYYJJJHHMMSS' file name token (UTC)."""
    m = _START_TOKEN.search(os.path.basename(filepath))
    if m is None:
        return None
    return pd.Timestamp(datetime.strptime(m.group(1), '%Y%j%H%M%S'))


def list_mcmip_files(data_dir: str, pattern: str = MCMIP_PATTERN) -> list[str]:
    """MCMIP files under ``data_dir`` (recursive), sorted by scan start time."""
    files = glob.glob(os.path.join(data_dir, '**', pattern), recursive=True)
    return sorted(files, key=lambda f: (file_start_time(f) or pd.Timestamp.min, f))


def _scaled(var: xr.DataArray) -> np.ndarray:
    """Apply scale_factor/add_offset to a packed coordinate variable."""
    values = var.values.astype(np.float64)
    return values * var.attrs.get('scale_factor', 1.0) + var.attrs.get('add_offset', 0.0)


def _raw_counts(var: xr.DataArray) -> np.ndarray:
    """Packed counts as float64 with fill values set to NaN."""
    raw = var.values
    invalid = np.zeros(raw.shape, dtype=bool)
    fill = var.attrs.get('_FillValue')
    if fill is not None:
        invalid |= raw == np.asarray(fill).astype(raw.dtype)
    if str(var.attrs.get('_Unsigned', 'false')).lower() == 'true' and raw.dtype.kind == 'i':
        raw = raw.view(f'u{raw.dtype.itemsize}')
    counts = raw.astype(np.float64)
    counts[invalid] = np.nan
    return counts


def geos_proj_string(ds: xr.Dataset) -> str:
    """PROJ string for the fixed-grid geostationary projection of a file."""
    if 'goes_imager_projection' not in ds:
        return GOES16_PROJ
    p = ds['goes_imager_projection'].attrs
    return (f"+proj=geos +h={float(p['perspective_point_height'])} "
            f"+a={float(p['semi_major_axis'])} +b={float(p['semi_minor_axis'])} "
            f"+lon_0={float(p['longitude_of_projection_origin'])} "
            f"+sweep={p.get('sweep_angle_axis', 'x')} +units=m +no_defs")


def _region_slices(x: np.ndarray, y: np.ndarray, crs: str,
                   region: Region, margin: int = 2) -> tuple[slice, slice] | None:
    """Row/column slices of the native grid that cover ``region``."""
    lon = np.linspace(region.lon_min, region.lon_max, 21)
    lat = np.linspace(region.lat_min, region.lat_max, 21)
    lon2d, lat2d = np.meshgrid(lon, lat)
    gx, gy = get_transformer('EPSG:4326', crs).transform(lon2d, lat2d)
    gx, gy = np.asarray(gx), np.asarray(gy)
    ok = np.isfinite(gx) & np.isfinite(gy)
    if not ok.any():
        return None
    cols = np.where((x >= gx[ok].min()) & (x <= gx[ok].max()))[0]
    rows = np.where((y >= gy[ok].min()) & (y <= gy[ok].max()))[0]
    if cols.size == 0 or rows.size == 0:
        return None
    return (slice(max(rows.min() - margin, 0), rows.max() + margin + 1),
            slice(max(cols.min() - margin, 0), cols.max() + margin + 1))


def read_mcmip_file(filepath: str, bands=FOG_BANDS,
                    region: Region | None = None) -> RasterImage:
    """Load raw counts and calibration metadata from one MCMIP file.

    Values are left packed; '<band>_scale' / '<band>_offset' metadata
    carry each variable's scale_factor / add_offset. When ``region`` is
    given only the native rows/columns covering it are read, and nothing
    (a 0 x 0 image) when the region is not on this file.

    Returns:
        RasterImage in the native geostationary projection [m].
    """
    with xr.open_dataset(filepath, mask_and_scale=False, decode_times=False) as ds:
        crs = geos_proj_string(ds)
        h = float(ds['goes_imager_projection'].attrs['perspective_point_height']) \
            if 'goes_imager_projection' in ds else 35786023.0
        x = _scaled(ds['x']) * h  # scan angle [rad] -> [m]
        y = _scaled(ds['y']) * h

        rows, cols = slice(None), slice(None)
        if region is not None:
            sl = _region_slices(x, y, crs, region)
            if sl is None:
                logger.debug('%s does not see %s', os.path.basename(filepath), region.bbox)
                rows, cols = slice(0, 0), slice(0, 0)
            else:
                rows, cols = sl
        x, y = x[cols], y[rows]

        out, metadata = {}, {'source': os.path.basename(filepath)}
        for band in bands:
            var = ds[band].isel(y=rows, x=cols)
            out[band] = _raw_counts(var)
            if 'scale_factor' in var.attrs and 'add_offset' in var.attrs:
                metadata[band + SCALE_SUFFIX] = float(var.attrs['scale_factor'])
                metadata[band + OFFSET_SUFFIX] = float(var.attrs['add_offset'])

        start = ds.attrs.get('time_coverage_start')

    timestamp = to_utc_naive(start) if start is not None else file_start_time(filepath)

    # An empty read (region off this file) yields a 0 x 0 grid with no footprint.
    dx = float(x[1] - x[0]) if x.size > 1 else 2004.0
    dy = float(y[0] - y[1]) if y.size > 1 else 2004.0
    x0 = float(x[0]) - dx / 2 if x.size else 0.0
    y0 = float(y[0]) + dy / 2 if y.size else 0.0
    grid = GridSpec(crs=crs, x0=x0, y0=y0, dx=dx, dy=dy, nrows=y.size, ncols=x.size)
    return RasterImage(bands=out, grid=grid, timestamp=timestamp,
                       metadata=metadata, image_id=os.path.basename(filepath))


def write_geotiff(image: RasterImage, path: str, bands=None) -> str:
    """Write bands of ``image`` to a multi-band GeoTIFF.

    Floating bands are stored as float32 with the image's nodata value;
    all bands share the dtype of the first band.
    """
    names = list(bands) if bands is not None else image.band_names
    arrays = [np.asarray(image.band(n)) for n in names]
    dtype = 'float32' if arrays[0].dtype.kind == 'f' else arrays[0].dtype.name
    grid = image.grid
    nodata = image.nodata
    if dtype != 'float32' and nodata is not None and not np.isfinite(nodata):
        nodata = None

    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with rasterio.open(
        path, 'w', driver='GTiff',
        height=grid.nrows, width=grid.ncols, count=len(arrays), dtype=dtype,
        crs=grid.crs, transform=from_origin(grid.x0, grid.y0, grid.dx, grid.dy),
        nodata=nodata,
    ) as dst:
        for i, (name, arr) in enumerate(zip(names, arrays), start=1):
            dst.write(arr.astype(dtype), i)
            dst.set_band_description(i, name)
    return path
