"""
Shared fixtures: synthetic GOES-like images on small lat/lon grids.
"""

import numpy as np
import pandas as pd
import pytest

from foglib.constants import BAND_BTD_DEN, BAND_BTD_NUM, BAND_CTT, GRID_RES
from foglib.raster import RasterImage, Region

# Exact in binary, so calibrated values hit thresholds exactly.
SCALE = 0.5
OFFSET = 100.0


def to_counts(bt):
    """Brightness temperature [K] -> raw counts for SCALE/OFFSET."""
    return (np.asarray(bt, dtype=np.float64) - OFFSET) / SCALE


def make_image(grid, ctt, bt39, bt112, timestamp, calibrated_bands=None, image_id=''):
    """Raw-count image on ``grid`` from brightness temperatures.

    Scalars are broadcast to the grid shape. ``calibrated_bands`` limits
    which bands get scale/offset metadata (default: all three).
    """
    bands = {}
    for name, bt in ((BAND_CTT, ctt), (BAND_BTD_NUM, bt39), (BAND_BTD_DEN, bt112)):
        bands[name] = np.broadcast_to(to_counts(bt), grid.shape).copy()
    metadata = {}
    for name in (calibrated_bands if calibrated_bands is not None else bands):
        metadata[f'{name}_scale'] = SCALE
        metadata[f'{name}_offset'] = OFFSET
    return RasterImage(bands=bands, grid=grid, timestamp=pd.Timestamp(timestamp),
                       metadata=metadata, image_id=image_id)


@pytest.fixture
def pixel_region():
    """Region exactly one target pixel in size."""
    return Region(-120.0, 34.0, -120.0 + GRID_RES, 34.0 + GRID_RES)


@pytest.fixture
def small_region():
    """Region of 4 x 5 target pixels."""
    return Region(-120.0, 34.0, -120.0 + 5 * GRID_RES, 34.0 + 4 * GRID_RES)


@pytest.fixture
def image_factory():
    return make_image
