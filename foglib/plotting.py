"""Map rendering of fog layers with (min, max, palette) display parameters."""

from __future__ import annotations

import os
from typing import Any

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.colors import LinearSegmentedColormap, ListedColormap

from foglib.aggregate import PERCENT_BAND
from foglib.constants import (
    CLOUD_MASK_BAND, MASK_BAND, MASK_NODATA,
    VIS_BTD, VIS_CLOUD, VIS_CTT, VIS_FOG_MASK, VIS_FOG_PCT,
)
from foglib.raster import RasterImage


def palette_cmap(palette: list[str]):
    """Colormap from an ordered list of colours; one colour gives a flat map."""
    if len(palette) == 1:
        return ListedColormap(palette)
    return LinearSegmentedColormap.from_list('palette', palette)


def layer_array(image: RasterImage, band: str) -> np.ma.MaskedArray:
    """Band as a masked array; no-data pixels are masked."""
    arr = np.asarray(image.band(band))
    if arr.dtype == np.uint8:
        return np.ma.masked_equal(arr, MASK_NODATA)
    return np.ma.masked_invalid(arr)


def plot_layer(ax, image: RasterImage, band: str, vis: dict[str, Any],
               title: str = '', label: str = '', selfmask: bool = False):
    """Draw one band of ``image`` on ``ax`` in lon/lat coordinates.

    Args:
        vis: {'min', 'max', 'palette'} display parameters.
        selfmask: hide zero pixels, so a boolean layer shows only where
            the condition holds.
    """
    data = layer_array(image, band)
    if selfmask:
        data = np.ma.masked_where(data == 0, data)
    lon_min, lat_min, lon_max, lat_max = image.grid.bounds
    im = ax.imshow(data, extent=(lon_min, lon_max, lat_min, lat_max), aspect='equal',
                   cmap=palette_cmap(vis['palette']), vmin=vis['min'], vmax=vis['max'],
                   interpolation='nearest')
    ax.set_title(title or band)
    ax.set_xlabel('Longitude')
    ax.set_ylabel('Latitude')
    if label:
        plt.colorbar(im, ax=ax, label=label, fraction=0.046, pad=0.04)
    return im


def plot_fog_percentage(percentage: RasterImage, outname: str, title: str = '') -> str:
    """Save the monthly fog cover map (0-100 %, blue to white)."""
    fig, ax = plt.subplots(figsize=(10, 8))
    ax.set_facecolor('0.3')  # no-data pixels show through as grey
    plot_layer(ax, percentage, PERCENT_BAND, VIS_FOG_PCT,
               title=title or 'Monthly Fog Cover', label='Fog occurrence [%]')
    plt.tight_layout()
    os.makedirs(os.path.dirname(outname) or '.', exist_ok=True)
    plt.savefig(outname, dpi=150)
    print(f'  Saved {outname}')
    plt.close(fig)
    return outname


def plot_layers(layers: RasterImage, outname: str) -> str:
    """2x2 panel of one image: CTT, BTD, high-cloud pixels, fog pixels."""
    fig, axes = plt.subplots(2, 2, figsize=(14, 10))
    fig.suptitle(f'Fog Detection: {layers.image_id}', fontsize=13)

    plot_layer(axes[0, 0], layers, 'CTT', VIS_CTT,
               title='Cloud Top Temperature (C13)', label='K')
    plot_layer(axes[0, 1], layers, 'BTD', VIS_BTD,
               title='Brightness Temp Difference (C07 - C14)', label='K')
    axes[1, 0].set_facecolor('0.3')
    plot_layer(axes[1, 0], layers, CLOUD_MASK_BAND, VIS_CLOUD,
               title='High Cloud Pixels (CTT < threshold)', selfmask=True)
    axes[1, 1].set_facecolor('0.3')
    plot_layer(axes[1, 1], layers, MASK_BAND, VIS_FOG_MASK,
               title='Fog Mask', selfmask=True)

    plt.tight_layout()
    os.makedirs(os.path.dirname(outname) or '.', exist_ok=True)
    plt.savefig(outname, dpi=150)
    print(f'  Saved {outname}')
    plt.close(fig)
    return outname
