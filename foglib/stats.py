"""Run statistics: per-image table and fog percentage summary."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from foglib.aggregate import PERCENT_BAND
from foglib.raster import RasterImage


def build_image_table(records: list[dict[str, Any]]) -> pd.DataFrame:
    """One row per catalog image.

    Returns:
        pd.DataFrame with columns:
            image_id, timestamp, status, valid_pixels, fog_pixels, fog_pct
        where fog_pct is the share of valid pixels classified fog (NaN
        for excluded images).
    """
    df = pd.DataFrame(records, columns=['image_id', 'timestamp', 'status',
                                        'valid_pixels', 'fog_pixels'])
    df['timestamp'] = pd.to_datetime(df['timestamp'])
    valid = df['valid_pixels'].where(df['valid_pixels'] > 0)
    df['fog_pct'] = 100.0 * df['fog_pixels'] / valid
    return df.sort_values('timestamp').reset_index(drop=True)


def percentage_summary(percentage: RasterImage) -> dict[str, Any]:
    """Summary statistics of a fog percentage raster over observed pixels."""
    pct = percentage.band(PERCENT_BAND)
    observed = np.isfinite(pct)
    n_obs = int(observed.sum())
    return {
        'n_pixels': int(pct.size),
        'n_observed': n_obs,
        'n_nodata': int(pct.size - n_obs),
        'mean_pct': float(pct[observed].mean()) if n_obs else float('nan'),
        'max_pct': float(pct[observed].max()) if n_obs else float('nan'),
        'n_images': int(percentage.metadata.get('n_images', 0)),
    }
