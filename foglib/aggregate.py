"""Temporal accumulation of per-image fog masks into occurrence percentages."""

from __future__ import annotations

from typing import Any, Iterable

import numpy as np
import numpy.typing as npt

from foglib.constants import MASK_BAND, MASK_NODATA
from foglib.errors import GeometryMismatch
from foglib.raster import GridSpec, RasterImage

NDArrayFloat = npt.NDArray[np.floating[Any]]
NDArrayInt = npt.NDArray[np.integer[Any]]

PERCENT_BAND = 'fogPercentage'


def init_accumulator(grid: GridSpec) -> dict[str, Any]:
    """Empty accumulator state for one run on ``grid``.

    Keys:
        fog_count: times each pixel was classified fog.
        total_count: times each pixel had a valid observation.
        image_ids: ids already folded in (each image counts once).
        grid: the pixel grid every mask must share.
    """
    return {
        'fog_count': np.zeros(grid.shape, dtype=np.int32),
        'total_count': np.zeros(grid.shape, dtype=np.int32),
        'image_ids': set(),
        'grid': grid,
    }


def accumulate_mask(acc: dict[str, Any], mask: RasterImage) -> None:
    """Fold one fog mask into ``acc`` in-place.

    Pixels holding MASK_NODATA add nothing to either count.
    """
    if mask.grid != acc['grid']:
        raise GeometryMismatch(
            f'mask {mask.image_id} grid {mask.grid} differs from run grid {acc["grid"]}')
    if mask.image_id in acc['image_ids']:
        raise ValueError(f'image {mask.image_id} already accumulated')

    values = mask.band(MASK_BAND)
    valid = values != MASK_NODATA
    acc['total_count'] += valid.astype(np.int32)
    acc['fog_count'] += (valid & (values == 1)).astype(np.int32)
    acc['image_ids'].add(mask.image_id)


def merge_accumulators(a: dict[str, Any], b: dict[str, Any]) -> dict[str, Any]:
    """Combine two partial accumulators built from disjoint image sets."""
    if a['grid'] != b['grid']:
        raise GeometryMismatch('cannot merge accumulators on different grids')
    shared = a['image_ids'] & b['image_ids']
    if shared:
        raise ValueError(f'images accumulated twice: {sorted(shared)}')
    return {
        'fog_count': a['fog_count'] + b['fog_count'],
        'total_count': a['total_count'] + b['total_count'],
        'image_ids': a['image_ids'] | b['image_ids'],
        'grid': a['grid'],
    }


def fold_masks(masks: Iterable[RasterImage], grid: GridSpec) -> dict[str, Any]:
    """Serial fold of an iterable of masks into a fresh accumulator."""
    acc = init_accumulator(grid)
    for mask in masks:
        accumulate_mask(acc, mask)
    return acc


def percentage_array(fog_count: NDArrayInt, total_count: NDArrayInt) -> NDArrayFloat:
    """100 * fog_count / total_count, NaN where total_count == 0."""
    observed = total_count > 0
    pct = np.full(fog_count.shape, np.nan, dtype=np.float64)
    pct[observed] = 100.0 * fog_count[observed] / total_count[observed]
    return pct


def fog_percentage(acc: dict[str, Any], timestamp=None) -> RasterImage:
    """Final fog occurrence raster [%] with NaN as the no-data sentinel.

    The count grids ride along as 'fogCount' and 'totalCount' bands.
    """
    pct = percentage_array(acc['fog_count'], acc['total_count'])
    return RasterImage(
        bands={
            PERCENT_BAND: pct,
            'fogCount': acc['fog_count'].copy(),
            'totalCount': acc['total_count'].copy(),
        },
        grid=acc['grid'],
        timestamp=timestamp,
        metadata={'n_images': len(acc['image_ids'])},
        nodata=np.nan,
        image_id=f'fog_percentage_{timestamp}',
    )
