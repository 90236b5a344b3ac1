"""Fog / low stratus detection from GOES ABI brightness temperatures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt

from foglib.constants import (
    BAND_BTD_DEN, BAND_BTD_NUM, BAND_CTT, BT_PREFIX,
    CLOUD_MASK_BAND, COLD_CLOUD_THRESH, FOG_BTD_THRESH, MASK_BAND, MASK_NODATA,
)
from foglib.raster import RasterImage

NDArrayFloat = npt.NDArray[np.floating[Any]]
NDArrayBool = npt.NDArray[np.bool_]


@dataclass(frozen=True)
class FogThresholds:
    """Thresholds of the fog decision rule [K].

    Args:
        cold_cloud_k: CTT below this is a cold (high) cloud top.
        fog_btd_k: BTD above this is a fog signature.
        warm_cloud_k: CTT above this is a warm cloud top; None means
            ``cold_cloud_k``.
    """
    cold_cloud_k: float = COLD_CLOUD_THRESH
    fog_btd_k: float = FOG_BTD_THRESH
    warm_cloud_k: float | None = None

    @property
    def warm_k(self) -> float:
        return self.cold_cloud_k if self.warm_cloud_k is None else self.warm_cloud_k


def compute_btd(bt_num: NDArrayFloat, bt_den: NDArrayFloat) -> NDArrayFloat:
    """Brightness temperature difference, e.g. BT(3.9 μm) - BT(11.2 μm) [K]."""
    return bt_num - bt_den


def detect_high_cloud(ctt: NDArrayFloat, cold_thresh: float = COLD_CLOUD_THRESH) -> NDArrayBool:
    """True where the cloud top is colder than ``cold_thresh`` (strict <)."""
    with np.errstate(invalid='ignore'):
        return ctt < cold_thresh


def detect_fog_simple(ctt: NDArrayFloat, btd: NDArrayFloat,
                      thresholds: FogThresholds = FogThresholds()) -> NDArrayBool:
    """Per-pixel fog rule, no spatial context.

    fog = (CTT > warm) & (BTD > fog_btd) & ~(CTT < cold)

    Both comparisons are strict, so CTT exactly at 273 K is neither high
    cloud nor fog. NaN inputs compare False.
    """
    with np.errstate(invalid='ignore'):
        candidate = (ctt > thresholds.warm_k) & (btd > thresholds.fog_btd_k)
    return candidate & ~detect_high_cloud(ctt, thresholds.cold_cloud_k)


def encode_mask(flag: NDArrayBool, valid: NDArrayBool) -> npt.NDArray[np.uint8]:
    """Pack a boolean condition into uint8: 0/1 where valid, MASK_NODATA elsewhere."""
    out = np.full(flag.shape, MASK_NODATA, dtype=np.uint8)
    out[valid] = flag[valid].astype(np.uint8)
    return out


def detect_fog(ctt: NDArrayFloat, bt_num: NDArrayFloat, bt_den: NDArrayFloat,
               thresholds: FogThresholds = FogThresholds()) -> dict[str, Any]:
    """Run the fog rule on three brightness temperature arrays.

    Returns dict with keys:
        ctt, btd: input CTT and derived BTD [K].
        valid: pixels where all three inputs are finite.
        cloud_mask: boolean high-cloud test.
        fog_mask: boolean fog decision (False where not valid).
    """
    btd = compute_btd(bt_num, bt_den)
    valid = np.isfinite(ctt) & np.isfinite(bt_num) & np.isfinite(bt_den)
    cloud = detect_high_cloud(ctt, thresholds.cold_cloud_k) & valid
    fog = detect_fog_simple(ctt, btd, thresholds) & valid
    return {
        'ctt': ctt,
        'btd': btd,
        'valid': valid,
        'cloud_mask': cloud,
        'fog_mask': fog,
    }


def classify_image(image: RasterImage, thresholds: FogThresholds = FogThresholds(),
                   bands: tuple[str, str, str] = (BAND_CTT, BAND_BTD_NUM, BAND_BTD_DEN),
                   keep_layers: bool = False) -> RasterImage:
    """Binary fog mask for a normalized, calibrated image.

    Args:
        image: image with 'BT_<band>' bands on a shared grid.
        thresholds: decision thresholds.
        bands: (CTT, BTD numerator, BTD denominator) source band names.
        keep_layers: also return 'CTT', 'BTD' and 'cloudMask' layers
            for inspection.

    Returns:
        RasterImage with a uint8 'fogMask' band (0 clear, 1 fog,
        MASK_NODATA no observation).
    """
    ctt_band, num_band, den_band = (BT_PREFIX + b for b in bands)
    image.check_shared_grid([ctt_band, num_band, den_band])
    res = detect_fog(image.band(ctt_band), image.band(num_band),
                     image.band(den_band), thresholds)

    out = {MASK_BAND: encode_mask(res['fog_mask'], res['valid'])}
    if keep_layers:
        out['CTT'] = res['ctt']
        out['BTD'] = res['btd']
        out[CLOUD_MASK_BAND] = encode_mask(res['cloud_mask'], res['valid'])
    return image.with_bands(out, nodata=MASK_NODATA)
