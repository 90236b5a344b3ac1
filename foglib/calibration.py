"""Raw ABI counts -> brightness temperature using per-image scale/offset."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import numpy.typing as npt

from foglib.constants import BT_PREFIX, FOG_BANDS, OFFSET_SUFFIX, SCALE_SUFFIX
from foglib.errors import MissingCalibration
from foglib.raster import RasterImage

NDArrayFloat = npt.NDArray[np.floating[Any]]

logger = logging.getLogger(__name__)


def calibration_params(image: RasterImage,
                       bands: tuple[str, ...] = FOG_BANDS) -> dict[str, tuple[float, float]]:
    """Collect (scale, offset) per band from image metadata.

    Raises:
        MissingCalibration: first band without both '<band>_scale' and
            '<band>_offset' entries.
    """
    params = {}
    for band in bands:
        scale = image.metadata.get(band + SCALE_SUFFIX)
        offset = image.metadata.get(band + OFFSET_SUFFIX)
        if scale is None or offset is None:
            raise MissingCalibration(band, image.timestamp)
        params[band] = (float(scale), float(offset))
    return params


def counts_to_bt(raw: NDArrayFloat, scale: float, offset: float) -> NDArrayFloat:
    """Linear count conversion: BT = raw * scale + offset [K]. NaN stays NaN."""
    return raw.astype(np.float64) * scale + offset


def calibrate(image: RasterImage, bands: tuple[str, ...] = FOG_BANDS) -> RasterImage:
    """Return a new image holding only the calibrated 'BT_<band>' bands.

    Calibration keys are consumed here and dropped from the result's
    metadata, together with the raw bands.
    """
    params = calibration_params(image, bands)
    out = {}
    for band, (scale, offset) in params.items():
        out[BT_PREFIX + band] = counts_to_bt(image.band(band), scale, offset)
        logger.debug('%s %s: scale=%g offset=%g', image.image_id, band, scale, offset)

    keys = {b + SCALE_SUFFIX for b in params} | {b + OFFSET_SUFFIX for b in params}
    metadata = {k: v for k, v in image.metadata.items() if k not in keys}
    return image.with_bands(out, metadata=metadata, nodata=np.nan)
