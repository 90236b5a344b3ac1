"""Monthly fog percentage driver: calibrate, normalize, classify, accumulate."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, fields
from typing import Any

import pandas as pd
import yaml
from tqdm import tqdm

from foglib.aggregate import accumulate_mask, fog_percentage, init_accumulator, merge_accumulators
from foglib.calibration import calibrate
from foglib.catalog import ImageCatalog
from foglib.constants import (
    BAND_BTD_DEN, BAND_BTD_NUM, BAND_CTT, DEFAULT_BBOX, DEFAULT_MONTH, DEFAULT_YEAR,
    GRID_RES_M, MASK_BAND, MASK_NODATA, METERS_PER_DEGREE, TARGET_CRS,
)
from foglib.errors import EmptyIntersection, EmptyWindow, GeometryMismatch, MissingCalibration
from foglib.fog import FogThresholds, classify_image
from foglib.geometry import normalize
from foglib.raster import GridSpec, RasterImage, Region

logger = logging.getLogger(__name__)

# Exclusion reason per recoverable error, in report order
EXCLUSIONS = {
    MissingCalibration: 'missing calibration',
    GeometryMismatch: 'geometry mismatch',
    EmptyIntersection: 'empty intersection',
}


@dataclass
class FogConfig:
    """Parameters of one fog percentage run."""
    region: Region = field(default_factory=lambda: Region.from_bbox(DEFAULT_BBOX))
    year: int = DEFAULT_YEAR
    start_month: int = DEFAULT_MONTH
    n_months: int = 1
    thresholds: FogThresholds = field(default_factory=FogThresholds)
    grid_res_m: float = GRID_RES_M
    bands: tuple[str, str, str] = (BAND_CTT, BAND_BTD_NUM, BAND_BTD_DEN)
    workers: int = 1

    def __post_init__(self):
        if not 1 <= self.start_month <= 12:
            raise ValueError(f'start_month must be 1-12, got {self.start_month}')
        if self.n_months < 1:
            raise ValueError(f'n_months must be >= 1, got {self.n_months}')
        if self.grid_res_m <= 0:
            raise ValueError(f'grid_res_m must be positive, got {self.grid_res_m}')
        if self.workers < 1:
            raise ValueError(f'workers must be >= 1, got {self.workers}')
        if len(self.bands) != 3:
            raise ValueError(f'bands must be (ctt, btd_num, btd_den), got {self.bands}')

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> FogConfig:
        """Build from a plain dict, e.g. a parsed YAML file.

        'region' is a [lon_min, lat_min, lon_max, lat_max] list,
        'thresholds' a mapping of FogThresholds fields and 'bands' a
        mapping with 'ctt', 'btd_num', 'btd_den'.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(cfg) - known
        if unknown:
            raise ValueError(f'unknown config keys: {sorted(unknown)}')

        kwargs = dict(cfg)
        if 'region' in kwargs:
            kwargs['region'] = Region.from_bbox(kwargs['region'])
        if 'thresholds' in kwargs:
            th = dict(kwargs['thresholds'] or {})
            allowed = {f.name for f in fields(FogThresholds)}
            if set(th) - allowed:
                raise ValueError(f'unknown threshold keys: {sorted(set(th) - allowed)}')
            kwargs['thresholds'] = FogThresholds(**th)
        if 'bands' in kwargs:
            b = kwargs['bands']
            kwargs['bands'] = (b['ctt'], b['btd_num'], b['btd_den'])
        return cls(**kwargs)

    @property
    def grid_res(self) -> float:
        """Target resolution in degrees."""
        return self.grid_res_m / METERS_PER_DEGREE

    def target_grid(self) -> GridSpec:
        return self.region.grid(self.grid_res, TARGET_CRS)


def load_config(path: str) -> FogConfig:
    """Read a FogConfig from YAML."""
    with open(path) as f:
        cfg = yaml.safe_load(f) or {}
    return FogConfig.from_dict(cfg)


def month_window(year: int, month: int, n_months: int = 1) -> tuple[pd.Timestamp, pd.Timestamp]:
    """Half-open [start, end) spanning ``n_months`` calendar months."""
    start = pd.Timestamp(year=year, month=month, day=1)
    return start, start + pd.DateOffset(months=n_months)


def process_image(image: RasterImage, region: Region, grid: GridSpec,
                  thresholds: FogThresholds = FogThresholds(),
                  bands: tuple[str, str, str] = (BAND_CTT, BAND_BTD_NUM, BAND_BTD_DEN),
                  keep_layers: bool = False) -> RasterImage:
    """Raw image -> calibrated -> normalized -> fog mask.

    Raises:
        MissingCalibration, GeometryMismatch, EmptyIntersection
    """
    calibrated = calibrate(image, bands)
    normalized = normalize(calibrated, region, grid)
    return classify_image(normalized, thresholds, bands, keep_layers=keep_layers)


def _record(image: RasterImage, status: str, mask: RasterImage | None = None) -> dict[str, Any]:
    rec = {'image_id': image.image_id, 'timestamp': image.timestamp, 'status': status,
           'valid_pixels': 0, 'fog_pixels': 0}
    if mask is not None:
        values = mask.band(MASK_BAND)
        rec['valid_pixels'] = int((values != MASK_NODATA).sum())
        rec['fog_pixels'] = int((values == 1).sum())
    return rec


def _process_chunk(images: list[RasterImage], config: FogConfig, grid: GridSpec,
                   keep_layers: bool, pbar=None) -> tuple[dict, list, RasterImage | None]:
    """Fold a chunk of images into its own partial accumulator."""
    acc = init_accumulator(grid)
    records = []
    first_layers = None
    for image in images:
        try:
            mask = process_image(image, config.region, grid, config.thresholds,
                                 config.bands, keep_layers=keep_layers)
        except tuple(EXCLUSIONS) as e:
            reason = next(r for cls, r in EXCLUSIONS.items() if isinstance(e, cls))
            logger.debug('excluded %s (%s): %s', image.image_id, reason, e)
            records.append(_record(image, reason))
        else:
            accumulate_mask(acc, mask)
            records.append(_record(image, 'ok', mask))
            if keep_layers and first_layers is None:
                first_layers = mask
        if pbar is not None:
            pbar.update(1)
    return acc, records, first_layers


def _report_exclusions(records: list[dict[str, Any]]) -> dict[str, int]:
    """Log 'N of M images excluded: <reason>' lines; return counts per reason."""
    n_total = len(records)
    excluded = {}
    for reason in EXCLUSIONS.values():
        n = sum(1 for r in records if r['status'] == reason)
        if n == 0:
            continue
        excluded[reason] = n
        msg = f'{n} of {n_total} images excluded: {reason}'
        # Images outside the clip are expected; the others are data problems.
        if reason == 'empty intersection':
            logger.info(msg)
        else:
            logger.warning(msg)
    return excluded


def run_fog_percentage(catalog: ImageCatalog, config: FogConfig,
                       keep_layers: bool = False, progress: bool = False) -> dict[str, Any]:
    """Compute the fog occurrence percentage for the configured window.

    Args:
        catalog: imagery source.
        config: region, window, thresholds and worker count.
        keep_layers: also return CTT/BTD/cloud/fog layers of the first
            valid image for inspection.
        progress: show a tqdm progress bar.

    Returns dict with keys:
        percentage: RasterImage with 'fogPercentage' [%] (NaN where never
            observed), 'fogCount' and 'totalCount' bands.
        window: (start, end) timestamps.
        n_images, n_valid: images returned by the catalog / folded in.
        excluded: {reason: count}.
        records: per-image dicts (image_id, timestamp, status,
            valid_pixels, fog_pixels) in time order.
        layers: inspection RasterImage or None.

    Raises:
        EmptyWindow: the catalog found nothing, or every image was excluded.
    """
    start, end = month_window(config.year, config.start_month, config.n_months)
    images = catalog.search(config.region, start, end)
    if not images:
        raise EmptyWindow(f'no data for window [{start.date()}, {end.date()}) '
                          f'over {config.region.bbox}')
    logger.info('Processing %d images for [%s, %s)', len(images), start.date(), end.date())

    grid = config.target_grid()
    pbar = tqdm(total=len(images), desc='Images', disable=not progress)
    try:
        if config.workers == 1:
            acc, records, layers = _process_chunk(images, config, grid, keep_layers, pbar)
        else:
            chunks = [images[i::config.workers] for i in range(config.workers)]
            acc, records, candidates = init_accumulator(grid), [], []
            with ThreadPoolExecutor(max_workers=config.workers) as executor:
                futures = [executor.submit(_process_chunk, chunk, config, grid, keep_layers, pbar)
                           for chunk in chunks if chunk]
                for fut in as_completed(futures):
                    part, part_records, part_layers = fut.result()
                    acc = merge_accumulators(acc, part)
                    records.extend(part_records)
                    if part_layers is not None:
                        candidates.append(part_layers)
            layers = min(candidates, key=lambda m: pd.Timestamp(m.timestamp)) if candidates else None
    finally:
        pbar.close()

    records.sort(key=lambda r: (pd.Timestamp(r['timestamp']), r['image_id']))
    excluded = _report_exclusions(records)
    n_valid = len(acc['image_ids'])
    if n_valid == 0:
        raise EmptyWindow(f'all {len(images)} images for [{start.date()}, {end.date()}) '
                          f'were excluded: {excluded}')

    logger.info('%d of %d images contributed to the fog percentage', n_valid, len(images))
    return {
        'percentage': fog_percentage(acc, timestamp=start),
        'window': (start, end),
        'n_images': len(images),
        'n_valid': n_valid,
        'excluded': excluded,
        'records': records,
        'layers': layers,
    }
