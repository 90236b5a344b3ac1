"""inspect_fog_image.py - Fog detection on a single GOES-16 MCMIP file.

Runs the per-image steps of the monthly pipeline (calibration,
reprojection to the region grid, fog rule) and prints the ranges of the
intermediate layers, then saves a 2x2 panel of CTT, BTD, high cloud and
fog pixels. Use it to sanity check thresholds before a monthly run.

Usage:
    python inspect_fog_image.py goes_data/OR_ABI-L2-MCMIPF-M6_G16_s20231820600206_e..._c....nc
    python inspect_fog_image.py FILE --config configs/santa_barbara_july2023.yaml
"""

from __future__ import annotations

import argparse
import os
import sys

import numpy as np

from foglib import FogConfig, FogError, load_config, process_image, read_mcmip_file
from foglib.constants import CLOUD_MASK_BAND, MASK_BAND, MASK_NODATA
from foglib.plotting import plot_layers


def print_summary(layers) -> None:
    """Print layer ranges and pixel counts to console."""
    ctt, btd = layers.band('CTT'), layers.band('BTD')
    fog = layers.band(MASK_BAND)
    cloud = layers.band(CLOUD_MASK_BAND)
    valid = fog != MASK_NODATA
    n_valid = int(valid.sum())

    print('=' * 60)
    print(f'Fog Detection: {layers.image_id}')
    print(f'  Time: {layers.timestamp}')
    print('=' * 60)
    print(f'  CTT range: {np.nanmin(ctt):.1f} - {np.nanmax(ctt):.1f} K')
    print(f'  BTD range: {np.nanmin(btd):.1f} - {np.nanmax(btd):.1f} K')
    print(f'  Valid pixels:      {n_valid:,} of {fog.size:,}')
    print(f'  High cloud pixels: {int((cloud == 1).sum()):,}')
    pct = 100.0 * int((fog == 1).sum()) / max(n_valid, 1)
    print(f'  Fog pixels:        {int((fog == 1).sum()):,} ({pct:.1f}% of valid)')
    print('-' * 60)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Fog detection on one GOES-16 MCMIP file.')
    parser.add_argument('file', help='MCMIP NetCDF file')
    parser.add_argument('--config', help='Run config YAML (region, thresholds, bands)')
    parser.add_argument('--outdir', default='plots')
    args = parser.parse_args(argv)

    config = load_config(args.config) if args.config else FogConfig()

    print(f'Loading {os.path.basename(args.file)}...')
    image = read_mcmip_file(args.file, bands=config.bands, region=config.region)
    try:
        layers = process_image(image, config.region, config.target_grid(),
                               config.thresholds, config.bands, keep_layers=True)
    except FogError as e:
        print(f'No fog layers for {image.image_id}: {e}', file=sys.stderr)
        return 1
    print_summary(layers)

    stem = os.path.splitext(os.path.basename(args.file))[0]
    plot_layers(layers, os.path.join(args.outdir, f'fog_layers_{stem}.png'))
    print('Done.')
    return 0


if __name__ == '__main__':
    sys.exit(main())
