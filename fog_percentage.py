"""fog_percentage.py - Monthly fog occurrence map from GOES-16 ABI imagery.

For every MCMIP full-disk file in the requested month, converts bands 7,
13 and 14 to brightness temperature, reprojects them onto a ~2 km lat/lon
grid over the region, flags fog pixels (warm cloud top and positive
3.9-11.2 μm difference) and counts how often each pixel was foggy.

Outputs (in --outdir):
  fog_percentage_YYYY-MM.tif   fogPercentage [%], fogCount, totalCount
  images_YYYY-MM.csv           per-image status and fog pixel counts
  plots/                       fog cover map and first-image layers (--plots)

Usage:
    python fog_percentage.py --data-dir goes_data
    python fog_percentage.py --config configs/santa_barbara_july2023.yaml --plots
    python fog_percentage.py --data-dir goes_data --year 2023 --month 8 --workers 4
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys

from foglib import (
    EmptyWindow, FogConfig, FogThresholds, LocalCatalog, Region,
    build_image_table, load_config, percentage_summary, run_fog_percentage,
    write_geotiff,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def build_config(args: argparse.Namespace) -> FogConfig:
    """YAML config (if any) with command line overrides applied."""
    config = load_config(args.config) if args.config else FogConfig()

    changes = {}
    if args.bbox is not None:
        changes['region'] = Region.from_bbox(args.bbox)
    if args.year is not None:
        changes['year'] = args.year
    if args.month is not None:
        changes['start_month'] = args.month
    if args.months is not None:
        changes['n_months'] = args.months
    if args.workers is not None:
        changes['workers'] = args.workers

    th = config.thresholds
    if args.cold_thresh is not None or args.btd_thresh is not None or args.warm_thresh is not None:
        changes['thresholds'] = FogThresholds(
            cold_cloud_k=th.cold_cloud_k if args.cold_thresh is None else args.cold_thresh,
            fog_btd_k=th.fog_btd_k if args.btd_thresh is None else args.btd_thresh,
            warm_cloud_k=th.warm_cloud_k if args.warm_thresh is None else args.warm_thresh,
        )
    return dataclasses.replace(config, **changes)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Monthly fog occurrence percentage from GOES-16 ABI MCMIP files.')
    parser.add_argument('--config', help='Run config YAML (e.g. configs/santa_barbara_july2023.yaml)')
    parser.add_argument('--data-dir', default='goes_data', help='Directory of MCMIP NetCDF files')
    parser.add_argument('--outdir', default='output', help='Output directory')
    parser.add_argument('--bbox', type=float, nargs=4,
                        metavar=('LON_MIN', 'LAT_MIN', 'LON_MAX', 'LAT_MAX'))
    parser.add_argument('--year', type=int)
    parser.add_argument('--month', type=int, help='Start month (1-12)')
    parser.add_argument('--months', type=int, help='Window length in months')
    parser.add_argument('--cold-thresh', type=float, help='High cloud CTT threshold [K]')
    parser.add_argument('--btd-thresh', type=float, help='Fog BTD threshold [K]')
    parser.add_argument('--warm-thresh', type=float,
                        help='Warm cloud top CTT threshold [K] (default: cold threshold)')
    parser.add_argument('--workers', type=int, help='Worker threads for per-image processing')
    parser.add_argument('--plots', action='store_true', help='Save PNG maps')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    config = build_config(args)
    th = config.thresholds
    print(f'Region: {config.region.bbox}')
    print(f'Window: {config.year}-{config.start_month:02d}, {config.n_months} month(s)')
    print(f'Thresholds: cold {th.cold_cloud_k} K, warm {th.warm_k} K, BTD {th.fog_btd_k} K')

    catalog = LocalCatalog(args.data_dir)
    try:
        result = run_fog_percentage(catalog, config, keep_layers=args.plots, progress=True)
    except EmptyWindow as e:
        print(f'No fog map produced: {e}', file=sys.stderr)
        return 1

    tag = f'{config.year}-{config.start_month:02d}'
    os.makedirs(args.outdir, exist_ok=True)
    tif = write_geotiff(result['percentage'], os.path.join(args.outdir, f'fog_percentage_{tag}.tif'))
    print(f'  Saved {tif}')

    table = build_image_table(result['records'])
    csv = os.path.join(args.outdir, f'images_{tag}.csv')
    table.to_csv(csv, index=False, float_format='%.2f')
    print(f'  Saved {csv}')

    if args.plots:
        from foglib.plotting import plot_fog_percentage, plot_layers
        plot_fog_percentage(result['percentage'], os.path.join(args.outdir, 'plots', f'fog_percentage_{tag}.png'),
                            title=f'Fog Cover {tag} ({result["n_valid"]} images)')
        if result['layers'] is not None:
            plot_layers(result['layers'], os.path.join(args.outdir, 'plots', f'first_image_layers_{tag}.png'))

    s = percentage_summary(result['percentage'])
    print()
    print(f'  Images: {result["n_valid"]} of {result["n_images"]} used')
    for reason, n in result['excluded'].items():
        print(f'    {n} excluded: {reason}')
    print(f'  Pixels observed: {s["n_observed"]:,} of {s["n_pixels"]:,}')
    print(f'  Fog occurrence: mean {s["mean_pct"]:.1f}%, max {s["max_pct"]:.1f}%')
    print('Done.')
    return 0


if __name__ == '__main__':
    sys.exit(main())
