"""
Tests for MCMIP reading, local catalogs, GeoTIFF export and the CLI.

Synthetic MCMIP files are written with netCDF4 in the on-disk layout of
the real product: packed int16 scan angles and bands with scale_factor,
add_offset and _FillValue attributes.

Run with: pytest tests/test_io_catalog.py -v
"""

import os

import netCDF4
import numpy as np
import pandas as pd
import pytest
import rasterio
from pyproj import Transformer

from foglib.aggregate import PERCENT_BAND, fog_percentage, init_accumulator
from foglib.catalog import LocalCatalog, footprint, overlaps
from foglib.constants import BAND_BTD_DEN, BAND_BTD_NUM, BAND_CTT, GOES16_PROJ
from foglib.errors import MissingCalibration
from foglib.io import file_start_time, list_mcmip_files, read_mcmip_file, write_geotiff
from foglib.pipeline import FogConfig, process_image, run_fog_percentage
from foglib.raster import Region

H = 35786023.0
ANGLE_SCALE = 5.6e-05
N = 40

FOG = {BAND_CTT: 280.0, BAND_BTD_NUM: 290.0, BAND_BTD_DEN: 285.0}
CLEAR = {BAND_CTT: 280.0, BAND_BTD_NUM: 285.0, BAND_BTD_DEN: 285.0}


def mcmip_name(timestamp):
    ts = pd.Timestamp(timestamp)
    token = ts.strftime('%Y%j%H%M%S') + '0'
    return f'OR_ABI-L2-MCMIPF-M6_G16_s{token}_e{token}_c{token}.nc'


def write_mcmip(directory, timestamp, region, bt, uncalibrated=(), fill_rows=0):
    """Write a small MCMIP-like file centred on ``region``.

    Args:
        bt: {band: brightness temperature [K]} written as constant fields.
        uncalibrated: bands written without scale_factor/add_offset.
        fill_rows: number of top rows set to _FillValue in every band.
    """
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, mcmip_name(timestamp))
    t = Transformer.from_crs('EPSG:4326', GOES16_PROJ, always_xy=True)
    cx, cy = t.transform((region.lon_min + region.lon_max) / 2,
                         (region.lat_min + region.lat_max) / 2)
    k = np.arange(N, dtype=np.int16) - N // 2

    with netCDF4.Dataset(path, 'w') as nc:
        nc.set_auto_maskandscale(False)
        nc.createDimension('x', N)
        nc.createDimension('y', N)
        for name, data, offset in (('x', k, cx / H), ('y', -k, cy / H)):
            var = nc.createVariable(name, 'i2', (name,))
            var[:] = data
            var.scale_factor = ANGLE_SCALE
            var.add_offset = offset
            var.units = 'rad'

        proj = nc.createVariable('goes_imager_projection', 'i4')
        proj.perspective_point_height = H
        proj.semi_major_axis = 6378137.0
        proj.semi_minor_axis = 6356752.31414
        proj.longitude_of_projection_origin = -75.0
        proj.sweep_angle_axis = 'x'

        for band, value in bt.items():
            var = nc.createVariable(band, 'i2', ('y', 'x'), fill_value=np.int16(-1))
            counts = np.full((N, N), round((value - 100.0) / 0.5), dtype=np.int16)
            counts[:fill_rows] = -1
            var[:] = counts
            var.setncattr('_Unsigned', 'true')
            if band not in uncalibrated:
                var.scale_factor = np.float32(0.5)
                var.add_offset = np.float32(100.0)

        nc.time_coverage_start = pd.Timestamp(timestamp).strftime('%Y-%m-%dT%H:%M:%S.0Z')
    return path


class TestFileNames:

    def test_start_time(self):
        ts = file_start_time('OR_ABI-L2-MCMIPF-M6_G16_s20231821200206_e20231821209514_c.nc')
        assert ts == pd.Timestamp('2023-07-01 12:00:20')

    def test_no_token(self):
        assert file_start_time('readme.nc') is None

    def test_listing_recursive_sorted(self, tmp_path, small_region):
        late = write_mcmip(tmp_path / '2023' / '183', '2023-07-02 06:00', small_region, FOG)
        early = write_mcmip(tmp_path / '2023' / '182', '2023-07-01 06:00', small_region, FOG)
        (tmp_path / 'notes.txt').write_text('x')
        assert list_mcmip_files(str(tmp_path)) == [early, late]


class TestReadMcmip:
    """Reading packed bands and calibration metadata."""

    def test_metadata_and_timestamp(self, tmp_path, small_region):
        path = write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG)
        image = read_mcmip_file(path)
        assert image.shape == (N, N)
        assert image.grid.crs.startswith('+proj=geos')
        assert image.grid.dx == pytest.approx(ANGLE_SCALE * H)
        assert image.timestamp == pd.Timestamp('2023-07-01 06:00')
        assert image.image_id == os.path.basename(path)
        for band in FOG:
            assert image.metadata[band + '_scale'] == 0.5
            assert image.metadata[band + '_offset'] == 100.0
        np.testing.assert_array_equal(image.band(BAND_CTT), 360.0)

    def test_fill_is_nan(self, tmp_path, small_region):
        path = write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG, fill_rows=3)
        counts = read_mcmip_file(path).band(BAND_BTD_NUM)
        assert np.isnan(counts[:3]).all()
        assert np.isfinite(counts[3:]).all()

    def test_region_subset(self, tmp_path, small_region):
        path = write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG)
        image = read_mcmip_file(path, region=small_region)
        assert image.shape[0] < N and image.shape[1] < N
        assert overlaps(image.grid, small_region)
        lon_min, lat_min, lon_max, lat_max = footprint(image.grid)
        assert lon_min <= small_region.lon_min and lon_max >= small_region.lon_max
        assert lat_min <= small_region.lat_min and lat_max >= small_region.lat_max

    def test_uncalibrated_band(self, tmp_path, small_region):
        path = write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG,
                           uncalibrated=(BAND_BTD_DEN,))
        image = read_mcmip_file(path, region=small_region)
        assert BAND_BTD_DEN + '_scale' not in image.metadata
        with pytest.raises(MissingCalibration):
            process_image(image, small_region, small_region.grid())

    def test_single_file_fog(self, tmp_path, small_region):
        path = write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG)
        image = read_mcmip_file(path, region=small_region)
        layers = process_image(image, small_region, small_region.grid(), keep_layers=True)
        np.testing.assert_allclose(layers.band('CTT'), 280.0)
        np.testing.assert_allclose(layers.band('BTD'), 5.0)
        assert (layers.band('fogMask') == 1).all()

    def test_region_off_file_reads_nothing(self, tmp_path, small_region):
        far = Region(-80.0, 10.0, -79.9, 10.1)
        path = write_mcmip(tmp_path, '2023-07-01 06:00', far, FOG)
        image = read_mcmip_file(path, region=small_region)
        assert image.shape == (0, 0)
        assert all(image.band(b).size == 0 for b in FOG)
        assert footprint(image.grid) is None
        assert not overlaps(image.grid, small_region)


class TestLocalCatalog:

    def test_window_filter(self, tmp_path, small_region):
        write_mcmip(tmp_path, '2023-06-30 23:50', small_region, FOG)
        inside = write_mcmip(tmp_path, '2023-07-15 06:00', small_region, FOG)
        write_mcmip(tmp_path, '2023-08-01 00:00', small_region, FOG)
        catalog = LocalCatalog(str(tmp_path))
        assert catalog.files(pd.Timestamp('2023-07-01'), pd.Timestamp('2023-08-01')) == [inside]

    def test_search_skips_other_regions(self, tmp_path, small_region):
        write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG)
        far = Region(-80.0, 10.0, -79.9, 10.1)
        write_mcmip(tmp_path, '2023-07-01 07:00', far, FOG)
        images = LocalCatalog(str(tmp_path)).search(
            small_region, pd.Timestamp('2023-07-01'), pd.Timestamp('2023-08-01'))
        assert [img.timestamp for img in images] == [pd.Timestamp('2023-07-01 06:00')]

    def test_monthly_run(self, tmp_path, small_region):
        write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG)
        write_mcmip(tmp_path, '2023-07-02 06:00', small_region, CLEAR)
        write_mcmip(tmp_path, '2023-07-03 06:00', small_region, CLEAR)
        write_mcmip(tmp_path, '2023-07-04 06:00', small_region, FOG,
                    uncalibrated=(BAND_CTT,))
        config = FogConfig(region=small_region, year=2023, start_month=7, workers=2)
        res = run_fog_percentage(LocalCatalog(str(tmp_path)), config)
        np.testing.assert_allclose(res['percentage'].band(PERCENT_BAND), 100.0 / 3)
        assert res['excluded'] == {'missing calibration': 1}


class TestGeoTiff:

    def test_write_percentage(self, tmp_path, small_region):
        grid = small_region.grid()
        acc = init_accumulator(grid)
        acc['fog_count'][:] = 1
        acc['total_count'][:] = 4
        acc['total_count'][0, 0] = 0
        acc['fog_count'][0, 0] = 0
        out = write_geotiff(fog_percentage(acc), str(tmp_path / 'out' / 'fog.tif'))

        with rasterio.open(out) as src:
            assert src.count == 3
            assert src.descriptions == (PERCENT_BAND, 'fogCount', 'totalCount')
            assert src.crs.to_epsg() == 4326
            assert (src.height, src.width) == grid.shape
            assert src.transform.c == pytest.approx(grid.x0)
            assert src.transform.f == pytest.approx(grid.y0)
            pct = src.read(1)
        assert np.isnan(pct[0, 0])
        assert pct[1, 1] == pytest.approx(25.0)

    def test_write_mask_uint8(self, tmp_path, small_region, image_factory):
        img = image_factory(small_region.grid(), 280.0, 290.0, 285.0, '2023-07-01')
        mask = process_image(img, small_region, small_region.grid())
        out = write_geotiff(mask, str(tmp_path / 'mask.tif'))
        with rasterio.open(out) as src:
            assert src.dtypes[0] == 'uint8'
            assert src.nodata == 255
            assert (src.read(1) == 1).all()


class TestCli:
    """fog_percentage.py end to end on a directory of files."""

    def test_main_writes_outputs(self, tmp_path, small_region):
        import fog_percentage as cli
        data = tmp_path / 'data'
        write_mcmip(data, '2023-07-01 06:00', small_region, FOG)
        write_mcmip(data, '2023-07-02 06:00', small_region, CLEAR)
        outdir = tmp_path / 'out'
        rc = cli.main([
            '--data-dir', str(data), '--outdir', str(outdir),
            '--bbox', *map(str, small_region.bbox), '--year', '2023', '--month', '7',
            '--plots',
        ])
        assert rc == 0
        assert (outdir / 'fog_percentage_2023-07.tif').exists()
        table = pd.read_csv(outdir / 'images_2023-07.csv')
        assert list(table['status']) == ['ok', 'ok']
        assert any(p.suffix == '.png' for p in (outdir / 'plots').iterdir())

    def test_main_empty_window(self, tmp_path, small_region):
        import fog_percentage as cli
        rc = cli.main(['--data-dir', str(tmp_path), '--outdir', str(tmp_path / 'o'),
                     '--bbox', *map(str, small_region.bbox)])
        assert rc == 1

    def test_threshold_overrides(self):
        import fog_percentage as cli
        parser_args = ['--cold-thresh', '270', '--btd-thresh', '1.5']
        args = cli.parse_args(parser_args)
        config = cli.build_config(args)
        assert config.thresholds.cold_cloud_k == 270.0
        assert config.thresholds.fog_btd_k == 1.5
        assert config.thresholds.warm_k == 270.0


class TestInspectCli:
    """inspect_fog_image.py on a single file."""

    @staticmethod
    def region_config(tmp_path, region):
        path = tmp_path / 'region.yaml'
        path.write_text('region: [%s]\n' % ', '.join(map(str, region.bbox)))
        return str(path)

    def test_writes_panel(self, tmp_path, small_region):
        import inspect_fog_image as inspect_cli
        path = write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG)
        outdir = tmp_path / 'plots'
        rc = inspect_cli.main([path, '--config', self.region_config(tmp_path, small_region),
                               '--outdir', str(outdir)])
        assert rc == 0
        stem = os.path.splitext(os.path.basename(path))[0]
        assert (outdir / f'fog_layers_{stem}.png').exists()

    def test_uncalibrated_file_reports_error(self, tmp_path, small_region, capsys):
        import inspect_fog_image as inspect_cli
        path = write_mcmip(tmp_path, '2023-07-01 06:00', small_region, FOG,
                           uncalibrated=(BAND_CTT,))
        rc = inspect_cli.main([path, '--config', self.region_config(tmp_path, small_region),
                               '--outdir', str(tmp_path / 'plots')])
        assert rc == 1
        assert 'No fog layers for' in capsys.readouterr().err
        assert not (tmp_path / 'plots').exists()

    def test_region_off_file_reports_error(self, tmp_path, small_region, capsys):
        import inspect_fog_image as inspect_cli
        far = Region(-80.0, 10.0, -79.9, 10.1)
        path = write_mcmip(tmp_path, '2023-07-01 06:00', far, FOG)
        rc = inspect_cli.main([path, '--config', self.region_config(tmp_path, small_region),
                               '--outdir', str(tmp_path / 'plots')])
        assert rc == 1
        assert 'No fog layers for' in capsys.readouterr().err
