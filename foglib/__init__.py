"""GOES fog library: shared functions for monthly fog occurrence mapping."""

from foglib.constants import (
    BAND_CTT, BAND_BTD_NUM, BAND_BTD_DEN, FOG_BANDS,
    COLD_CLOUD_THRESH, FOG_BTD_THRESH, GRID_RES, MASK_NODATA,
)
from foglib.errors import (
    FogError, MissingCalibration, GeometryMismatch, EmptyIntersection, EmptyWindow,
)
from foglib.raster import GridSpec, Region, RasterImage
from foglib.calibration import calibrate, calibration_params, counts_to_bt
from foglib.geometry import reproject, clip_to_polygon, normalize, valid_pixels
from foglib.fog import (
    FogThresholds, compute_btd, detect_high_cloud, detect_fog_simple, detect_fog,
    classify_image,
)
from foglib.aggregate import (
    init_accumulator, accumulate_mask, merge_accumulators, fold_masks,
    percentage_array, fog_percentage,
)
from foglib.io import read_mcmip_file, list_mcmip_files, write_geotiff
from foglib.catalog import InMemoryCatalog, LocalCatalog
from foglib.pipeline import (
    FogConfig, load_config, month_window, process_image, run_fog_percentage,
)
from foglib.stats import build_image_table, percentage_summary
