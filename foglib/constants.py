"""GOES ABI band names, fog thresholds, grid parameters and display settings."""

# GOES-16 ABI L2 MCMIP band variables
BAND_CTT = 'CMI_C13'       # Ch 13: 10.3 μm "clean" longwave IR, cloud top temperature
BAND_BTD_NUM = 'CMI_C07'   # Ch 7:  3.9 μm shortwave IR window
BAND_BTD_DEN = 'CMI_C14'   # Ch 14: 11.2 μm longwave IR window
FOG_BANDS = (BAND_CTT, BAND_BTD_NUM, BAND_BTD_DEN)

# Calibrated bands are renamed with this prefix (values in [K])
BT_PREFIX = 'BT_'

# Metadata key suffixes for per-band calibration, e.g. 'CMI_C13_scale'
SCALE_SUFFIX = '_scale'
OFFSET_SUFFIX = '_offset'

# Fog decision rule [K].
# CTT below the cold threshold is an ice-phase / high cloud top.
# Fog and stratus have warm tops and a positive 3.9-11.2 μm difference
# at night because water droplets emit less efficiently at 3.9 μm.
COLD_CLOUD_THRESH = 273.0
FOG_BTD_THRESH = 2.0

# Target grid: equirectangular lat/lon at ~2 km.
TARGET_CRS = 'EPSG:4326'
GRID_RES_M = 2000.0          # [m]
METERS_PER_DEGREE = 111320.0
GRID_RES = GRID_RES_M / METERS_PER_DEGREE  # [degrees] ≈ 0.018°

# Santa Barbara coastline, (lon_min, lat_min, lon_max, lat_max)
DEFAULT_BBOX = (-120.7, 34.3, -119.7, 35.0)
DEFAULT_YEAR = 2023
DEFAULT_MONTH = 7

# Mask band encoding
MASK_BAND = 'fogMask'
CLOUD_MASK_BAND = 'cloudMask'
MASK_NODATA = 255  # 0 = clear, 1 = condition holds, 255 = no observation

# GOES-East full disk, used when a file carries no projection variable
GOES16_PROJ = ('+proj=geos +h=35786023.0 +a=6378137.0 +b=6356752.31414 '
               '+lon_0=-75.0 +sweep=x +units=m +no_defs')

# Display parameters: (min, max, palette)
VIS_CTT = {'min': 260, 'max': 300, 'palette': ['blue', 'yellow', 'red']}
VIS_BTD = {'min': -5, 'max': 5, 'palette': ['red', 'yellow', 'green']}
VIS_CLOUD = {'min': 0, 'max': 1, 'palette': ['red']}
VIS_FOG_MASK = {'min': 0, 'max': 1, 'palette': ['white']}
VIS_FOG_PCT = {'min': 0, 'max': 100, 'palette': ['blue', 'white']}
