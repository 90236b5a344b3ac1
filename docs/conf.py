"""Sphinx configuration for goes-fog documentation."""

import os
import sys

# Add project root to sys.path so Sphinx can import foglib/
sys.path.insert(0, os.path.abspath('..'))

project = 'goes-fog'
copyright = '2025, goes-fog contributors'
author = 'goes-fog contributors'

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
]

# Docstrings use Google style (Args: / Returns:)
napoleon_google_docstrings = True
napoleon_numpy_docstrings = False
napoleon_include_init_with_doc = True

autodoc_member_order = 'bysource'
autodoc_typehints = 'description'

# Mock GDAL/PROJ/HDF-backed imports for CI builds
autodoc_mock_imports = ['rasterio', 'pyproj', 'netCDF4']

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'numpy': ('https://numpy.org/doc/stable/', None),
    'pandas': ('https://pandas.pydata.org/docs/', None),
    'xarray': ('https://docs.xarray.dev/en/stable/', None),
}

html_theme = 'furo'
html_title = 'GOES Monthly Fog Percentage'

exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']
