"""lfo_stats computational functions in NumPy.

Functions implemented in this folder should only depend on NumPy and SciPy,
with the exception of the xarray wrappers in ``dataarray``.
"""
from lfo_stats.base.array import array_stats

try:
    from lfo_stats.base.dataarray import dataarray_stats
except ModuleNotFoundError:
    pass
