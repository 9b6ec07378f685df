"""lfo_stats accessors."""

import xarray as xr

from lfo_stats.base.dataarray import dataarray_stats

__all__ = ["LFOStatsDaAccessor"]


@xr.register_dataarray_accessor("lfostats")
class LFOStatsDaAccessor:
    """PSIS accessor class for DataArrays.

    Available as ``da.lfostats`` once :mod:`lfo_stats` has been imported.
    """

    def __init__(self, xarray_obj):
        self._obj = xarray_obj

    def psislw(self, dim=None, r_eff=1, tail_len=None):
        """Compute Pareto smoothed log weights and Pareto k over `dim`."""
        return dataarray_stats.psislw(self._obj, r_eff=r_eff, dim=dim, tail_len=tail_len)

    def psis_n_eff(self, dim=None, r_eff=1):
        """Compute the effective sample size of log weights over `dim`."""
        return dataarray_stats.psis_n_eff(self._obj, r_eff=r_eff, dim=dim)
