"""Class with dataarray functions.

"dataarray" functions take :class:`xarray.DataArray` as inputs.
"""

import numpy as np
from xarray import apply_ufunc

from lfo_stats.base.array import array_stats
from lfo_stats.validate import validate_dims


class BaseDataArray:
    """Class with numpy+scipy only functions that take DataArray inputs."""

    def __init__(self, array_class=None):
        self.array_class = array_stats if array_class is None else array_class

    def psislw(self, da, r_eff=1, dim=None, tail_len=None):
        """Compute log weights for Pareto-smoothed importance sampling (PSIS) method."""
        dims = validate_dims(dim)
        log_weights, khat = apply_ufunc(
            self.array_class.psislw,
            da,
            input_core_dims=[dims],
            output_core_dims=[dims, []],
            kwargs={"axis": np.arange(-len(dims), 0, 1), "r_eff": r_eff, "tail_len": tail_len},
        )
        return log_weights, khat.rename("pareto_k")

    def psis_n_eff(self, da, r_eff=1, dim=None):
        """Compute the effective sample size of log importance weights."""
        dims = validate_dims(dim)
        return apply_ufunc(
            self.array_class.psis_n_eff,
            da,
            input_core_dims=[dims],
            output_core_dims=[[]],
            kwargs={"axis": np.arange(-len(dims), 0, 1), "r_eff": r_eff},
        ).rename("n_eff")


dataarray_stats = BaseDataArray()
