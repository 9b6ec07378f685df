"""Class with array functions.

"array" functions work on any dimension array,
batching as necessary.
"""

import numpy as np

from lfo_stats.base.diagnostics import _DiagnosticsBase
from lfo_stats.base.stats_utils import make_ufunc


def process_ary_axes(ary, axes):
    """Process input array and axes to ensure input core dims are the last ones.

    Parameters
    ----------
    ary : array_like
    axes : int or sequence of int
    """
    ary = np.asarray(ary, dtype=float)
    if axes is None:
        axes = list(range(ary.ndim))
    if isinstance(axes, int | np.integer):
        axes = [axes]
    axes = [ax if ax >= 0 else ary.ndim + ax for ax in axes]
    reordered_axes = [i for i in range(ary.ndim) if i not in axes] + list(axes)
    ary = np.transpose(ary, axes=reordered_axes)
    return ary, np.arange(-len(axes), 0, dtype=int)


class BaseArray(_DiagnosticsBase):
    """Class with numpy+scipy only functions that take array inputs.

    Notes
    -----
    If a new dimension is created by the function it must be added at the end of the array.
    Otherwise the functions won't be compatible with :func:`xarray.apply_ufunc`.
    """

    def psislw(self, ary, r_eff=1, axis=-1, tail_len=None):
        """Compute log weights for Pareto-smoothed importance sampling (PSIS) method.

        Parameters
        ----------
        ary : array-like
            Log importance ratios.
        r_eff : float, default 1
        axis : int, sequence of int or None, default -1
            Axes holding the draws. They are flattened for the smoothing.
        tail_len : int, optional
            Number of draws in the fitted tail.

        Returns
        -------
        log_weights : array-like
            Same shape as `ary` but `axis` dimensions moved to the end
        khat : array-like
            Shape of `ary` minus dimensions indicated in `axis`

        Raises
        ------
        PSISFitError
            If the tail of any of the batched slices can't be fitted.
        """
        ary, axes = process_ary_axes(ary, axis)
        core_shape = tuple(ary.shape[i] for i in axes)

        def _psislw_core(current_slice):
            log_weights, khat = self._psislw(current_slice, r_eff=r_eff, tail_len=tail_len)
            return log_weights.reshape(core_shape), khat

        psl_ufunc = make_ufunc(_psislw_core, n_output=2, n_input=1, n_dims=len(axes))
        return psl_ufunc(ary, out_shape=[core_shape, ()])

    def psis_n_eff(self, ary, r_eff=1, axis=-1):
        """Compute the effective sample size of (log) importance weights.

        Parameters
        ----------
        ary : array-like
            Log weights, normalized or not.
        r_eff : float, default 1
        axis : int, sequence of int or None, default -1
        """
        ary, axes = process_ary_axes(ary, axis)
        n_eff_ufunc = make_ufunc(self._psis_n_eff, n_output=1, n_input=1, n_dims=len(axes))
        return n_eff_ufunc(ary, r_eff=r_eff)


array_stats = BaseArray()
