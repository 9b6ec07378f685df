"""Pareto smoothing of the importance ratios of a single prediction task."""

import logging
from collections import namedtuple

import numpy as np
import xarray as xr
from xarray_einstats.stats import logsumexp

from lfo_stats.errors import PSISFitError

__all__ = ["PSISResult", "psis_smooth"]

_log = logging.getLogger(__name__)

PSISResult = namedtuple(
    "PSISResult",
    [
        "log_weights",  # normalized log weights over the sample dims
        "pareto_k",  # float, NaN when undefined
        "n_eff",  # effective sample size, scaled by r_eff
    ],
)


def psis_smooth(log_ratios, sample_dims, r_eff=1.0, tail_len=None):
    """Apply PSIS smoothing to the log importance ratios of one prediction task.

    Parameters
    ----------
    log_ratios : DataArray
        Log importance ratios. Must only have the sample dimensions.
    sample_dims : list of str
        Sample dimensions (typically ["chain", "draw"]).
    r_eff : float, default 1
        Relative MCMC efficiency of the draws.
    tail_len : int, optional
        Number of draws in the tail used for the Pareto fit. Defaults to
        ``ceil(min(0.2 * S, 3 * sqrt(S / r_eff)))``.

    Returns
    -------
    PSISResult
        Smoothed, normalized log weights and their diagnostics. When the Pareto fit
        is not possible, ``pareto_k`` is NaN and the log weights are the self-normalized
        raw ratios.
    """
    if not isinstance(log_ratios, xr.DataArray):
        raise TypeError("log_ratios must be an xarray.DataArray")

    missing_dims = [dim for dim in sample_dims if dim not in log_ratios.dims]
    if missing_dims:
        raise ValueError(
            f"All sample dimensions must be present in the input; missing {missing_dims}."
        )
    other_dims = [dim for dim in log_ratios.dims if dim not in sample_dims]
    if other_dims:
        raise ValueError(
            f"psis_smooth expects log_ratios to include only sample dimensions; "
            f"found extra dims {other_dims}."
        )

    try:
        log_weights, pareto_k = log_ratios.lfostats.psislw(
            dim=sample_dims, r_eff=r_eff, tail_len=tail_len
        )
        pareto_k = float(pareto_k)
    except PSISFitError as err:
        _log.debug("Pareto smoothing not possible, k-hat is undefined: %s", err)
        log_weights = log_ratios - logsumexp(log_ratios, dims=sample_dims)
        pareto_k = np.nan

    log_weights = log_weights.transpose(*log_ratios.dims)
    n_eff = float(log_weights.lfostats.psis_n_eff(dim=sample_dims, r_eff=r_eff))

    return PSISResult(log_weights=log_weights, pareto_k=pareto_k, n_eff=n_eff)
