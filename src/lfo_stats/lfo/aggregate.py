"""Pointwise LFO-CV scores from (weighted) posterior draws and their aggregation."""

import numpy as np
import xarray as xr
from xarray_einstats.stats import logsumexp

from lfo_stats.lfo.helper_lfo_cv import LFOCriterion

__all__ = [
    "uniform_log_weights",
    "elpd_score",
    "weighted_mean",
    "rmse_score",
    "combine_steps",
]


def uniform_log_weights(template, sample_dims):
    """Normalized log weights giving every draw the same weight.

    Parameters
    ----------
    template : DataArray
        Any array with the sample dimensions. Other dimensions are dropped.
    sample_dims : list of str
    """
    template = template.isel(
        {dim: 0 for dim in template.dims if dim not in sample_dims}, drop=True
    ).reset_coords(drop=True)
    n_samples = int(np.prod([template.sizes[dim] for dim in sample_dims]))
    return xr.zeros_like(template, dtype=float) - np.log(n_samples)


def elpd_score(log_lik_forecast, log_weights, sample_dims, time_dim):
    """Log predictive density of the forecast window.

    The M observations of the window are predicted jointly, so their log likelihoods
    are summed per draw before the self-normalized importance sampling average.

    Parameters
    ----------
    log_lik_forecast : DataArray
        Pointwise log likelihood of the forecast window, sample dims and `time_dim`.
    log_weights : DataArray
        Normalized log weights over the sample dims.
    sample_dims : list of str
    time_dim : str

    Returns
    -------
    float
    """
    joint = log_lik_forecast.sum(time_dim)
    return float(logsumexp(joint + log_weights, dims=sample_dims))


def weighted_mean(predictions, log_weights, sample_dims):
    """Weighted mean of per draw predictions over the sample dims."""
    return (np.exp(log_weights) * predictions).sum(sample_dims)


def rmse_score(predictions, observed, log_weights, sample_dims, time_dim):
    """Root mean squared error of the weighted predictive mean of the forecast window.

    Parameters
    ----------
    predictions : DataArray
        Per draw predictions, sample dims and `time_dim`.
    observed : array-like
        True values of the forecast window.
    log_weights : DataArray
    sample_dims : list of str
    time_dim : str

    Returns
    -------
    float
    """
    mean = weighted_mean(predictions, log_weights, sample_dims)
    mean = mean.transpose(time_dim, ...).values.reshape(-1)
    observed = np.asarray(observed, dtype=float).reshape(-1)
    if observed.shape != mean.shape:
        raise ValueError(
            f"observed values have shape {observed.shape}, predictions have {mean.shape}"
        )
    return float(np.sqrt(np.mean((observed - mean) ** 2)))


def combine_steps(step_results, criterion):
    """Combine the results of all cutoffs.

    Parameters
    ----------
    step_results : list of LFOStepResult
        One per cutoff, in any order.
    criterion : LFOCriterion

    Returns
    -------
    dict
        Total estimate and its standard error computed over the valid cutoffs, plus
        index aligned DataArrays along the ``cutoff`` dimension.
    """
    step_results = sorted(step_results, key=lambda step: step.cutoff)
    cutoffs = np.array([step.cutoff for step in step_results], dtype=int)
    scores = np.array([step.score for step in step_results], dtype=float)
    valid = np.array([step.valid for step in step_results], dtype=bool)

    valid_scores = scores[valid]
    n_valid = len(valid_scores)
    if n_valid == 0:
        estimate, se = np.nan, np.nan
    elif criterion is LFOCriterion.ELPD:
        estimate = float(np.sum(valid_scores))
        se = float(np.sqrt(n_valid * np.var(valid_scores, ddof=1))) if n_valid > 1 else 0.0
    else:
        estimate = float(np.mean(valid_scores))
        se = float(np.std(valid_scores, ddof=1) / np.sqrt(n_valid)) if n_valid > 1 else 0.0

    def _pointwise(values, name, dtype=float):
        return xr.DataArray(
            np.array(values, dtype=dtype),
            dims=["cutoff"],
            coords={"cutoff": cutoffs},
            name=name,
        )

    return {
        "estimate": estimate,
        "se": se,
        "n_data_points": n_valid,
        "score_i": _pointwise(scores, criterion.value),
        "pareto_k": _pointwise([step.pareto_k for step in step_results], "pareto_k"),
        "n_eff": _pointwise([step.n_eff for step in step_results], "n_eff"),
        "refitted": _pointwise([step.refitted for step in step_results], "refitted", bool),
        "valid": _pointwise(valid, "valid", bool),
        "reference": _pointwise([step.reference for step in step_results], "reference", int),
        "missing_indices": {
            int(step.cutoff): np.union1d(step.added, step.removed) for step in step_results
        },
    }
