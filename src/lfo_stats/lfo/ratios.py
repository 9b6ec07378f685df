"""Importance ratios between a reference fit and the posterior of a prediction task.

The posterior of a task at cutoff ``c`` conditions on the set ``C(c)``: ``y[:c]`` in
standard LFO-CV, ``y[:c]`` and ``y[c + B:]`` in block LFO-CV. A reference fit made at
cutoff ``c*`` conditions on ``C(c*)``, so the raw log ratio of draw ``s`` is::

    log r_s = sum(log p(y_j | theta_s) for j in C(c) - C(c*))
              - sum(log p(y_j | theta_s) for j in C(c*) - C(c))

Forward reweighting only adds observations, backward only removes them, block
reweighting can do both.
"""

from collections import namedtuple

import numpy as np

from lfo_stats.lfo.helper_lfo_cv import LFOMode

__all__ = [
    "LogRatios",
    "conditioning_mask",
    "conditioning_difference",
    "block_missing_indices",
    "compute_log_ratios",
    "forward_reference",
    "backward_reference",
    "choose_combined",
]

LogRatios = namedtuple(
    "LogRatios",
    [
        "log_ratios",  # DataArray over sample dims, None if no reweighting is needed
        "added",  # observations multiplied in
        "removed",  # observations divided out
        "reference",  # the Fit the ratios are relative to
    ],
)


def conditioning_mask(cutoff, n_time_points, block_size=None):
    """Boolean mask of the observations the posterior at `cutoff` conditions on."""
    mask = np.zeros(n_time_points, dtype=bool)
    mask[:cutoff] = True
    if block_size:
        mask[cutoff + block_size :] = True
    return mask


def conditioning_difference(cutoff, reference, n_time_points, block_size=None):
    """Observations to add and to remove to go from the `reference` posterior to `cutoff`.

    Parameters
    ----------
    cutoff : int
        Cutoff of the prediction task.
    reference : int
        Cutoff of the reference fit.
    n_time_points : int
    block_size : int, optional
        Held out block length, None or 0 for standard LFO-CV.

    Returns
    -------
    added, removed : ndarray of int
    """
    target = conditioning_mask(cutoff, n_time_points, block_size)
    ref = conditioning_mask(reference, n_time_points, block_size)
    return np.flatnonzero(target & ~ref), np.flatnonzero(ref & ~target)


def block_missing_indices(cutoff, reference, block_size, n_time_points):
    """Observations in the block held out by the reference fit but observed at `cutoff`.

    ``{j : max(cutoff + B, reference) <= j < min(reference + B, N)}``, empty when the
    lower bound is not below the upper one. When the reference fit is ahead of the
    task (``cutoff < reference``) these are all the observations the ratio adds.
    """
    lower = max(cutoff + block_size, reference)
    upper = min(reference + block_size, n_time_points)
    if lower >= upper:
        return np.array([], dtype=int)
    return np.arange(lower, upper)


def compute_log_ratios(fit, task, n_time_points):
    """Raw log importance ratios of `task` relative to `fit`.

    Parameters
    ----------
    fit : Fit
        Reference fit.
    task : PredictionTask
    n_time_points : int

    Returns
    -------
    LogRatios
        ``log_ratios`` is None when the reference fit conditions on exactly the same
        observations as the task.

    Raises
    ------
    MissingLikelihoodError
        If the reference fit can't provide a required log likelihood.
    """
    if task.block_size and task.cutoff < fit.boundary:
        # the reference holds out a later block, part of which the task conditions on
        added = block_missing_indices(task.cutoff, fit.boundary, task.block_size, n_time_points)
        removed = np.arange(task.cutoff, min(fit.boundary, task.cutoff + task.block_size))
    else:
        added, removed = conditioning_difference(
            task.cutoff, fit.boundary, n_time_points, task.block_size
        )
    if not added.size and not removed.size:
        return LogRatios(None, added, removed, fit)

    log_ratios = 0
    if added.size:
        log_ratios = fit.log_likelihood(added).sum(fit.time_dim)
    if removed.size:
        log_ratios = log_ratios - fit.log_likelihood(removed).sum(fit.time_dim)

    return LogRatios(log_ratios.rename("log_ratios"), added, removed, fit)


def forward_reference(fits, cutoff):
    """Fit with the largest boundary not after `cutoff`, None if there is none."""
    candidates = [boundary for boundary in fits if boundary <= cutoff]
    return fits[max(candidates)] if candidates else None


def backward_reference(fits, cutoff):
    """Fit with the smallest boundary not before `cutoff`, None if there is none."""
    candidates = [boundary for boundary in fits if boundary >= cutoff]
    return fits[min(candidates)] if candidates else None


def _sort_key(pareto_k):
    return np.inf if pareto_k is None or np.isnan(pareto_k) else pareto_k


def choose_combined(candidates):
    """Pick the candidate with the smallest Pareto k in combined mode.

    Parameters
    ----------
    candidates : sequence of (LFOMode, LogRatios, PSISResult)
        Forward candidate first. Undefined k counts as infinite and ties go to the
        earliest candidate.

    Returns
    -------
    tuple
        The chosen candidate.
    """
    order = {LFOMode.FORWARD: 0, LFOMode.BACKWARD: 1}
    return min(
        candidates,
        key=lambda candidate: (_sort_key(candidate[2].pareto_k), order.get(candidate[0], 2)),
    )
