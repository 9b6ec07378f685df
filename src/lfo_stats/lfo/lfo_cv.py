"""Leave-Future-Out Cross-Validation (LFO-CV) for time series models."""

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from copy import copy

import numpy as np
from arviz_base import rcParams
from xarray_einstats.stats import logsumexp

from lfo_stats.errors import MissingLikelihoodError, RefitError
from lfo_stats.lfo.aggregate import (
    combine_steps,
    elpd_score,
    rmse_score,
    uniform_log_weights,
)
from lfo_stats.lfo.cache import cache_get, cache_set, result_key
from lfo_stats.lfo.fit import FitFactory
from lfo_stats.lfo.helper_lfo_cv import (
    LFOCriterion,
    LFOMethod,
    LFOMode,
    LFOStepResult,
    PredictionTask,
    _prepare_lfo_inputs,
    invalid_step,
)
from lfo_stats.lfo.psis import psis_smooth
from lfo_stats.lfo.ratios import (
    backward_reference,
    choose_combined,
    compute_log_ratios,
    forward_reference,
)
from lfo_stats.lfo.scheduler import RefitScheduler, StepState
from lfo_stats.utils import LFOData

__all__ = ["lfo_cv"]

_log = logging.getLogger(__name__)

POINTWISE_FIELDS = ("score_i", "pareto_k", "n_eff", "refitted", "valid", "reference")


def lfo_cv(
    wrapper,
    min_observations,
    forecast_horizon=1,
    block_size=None,
    method="approx",
    mode="forward",
    k_threshold=None,
    criterion="elpd",
    pointwise=None,
    data=None,
    var_name=None,
    time_dim="time",
    r_eff=1.0,
    tail_len=None,
    cache=None,
    n_jobs=1,
    cancel=None,
):
    """Perform Leave-Future-Out Cross-Validation (LFO-CV).

    LFO-CV evaluates the predictive accuracy of time series models by predicting
    `forecast_horizon` observations ahead from progressively larger training windows,
    respecting temporal ordering. With ``method="approx"`` the posterior of each
    training window is approximated with Pareto smoothed importance sampling (PSIS)
    from the most recent exact refit, and the model is only refitted when the Pareto k
    diagnostic of the importance weights exceeds `k_threshold`.

    Parameters
    ----------
    wrapper : SamplingWrapper
        An instance of a SamplingWrapper subclass handling model refitting.
        Must implement ``sel_observations(idx)``, ``sample()``,
        ``get_inference_data()`` and ``log_likelihood__i(idx, idata__i)``.
        ``sel_observations`` receives the array of 0-based time indices to exclude from
        training. The ``rmse`` criterion also needs ``posterior_predictive__i`` and
        ``observed_data__i``.
    min_observations : int
        Minimum number of observations required before making predictions.
        The first prediction task uses the first `min_observations` observations.
    forecast_horizon : int, default 1
        Number of consecutive observations predicted jointly at each cutoff.
    block_size : int, optional
        If given, block LFO-CV is performed: at each cutoff only the next
        `block_size` observations are left out instead of all future observations.
        Must be at least `forecast_horizon`. None or 0 means standard LFO-CV.
    method : {"approx", "exact"}, default "approx"
        "exact" refits the model at every cutoff, "approx" uses PSIS when possible.
    mode : {"forward", "backward", "combined"}, default "forward"
        How reference fits are reweighted. "forward" starts from a fit at the first
        cutoff and adds observations, "backward" starts from a fit at the last cutoff
        and removes them, "combined" keeps both directions and at each cutoff uses the
        one with the smaller Pareto k (forward on ties). Ignored for ``method="exact"``.
    k_threshold : float, optional
        Pareto k threshold for triggering a refit. Defaults to 0.7.
        Undefined Pareto k values always trigger a refit.
    criterion : {"elpd", "rmse"}, default "elpd"
        Score of each cutoff, the joint log predictive density of the forecast window
        or the root mean squared error of its predictive mean.
    pointwise : bool, optional
        If True, return pointwise estimates. Defaults to
        ``rcParams["stats.ic_pointwise"]``.
    data : DataTree or InferenceData, optional
        Full data fit with a log_likelihood group. Only used to compute the effective
        number of parameters ``p`` and to infer the series length.
    var_name : str, optional
        The name of the variable in the log_likelihood group of `data`.
    time_dim : str, default "time"
        Name of the time dimension.
    r_eff : float, default 1
        Relative MCMC efficiency of the posterior draws. Used for the PSIS tail length
        and the effective sample size.
    tail_len : int, optional
        Number of draws in the tail of the Pareto fit. Defaults to
        ``ceil(min(0.2 * S, 3 * sqrt(S / r_eff)))``.
    cache : MutableMapping, optional
        Key-value store for fitted posteriors and finished results. Only used when
        ``wrapper.cache_key()`` is not None. Cached results are returned as copies.
    n_jobs : int, default 1
        Number of threads used to refit concurrently with ``method="exact"``.
    cancel : object, optional
        Object with an ``is_set()`` method, like :class:`threading.Event`. Once set, the
        cutoffs not yet computed are marked invalid and the partial result is returned.

    Returns
    -------
    LFOData
        Object with the following attributes:

        - **kind**: "lfo_cv"
        - **criterion**, **method**, **mode**: the options used
        - **estimate**: total elpd (sum over cutoffs) or mean rmse, also available as
          **elpd** for the elpd criterion
        - **se**: standard error of the estimate
        - **p**: effective number of parameters, only if `data` is given
        - **n_samples**: number of posterior samples
        - **n_data_points**: number of cutoffs with a valid score
        - **warning**: True if many refits were needed or some cutoffs are invalid
        - **good_k**: the k threshold (only if ``method="approx"``, otherwise None)
        - **refits**, **failed_refits**, **n_refits**: refit cutoffs
        - **score_i**, **pareto_k**, **n_eff**, **refitted**, **valid**, **reference**:
          index aligned DataArrays over the ``cutoff`` dimension, only if
          ``pointwise=True``. Invalid cutoffs have NaN score.
        - **missing_indices**: dict mapping each cutoff to the observations whose
          likelihood entered its importance ratios, only in block mode and if
          ``pointwise=True``.

    Examples
    --------
    LFO-CV requires refitting the model, so we need a SamplingWrapper subclass:

    .. code-block:: python

        import numpy as np
        from lfo_stats import SamplingWrapper, lfo_cv

        class MyTimeSeriesWrapper(SamplingWrapper):
            def sel_observations(self, idx):
                train_idx = np.setdiff1d(np.arange(len(self.model.y)), idx)
                return train_idx, idx

            def sample(self, modified_observed_data):
                return self.model.fit(modified_observed_data)

            def get_inference_data(self, fitted_model):
                return fitted_model

            def log_likelihood__i(self, idx, idata__i):
                return self.model.log_likelihood(idata__i, idx)

        wrapper = MyTimeSeriesWrapper(model, n_time_points=len(model.y))
        lfo_result = lfo_cv(wrapper, min_observations=25, forecast_horizon=4)

    References
    ----------
    .. [1] Bürkner, P.-C., Gabry, J., & Vehtari, A. (2020). Approximate
           leave-future-out cross-validation for Bayesian time series models.
           Journal of Statistical Computation and Simulation, 90(14), 2499-2523.
           https://doi.org/10.1080/00949655.2020.1783262
    .. [2] Vehtari et al. *Pareto Smoothed Importance Sampling*.
           Journal of Machine Learning Research, 25(72) (2024)
           https://jmlr.org/papers/v25/19-556.html
    """
    pointwise = rcParams["stats.ic_pointwise"] if pointwise is None else pointwise

    lfo_inputs = _prepare_lfo_inputs(
        wrapper,
        min_observations,
        forecast_horizon,
        block_size,
        method,
        mode,
        criterion,
        k_threshold,
        data,
        var_name,
        time_dim,
        r_eff,
        tail_len,
    )
    if n_jobs is None or n_jobs < 1:
        raise ValueError(f"n_jobs must be a positive integer, got {n_jobs}")

    model_key = wrapper.cache_key()
    res_key = None
    if model_key is not None:
        res_key = result_key(
            model_key,
            lfo_inputs.method.value,
            lfo_inputs.forecast_horizon,
            lfo_inputs.min_observations,
            lfo_inputs.block_size,
            lfo_inputs.mode.value,
            lfo_inputs.k_threshold,
            lfo_inputs.criterion.value,
            r_eff=lfo_inputs.r_eff,
            tail_len=lfo_inputs.tail_len,
            time_dim=lfo_inputs.time_dim,
            var_name=var_name,
            with_data=lfo_inputs.log_likelihood is not None,
        )
        cached = cache_get(cache, res_key)
        if cached is not None:
            lfo_data = _copy_result(cached)
            # exact runs are shared between modes
            lfo_data.mode = lfo_inputs.mode.value
            return _select_pointwise(lfo_data, pointwise)

    runner = _LFORunner(lfo_inputs, FitFactory(wrapper, time_dim=time_dim, cache=cache), cancel)
    if lfo_inputs.method is LFOMethod.EXACT:
        steps = runner.run_exact(n_jobs)
    elif lfo_inputs.mode is LFOMode.COMBINED:
        steps = runner.run_combined()
    elif lfo_inputs.mode is LFOMode.BACKWARD:
        steps = runner.run_sequential(lfo_inputs.cutoffs[::-1])
    else:
        steps = runner.run_sequential(lfo_inputs.cutoffs)

    lfo_data = _assemble_results(lfo_inputs, runner, steps)

    if not lfo_data.cancelled:
        cache_set(cache, res_key, _copy_result(lfo_data))

    return _select_pointwise(lfo_data, pointwise)


class _LFORunner:
    """Sequential LFO-CV procedure over the cutoffs of one run."""

    def __init__(self, lfo_inputs, fit_factory, cancel=None):
        self.inputs = lfo_inputs
        self.factory = fit_factory
        self.scheduler = RefitScheduler(lfo_inputs.method, lfo_inputs.k_threshold)
        self.cancel = cancel
        self.cancelled = False
        self.n_samples = None

    def task(self, cutoff):
        inputs = self.inputs
        return PredictionTask(int(cutoff), inputs.forecast_horizon, inputs.block_size, inputs.mode)

    def check_cancelled(self):
        if not self.cancelled and self.cancel is not None and self.cancel.is_set():
            _log.warning("LFO-CV cancelled, remaining cutoffs are marked invalid")
            self.cancelled = True
        return self.cancelled

    def refit(self, task):
        """Fit the model for `task`, None if the fitting service failed."""
        try:
            fit = self.factory.fit(task.cutoff, task.excluded(self.inputs.n_time_points))
        except RefitError as err:
            _log.warning("%s. Cutoff %d is marked invalid.", err, task.cutoff)
            self.scheduler.record(task.cutoff, succeeded=False)
            return None
        self.scheduler.record(task.cutoff)
        return fit

    def score(self, task, fit, log_weights):
        inputs = self.inputs
        idx = task.forecast_idx
        if inputs.criterion is LFOCriterion.ELPD:
            log_lik = fit.log_likelihood(idx)
            if log_weights is None:
                log_weights = uniform_log_weights(log_lik, inputs.sample_dims)
            score = elpd_score(log_lik, log_weights, inputs.sample_dims, inputs.time_dim)
        else:
            try:
                predictions = inputs.wrapper.posterior_predictive__i(idx, fit.idata)
                observed = inputs.wrapper.observed_data__i(idx)
            except MissingLikelihoodError:
                raise
            except Exception as err:  # pylint: disable=broad-except
                raise MissingLikelihoodError(
                    f"Fit at cutoff {fit.boundary} failed to predict {idx}: {err}", indices=idx
                ) from err
            if predictions is None:
                raise MissingLikelihoodError(
                    f"Fit at cutoff {fit.boundary} returned no predictions for {idx}", indices=idx
                )
            if log_weights is None:
                log_weights = uniform_log_weights(predictions, inputs.sample_dims)
            try:
                score = rmse_score(
                    predictions, observed, log_weights, inputs.sample_dims, inputs.time_dim
                )
            except ValueError as err:
                raise MissingLikelihoodError(
                    f"Predictions of the fit at cutoff {fit.boundary} don't match the "
                    f"observed values: {err}",
                    indices=idx,
                ) from err
        if self.n_samples is None:
            self.n_samples = int(log_weights.size)
        return score, log_weights

    def exact_step(self, task, fit):
        """Score `task` with the uniformly weighted draws of a fit made for it."""
        try:
            score, log_weights = self.score(task, fit, None)
        except MissingLikelihoodError as err:
            _log.warning("%s. Cutoff %d is marked invalid.", err, task.cutoff)
            return invalid_step(task.cutoff, refitted=True, reference=fit.boundary)
        empty = np.array([], dtype=int)
        return LFOStepResult(
            cutoff=task.cutoff,
            score=score,
            pareto_k=0.0,
            n_eff=log_weights.size * self.inputs.r_eff,
            refitted=True,
            valid=True,
            reference=fit.boundary,
            added=empty,
            removed=empty,
        )

    def approx_step(self, task, ratios, psis):
        """Score `task` with the PSIS weighted draws of its reference fit."""
        fit = ratios.reference
        try:
            score, _ = self.score(task, fit, psis.log_weights)
        except MissingLikelihoodError as err:
            _log.warning("%s. Cutoff %d is marked invalid.", err, task.cutoff)
            return invalid_step(task.cutoff, reference=fit.boundary)
        return LFOStepResult(
            cutoff=task.cutoff,
            score=score,
            pareto_k=psis.pareto_k,
            n_eff=psis.n_eff,
            refitted=False,
            valid=True,
            reference=fit.boundary,
            added=ratios.added,
            removed=ratios.removed,
        )

    def reweight(self, task, fit):
        """Importance ratios of `task` against `fit` and their smoothing."""
        ratios = compute_log_ratios(fit, task, self.inputs.n_time_points)
        if ratios.log_ratios is None:
            return ratios, None
        psis = psis_smooth(
            ratios.log_ratios, self.inputs.sample_dims, self.inputs.r_eff, self.inputs.tail_len
        )
        _log.debug(
            "Cutoff %d, reference %d: pareto k %.3f, n_eff %.1f",
            task.cutoff,
            fit.boundary,
            psis.pareto_k,
            psis.n_eff,
        )
        return ratios, psis

    def refit_step(self, task, reference=-1):
        fit = self.refit(task)
        if fit is None:
            return None, invalid_step(task.cutoff, refitted=True, reference=reference)
        return fit, self.exact_step(task, fit)

    def run_sequential(self, cutoffs):
        """Forward (increasing `cutoffs`) or backward (decreasing `cutoffs`) LFO-CV."""
        steps = []
        fit = None
        for cutoff in cutoffs:
            if self.check_cancelled():
                steps.append(invalid_step(int(cutoff)))
                continue
            task = self.task(cutoff)

            if fit is None:
                fit, step = self.refit_step(task)
                steps.append(step)
                continue

            try:
                ratios, psis = self.reweight(task, fit)
            except MissingLikelihoodError as err:
                _log.warning("%s. Cutoff %d is marked invalid.", err, task.cutoff)
                steps.append(invalid_step(task.cutoff, reference=fit.boundary))
                continue

            if psis is None:
                steps.append(self.exact_step(task, fit))
            elif self.scheduler.decide(psis.pareto_k) is StepState.EXACT:
                new_fit, step = self.refit_step(task, reference=fit.boundary)
                fit = fit if new_fit is None else new_fit
                steps.append(step)
            else:
                steps.append(self.approx_step(task, ratios, psis))
        return steps

    def run_combined(self):
        """LFO-CV keeping forward and backward reference fits."""
        cutoffs = self.inputs.cutoffs
        fits = {}
        steps = []
        failed = set()
        for cutoff in sorted({int(cutoffs[0]), int(cutoffs[-1])}):
            fit = self.refit(self.task(cutoff))
            if fit is None:
                failed.add(cutoff)
            else:
                fits[cutoff] = fit

        for cutoff in cutoffs:
            cutoff = int(cutoff)
            if self.check_cancelled():
                steps.append(invalid_step(cutoff))
                continue
            task = self.task(cutoff)
            if cutoff in fits:
                steps.append(self.exact_step(task, fits[cutoff]))
                continue
            if cutoff in failed:
                steps.append(invalid_step(cutoff, refitted=True))
                continue

            candidates = []
            references = (
                (LFOMode.FORWARD, forward_reference(fits, cutoff)),
                (LFOMode.BACKWARD, backward_reference(fits, cutoff)),
            )
            for direction, fit in references:
                if fit is None:
                    continue
                try:
                    ratios, psis = self.reweight(task, fit)
                except MissingLikelihoodError as err:
                    _log.warning("%s. Skipping %s reference.", err, direction.value)
                    continue
                candidates.append((direction, ratios, psis))

            if not candidates and any(fit is not None for _, fit in references):
                steps.append(invalid_step(cutoff))
                continue

            if candidates:
                _, ratios, psis = choose_combined(candidates)
                if self.scheduler.decide(psis.pareto_k) is StepState.APPROXIMATE:
                    steps.append(self.approx_step(task, ratios, psis))
                    continue

            fit, step = self.refit_step(task)
            if fit is not None:
                fits[cutoff] = fit
            steps.append(step)
        return steps

    def run_exact(self, n_jobs=1):
        """Refit at every cutoff, concurrently if ``n_jobs > 1``."""

        def _exact_at(cutoff):
            if self.check_cancelled():
                return invalid_step(int(cutoff))
            return self.refit_step(self.task(cutoff))[1]

        if n_jobs == 1:
            return [_exact_at(cutoff) for cutoff in self.inputs.cutoffs]
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            return list(executor.map(_exact_at, self.inputs.cutoffs))


def _assemble_results(lfo_inputs, runner, steps):
    """Build the LFOData object from the step results of a run."""
    combined = combine_steps(steps, lfo_inputs.criterion)
    scheduler = runner.scheduler
    n_cutoffs = len(lfo_inputs.cutoffs)
    approx = lfo_inputs.method is LFOMethod.APPROX

    n_invalid = n_cutoffs - combined["n_data_points"]
    warning = False
    if n_invalid and not runner.cancelled:
        warnings.warn(
            f"{n_invalid} of {n_cutoffs} cutoffs could not be computed and are marked as "
            "invalid. Check the log for the reasons.",
            UserWarning,
        )
        warning = True
    if approx and scheduler.n_refits > n_cutoffs / 2:
        warnings.warn(
            f"LFO-CV required {scheduler.n_refits} refits out of {n_cutoffs} steps. "
            "Consider using method='exact' or checking the model specification.",
            UserWarning,
        )
        warning = True

    p_lfo = None
    if lfo_inputs.log_likelihood is not None and lfo_inputs.criterion is LFOCriterion.ELPD:
        p_lfo = _compute_p_lfo(lfo_inputs, combined)

    lfo_data = LFOData(
        kind="lfo_cv",
        criterion=lfo_inputs.criterion.value,
        method=lfo_inputs.method.value,
        mode=lfo_inputs.mode.value,
        estimate=combined["estimate"],
        se=combined["se"],
        p=p_lfo,
        n_samples=runner.n_samples,
        n_data_points=combined["n_data_points"],
        scale="log" if lfo_inputs.criterion is LFOCriterion.ELPD else "rmse",
        warning=warning,
        good_k=lfo_inputs.k_threshold if approx else None,
        forecast_horizon=lfo_inputs.forecast_horizon,
        min_observations=lfo_inputs.min_observations,
        block_size=lfo_inputs.block_size,
        refits=scheduler.refits,
        failed_refits=scheduler.failed_refits,
        n_refits=scheduler.n_refits,
        n_cutoffs=n_cutoffs,
        cancelled=runner.cancelled,
        missing_indices=combined["missing_indices"] if lfo_inputs.block_size else None,
    )
    for name in POINTWISE_FIELDS:
        lfo_data[name] = combined[name]
    if not approx:
        lfo_data.pareto_k = None
    return lfo_data


def _compute_p_lfo(lfo_inputs, combined):
    """Effective number of parameters from the full posterior predictive density.

    Difference between the log predictive density of the forecast windows of the valid
    cutoffs under the full data posterior and the LFO-CV estimate.
    """
    log_likelihood = lfo_inputs.log_likelihood
    sample_dims = lfo_inputs.sample_dims
    time_dim = lfo_inputs.time_dim
    n_samples = int(np.prod([log_likelihood.sizes[dim] for dim in sample_dims]))
    obs_dims = [dim for dim in log_likelihood.dims if dim not in sample_dims]

    lpd_full = 0.0
    for cutoff in combined["valid"].cutoff.values[combined["valid"].values]:
        window = slice(int(cutoff), int(cutoff) + lfo_inputs.forecast_horizon)
        joint = log_likelihood.isel({time_dim: window}).sum(obs_dims)
        lpd_full += float(logsumexp(joint, dims=sample_dims, b=1 / n_samples))
    return lpd_full - combined["estimate"]


def _select_pointwise(lfo_data, pointwise):
    if pointwise:
        return lfo_data
    lfo_data = copy(lfo_data)
    for name in POINTWISE_FIELDS:
        lfo_data[name] = None
    lfo_data.missing_indices = None
    return lfo_data


def _copy_result(lfo_data):
    """Copy of `lfo_data` that shares no mutable state with it."""
    lfo_data = copy(lfo_data)
    for name in POINTWISE_FIELDS:
        if lfo_data[name] is not None:
            lfo_data[name] = lfo_data[name].copy()
    lfo_data.refits = lfo_data.refits.copy()
    lfo_data.failed_refits = lfo_data.failed_refits.copy()
    if lfo_data.missing_indices is not None:
        lfo_data.missing_indices = dict(lfo_data.missing_indices)
    return lfo_data
