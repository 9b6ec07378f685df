"""Helper functions for Leave-Future-Out Cross-Validation (LFO-CV)."""

import enum
from collections import namedtuple

import numpy as np
from arviz_base import convert_to_datatree

from lfo_stats.lfo.wrapper import SamplingWrapper
from lfo_stats.utils import get_log_likelihood
from lfo_stats.validate import validate_dims, validate_k_threshold, validate_r_eff

__all__ = [
    "LFOMethod",
    "LFOMode",
    "LFOCriterion",
    "PredictionTask",
    "LFOInputs",
    "LFOStepResult",
    "_prepare_lfo_inputs",
    "_validate_lfo_parameters",
    "terminal_cutoff",
]


class _ParsedEnum(enum.Enum):
    @classmethod
    def parse(cls, value):
        """Get the member matching `value`, case insensitive for strings."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as err:
            valid = ", ".join(f"'{member.value}'" for member in cls)
            name = cls.__name__[3:].lower()
            raise ValueError(f"{name} must be one of {valid}, got '{value}'") from err


class LFOMethod(_ParsedEnum):
    """Refit everywhere or approximate with PSIS between refits."""

    EXACT = "exact"
    APPROX = "approx"


class LFOMode(_ParsedEnum):
    """Direction in which the reference fits are reweighted."""

    FORWARD = "forward"
    BACKWARD = "backward"
    COMBINED = "combined"


class LFOCriterion(_ParsedEnum):
    """Score computed for every cutoff."""

    ELPD = "elpd"
    RMSE = "rmse"


class PredictionTask(
    namedtuple("PredictionTask", ["cutoff", "forecast_horizon", "block_size", "mode"])
):
    """Joint prediction of ``y[cutoff:cutoff + forecast_horizon]``.

    The conditioning set is ``y[:cutoff]`` in standard LFO-CV and
    ``y[:cutoff]`` plus ``y[cutoff + block_size:]`` in block LFO-CV.
    """

    __slots__ = ()

    @property
    def is_block(self):
        return bool(self.block_size)

    @property
    def forecast_idx(self):
        """Indices of the predicted observations."""
        return np.arange(self.cutoff, self.cutoff + self.forecast_horizon)

    def excluded(self, n_time_points):
        """Indices left out of the training data of an exact fit for this task."""
        if self.is_block:
            return np.arange(self.cutoff, min(self.cutoff + self.block_size, n_time_points))
        return np.arange(self.cutoff, n_time_points)


LFOInputs = namedtuple(
    "LFOInputs",
    [
        "wrapper",
        "log_likelihood",  # full posterior log likelihood, only if data was provided
        "sample_dims",
        "time_dim",
        "n_time_points",
        "min_observations",
        "forecast_horizon",
        "block_size",
        "method",
        "mode",
        "criterion",
        "k_threshold",
        "r_eff",
        "tail_len",
        "cutoffs",
    ],
)

LFOStepResult = namedtuple(
    "LFOStepResult",
    [
        "cutoff",  # the cutoff index of the prediction task
        "score",  # elpd or rmse of the forecast window, NaN if not computable
        "pareto_k",  # Pareto k of the weights, 0 for exact steps, NaN if undefined
        "n_eff",  # effective sample size of the weights
        "refitted",  # bool indicating if the model was refitted for this step
        "valid",  # bool indicating if the score could be computed
        "reference",  # boundary of the fit used, -1 if none
        "added",  # indices whose likelihood was multiplied in
        "removed",  # indices whose likelihood was divided out
    ],
)


def invalid_step(cutoff, refitted=False, reference=-1):
    """Step result for a cutoff whose prediction could not be computed."""
    empty = np.array([], dtype=int)
    return LFOStepResult(
        cutoff=cutoff,
        score=np.nan,
        pareto_k=np.nan,
        n_eff=np.nan,
        refitted=refitted,
        valid=False,
        reference=reference,
        added=empty,
        removed=empty,
    )


def terminal_cutoff(n_time_points, forecast_horizon, block_size=None):
    """Last cutoff with a computable prediction, ``N - M`` or ``N - M - B``."""
    return n_time_points - forecast_horizon - (block_size or 0)


def _prepare_lfo_inputs(
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
):
    """Validate the arguments of :func:`~lfo_stats.lfo_cv` and collect them.

    Returns
    -------
    LFOInputs
        Named tuple with prepared inputs.
    """
    if not isinstance(wrapper, SamplingWrapper):
        raise TypeError("wrapper must be an instance of SamplingWrapper")

    method = LFOMethod.parse(method)
    mode = LFOMode.parse(mode)
    criterion = LFOCriterion.parse(criterion)

    required_methods = ["sel_observations", "sample", "get_inference_data"]
    if criterion is LFOCriterion.ELPD:
        required_methods.append("log_likelihood__i")
    else:
        required_methods.extend(["posterior_predictive__i", "observed_data__i"])
        if method is LFOMethod.APPROX:
            required_methods.append("log_likelihood__i")
    not_implemented = wrapper.check_implemented_methods(required_methods)
    if not_implemented:
        raise ValueError(
            f"The following methods must be implemented in the SamplingWrapper: {not_implemented}"
        )

    sample_dims = validate_dims(None)

    log_likelihood = None
    if data is not None:
        data = convert_to_datatree(data)
        log_likelihood = get_log_likelihood(data, var_name)
        if time_dim not in log_likelihood.dims:
            raise ValueError(
                f"Time dimension '{time_dim}' not found in log_likelihood. "
                f"Available dimensions: {list(log_likelihood.dims)}"
            )

    n_time_points = wrapper.n_time_points(time_dim)
    if n_time_points is None:
        if log_likelihood is None:
            raise ValueError(
                f"Time dimension '{time_dim}' not found: the length of the series could not "
                "be inferred from the wrapper and no data was provided"
            )
        n_time_points = log_likelihood.sizes[time_dim]
    elif log_likelihood is not None and log_likelihood.sizes[time_dim] != n_time_points:
        raise ValueError(
            f"data has {log_likelihood.sizes[time_dim]} time points but the wrapper "
            f"reports {n_time_points}"
        )

    if block_size == 0:
        block_size = None
    _validate_lfo_parameters(min_observations, forecast_horizon, n_time_points, block_size)

    if tail_len is not None and (not isinstance(tail_len, int | np.integer) or tail_len < 1):
        raise ValueError(f"tail_len must be a positive integer, got {tail_len}")

    last = terminal_cutoff(n_time_points, forecast_horizon, block_size)

    return LFOInputs(
        wrapper=wrapper,
        log_likelihood=log_likelihood,
        sample_dims=sample_dims,
        time_dim=time_dim,
        n_time_points=n_time_points,
        min_observations=min_observations,
        forecast_horizon=forecast_horizon,
        block_size=block_size,
        method=method,
        mode=mode,
        criterion=criterion,
        k_threshold=validate_k_threshold(k_threshold),
        r_eff=validate_r_eff(r_eff),
        tail_len=tail_len,
        cutoffs=np.arange(min_observations, last + 1),
    )


def _validate_lfo_parameters(min_observations, forecast_horizon, n_time_points, block_size=None):
    """Validate LFO-CV parameters.

    Parameters
    ----------
    min_observations : int
        Minimum number of observations required before making predictions.
    forecast_horizon : int
        Number of steps ahead to predict.
    n_time_points : int
        Total number of time points in the data.
    block_size : int, optional
        Number of observations held out after each cutoff in block LFO-CV.

    Raises
    ------
    ValueError
        If parameters are invalid.
    """
    if not isinstance(min_observations, int | np.integer) or min_observations < 1:
        raise ValueError(f"min_observations must be a positive integer, got {min_observations}")

    if not isinstance(forecast_horizon, int | np.integer) or forecast_horizon < 1:
        raise ValueError(f"forecast_horizon must be a positive integer, got {forecast_horizon}")

    if block_size is not None:
        if not isinstance(block_size, int | np.integer) or block_size < 0:
            raise ValueError(f"block_size must be a non-negative integer, got {block_size}")
        if block_size < forecast_horizon:
            raise ValueError(
                f"block_size ({block_size}) must be at least forecast_horizon "
                f"({forecast_horizon}) so that predicted observations are held out"
            )

    if min_observations >= n_time_points:
        raise ValueError(
            f"min_observations ({min_observations}) must be less than "
            f"the number of time points ({n_time_points})"
        )

    needed = min_observations + forecast_horizon + (block_size or 0)
    if needed > n_time_points:
        block_msg = f" + block_size ({block_size})" if block_size else ""
        raise ValueError(
            f"Insufficient data: min_observations ({min_observations}) + forecast_horizon "
            f"({forecast_horizon}){block_msg} = {needed} exceeds the number of "
            f"time points ({n_time_points})"
        )
