"""lfo_stats general utility functions and result container."""

from dataclasses import dataclass, field

import numpy as np
from xarray import DataArray

__all__ = ["LFOData", "get_log_likelihood"]


def get_log_likelihood(idata, var_name=None):
    """Retrieve the log likelihood dataarray of a given variable."""
    if not hasattr(idata, "log_likelihood"):
        raise TypeError("log likelihood not found in inference data object")
    if var_name is None:
        var_names = list(idata.log_likelihood.data_vars)
        if len(var_names) > 1:
            raise TypeError(
                f"Found several log likelihood arrays {var_names}, var_name cannot be None"
            )
        return idata.log_likelihood[var_names[0]]
    try:
        log_likelihood = idata.log_likelihood[var_name]
    except KeyError as err:
        raise TypeError(f"No log likelihood data named {var_name} found") from err
    return log_likelihood


BASE_FMT = """Computed from {n_samples} posterior samples and {n_points} of {n_cutoffs} \
cutoffs ({method}, {mode} mode).
Forecast horizon {horizon}, minimum training size {min_obs}{block}.

{label:{pad}} Estimate       SE
{label:{pad}} {value:8.2f}  {se:7.2f}"""
P_FMT = """
{label:{pad}} {value:8.2f}        -"""
PARETO_FMT = """------

Refits: {n_refits} ({pct:.1f}% of cutoffs){failed}.
Pareto k diagnostic values of the approximated cutoffs:
                         {{0:>{0}}} {{1:>6}}
(-Inf, {{6:.2f}}]   (good)     {{2:{0}d}} {{4:6.1f}}%
   ({{6:.2f}}, Inf)  (refit)    {{3:{0}d}} {{5:6.1f}}%
"""


@dataclass
class LFOData:  # pylint: disable=too-many-instance-attributes
    """Class to contain the results of leave-future-out cross-validation.

    Pointwise results are index aligned :class:`xarray.DataArray` objects over
    the ``cutoff`` dimension.
    """

    kind: str
    criterion: str
    method: str
    mode: str
    estimate: float
    se: float
    p: float
    n_samples: int
    n_data_points: int
    scale: str
    warning: bool
    good_k: float
    forecast_horizon: int
    min_observations: int
    block_size: int = None
    refits: np.ndarray = field(default_factory=lambda: np.array([], dtype=int))
    failed_refits: np.ndarray = field(default_factory=lambda: np.array([], dtype=int))
    n_refits: int = 0
    n_cutoffs: int = 0
    cancelled: bool = False
    score_i: DataArray = None
    pareto_k: DataArray = None
    n_eff: DataArray = None
    refitted: DataArray = None
    valid: DataArray = None
    reference: DataArray = None
    missing_indices: dict = None

    @property
    def elpd(self):
        """Total ELPD, only defined for the ``elpd`` criterion."""
        if self.criterion != "elpd":
            raise AttributeError(f"elpd is not available for criterion '{self.criterion}'")
        return self.estimate

    @property
    def elpd_i(self):
        """Pointwise ELPD, only defined for the ``elpd`` criterion."""
        if self.criterion != "elpd":
            raise AttributeError(f"elpd_i is not available for criterion '{self.criterion}'")
        return self.score_i

    def __str__(self):
        """Print LFO-CV results in a user friendly way."""
        label = f"elpd_{self.kind}" if self.criterion == "elpd" else f"rmse_{self.kind}"
        pad = len(label) + 1
        block = f", block size {self.block_size}" if self.block_size else ""
        base = BASE_FMT.format(
            n_samples=self.n_samples,
            n_points=self.n_data_points,
            n_cutoffs=self.n_cutoffs,
            method=self.method,
            mode=self.mode,
            horizon=self.forecast_horizon,
            min_obs=self.min_observations,
            block=block,
            label=label,
            pad=pad,
            value=self.estimate,
            se=self.se,
        )
        if self.p is not None:
            base += P_FMT.format(label=f"p_{self.kind}", pad=pad, value=self.p)

        if self.cancelled:
            base += "\n\nThe run was cancelled, remaining cutoffs are marked invalid."
        if self.warning:
            base += "\n\nThere has been a warning during the calculation. Please check the results."

        if self.method == "approx" and self.pareto_k is not None:
            approximated = ~self.refitted.values & self.valid.values
            k_values = self.pareto_k.values[approximated]
            bins = np.asarray([-np.inf, self.good_k, np.inf])
            counts, *_ = np.histogram(k_values, bins=bins, density=False)
            total = max(np.sum(counts), 1)
            failed = (
                f", {len(self.failed_refits)} failed" if len(self.failed_refits) else ""
            )
            extended = PARETO_FMT.format(
                max(4, len(str(np.max(counts)))),
                n_refits=self.n_refits,
                pct=100 * self.n_refits / max(self.n_cutoffs, 1),
                failed=failed,
            )
            extended = extended.format(
                "Count", "Pct.", *counts, *(counts / total * 100), self.good_k
            )
            base = "\n".join([base, extended])

        return base

    def __repr__(self):
        """Alias to ``__str__``."""
        return self.__str__()

    def __getitem__(self, key):
        """Define getitem magic method."""
        return getattr(self, key)

    def __setitem__(self, key, item):
        """Define setitem magic method."""
        setattr(self, key, item)
