# pylint: disable=redefined-outer-name
"""Test related helper functions."""

import os
import sys
import warnings
from typing import Any

import numpy as np
import pytest


def importorskip(modname: str, reason: str | None = None) -> Any:
    """Import and return the requested module ``modname``.

    Doesn't allow skips when ``LFO_STATS_REQUIRE_ALL_DEPS`` env var is defined.
    Borrowed and modified from ``pytest.importorskip``.

    Parameters
    ----------
    modname : str
        the name of the module to import
    reason : str, optional
        this reason is shown as skip message when the module cannot be imported.
    """
    __tracebackhide__ = True  # pylint: disable=unused-variable
    compile(modname, "", "eval")  # to catch syntaxerrors

    with warnings.catch_warnings():
        # Make sure to ignore ImportWarnings that might happen because
        # of existing directories with the same name we're trying to
        # import but without a __init__.py file.
        warnings.simplefilter("ignore")
        try:
            __import__(modname)
        except ImportError as exc:
            if "LFO_STATS_REQUIRE_ALL_DEPS" in os.environ:
                raise exc
            if reason is None:
                reason = f"could not import {modname!r}: {exc}"
            pytest.skip(reason, allow_module_level=True)

    mod = sys.modules[modname]
    return mod


def simulate_ar(n_time_points=60, coefs=(0.5, 0.3), intercept=0.2, sigma=1.0, seed=3):
    """Simulate an autoregressive series ``y_t = intercept + sum(coefs * lags) + noise``."""
    rng = np.random.default_rng(seed)
    order = len(coefs)
    y = np.zeros(n_time_points + order)
    for t in range(order, n_time_points + order):
        lags = y[t - order : t][::-1]
        y[t] = intercept + np.dot(coefs, lags) + sigma * rng.normal()
    return y[order:]


def ar_design(y, order):
    """Design matrix of an AR(order) model with intercept, missing lags set to 0."""
    padded = np.concatenate([np.zeros(order), y])
    columns = [np.ones_like(y)]
    for lag in range(1, order + 1):
        columns.append(padded[order - lag : order - lag + len(y)])
    return np.column_stack(columns)


def make_ar_wrapper(y, order=2, **kwargs):
    """Create a :class:`ConjugateARWrapper` for series `y`.

    Defined as a factory so the wrapper class is only built when lfo_stats is importable.
    """
    from arviz_base import from_dict

    from lfo_stats import SamplingWrapper

    class ConjugateARWrapper(SamplingWrapper):
        """Bayesian AR model with known noise scale and a conjugate normal prior.

        Fits are computed in closed form and use the same standard normal draws, so
        fitting twice on the same training data gives identical posteriors.

        Parameters
        ----------
        y : ndarray
        order : int
        sigma : float
            Known noise scale.
        prior_scale : float
            Scale of the normal prior of the coefficients.
        n_chains, n_draws : int
        key : str, optional
            Returned by ``cache_key``.
        fail_at : iterable of int
            Fits whose first excluded observation is in `fail_at` raise RuntimeError.
        missing_at : iterable of int
            Observations whose log likelihood is returned as NaN.
        raise_at : iterable of int
            Observations whose log likelihood or predictions raise IndexError.
        on_fit : callable, optional
            Called with the number of fits after each fit.
        """

        def __init__(
            self,
            y,
            order=2,
            sigma=1.0,
            prior_scale=5.0,
            n_chains=4,
            n_draws=250,
            key=None,
            fail_at=(),
            missing_at=(),
            raise_at=(),
            on_fit=None,
            seed=0,
        ):
            y = np.asarray(y, dtype=float)
            super().__init__(model={"y": y, "order": order}, n_time_points=len(y))
            self.y = y
            self.order = order
            self.sigma = sigma
            self.prior_scale = prior_scale
            self.design = ar_design(y, order)
            self.key = key
            self.fail_at = set(fail_at)
            self.missing_at = set(missing_at)
            self.raise_at = set(raise_at)
            self.on_fit = on_fit
            self.std_normal = np.random.default_rng(seed).normal(
                size=(n_chains, n_draws, order + 1)
            )
            self.fit_count = 0
            self.fitted_excluded = []

        def sel_observations(self, idx):
            idx = np.asarray(idx, dtype=int)
            train_idx = np.setdiff1d(np.arange(len(self.y)), idx)
            return train_idx, idx

        def sample(self, modified_observed_data):
            train_idx = np.asarray(modified_observed_data, dtype=int)
            excluded = np.setdiff1d(np.arange(len(self.y)), train_idx)
            if excluded.size and int(excluded[0]) in self.fail_at:
                raise RuntimeError(f"sampler diverged at {excluded[0]}")

            design = self.design[train_idx]
            precision = np.eye(self.order + 1) / self.prior_scale**2
            precision += design.T @ design / self.sigma**2
            cov = np.linalg.inv(precision)
            mean = cov @ design.T @ self.y[train_idx] / self.sigma**2
            chol = np.linalg.cholesky(cov)
            draws = mean + self.std_normal @ chol.T

            self.fit_count += 1
            self.fitted_excluded.append(excluded)
            if self.on_fit is not None:
                self.on_fit(self.fit_count)
            return draws

        def get_inference_data(self, fitted_model):
            return from_dict({"posterior": {"phi": fitted_model}}, dims={"phi": ["coef"]})

        def _predictive_mean(self, idx, idata__i):
            phi = idata__i.posterior["phi"].values
            if self.raise_at.intersection(np.asarray(idx, dtype=int).tolist()):
                raise IndexError("latent value not available")
            design = self.design[np.asarray(idx, dtype=int)]
            return np.einsum("cdk,tk->cdt", phi, design)

        def log_likelihood__i(self, idx, idata__i):
            import xarray as xr

            idx = np.asarray(idx, dtype=int)
            mu = self._predictive_mean(idx, idata__i)
            resid = self.y[idx] - mu
            log_lik = -0.5 * np.log(2 * np.pi * self.sigma**2) - 0.5 * (resid / self.sigma) ** 2
            for pos, i in enumerate(idx):
                if int(i) in self.missing_at:
                    log_lik[..., pos] = np.nan
            return xr.DataArray(log_lik, dims=["chain", "draw", "time"])

        def posterior_predictive__i(self, idx, idata__i):
            import xarray as xr

            mu = self._predictive_mean(idx, idata__i)
            return xr.DataArray(mu, dims=["chain", "draw", "time"])

        def observed_data__i(self, idx):
            return self.y[np.asarray(idx, dtype=int)]

        def cache_key(self):
            return self.key

    return ConjugateARWrapper(y, order=order, **kwargs)


def brute_force_score(wrapper, cutoff, forecast_horizon=1, block_size=None, criterion="elpd"):
    """Score of one cutoff computed by fitting the model directly."""
    from scipy.special import logsumexp

    n_time_points = len(wrapper.y)
    if block_size:
        excluded = np.arange(cutoff, min(cutoff + block_size, n_time_points))
    else:
        excluded = np.arange(cutoff, n_time_points)
    train_idx, _ = wrapper.sel_observations(excluded)
    idata = wrapper.get_inference_data(wrapper.sample(train_idx))
    idx = np.arange(cutoff, cutoff + forecast_horizon)
    if criterion == "elpd":
        joint = wrapper.log_likelihood__i(idx, idata).sum("time").values.ravel()
        return logsumexp(joint) - np.log(joint.size)
    mean = wrapper.posterior_predictive__i(idx, idata).mean(("chain", "draw")).values
    return np.sqrt(np.mean((wrapper.observed_data__i(idx) - mean) ** 2))


def full_data_log_likelihood(wrapper):
    """DataTree with the log likelihood of every observation under the full data fit."""
    from arviz_base import from_dict

    n_time_points = len(wrapper.y)
    idata = wrapper.get_inference_data(wrapper.sample(np.arange(n_time_points)))
    log_lik = wrapper.log_likelihood__i(np.arange(n_time_points), idata)
    return from_dict({"log_likelihood": {"y": log_lik.values}}, dims={"y": ["time"]})
