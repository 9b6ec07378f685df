"""Test Pareto smoothed importance sampling internals."""

# pylint: disable=redefined-outer-name, protected-access
import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.special import logsumexp
from scipy.stats import genpareto

from lfo_stats.base.diagnostics import MIN_TAIL_DRAWS, _DiagnosticsBase
from lfo_stats.errors import PSISFitError


@pytest.fixture(scope="module")
def diagnostics():
    return _DiagnosticsBase()


@pytest.mark.parametrize(
    "n_draws,r_eff,expected",
    [
        (100, 1, 20),  # 0.2 * S is the smallest
        (1000, 1, 95),  # 3 * sqrt(S) is the smallest
        (1000, 0.5, 135),
        (4000, 1, 190),
    ],
)
def test_get_ps_tails_default(n_draws, r_eff, expected):
    assert _DiagnosticsBase._get_ps_tails(n_draws, r_eff) == expected


def test_get_ps_tails_custom():
    assert _DiagnosticsBase._get_ps_tails(1000, tail_len=50) == 50
    # never the whole sample
    assert _DiagnosticsBase._get_ps_tails(10, tail_len=50) == 9


@pytest.mark.parametrize("n_draws,tail_len", [(20, None), (1000, MIN_TAIL_DRAWS - 1)])
def test_get_ps_tails_too_short(n_draws, tail_len):
    with pytest.raises(PSISFitError, match="at least"):
        _DiagnosticsBase._get_ps_tails(n_draws, tail_len=tail_len)


def test_gpdfit_recovers_shape():
    rng = np.random.default_rng(7)
    exceedances = np.sort(genpareto.rvs(c=0.5, scale=2.0, size=5000, random_state=rng))
    kappa, sigma = _DiagnosticsBase._gpdfit(exceedances)
    assert_allclose(kappa, 0.5, atol=0.1)
    assert_allclose(sigma, 2.0, rtol=0.15)


def test_gpinv_quantiles():
    probs = np.array([0.1, 0.5, 0.9])
    assert_allclose(
        _DiagnosticsBase._gpinv(probs, 0.3, 1.5, 0.2), genpareto.ppf(probs, c=0.3, scale=1.5) + 0.2
    )
    assert_allclose(
        _DiagnosticsBase._gpinv(probs, 0, 1.5, 0), genpareto.ppf(probs, c=0, scale=1.5), rtol=1e-6
    )
    assert np.all(np.isnan(_DiagnosticsBase._gpinv(probs, 0.3, -1, 0)))


def test_psislw_normalized(diagnostics):
    rng = np.random.default_rng(3)
    log_ratios = rng.normal(size=1000)
    original = log_ratios.copy()
    log_weights, khat = diagnostics._psislw(log_ratios)
    assert_allclose(logsumexp(log_weights), 0, atol=1e-10)
    assert np.isfinite(khat)
    # input is not modified
    assert_allclose(log_ratios, original)


def test_psislw_only_tail_changes(diagnostics):
    rng = np.random.default_rng(3)
    log_ratios = rng.normal(size=1000)
    log_weights, _ = diagnostics._psislw(log_ratios)
    n_tail = diagnostics._get_ps_tails(1000)
    body = np.argsort(log_ratios)[:-n_tail]
    shift = log_weights[body] - log_ratios[body]
    assert_allclose(shift, shift[0])


@pytest.mark.parametrize("shape,lower,upper", [(1.5, 0.7, np.inf), (None, -np.inf, 0.5)])
def test_psislw_khat_tail_shape(diagnostics, shape, lower, upper):
    rng = np.random.default_rng(11)
    if shape is None:
        log_ratios = 0.1 * rng.normal(size=4000)
    else:
        log_ratios = np.log(genpareto.rvs(c=shape, size=4000, random_state=rng))
    _, khat = diagnostics._psislw(log_ratios)
    assert lower < khat < upper


def test_ps_tail_constant(diagnostics):
    with pytest.raises(PSISFitError, match="same"):
        diagnostics._psislw(np.zeros(100))


def test_ps_tail_without_smoothing(diagnostics):
    rng = np.random.default_rng(3)
    log_ratios = rng.normal(size=1000)
    n_tail = diagnostics._get_ps_tails(1000)
    unsmoothed, khat = diagnostics._ps_tail(log_ratios, 1000, n_tail, log_weights=True)
    _, khat_psis = diagnostics._psislw(log_ratios)
    assert_allclose(unsmoothed, log_ratios - log_ratios.max())
    assert_allclose(khat, khat_psis)


def test_psis_n_eff_uniform():
    log_weights = np.full(100, -np.log(100))
    assert_allclose(_DiagnosticsBase._psis_n_eff(log_weights), 100)
    assert_allclose(_DiagnosticsBase._psis_n_eff(log_weights, r_eff=0.5), 50)
    # unnormalized weights give the same value
    assert_allclose(_DiagnosticsBase._psis_n_eff(np.zeros(100)), 100)


def test_psis_n_eff_single_weight():
    log_weights = np.full(100, -np.inf)
    log_weights[3] = 0
    assert_allclose(_DiagnosticsBase._psis_n_eff(log_weights), 1)
