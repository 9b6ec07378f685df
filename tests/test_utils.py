"""Test for general utilities and the result container."""

# pylint: disable=redefined-outer-name, unused-import
# ruff: noqa: F811
import numpy as np
import pytest

from .helpers import importorskip

azb = importorskip("arviz_base")
xr = importorskip("xarray")

from lfo_stats.errors import MissingLikelihoodError, PSISFitError, RefitError
from lfo_stats.utils import LFOData, get_log_likelihood


def test_get_log_likelihood():
    idata = azb.from_dict(
        {
            "log_likelihood": {
                "y1": np.random.normal(size=(4, 100, 6)),
                "y2": np.random.normal(size=(4, 100, 8)),
            }
        }
    )
    assert get_log_likelihood(idata, "y1").shape == (4, 100, 6)
    assert get_log_likelihood(idata, "y2").shape == (4, 100, 8)


def test_get_log_likelihood_single_var():
    idata = azb.from_dict({"log_likelihood": {"y": np.random.normal(size=(2, 50, 5))}})
    assert get_log_likelihood(idata).shape == (2, 50, 5)


def test_get_log_likelihood_no_var_name():
    idata = azb.from_dict(
        {
            "log_likelihood": {
                "y1": np.random.normal(size=(4, 100, 6)),
                "y2": np.random.normal(size=(4, 100, 8)),
            }
        }
    )
    with pytest.raises(TypeError, match="several log likelihood arrays"):
        get_log_likelihood(idata)


def test_get_log_likelihood_invalid_var_name():
    idata = azb.from_dict({"log_likelihood": {"y": np.random.normal(size=(2, 50, 5))}})
    with pytest.raises(TypeError, match="No log likelihood data named"):
        get_log_likelihood(idata, "z")


def test_get_log_likelihood_missing_group():
    idata = azb.from_dict({"posterior": {"mu": np.random.normal(size=(2, 50))}})
    with pytest.raises(TypeError, match="log likelihood not found"):
        get_log_likelihood(idata)


def test_get_log_likelihood_sample_stats_not_used():
    idata = azb.from_dict(
        {"sample_stats": {"log_likelihood": np.random.normal(size=(4, 100, 6))}}
    )
    with pytest.raises(TypeError, match="log likelihood not found"):
        get_log_likelihood(idata)


def _pointwise(values, dtype=float):
    return xr.DataArray(np.asarray(values, dtype=dtype), dims=["cutoff"])


@pytest.fixture
def lfo_data():
    return LFOData(
        kind="lfo",
        criterion="elpd",
        method="approx",
        mode="forward",
        estimate=-12.3,
        se=1.5,
        p=2.1,
        n_samples=1000,
        n_data_points=4,
        scale="log",
        warning=False,
        good_k=0.7,
        forecast_horizon=1,
        min_observations=10,
        refits=np.array([10, 12]),
        n_refits=2,
        n_cutoffs=4,
        score_i=_pointwise([-3.0, -3.1, -3.2, -3.0]),
        pareto_k=_pointwise([0.0, 0.3, 0.0, 0.9]),
        n_eff=_pointwise([1000, 800, 1000, 100]),
        refitted=_pointwise([True, False, True, False], dtype=bool),
        valid=_pointwise([True, True, True, True], dtype=bool),
        reference=_pointwise([10, 10, 12, 12], dtype=int),
    )


def test_lfo_data_str(lfo_data):
    text = str(lfo_data)
    assert "elpd_lfo" in text
    assert "-12.30" in text
    assert "p_lfo" in text
    assert "Refits: 2 (50.0% of cutoffs)" in text
    assert "(good)" in text
    assert repr(lfo_data) == text


def test_lfo_data_str_rmse(lfo_data):
    lfo_data.criterion = "rmse"
    lfo_data.p = None
    text = str(lfo_data)
    assert "rmse_lfo" in text
    assert "p_lfo" not in text


def test_lfo_data_str_exact(lfo_data):
    lfo_data.method = "exact"
    lfo_data.pareto_k = None
    assert "Pareto k" not in str(lfo_data)


def test_lfo_data_str_flags(lfo_data):
    lfo_data.cancelled = True
    lfo_data.warning = True
    lfo_data.block_size = 3
    text = str(lfo_data)
    assert "cancelled" in text
    assert "warning" in text
    assert "block size 3" in text


def test_lfo_data_elpd_properties(lfo_data):
    assert lfo_data.elpd == lfo_data.estimate
    assert lfo_data.elpd_i is lfo_data.score_i
    lfo_data.criterion = "rmse"
    with pytest.raises(AttributeError):
        _ = lfo_data.elpd
    with pytest.raises(AttributeError):
        _ = lfo_data.elpd_i


def test_lfo_data_getitem_setitem(lfo_data):
    assert lfo_data["estimate"] == -12.3
    lfo_data["se"] = 2.0
    assert lfo_data.se == 2.0


def test_errors_hierarchy():
    missing = MissingLikelihoodError("no log likelihood for [3]", indices=[3])
    assert isinstance(missing, KeyError)
    assert str(missing) == "no log likelihood for [3]"
    assert missing.indices == [3]
    assert isinstance(PSISFitError("tail"), ValueError)
    refit = RefitError("diverged", cutoff=7)
    assert isinstance(refit, RuntimeError)
    assert refit.cutoff == 7
