# pylint: disable=redefined-outer-name, unused-import
# ruff: noqa: F811
import numpy as np
import pytest

from .helpers import importorskip

azb = importorskip("arviz_base")

from lfo_stats.validate import validate_dims, validate_k_threshold, validate_r_eff


def test_validate_dims_none():
    result = validate_dims(None)
    expected = azb.rcParams["data.sample_dims"]
    assert result == list(expected)


def test_validate_dims_string():
    assert validate_dims("chain") == ["chain"]


def test_validate_dims_tuple():
    assert validate_dims(("chain", "draw")) == ["chain", "draw"]


@pytest.mark.parametrize("k_threshold, expected", [(None, 0.7), (0.5, 0.5), (-1, -1.0)])
def test_validate_k_threshold(k_threshold, expected):
    assert validate_k_threshold(k_threshold) == expected


def test_validate_k_threshold_inf():
    assert validate_k_threshold(np.inf) == np.inf


def test_validate_k_threshold_nan():
    with pytest.raises(ValueError, match="NaN"):
        validate_k_threshold(np.nan)


@pytest.mark.parametrize("r_eff, expected", [(None, 1.0), (0.4, 0.4), (2, 2.0)])
def test_validate_r_eff(r_eff, expected):
    assert validate_r_eff(r_eff) == expected


@pytest.mark.parametrize("r_eff", [0, -0.5, np.nan])
def test_validate_r_eff_invalid(r_eff):
    with pytest.raises(ValueError, match="r_eff must be positive"):
        validate_r_eff(r_eff)
