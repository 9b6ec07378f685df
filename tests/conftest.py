# pylint: disable=redefined-outer-name
import pytest

from .helpers import importorskip, make_ar_wrapper, simulate_ar

importorskip("arviz_base")
importorskip("xarray")


@pytest.fixture(scope="session")
def ar_series():
    """Short AR(2) series."""
    return simulate_ar(n_time_points=40, seed=3)


@pytest.fixture
def ar_wrapper(ar_series):
    """Fresh conjugate AR(2) wrapper, fit counters start at zero."""
    return make_ar_wrapper(ar_series, order=2)


@pytest.fixture
def wrapper_factory(ar_series):
    """Build conjugate AR(2) wrappers with custom options."""

    def _factory(**kwargs):
        return make_ar_wrapper(ar_series, order=2, **kwargs)

    return _factory
