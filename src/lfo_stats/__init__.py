# pylint: disable=wildcard-import
"""Approximate leave-future-out cross-validation for Bayesian time series models."""

__version__ = "0.1.0"

try:
    from lfo_stats.errors import *
    from lfo_stats.utils import *
    from lfo_stats.accessors import *
    from lfo_stats.lfo import SamplingWrapper, lfo_cv

except ModuleNotFoundError:
    pass
