"""Approximate leave-future-out cross-validation (LFO-CV) with PSIS."""

from lfo_stats.lfo.aggregate import combine_steps, elpd_score, rmse_score
from lfo_stats.lfo.fit import Fit, FitFactory
from lfo_stats.lfo.helper_lfo_cv import (
    LFOCriterion,
    LFOMethod,
    LFOMode,
    LFOStepResult,
    PredictionTask,
)
from lfo_stats.lfo.lfo_cv import lfo_cv
from lfo_stats.lfo.psis import PSISResult, psis_smooth
from lfo_stats.lfo.ratios import (
    LogRatios,
    block_missing_indices,
    choose_combined,
    compute_log_ratios,
)
from lfo_stats.lfo.scheduler import RefitScheduler, StepState
from lfo_stats.lfo.wrapper import SamplingWrapper

__all__ = [
    "lfo_cv",
    "SamplingWrapper",
    "Fit",
    "FitFactory",
    "LFOMethod",
    "LFOMode",
    "LFOCriterion",
    "PredictionTask",
    "LFOStepResult",
    "LogRatios",
    "compute_log_ratios",
    "block_missing_indices",
    "choose_combined",
    "PSISResult",
    "psis_smooth",
    "RefitScheduler",
    "StepState",
    "elpd_score",
    "rmse_score",
    "combine_steps",
]
