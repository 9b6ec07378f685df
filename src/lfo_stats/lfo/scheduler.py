"""Decide when the PSIS approximation can be trusted and when to refit."""

import enum
import logging
import threading
from collections import namedtuple

import numpy as np

from lfo_stats.lfo.helper_lfo_cv import LFOMethod

__all__ = ["StepState", "RefitEvent", "RefitScheduler"]

_log = logging.getLogger(__name__)


class StepState(enum.Enum):
    """What to do at a cutoff."""

    APPROXIMATE = "approximate"
    EXACT = "exact"


RefitEvent = namedtuple("RefitEvent", ["cutoff", "succeeded"])


class RefitScheduler:
    """Refit policy of LFO-CV.

    Parameters
    ----------
    method : LFOMethod or str
        With ``"exact"`` every cutoff is refitted.
    k_threshold : float, default 0.7
        Pareto k above which the importance sampling approximation is rejected.
        Undefined (NaN) k values are always rejected.
    """

    def __init__(self, method=LFOMethod.APPROX, k_threshold=0.7):
        self.method = LFOMethod.parse(method)
        self.k_threshold = k_threshold
        self.events = []
        self._lock = threading.Lock()

    def decide(self, pareto_k):
        """Return the state for a cutoff given the Pareto k of its importance weights."""
        if self.method is LFOMethod.EXACT:
            return StepState.EXACT
        if pareto_k is None or np.isnan(pareto_k):
            _log.debug("Undefined Pareto k, refit required")
            return StepState.EXACT
        if pareto_k > self.k_threshold:
            _log.debug("Pareto k %.3f above %.3f, refit required", pareto_k, self.k_threshold)
            return StepState.EXACT
        return StepState.APPROXIMATE

    def record(self, cutoff, succeeded=True):
        """Register a refit made at `cutoff`."""
        with self._lock:
            self.events.append(RefitEvent(int(cutoff), bool(succeeded)))

    @property
    def refits(self):
        """Sorted cutoffs with a successful refit."""
        return np.array(
            sorted(event.cutoff for event in self.events if event.succeeded), dtype=int
        )

    @property
    def failed_refits(self):
        """Sorted cutoffs where refitting failed."""
        return np.array(
            sorted(event.cutoff for event in self.events if not event.succeeded), dtype=int
        )

    @property
    def n_refits(self):
        return len(self.refits)
