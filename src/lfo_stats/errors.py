"""Exceptions raised by lfo_stats."""

__all__ = ["LFOError", "MissingLikelihoodError", "PSISFitError", "RefitError"]


class LFOError(Exception):
    """Base class for errors raised during leave-future-out cross-validation."""


class MissingLikelihoodError(LFOError, KeyError):
    """A fit could not provide the log likelihood of a required observation."""

    def __init__(self, message, indices=None):
        super().__init__(message)
        self.indices = indices

    def __str__(self):
        # KeyError would otherwise print the repr of the message
        return str(self.args[0])


class PSISFitError(LFOError, ValueError):
    """The generalized Pareto fit to the tail of the importance ratios failed."""


class RefitError(LFOError, RuntimeError):
    """The external fitting service failed to produce a posterior."""

    def __init__(self, message, cutoff=None):
        super().__init__(message)
        self.cutoff = cutoff
