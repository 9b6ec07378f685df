"""Reference fits produced by the model fitting service."""

import logging
import threading
from dataclasses import dataclass, field

import numpy as np
import xarray as xr

from lfo_stats.errors import MissingLikelihoodError, RefitError
from lfo_stats.lfo.cache import cache_get, cache_set, fit_key

__all__ = ["Fit", "FitFactory"]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fit:
    """Posterior fitted on every observation of the series except ``excluded``.

    Attributes
    ----------
    boundary : int
        Cutoff at which the fit was made. Its training prefix is ``y[:boundary]``.
    excluded : tuple of int
        Observations left out of training.
    idata : object
        Materialized posterior, as returned by ``wrapper.get_inference_data``.
    """

    boundary: int
    excluded: tuple
    idata: object = field(repr=False)
    wrapper: object = field(repr=False, compare=False)
    time_dim: str = "time"
    _log_lik: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def log_likelihood(self, idx):
        """Pointwise log likelihood of observations `idx`.

        Parameters
        ----------
        idx : array-like of int

        Returns
        -------
        DataArray
            Sample dimensions plus the time dimension, with `idx` as time coordinate.

        Raises
        ------
        MissingLikelihoodError
            If the fit can't provide finite log likelihood values for all of `idx`.
        """
        idx = np.atleast_1d(np.asarray(idx, dtype=int))
        needed = [i for i in dict.fromkeys(idx.tolist()) if i not in self._log_lik]
        if needed:
            self._store_log_likelihood(needed)
        log_lik = xr.concat([self._log_lik[i] for i in idx.tolist()], dim=self.time_dim)
        return log_lik.assign_coords({self.time_dim: idx})

    def _store_log_likelihood(self, needed):
        try:
            values = self.wrapper.log_likelihood__i(np.array(needed, dtype=int), self.idata)
        except MissingLikelihoodError:
            raise
        except Exception as err:  # pylint: disable=broad-except
            raise MissingLikelihoodError(
                f"Fit at cutoff {self.boundary} failed to compute the log likelihood of "
                f"{needed}: {err}",
                indices=needed,
            ) from err
        if values is None:
            raise MissingLikelihoodError(
                f"Fit at cutoff {self.boundary} returned no log likelihood for {needed}",
                indices=needed,
            )
        if self.time_dim not in values.dims or values.sizes[self.time_dim] != len(needed):
            raise MissingLikelihoodError(
                f"Fit at cutoff {self.boundary} returned log likelihood with dims "
                f"{dict(values.sizes)} for {len(needed)} requested observations",
                indices=needed,
            )
        for pos, i in enumerate(needed):
            column = values.isel({self.time_dim: pos}, drop=True)
            if np.isnan(column.values).any():
                raise MissingLikelihoodError(
                    f"Log likelihood of observation {i} is not available in the fit "
                    f"at cutoff {self.boundary}",
                    indices=[i],
                )
            self._log_lik[i] = column


class FitFactory:
    """Produce :class:`Fit` objects through a :class:`~lfo_stats.lfo.SamplingWrapper`.

    Fits are memoized in `cache` when the wrapper provides a ``cache_key``.
    """

    def __init__(self, wrapper, time_dim="time", cache=None):
        self.wrapper = wrapper
        self.time_dim = time_dim
        self.cache = cache
        self.model_key = wrapper.cache_key()
        self.n_fits = 0
        self._lock = threading.Lock()

    def fit(self, boundary, excluded):
        """Fit the model leaving out `excluded`.

        Raises
        ------
        RefitError
            Wrapping whatever the fitting service raised.
        """
        excluded = tuple(int(i) for i in np.sort(np.asarray(excluded, dtype=int)))
        key = None if self.model_key is None else fit_key(self.model_key, excluded)

        idata = cache_get(self.cache, key)
        if idata is None:
            _log.info("Refitting model at cutoff %d", boundary)
            try:
                train_data, _ = self.wrapper.sel_observations(np.array(excluded, dtype=int))
                fitted_model = self.wrapper.sample(train_data)
                idata = self.wrapper.get_inference_data(fitted_model)
            except Exception as err:  # pylint: disable=broad-except
                raise RefitError(
                    f"Refit at cutoff {boundary} failed: {err}", cutoff=boundary
                ) from err
            if idata is None:
                raise RefitError(
                    f"Refit at cutoff {boundary} returned no posterior", cutoff=boundary
                )
            with self._lock:
                self.n_fits += 1
            cache_set(self.cache, key, idata)

        return Fit(
            boundary=int(boundary),
            excluded=excluded,
            idata=idata,
            wrapper=self.wrapper,
            time_dim=self.time_dim,
        )
