"""Keys for storing fits and LFO-CV results in a user provided key-value store.

Any :class:`collections.abc.MutableMapping` works as store, e.g. a ``dict`` for an
in-memory cache or a :class:`shelve.Shelf` to keep fits between sessions (string keys
are generated so both work).
"""

import logging

import numpy as np

__all__ = ["fit_key", "result_key", "cache_get", "cache_set"]

_log = logging.getLogger(__name__)


def _fmt(value):
    if value is None:
        return "none"
    if isinstance(value, float):
        return repr(float(value))
    return str(value)


def fit_key(model_key, excluded):
    """Key of the posterior fitted leaving out the observations in `excluded`."""
    excluded = np.asarray(excluded, dtype=int)
    if excluded.size and np.all(np.diff(excluded) == 1):
        excluded_str = f"{excluded[0]}:{excluded[-1] + 1}"
    else:
        excluded_str = ",".join(str(i) for i in excluded)
    return f"lfo-fit|{model_key}|{excluded_str}"


def result_key(
    model_key,
    method,
    forecast_horizon,
    min_observations,
    block_size,
    mode,
    k_threshold,
    criterion,
    r_eff=1.0,
    tail_len=None,
    time_dim="time",
    var_name=None,
    with_data=False,
):
    """Key of a finished LFO-CV run.

    Every argument that changes the result is part of the key. Exact LFO-CV refits at
    every cutoff, so the mode, the Pareto k threshold and the tail length don't
    enter its key.
    """
    if method == "exact":
        mode, k_threshold, tail_len = None, None, None
    parts = (
        model_key,
        method,
        forecast_horizon,
        min_observations,
        block_size,
        mode,
        k_threshold,
        criterion,
        float(r_eff),
        tail_len,
        time_dim,
        var_name,
        "data" if with_data else "nodata",
    )
    return "lfo-result|" + "|".join(_fmt(part) for part in parts)


def cache_get(cache, key):
    """Get `key` from `cache`, None if there is no cache or no such key."""
    if cache is None or key is None:
        return None
    try:
        value = cache[key]
    except KeyError:
        return None
    _log.debug("Cache hit for %s", key)
    return value


def cache_set(cache, key, value):
    """Store `value` under `key` if there is a cache."""
    if cache is None or key is None:
        return
    cache[key] = value
