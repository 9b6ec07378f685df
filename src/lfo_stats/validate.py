"""Validator functions for common arguments."""

from arviz_base import rcParams


def validate_dims(dims):
    """Validate `dims` argument.

    Uses the default in rcParams and ensures the returned object is a list.

    Parameters
    ----------
    dims : str, sequence of hashable, or None

    Returns
    -------
    list
    """
    if dims is None:
        dims = rcParams["data.sample_dims"]
    if isinstance(dims, str):
        dims = [dims]
    return list(dims)


def validate_k_threshold(k_threshold):
    """Validate the Pareto k threshold that triggers a refit, defaulting to 0.7."""
    if k_threshold is None:
        return 0.7
    k_threshold = float(k_threshold)
    if k_threshold != k_threshold:
        raise ValueError("k_threshold can't be NaN")
    return k_threshold


def validate_r_eff(r_eff):
    """Validate the relative efficiency used to scale PSIS tail length and n_eff."""
    if r_eff is None:
        return 1.0
    r_eff = float(r_eff)
    if not r_eff > 0:
        raise ValueError(f"r_eff must be positive, got {r_eff}")
    return r_eff
