"""Stats-utility functions for lfo_stats."""

import numpy as np

__all__ = ["make_ufunc"]


def make_ufunc(func, n_dims=1, n_output=1, n_input=1, ravel=True):
    """Make ufunc from a function taking 1D array input.

    Parameters
    ----------
    func : callable
    n_dims : int, optional
        Number of core dimensions not broadcasted. Dimensions are skipped from the end.
        At minimum n_dims > 0.
    n_output : int, optional
        Select number of results returned by `func`.
        If n_output > 1, ufunc returns a tuple of objects else returns an object.
    n_input : int, optional
        Number of **array** inputs to func, i.e. ``n_input=2`` means that func is called
        with ``func(ary1, ary2, *args, **kwargs)``
    ravel : bool, optional
        If true, ravel the core dimensions before calling `func`.

    Returns
    -------
    callable
        ufunc wrapper for `func`. It accepts an ``out_shape`` keyword: the shape of the
        core output of each result (a sequence of shapes if ``n_output > 1``).
    """
    if n_dims < 1:
        raise TypeError("n_dims must be one or higher.")

    def _ufunc(*args, out_shape=None, **kwargs):
        arys = args[:n_input]
        element_shape = arys[0].shape[:-n_dims]
        if n_output == 1:
            out_shapes = [() if out_shape is None else tuple(out_shape)]
        else:
            out_shapes = (
                [()] * n_output if out_shape is None else [tuple(shape) for shape in out_shape]
            )
        out = tuple(np.empty((*element_shape, *shape)) for shape in out_shapes)

        for idx in np.ndindex(element_shape):
            arys_idx = [ary[idx].ravel() if ravel else ary[idx] for ary in arys]
            results = func(*arys_idx, *args[n_input:], **kwargs)
            if n_output == 1:
                results = (results,)
            for i, res in enumerate(results):
                out[i][idx] = np.reshape(np.asarray(res), out_shapes[i])

        return out[0] if n_output == 1 else out

    _ufunc.__doc__ = f"Ufunc wrapper for {getattr(func, '__name__', func)}."
    return _ufunc
