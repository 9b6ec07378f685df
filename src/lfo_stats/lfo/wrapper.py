"""Base class to interface lfo_stats with the model fitting service."""

from arviz_base import convert_to_datatree

__all__ = ["SamplingWrapper"]


class SamplingWrapper:
    """Class wrapping sampling routines for refitting time series models.

    LFO-CV needs to refit the model on training windows of the series and to evaluate
    the log likelihood of observations under each refitted posterior. This class
    defines the interface :func:`~lfo_stats.lfo_cv` uses for that; the model specific
    work is done in a subclass.

    Parameters
    ----------
    model : object
        Model object that will be refitted. Any object, only used by subclasses.
    idata_orig : DataTree or InferenceData, optional
        Original data of the whole series. Converted to DataTree and stored as ``data``.
    log_lik_var_name : str, optional
        Name of the variable in the log_likelihood group of the fits.
    n_time_points : int, optional
        Length of the series. If not given it is inferred from the ``observed_data``
        group of ``idata_orig``.
    sample_kwargs : dict, optional
        Keyword arguments for the sampling routine, available to subclasses.
    idata_kwargs : dict, optional
        Keyword arguments for the conversion to DataTree, available to subclasses.

    Notes
    -----
    Methods to implement in a subclass:

    - ``sel_observations(idx)``: ``idx`` is an array of 0-based time indices to exclude
      from training. Returns ``(train_data, excluded_data)``.
    - ``sample(train_data)``: fit the model, returning the fitted object.
    - ``get_inference_data(fitted_model)``: convert the fitted object to the posterior
      representation that ``log_likelihood__i`` understands. This is what gets stored
      in fit caches.
    - ``log_likelihood__i(idx, idata__i)``: DataArray with the sample dimensions and
      the time dimension holding the pointwise log likelihood of observations ``idx``
      under ``idata__i``. It can raise :class:`~lfo_stats.errors.MissingLikelihoodError`.

    The ``rmse`` criterion also needs ``posterior_predictive__i(idx, idata__i)`` (per draw
    predictions of observations ``idx``, same dims as ``log_likelihood__i``) and
    ``observed_data__i(idx)`` (the true values).

    ``cache_key`` can be overridden to return a hashable identifying model and data,
    which enables fit and result caching in :func:`~lfo_stats.lfo_cv`.
    """

    def __init__(
        self,
        model,
        idata_orig=None,
        log_lik_var_name=None,
        n_time_points=None,
        sample_kwargs=None,
        idata_kwargs=None,
    ):
        self.model = model
        self.data = None if idata_orig is None else convert_to_datatree(idata_orig)
        self.log_lik_var_name = log_lik_var_name
        self._n_time_points = n_time_points
        self.sample_kwargs = {} if sample_kwargs is None else sample_kwargs
        self.idata_kwargs = {} if idata_kwargs is None else idata_kwargs

    def sel_observations(self, idx):
        """Get the training and excluded data given the indices to exclude."""
        raise NotImplementedError("sel_observations method must be implemented")

    def sample(self, modified_observed_data):
        """Fit the model on the training data."""
        raise NotImplementedError("sample method must be implemented")

    def get_inference_data(self, fitted_model):
        """Convert the fitted model to its posterior representation."""
        raise NotImplementedError("get_inference_data method must be implemented")

    def log_likelihood__i(self, idx, idata__i):
        """Get the pointwise log likelihood of observations `idx` under `idata__i`."""
        raise NotImplementedError("log_likelihood__i method must be implemented")

    def posterior_predictive__i(self, idx, idata__i):
        """Get per draw predictions of observations `idx` under `idata__i`."""
        raise NotImplementedError("posterior_predictive__i method must be implemented")

    def observed_data__i(self, idx):
        """Get the observed values at `idx`."""
        raise NotImplementedError("observed_data__i method must be implemented")

    def cache_key(self):
        """Hashable identifying model and data for caching, None disables caching."""
        return None

    def n_time_points(self, time_dim="time"):
        """Number of observations in the series."""
        if self._n_time_points is not None:
            return int(self._n_time_points)
        if self.data is not None and "observed_data" in self.data.children:
            observed = self.data["observed_data"]
            if time_dim in observed.dims:
                return int(observed.sizes[time_dim])
        return None

    def check_implemented_methods(self, methods):
        """Check that the given methods are overridden by the subclass.

        Parameters
        ----------
        methods : iterable of str

        Returns
        -------
        list of str
            Methods that are not implemented.
        """
        not_implemented = []
        for method in methods:
            implementation = getattr(type(self), method, None)
            if implementation is None or implementation is getattr(SamplingWrapper, method):
                not_implemented.append(method)
        return not_implemented
