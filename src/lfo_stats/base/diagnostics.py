"""Pareto smoothed importance sampling diagnostics."""

import numpy as np
from scipy.special import logsumexp

from lfo_stats.errors import PSISFitError

MIN_TAIL_DRAWS = 5


class _DiagnosticsBase:
    """Class with numpy+scipy only PSIS related functions."""

    @staticmethod
    def _get_ps_tails(n_draws, r_eff=1, tail_len=None):
        """Number of draws in the right tail used for the generalized Pareto fit.

        Defaults to ``ceil(min(0.2 * n_draws, 3 * sqrt(n_draws / r_eff)))``.
        """
        if tail_len is None:
            n_draws_tail = int(np.ceil(min(0.2 * n_draws, 3 * (n_draws / r_eff) ** 0.5)))
        else:
            n_draws_tail = int(tail_len)
        n_draws_tail = min(n_draws_tail, n_draws - 1)

        if n_draws_tail < MIN_TAIL_DRAWS:
            raise PSISFitError(
                f"n_draws_tail must be at least {MIN_TAIL_DRAWS}, "
                f"got {n_draws_tail} out of {n_draws} draws"
            )

        return n_draws_tail

    def _ps_tail(self, ary, n_draws, n_draws_tail, smooth_draws=False, log_weights=False):
        """Fit a generalized Pareto distribution to the right tail and optionally smooth it.

        Parameters
        ----------
        ary : array
            1D array. It is not modified.
        n_draws : int
            Number of draws.
        n_draws_tail : int
            Number of draws in the tail.
        smooth_draws : bool, optional
            Replace the tail draws by the expected order statistics of the fitted distribution.
        log_weights : bool, optional
            Whether `ary` represents log-weights. The fit is then done on the weight scale.

        Returns
        -------
        ary : array
            Array with smoothed tail values.
        k : float
            Estimated shape parameter.

        Raises
        ------
        PSISFitError
            If the tail is degenerate or the fit does not give finite parameters.
        """
        ary = np.array(ary, dtype=float)
        if log_weights:
            ary = ary - np.max(ary)

        tail_ids = np.arange(n_draws - n_draws_tail, n_draws, dtype=int)
        ordered = np.argsort(ary)
        draws_tail = ary[ordered[tail_ids]]
        # largest value smaller than tail values
        cutoff = ary[ordered[tail_ids[0] - 1]]

        max_tail = np.max(draws_tail)
        if abs(max_tail - np.min(draws_tail)) < np.finfo(float).tiny:
            raise PSISFitError("All tail values are the same")

        if log_weights:
            draws_tail = np.exp(draws_tail)
            cutoff = np.exp(cutoff)

        khat, sigma = self._gpdfit(draws_tail - cutoff)
        if not (np.isfinite(khat) and np.isfinite(sigma)) or sigma <= 0:
            raise PSISFitError(f"Generalized Pareto fit failed (k={khat}, sigma={sigma})")

        if smooth_draws:
            probs = np.arange(0.5, n_draws_tail) / n_draws_tail
            smoothed = self._gpinv(probs, khat, sigma, cutoff)
            if log_weights:
                smoothed = np.log(smoothed)
            smoothed[smoothed > max_tail] = max_tail
            ary[ordered[tail_ids]] = smoothed

        return ary, khat

    @staticmethod
    def _gpdfit(ary):
        """Estimate the parameters for the Generalized Pareto Distribution (GPD).

        Empirical Bayes estimate for the parameters (kappa, sigma) of the generalized Pareto
        distribution given the data. A weakly informative Gaussian prior centered at 0.5
        stabilizes the estimate of kappa for small tails.

        Parameters
        ----------
        ary: array
            sorted 1D data array of exceedances over the tail cutoff

        Returns
        -------
        kappa: float
            estimated shape parameter
        sigma: float
            estimated scale parameter
        """
        prior_bs = 3
        prior_k = 10
        n = len(ary)
        m_est = 30 + int(n**0.5)

        b_ary = 1 - np.sqrt(m_est / (np.arange(1, m_est + 1, dtype=float) - 0.5))
        b_ary /= prior_bs * ary[int(n / 4 + 0.5) - 1]
        b_ary += 1 / ary[-1]

        k_ary = np.log1p(-b_ary[:, None] * ary).mean(axis=1)
        len_scale = n * (np.log(-(b_ary / k_ary)) - k_ary - 1)
        weights = 1 / np.exp(len_scale - len_scale[:, None]).sum(axis=1)

        # drop negligible weights
        real_idxs = weights >= 10 * np.finfo(float).eps
        if not np.all(real_idxs):
            weights = weights[real_idxs]
            b_ary = b_ary[real_idxs]
        weights /= weights.sum()

        b_post = np.sum(b_ary * weights)
        kappa = np.log1p(-b_post * ary).mean()
        sigma = -kappa / b_post
        kappa = (n * kappa + prior_k * 0.5) / (n + prior_k)

        return kappa, sigma

    @staticmethod
    def _gpinv(probs, kappa, sigma, mu):
        """Quantile function for generalized pareto distribution."""
        if sigma <= 0:
            return np.full_like(probs, np.nan)

        if kappa == 0:
            return mu - sigma * np.log1p(-probs)
        return mu + sigma * np.expm1(-kappa * np.log1p(-probs)) / kappa

    def _psislw(self, ary, r_eff=1, tail_len=None):
        """Pareto smoothed, self-normalized log weights of a 1D array of log ratios.

        Returns
        -------
        log_weights : array
            Smoothed log weights, ``logsumexp(log_weights) == 0``.
        khat : float
            Shape of the generalized Pareto distribution fitted to the right tail.
        """
        ary = np.asarray(ary, dtype=float)
        n_draws = len(ary)
        n_draws_tail = self._get_ps_tails(n_draws, r_eff, tail_len=tail_len)
        log_weights, khat = self._ps_tail(
            ary, n_draws, n_draws_tail, smooth_draws=True, log_weights=True
        )
        log_weights -= logsumexp(log_weights)
        return log_weights, khat

    @staticmethod
    def _psis_n_eff(log_weights, r_eff=1):
        """Effective sample size of normalized log weights, ``r_eff / sum(w**2)``."""
        log_weights = np.asarray(log_weights, dtype=float)
        log_weights = log_weights - logsumexp(log_weights)
        return r_eff / np.exp(logsumexp(2 * log_weights))
