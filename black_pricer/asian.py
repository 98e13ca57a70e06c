# black_pricer/asian.py
# Arithmetic Asian options by moment matching.
#
# The average A = (1/n) sum_i S(t_i), t_i = i T / n, is replaced by a lognormal
# variable with the same first two moments:
#   m1 = E[A]   = sum_i beta_i,                   beta_i = S e^{r t_i} / n
#   m2 = E[A^2] = sum_i sum_j beta_i beta_j e^{sigma^2 min(t_i, t_j)}
# and priced with a Black formula on the forward m1 with total variance
# v = log(m2 / m1^2).

import math
import logging

import numpy as np
from scipy.stats import norm

from .black_scholes import BlackScholesModel
from .errors import NumericalError
from .options import parse_phi, require_family

logger = logging.getLogger(__name__)

# Total variances below this are treated as a deterministic average.
_DEGENERATE_VAR = 1e-12


def fixing_times(T, freq):
    """Equally spaced fixing dates T/freq, 2T/freq, ..., T."""
    n = int(freq)
    return T * np.arange(1, n + 1, dtype=float) / n


def asian_moments(S, T, r, sigma, freq):
    """
    First and second moments of the arithmetic average of `freq` fixings.

    Returns
    -------
    (m1, m2) : tuple of float
    """
    t = fixing_times(T, freq)
    beta = S * np.exp(r * t) / len(t)
    # Cov of log-spots between fixings i and j only depends on the earlier date.
    cross = np.exp(sigma * sigma * np.minimum.outer(t, t))
    m1 = float(beta.sum())
    m2 = float(beta @ cross @ beta)
    return m1, m2


def moment_matched_price(m1, m2, K, T, r, phi=1):
    """
    Black formula on a lognormal proxy with mean m1 and second moment m2.

    Raises NumericalError when the moments cannot come from a lognormal
    (m1 <= 0 or m2 < m1^2), where log(m2 / m1^2) is undefined.
    """
    phi = parse_phi(phi)
    df = math.exp(-r * T)
    if not (math.isfinite(m1) and math.isfinite(m2)) or m1 <= 0 or m2 <= 0:
        raise NumericalError(f"moment matching needs a finite positive first moment, got m1={m1}, m2={m2}")

    v = math.log(m2 / (m1 * m1))
    if v < -_DEGENERATE_VAR:
        raise NumericalError(f"degenerate moment ratio: log(m2 / m1^2) = {v:.3e} < 0")
    if v <= _DEGENERATE_VAR:
        logger.debug("moment matching: zero variance, pricing the deterministic average")
        return df * max(phi * (m1 - K), 0.0)

    sqv = math.sqrt(v)
    d1 = (math.log(m1 / K) + 0.5 * v) / sqv
    d2 = d1 - sqv
    return float(df * (phi * m1 * norm.cdf(phi * d1) - phi * K * norm.cdf(phi * d2)))


def asian_price(S, K, T, r, sigma, freq, phi=1):
    """Arithmetic Asian call/put price via two-moment matching."""
    m1, m2 = asian_moments(S, T, r, sigma, freq)
    return moment_matched_price(m1, m2, K, T, r, phi=phi)


class BlackAsian(BlackScholesModel):

    def price(self, opt):
        require_family(opt, "Asian")
        return asian_price(self._spot, opt.strike, opt.maturity, self._rate, self._vol, opt.freq, phi=opt.phi)


__all__ = [
    "fixing_times",
    "asian_moments",
    "moment_matched_price",
    "asian_price",
    "BlackAsian",
]
