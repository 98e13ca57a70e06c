import math
from abc import ABC, abstractmethod

import numpy as np
from scipy.stats import norm

from .errors import ConfigurationError
from .options import _ensure_float, parse_phi, require_family

# --------------------------------------------------------------------------------------
# Closed forms (lognormal spot, no dividends)
# --------------------------------------------------------------------------------------

def bs_d1_d2(S, K, T, r, sigma):
    """
    d1 = (log(S/K) + (r + sigma^2/2) T) / (sigma sqrt(T)), d2 = d1 - sigma sqrt(T).

    No dividend yield: the log-forward drifts at r alone. Inputs broadcast
    against each other. S, K, T and sigma are floored at 1e-12 so a zero
    maturity or volatility gives +/- inf rather than a division error.
    Returns {"d1": ..., "d2": ...}.
    """
    S = np.asarray(S, dtype=float)
    K = np.asarray(K, dtype=float)
    T = np.asarray(T, dtype=float)
    r = np.asarray(r, dtype=float)
    sigma = np.asarray(sigma, dtype=float)

    eps = 1e-12
    S_ = np.maximum(S, eps)
    K_ = np.maximum(K, eps)
    T_ = np.maximum(T, eps)
    sig_ = np.maximum(sigma, eps)

    sqrtT = np.sqrt(T_)
    d1 = (np.log(S_ / K_) + (r + 0.5 * sig_ * sig_) * T_) / (sig_ * sqrtT)
    d2 = d1 - sig_ * sqrtT
    return {"d1": d1, "d2": d2}


def black_scholes_price(S, K, T, r, sigma, phi=1):
    """
    Black–Scholes price for European calls/puts.

    Parameters
    ----------
    S : float
        Spot price
    K : float
        Strike
    T : float
        Time to maturity (in years)
    r : float
        Risk-free rate (cont. comp.)
    sigma : float
        Volatility (annualized)
    phi : int or str
        +1 / "call" or -1 / "put"

    Returns
    -------
    float
        phi * S * N(phi d1) - phi * K * df * N(phi d2)
    """
    phi = parse_phi(phi)
    if T <= 0:
        return float(max(phi * (S - K), 0.0))

    d = bs_d1_d2(S, K, T, r, sigma)
    df = math.exp(-r * T)
    price = phi * S * norm.cdf(phi * d["d1"]) - phi * K * df * norm.cdf(phi * d["d2"])
    return float(price) if np.ndim(price) == 0 else price


def digital_price(S, K, T, r, sigma, phi=1):
    """Cash-or-nothing digital paying 1: df * N(phi d2)."""
    phi = parse_phi(phi)
    if T <= 0:
        return 1.0 if phi * (S - K) > 0 else 0.0

    d2 = bs_d1_d2(S, K, T, r, sigma)["d2"]
    price = math.exp(-r * T) * norm.cdf(phi * d2)
    return float(price) if np.ndim(price) == 0 else price


# --------------------------------------------------------------------------------------
# Single-asset model
# --------------------------------------------------------------------------------------

class BlackScholesModel(ABC):
    """
    Risk-neutral lognormal model for one underlying.

    Holds the rate, volatility and spot used both by the closed-form
    `price(option)` of each concrete family and by `advance`, the one-step
    transition called by the Monte Carlo engine.
    """

    def __init__(self, rate, spot, vol):
        self.rate = rate
        self.spot = spot
        self.vol = vol

    @property
    def rate(self):
        return self._rate

    @rate.setter
    def rate(self, value):
        self._rate = _ensure_float(value, "rate")

    @property
    def spot(self):
        return self._spot

    @spot.setter
    def spot(self, value):
        self._spot = _ensure_float(value, "spot")

    @property
    def vol(self):
        return self._vol

    @vol.setter
    def vol(self, value):
        value = _ensure_float(value, "vol")
        if value < 0:
            raise ConfigurationError(f"vol must be >= 0, got {value}")
        self._vol = value

    def discount(self, T):
        return math.exp(-self._rate * T)

    def advance(self, prev_spot, dt, z):
        """Spot at t + dt given the spot at t and a standard normal draw z."""
        sigma = self._vol
        return prev_spot * np.exp((self._rate - 0.5 * sigma * sigma) * dt + sigma * np.sqrt(dt) * z)

    @abstractmethod
    def price(self, opt):
        """Closed-form price of `opt` under this model."""

    def __repr__(self):
        return f"{type(self).__name__}(rate={self._rate}, spot={self._spot}, vol={self._vol})"


class BlackVanilla(BlackScholesModel):

    def price(self, opt):
        require_family(opt, "Vanilla")
        return black_scholes_price(self._spot, opt.strike, opt.maturity, self._rate, self._vol, phi=opt.phi)


class BlackDigital(BlackScholesModel):

    def price(self, opt):
        require_family(opt, "Digital")
        return digital_price(self._spot, opt.strike, opt.maturity, self._rate, self._vol, phi=opt.phi)


__all__ = [
    "bs_d1_d2",
    "black_scholes_price",
    "digital_price",
    "BlackScholesModel",
    "BlackVanilla",
    "BlackDigital",
]
