"""
Multi-asset Black–Scholes: correlated lognormal spots sharing one rate.

The user correlation matrix is first regularized (off-diagonals clamped to
[-1/(d-1) + eps, 1 - eps], upper triangle mirrored onto the lower one) and
then factorized as L L^T by a Cholesky loop. `advance` turns a vector of
independent normals z into correlated shocks L z.

Closed forms
- Basket: two-moment matching of the equally weighted basket at maturity.
- Spread: Margrabe exchange formula against S2 + K, with the second
  volatility weighted by S2 / (S2 + K df).
"""

import math
import logging
from abc import ABC, abstractmethod

import numpy as np
from scipy.stats import norm

from .asian import moment_matched_price
from .errors import ConfigurationError, NumericalError
from .options import _ensure_float, parse_phi, require_family

logger = logging.getLogger(__name__)

CORR_EPS = 1e-4


# --------------------------------------------------------------------------------------
# Correlation handling
# --------------------------------------------------------------------------------------

def _as_square(matrix, name="correlation"):
    try:
        m = np.array(matrix, dtype=float)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} matrix must be numeric")
    if m.ndim != 2 or m.shape[0] != m.shape[1] or m.shape[0] == 0:
        raise ConfigurationError(f"{name} matrix must be square and non-empty, got shape {m.shape}")
    if not np.all(np.isfinite(m)):
        raise ConfigurationError(f"{name} matrix must be finite")
    return m


def regularize_correlation(corr, eps=CORR_EPS):
    """
    Clamp correlations into [-1/(d-1) + eps, 1 - eps] and symmetrize.

    The upper triangle is authoritative; entry (i, j), i < j, is clamped and
    copied to (j, i). The diagonal is set to 1.
    """
    reg = _as_square(corr)
    d = reg.shape[0]
    np.fill_diagonal(reg, 1.0)
    if d == 1:
        return reg

    cap = 1.0 - eps
    floor = -1.0 / (d - 1) + eps
    clamped = 0
    for i in range(d):
        for j in range(i + 1, d):
            value = min(max(reg[i, j], floor), cap)
            if value != reg[i, j]:
                clamped += 1
            reg[i, j] = value
            reg[j, i] = value
    if clamped:
        logger.debug("regularize_correlation: clamped %d entr%s into [%.4f, %.4f]",
                     clamped, "y" if clamped == 1 else "ies", floor, cap)
    return reg


def cholesky_lower(matrix):
    """
    Lower-triangular L with L @ L.T == matrix.

    L[j, j] = sqrt(a[j, j] - sum_{k<j} L[j, k]^2)
    L[i, j] = (a[i, j] - sum_{k<j} L[i, k] L[j, k]) / L[j, j],   i > j

    The loop is written out instead of calling np.linalg.cholesky so that a
    failure names the column and the value of the offending pivot: LinAlgError
    only says the matrix is not positive definite. Raises NumericalError when
    a pivot is not strictly positive.
    """
    a = _as_square(matrix)
    d = a.shape[0]
    L = np.zeros((d, d))
    for j in range(d):
        pivot = a[j, j] - np.dot(L[j, :j], L[j, :j])
        if not pivot > 0:
            raise NumericalError(
                f"Cholesky failed at column {j}: pivot {pivot:.3e} <= 0, matrix is not positive definite"
            )
        L[j, j] = math.sqrt(pivot)
        for i in range(j + 1, d):
            L[i, j] = (a[i, j] - np.dot(L[i, :j], L[j, :j])) / L[j, j]
    return L


# --------------------------------------------------------------------------------------
# Model
# --------------------------------------------------------------------------------------

class MultiAssetBSModel(ABC):
    """
    Correlated Black–Scholes model for `size` underlyings.

    `cholesky_corr` is derived: it is recomputed every time `correlation`
    is assigned and cannot be set directly.
    """

    def __init__(self, rate, spots, vols, corr_matrix, size=None):
        spots = np.array(spots, dtype=float).reshape(-1)
        vols = np.array(vols, dtype=float).reshape(-1)
        d = len(spots) if size is None else int(size)
        if len(spots) != d or len(vols) != d:
            raise ConfigurationError(
                f"size={d} does not match {len(spots)} spots and {len(vols)} vols"
            )
        self._size = d
        self.rate = rate
        self.spots = spots
        self.vols = vols
        self.correlation = corr_matrix

    @property
    def size(self):
        return self._size

    @property
    def rate(self):
        return self._rate

    @rate.setter
    def rate(self, value):
        self._rate = _ensure_float(value, "rate")

    @property
    def spots(self):
        return self._spots.copy()

    @spots.setter
    def spots(self, values):
        values = np.array(values, dtype=float).reshape(-1)
        if len(values) != self._size or not np.all(np.isfinite(values)):
            raise ConfigurationError(f"spots must be {self._size} finite numbers")
        self._spots = values

    @property
    def vols(self):
        return self._vols.copy()

    @vols.setter
    def vols(self, values):
        values = np.array(values, dtype=float).reshape(-1)
        if len(values) != self._size or not np.all(np.isfinite(values)):
            raise ConfigurationError(f"vols must be {self._size} finite numbers")
        if np.any(values < 0):
            raise ConfigurationError(f"vols must be >= 0, got {values.tolist()}")
        self._vols = values

    @property
    def correlation(self):
        """User-supplied correlation matrix."""
        return self._corr.copy()

    @correlation.setter
    def correlation(self, corr_matrix):
        corr = _as_square(corr_matrix)
        if corr.shape[0] != self._size:
            raise ConfigurationError(
                f"correlation matrix is {corr.shape[0]}x{corr.shape[0]}, expected {self._size}x{self._size}"
            )
        reg = regularize_correlation(corr)
        chol = cholesky_lower(reg)
        self._corr = corr
        self._reg_corr = reg
        self._chol = chol

    @property
    def regularized_corr(self):
        return self._reg_corr.copy()

    @property
    def cholesky_corr(self):
        return self._chol.copy()

    def discount(self, T):
        return math.exp(-self._rate * T)

    def correlate(self, z):
        """Correlated shocks L z for z of shape (d,) or (n, d)."""
        z = np.asarray(z, dtype=float)
        if z.shape[-1] != self._size:
            raise ConfigurationError(f"expected {self._size} normals per draw, got {z.shape[-1]}")
        return z @ self._chol.T

    def advance(self, prev_spots, dt, z):
        """Spots at t + dt; asset i is driven by sum_k L[i, k] z[k]."""
        shocks = self.correlate(z)
        sig = self._vols
        return np.asarray(prev_spots, dtype=float) * np.exp(
            (self._rate - 0.5 * sig * sig) * dt + sig * np.sqrt(dt) * shocks
        )

    @abstractmethod
    def price(self, opt):
        """Closed-form price of `opt` under this model."""

    def __repr__(self):
        return (f"{type(self).__name__}(rate={self._rate}, spots={self._spots.tolist()}, "
                f"vols={self._vols.tolist()})")


# --------------------------------------------------------------------------------------
# Basket
# --------------------------------------------------------------------------------------

def basket_moments(spots, vols, corr, T, r):
    """
    First and second moments of the equally weighted basket at T.

    m1 = sum_i beta_i,  m2 = sum_i sum_j beta_i beta_j exp(sigma_i sigma_j rho_ij T),
    with beta_i = S_i e^{rT} / d.
    """
    spots = np.asarray(spots, dtype=float)
    vols = np.asarray(vols, dtype=float)
    corr = np.asarray(corr, dtype=float)
    beta = spots * math.exp(r * T) / len(spots)
    cross = np.exp(np.outer(vols, vols) * corr * T)
    return float(beta.sum()), float(beta @ cross @ beta)


def basket_price(spots, vols, corr, K, T, r, phi=1):
    """Basket call/put by moment matching (corr is used as given)."""
    m1, m2 = basket_moments(spots, vols, corr, T, r)
    return moment_matched_price(m1, m2, K, T, r, phi=phi)


class BlackBasket(MultiAssetBSModel):

    def price(self, opt):
        require_family(opt, "Basket")
        if opt.size != self._size:
            raise ConfigurationError(f"basket option has size {opt.size}, model has {self._size} assets")
        return basket_price(self._spots, self._vols, self._reg_corr, opt.strike, opt.maturity,
                            self._rate, phi=opt.phi)


# --------------------------------------------------------------------------------------
# Spread
# --------------------------------------------------------------------------------------

def spread_price(S1, S2, K, T, r, sigma1, sigma2, rho, phi=1):
    """
    Spread option on S1 - S2 - K via Margrabe with S2 + K as the reference asset.

    The exchange is priced against S2 + K. The second asset's volatility is
    scaled by S2 / (S2 + K df), the weight of S2 in the present value of the
    reference, before being combined with sigma1 and rho into a single
    exchange volatility. K = 0 is the plain Margrabe formula.
    """
    phi = parse_phi(phi)
    df = math.exp(-r * T)
    S2_ref = S2 + K
    S2_pv = S2 + K * df
    if S2_ref <= 0 or S2_pv <= 0 or S1 <= 0:
        raise NumericalError(f"spread reference must be positive, got S1={S1}, S2+K={S2_ref}, S2+K*df={S2_pv}")
    vol2_adj = sigma2 * S2 / S2_pv
    var = sigma1 * sigma1 + vol2_adj * vol2_adj - 2.0 * rho * sigma1 * vol2_adj
    if var <= 0:
        return float(max(phi * (S1 - S2_ref), 0.0))
    vol = math.sqrt(var)
    d1 = (math.log(S1 / S2_ref) + 0.5 * var * T) / (vol * math.sqrt(T))
    d2 = d1 - vol * math.sqrt(T)
    return float(phi * S1 * norm.cdf(phi * d1) - phi * S2_ref * norm.cdf(phi * d2))


class BlackSpread(MultiAssetBSModel):

    def __init__(self, rate, spots, vols, corr_matrix):
        super().__init__(rate, spots, vols, corr_matrix, size=2)

    def price(self, opt):
        require_family(opt, "Spread")
        return spread_price(
            self._spots[0], self._spots[1], opt.strike, opt.maturity, self._rate,
            self._vols[0], self._vols[1], self._reg_corr[0, 1], phi=opt.phi,
        )


__all__ = [
    "CORR_EPS",
    "regularize_correlation",
    "cholesky_lower",
    "MultiAssetBSModel",
    "basket_moments",
    "basket_price",
    "BlackBasket",
    "spread_price",
    "BlackSpread",
]
