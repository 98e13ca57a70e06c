# black_pricer/options.py
# Option contracts: terms of the trade plus the payoff evaluated on a simulated path.
#
# A contract never looks at a model. The Monte Carlo engine hands it the
# trajectory it needs:
#   - Vanilla / Digital / Barrier : [S_0, S_T]   (terminal value is read)
#   - Asian                       : [F_1, ..., F_n] fixings
#   - Basket                      : [S_T^1, ..., S_T^d]
#   - Spread                      : [S_T^1, S_T^2]

import math
from abc import ABC, abstractmethod

import numpy as np

from .errors import ConfigurationError

__all__ = [
    "BARRIER_TYPES",
    "parse_phi",
    "normalize_barrier_type",
    "require_family",
    "Option",
    "VanillaOption",
    "DigitalOption",
    "BarrierOption",
    "AsianOption",
    "BasketOption",
    "SpreadOption",
]

# Barrier type -> the only direction flag it is defined for.
BARRIER_TYPES = {
    "UPOUT": 1,
    "UPIN": 1,
    "DOWNOUT": -1,
    "DOWNIN": -1,
}


def _ensure_float(x, name):
    try:
        x = float(x)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {x!r}")
    if not math.isfinite(x):
        raise ConfigurationError(f"{name} must be finite")
    return x


def parse_phi(flavor):
    """Map a direction flag to +1 (call) / -1 (put).

    Accepts 1, -1, "call" or "put" (case-insensitive).
    """
    if isinstance(flavor, str):
        key = flavor.strip().lower()
        if key == "call":
            return 1
        if key == "put":
            return -1
    elif flavor in (1, -1):
        return int(flavor)
    raise ConfigurationError(
        "Flavor input must be equal to 1 (or 'call') for Calls and -1 (or 'put') for Puts."
    )


def normalize_barrier_type(barrier_type, phi):
    """Strip whitespace, upper-case and check the type against the direction flag.

    "Up Out" and "Up In" are valid for calls, "Down Out" and "Down In" for puts.
    Returns the canonical name, e.g. "UPOUT".
    """
    if not isinstance(barrier_type, str):
        raise ConfigurationError(f"barrier_type must be a string, got {barrier_type!r}")
    key = "".join(barrier_type.split()).upper()
    if BARRIER_TYPES.get(key) != phi:
        raise ConfigurationError(
            f"Unknown barrier option type {barrier_type!r} for phi={phi}. The possible types are: "
            "'Up Out' and 'Up In' for Calls, and 'Down Out' and 'Down In' for Puts."
        )
    return key


def require_family(opt, family):
    """Raise unless `opt` belongs to the contract family a pricer is built for."""
    found = getattr(opt, "family", type(opt).__name__)
    if found != family:
        raise ConfigurationError(f"{family} pricer cannot price a {found} option")


class Option(ABC):
    """Common terms of every contract: strike, maturity and direction flag."""

    family = "Option"
    path_dependent = False

    def __init__(self, strike, maturity, flavor, positive_strike=True):
        self._strike = _ensure_float(strike, "strike")
        self._maturity = _ensure_float(maturity, "maturity")
        self._phi = parse_phi(flavor)
        if self._maturity <= 0:
            raise ConfigurationError("maturity must be > 0")
        if positive_strike and self._strike <= 0:
            raise ConfigurationError("strike must be > 0")

    @property
    def strike(self):
        return self._strike

    @property
    def maturity(self):
        return self._maturity

    @property
    def phi(self):
        return self._phi

    @property
    def freq(self):
        return 1

    @property
    def size(self):
        return 1

    def _intrinsic(self, value):
        return max(self._phi * (value - self._strike), 0.0)

    @abstractmethod
    def payoff(self, path):
        """Payoff at maturity for the trajectory handed over by the engine."""

    def __repr__(self):
        kind = "call" if self._phi == 1 else "put"
        return f"{type(self).__name__}(strike={self._strike}, maturity={self._maturity}, {kind})"


class VanillaOption(Option):
    family = "Vanilla"

    def payoff(self, path):
        return self._intrinsic(float(path[-1]))


class DigitalOption(Option):
    """Cash-or-nothing: pays 1 if in the money at maturity."""

    family = "Digital"

    def payoff(self, path):
        return 1.0 if self._phi * (float(path[-1]) - self._strike) > 0 else 0.0


class BarrierOption(Option):
    """European (terminal-monitored) barrier: up-and-out/in calls, down-and-out/in puts."""

    family = "Barrier"

    def __init__(self, strike, barrier, maturity, flavor, barrier_type):
        super().__init__(strike, maturity, flavor)
        self._barrier = _ensure_float(barrier, "barrier")
        if self._phi == 1 and self._barrier < self._strike:
            raise ConfigurationError(
                "The barrier level must be greater than the strike to benefit from the Barrier Call Option."
            )
        if self._phi == -1 and self._barrier > self._strike:
            raise ConfigurationError(
                "The barrier level must be smaller than the strike to benefit from the Barrier Put Option."
            )
        self._barrier_type = normalize_barrier_type(barrier_type, self._phi)

    @property
    def barrier(self):
        return self._barrier

    @property
    def barrier_type(self):
        return self._barrier_type

    @property
    def is_knock_out(self):
        return self._barrier_type.endswith("OUT")

    def payoff(self, path):
        s_t = float(path[-1])
        K, B = self._strike, self._barrier
        if self._barrier_type == "UPOUT":
            return s_t - K if K < s_t < B else 0.0
        if self._barrier_type == "UPIN":
            return s_t - K if s_t > B else 0.0
        if self._barrier_type == "DOWNOUT":
            return K - s_t if B < s_t < K else 0.0
        return K - s_t if s_t < B else 0.0

    def __repr__(self):
        return (f"BarrierOption(strike={self._strike}, barrier={self._barrier}, "
                f"maturity={self._maturity}, phi={self._phi}, type={self._barrier_type})")


class AsianOption(Option):
    """Arithmetic average over `freq` equally spaced fixings T/freq, ..., T."""

    family = "Asian"
    path_dependent = True

    def __init__(self, strike, maturity, flavor, freq):
        super().__init__(strike, maturity, flavor)
        if int(freq) != freq or freq < 1:
            raise ConfigurationError("freq must be a positive integer")
        self._freq = int(freq)

    @property
    def freq(self):
        return self._freq

    def fixing_dates(self):
        return np.array([self._maturity * f / self._freq for f in range(1, self._freq + 1)])

    def payoff(self, path):
        return self._intrinsic(float(np.mean(np.asarray(path, dtype=float))))


class BasketOption(Option):
    """Call/put on the equally weighted average of `size` terminal spots."""

    family = "Basket"

    def __init__(self, strike, maturity, flavor, size):
        super().__init__(strike, maturity, flavor)
        if int(size) != size or size < 1:
            raise ConfigurationError("size must be a positive integer")
        self._size = int(size)

    @property
    def size(self):
        return self._size

    def payoff(self, path):
        return self._intrinsic(float(np.mean(np.asarray(path, dtype=float))))


class SpreadOption(Option):
    """Payoff max(phi * (S_T^1 - S_T^2 - K), 0) on two assets."""

    family = "Spread"

    def __init__(self, strike, maturity, flavor):
        super().__init__(strike, maturity, flavor, positive_strike=False)

    @property
    def size(self):
        return 2

    def payoff(self, path):
        return self._intrinsic(float(path[0]) - float(path[1]))
