# black_pricer/errors.py
# Typed failures raised by contracts, models and the Monte Carlo engine.

__all__ = [
    "PricingError",
    "ConfigurationError",
    "NumericalError",
]


class PricingError(ValueError):
    """Base class for every pricing failure raised by the library."""


class ConfigurationError(PricingError):
    """Invalid contract or model parameters (flag, barrier, dimensions...)."""


class NumericalError(PricingError):
    """A computation left its domain: non-positive Cholesky pivot, bad moment ratio."""
