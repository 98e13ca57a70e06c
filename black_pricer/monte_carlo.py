# black_pricer/monte_carlo.py
"""
Monte Carlo pricing engine for the single- and multi-asset Black–Scholes models.

Each trial asks the model for a trajectory, hands it to the option's payoff
and the discounted payoffs are averaged. No variance reduction is applied, so
the closed forms of the models are an independent check of the estimate.

Trajectories
- Asian (path-dependent): the path is walked on a time grid merging the
  simulation steps T s / n_steps and the fixing dates T f / freq; only the
  fixings are returned.
- Other single-asset options: [S_0, S_T], one draw over the full maturity.
- Multi-asset options: the terminal spot vector, one independent draw per
  asset correlated through the model's Cholesky factor.
"""

from __future__ import annotations

import math
import logging
from dataclasses import dataclass, fields, replace
from typing import Optional

import numpy as np

from .errors import ConfigurationError
from .multi_asset import MultiAssetBSModel

logger = logging.getLogger(__name__)

# Grid dates closer than this are the same date.
DATE_TOL = 1e-12
# Tolerance on freq * t / T being an integer.
FIXING_TOL = 1e-9


@dataclass
class MCConfig:
    n_simulations: int = 20_000
    n_steps: int = 1
    seed: Optional[int] = None


# --------------------------------------------------------------------------------------
# Time grid
# --------------------------------------------------------------------------------------

def grid_dates(T, n_steps, freq):
    """
    Sorted, duplicate-free simulation dates, starting at 0 and ending at T.

    Union of the step dates T s / n_steps (s = 1..n_steps) and the fixing
    dates T f / freq (f = 1..freq-1).
    """
    steps = [T * s / n_steps for s in range(1, int(n_steps) + 1)]
    fixings = [T * f / freq for f in range(1, int(freq))]
    dates = np.sort(np.array([0.0] + steps + fixings))
    keep = np.concatenate([[True], np.diff(dates) > DATE_TOL])
    return dates[keep]


def fixing_mask(dates, T, freq):
    """True where a date is a fixing date, i.e. freq * t / T is a positive integer."""
    dates = np.asarray(dates, dtype=float)
    x = freq * dates / T
    return (dates > 0) & np.isclose(x, np.round(x), rtol=0.0, atol=FIXING_TOL)


def build_time_grid(opt, n_steps):
    """
    Time increments between consecutive simulation dates for a path-dependent option.

    Returns an empty array for options that are simulated in a single step.
    """
    if not opt.path_dependent:
        return np.empty(0)
    return np.diff(grid_dates(opt.maturity, n_steps, opt.freq))


# --------------------------------------------------------------------------------------
# Engine
# --------------------------------------------------------------------------------------

class MonteCarlo:
    """
    Plain Monte Carlo pricer.

    Parameters
    ----------
    config : MCConfig, optional
        Number of simulations, time steps (used by path-dependent options only)
        and seed.
    rng : numpy.random.Generator, optional
        Random source. Defaults to `np.random.default_rng(config.seed)`.
    **overrides
        Any MCConfig field, e.g. MonteCarlo(n_simulations=100_000, seed=1).
    """

    def __init__(self, config=None, rng=None, **overrides):
        cfg = config if config is not None else MCConfig()
        unknown = set(overrides) - {f.name for f in fields(MCConfig)}
        if unknown:
            raise ConfigurationError(f"unknown Monte Carlo setting(s): {sorted(unknown)}")
        cfg = replace(cfg, **overrides)
        self.n_simulations = cfg.n_simulations
        self.n_steps = cfg.n_steps
        self.seed = cfg.seed
        self.rng = rng if rng is not None else np.random.default_rng(cfg.seed)
        self._time_steps = np.empty(0)
        self._fixings = np.empty(0, dtype=bool)
        self._grid_key = None

    @property
    def n_simulations(self):
        return self._n_simulations

    @n_simulations.setter
    def n_simulations(self, value):
        if int(value) != value or value < 1:
            raise ConfigurationError("n_simulations must be a positive integer")
        self._n_simulations = int(value)

    @property
    def n_steps(self):
        return self._n_steps

    @n_steps.setter
    def n_steps(self, value):
        if int(value) != value or value < 1:
            raise ConfigurationError("n_steps must be a positive integer")
        self._n_steps = int(value)

    @property
    def time_steps(self):
        """Increments of the grid built by the last `set_time_steps` call."""
        return self._time_steps.copy()

    def reset(self, seed=None):
        """Restart the random source; `seed=None` reuses the configured seed."""
        self.rng = np.random.default_rng(self.seed if seed is None else seed)

    def set_time_steps(self, opt):
        """Build the time grid (and its fixing flags) for `opt`."""
        self._time_steps = build_time_grid(opt, self._n_steps)
        if opt.path_dependent:
            # Flags come from the grid dates, not from a running sum of increments.
            dates = grid_dates(opt.maturity, self._n_steps, opt.freq)
            self._fixings = fixing_mask(dates, opt.maturity, opt.freq)[1:]
        else:
            self._fixings = np.empty(0, dtype=bool)
        self._grid_key = self._key_for(opt)
        return self._time_steps

    def _key_for(self, opt):
        return (opt.maturity, opt.freq, opt.path_dependent, self._n_steps)

    def _check(self, model, opt):
        multi = isinstance(model, MultiAssetBSModel)
        if multi and opt.size != model.size:
            raise ConfigurationError(
                f"{opt.family} option on {opt.size} asset(s) cannot be simulated with a {model.size}-asset model"
            )
        if not multi and opt.size != 1:
            raise ConfigurationError(f"{opt.family} option needs a multi-asset model")
        if multi and opt.path_dependent:
            raise ConfigurationError(
                f"{opt.family} option is path-dependent and cannot be simulated with a multi-asset model"
            )
        return multi

    def generate_path(self, model, opt):
        """
        One simulated trajectory, reduced to what `opt.payoff` reads.

        The time grid of a path-dependent option is (re)built here when the
        stored one was made for a different maturity, fixing count or n_steps.
        """
        if isinstance(model, MultiAssetBSModel):
            z = self.rng.standard_normal(model.size)
            return model.advance(model.spots, opt.maturity, z)

        if opt.path_dependent:
            if self._grid_key != self._key_for(opt):
                self.set_time_steps(opt)
            spot = model.spot
            fixings = []
            for dt, is_fixing in zip(self._time_steps, self._fixings):
                spot = model.advance(spot, dt, self.rng.standard_normal())
                if is_fixing:
                    fixings.append(spot)
            return np.array(fixings)

        spot0 = model.spot
        return np.array([spot0, model.advance(spot0, opt.maturity, self.rng.standard_normal())])

    def price(self, model, opt, return_stderr=False):
        """
        Discounted average payoff over `n_simulations` independent trials.

        Returns the price, or (price, standard error) if `return_stderr`.
        """
        self._check(model, opt)
        self.set_time_steps(opt)
        n = self._n_simulations
        logger.debug("MC %s: %d simulations, %d grid steps, rate=%.4f",
                     opt.family, n, len(self._time_steps), model.rate)

        payoffs = np.empty(n)
        for i in range(n):
            payoffs[i] = opt.payoff(self.generate_path(model, opt))

        df = math.exp(-model.rate * opt.maturity)
        price = float(df * payoffs.mean())
        if not return_stderr:
            return price
        stderr = float(df * payoffs.std(ddof=1) / math.sqrt(n)) if n > 1 else float("nan")
        return price, stderr


__all__ = [
    "MCConfig",
    "grid_dates",
    "fixing_mask",
    "build_time_grid",
    "MonteCarlo",
]


if __name__ == "__main__":
    from .asian import BlackAsian
    from .barriers import BlackBarrier
    from .black_scholes import BlackDigital, BlackVanilla
    from .multi_asset import BlackBasket, BlackSpread
    from .options import (
        AsianOption,
        BarrierOption,
        BasketOption,
        DigitalOption,
        SpreadOption,
        VanillaOption,
    )

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    rate, vol, spot = 0.05, 0.3, 100.0
    mc = MonteCarlo(n_simulations=100_000, seed=42)
    mc_path_dep = MonteCarlo(n_simulations=30_000, n_steps=10, seed=42)

    bs_vanilla = BlackVanilla(rate, spot, vol)
    bs_digital = BlackDigital(rate, spot, vol)
    bs_barrier = BlackBarrier(rate, spot, vol)
    bs_asian = BlackAsian(rate, spot, vol)
    bs_basket = BlackBasket(rate, [100.0, 105.0, 95.0], [0.35, 0.3, 0.4],
                            [[1, -0.6, 0.3], [-0.6, 1, -0.2], [0.3, -0.2, 1]])
    bs_spread = BlackSpread(rate, [105.0, 95.0], [0.4, 0.3], [[1, 0.3], [0.3, 1]])

    cases = [
        ("Vanilla Call", mc, bs_vanilla, VanillaOption(105, 1, "call")),
        ("Vanilla Put", mc, bs_vanilla, VanillaOption(95, 1, "put")),
        ("Digital Call", mc, bs_digital, DigitalOption(105, 1, "call")),
        ("Digital Put", mc, bs_digital, DigitalOption(95, 1, "put")),
        ("Up & Out Call", mc, bs_barrier, BarrierOption(105, 145, 1, "call", "Up Out")),
        ("Up & In Call", mc, bs_barrier, BarrierOption(105, 145, 1, "call", "Up In")),
        ("Down & Out Put", mc, bs_barrier, BarrierOption(105, 65, 1, "put", "Down Out")),
        ("Down & In Put", mc, bs_barrier, BarrierOption(105, 65, 1, "put", "Down In")),
        ("Asian Call", mc_path_dep, bs_asian, AsianOption(105, 1, "call", 4)),
        ("Asian Put", mc_path_dep, bs_asian, AsianOption(95, 1, "put", 4)),
        ("Basket Call", mc, bs_basket, BasketOption(100, 1, "call", 3)),
        ("Basket Put", mc, bs_basket, BasketOption(100, 1, "put", 3)),
        ("Spread Call", mc, bs_spread, SpreadOption(15, 1, "call")),
        ("Spread Put", mc, bs_spread, SpreadOption(5, 1, "put")),
    ]

    for title, engine, model, opt in cases:
        mc_px, se = engine.price(model, opt, return_stderr=True)
        print(f"{title:<16} MC: {mc_px:9.4f} (+/- {se:.4f})   Analytical: {model.price(opt):9.4f}")
