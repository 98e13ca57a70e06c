# tests/test_monte_carlo.py
import math
import numpy as np
import pytest

from black_pricer.asian import BlackAsian
from black_pricer.barriers import BlackBarrier
from black_pricer.black_scholes import BlackDigital, BlackVanilla
from black_pricer.errors import ConfigurationError
from black_pricer.monte_carlo import (
    MCConfig,
    MonteCarlo,
    build_time_grid,
    fixing_mask,
    grid_dates,
)
from black_pricer.multi_asset import BlackBasket, BlackSpread
from black_pricer.options import (
    AsianOption,
    BarrierOption,
    BasketOption,
    DigitalOption,
    SpreadOption,
    VanillaOption,
)

RATE, VOL, SPOT = 0.05, 0.3, 100.0


def _close_to_analytical(engine, model, opt, slack=0.0):
    mc_price, se = engine.price(model, opt, return_stderr=True)
    bs_price = model.price(opt)
    assert abs(mc_price - bs_price) < 4.0 * se + slack, (mc_price, bs_price, se)
    return mc_price, bs_price


# -----------------------------
# 1) Time grid
# -----------------------------

def test_time_grid_merges_steps_and_fixings():
    dates = grid_dates(1.0, 10, 4)
    assert dates[0] == 0.0 and dates[-1] == 1.0
    assert np.all(np.diff(dates) > 0)                      # sorted, duplicate-free
    expected = sorted({round(s / 10, 12) for s in range(11)} | {0.25, 0.5, 0.75})
    assert np.allclose(dates, expected)
    assert len(dates) == 13                                # 0.5 appears once

    steps = build_time_grid(AsianOption(100.0, 1.0, 1, 4), 10)
    assert len(steps) == 12
    assert np.all(steps > 0)
    assert np.isclose(steps.sum(), 1.0, rtol=0.0, atol=1e-12)


def test_fixing_mask_scales_with_maturity():
    dates = grid_dates(2.0, 8, 4)
    mask = fixing_mask(dates, 2.0, 4)
    assert np.allclose(dates[mask], [0.5, 1.0, 1.5, 2.0])


def test_no_grid_for_non_path_dependent():
    assert build_time_grid(VanillaOption(100.0, 1.0, 1), 50).size == 0
    mc = MonteCarlo(n_steps=50)
    mc.set_time_steps(VanillaOption(100.0, 1.0, 1))
    assert mc.time_steps.size == 0


# -----------------------------
# 2) Paths
# -----------------------------

def test_path_shapes():
    mc = MonteCarlo(n_simulations=10, n_steps=10, seed=0)

    vanilla = VanillaOption(100.0, 1.0, 1)
    path = mc.generate_path(BlackVanilla(RATE, SPOT, VOL), vanilla)
    assert path.shape == (2,) and path[0] == SPOT

    asian = AsianOption(100.0, 1.0, 1, 4)
    mc.set_time_steps(asian)
    fixings = mc.generate_path(BlackAsian(RATE, SPOT, VOL), asian)
    assert fixings.shape == (4,)
    assert np.all(fixings > 0)

    basket_model = BlackBasket(RATE, [100.0, 105.0, 95.0], [0.35, 0.3, 0.4], np.eye(3))
    terminal = mc.generate_path(basket_model, BasketOption(100.0, 1.0, 1, 3))
    assert terminal.shape == (3,)


def test_asian_path_builds_its_own_grid():
    mc = MonteCarlo(n_steps=10, seed=0)
    model = BlackAsian(RATE, SPOT, 0.0)
    quarterly = AsianOption(100.0, 1.0, 1, 4)
    fixings = mc.generate_path(model, quarterly)
    assert np.allclose(fixings, SPOT * np.exp(RATE * quarterly.fixing_dates()))

    # a grid built for one option is not reused for another
    monthly = AsianOption(100.0, 2.0, 1, 12)
    fixings = mc.generate_path(model, monthly)
    assert fixings.shape == (12,)
    assert np.allclose(fixings, SPOT * np.exp(RATE * monthly.fixing_dates()))
    assert np.isclose(mc.time_steps.sum(), 2.0)

    mc.n_steps = 3
    assert mc.generate_path(model, monthly).shape == (12,)


def test_zero_vol_asian_path_is_deterministic_forward():
    mc = MonteCarlo(n_steps=7, seed=3)
    asian = AsianOption(100.0, 2.0, 1, 4)
    mc.set_time_steps(asian)
    fixings = mc.generate_path(BlackAsian(RATE, SPOT, 0.0), asian)
    assert np.allclose(fixings, SPOT * np.exp(RATE * asian.fixing_dates()))


# -----------------------------
# 3) Prices vs closed forms
# -----------------------------

@pytest.mark.parametrize("flavor, K", [("call", 105.0), ("put", 95.0)])
def test_vanilla_mc_matches_black_scholes(flavor, K):
    mc = MonteCarlo(n_simulations=50_000, seed=42)
    mc_price, bs_price = _close_to_analytical(mc, BlackVanilla(RATE, SPOT, VOL), VanillaOption(K, 1.0, flavor))
    assert np.isclose(mc_price, bs_price, rtol=0.03)


@pytest.mark.parametrize("flavor, K", [("call", 105.0), ("put", 95.0)])
def test_digital_mc_matches_closed_form(flavor, K):
    mc = MonteCarlo(n_simulations=40_000, seed=7)
    _close_to_analytical(mc, BlackDigital(RATE, SPOT, VOL), DigitalOption(K, 1.0, flavor))


@pytest.mark.parametrize("K, B, flavor, kind", [
    (105.0, 145.0, "call", "Up Out"),
    (105.0, 145.0, "call", "Up In"),
    (105.0, 65.0, "put", "Down Out"),
    (105.0, 65.0, "put", "Down In"),
])
def test_barrier_mc_matches_replication(K, B, flavor, kind):
    mc = MonteCarlo(n_simulations=40_000, seed=2024)
    _close_to_analytical(mc, BlackBarrier(RATE, SPOT, VOL), BarrierOption(K, B, 1.0, flavor, kind))


@pytest.mark.parametrize("flavor, K", [("call", 105.0), ("put", 95.0)])
def test_asian_mc_close_to_moment_matching(flavor, K):
    mc = MonteCarlo(MCConfig(n_simulations=20_000, n_steps=10, seed=1))
    # moment matching is an approximation: allow a small bias on top of MC noise
    _close_to_analytical(mc, BlackAsian(RATE, SPOT, VOL), AsianOption(K, 1.0, flavor, 4), slack=0.1)


@pytest.mark.parametrize("flavor", ["call", "put"])
def test_basket_mc_close_to_moment_matching(flavor):
    model = BlackBasket(RATE, [100.0, 105.0, 95.0], [0.35, 0.3, 0.4],
                        [[1, -0.6, 0.3], [-0.6, 1, -0.2], [0.3, -0.2, 1]])
    mc = MonteCarlo(n_simulations=30_000, seed=9)
    _close_to_analytical(mc, model, BasketOption(100.0, 1.0, flavor, 3), slack=0.15)


@pytest.mark.parametrize("flavor, K", [("call", 15.0), ("put", 5.0)])
def test_spread_mc_close_to_closed_form(flavor, K):
    model = BlackSpread(RATE, [105.0, 95.0], [0.4, 0.3], [[1, 0.3], [0.3, 1]])
    # the closed form is an approximation with a bias of a few tenths here
    mc = MonteCarlo(n_simulations=30_000, seed=5)
    _close_to_analytical(mc, model, SpreadOption(K, 1.0, flavor), slack=0.4)


def test_stderr_shrinks_with_more_paths():
    model, opt = BlackVanilla(RATE, SPOT, VOL), VanillaOption(105.0, 1.0, 1)
    _, se_small = MonteCarlo(n_simulations=2_000, seed=1).price(model, opt, return_stderr=True)
    _, se_large = MonteCarlo(n_simulations=32_000, seed=1).price(model, opt, return_stderr=True)
    # 1/sqrt(n) scaling: 16x the paths, about a quarter of the error
    assert 0.15 < se_large / se_small < 0.35


# -----------------------------
# 4) Engine configuration
# -----------------------------

def test_seed_reproducibility():
    model, opt = BlackAsian(RATE, SPOT, VOL), AsianOption(100.0, 1.0, 1, 4)
    p1 = MonteCarlo(n_simulations=2_000, n_steps=10, seed=123).price(model, opt)
    p2 = MonteCarlo(n_simulations=2_000, n_steps=10, seed=123).price(model, opt)
    assert p1 == p2

    mc = MonteCarlo(n_simulations=2_000, n_steps=10, seed=123)
    first = mc.price(model, opt)
    second = mc.price(model, opt)
    assert first != second          # the generator keeps running
    mc.reset()
    assert mc.price(model, opt) == first


def test_injected_generator_is_used():
    rng = np.random.default_rng(77)
    mc = MonteCarlo(n_simulations=500, rng=rng)
    expected = MonteCarlo(n_simulations=500, seed=77).price(BlackVanilla(RATE, SPOT, VOL), VanillaOption(100.0, 1.0, 1))
    assert mc.price(BlackVanilla(RATE, SPOT, VOL), VanillaOption(100.0, 1.0, 1)) == expected


def test_config_defaults_and_overrides():
    cfg = MCConfig()
    assert (cfg.n_simulations, cfg.n_steps, cfg.seed) == (20_000, 1, None)
    mc = MonteCarlo(cfg, n_steps=12)
    assert mc.n_steps == 12 and mc.n_simulations == 20_000
    assert cfg.n_steps == 1         # the passed config is not mutated
    mc.n_simulations = 50
    assert mc.n_simulations == 50
    with pytest.raises(ConfigurationError):
        MonteCarlo(n_paths=10)
    with pytest.raises(ConfigurationError):
        MonteCarlo(n_simulations=0)
    with pytest.raises(ConfigurationError):
        mc.n_steps = 2.5


def test_model_and_option_must_agree_on_dimension():
    mc = MonteCarlo(n_simulations=10, seed=0)
    basket3 = BlackBasket(RATE, [100.0, 105.0, 95.0], [0.35, 0.3, 0.4], np.eye(3))
    with pytest.raises(ConfigurationError):
        mc.price(basket3, BasketOption(100.0, 1.0, 1, 2))
    with pytest.raises(ConfigurationError):
        mc.price(basket3, SpreadOption(5.0, 1.0, 1))
    with pytest.raises(ConfigurationError):
        mc.price(BlackVanilla(RATE, SPOT, VOL), SpreadOption(5.0, 1.0, 1))


def test_discounting_uses_model_rate():
    # zero vol: the simulated price is the discounted forward intrinsic
    model, opt = BlackVanilla(RATE, SPOT, 0.0), VanillaOption(90.0, 2.0, 1)
    px = MonteCarlo(n_simulations=100, seed=0).price(model, opt)
    assert np.isclose(px, math.exp(-RATE * 2.0) * (SPOT * math.exp(RATE * 2.0) - 90.0))


def test_path_dependent_option_rejected_on_multi_asset_model():
    mc = MonteCarlo(n_simulations=10, n_steps=4, seed=0)
    one_asset_basket = BlackBasket(0.05, [100.0], [0.3], [[1.0]])
    with pytest.raises(ConfigurationError):
        mc.price(one_asset_basket, AsianOption(100.0, 1.0, 1, 4))
