import numpy as np
import pytest

from black_pricer.barriers import BlackBarrier, barrier_price, barrier_replication
from black_pricer.black_scholes import black_scholes_price, digital_price
from black_pricer.errors import ConfigurationError
from black_pricer.options import BarrierOption, VanillaOption

RATE, SPOT, VOL = 0.05, 100.0, 0.3


@pytest.mark.parametrize("B", [105.0, 110.0, 145.0, 300.0])
def test_up_in_plus_up_out_is_vanilla(B):
    model = BlackBarrier(RATE, SPOT, VOL)
    out = model.price(BarrierOption(105.0, B, 1.0, "call", "Up Out"))
    knock_in = model.price(BarrierOption(105.0, B, 1.0, "call", "Up In"))
    vanilla = black_scholes_price(SPOT, 105.0, 1.0, RATE, VOL, 1)
    assert np.isclose(out + knock_in, vanilla, atol=1e-10)
    assert out >= -1e-12 and knock_in >= -1e-12


@pytest.mark.parametrize("B", [30.0, 65.0, 90.0, 105.0])
def test_down_in_plus_down_out_is_vanilla(B):
    model = BlackBarrier(RATE, SPOT, VOL)
    out = model.price(BarrierOption(105.0, B, 1.0, "put", "Down Out"))
    knock_in = model.price(BarrierOption(105.0, B, 1.0, "put", "Down In"))
    vanilla = black_scholes_price(SPOT, 105.0, 1.0, RATE, VOL, -1)
    assert np.isclose(out + knock_in, vanilla, atol=1e-10)
    assert out >= -1e-12 and knock_in >= -1e-12


def test_replication_legs():
    S, K, B, T = SPOT, 105.0, 145.0, 1.0
    legs = barrier_replication(S, K, B, T, RATE, VOL, phi=1)
    expected = (black_scholes_price(S, K, T, RATE, VOL, 1)
                - black_scholes_price(S, B, T, RATE, VOL, 1)
                - (B - K) * digital_price(S, B, T, RATE, VOL, 1))
    assert np.isclose(legs["price_out"], expected, atol=1e-12)


def test_barrier_at_strike_knocks_everything_out():
    # with B == K the out-option has an empty payoff region
    p = barrier_price(SPOT, 105.0, 105.0, 1.0, RATE, VOL, phi=1, barrier_type="UpOut")
    assert abs(p) < 1e-10


def test_far_barrier_converges_to_vanilla():
    p = barrier_price(SPOT, 105.0, 1e6, 1.0, RATE, VOL, phi=1, barrier_type="Up Out")
    assert np.isclose(p, black_scholes_price(SPOT, 105.0, 1.0, RATE, VOL, 1), atol=1e-8)


def test_unknown_type_rejected_at_pricing_time():
    with pytest.raises(ConfigurationError):
        barrier_price(SPOT, 105.0, 145.0, 1.0, RATE, VOL, phi=1, barrier_type="Down Out")
    with pytest.raises(ConfigurationError):
        barrier_price(SPOT, 105.0, 145.0, 1.0, RATE, VOL, phi=1, barrier_type="knock")



def test_barrier_pricer_rejects_vanilla_contract():
    with pytest.raises(ConfigurationError):
        BlackBarrier(RATE, SPOT, VOL).price(VanillaOption(105.0, 1.0, "call"))
