"""
European barrier options priced by static replication under Black–Scholes.

The barrier is only observed at maturity, so the knock-out payoff of a call

    (S_T - K) 1{K < S_T < B} = (S_T - K)^+ - (S_T - B)^+ - (B - K) 1{S_T > B}

is a portfolio of a vanilla struck at K, a vanilla struck at B and a digital
struck at B (the put case is the mirror image with phi = -1). The knock-in
leg follows from in–out parity: price_in = vanilla - price_out.

Recognized types (whitespace and case are ignored):
    "Up Out", "Up In"       calls only
    "Down Out", "Down In"   puts only
"""

from __future__ import annotations

from .black_scholes import BlackScholesModel, black_scholes_price, digital_price
from .options import _ensure_float, normalize_barrier_type, parse_phi, require_family


def barrier_replication(S, K, B, T, r, sigma, phi=1):
    """
    Legs of the static replication.

    Returns dict with the vanilla at K, vanilla at B, digital at B and the
    resulting knock-out price.
    """
    phi = parse_phi(phi)
    vanilla_strike = black_scholes_price(S, K, T, r, sigma, phi=phi)
    vanilla_barrier = black_scholes_price(S, B, T, r, sigma, phi=phi)
    digital_barrier = digital_price(S, B, T, r, sigma, phi=phi)
    price_out = vanilla_strike - vanilla_barrier - phi * (B - K) * digital_barrier
    return {
        "vanilla_strike": vanilla_strike,
        "vanilla_barrier": vanilla_barrier,
        "digital_barrier": digital_barrier,
        "price_out": price_out,
    }


def barrier_price(S, K, B, T, r, sigma, phi=1, barrier_type="Up Out"):
    """Knock-out or knock-in price of a terminal-monitored barrier option."""
    S = _ensure_float(S, "spot")
    K = _ensure_float(K, "strike")
    B = _ensure_float(B, "barrier")
    phi = parse_phi(phi)
    kind = normalize_barrier_type(barrier_type, phi)

    legs = barrier_replication(S, K, B, T, r, sigma, phi=phi)
    if kind.endswith("OUT"):
        return float(legs["price_out"])
    return float(legs["vanilla_strike"] - legs["price_out"])


class BlackBarrier(BlackScholesModel):

    def price(self, opt):
        require_family(opt, "Barrier")
        return barrier_price(
            self._spot, opt.strike, opt.barrier, opt.maturity, self._rate, self._vol,
            phi=opt.phi, barrier_type=opt.barrier_type,
        )


__all__ = [
    "barrier_replication",
    "barrier_price",
    "BlackBarrier",
]
