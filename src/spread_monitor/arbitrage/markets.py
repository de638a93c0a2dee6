# src/spread_monitor/arbitrage/markets.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


class UnknownMarketError(ValueError):
    """Market id is not in the supported registry."""


@dataclass(frozen=True)
class MarketSpec:
    market_id: str
    display_name: str


# Closed set of markets the monitor can subscribe to.
SUPPORTED_MARKETS: Dict[str, MarketSpec] = {
    "binance": MarketSpec("binance", "Binance"),
    "bitget": MarketSpec("bitget", "Bitget"),
    "mexc": MarketSpec("mexc", "MEXC"),
    "bitfinex": MarketSpec("bitfinex", "Bitfinex"),
    "bybit": MarketSpec("bybit", "Bybit"),
}


def resolve_market(market_id: str) -> MarketSpec:
    key = (market_id or "").strip().lower()
    if key not in SUPPORTED_MARKETS:
        raise UnknownMarketError(
            f"Unknown market {market_id!r}. supported={','.join(sorted(SUPPORTED_MARKETS))}"
        )
    return SUPPORTED_MARKETS[key]
