"""
Cross-Market Arbitrage Detector

Compares the top of book of two markets trading the same pair and reports
directional spreads.

Arbitrage Strategy:
- Direction A: buy on primary at its ask, sell on secondary at its bid
- Direction B: buy on secondary at its ask, sell on primary at its bid
- spread = (sell_bid - buy_ask) / buy_ask
- Only directions where spread > threshold are reported as opportunities

Both directions are evaluated every time and may fire together on a
crossed market.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..market_data_client import TopOfBook
from .state import MarketSnapshot, Slot

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    BUY_PRIMARY_SELL_SECONDARY = "buy_primary_sell_secondary"
    BUY_SECONDARY_SELL_PRIMARY = "buy_secondary_sell_primary"

    @property
    def buy_slot(self) -> Slot:
        if self is Direction.BUY_PRIMARY_SELL_SECONDARY:
            return Slot.PRIMARY
        return Slot.SECONDARY

    @property
    def sell_slot(self) -> Slot:
        if self is Direction.BUY_PRIMARY_SELL_SECONDARY:
            return Slot.SECONDARY
        return Slot.PRIMARY


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    One directional spread quote.

    Attributes:
        direction: which market is bought and which is sold
        buy_price: ask on the buy market
        sell_price: bid on the sell market
        spread_ratio: (sell_price - buy_price) / buy_price, may be negative
        tradable_qty: min(ask qty on buy market, bid qty on sell market)
        projected_profit: tradable_qty * (sell_price - buy_price), in quote units
    """
    direction: Direction
    buy_price: float
    sell_price: float
    spread_ratio: float
    tradable_qty: float
    projected_profit: float

    @property
    def spread_pct(self) -> float:
        return self.spread_ratio * 100.0


def _is_valid(book: TopOfBook) -> bool:
    """Both sides present, positive finite prices, non-negative finite quantities."""
    return book.is_complete and book.bid.is_valid and book.ask.is_valid


def _quote(direction: Direction, buy: TopOfBook, sell: TopOfBook) -> ArbitrageOpportunity:
    buy_price = buy.ask_price
    sell_price = sell.bid_price
    price_diff = sell_price - buy_price
    qty = min(buy.ask_qty, sell.bid_qty)
    return ArbitrageOpportunity(
        direction=direction,
        buy_price=buy_price,
        sell_price=sell_price,
        spread_ratio=price_diff / buy_price,
        tradable_qty=qty,
        projected_profit=qty * price_diff,
    )


class ArbitrageDetector:
    """Pure evaluation of a MarketSnapshot against a spread threshold."""

    def __init__(self, spread_threshold: float = 0.005) -> None:
        self.spread_threshold = spread_threshold

    def evaluate(self, snapshot: MarketSnapshot) -> List[ArbitrageOpportunity]:
        """
        Quote both directions regardless of threshold.

        Returns an empty list while any level is absent, or when a snapshot
        carries a non-positive price (malformed, dropped for this cycle).
        """
        if not snapshot.is_complete:
            return []

        if not (_is_valid(snapshot.primary) and _is_valid(snapshot.secondary)):
            logger.debug(
                "Malformed snapshot dropped primary=%s secondary=%s",
                snapshot.primary,
                snapshot.secondary,
            )
            return []

        quotes: List[ArbitrageOpportunity] = []
        for direction in Direction:
            quotes.append(
                _quote(
                    direction,
                    buy=snapshot.book(direction.buy_slot),
                    sell=snapshot.book(direction.sell_slot),
                )
            )
        return quotes

    def select(self, quotes: List[ArbitrageOpportunity]) -> List[ArbitrageOpportunity]:
        return [q for q in quotes if q.spread_ratio > self.spread_threshold]

    def detect(self, snapshot: MarketSnapshot) -> List[ArbitrageOpportunity]:
        """Opportunities whose spread strictly exceeds the threshold."""
        return self.select(self.evaluate(snapshot))


def detect_opportunities(
    snapshot: MarketSnapshot,
    spread_threshold: float,
) -> List[ArbitrageOpportunity]:
    return ArbitrageDetector(spread_threshold).detect(snapshot)


def quote_for(
    quotes: List[ArbitrageOpportunity],
    direction: Direction,
) -> Optional[ArbitrageOpportunity]:
    for q in quotes:
        if q.direction is direction:
            return q
    return None
