# src/spread_monitor/arbitrage/state.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from ..market_data_client import EMPTY_BOOK, TopOfBook

logger = logging.getLogger(__name__)


class Slot(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class MarketSnapshot:
    """Consistent copy of both slots taken under the store lock."""
    primary: TopOfBook = EMPTY_BOOK
    secondary: TopOfBook = EMPTY_BOOK

    @property
    def is_complete(self) -> bool:
        return self.primary.is_complete and self.secondary.is_complete

    def book(self, slot: Slot) -> TopOfBook:
        return self.primary if slot == Slot.PRIMARY else self.secondary


class PriceStateStore:
    """
    Latest top-of-book per market slot.

    Each feed writes only its own slot. A slot is replaced wholesale on update;
    sides missing from the new snapshot keep their last known value.
    Levels with a non-positive or non-finite price are discarded the same way.
    """

    def __init__(self) -> None:
        self._books: Dict[Slot, TopOfBook] = {Slot.PRIMARY: EMPTY_BOOK, Slot.SECONDARY: EMPTY_BOOK}
        self._lock = asyncio.Lock()

    async def update(self, slot: Slot, book: TopOfBook) -> TopOfBook:
        if book.has_invalid_level:
            logger.debug("Discarding unusable level(s) for %s: %s", slot.value, book)
        async with self._lock:
            merged = book.merged_over(self._books[slot])
            self._books[slot] = merged
        return merged

    async def snapshot(self) -> MarketSnapshot:
        async with self._lock:
            return MarketSnapshot(
                primary=self._books[Slot.PRIMARY],
                secondary=self._books[Slot.SECONDARY],
            )
