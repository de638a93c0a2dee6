import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from spread_monitor.arbitrage.state import MarketSnapshot, PriceStateStore, Slot
from spread_monitor.market_data_client import EMPTY_BOOK, PriceLevel, TopOfBook


def test_store_starts_empty() -> None:
    async def _run() -> MarketSnapshot:
        return await PriceStateStore().snapshot()

    snapshot = asyncio.run(_run())

    assert snapshot.primary == EMPTY_BOOK
    assert snapshot.secondary == EMPTY_BOOK
    assert not snapshot.is_complete


def test_each_slot_is_written_independently() -> None:
    primary = TopOfBook(bid=PriceLevel(100.0, 1.0), ask=PriceLevel(101.0, 2.0))
    secondary = TopOfBook(bid=PriceLevel(103.0, 3.0), ask=PriceLevel(104.0, 4.0))

    async def _run() -> MarketSnapshot:
        store = PriceStateStore()
        await store.update(Slot.PRIMARY, primary)
        await store.update(Slot.SECONDARY, secondary)
        return await store.snapshot()

    snapshot = asyncio.run(_run())

    assert snapshot.book(Slot.PRIMARY) == primary
    assert snapshot.book(Slot.SECONDARY) == secondary
    assert snapshot.is_complete


def test_missing_side_keeps_last_known_value() -> None:
    first = TopOfBook(bid=PriceLevel(100.0, 1.0), ask=PriceLevel(101.0, 2.0))
    asks_only = TopOfBook(ask=PriceLevel(100.5, 0.5))

    async def _run():
        store = PriceStateStore()
        await store.update(Slot.PRIMARY, first)
        merged = await store.update(Slot.PRIMARY, asks_only)
        return merged, await store.snapshot()

    merged, snapshot = asyncio.run(_run())

    assert merged.bid == PriceLevel(100.0, 1.0)
    assert merged.ask == PriceLevel(100.5, 0.5)
    assert snapshot.primary == merged
    assert snapshot.secondary == EMPTY_BOOK


def test_partial_books_complete_over_several_updates() -> None:
    async def _run() -> MarketSnapshot:
        store = PriceStateStore()
        await store.update(Slot.SECONDARY, TopOfBook(bid=PriceLevel(103.0, 1.0)))
        await store.update(Slot.SECONDARY, TopOfBook())
        await store.update(Slot.SECONDARY, TopOfBook(ask=PriceLevel(104.0, 1.0)))
        return await store.snapshot()

    snapshot = asyncio.run(_run())

    assert snapshot.secondary.is_complete
    assert snapshot.secondary.bid_price == 103.0
    assert snapshot.secondary.ask_price == 104.0


def test_zero_price_update_is_discarded() -> None:
    async def _run() -> MarketSnapshot:
        store = PriceStateStore()
        await store.update(Slot.PRIMARY, TopOfBook(bid=PriceLevel(100.0, 1.0)))
        await store.update(Slot.PRIMARY, TopOfBook(bid=PriceLevel(0.0, 1.0)))
        await store.update(Slot.PRIMARY, TopOfBook(ask=PriceLevel(101.0, 1.0)))
        return await store.snapshot()

    snapshot = asyncio.run(_run())

    assert snapshot.primary.bid_price == 100.0
    assert snapshot.primary.ask_price == 101.0


def test_unusable_level_never_populates_an_empty_side() -> None:
    async def _run() -> MarketSnapshot:
        store = PriceStateStore()
        await store.update(
            Slot.SECONDARY,
            TopOfBook(bid=PriceLevel(-1.0, 1.0), ask=PriceLevel(104.0, 1.0)),
        )
        return await store.snapshot()

    snapshot = asyncio.run(_run())

    assert snapshot.secondary.bid is None
    assert snapshot.secondary.ask_price == 104.0
    assert not snapshot.is_complete
