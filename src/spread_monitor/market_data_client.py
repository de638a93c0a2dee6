from __future__ import annotations

import abc
import asyncio
import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import ccxt.pro as ccxtpro
import nats
from nats.aio.client import Client as NATS

from .symbols import norm_symbol

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """A single feed update could not be received or decoded."""


# ========================= data model =========================
@dataclass(frozen=True)
class PriceLevel:
    price: float
    quantity: float

    @property
    def is_valid(self) -> bool:
        """Positive finite price, non-negative finite quantity."""
        return (
            math.isfinite(self.price)
            and self.price > 0
            and math.isfinite(self.quantity)
            and self.quantity >= 0
        )


@dataclass(frozen=True)
class TopOfBook:
    """
    Best bid / best ask of one market.

    A side is None until the feed has produced it at least once.
    """
    bid: Optional[PriceLevel] = None
    ask: Optional[PriceLevel] = None

    @property
    def bid_price(self) -> Optional[float]:
        return self.bid.price if self.bid else None

    @property
    def bid_qty(self) -> Optional[float]:
        return self.bid.quantity if self.bid else None

    @property
    def ask_price(self) -> Optional[float]:
        return self.ask.price if self.ask else None

    @property
    def ask_qty(self) -> Optional[float]:
        return self.ask.quantity if self.ask else None

    @property
    def is_complete(self) -> bool:
        return self.bid is not None and self.ask is not None

    @property
    def has_invalid_level(self) -> bool:
        return any(lvl is not None and not lvl.is_valid for lvl in (self.bid, self.ask))

    def merged_over(self, previous: "TopOfBook") -> "TopOfBook":
        """
        Return a new snapshot where absent sides keep their last known value.

        A side with an unusable level (e.g. price 0) is discarded and treated
        as absent.
        """
        return TopOfBook(
            bid=self.bid if self.bid is not None and self.bid.is_valid else previous.bid,
            ask=self.ask if self.ask is not None and self.ask.is_valid else previous.ask,
        )


EMPTY_BOOK = TopOfBook()


@dataclass(frozen=True)
class TopOfBookUpdate:
    """One item of a feed sequence: either a book or the error that replaced it."""
    market_id: str
    book: Optional[TopOfBook] = None
    error: Optional[BaseException] = None
    received_at: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.book is not None


# ========================= decoding =========================
def _level(raw: Sequence[Any], side: str) -> PriceLevel:
    try:
        return PriceLevel(price=float(raw[0]), quantity=float(raw[1]))
    except (TypeError, ValueError, IndexError) as exc:
        raise FeedError(f"undecodable {side} level {raw!r}: {exc}") from exc


def top_of_book_from_order_book(order_book: Dict[str, Any]) -> TopOfBook:
    """
    Reduce a ccxt-shaped order book ({"bids": [[price, amount], ...], "asks": ...})
    to its best levels. An empty side is reported as absent.
    """
    if not isinstance(order_book, dict):
        raise FeedError(f"order book must be a mapping, got {type(order_book).__name__}")

    bids = order_book.get("bids") or []
    asks = order_book.get("asks") or []

    return TopOfBook(
        bid=_level(bids[0], "bid") if len(bids) else None,
        ask=_level(asks[0], "ask") if len(asks) else None,
    )


# ========================= adapters =========================
class FeedAdapter(abc.ABC):
    """
    Per-market source of top-of-book snapshots.

    Subclasses implement `watch_top_of_book`, which waits for the next update.
    `subscribe` turns that into an infinite sequence where failures are yielded
    as values and never end the sequence.
    """

    def __init__(self, market_id: str, symbol: str, retry_delay_sec: float = 1.0) -> None:
        self.market_id = market_id
        self.symbol = symbol
        self.retry_delay_sec = retry_delay_sec

    @abc.abstractmethod
    async def watch_top_of_book(self) -> TopOfBook:
        raise NotImplementedError

    async def close(self) -> None:
        return None

    async def subscribe(self) -> AsyncIterator[TopOfBookUpdate]:
        while True:
            try:
                book = await self.watch_top_of_book()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                yield TopOfBookUpdate(self.market_id, error=exc, received_at=time.time())
                if self.retry_delay_sec > 0:
                    await asyncio.sleep(self.retry_delay_sec)
                continue
            yield TopOfBookUpdate(self.market_id, book=book, received_at=time.time())


class CcxtProFeed(FeedAdapter):
    """Websocket order-book stream through ccxt.pro."""

    def __init__(
        self,
        market_id: str,
        symbol: str,
        exchange: Any,
        retry_delay_sec: float = 1.0,
    ) -> None:
        super().__init__(market_id, symbol, retry_delay_sec=retry_delay_sec)
        self.exchange = exchange

    async def watch_top_of_book(self) -> TopOfBook:
        order_book = await self.exchange.watch_order_book(self.symbol)
        return top_of_book_from_order_book(order_book)

    async def close(self) -> None:
        await self.exchange.close()
        logger.info("ccxt feed closed market=%s", self.market_id)


def book_subject(market_id: str, symbol: str) -> str:
    return f"md.book.{market_id}.{norm_symbol(symbol)}"


class NatsFeed(FeedAdapter):
    """
    Order-book snapshots published as JSON on `md.book.<market>.<SYMBOL>`.

    Payload: {"bids": [[price, qty], ...], "asks": [[price, qty], ...]}
    """

    def __init__(
        self,
        market_id: str,
        symbol: str,
        nats_url: str = "nats://127.0.0.1:4222",
        retry_delay_sec: float = 1.0,
    ) -> None:
        super().__init__(market_id, symbol, retry_delay_sec=retry_delay_sec)
        self.nats_url = nats_url
        self.subject = book_subject(market_id, symbol)
        self.nc: Optional[NATS] = None
        self._sub = None
        self._queue: asyncio.Queue = asyncio.Queue()

    async def start(self) -> None:
        self.nc = await nats.connect(
            self.nats_url,
            connect_timeout=3,
            allow_reconnect=True,
            reconnect_time_wait=1,
            max_reconnect_attempts=-1,
        )
        logger.info("Connected to NATS: %s", self.nats_url)

        async def _cb(msg):
            self._queue.put_nowait(msg.data)

        self._sub = await self.nc.subscribe(self.subject, cb=_cb)
        logger.debug("Subscribed to %s", self.subject)

    async def watch_top_of_book(self) -> TopOfBook:
        if self.nc is None:
            await self.start()
        data = await self._queue.get()
        try:
            payload = json.loads(data)
        except (TypeError, ValueError) as exc:
            raise FeedError(f"undecodable payload on {self.subject}: {exc}") from exc
        return top_of_book_from_order_book(payload)

    async def close(self) -> None:
        if self._sub is not None:
            try:
                await self._sub.unsubscribe()
            except Exception as exc:
                logger.debug("unsubscribe %s failed: %s", self.subject, exc)
        if self.nc is not None:
            await self.nc.drain()
        logger.info("NATS feed closed market=%s", self.market_id)


# Explicit market -> ccxt.pro exchange class table.
CCXT_EXCHANGES = {
    "binance": ccxtpro.binance,
    "bitget": ccxtpro.bitget,
    "mexc": ccxtpro.mexc,
    "bitfinex": ccxtpro.bitfinex,
    "bybit": ccxtpro.bybit,
}


def make_ccxt_feed(market_id: str, symbol: str) -> CcxtProFeed:
    exchange_cls = CCXT_EXCHANGES.get(market_id)
    if exchange_cls is None:
        raise ValueError(f"No ccxt.pro exchange registered for market {market_id}")
    return CcxtProFeed(market_id, symbol, exchange_cls({"enableRateLimit": True}))
