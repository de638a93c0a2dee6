from __future__ import annotations

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set

from ..market_data_client import (
    FeedAdapter,
    NatsFeed,
    TopOfBook,
    TopOfBookUpdate,
    make_ccxt_feed,
)
from .alert_policy import AlertPolicy
from .arbitrage_detector import ArbitrageDetector, ArbitrageOpportunity, Direction, quote_for
from .config import ConfigError, FeedTransport, MonitorConfig, load_config_from_env
from .markets import resolve_market
from .notifier import DispatchResult, Notifier, TelegramNotifier
from .state import MarketSnapshot, PriceStateStore, Slot
from ..symbols import split_symbol

logger = logging.getLogger(__name__)

_LOGGING_CONFIGURED = False


def _dedupe_logger_handlers(l: logging.Logger) -> None:
    """
    Remove duplicated handlers (common cause of double logs).
    Dedupe key: (handler type, stream id if StreamHandler else handler id)
    """
    seen: set[tuple] = set()
    new_handlers: list[logging.Handler] = []
    for h in list(l.handlers):
        stream = getattr(h, "stream", None)
        key = (type(h), id(stream) if stream is not None else id(h))
        if key in seen:
            continue
        seen.add(key)
        new_handlers.append(h)
    l.handlers = new_handlers


def configure_spread_monitor_logging(level: int = logging.INFO) -> None:
    """
    Configure logging so that:
      - only the 'spread_monitor' package logger owns a StreamHandler
      - all child loggers propagate to it (no per-module handlers)
      - duplicated handlers on root/package are removed
    Calling again only adjusts the level.
    """
    global _LOGGING_CONFIGURED

    pkg = logging.getLogger("spread_monitor")

    if not _LOGGING_CONFIGURED:
        root = logging.getLogger()
        _dedupe_logger_handlers(root)
        _dedupe_logger_handlers(pkg)

        if not pkg.handlers:
            h = logging.StreamHandler()
            h.setFormatter(
                logging.Formatter(
                    "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            pkg.addHandler(h)

        pkg.propagate = False
        _LOGGING_CONFIGURED = True

    pkg.setLevel(level)

    for name, obj in logging.root.manager.loggerDict.items():
        if not isinstance(obj, logging.Logger):
            continue
        if name.startswith("spread_monitor") and name != "spread_monitor":
            obj.handlers = []
            obj.propagate = True
            obj.setLevel(level)


configure_spread_monitor_logging()


# ========================= rendering =========================
def _fmt_num(x: Optional[float]) -> str:
    if x is None:
        return "None"
    s = repr(float(x))
    return s[:-2] if s.endswith(".0") else s


def _direction_markets(config: MonitorConfig, direction: Direction) -> tuple[str, str]:
    if direction is Direction.BUY_PRIMARY_SELL_SECONDARY:
        return config.primary_market, config.secondary_market
    return config.secondary_market, config.primary_market


def _book_line(name: str, book: TopOfBook) -> str:
    return (
        f"{name}: Bid {_fmt_num(book.bid_price)} - {_fmt_num(book.bid_qty)} | "
        f"Ask {_fmt_num(book.ask_price)} - {_fmt_num(book.ask_qty)}"
    )


def _gap_text(opp: ArbitrageOpportunity, base: str, quote: str) -> str:
    return (
        f"{opp.spread_pct:.2f}% => {_fmt_num(opp.tradable_qty)} {base} "
        f"=> {opp.projected_profit:.4f} {quote}"
    )


def render_report(
    config: MonitorConfig,
    snapshot: MarketSnapshot,
    quotes: List[ArbitrageOpportunity],
) -> str:
    base, quote = split_symbol(config.symbol)
    lines = [
        "=== Current Prices ===",
        _book_line(config.primary_market, snapshot.primary),
        _book_line(config.secondary_market, snapshot.secondary),
        "",
        "=== Price Gaps ===",
    ]
    for direction in Direction:
        opp = quote_for(quotes, direction)
        if opp is None:
            continue
        buy_market, sell_market = _direction_markets(config, direction)
        lines.append(f"{buy_market} -> {sell_market} Gap: {_gap_text(opp, base, quote)}")
    lines.append("===================")
    return "\n".join(lines)


def render_alert(config: MonitorConfig, opp: ArbitrageOpportunity) -> str:
    base, quote = split_symbol(config.symbol)
    buy_market, sell_market = _direction_markets(config, opp.direction)
    return (
        f"🔥 Arbitrage {base}: Buy {buy_market} @ {_fmt_num(opp.buy_price)}, "
        f"Sell {sell_market} @ {_fmt_num(opp.sell_price)}\n"
        f"Spread: {_gap_text(opp, base, quote)}"
    )


def _describe(book: TopOfBook) -> str:
    sides = [name for name, lvl in (("bid", book.bid), ("ask", book.ask)) if lvl is None]
    return "complete" if not sides else "missing " + "+".join(sides)


# ========================= feeds =========================
class FeedPump:
    """
    Drains one feed on its own task and keeps only the newest update.

    `wait_fresh` does not consume, so a cancelled wait loses nothing;
    `take` consumes the newest update.
    """

    def __init__(self, feed: FeedAdapter) -> None:
        self.feed = feed
        self._latest: Optional[TopOfBookUpdate] = None
        self._fresh = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.received = 0
        self.errors = 0
        self.failure: Optional[BaseException] = None

    @property
    def market_id(self) -> str:
        return self.feed.market_id

    @property
    def is_fresh(self) -> bool:
        return self._fresh.is_set()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"feed-{self.market_id}")
            self._task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failure = exc
            logger.error("Feed task %s died: %s", self.market_id, exc, exc_info=exc)
        else:
            logger.warning("Feed task %s ended: subscription finished", self.market_id)

    async def _run(self) -> None:
        async for update in self.feed.subscribe():
            if update.error is not None:
                self.errors += 1
                logger.error("Watch error market=%s: %s", update.market_id, update.error)
            self._latest = update
            self.received += 1
            self._fresh.set()

    async def wait_fresh(self) -> None:
        await self._fresh.wait()

    def take(self) -> Optional[TopOfBookUpdate]:
        self._fresh.clear()
        return self._latest

    async def stop(self) -> None:
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None


def build_feed(config: MonitorConfig, market_id: str) -> FeedAdapter:
    market = resolve_market(market_id)
    if config.feed_transport == FeedTransport.NATS:
        return NatsFeed(market.market_id, config.symbol, nats_url=config.nats_url)
    return make_ccxt_feed(market.market_id, config.symbol)


# ========================= monitor loop =========================
class MonitorPhase(str, Enum):
    WAITING = "WAITING"
    ACTIVE = "ACTIVE"


@dataclass
class MonitorStats:
    cycles: int = 0
    opportunities: int = 0
    alerts_sent: int = 0
    alerts_suppressed: int = 0
    dispatch_failures: int = 0
    feed_errors: int = 0
    stale_cycles: int = 0


class SpreadMonitor:
    """
    Drives the cycle: wait for both feeds, refresh the store, detect, alert, report.
    """

    def __init__(
        self,
        config: MonitorConfig,
        primary_feed: FeedAdapter,
        secondary_feed: FeedAdapter,
        notifier: Notifier,
        store: Optional[PriceStateStore] = None,
        detector: Optional[ArbitrageDetector] = None,
        alert_policy: Optional[AlertPolicy] = None,
        drain_timeout_sec: float = 5.0,
    ) -> None:
        self.config = config
        self.notifier = notifier
        self.store = store or PriceStateStore()
        self.detector = detector or ArbitrageDetector(config.spread_threshold)
        self.alert_policy = alert_policy or AlertPolicy(cooldown_sec=config.alert_cooldown_sec)
        self.drain_timeout_sec = drain_timeout_sec

        self._feeds: Dict[Slot, FeedAdapter] = {
            Slot.PRIMARY: primary_feed,
            Slot.SECONDARY: secondary_feed,
        }
        self._pumps: Dict[Slot, FeedPump] = {slot: FeedPump(feed) for slot, feed in self._feeds.items()}
        self._inflight: Set[asyncio.Task] = set()

        self.phase = MonitorPhase.WAITING
        self.stats = MonitorStats()

    # --------------- lifecycle ---------------
    async def start(self) -> None:
        for pump in self._pumps.values():
            pump.start()
        logger.info(
            "Starting to monitor %s on %s / %s threshold=%.4f%%",
            self.config.symbol,
            self.config.primary_market,
            self.config.secondary_market,
            self.config.spread_threshold * 100,
        )

    async def stop(self) -> None:
        for pump in self._pumps.values():
            await pump.stop()

        for slot, feed in self._feeds.items():
            try:
                await feed.close()
            except Exception as exc:
                logger.error("Failed to close %s feed %s: %s", slot.value, feed.market_id, exc)

        await self.drain_alerts(self.drain_timeout_sec)

        s = self.stats
        logger.info(
            "final_summary cycles=%s opportunities=%s alerts_sent=%s alerts_suppressed=%s "
            "dispatch_failures=%s feed_errors=%s stale_cycles=%s",
            s.cycles,
            s.opportunities,
            s.alerts_sent,
            s.alerts_suppressed,
            s.dispatch_failures,
            s.feed_errors,
            s.stale_cycles,
        )

    async def drain_alerts(self, timeout: Optional[float] = None) -> None:
        if not self._inflight:
            return
        _done, pending = await asyncio.wait(set(self._inflight), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Abandoned %s in-flight alert(s) at shutdown", len(pending))

    # --------------- cycle ---------------
    async def _wait_both(self) -> None:
        waiter = asyncio.gather(*(pump.wait_fresh() for pump in self._pumps.values()))
        if self.config.feed_timeout_sec is None:
            await waiter
        else:
            await asyncio.wait_for(waiter, timeout=self.config.feed_timeout_sec)

    async def run_cycle(self) -> List[ArbitrageOpportunity]:
        """
        Run one cycle and return the opportunities above threshold.
        """
        self.stats.cycles += 1

        try:
            await self._wait_both()
        except asyncio.TimeoutError:
            self.stats.stale_cycles += 1
            stale = [p.market_id for p in self._pumps.values() if not p.is_fresh]
            logger.warning(
                "Stale feed: no update from %s within %.1fs, skipping cycle",
                ",".join(stale),
                self.config.feed_timeout_sec,
            )
            return []

        updates = {slot: pump.take() for slot, pump in self._pumps.items()}

        failed = [u for u in updates.values() if u is None or u.error is not None]
        if failed:
            self.stats.feed_errors += 1
            logger.debug(
                "Skipping cycle %s: feed error on %s",
                self.stats.cycles,
                ",".join(u.market_id for u in failed if u is not None),
            )
            return []

        for slot, update in updates.items():
            await self.store.update(slot, update.book)
        snapshot = await self.store.snapshot()

        if self.phase is MonitorPhase.WAITING:
            if not snapshot.is_complete:
                logger.info(
                    "Waiting for market data %s=%s %s=%s",
                    self.config.primary_market,
                    _describe(snapshot.primary),
                    self.config.secondary_market,
                    _describe(snapshot.secondary),
                )
                return []
            self.phase = MonitorPhase.ACTIVE
            logger.info("Market data complete for %s, monitor active", self.config.symbol)

        quotes = self.detector.evaluate(snapshot)
        if not quotes:
            return []

        logger.info("\n%s", render_report(self.config, snapshot, quotes))

        opportunities = self.detector.select(quotes)
        self.stats.opportunities += len(opportunities)

        for opp in opportunities:
            if not self.alert_policy.should_alert(opp):
                self.stats.alerts_suppressed += 1
                continue
            message = render_alert(self.config, opp)
            logger.info(message)
            self._dispatch_in_background(message)

        return opportunities

    # --------------- alerts ---------------
    def _dispatch_in_background(self, message: str) -> None:
        task = asyncio.create_task(self.notifier.dispatch(message))
        self._inflight.add(task)
        task.add_done_callback(self._on_dispatch_done)

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            self.stats.dispatch_failures += 1
            logger.error("Alert dispatch failed: %s", exc)
            return

        result: DispatchResult = task.result()
        if result.ok:
            self.stats.alerts_sent += 1
        else:
            self.stats.dispatch_failures += 1

    # --------------- main loop ---------------
    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        await self.start()
        stop_waiter: Optional[asyncio.Task] = None
        if stop_event is not None:
            stop_waiter = asyncio.create_task(stop_event.wait())

        try:
            while True:
                if stop_event is not None and stop_event.is_set():
                    logger.info("Stop event set. Exiting monitor loop.")
                    break

                cycle = asyncio.create_task(self.run_cycle())
                waiters = {cycle} if stop_waiter is None else {cycle, stop_waiter}
                await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if not cycle.done():
                    cycle.cancel()
                    try:
                        await cycle
                    except asyncio.CancelledError:
                        pass
                    continue

                exc = cycle.exception()
                if exc is not None:
                    logger.error("Cycle %s failed: %s", self.stats.cycles, exc, exc_info=exc)
        finally:
            if stop_waiter is not None:
                stop_waiter.cancel()
            await self.stop()


async def run_spread_monitor(
    config: MonitorConfig,
    stop_event: Optional[asyncio.Event] = None,
    primary_feed: Optional[FeedAdapter] = None,
    secondary_feed: Optional[FeedAdapter] = None,
    notifier: Optional[Notifier] = None,
) -> SpreadMonitor:
    configure_spread_monitor_logging(config.log_level_value)

    logger.info(
        "Starting spread monitor symbol=%s primary=%s secondary=%s transport=%s",
        config.symbol,
        config.primary_market,
        config.secondary_market,
        config.feed_transport.value,
    )

    monitor = SpreadMonitor(
        config=config,
        primary_feed=primary_feed or build_feed(config, config.primary_market),
        secondary_feed=secondary_feed or build_feed(config, config.secondary_market),
        notifier=notifier
        or TelegramNotifier(
            token=config.notification_token,
            chat_id=config.notification_recipient,
            api_url=config.notification_api_url,
            timeout_sec=config.notify_timeout_sec,
        ),
    )
    await monitor.run(stop_event=stop_event)
    return monitor


def main() -> int:
    try:
        config = load_config_from_env()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    stop_event = asyncio.Event()

    def _handle_sigint(signum, frame):
        """
        First Ctrl+C sets stop_event so the loop exits cleanly.
        Second Ctrl+C raises KeyboardInterrupt to force exit.
        """
        if not stop_event.is_set():
            print("\n\n✅ Stopping spread monitor gracefully...")
            stop_event.set()
        else:
            print("\n\n⛔ Force exit.")
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, _handle_sigint)

    try:
        asyncio.run(run_spread_monitor(config, stop_event=stop_event))
    except KeyboardInterrupt:
        print("\n\n✅ Stopped spread monitor")
    return 0


if __name__ == "__main__":
    sys.exit(main())
