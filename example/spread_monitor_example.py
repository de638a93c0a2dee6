"""
Spread monitor example.

This script:
- Watches BTC/USDT top of book on Binance and Bybit through ccxt.pro
- Logs a price report every cycle
- Sends a Telegram alert whenever a directional spread exceeds 0.5%

Telegram credentials are read from the environment (or a .env file).
"""

import asyncio
import os
import signal

from dotenv import load_dotenv

from spread_monitor.arbitrage.bot import run_spread_monitor
from spread_monitor.arbitrage.config import FeedTransport, MonitorConfig


async def main() -> None:
    load_dotenv(override=False)

    config = MonitorConfig(
        symbol="BTC/USDT",
        primary_market="binance",
        secondary_market="bybit",
        spread_threshold=0.005,       # 0.5%
        notification_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
        notification_recipient=os.environ.get("TELEGRAM_CHAT_ID", ""),
        feed_transport=FeedTransport.CCXT,
        alert_cooldown_sec=30.0,      # at most one alert per direction every 30s
        feed_timeout_sec=30.0,        # skip the cycle if a feed goes quiet
    )

    stop_event = asyncio.Event()

    def _handle_sigint(signum, frame):
        """
        Handle Ctrl+C (SIGINT).

        First Ctrl+C:
            - Set stop_event so the monitor can exit its loop cleanly.
        Second Ctrl+C:
            - Raise KeyboardInterrupt to force exit.
        """
        if not stop_event.is_set():
            print("\n\n✅ Stopping spread monitor gracefully...")
            stop_event.set()
        else:
            print("\n\n⛔ Force exit.")
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, _handle_sigint)

    await run_spread_monitor(config=config, stop_event=stop_event)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\n✅ Stopped spread monitor")
