# scripts/run_spread_monitor.py
"""
CLI entrypoint to run the spread monitor from environment configuration.

Usage:
    python scripts/run_spread_monitor.py

Reads SYMBOL, PRIMARY_EXCHANGE, SECONDARY_EXCHANGE, SPREAD_THRESHOLD,
TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID (see .env.example).
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from spread_monitor.arbitrage.bot import main  # type: ignore


if __name__ == "__main__":
    sys.exit(main())
