# src/spread_monitor/arbitrage/__init__.py
from __future__ import annotations

"""
Cross-market spread monitoring for spread_monitor.

Public API:
- ArbitrageDetector / ArbitrageOpportunity / Direction / detect_opportunities
- MonitorConfig / FeedTransport / load_config_from_env (for monitor config)
- PriceStateStore / Slot
"""

from .arbitrage_detector import (
    ArbitrageDetector,
    ArbitrageOpportunity,
    Direction,
    detect_opportunities,
)
from .config import ConfigError, FeedTransport, MonitorConfig, load_config_from_env
from .state import MarketSnapshot, PriceStateStore, Slot

__all__ = [
    "ArbitrageDetector",
    "ArbitrageOpportunity",
    "Direction",
    "detect_opportunities",
    "ConfigError",
    "FeedTransport",
    "MonitorConfig",
    "load_config_from_env",
    "MarketSnapshot",
    "PriceStateStore",
    "Slot",
]
