from __future__ import annotations

"""
Root package for the spread_monitor library.

Re-exports the feed adapter types for convenience.
"""

from .market_data_client import (
    CcxtProFeed,
    FeedAdapter,
    FeedError,
    NatsFeed,
    PriceLevel,
    TopOfBook,
    TopOfBookUpdate,
)

__all__ = [
    "CcxtProFeed",
    "FeedAdapter",
    "FeedError",
    "NatsFeed",
    "PriceLevel",
    "TopOfBook",
    "TopOfBookUpdate",
]
