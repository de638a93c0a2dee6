# src/spread_monitor/symbols.py
import re
from typing import Iterable, List, Tuple

# Longest suffix wins (e.g., USDT before USD)
DEFAULT_QUOTES = ("USDT", "USDC", "BUSD", "FDUSD", "USD", "EUR", "BTC", "ETH")


def norm_symbol(sym: str) -> str:
    return re.sub(r"[/\-\s]", "", sym).upper()


def build_symbol_splitter(assets: Iterable[str]):
    quotes: List[str] = sorted({a.upper() for a in assets}, key=len, reverse=True)

    def split(symbol: str) -> Tuple[str, str]:
        s = norm_symbol(symbol)
        for q in quotes:
            if s.endswith(q) and len(s) > len(q):
                return s[: -len(q)], q
        raise ValueError(f"Cannot split symbol={symbol}. quotes={quotes}")

    return split


_split_known = build_symbol_splitter(DEFAULT_QUOTES)


def split_symbol(symbol: str) -> Tuple[str, str]:
    """
    Split a symbol into (base, quote).

    "BTC/USDT" -> ("BTC", "USDT"); slash-less symbols fall back to known quotes.
    """
    if "/" in symbol:
        base, _, quote = symbol.partition("/")
        # ccxt derivatives carry a settle suffix, e.g. "BTC/USDT:USDT"
        quote = quote.split(":", 1)[0]
        if base and quote:
            return base.strip().upper(), quote.strip().upper()
    return _split_known(symbol)
