"""Symbol conversion between the internal base-coin form and exchange pairs.

Internally a symbol is the upper-case base coin (``"BTC"``).  KuCoin pairs
use a dash (``"BTC-USDT"``) and Binance pairs are concatenated
(``"BTCUSDT"``).
"""

from __future__ import annotations

from cryptopilot.core.constants import QUOTE_ASSET

_PAIR_SEPARATORS = ("/", "-", "_")


def normalize_symbol(symbol: str, quote: str = QUOTE_ASSET) -> str:
    """Reduce any pair spelling to the base coin.

    >>> normalize_symbol("btc/usdt")
    'BTC'
    >>> normalize_symbol("ETH-USDT")
    'ETH'
    >>> normalize_symbol("SOLUSDT")
    'SOL'
    >>> normalize_symbol(" doge ")
    'DOGE'
    """
    text = symbol.upper().strip()
    for sep in _PAIR_SEPARATORS:
        if sep in text:
            return text.split(sep, 1)[0]
    if text != quote and text.endswith(quote):
        return text.removesuffix(quote)
    return text


def to_kucoin_symbol(symbol: str, quote: str = QUOTE_ASSET) -> str:
    """``"BTC"`` → ``"BTC-USDT"``."""
    return f"{normalize_symbol(symbol, quote)}-{quote}"


def to_binance_symbol(symbol: str, quote: str = QUOTE_ASSET) -> str:
    """Convert a base coin (or any pair spelling) to a Binance pair.

    >>> to_binance_symbol("BTC")
    'BTCUSDT'
    >>> to_binance_symbol("eth/usdt")
    'ETHUSDT'
    """
    return f"{normalize_symbol(symbol, quote)}{quote}"


def from_binance_symbol(symbol: str, quote: str = QUOTE_ASSET) -> str:
    """Convert a Binance trading pair back to a base coin.

    >>> from_binance_symbol("BTCUSDT")
    'BTC'
    """
    return symbol.upper().strip().removesuffix(quote)
