"""Abstract market data interface with KuCoin implementation.

Wraps exchange market-data APIs behind an ABC so the signal pipeline can
be tested with deterministic candle data.  The KuCoin SDK is blocking;
async callers run these methods through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from cryptopilot.core.constants import KUCOIN_TIMEFRAMES, TIMEFRAME_SECONDS
from cryptopilot.core.exceptions import ExchangeError
from cryptopilot.core.retry import RateLimiter, retry
from cryptopilot.core.symbols import to_kucoin_symbol
from cryptopilot.models.candle import Candle

logger = logging.getLogger(__name__)

_KUCOIN_URL = "https://api.kucoin.com"
_KUCOIN_MAX_CANDLES = 1500


class MarketDataClient(ABC):
    """Abstract market data source."""

    @abstractmethod
    def get_historical_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        """Return up to *limit* most recent candles, oldest first.

        Parameters
        ----------
        symbol:
            Base coin, e.g. ``"BTC"``.
        timeframe:
            A key of :data:`~cryptopilot.core.constants.TIMEFRAME_SECONDS`.
        limit:
            Maximum number of candles.
        """

    @abstractmethod
    def get_latest_price(self, symbol: str) -> float:
        """Return the last traded price for *symbol*.

        Raises :class:`ExchangeError` if no valid (positive) price is available.
        """


# ---------------------------------------------------------------------------
# KuCoin implementation
# ---------------------------------------------------------------------------


class KuCoinMarketClient(MarketDataClient):
    """KuCoin public market data with bounded retries and rate limiting.

    No authentication required; only public endpoints are used.
    """

    def __init__(self, calls_per_second: float = 2.0) -> None:
        self._rate_limiter = RateLimiter(calls_per_second)
        self._market = self._create_client()

    @staticmethod
    def _create_client() -> object:
        from kucoin.client import Market  # type: ignore[import-untyped]

        return Market(url=_KUCOIN_URL)

    @retry(max_retries=3, base_delay=3.5, max_delay=30.0)
    def get_historical_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        """Fetch candles from KuCoin ``/api/v1/market/candles``."""
        try:
            kline_type = KUCOIN_TIMEFRAMES[timeframe]
        except KeyError:
            raise ValueError(f"Unknown timeframe: {timeframe!r}") from None

        limit = max(1, min(int(limit), _KUCOIN_MAX_CANDLES))
        end_at = int(time.time())
        start_at = end_at - TIMEFRAME_SECONDS[timeframe] * (limit + 1)

        self._rate_limiter.acquire()
        raw = self._call(
            "get_kline",
            to_kucoin_symbol(symbol),
            kline_type,
            startAt=start_at,
            endAt=end_at,
        )
        candles = self.parse_klines(raw)
        return candles[-limit:]

    @retry(max_retries=3, base_delay=3.5, max_delay=30.0)
    def get_latest_price(self, symbol: str) -> float:
        """Fetch the latest price from the KuCoin level-1 ticker."""
        self._rate_limiter.acquire()
        ticker = self._call("get_ticker", to_kucoin_symbol(symbol))
        price = 0.0
        if isinstance(ticker, dict):
            try:
                price = float(ticker.get("price") or 0.0)
            except (TypeError, ValueError):
                price = 0.0
        if price <= 0:
            raise ExchangeError(f"No valid price for {symbol}: {ticker!r}")
        return price

    def _call(self, method: str, *args: object, **kwargs: object) -> object:
        """Invoke an SDK method, normalising its errors to :class:`ExchangeError`."""
        try:
            return getattr(self._market, method)(*args, **kwargs)
        except ExchangeError:
            raise
        except Exception as exc:
            # kucoin-python raises plain Exception for API-level errors
            raise ExchangeError(f"KuCoin {method} failed: {exc}") from exc

    # -- parsing --------------------------------------------------------------

    @staticmethod
    def parse_klines(raw: object) -> list[Candle]:
        """Convert a KuCoin kline response into candles, oldest first.

        KuCoin returns newest-first rows of
        ``[timestamp, open, close, high, low, volume, turnover]``.
        Malformed rows and rows that break the OHLC invariant are dropped.
        """
        if not isinstance(raw, list):
            return []
        candles: dict[int, Candle] = {}
        for item in raw:
            if not isinstance(item, (list, tuple)) or len(item) < 6:
                continue
            try:
                candle = Candle(
                    timestamp=int(float(item[0])),
                    open=float(item[1]),
                    close=float(item[2]),
                    high=float(item[3]),
                    low=float(item[4]),
                    volume=float(item[5]),
                )
            except (TypeError, ValueError) as exc:
                logger.debug("Skipping malformed kline %r: %s", item, exc)
                continue
            problems = candle.validate()
            if problems:
                logger.debug("Skipping invalid kline %r: %s", item, "; ".join(problems))
                continue
            candles[candle.timestamp] = candle
        return [candles[ts] for ts in sorted(candles)]
