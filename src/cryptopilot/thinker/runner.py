"""Signal runner: periodic multi-timeframe signal generation.

For every configured (symbol, timeframe) pair the runner fetches candles
and a prediction concurrently, computes indicators, scores them and keeps
the latest signal per pair.  Exchange and model SDKs are blocking, so
each fetch runs in a worker thread via :func:`asyncio.to_thread`; all
state changes happen on the event-loop thread after ``gather`` returns.

Results are applied last-write-wins by candle timestamp: a result for a
window older than the one already applied for the same pair is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.constants import MIN_CANDLES, SIGNAL_HISTORY_LIMIT
from cryptopilot.core.exceptions import ExchangeError, ModelUnavailableError
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.models.candle import Candle
from cryptopilot.models.indicators import IndicatorSet
from cryptopilot.models.prediction import Prediction
from cryptopilot.models.signal import Sentiment, Signal
from cryptopilot.thinker.indicators import compute_indicators
from cryptopilot.thinker.predictor import NullPredictor, Predictor
from cryptopilot.thinker.signal_engine import SignalEngine

logger = logging.getLogger(__name__)

_FETCH_ERRORS = (ExchangeError, ConnectionError, TimeoutError, OSError, ValueError)


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Result of scoring one (symbol, timeframe) window."""

    symbol: str
    timeframe: str
    indicators: IndicatorSet
    signal: Signal | None

    @property
    def key(self) -> tuple[str, str]:
        return self.symbol, self.timeframe

    @property
    def timestamp(self) -> int:
        return self.indicators.timestamp


class SignalRunner:
    """Generates and tracks signals for all configured symbols and timeframes.

    Parameters
    ----------
    market:
        Candle source.
    config:
        Symbols, timeframes, candle limit, scorer thresholds and signal TTL.
    predictor:
        Price predictor; defaults to indicator-only mode.
    engine:
        Scorer; built from *config* when omitted.
    clock:
        Wall-clock source, injectable for tests.
    """

    def __init__(
        self,
        market: MarketDataClient,
        config: TradingConfig,
        predictor: Predictor | None = None,
        engine: SignalEngine | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._market = market
        self._config = config
        self._predictor = predictor or NullPredictor()
        self._engine = engine or SignalEngine(config)
        self._clock = clock
        self._active: dict[tuple[str, str], Signal] = {}
        self._applied_at: dict[tuple[str, str], int] = {}
        self._history: deque[Signal] = deque(maxlen=SIGNAL_HISTORY_LIMIT)
        self._sentiment: dict[str, Sentiment] = {}
        self._running = False

    # -- public API -----------------------------------------------------------

    async def step(self) -> list[Signal]:
        """Evaluate every pair once and return the newly emitted signals."""
        pairs = [(s, tf) for s in self._config.symbols for tf in self._config.timeframes]
        results = await asyncio.gather(*(self._evaluate(s, tf) for s, tf in pairs))

        emitted: list[Signal] = []
        for evaluation in results:
            if evaluation is not None and self._apply(evaluation) and evaluation.signal:
                emitted.append(evaluation.signal)

        self.expire()
        if emitted:
            logger.info("Emitted %d signal(s): %s", len(emitted), ", ".join(
                f"{s.symbol}/{s.timeframe} {s.direction.value} {s.strength:.0f}" for s in emitted
            ))
        return emitted

    async def run(self) -> None:
        """Run :meth:`step` every ``signal_interval_seconds`` until stopped."""
        self._running = True
        logger.info(
            "Signal runner started for %s on %s",
            ",".join(self._config.symbols),
            ",".join(self._config.timeframes),
        )
        while self._running:
            await self.step()
            await asyncio.sleep(self._config.signal_interval_seconds)
        logger.info("Signal runner stopped")

    def stop(self) -> None:
        self._running = False

    def set_sentiment(self, symbol: str, sentiment: Sentiment | None) -> None:
        """Set (or clear with ``None``) the external sentiment for *symbol*."""
        if sentiment is None:
            self._sentiment.pop(symbol, None)
        else:
            self._sentiment[symbol] = sentiment

    def sentiment_for(self, symbol: str) -> Sentiment | None:
        return self._sentiment.get(symbol)

    def active_signals(self, symbol: str | None = None) -> list[Signal]:
        """Latest unexpired signal per timeframe, optionally for one symbol."""
        self.expire()
        return [
            s for (sym, _), s in self._active.items() if symbol is None or sym == symbol
        ]

    def ranked_signals(self) -> list[Signal]:
        return self._engine.rank(self.active_signals())

    @property
    def history(self) -> list[Signal]:
        """Emitted signals, oldest first, capped at the history limit."""
        return list(self._history)

    def expire(self) -> int:
        """Drop active signals older than the TTL.  Returns how many."""
        now = self._clock()
        ttl = self._config.signal_ttl_seconds
        stale = [k for k, s in self._active.items() if s.is_expired(now, ttl)]
        for key in stale:
            del self._active[key]
        return len(stale)

    # -- evaluation -----------------------------------------------------------

    async def _evaluate(self, symbol: str, timeframe: str) -> Evaluation | None:
        candles, prediction = await asyncio.gather(
            self._fetch_candles(symbol, timeframe),
            self._predict(symbol, timeframe),
        )
        if candles is None:
            return None

        if len(candles) < MIN_CANDLES:
            logger.debug(
                "Skipping %s/%s: %d candles < %d", symbol, timeframe, len(candles), MIN_CANDLES
            )
            return None

        indicators = compute_indicators(candles)
        signal = self._engine.score(
            symbol,
            timeframe,
            indicators,
            prediction=prediction,
            sentiment=self._sentiment.get(symbol),
            now=self._clock(),
        )
        return Evaluation(symbol, timeframe, indicators, signal)

    async def _fetch_candles(self, symbol: str, timeframe: str) -> list[Candle] | None:
        try:
            return await asyncio.to_thread(
                self._market.get_historical_candles, symbol, timeframe, self._config.candles_limit
            )
        except _FETCH_ERRORS as exc:
            logger.warning("Candle fetch failed for %s/%s: %s", symbol, timeframe, exc)
            return None

    async def _predict(self, symbol: str, timeframe: str) -> Prediction | None:
        if not self._predictor.is_healthy:
            return None
        try:
            return await asyncio.to_thread(self._predictor.predict, symbol, timeframe)
        except ModelUnavailableError as exc:
            logger.debug("No prediction for %s/%s: %s", symbol, timeframe, exc)
            return None

    def _apply(self, evaluation: Evaluation) -> bool:
        """Store *evaluation* unless a newer window was already applied.

        A newer window that produced no signal clears the pair's active
        signal.  Returns ``False`` for a dropped stale result.
        """
        key = evaluation.key
        applied = self._applied_at.get(key)
        if applied is not None and evaluation.timestamp < applied:
            logger.debug(
                "Dropping stale result for %s/%s (%d < %d)", *key, evaluation.timestamp, applied
            )
            return False

        self._applied_at[key] = evaluation.timestamp
        if evaluation.signal is None:
            self._active.pop(key, None)
        else:
            self._active[key] = evaluation.signal
            self._history.append(evaluation.signal)
        return True
