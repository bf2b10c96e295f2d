"""Tests for cryptopilot.thinker.runner (SignalRunner)."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable

import pytest

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.exceptions import ExchangeError
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.models.candle import Candle
from cryptopilot.models.indicators import IndicatorSet
from cryptopilot.models.prediction import Prediction
from cryptopilot.models.signal import Sentiment, Signal, SignalDirection
from cryptopilot.thinker.predictor import Predictor, StaticPredictor, TrendPredictor
from cryptopilot.thinker.runner import SignalRunner
from cryptopilot.thinker.signal_engine import SignalEngine

# ---------------------------------------------------------------------------
# Stubs
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubMarket(MarketDataClient):
    """Serves a candle list per (symbol, timeframe); listed keys raise."""

    def __init__(self, default: list[Candle]) -> None:
        self.default = default
        self.candles: dict[tuple[str, str], list[Candle]] = {}
        self.failing: set[tuple[str, str]] = set()

    def get_historical_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        if (symbol, timeframe) in self.failing:
            raise ExchangeError(f"{symbol}/{timeframe} unavailable")
        return list(self.candles.get((symbol, timeframe), self.default))[-limit:]

    def get_latest_price(self, symbol: str) -> float:
        return self.default[-1].close


class ScriptedEngine(SignalEngine):
    """Emits a fixed BUY signal (or nothing) and records every call."""

    def __init__(self, config: TradingConfig, emit: bool = True, strength: float = 80.0) -> None:
        super().__init__(config)
        self.emit = emit
        self.strength = strength
        self.calls: list[tuple[str, str, int, Prediction | None, Sentiment | None]] = []

    def score(
        self,
        symbol: str,
        timeframe: str,
        indicators: IndicatorSet,
        prediction: Prediction | None = None,
        sentiment: Sentiment | None = None,
        now: float | None = None,
    ) -> Signal | None:
        self.calls.append((symbol, timeframe, indicators.timestamp, prediction, sentiment))
        if not self.emit:
            return None
        return Signal(
            id=f"{symbol}-{timeframe}-{indicators.timestamp}",
            symbol=symbol,
            timeframe=timeframe,
            direction=SignalDirection.BUY,
            strength=self.strength,
            confidence=70.0,
            price=indicators.price,
            created_at=now or 0.0,
        )


class CountingPredictor(Predictor):
    def __init__(self, healthy: bool = True) -> None:
        self.healthy = healthy
        self.calls = 0

    @property
    def is_healthy(self) -> bool:
        return self.healthy

    def predict(self, symbol: str, timeframe: str) -> Prediction:
        self.calls += 1
        return Prediction(symbol, timeframe, 100.0, 101.0, 65.0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> TradingConfig:
    return TradingConfig(symbols=["BTC", "ETH"], timeframes=["1h", "4h"], signal_ttl_seconds=3600.0)


@pytest.fixture
def candles(make_candles: Callable[..., list[Candle]]) -> list[Candle]:
    return make_candles([100.0 + (i % 5) for i in range(60)])


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestStep:
    @pytest.mark.asyncio
    async def test_evaluates_every_pair(self, config: TradingConfig, candles: list[Candle]) -> None:
        engine = ScriptedEngine(config)
        runner = SignalRunner(StubMarket(candles), config, engine=engine, clock=FakeClock())

        emitted = await runner.step()

        assert {(s.symbol, s.timeframe) for s in emitted} == {
            ("BTC", "1h"), ("BTC", "4h"), ("ETH", "1h"), ("ETH", "4h"),
        }
        assert len(runner.active_signals("BTC")) == 2
        assert len(runner.active_signals()) == 4
        assert len(runner.history) == 4

    @pytest.mark.asyncio
    async def test_short_history_skipped(
        self, config: TradingConfig, make_candles: Callable[..., list[Candle]]
    ) -> None:
        engine = ScriptedEngine(config)
        market = StubMarket(make_candles([100.0] * 60))
        market.candles[("BTC", "1h")] = make_candles([100.0] * 49)
        runner = SignalRunner(market, config, engine=engine, clock=FakeClock())

        emitted = await runner.step()

        assert len(emitted) == 3
        assert ("BTC", "1h") not in {(c[0], c[1]) for c in engine.calls}

    @pytest.mark.asyncio
    async def test_fetch_failure_isolated(self, config: TradingConfig, candles: list[Candle]) -> None:
        market = StubMarket(candles)
        market.failing.add(("ETH", "4h"))
        runner = SignalRunner(market, config, engine=ScriptedEngine(config), clock=FakeClock())

        emitted = await runner.step()
        assert len(emitted) == 3
        assert all((s.symbol, s.timeframe) != ("ETH", "4h") for s in emitted)

    @pytest.mark.asyncio
    async def test_real_engine_with_model(
        self, make_candles: Callable[..., list[Candle]]
    ) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"])
        # steady decline: RSI and stochastic oversold, model calls the bottom
        market = StubMarket(make_candles([200.0 - i for i in range(60)]))
        predictor = StaticPredictor(
            {("BTC", "1h"): Prediction("BTC", "1h", 141.0, 145.0, 80.0)}
        )
        runner = SignalRunner(market, config, predictor=predictor, clock=FakeClock())

        (signal,) = await runner.step()
        assert signal.direction is SignalDirection.BUY
        assert "ML_BULLISH" in signal.indicators
        assert "RSI_OVERSOLD" in signal.indicators
        assert signal.strength >= config.min_signal_strength


class TestLastWriteWins:
    @pytest.mark.asyncio
    async def test_stale_window_dropped(
        self, make_candles: Callable[..., list[Candle]]
    ) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"])
        market = StubMarket(make_candles([100.0] * 60, start=2_000_000))
        runner = SignalRunner(market, config, engine=ScriptedEngine(config), clock=FakeClock())
        await runner.step()
        (first,) = runner.active_signals()

        market.default = make_candles([100.0] * 60, start=1_000_000)
        assert await runner.step() == []
        assert runner.active_signals() == [first]

    @pytest.mark.asyncio
    async def test_newer_window_without_signal_clears(
        self, make_candles: Callable[..., list[Candle]]
    ) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"])
        engine = ScriptedEngine(config)
        market = StubMarket(make_candles([100.0] * 60, start=1_000_000))
        runner = SignalRunner(market, config, engine=engine, clock=FakeClock())
        await runner.step()
        assert runner.active_signals()

        engine.emit = False
        market.default = make_candles([100.0] * 60, start=2_000_000)
        await runner.step()
        assert runner.active_signals() == []
        assert len(runner.history) == 1

    @pytest.mark.asyncio
    async def test_newer_window_replaces(
        self, make_candles: Callable[..., list[Candle]]
    ) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"])
        market = StubMarket(make_candles([100.0] * 60, start=1_000_000))
        runner = SignalRunner(market, config, engine=ScriptedEngine(config), clock=FakeClock())
        await runner.step()

        market.default = make_candles([100.0] * 60, start=2_000_000)
        await runner.step()
        (active,) = runner.active_signals()
        assert active.id.endswith(str(market.default[-1].timestamp))


class TestExpiry:
    @pytest.mark.asyncio
    async def test_signals_expire_after_ttl(self, config: TradingConfig, candles: list[Candle]) -> None:
        clock = FakeClock()
        runner = SignalRunner(StubMarket(candles), config, engine=ScriptedEngine(config), clock=clock)
        await runner.step()

        clock.now += 3599.0
        assert len(runner.active_signals()) == 4
        clock.now += 1.0
        assert runner.active_signals() == []
        assert runner.expire() == 0
        assert len(runner.history) == 4


class TestPredictionAndSentiment:
    @pytest.mark.asyncio
    async def test_unhealthy_predictor_skipped(
        self, config: TradingConfig, candles: list[Candle]
    ) -> None:
        predictor = CountingPredictor(healthy=False)
        engine = ScriptedEngine(config)
        runner = SignalRunner(StubMarket(candles), config, predictor=predictor, engine=engine)
        await runner.step()
        assert predictor.calls == 0
        assert all(call[3] is None for call in engine.calls)

    @pytest.mark.asyncio
    async def test_missing_prediction_scores_without_model(
        self, config: TradingConfig, candles: list[Candle]
    ) -> None:
        engine = ScriptedEngine(config)
        runner = SignalRunner(
            StubMarket(candles), config, predictor=StaticPredictor(), engine=engine
        )
        assert len(await runner.step()) == 4
        assert all(call[3] is None for call in engine.calls)

    @pytest.mark.asyncio
    async def test_prediction_and_sentiment_forwarded(
        self, config: TradingConfig, candles: list[Candle]
    ) -> None:
        engine = ScriptedEngine(config)
        runner = SignalRunner(
            StubMarket(candles), config, predictor=CountingPredictor(), engine=engine
        )
        runner.set_sentiment("BTC", Sentiment.BEARISH)
        await runner.step()

        by_symbol = {call[0]: call for call in engine.calls}
        assert by_symbol["BTC"][4] is Sentiment.BEARISH
        assert by_symbol["ETH"][4] is None
        assert all(call[3] is not None for call in engine.calls)

        runner.set_sentiment("BTC", None)
        assert runner.sentiment_for("BTC") is None


class TestRankingAndLoop:
    @pytest.mark.asyncio
    async def test_ranked_signals(
        self, config: TradingConfig, candles: list[Candle]
    ) -> None:
        engine = ScriptedEngine(config)
        runner = SignalRunner(StubMarket(candles), config, engine=engine, clock=FakeClock())
        await runner.step()
        ranked = runner.ranked_signals()
        assert len(ranked) == 4
        assert ranked == SignalEngine.rank(ranked)

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, candles: list[Candle]) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"], signal_interval_seconds=0.01)
        engine = ScriptedEngine(config)
        runner = SignalRunner(StubMarket(candles), config, engine=engine)

        task = asyncio.create_task(runner.run())
        await asyncio.sleep(0.05)
        runner.stop()
        await asyncio.wait_for(task, timeout=1.0)
        assert len(engine.calls) >= 1


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_candles_and_prediction_overlap(self, candles: list[Candle]) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"])
        candles_started = threading.Event()
        prediction_started = threading.Event()

        class HandshakeMarket(StubMarket):
            def get_historical_candles(
                self, symbol: str, timeframe: str, limit: int
            ) -> list[Candle]:
                candles_started.set()
                if not prediction_started.wait(timeout=2.0):
                    raise AssertionError("prediction never started")
                return super().get_historical_candles(symbol, timeframe, limit)

        class HandshakePredictor(CountingPredictor):
            def predict(self, symbol: str, timeframe: str) -> Prediction:
                prediction_started.set()
                if not candles_started.wait(timeout=2.0):
                    raise AssertionError("candle fetch never started")
                return super().predict(symbol, timeframe)

        engine = ScriptedEngine(config)
        runner = SignalRunner(
            HandshakeMarket(candles),
            config,
            predictor=HandshakePredictor(),
            engine=engine,
            clock=FakeClock(),
        )
        assert len(await runner.step()) == 1
        assert engine.calls[0][3] is not None


class TestPredictorRecovery:
    @pytest.mark.asyncio
    async def test_trend_predictor_back_after_cooldown(self, candles: list[Candle]) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"])
        clock = FakeClock()
        model_market = StubMarket(candles)
        model_market.failing.add(("BTC", "1h"))
        predictor = TrendPredictor(model_market, retry_after=300.0, clock=clock)
        engine = ScriptedEngine(config)
        runner = SignalRunner(
            StubMarket(candles), config, predictor=predictor, engine=engine, clock=clock
        )

        for _ in range(3):
            await runner.step()
        assert not predictor.is_healthy

        model_market.failing.clear()
        await runner.step()
        assert engine.calls[-1][3] is None
        assert predictor.consecutive_failures == 3

        clock.now += 300.0
        await runner.step()
        assert engine.calls[-1][3] is not None
        assert predictor.is_healthy
        assert predictor.consecutive_failures == 0
