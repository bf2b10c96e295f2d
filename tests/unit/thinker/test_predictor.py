"""Tests for cryptopilot.thinker.predictor."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from cryptopilot.core.exceptions import ExchangeError, ModelUnavailableError
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.models.candle import Candle
from cryptopilot.models.prediction import Prediction, PredictionDirection
from cryptopilot.thinker.predictor import NullPredictor, StaticPredictor, TrendPredictor


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _Market(MarketDataClient):
    def __init__(self, candles: list[Candle], fail: bool = False) -> None:
        self.candles = candles
        self.fail = fail
        self.requested: list[int] = []

    def get_historical_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        self.requested.append(limit)
        if self.fail:
            raise ExchangeError("down")
        return self.candles[-limit:]

    def get_latest_price(self, symbol: str) -> float:
        return self.candles[-1].close


class TestNullPredictor:
    def test_always_unavailable(self) -> None:
        p = NullPredictor()
        assert not p.is_healthy
        assert p.version == "none"
        with pytest.raises(ModelUnavailableError):
            p.predict("BTC", "1h")


class TestStaticPredictor:
    def test_serves_preset(self) -> None:
        pred = Prediction("BTC", "1h", 100.0, 105.0, 80.0)
        p = StaticPredictor({("BTC", "1h"): pred}, version="replay-7")
        assert p.predict("BTC", "1h") is pred
        assert p.version == "replay-7"
        assert p.is_healthy

    def test_missing_key(self) -> None:
        with pytest.raises(ModelUnavailableError, match="ETH/4h"):
            StaticPredictor().predict("ETH", "4h")

    def test_set_overrides(self) -> None:
        p = StaticPredictor()
        p.set(Prediction("BTC", "1h", 100.0, 95.0, 70.0))
        p.set(Prediction("BTC", "1h", 100.0, 110.0, 90.0))
        assert p.predict("BTC", "1h").predicted_price == 110.0


class TestTrendPredictor:
    def test_linear_series(self, make_candles: Callable[..., list[Candle]]) -> None:
        market = _Market(make_candles([100.0 + 2 * i for i in range(40)]))
        p = TrendPredictor(market, window=30)
        pred = p.predict("BTC", "1h")

        assert market.requested == [30]
        assert pred.current_price == pytest.approx(178.0)
        assert pred.predicted_price == pytest.approx(180.0)
        assert pred.confidence == pytest.approx(100.0)
        assert pred.direction is PredictionDirection.BULLISH
        assert pred.model_version == "trend-ls-w30-h1"

    def test_horizon(self, make_candles: Callable[..., list[Candle]]) -> None:
        market = _Market(make_candles([200.0 - i for i in range(10)]))
        pred = TrendPredictor(market, window=10, horizon=3).predict("BTC", "1h")
        assert pred.predicted_price == pytest.approx(188.0)
        assert pred.direction is PredictionDirection.BEARISH

    def test_flat_series_has_zero_confidence(
        self, make_candles: Callable[..., list[Candle]]
    ) -> None:
        market = _Market(make_candles([50.0] * 30))
        pred = TrendPredictor(market).predict("BTC", "1h")
        assert pred.confidence == 0.0
        assert pred.predicted_price == pytest.approx(50.0)

    def test_projection_floored_at_zero(self, make_candles: Callable[..., list[Candle]]) -> None:
        market = _Market(make_candles([40.0 - 10 * i for i in range(4)], spread=0.0))
        pred = TrendPredictor(market, window=4, horizon=5).predict("BTC", "1h")
        assert pred.predicted_price == 0.0

    def test_short_history_unavailable(self, make_candles: Callable[..., list[Candle]]) -> None:
        p = TrendPredictor(_Market(make_candles([1.0] * 10)), window=30)
        with pytest.raises(ModelUnavailableError, match="Need 30"):
            p.predict("BTC", "1h")

    def test_unhealthy_after_repeated_failures(
        self, make_candles: Callable[..., list[Candle]]
    ) -> None:
        market = _Market(make_candles([100.0 + i for i in range(30)]), fail=True)
        p = TrendPredictor(market)
        for _ in range(3):
            with pytest.raises(ModelUnavailableError):
                p.predict("BTC", "1h")
        assert not p.is_healthy

        market.fail = False
        p.predict("BTC", "1h")
        assert p.is_healthy

    def test_half_open_after_cooldown(self, make_candles: Callable[..., list[Candle]]) -> None:
        clock = FakeClock()
        market = _Market(make_candles([100.0 + i for i in range(30)]), fail=True)
        p = TrendPredictor(market, retry_after=60.0, clock=clock)
        for _ in range(3):
            with pytest.raises(ModelUnavailableError):
                p.predict("BTC", "1h")
        assert not p.is_healthy

        clock.now += 59.0
        assert not p.is_healthy
        clock.now += 1.0
        assert p.is_healthy

        # failed trial restarts the wait
        with pytest.raises(ModelUnavailableError):
            p.predict("BTC", "1h")
        assert not p.is_healthy
        assert p.consecutive_failures == 4

        clock.now += 60.0
        market.fail = False
        pred = p.predict("BTC", "1h")
        assert pred.created_at == clock.now
        assert p.is_healthy
        assert p.consecutive_failures == 0

    def test_window_too_small(self) -> None:
        with pytest.raises(ValueError):
            TrendPredictor(_Market([]), window=2)
