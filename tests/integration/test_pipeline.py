"""End-to-end paper-trading pipeline.

Candles → indicators → scorer → consensus → risk → paper fill →
position monitoring → exit, with persistence on disk.  Only the market
data source is stubbed.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.database import FilePositionRepository, FileTradeRepository
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.core.paper_client import PaperOrderExecutor
from cryptopilot.core.storage import FileStore
from cryptopilot.models.candle import Candle
from cryptopilot.models.position import ExitReason, PositionSide
from cryptopilot.models.prediction import Prediction
from cryptopilot.models.signal import SignalDirection
from cryptopilot.models.trade import OrderSide
from cryptopilot.thinker.consensus import ConsensusAggregator
from cryptopilot.thinker.predictor import StaticPredictor
from cryptopilot.thinker.runner import SignalRunner
from cryptopilot.trader.position_manager import PositionManager
from cryptopilot.trader.risk_manager import RiskManager
from cryptopilot.trader.runner import TradingRunner


class ReplayMarket(MarketDataClient):
    """Serves a fixed candle history and a settable last price."""

    def __init__(self, candles: list[Candle]) -> None:
        self.candles = candles
        self.price = candles[-1].close

    def get_historical_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        return self.candles[-limit:]

    def get_latest_price(self, symbol: str) -> float:
        return self.price


@pytest.fixture
def market(make_candles: Callable[..., list[Candle]]) -> ReplayMarket:
    # steady sell-off ending at 141: oversold on every oscillator
    return ReplayMarket(make_candles([200.0 - i for i in range(60)]))


@pytest.fixture
def config(tmp_path: Path) -> TradingConfig:
    return TradingConfig(
        symbols=["BTC"],
        timeframes=["1h", "4h"],
        initial_portfolio_value=10_000.0,
        data_dir=str(tmp_path),
    )


def _predictor(symbol: str, timeframes: list[str], current: float) -> StaticPredictor:
    predictor = StaticPredictor(version="replay")
    for tf in timeframes:
        predictor.set(Prediction(symbol, tf, current, current * 1.03, 80.0, "replay"))
    return predictor


class TestPaperPipeline:
    @pytest.mark.asyncio
    async def test_signal_to_take_profit(
        self, tmp_path: Path, market: ReplayMarket, config: TradingConfig
    ) -> None:
        executor = PaperOrderExecutor(market, initial_balance=10_000.0)
        risk = RiskManager(config, today=lambda: "2024-01-01")
        signals = SignalRunner(
            market, config, predictor=_predictor("BTC", config.timeframes, market.price)
        )
        positions = PositionManager(
            executor,
            risk,
            config,
            trades=FileTradeRepository(tmp_path),
            positions=FilePositionRepository(tmp_path),
        )
        runner = TradingRunner(
            market, signals, ConsensusAggregator(config), positions, risk, config, store=FileStore()
        )

        await runner.market_tick()
        (position,) = await runner.signal_tick()

        emitted = signals.active_signals("BTC")
        assert len(emitted) == 2
        assert all(s.direction is SignalDirection.BUY for s in emitted)
        assert all(s.strength > config.strong_signal_threshold for s in emitted)

        assert position.side is PositionSide.LONG
        assert position.entry_price == pytest.approx(141.0)
        assert position.size == pytest.approx(1000.0 / 141.0)
        assert position.take_profit == pytest.approx(141.0 * 1.04)
        assert position.signal_id in {s.id for s in emitted}
        assert executor.cash == pytest.approx(10_000.0 - 1000.0 * 1.001)

        # price rallies through the take-profit
        market.price = 147.0
        await runner.market_tick()
        (closed,) = await runner.position_tick()

        expected_pnl = (147.0 - 141.0) * 1000.0 / 141.0
        assert closed.close_reason is ExitReason.TAKE_PROFIT
        assert closed.realized_pnl == pytest.approx(expected_pnl)
        assert risk.state.total_pnl == pytest.approx(expected_pnl)
        assert risk.open_positions == {}
        assert [side for _, side, _ in executor.fills] == [OrderSide.BUY, OrderSide.SELL]

        trades = FileTradeRepository(tmp_path).get_trades()
        assert [t.reason for t in trades] == ["entry", "take_profit"]
        assert FilePositionRepository(tmp_path).load_open_positions() == []

        status = FileStore.read_json(tmp_path / "bot_status.json")
        assert status["positions"] == {}
        assert status["risk"]["winning_trades"] == 1

    @pytest.mark.asyncio
    async def test_restart_resumes_open_position(
        self, tmp_path: Path, market: ReplayMarket, config: TradingConfig
    ) -> None:
        def build() -> tuple[TradingRunner, PositionManager, RiskManager]:
            risk = RiskManager(config, today=lambda: "2024-01-01")
            positions = PositionManager(
                PaperOrderExecutor(market, initial_balance=10_000.0),
                risk,
                config,
                positions=FilePositionRepository(tmp_path),
            )
            signals = SignalRunner(
                market, config, predictor=_predictor("BTC", config.timeframes, market.price)
            )
            runner = TradingRunner(
                market, signals, ConsensusAggregator(config), positions, risk, config
            )
            return runner, positions, risk

        runner, _, _ = build()
        await runner.market_tick()
        (opened,) = await runner.signal_tick()

        runner, positions, risk = build()
        assert positions.restore() == 1
        assert risk.open_positions == {"BTC": opened.id}

        # the restored position blocks a second entry in the same symbol
        await runner.market_tick()
        assert await runner.signal_tick() == []

        market.price = 130.0
        await runner.market_tick()
        (closed,) = await runner.position_tick()
        assert closed.id == opened.id
        assert closed.close_reason is ExitReason.STOP_LOSS

    @pytest.mark.asyncio
    async def test_indicators_alone_need_two_timeframes(
        self, market: ReplayMarket, tmp_path: Path
    ) -> None:
        config = TradingConfig(symbols=["BTC"], timeframes=["1h"], data_dir=str(tmp_path))
        risk = RiskManager(config)
        signals = SignalRunner(market, config)
        positions = PositionManager(PaperOrderExecutor(market), risk, config)
        runner = TradingRunner(market, signals, ConsensusAggregator(config), positions, risk, config)

        await runner.market_tick()
        assert await runner.signal_tick() == []
        assert len(signals.active_signals("BTC")) <= 1
