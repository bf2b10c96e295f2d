"""Unit tests for cryptopilot.core.paper_client."""

from __future__ import annotations

import pytest

from cryptopilot.core.exceptions import ExecutionError, InsufficientFundsError
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.core.paper_client import PaperOrderExecutor
from cryptopilot.core.trading_client import OrderExecutor
from cryptopilot.models.candle import Candle
from cryptopilot.models.trade import OrderSide

# ---------------------------------------------------------------------------
# Stub market client
# ---------------------------------------------------------------------------


class StubMarketClient(MarketDataClient):
    """Returns a fixed (mutable) price per symbol."""

    def __init__(self, prices: dict[str, float] | None = None) -> None:
        self.prices = prices or {"BTC": 50_000.0}

    def get_historical_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        return []

    def get_latest_price(self, symbol: str) -> float:
        return self.prices[symbol]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestPaperOrderExecutor:
    def test_is_order_executor(self) -> None:
        assert isinstance(PaperOrderExecutor(StubMarketClient()), OrderExecutor)

    def test_initial_balance(self) -> None:
        paper = PaperOrderExecutor(StubMarketClient(), initial_balance=5_000.0)
        assert paper.cash == 5_000.0
        assert paper.get_balances() == {"USDT": 5_000.0}

    def test_buy_deducts_value_and_fee(self) -> None:
        paper = PaperOrderExecutor(StubMarketClient(), initial_balance=10_000.0, fee_rate=0.001)
        fill = paper.submit_order("BTC", OrderSide.BUY, 0.1)

        assert fill.filled_price == 50_000.0
        assert fill.filled_size == 0.1
        assert fill.fee == pytest.approx(5.0)
        assert fill.order_id is not None and fill.order_id.startswith("paper-")
        assert paper.cash == pytest.approx(10_000.0 - 5_000.0 - 5.0)
        assert paper.get_balances()["BTC"] == pytest.approx(0.1)

    def test_sell_credits_value_minus_fee(self) -> None:
        market = StubMarketClient()
        paper = PaperOrderExecutor(market, initial_balance=10_000.0, fee_rate=0.0)
        paper.submit_order("BTC", OrderSide.BUY, 0.1)
        market.prices["BTC"] = 55_000.0
        paper.submit_order("BTC", OrderSide.SELL, 0.1)

        assert paper.cash == pytest.approx(10_500.0)
        assert "BTC" not in paper.get_balances()

    def test_sell_without_holdings_goes_short(self) -> None:
        paper = PaperOrderExecutor(StubMarketClient(), initial_balance=1_000.0, fee_rate=0.0)
        paper.submit_order("BTC", OrderSide.SELL, 0.01)
        assert paper.get_balances()["BTC"] == pytest.approx(-0.01)
        assert paper.cash == pytest.approx(1_500.0)

    def test_insufficient_funds(self) -> None:
        paper = PaperOrderExecutor(StubMarketClient(), initial_balance=100.0)
        with pytest.raises(InsufficientFundsError):
            paper.submit_order("BTC", OrderSide.BUY, 1.0)
        assert paper.cash == 100.0
        assert paper.fills == []

    @pytest.mark.parametrize("size", [0.0, -1.0])
    def test_invalid_size(self, size: float) -> None:
        paper = PaperOrderExecutor(StubMarketClient())
        with pytest.raises(ExecutionError, match="invalid size"):
            paper.submit_order("BTC", OrderSide.BUY, size)

    def test_fills_recorded(self) -> None:
        paper = PaperOrderExecutor(StubMarketClient())
        paper.submit_order("BTC", OrderSide.BUY, 0.01)
        paper.submit_order("BTC", OrderSide.SELL, 0.01)
        assert [(s, side) for s, side, _ in paper.fills] == [
            ("BTC", OrderSide.BUY),
            ("BTC", OrderSide.SELL),
        ]

    def test_portfolio_value(self) -> None:
        market = StubMarketClient({"BTC": 100.0, "ETH": 10.0})
        paper = PaperOrderExecutor(market, initial_balance=1_000.0, fee_rate=0.0)
        paper.submit_order("BTC", OrderSide.BUY, 2.0)
        paper.submit_order("ETH", OrderSide.BUY, 10.0)

        assert paper.portfolio_value() == pytest.approx(1_000.0)
        market.prices["BTC"] = 150.0
        assert paper.portfolio_value() == pytest.approx(1_100.0)
        assert paper.portfolio_value({"BTC": 50.0, "ETH": 10.0}) == pytest.approx(900.0)
