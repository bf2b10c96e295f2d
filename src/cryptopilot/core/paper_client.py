"""Paper (simulated) order execution for testing and development.

Implements :class:`~cryptopilot.core.trading_client.OrderExecutor` without
placing real orders.  Fills happen at the latest price from a
:class:`~cryptopilot.core.market_client.MarketDataClient` so paper
results track the live market.
"""

from __future__ import annotations

import logging
import uuid

from cryptopilot.core.constants import DEFAULT_INITIAL_PORTFOLIO, QUOTE_ASSET
from cryptopilot.core.exceptions import ExecutionError, InsufficientFundsError
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.core.trading_client import OrderExecutor
from cryptopilot.models.trade import Fill, OrderSide

logger = logging.getLogger(__name__)

_FEE_RATE = 0.001  # 0.1% taker fee (Binance default)


class PaperOrderExecutor(OrderExecutor):
    """Simulated execution: no real money at risk.

    Unlike a spot account the simulator lets holdings go negative, so a
    SHORT position can be opened and closed on paper.

    Parameters
    ----------
    market:
        Market data client used to price simulated fills.
    initial_balance:
        Starting quote-asset balance.
    fee_rate:
        Simulated taker fee as a fraction of the fill value.
    """

    def __init__(
        self,
        market: MarketDataClient,
        initial_balance: float = DEFAULT_INITIAL_PORTFOLIO,
        fee_rate: float = _FEE_RATE,
    ) -> None:
        self._market = market
        self._fee_rate = fee_rate
        self._cash: float = initial_balance
        self._holdings: dict[str, float] = {}
        self._fills: list[tuple[str, OrderSide, Fill]] = []

    # -- public API -----------------------------------------------------------

    def submit_order(self, symbol: str, side: OrderSide, size: float) -> Fill:
        if size <= 0:
            raise ExecutionError(f"Paper {side.value} {symbol}: invalid size {size}")

        price = self._market.get_latest_price(symbol)
        value = size * price
        fee = value * self._fee_rate

        if side is OrderSide.BUY:
            cost = value + fee
            if cost > self._cash:
                raise InsufficientFundsError(
                    f"Paper BUY {symbol}: need {cost:.2f} {QUOTE_ASSET}, have {self._cash:.2f}"
                )
            self._cash -= cost
            self._holdings[symbol] = self._holdings.get(symbol, 0.0) + size
        else:
            self._cash += value - fee
            self._holdings[symbol] = self._holdings.get(symbol, 0.0) - size

        fill = Fill(
            filled_price=price,
            filled_size=size,
            fee=fee,
            order_id=f"paper-{uuid.uuid4().hex[:16]}",
        )
        self._fills.append((symbol, side, fill))
        logger.info(
            "Paper %s %s: %.8f @ %.4f (fee %.4f)", side.value, symbol, size, price, fee
        )
        return fill

    def get_balances(self) -> dict[str, float]:
        result: dict[str, float] = {QUOTE_ASSET: self._cash}
        for symbol, qty in self._holdings.items():
            if qty != 0:
                result[symbol] = qty
        return result

    # -- paper-specific -------------------------------------------------------

    @property
    def cash(self) -> float:
        """Current quote-asset balance."""
        return self._cash

    @property
    def fills(self) -> list[tuple[str, OrderSide, Fill]]:
        """All simulated fills so far as ``(symbol, side, fill)``."""
        return list(self._fills)

    def portfolio_value(self, prices: dict[str, float] | None = None) -> float:
        """Cash plus holdings marked at *prices* (latest prices if omitted)."""
        if prices is None:
            prices = {s: self._market.get_latest_price(s) for s, q in self._holdings.items() if q}
        total = self._cash
        for symbol, qty in self._holdings.items():
            total += qty * prices.get(symbol, 0.0)
        return total
