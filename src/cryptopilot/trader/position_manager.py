"""Position lifecycle: open, monitor, close.

A position is OPEN from the moment its entry order fills until its exit
order fills; CLOSED is terminal.  On each price tick the manager checks,
in order, the stop-loss, the take-profit and the trailing stop, and sends
an exit order for the first one that fired.  If that order fails the
position stays OPEN and is checked again on the next tick.

Order submission is blocking (exchange SDK) and runs in a worker thread;
all position state changes happen on the event-loop thread.  Callers
serialise ticks with the runner's state lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.database import PositionRepository, TradeRepository
from cryptopilot.core.exceptions import ExchangeError, PositionNotFoundError
from cryptopilot.core.notifier import (
    Notifier,
    format_position_closed,
    format_position_opened,
)
from cryptopilot.core.trading_client import OrderExecutor
from cryptopilot.models.position import ExitReason, Position, PositionSide, new_position_id
from cryptopilot.models.signal import SignalDirection
from cryptopilot.models.trade import Trade
from cryptopilot.thinker.consensus import ConsensusDecision
from cryptopilot.trader.risk_manager import RiskManager, TradeRequest
from cryptopilot.trader.trailing_engine import TrailingStopEngine

logger = logging.getLogger(__name__)


def protective_levels(
    side: PositionSide, price: float, stop_loss_pct: float, take_profit_pct: float
) -> tuple[float, float]:
    """Return ``(stop_loss, take_profit)`` at fixed distances from *price*."""
    if side is PositionSide.LONG:
        return price * (1.0 - stop_loss_pct), price * (1.0 + take_profit_pct)
    return price * (1.0 + stop_loss_pct), price * (1.0 - take_profit_pct)


class PositionManager:
    """Owns the open positions and drives them through their lifecycle.

    Parameters
    ----------
    executor:
        Live or paper order executor.
    risk:
        Risk manager consulted before every entry and informed of every exit.
    config:
        Stop-loss, take-profit and trailing percentages; position size cap.
    trades, positions:
        Optional persistence.  Failures there are logged, never raised.
    notifier:
        Optional best-effort notification channel.
    clock:
        Wall-clock source, injectable for tests.
    """

    def __init__(
        self,
        executor: OrderExecutor,
        risk: RiskManager,
        config: TradingConfig,
        trades: TradeRepository | None = None,
        positions: PositionRepository | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._executor = executor
        self._risk = risk
        self._config = config
        self._trades = trades
        self._repo = positions
        self._notifier = notifier
        self._clock = clock
        self._trailing = TrailingStopEngine()
        self._positions: dict[str, Position] = {}

    # -- queries --------------------------------------------------------------

    @property
    def open_positions(self) -> list[Position]:
        return [p for p in self._positions.values() if p.is_open]

    def get(self, position_id: str) -> Position | None:
        return self._positions.get(position_id)

    def positions_for(self, symbol: str) -> list[Position]:
        return [p for p in self.open_positions if p.symbol == symbol]

    @property
    def symbols(self) -> set[str]:
        return {p.symbol for p in self.open_positions}

    # -- start-up -------------------------------------------------------------

    def restore(self) -> int:
        """Reload OPEN positions from persistence.  Returns how many."""
        if self._repo is None:
            return 0
        restored = 0
        for position in self._repo.load_open_positions():
            if position.id in self._positions:
                continue
            self._positions[position.id] = position
            self._risk.register_position(position.symbol, position.id, count_trade=False)
            restored += 1
        if restored:
            logger.info("Restored %d open position(s)", restored)
        return restored

    # -- entry ----------------------------------------------------------------

    async def open_position(self, decision: ConsensusDecision, price: float) -> Position | None:
        """Validate, size and execute an entry for an eligible *decision*.

        Returns the new position, or ``None`` if the risk manager rejected
        the trade or the entry order failed.
        """
        if not decision.eligible or price <= 0:
            return None
        side = _side_for(decision.direction)
        cfg = self._config
        symbol = decision.symbol

        stop_loss, take_profit = protective_levels(
            side, price, cfg.stop_loss_pct, cfg.take_profit_pct
        )
        requested = self._risk.state.portfolio_value * cfg.max_position_size / price
        request = TradeRequest(
            symbol=symbol,
            side=side,
            size=requested,
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        validation = self._risk.validate_trade(request)
        if not validation.is_valid:
            return None
        if validation.suggested_size <= 0:
            logger.info("Skipping %s %s: sized to zero", side.value, symbol)
            return None

        try:
            fill = await asyncio.to_thread(
                self._executor.submit_order, symbol, side.entry_order_side, validation.suggested_size
            )
        except ExchangeError as exc:
            logger.error("Entry %s %s failed: %s", side.value, symbol, exc)
            return None

        # Re-anchor the protective levels on the actual fill price.
        stop_loss, take_profit = protective_levels(
            side, fill.filled_price, cfg.stop_loss_pct, cfg.take_profit_pct
        )
        now = self._clock()
        position = Position(
            id=new_position_id(symbol),
            symbol=symbol,
            side=side,
            size=fill.filled_size,
            entry_price=fill.filled_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            current_price=fill.filled_price,
            opened_at=now,
            signal_id=decision.signal_id,
            fees=fill.fee,
        )
        self._trailing.arm(position, cfg.trailing_stop_pct)

        self._positions[position.id] = position
        self._risk.register_position(symbol, position.id)
        self._save(position)
        self._record(Trade.from_fill(fill, position.id, symbol, side.entry_order_side, "entry", now))
        self._notify(format_position_opened(position))
        logger.info(
            "Opened %s %s %s: %.8g @ %.8g (SL %.8g, TP %.8g)",
            position.id,
            side.value,
            symbol,
            position.size,
            position.entry_price,
            stop_loss,
            take_profit,
        )
        return position

    # -- monitoring -----------------------------------------------------------

    def exit_reason(self, position: Position, price: float) -> ExitReason | None:
        """First exit condition met at *price*, or ``None``."""
        if position.stop_loss_hit(price):
            return ExitReason.STOP_LOSS
        if position.take_profit_hit(price):
            return ExitReason.TAKE_PROFIT
        if self._trailing.should_exit(position, price):
            return ExitReason.TRAILING_STOP
        return None

    async def on_price_tick(self, symbol: str, price: float) -> list[Position]:
        """Mark every open position in *symbol* and close those that hit an exit.

        Returns the positions closed on this tick.
        """
        if price <= 0:
            return []
        closed: list[Position] = []
        for position in self.positions_for(symbol):
            position.mark(price)
            before = position.trailing_stop.trigger_price if position.trailing_stop else None
            self._trailing.update(position, price)

            reason = self.exit_reason(position, price)
            if reason is None:
                if position.trailing_stop and position.trailing_stop.trigger_price != before:
                    self._save(position)
                continue
            try:
                closed.append(await self.close_position(position.id, price, reason))
            except ExchangeError as exc:
                logger.error(
                    "Exit %s for %s failed, position stays open: %s", reason.value, position.id, exc
                )
                self._save(position)
        return closed

    # -- exit -----------------------------------------------------------------

    async def close_position(
        self, position_id: str, price: float, reason: ExitReason = ExitReason.MANUAL
    ) -> Position:
        """Send the exit order for *position_id* and close it on fill.

        *price* is the price that triggered the exit; the realised P&L uses
        the actual fill price.

        Raises
        ------
        PositionNotFoundError
            Unknown or already closed position.
        ExchangeError
            The exit order failed; the position is still OPEN.
        """
        position = self._positions.get(position_id)
        if position is None or not position.is_open:
            raise PositionNotFoundError(position_id)

        logger.info(
            "Closing %s (%s) at trigger price %.8g", position_id, reason.value, price
        )
        fill = await asyncio.to_thread(
            self._executor.submit_order, position.symbol, position.side.exit_order_side, position.size
        )

        now = self._clock()
        realized = position.close(fill.filled_price, reason, now)
        position.fees += fill.fee
        del self._positions[position_id]

        self._risk.release_position(position.symbol, realized)
        self._save(position)
        self._record(
            Trade.from_fill(
                fill,
                position.id,
                position.symbol,
                position.side.exit_order_side,
                reason.value,
                now,
                pnl=realized,
            )
        )
        self._notify(format_position_closed(position))
        logger.info(
            "Closed %s %s %s @ %.8g: P&L %+.2f (%s)",
            position.id,
            position.side.value,
            position.symbol,
            fill.filled_price,
            realized,
            reason.value,
        )
        return position

    # -- side effects ---------------------------------------------------------

    def _save(self, position: Position) -> None:
        if self._repo is not None:
            self._repo.save_position(position)

    def _record(self, trade: Trade) -> None:
        if self._trades is not None:
            self._trades.save_trade(trade)

    def _notify(self, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(message)
        except Exception:
            logger.exception("Notification failed")


def _side_for(direction: SignalDirection) -> PositionSide:
    if direction is SignalDirection.BUY:
        return PositionSide.LONG
    if direction is SignalDirection.SELL:
        return PositionSide.SHORT
    raise ValueError(f"Cannot open a position for direction {direction.value}")
