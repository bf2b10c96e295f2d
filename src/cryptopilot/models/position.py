"""Position data model.

A :class:`Position` tracks one open (or closed) exposure in a symbol:
entry, protective levels, the optional trailing stop and, once closed,
the realised P&L.

Unlike the other models this is *mutable*: the position manager updates
``current_price`` / ``unrealized_pnl`` / the trailing stop on every tick
and closes it in place.  It is only ever mutated from the event-loop thread.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cryptopilot.core.exceptions import ValidationError
from cryptopilot.models.trade import OrderSide


class PositionSide(Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        """``+1`` for LONG, ``-1`` for SHORT."""
        return 1 if self is PositionSide.LONG else -1

    @property
    def entry_order_side(self) -> OrderSide:
        return OrderSide.BUY if self is PositionSide.LONG else OrderSide.SELL

    @property
    def exit_order_side(self) -> OrderSide:
        return OrderSide.SELL if self is PositionSide.LONG else OrderSide.BUY


class PositionStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ExitReason(Enum):
    """Why a position was closed."""

    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"
    MANUAL = "manual"


@dataclass(slots=True)
class TrailingStop:
    """Ratcheting stop level.

    Parameters
    ----------
    percentage:
        Distance of the trigger from the high-water mark, as a fraction
        (``0.01`` = 1%).
    high_water_mark:
        Best price seen since the stop was armed: the highest price for a
        LONG, the lowest for a SHORT.
    trigger_price:
        Current stop level.  Only ever moves in the position's favour.
    """

    percentage: float
    high_water_mark: float
    trigger_price: float

    def to_dict(self) -> dict[str, float]:
        return {
            "percentage": self.percentage,
            "high_water_mark": self.high_water_mark,
            "trigger_price": self.trigger_price,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrailingStop:
        return cls(
            percentage=float(data["percentage"]),
            high_water_mark=float(data["high_water_mark"]),
            trigger_price=float(data["trigger_price"]),
        )


def new_position_id(symbol: str) -> str:
    return f"pos-{symbol}-{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class Position:
    """A single position in one symbol.

    Parameters
    ----------
    id:
        Unique position id.
    symbol:
        Base coin, e.g. ``"BTC"``.
    side:
        LONG or SHORT.
    size:
        Quantity in base-asset units.
    entry_price:
        Average fill price of the entry order.
    stop_loss, take_profit:
        Absolute protective price levels.
    current_price:
        Last price seen by :meth:`mark`.
    unrealized_pnl:
        ``(current - entry) * size * sign`` at the last mark.
    trailing_stop:
        Optional ratcheting stop (see :class:`TrailingStop`).
    status:
        OPEN until closed; CLOSED is terminal.
    opened_at, closed_at:
        Unix epochs (seconds).
    exit_price, realized_pnl, close_reason:
        Filled in by :meth:`close`.
    signal_id:
        Id of the signal that triggered the entry, if any.
    """

    id: str
    symbol: str
    side: PositionSide
    size: float
    entry_price: float
    stop_loss: float
    take_profit: float
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    trailing_stop: TrailingStop | None = None
    status: PositionStatus = PositionStatus.OPEN
    opened_at: float = 0.0
    closed_at: float | None = None
    exit_price: float | None = None
    realized_pnl: float | None = None
    close_reason: ExitReason | None = None
    signal_id: str | None = None
    fees: float = 0.0

    # -- derived properties ---------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    @property
    def notional(self) -> float:
        """Entry value in the quote asset."""
        return self.size * self.entry_price

    def pnl_at(self, price: float) -> float:
        """P&L in the quote asset if the position were closed at *price*."""
        return (price - self.entry_price) * self.size * self.side.sign

    def pnl_pct(self, price: float) -> float:
        """P&L at *price* as a percentage of the entry value."""
        if self.entry_price == 0.0:
            return 0.0
        return (price - self.entry_price) / self.entry_price * 100.0 * self.side.sign

    # -- tick evaluation ------------------------------------------------------

    def mark(self, price: float) -> None:
        """Record the latest price and refresh the unrealised P&L."""
        self.current_price = price
        self.unrealized_pnl = self.pnl_at(price)

    def stop_loss_hit(self, price: float) -> bool:
        """LONG: ``price <= stop_loss``.  SHORT: ``price >= stop_loss``."""
        if self.side is PositionSide.LONG:
            return price <= self.stop_loss
        return price >= self.stop_loss

    def take_profit_hit(self, price: float) -> bool:
        """LONG: ``price >= take_profit``.  SHORT: ``price <= take_profit``."""
        if self.side is PositionSide.LONG:
            return price >= self.take_profit
        return price <= self.take_profit

    # -- state transition -----------------------------------------------------

    def close(self, exit_price: float, reason: ExitReason, closed_at: float) -> float:
        """Transition OPEN → CLOSED and fix the realised P&L.

        Returns the realised P&L.  Raises :class:`ValidationError` if the
        position is already closed.
        """
        if not self.is_open:
            raise ValidationError(f"Position {self.id} is already closed")
        realized = self.pnl_at(exit_price)
        self.mark(exit_price)
        self.exit_price = exit_price
        self.realized_pnl = realized
        self.unrealized_pnl = 0.0
        self.close_reason = reason
        self.closed_at = closed_at
        self.status = PositionStatus.CLOSED
        return realized

    # -- serialisation --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict.  Floats are stored as-is, so a reload is exact."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side.value,
            "size": self.size,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "trailing_stop": self.trailing_stop.to_dict() if self.trailing_stop else None,
            "status": self.status.value,
            "opened_at": self.opened_at,
            "closed_at": self.closed_at,
            "exit_price": self.exit_price,
            "realized_pnl": self.realized_pnl,
            "close_reason": self.close_reason.value if self.close_reason else None,
            "signal_id": self.signal_id,
            "fees": self.fees,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Position:
        """Rebuild a position written by :meth:`to_dict`.

        Raises ``KeyError`` / ``ValueError`` / ``TypeError`` on malformed data.
        """
        trailing = data.get("trailing_stop")
        reason = data.get("close_reason")
        return cls(
            id=str(data["id"]),
            symbol=str(data["symbol"]),
            side=PositionSide(data["side"]),
            size=float(data["size"]),
            entry_price=float(data["entry_price"]),
            stop_loss=float(data["stop_loss"]),
            take_profit=float(data["take_profit"]),
            current_price=float(data.get("current_price", 0.0)),
            unrealized_pnl=float(data.get("unrealized_pnl", 0.0)),
            trailing_stop=TrailingStop.from_dict(trailing) if trailing else None,
            status=PositionStatus(data.get("status", PositionStatus.OPEN.value)),
            opened_at=float(data.get("opened_at", 0.0)),
            closed_at=_opt_float(data.get("closed_at")),
            exit_price=_opt_float(data.get("exit_price")),
            realized_pnl=_opt_float(data.get("realized_pnl")),
            close_reason=ExitReason(reason) if reason else None,
            signal_id=data.get("signal_id"),
            fees=float(data.get("fees", 0.0)),
        )

    # -- validation -----------------------------------------------------------

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty means valid)."""
        errors: list[str] = []
        if not self.symbol:
            errors.append("symbol must not be empty.")
        if self.size <= 0:
            errors.append(f"size={self.size} must be > 0.")
        if self.entry_price <= 0:
            errors.append(f"entry_price={self.entry_price} must be > 0.")
        if self.side is PositionSide.LONG:
            if not self.stop_loss < self.entry_price < self.take_profit:
                errors.append("LONG requires stop_loss < entry_price < take_profit.")
        elif not self.take_profit < self.entry_price < self.stop_loss:
            errors.append("SHORT requires take_profit < entry_price < stop_loss.")
        if self.status is PositionStatus.CLOSED and self.realized_pnl is None:
            errors.append("CLOSED position must have realized_pnl.")
        return errors


def _opt_float(val: object) -> float | None:
    if val is None:
        return None
    return float(val)  # type: ignore[arg-type]
