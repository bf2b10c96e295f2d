"""Executed trade data model.

A :class:`Trade` is an immutable record of a single executed order (an
entry or an exit of a position).  It is appended to
``trade_history.jsonl`` by the trade repository.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True, slots=True)
class Fill:
    """Result of a fully filled order.

    Parameters
    ----------
    filled_price:
        Average execution price.
    filled_size:
        Executed quantity in base-asset units.
    fee:
        Fee paid, in the quote asset.
    order_id:
        Exchange (or simulated) order id.
    """

    filled_price: float
    filled_size: float
    fee: float = 0.0
    order_id: str | None = None

    @property
    def value(self) -> float:
        return self.filled_price * self.filled_size


@dataclass(frozen=True, slots=True)
class Trade:
    """Record of a single executed order.

    Parameters
    ----------
    id:
        Unique trade id.
    position_id:
        Position the order opened or closed.
    symbol:
        Base coin, e.g. ``"BTC"``.
    side:
        Order side.
    price:
        Average fill price.
    size:
        Quantity in base-asset units.
    reason:
        Why the order was placed: ``"entry"``, ``"stop_loss"``,
        ``"take_profit"``, ``"trailing_stop"`` ...
    timestamp:
        Unix epoch (seconds) of the fill.
    pnl:
        Realised P&L for exit trades, ``None`` for entries.
    fee:
        Fee paid in the quote asset, if known.
    order_id:
        Exchange order id, if available.
    """

    id: str
    position_id: str
    symbol: str
    side: OrderSide
    price: float
    size: float
    reason: str
    timestamp: float
    pnl: float | None = None
    fee: float | None = None
    order_id: str | None = None

    @classmethod
    def from_fill(
        cls,
        fill: Fill,
        position_id: str,
        symbol: str,
        side: OrderSide,
        reason: str,
        timestamp: float,
        pnl: float | None = None,
    ) -> Trade:
        return cls(
            id=uuid.uuid4().hex,
            position_id=position_id,
            symbol=symbol,
            side=side,
            price=fill.filled_price,
            size=fill.filled_size,
            reason=reason,
            timestamp=timestamp,
            pnl=pnl,
            fee=fill.fee,
            order_id=fill.order_id,
        )

    # -- convenience ----------------------------------------------------------

    @property
    def value(self) -> float:
        """Quote value of the trade (``price * size``)."""
        return self.price * self.size

    @property
    def is_exit(self) -> bool:
        return self.pnl is not None

    # -- serialisation --------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Convert to a dictionary suitable for JSON-lines serialisation."""
        return {
            "id": self.id,
            "position_id": self.position_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "price": self.price,
            "size": self.size,
            "value": self.value,
            "reason": self.reason,
            "timestamp": self.timestamp,
            "pnl": self.pnl,
            "fee": self.fee,
            "order_id": self.order_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> Trade:
        """Reconstruct a Trade from a ``trade_history.jsonl`` record."""
        return cls(
            id=str(data["id"]),
            position_id=str(data.get("position_id") or ""),
            symbol=str(data["symbol"]),
            side=OrderSide(str(data["side"]).upper()),
            price=float(data["price"]),  # type: ignore[arg-type]
            size=float(data["size"]),  # type: ignore[arg-type]
            reason=str(data.get("reason") or ""),
            timestamp=float(data.get("timestamp", 0.0)),  # type: ignore[arg-type]
            pnl=_opt_float(data.get("pnl")),
            fee=_opt_float(data.get("fee")),
            order_id=_opt_str(data.get("order_id")),
        )

    # -- validation -----------------------------------------------------------

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty means valid)."""
        errors: list[str] = []
        if not self.symbol:
            errors.append("symbol must not be empty.")
        if self.price <= 0:
            errors.append(f"price={self.price} must be > 0.")
        if self.size <= 0:
            errors.append(f"size={self.size} must be > 0.")
        if self.timestamp < 0:
            errors.append(f"timestamp={self.timestamp} must be >= 0.")
        return errors


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _opt_float(val: object) -> float | None:
    if val is None:
        return None
    try:
        return float(val)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _opt_str(val: object) -> str | None:
    if val is None:
        return None
    return str(val)
