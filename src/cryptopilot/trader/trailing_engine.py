"""Trailing stop ratchet.

The stop state lives on the position itself (:class:`TrailingStop`) so it
is persisted and restored with the position.  This engine only knows how
to arm it, move it and decide whether it fired.

For a LONG the high-water mark is the highest price seen and the trigger
sits ``percentage`` below it; for a SHORT the mark is the lowest price and
the trigger sits above it.  The trigger never moves against the position.
"""

from __future__ import annotations

import logging

from cryptopilot.models.position import Position, PositionSide, TrailingStop

logger = logging.getLogger(__name__)


class TrailingStopEngine:
    """Arms, ratchets and checks trailing stops."""

    # -- public API -----------------------------------------------------------

    @staticmethod
    def arm(position: Position, percentage: float) -> TrailingStop | None:
        """Attach a trailing stop anchored at the entry price.

        A non-positive *percentage* disables trailing and returns ``None``.
        """
        if percentage <= 0:
            position.trailing_stop = None
            return None
        anchor = position.entry_price
        stop = TrailingStop(
            percentage=percentage,
            high_water_mark=anchor,
            trigger_price=_trigger_for(position.side, anchor, percentage),
        )
        position.trailing_stop = stop
        return stop

    @staticmethod
    def update(position: Position, price: float) -> TrailingStop | None:
        """Follow a favourable *price*; ignore an unfavourable one.

        Call this every tick before :meth:`should_exit`.
        """
        stop = position.trailing_stop
        if stop is None or price <= 0:
            return stop

        if position.side is PositionSide.LONG:
            if price > stop.high_water_mark:
                stop.high_water_mark = price
                candidate = _trigger_for(position.side, price, stop.percentage)
                if candidate > stop.trigger_price:
                    stop.trigger_price = candidate
                    logger.debug("Trailing stop %s raised to %.8g", position.id, candidate)
        elif price < stop.high_water_mark:
            stop.high_water_mark = price
            candidate = _trigger_for(position.side, price, stop.percentage)
            if candidate < stop.trigger_price:
                stop.trigger_price = candidate
                logger.debug("Trailing stop %s lowered to %.8g", position.id, candidate)
        return stop

    @staticmethod
    def should_exit(position: Position, price: float) -> bool:
        """LONG: ``price <= trigger``.  SHORT: ``price >= trigger``."""
        stop = position.trailing_stop
        if stop is None:
            return False
        if position.side is PositionSide.LONG:
            return price <= stop.trigger_price
        return price >= stop.trigger_price

    @staticmethod
    def distance_pct(position: Position, price: float) -> float:
        """Distance from *price* to the trigger, positive while not fired."""
        stop = position.trailing_stop
        if stop is None or stop.trigger_price <= 0:
            return 0.0
        return (price - stop.trigger_price) / stop.trigger_price * 100.0 * position.side.sign


def _trigger_for(side: PositionSide, mark: float, percentage: float) -> float:
    if side is PositionSide.LONG:
        return mark * (1.0 - percentage)
    return mark * (1.0 + percentage)
