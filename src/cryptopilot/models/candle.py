"""OHLCV candle data model.

Represents a single candlestick bar as returned by market data APIs.
Immutable so it can be safely shared between concurrent evaluation tasks.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Candle:
    """A single OHLCV candlestick bar.

    Parameters
    ----------
    timestamp:
        Candle open time as a Unix epoch in **seconds**.
    open, high, low, close:
        Price values for the bar.
    volume:
        Traded volume in the base asset during this bar.
    """

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    # -- derived --------------------------------------------------------------

    def true_range(self, prev_close: float | None = None) -> float:
        """Wilder true range against the previous close (or plain range)."""
        if prev_close is None:
            return self.high - self.low
        return max(
            self.high - self.low,
            abs(self.high - prev_close),
            abs(self.low - prev_close),
        )

    @property
    def is_valid(self) -> bool:
        """``True`` when :meth:`validate` reports nothing."""
        return not self.validate()

    # -- validation -----------------------------------------------------------

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty means valid)."""
        errors: list[str] = []
        if self.timestamp < 0:
            errors.append(f"timestamp={self.timestamp} must be >= 0.")
        for name in ("open", "high", "low", "close", "volume"):
            value = getattr(self, name)
            if value < 0:
                errors.append(f"{name}={value} must be >= 0.")
        if self.high < max(self.open, self.close, self.low):
            errors.append(
                f"high={self.high} must be >= max(open, close, low)="
                f"{max(self.open, self.close, self.low)}."
            )
        if self.low > min(self.open, self.close, self.high):
            errors.append(
                f"low={self.low} must be <= min(open, close, high)="
                f"{min(self.open, self.close, self.high)}."
            )
        return errors
