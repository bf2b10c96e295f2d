"""Price prediction data model.

A :class:`Prediction` is produced by a predictor adapter and consumed
as opaque input by the signal scorer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PredictionDirection(Enum):
    """Forecast direction of the next price move."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"


@dataclass(frozen=True, slots=True)
class Prediction:
    """Price forecast for one symbol on one timeframe.

    Parameters
    ----------
    symbol:
        Base coin, e.g. ``"BTC"``.
    timeframe:
        Timeframe the forecast horizon refers to.
    current_price:
        Price the prediction was made at.
    predicted_price:
        Forecast price at the end of the horizon.
    confidence:
        Model confidence in the range 0-100.
    model_version:
        Identifier of the model that produced the forecast.
    created_at:
        Unix epoch (seconds) when the prediction was made.
    """

    symbol: str
    timeframe: str
    current_price: float
    predicted_price: float
    confidence: float
    model_version: str = "unknown"
    created_at: float = 0.0

    @property
    def price_change_percent(self) -> float:
        """Forecast move as a percentage of the current price."""
        if self.current_price == 0.0:
            return 0.0
        return (self.predicted_price - self.current_price) / self.current_price * 100.0

    @property
    def direction(self) -> PredictionDirection:
        """BULLISH when the forecast is above the current price."""
        if self.predicted_price > self.current_price:
            return PredictionDirection.BULLISH
        return PredictionDirection.BEARISH

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty means valid)."""
        errors: list[str] = []
        if not self.symbol:
            errors.append("symbol must not be empty.")
        if self.current_price <= 0:
            errors.append(f"current_price={self.current_price} must be > 0.")
        if self.predicted_price < 0:
            errors.append(f"predicted_price={self.predicted_price} must be >= 0.")
        if not 0.0 <= self.confidence <= 100.0:
            errors.append(f"confidence={self.confidence} outside 0-100.")
        return errors
