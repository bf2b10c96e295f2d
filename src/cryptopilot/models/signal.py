"""Trading signal data model.

A :class:`Signal` is the scored recommendation for one symbol on one
timeframe.  It is immutable after creation; expiry is derived from its
age rather than stored, so a signal never has to be mutated to expire.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from cryptopilot.core.constants import MAX_CONFIDENCE, MAX_STRENGTH, MIN_CONFIDENCE_FLOOR


class SignalDirection(Enum):
    """Recommended action."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class SignalStatus(Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class Sentiment(Enum):
    """Aggregate market sentiment supplied from outside the core."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"

    def agrees_with(self, direction: SignalDirection) -> bool:
        """``True`` when the sentiment points the same way as *direction*."""
        if self is Sentiment.BULLISH:
            return direction is SignalDirection.BUY
        if self is Sentiment.BEARISH:
            return direction is SignalDirection.SELL
        return False

    def opposes(self, direction: SignalDirection) -> bool:
        """``True`` when the sentiment points against *direction*."""
        if self is Sentiment.BULLISH:
            return direction is SignalDirection.SELL
        if self is Sentiment.BEARISH:
            return direction is SignalDirection.BUY
        return False


def new_signal_id(symbol: str, timeframe: str) -> str:
    """Return a unique id such as ``"BTC-1h-3f2a9c1e"``."""
    return f"{symbol}-{timeframe}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True, slots=True)
class Signal:
    """Scored BUY/SELL/HOLD recommendation for one symbol + timeframe.

    Parameters
    ----------
    id:
        Unique signal id.
    symbol:
        Base coin, e.g. ``"BTC"``.
    timeframe:
        Timeframe the indicators were computed on.
    direction:
        Recommended action.
    strength:
        How strongly the factors agree, 0-95.
    confidence:
        Reliability estimate, 10-95.
    indicators:
        Tags of the factors that fired, e.g. ``("ML_BULLISH", "RSI_OVERSOLD")``.
    reasons:
        Human-readable explanations in scoring order.
    scores:
        Contribution of each factor to the strength.
    price:
        Price the signal was scored at.
    created_at:
        Unix epoch (seconds) of creation.
    """

    id: str
    symbol: str
    timeframe: str
    direction: SignalDirection
    strength: float
    confidence: float
    indicators: tuple[str, ...] = ()
    reasons: tuple[str, ...] = ()
    scores: Mapping[str, float] = field(default_factory=dict)
    price: float = 0.0
    created_at: float = 0.0

    def __post_init__(self) -> None:
        # Read-only view over a private copy of the caller's dict
        object.__setattr__(self, "scores", MappingProxyType(dict(self.scores)))

    # -- lifecycle ------------------------------------------------------------

    def status(self, now: float, ttl_seconds: float) -> SignalStatus:
        """``EXPIRED`` once the signal is older than *ttl_seconds*."""
        if now - self.created_at >= ttl_seconds:
            return SignalStatus.EXPIRED
        return SignalStatus.ACTIVE

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return self.status(now, ttl_seconds) is SignalStatus.EXPIRED

    @property
    def is_actionable(self) -> bool:
        """``True`` for BUY and SELL signals."""
        return self.direction is not SignalDirection.HOLD

    # -- serialisation --------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "direction": self.direction.value,
            "strength": self.strength,
            "confidence": self.confidence,
            "indicators": list(self.indicators),
            "reasons": list(self.reasons),
            "scores": dict(self.scores),
            "price": self.price,
            "created_at": self.created_at,
        }

    # -- validation -----------------------------------------------------------

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty means valid)."""
        errors: list[str] = []
        if not self.symbol:
            errors.append("symbol must not be empty.")
        if not 0.0 <= self.strength <= MAX_STRENGTH:
            errors.append(f"strength={self.strength} outside 0-{MAX_STRENGTH:g}.")
        if not MIN_CONFIDENCE_FLOOR <= self.confidence <= MAX_CONFIDENCE:
            errors.append(
                f"confidence={self.confidence} outside "
                f"{MIN_CONFIDENCE_FLOOR:g}-{MAX_CONFIDENCE:g}."
            )
        if self.created_at < 0:
            errors.append(f"created_at={self.created_at} must be >= 0.")
        return errors
