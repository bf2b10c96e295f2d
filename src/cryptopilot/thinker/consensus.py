"""Cross-timeframe signal consensus.

A single timeframe is never enough to trade on.  The aggregator looks at
the latest signal per timeframe for one symbol and asks: do at least
``consensus_threshold`` *strong* signals agree on a direction, and is
their average strength above the bar?  The bar rises when external
sentiment points the other way.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.constants import MAX_CONFIDENCE, RANK_CONFIDENCE_WEIGHT, RANK_STRENGTH_WEIGHT
from cryptopilot.models.signal import Sentiment, Signal, SignalDirection

logger = logging.getLogger(__name__)

_DIRECTIONS = (SignalDirection.BUY, SignalDirection.SELL)


@dataclass(frozen=True, slots=True)
class ConsensusDecision:
    """Outcome of aggregating one direction for one symbol.

    Parameters
    ----------
    symbol:
        Base coin.
    direction:
        BUY or SELL.
    signals:
        The strong signals that agree on *direction*.
    avg_strength, avg_confidence:
        Means over *signals* (0 when there are none).
    execution_confidence:
        ``min(95, 0.7 × avg_strength + 0.3 × avg_confidence)``.
    required_strength:
        The bar *avg_strength* had to clear.
    eligible:
        ``True`` when the decision may be executed.
    """

    symbol: str
    direction: SignalDirection
    signals: tuple[Signal, ...]
    avg_strength: float
    avg_confidence: float
    execution_confidence: float
    required_strength: float
    eligible: bool

    @property
    def timeframes(self) -> tuple[str, ...]:
        return tuple(s.timeframe for s in self.signals)

    @property
    def signal_id(self) -> str | None:
        """Id of the strongest agreeing signal, if any."""
        if not self.signals:
            return None
        return max(self.signals, key=lambda s: s.strength).id


class ConsensusAggregator:
    """Evaluates BUY and SELL consensus across timeframes."""

    def __init__(self, config: TradingConfig) -> None:
        self._strong = config.strong_signal_threshold
        self._threshold = config.consensus_threshold
        self._veto_strength = config.sentiment_veto_strength

    def evaluate(
        self,
        symbol: str,
        signals: Iterable[Signal],
        sentiment: Sentiment | None = None,
    ) -> list[ConsensusDecision]:
        """Return one decision per direction (BUY first, then SELL)."""
        relevant = [s for s in signals if s.symbol == symbol]
        return [self._evaluate_direction(symbol, d, relevant, sentiment) for d in _DIRECTIONS]

    def decide(
        self,
        symbol: str,
        signals: Iterable[Signal],
        sentiment: Sentiment | None = None,
    ) -> ConsensusDecision | None:
        """Return the strongest eligible decision, or ``None``.

        If both directions qualify (conflicting strong signals) the one
        with the higher execution confidence wins.
        """
        eligible = [d for d in self.evaluate(symbol, signals, sentiment) if d.eligible]
        if not eligible:
            return None
        best = max(eligible, key=lambda d: d.execution_confidence)
        logger.info(
            "Consensus %s %s: %d signals (%s), avg strength %.1f, exec confidence %.1f",
            best.direction.value,
            symbol,
            len(best.signals),
            ",".join(best.timeframes),
            best.avg_strength,
            best.execution_confidence,
        )
        return best

    def _evaluate_direction(
        self,
        symbol: str,
        direction: SignalDirection,
        signals: list[Signal],
        sentiment: Sentiment | None,
    ) -> ConsensusDecision:
        agreeing = tuple(s for s in signals if s.direction is direction and s.strength > self._strong)
        count = len(agreeing)
        avg_strength = sum(s.strength for s in agreeing) / count if count else 0.0
        avg_confidence = sum(s.confidence for s in agreeing) / count if count else 0.0

        required = self._strong
        if sentiment is not None and sentiment.opposes(direction):
            required = self._veto_strength

        eligible = count >= self._threshold and avg_strength > required
        return ConsensusDecision(
            symbol=symbol,
            direction=direction,
            signals=agreeing,
            avg_strength=avg_strength,
            avg_confidence=avg_confidence,
            execution_confidence=min(
                MAX_CONFIDENCE,
                RANK_STRENGTH_WEIGHT * avg_strength + RANK_CONFIDENCE_WEIGHT * avg_confidence,
            ),
            required_strength=required,
            eligible=eligible,
        )
