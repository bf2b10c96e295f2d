"""Signal scoring engine.

Combines one :class:`IndicatorSet` and an optional :class:`Prediction`
into a single BUY/SELL/HOLD :class:`Signal` for one symbol and timeframe.

Scoring is order dependent.  Factors are visited in a fixed order
(ML, RSI, MACD, MA, BB, stochastic, volume, S/R).  The first factor with
a directional opinion (the model, or RSI if the model abstains) sets the
direction.  Later factors only add their weight when they vote the same
way; a disagreeing vote is dropped, never subtracted.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.constants import (
    BASE_STRENGTH,
    MAX_CONFIDENCE,
    MAX_STRENGTH,
    MIN_CONFIDENCE_FLOOR,
    MIN_REASONS,
    ML_CONFIDENCE_BOOST,
    ML_CONFIDENCE_BOOST_THRESHOLD,
    ML_MIN_CONFIDENCE,
    RANK_CONFIDENCE_WEIGHT,
    RANK_STRENGTH_WEIGHT,
    RESISTANCE_TOLERANCE,
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    SENTIMENT_STRENGTH_BONUS,
    STOCH_OVERBOUGHT,
    STOCH_OVERSOLD,
    SUPPORT_TOLERANCE,
    TAG_CONFIDENCE_CAP,
    TAG_CONFIDENCE_STEP,
    VOLUME_SURGE_RATIO,
)
from cryptopilot.models.indicators import IndicatorSet
from cryptopilot.models.prediction import Prediction, PredictionDirection
from cryptopilot.models.signal import Sentiment, Signal, SignalDirection, new_signal_id

logger = logging.getLogger(__name__)

BUY = SignalDirection.BUY
SELL = SignalDirection.SELL
HOLD = SignalDirection.HOLD


@dataclass
class ScoreBreakdown:
    """Unfiltered result of one scoring pass.

    ``strength`` and ``confidence`` are already clamped; whether the
    result is good enough to emit is decided by :meth:`SignalEngine.score`.
    """

    direction: SignalDirection = HOLD
    scores: dict[str, float] = field(default_factory=dict)
    indicators: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    ml_confidence: float = 0.0
    sentiment_bonus: float = 0.0
    strength: float = BASE_STRENGTH
    confidence: float = MIN_CONFIDENCE_FLOOR

    def apply(
        self,
        factor: str,
        vote: SignalDirection | None,
        contribution: float,
        tag: str,
        reason: str,
        sets_direction: bool = False,
    ) -> None:
        """Record *factor*'s vote.

        With *sets_direction* the vote establishes the direction if none
        exists yet.  The contribution counts only when the vote matches
        the established direction.
        """
        self.scores.setdefault(factor, 0.0)
        if vote is None:
            return
        if sets_direction and self.direction is HOLD:
            self.direction = vote
        if vote is not self.direction:
            logger.debug("Dropping %s vote %s against %s", factor, vote.value, self.direction.value)
            return
        self.scores[factor] = contribution
        self.indicators.append(tag)
        self.reasons.append(reason)


class SignalEngine:
    """Weighted multi-factor signal scorer.

    Parameters
    ----------
    config:
        Supplies the factor weights and the emission thresholds.
    """

    def __init__(self, config: TradingConfig) -> None:
        self._config = config
        self._weights = dict(config.signal_weights)

    # -- public API -----------------------------------------------------------

    def score(
        self,
        symbol: str,
        timeframe: str,
        indicators: IndicatorSet,
        prediction: Prediction | None = None,
        sentiment: Sentiment | None = None,
        now: float | None = None,
    ) -> Signal | None:
        """Score one (symbol, timeframe) window.

        Returns ``None`` when there is no trade worth emitting: no
        direction, strength or confidence below the configured minimum,
        or fewer than two corroborating reasons.  That is a normal
        outcome, not an error.
        """
        result = self.breakdown(indicators, prediction, sentiment)

        if result.direction is HOLD:
            return None
        if result.strength < self._config.min_signal_strength:
            logger.debug(
                "%s/%s suppressed: strength %.1f < %.1f",
                symbol,
                timeframe,
                result.strength,
                self._config.min_signal_strength,
            )
            return None
        if result.confidence < self._config.min_signal_confidence:
            logger.debug(
                "%s/%s suppressed: confidence %.1f < %.1f",
                symbol,
                timeframe,
                result.confidence,
                self._config.min_signal_confidence,
            )
            return None
        if len(result.reasons) < MIN_REASONS:
            logger.debug("%s/%s suppressed: only %d reason(s)", symbol, timeframe, len(result.reasons))
            return None

        return Signal(
            id=new_signal_id(symbol, timeframe),
            symbol=symbol,
            timeframe=timeframe,
            direction=result.direction,
            strength=result.strength,
            confidence=result.confidence,
            indicators=tuple(result.indicators),
            reasons=tuple(result.reasons),
            scores=dict(result.scores),
            price=indicators.price,
            created_at=time.time() if now is None else now,
        )

    def breakdown(
        self,
        indicators: IndicatorSet,
        prediction: Prediction | None = None,
        sentiment: Sentiment | None = None,
    ) -> ScoreBreakdown:
        """Run every factor and return the clamped, unfiltered result."""
        result = ScoreBreakdown()
        price = indicators.price

        self._score_ml(result, prediction)
        self._score_rsi(result, indicators.rsi)
        self._score_macd(result, indicators)
        self._score_moving_averages(result, indicators, price)
        self._score_bollinger(result, indicators, price)
        self._score_stochastic(result, indicators)
        self._score_volume(result, indicators.volume_ratio)
        self._score_support_resistance(result, indicators, price)

        if sentiment is not None and result.direction is not HOLD:
            if sentiment.agrees_with(result.direction):
                result.sentiment_bonus = SENTIMENT_STRENGTH_BONUS

        raw_strength = BASE_STRENGTH + sum(result.scores.values()) + result.sentiment_bonus
        result.strength = _clamp(raw_strength, 0.0, MAX_STRENGTH)
        result.confidence = self._confidence(result)
        return result

    @staticmethod
    def rank(signals: Iterable[Signal]) -> list[Signal]:
        """Order signals best first by ``0.7 × strength + 0.3 × confidence``."""
        return sorted(
            signals,
            key=lambda s: s.strength * RANK_STRENGTH_WEIGHT + s.confidence * RANK_CONFIDENCE_WEIGHT,
            reverse=True,
        )

    # -- factors --------------------------------------------------------------

    def _contribution(self, factor: str) -> float:
        return self._weights.get(factor, 0.0) * 100.0

    def _score_ml(self, result: ScoreBreakdown, prediction: Prediction | None) -> None:
        # Unavailable or low-confidence predictions abstain; their weight
        # is not redistributed to the other factors.
        if prediction is None or prediction.confidence <= ML_MIN_CONFIDENCE:
            result.scores.setdefault("ml", 0.0)
            return

        contribution = prediction.confidence / 100.0 * self._contribution("ml")
        change = prediction.price_change_percent
        if prediction.direction is PredictionDirection.BULLISH:
            vote, tag, reason = BUY, "ML_BULLISH", f"Model predicts {change:+.2f}% increase"
        else:
            vote, tag, reason = SELL, "ML_BEARISH", f"Model predicts {change:+.2f}% decrease"
        result.apply("ml", vote, contribution, tag, reason, sets_direction=True)
        result.ml_confidence = prediction.confidence

    def _score_rsi(self, result: ScoreBreakdown, value: float) -> None:
        if value < RSI_OVERSOLD:
            result.apply(
                "rsi", BUY, self._contribution("rsi"), "RSI_OVERSOLD",
                f"RSI oversold ({value:.1f})", sets_direction=True,
            )
        elif value > RSI_OVERBOUGHT:
            result.apply(
                "rsi", SELL, self._contribution("rsi"), "RSI_OVERBOUGHT",
                f"RSI overbought ({value:.1f})", sets_direction=True,
            )
        else:
            result.apply("rsi", None, 0.0, "", "")

    def _score_macd(self, result: ScoreBreakdown, ind: IndicatorSet) -> None:
        m = ind.macd
        weight = self._contribution("macd")
        if m.histogram > 0 and m.macd > m.signal:
            result.apply("macd", BUY, weight, "MACD_BULLISH", "MACD above signal line")
        elif m.histogram < 0 and m.macd < m.signal:
            result.apply("macd", SELL, weight, "MACD_BEARISH", "MACD below signal line")
        else:
            result.apply("macd", None, 0.0, "", "")

    def _score_moving_averages(self, result: ScoreBreakdown, ind: IndicatorSet, price: float) -> None:
        weight = self._contribution("ma")
        # Both averages must exist; 0.0 means "not enough history".
        if ind.sma20 <= 0 or ind.sma50 <= 0:
            result.apply("ma", None, 0.0, "", "")
        elif price > ind.sma20 > ind.sma50:
            result.apply("ma", BUY, weight, "MA_BULLISH", "Price above rising moving averages")
        elif price < ind.sma20 < ind.sma50:
            result.apply("ma", SELL, weight, "MA_BEARISH", "Price below falling moving averages")
        else:
            result.apply("ma", None, 0.0, "", "")

    def _score_bollinger(self, result: ScoreBreakdown, ind: IndicatorSet, price: float) -> None:
        bb = ind.bollinger
        weight = self._contribution("bb")
        if bb.upper <= 0:
            result.apply("bb", None, 0.0, "", "")
        elif price < bb.lower:
            result.apply("bb", BUY, weight, "BB_OVERSOLD", "Price below lower Bollinger band")
        elif price > bb.upper:
            result.apply("bb", SELL, weight, "BB_OVERBOUGHT", "Price above upper Bollinger band")
        else:
            result.apply("bb", None, 0.0, "", "")

    def _score_stochastic(self, result: ScoreBreakdown, ind: IndicatorSet) -> None:
        st = ind.stochastic
        weight = self._contribution("stoch")
        if st.k < STOCH_OVERSOLD and st.d < STOCH_OVERSOLD:
            result.apply("stoch", BUY, weight, "STOCH_OVERSOLD", "Stochastic oversold")
        elif st.k > STOCH_OVERBOUGHT and st.d > STOCH_OVERBOUGHT:
            result.apply("stoch", SELL, weight, "STOCH_OVERBOUGHT", "Stochastic overbought")
        else:
            result.apply("stoch", None, 0.0, "", "")

    def _score_volume(self, result: ScoreBreakdown, ratio: float) -> None:
        # Volume has no direction of its own: a surge confirms whatever
        # direction is already established.
        if ratio > VOLUME_SURGE_RATIO and result.direction is not HOLD:
            result.apply(
                "volume", result.direction, self._contribution("volume"),
                "VOLUME_SURGE", f"Volume surge ({ratio:.1f}x)",
            )
        else:
            result.apply("volume", None, 0.0, "", "")

    def _score_support_resistance(
        self, result: ScoreBreakdown, ind: IndicatorSet, price: float
    ) -> None:
        sr = ind.support_resistance
        weight = self._contribution("sr")
        if sr.near_support(price, SUPPORT_TOLERANCE):
            result.apply("sr", BUY, weight, "SUPPORT_LEVEL", "Near support level")
        elif sr.near_resistance(price, RESISTANCE_TOLERANCE):
            result.apply("sr", SELL, weight, "RESISTANCE_LEVEL", "Near resistance level")
        else:
            result.apply("sr", None, 0.0, "", "")

    # -- confidence -----------------------------------------------------------

    @staticmethod
    def _confidence(result: ScoreBreakdown) -> float:
        tag_bonus = min(TAG_CONFIDENCE_CAP, TAG_CONFIDENCE_STEP * len(set(result.indicators)))
        ml_bonus = ML_CONFIDENCE_BOOST if result.ml_confidence > ML_CONFIDENCE_BOOST_THRESHOLD else 0.0
        return _clamp(result.strength + tag_bonus + ml_bonus, MIN_CONFIDENCE_FLOOR, MAX_CONFIDENCE)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
