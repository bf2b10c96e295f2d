"""Validated trading configuration loaded from ``settings.json``."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cryptopilot.core.constants import (
    DATA_DIRNAME,
    DEFAULT_CANDLES_LIMIT,
    DEFAULT_CONSENSUS_THRESHOLD,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_INITIAL_PORTFOLIO,
    DEFAULT_MARKET_POLL_SECONDS,
    DEFAULT_MAX_CONSECUTIVE_LOSSES,
    DEFAULT_MAX_DAILY_LOSS,
    DEFAULT_MAX_DRAWDOWN,
    DEFAULT_MAX_LEVERAGE,
    DEFAULT_MAX_OPEN_POSITIONS,
    DEFAULT_MAX_POSITION_SIZE,
    DEFAULT_MIN_RISK_REWARD,
    DEFAULT_MIN_SIGNAL_CONFIDENCE,
    DEFAULT_MIN_SIGNAL_STRENGTH,
    DEFAULT_POSITION_INTERVAL_SECONDS,
    DEFAULT_SENTIMENT_VETO_STRENGTH,
    DEFAULT_SIGNAL_INTERVAL_SECONDS,
    DEFAULT_SIGNAL_WEIGHTS,
    DEFAULT_STOP_LOSS_PCT,
    DEFAULT_STRONG_SIGNAL_THRESHOLD,
    DEFAULT_SYMBOLS,
    DEFAULT_TAKE_PROFIT_PCT,
    DEFAULT_TRAILING_STOP_PCT,
    SIGNAL_TTL_SECONDS,
    TIMEFRAME_SECONDS,
    TIMEFRAMES,
)

logger = logging.getLogger(__name__)

_WEIGHT_SUM_TOLERANCE = 1e-6


@dataclass(frozen=True)
class TradingConfig:
    """Immutable snapshot of all trading configuration.

    Build from a ``settings.json`` file via :meth:`from_file`, or
    construct directly for testing.  Fractions (``max_position_size``,
    ``stop_loss_pct`` ...) are plain ratios, e.g. ``0.02`` for 2%.
    """

    symbols: list[str] = field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    timeframes: list[str] = field(default_factory=lambda: list(TIMEFRAMES))
    candles_limit: int = DEFAULT_CANDLES_LIMIT
    paper_trading: bool = True
    initial_portfolio_value: float = DEFAULT_INITIAL_PORTFOLIO

    # signal scoring
    signal_weights: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_SIGNAL_WEIGHTS)
    )
    min_signal_strength: float = DEFAULT_MIN_SIGNAL_STRENGTH
    min_signal_confidence: float = DEFAULT_MIN_SIGNAL_CONFIDENCE
    strong_signal_threshold: float = DEFAULT_STRONG_SIGNAL_THRESHOLD
    consensus_threshold: int = DEFAULT_CONSENSUS_THRESHOLD
    sentiment_veto_strength: float = DEFAULT_SENTIMENT_VETO_STRENGTH
    signal_ttl_seconds: float = float(SIGNAL_TTL_SECONDS)

    # risk limits
    max_position_size: float = DEFAULT_MAX_POSITION_SIZE
    max_daily_loss: float = DEFAULT_MAX_DAILY_LOSS
    max_drawdown: float = DEFAULT_MAX_DRAWDOWN
    max_open_positions: int = DEFAULT_MAX_OPEN_POSITIONS
    min_risk_reward_ratio: float = DEFAULT_MIN_RISK_REWARD
    max_leverage: float = DEFAULT_MAX_LEVERAGE
    stop_loss_pct: float = DEFAULT_STOP_LOSS_PCT
    take_profit_pct: float = DEFAULT_TAKE_PROFIT_PCT
    trailing_stop_pct: float = DEFAULT_TRAILING_STOP_PCT
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    max_consecutive_losses: int = DEFAULT_MAX_CONSECUTIVE_LOSSES

    # loop intervals
    market_poll_seconds: float = DEFAULT_MARKET_POLL_SECONDS
    signal_interval_seconds: float = DEFAULT_SIGNAL_INTERVAL_SECONDS
    position_interval_seconds: float = DEFAULT_POSITION_INTERVAL_SECONDS

    data_dir: str = DATA_DIRNAME

    # -- factory ----------------------------------------------------------

    @classmethod
    def from_file(cls, path: Path) -> TradingConfig:
        """Load from a ``settings.json`` file with validation.

        Missing or unparseable values fall back to defaults.  Validation
        warnings are logged but never raise.
        """
        try:
            raw = path.read_text(encoding="utf-8")
            data: dict[str, Any] = json.loads(raw) or {}
            if not isinstance(data, dict):
                data = {}
        except (OSError, json.JSONDecodeError, TypeError) as exc:
            logger.warning("Could not read config from %s: %s", path, exc)
            data = {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradingConfig:
        """Build from an already-parsed settings mapping (see :meth:`from_file`)."""
        risk = data.get("risk") if isinstance(data.get("risk"), dict) else {}
        signals = data.get("signals") if isinstance(data.get("signals"), dict) else {}
        loops = data.get("intervals") if isinstance(data.get("intervals"), dict) else {}

        cfg = cls(
            symbols=_parse_symbols(data),
            timeframes=_parse_timeframes(data),
            candles_limit=max(1, _safe_int(data.get("candles_limit"), DEFAULT_CANDLES_LIMIT)),
            paper_trading=_safe_bool(data.get("paper_trading"), True),
            initial_portfolio_value=_safe_float(
                data.get("initial_portfolio_value"), DEFAULT_INITIAL_PORTFOLIO
            ),
            signal_weights=_parse_weights(signals),
            min_signal_strength=_safe_float(
                signals.get("min_strength"), DEFAULT_MIN_SIGNAL_STRENGTH
            ),
            min_signal_confidence=_safe_float(
                signals.get("min_confidence"), DEFAULT_MIN_SIGNAL_CONFIDENCE
            ),
            strong_signal_threshold=_safe_float(
                signals.get("strong_threshold"), DEFAULT_STRONG_SIGNAL_THRESHOLD
            ),
            consensus_threshold=_safe_int(
                signals.get("consensus_threshold"), DEFAULT_CONSENSUS_THRESHOLD
            ),
            sentiment_veto_strength=_safe_float(
                signals.get("sentiment_veto_strength"), DEFAULT_SENTIMENT_VETO_STRENGTH
            ),
            signal_ttl_seconds=_safe_float(signals.get("ttl_seconds"), SIGNAL_TTL_SECONDS),
            max_position_size=_safe_float(
                risk.get("max_position_size"), DEFAULT_MAX_POSITION_SIZE
            ),
            max_daily_loss=_safe_float(risk.get("max_daily_loss"), DEFAULT_MAX_DAILY_LOSS),
            max_drawdown=_safe_float(risk.get("max_drawdown"), DEFAULT_MAX_DRAWDOWN),
            max_open_positions=_safe_int(
                risk.get("max_open_positions"), DEFAULT_MAX_OPEN_POSITIONS
            ),
            min_risk_reward_ratio=_safe_float(
                risk.get("min_risk_reward_ratio"), DEFAULT_MIN_RISK_REWARD
            ),
            max_leverage=_safe_float(risk.get("max_leverage"), DEFAULT_MAX_LEVERAGE),
            stop_loss_pct=_safe_float(risk.get("stop_loss_pct"), DEFAULT_STOP_LOSS_PCT),
            take_profit_pct=_safe_float(risk.get("take_profit_pct"), DEFAULT_TAKE_PROFIT_PCT),
            trailing_stop_pct=_safe_float(
                risk.get("trailing_stop_pct"), DEFAULT_TRAILING_STOP_PCT
            ),
            cooldown_seconds=_safe_float(risk.get("cooldown_seconds"), DEFAULT_COOLDOWN_SECONDS),
            max_consecutive_losses=_safe_int(
                risk.get("max_consecutive_losses"), DEFAULT_MAX_CONSECUTIVE_LOSSES
            ),
            market_poll_seconds=_safe_float(
                loops.get("market_poll_seconds"), DEFAULT_MARKET_POLL_SECONDS
            ),
            signal_interval_seconds=_safe_float(
                loops.get("signal_seconds"), DEFAULT_SIGNAL_INTERVAL_SECONDS
            ),
            position_interval_seconds=_safe_float(
                loops.get("position_seconds"), DEFAULT_POSITION_INTERVAL_SECONDS
            ),
            data_dir=str(data.get("data_dir") or DATA_DIRNAME),
        )

        for err in cfg.validate():
            logger.warning("Config validation: %s", err)

        return cfg

    # -- validation -------------------------------------------------------

    def validate(self) -> list[str]:
        """Return a list of human-readable validation warnings (empty = OK)."""
        errors: list[str] = []
        if not self.symbols:
            errors.append("No symbols configured.")
        if not self.timeframes:
            errors.append("No timeframes configured.")
        for tf in self.timeframes:
            if tf not in TIMEFRAME_SECONDS:
                errors.append(f"Unknown timeframe {tf!r}.")

        total = sum(self.signal_weights.values())
        if not math.isclose(total, 1.0, abs_tol=_WEIGHT_SUM_TOLERANCE):
            errors.append(f"signal_weights sum to {total:.4f}, expected 1.0.")
        missing = set(DEFAULT_SIGNAL_WEIGHTS) - set(self.signal_weights)
        if missing:
            errors.append(f"signal_weights missing factors: {sorted(missing)}.")

        if not 0 <= self.min_signal_strength <= 100:
            errors.append(f"min_signal_strength={self.min_signal_strength} outside 0-100.")
        if not 0 <= self.min_signal_confidence <= 100:
            errors.append(f"min_signal_confidence={self.min_signal_confidence} outside 0-100.")
        if self.consensus_threshold < 1:
            errors.append(f"consensus_threshold={self.consensus_threshold} must be >= 1.")
        if self.initial_portfolio_value <= 0:
            errors.append(
                f"initial_portfolio_value={self.initial_portfolio_value} must be > 0."
            )
        if not 0 < self.max_position_size <= 1:
            errors.append(f"max_position_size={self.max_position_size} must be in (0, 1].")
        if not 0 < self.max_daily_loss < 1:
            errors.append(f"max_daily_loss={self.max_daily_loss} must be in (0, 1).")
        if not 0 < self.max_drawdown < 1:
            errors.append(f"max_drawdown={self.max_drawdown} must be in (0, 1).")
        if self.max_open_positions < 1:
            errors.append(f"max_open_positions={self.max_open_positions} must be >= 1.")
        if self.max_leverage < 1:
            errors.append(f"max_leverage={self.max_leverage} must be >= 1.")
        if self.stop_loss_pct <= 0:
            errors.append(f"stop_loss_pct={self.stop_loss_pct} must be > 0.")
        if self.take_profit_pct <= 0:
            errors.append(f"take_profit_pct={self.take_profit_pct} must be > 0.")
        if self.trailing_stop_pct < 0:
            errors.append(f"trailing_stop_pct={self.trailing_stop_pct} must be >= 0.")
        if self.cooldown_seconds < 0:
            errors.append(f"cooldown_seconds={self.cooldown_seconds} must be >= 0.")
        for name in ("market_poll_seconds", "signal_interval_seconds", "position_interval_seconds"):
            if getattr(self, name) <= 0:
                errors.append(f"{name}={getattr(self, name)} must be > 0.")
        return errors


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _parse_symbols(data: dict[str, Any]) -> list[str]:
    raw = data.get("symbols")
    if not isinstance(raw, list) or not raw:
        return list(DEFAULT_SYMBOLS)
    symbols = [str(s).strip().upper() for s in raw if str(s).strip()]
    return symbols if symbols else list(DEFAULT_SYMBOLS)


def _parse_timeframes(data: dict[str, Any]) -> list[str]:
    raw = data.get("timeframes")
    if not isinstance(raw, list) or not raw:
        return list(TIMEFRAMES)
    frames = [str(t).strip() for t in raw if str(t).strip()]
    return frames if frames else list(TIMEFRAMES)


def _parse_weights(signals: dict[str, Any]) -> dict[str, float]:
    raw = signals.get("weights")
    if not isinstance(raw, dict) or not raw:
        return dict(DEFAULT_SIGNAL_WEIGHTS)
    weights = dict(DEFAULT_SIGNAL_WEIGHTS)
    for key, value in raw.items():
        weights[str(key)] = _safe_float(value, weights.get(str(key), 0.0))
    total = sum(weights.values())
    if not math.isclose(total, 1.0, abs_tol=_WEIGHT_SUM_TOLERANCE):
        logger.warning(
            "signals.weights sum to %.4f, not 1.0; using default weights", total
        )
        return dict(DEFAULT_SIGNAL_WEIGHTS)
    return weights


def _safe_int(value: Any, default: int) -> int:
    try:
        return int(float(str(value).replace("%", "").strip()))
    except (TypeError, ValueError, OverflowError):
        return default


def _safe_float(value: Any, default: float) -> float:
    try:
        result = float(str(value).replace("%", "").strip())
    except (TypeError, ValueError):
        return float(default)
    return result if math.isfinite(result) else float(default)


def _safe_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    return default
