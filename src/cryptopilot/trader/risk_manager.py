"""Risk manager and position sizer.

Every entry goes through :meth:`RiskManager.validate_trade`, which runs a
fixed sequence of checks and stops at the first failure.  A rejection is
returned as a value (:class:`TradeValidation` with ``is_valid=False``),
never raised: "not now" is a normal outcome for a trading bot.

The manager owns the only long-lived risk state: daily P&L and trade
counts (:class:`RiskState`), the open-position set (one per symbol) and
per-symbol cooldown clocks.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.exceptions import RiskManagementError, TradingError
from cryptopilot.models.position import PositionSide

logger = logging.getLogger(__name__)

# Relative slack so a request sized exactly at the cap survives float rounding
_VALUE_TOLERANCE = 1e-9


class RejectReason(Enum):
    MISSING_FIELDS = "missing_fields"
    COOLDOWN = "cooldown"
    MAX_POSITIONS = "max_positions"
    DUPLICATE_POSITION = "duplicate_position"
    DAILY_LOSS_LIMIT = "daily_loss_limit"
    MAX_DRAWDOWN = "max_drawdown"
    POSITION_SIZE = "position_size"
    LEVERAGE = "leverage"
    RISK_REWARD = "risk_reward"


@dataclass(frozen=True, slots=True)
class TradeRequest:
    """A proposed entry, before sizing."""

    symbol: str
    side: PositionSide
    size: float
    entry_price: float
    stop_loss: float
    take_profit: float
    leverage: float = 1.0

    @property
    def position_value(self) -> float:
        return self.size * self.entry_price

    def validate(self) -> list[str]:
        errors: list[str] = []
        if not self.symbol:
            errors.append("symbol is required.")
        if not isinstance(self.side, PositionSide):
            errors.append(f"side={self.side!r} is not a PositionSide.")
        if not self.size > 0:
            errors.append(f"size={self.size} must be > 0.")
        if not self.entry_price > 0:
            errors.append(f"entry_price={self.entry_price} must be > 0.")
        if not self.stop_loss > 0:
            errors.append(f"stop_loss={self.stop_loss} must be > 0.")
        if not self.take_profit > 0:
            errors.append(f"take_profit={self.take_profit} must be > 0.")
        if not self.leverage >= 1:
            errors.append(f"leverage={self.leverage} must be >= 1.")
        return errors


@dataclass(frozen=True, slots=True)
class TradeValidation:
    """Result of :meth:`RiskManager.validate_trade`."""

    is_valid: bool
    error: TradingError | None = None
    suggested_size: float = 0.0
    risk_reward: float = 0.0

    @property
    def reason(self) -> RejectReason | None:
        return self.error.reason if self.error is not None else None


@dataclass(frozen=True, slots=True)
class EmergencyStop:
    should_stop: bool
    reasons: tuple[str, ...] = ()


@dataclass
class RiskState:
    """Mutable risk counters.  Daily fields reset when the date changes."""

    portfolio_value: float
    peak_portfolio_value: float
    last_reset_date: str
    daily_pnl: float = 0.0
    daily_trades_count: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    consecutive_losses: int = 0
    total_pnl: float = 0.0


class RiskManager:
    """Validates and sizes trades against the configured risk limits.

    Parameters
    ----------
    config:
        Risk limits and the starting portfolio value.
    clock:
        Wall-clock source (Unix seconds), injectable for tests.
    today:
        Returns the current date string used for the daily rollover;
        derived from *clock* (local time) when omitted.
    """

    def __init__(
        self,
        config: TradingConfig,
        clock: Callable[[], float] = time.time,
        today: Callable[[], str] | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._today = today or (lambda: dt.date.fromtimestamp(self._clock()).isoformat())
        self._state = RiskState(
            portfolio_value=config.initial_portfolio_value,
            peak_portfolio_value=config.initial_portfolio_value,
            last_reset_date=self._today(),
        )
        self._open: dict[str, str] = {}
        self._last_exit: dict[str, float] = {}

    # -- state ----------------------------------------------------------------

    @property
    def state(self) -> RiskState:
        return self._state

    @property
    def open_positions(self) -> dict[str, str]:
        """``{symbol: position_id}`` of positions the manager counts as open."""
        return dict(self._open)

    @property
    def drawdown(self) -> float:
        """``(peak - current) / peak``, never negative."""
        peak = self._state.peak_portfolio_value
        if peak <= 0:
            return 0.0
        return max(0.0, (peak - self._state.portfolio_value) / peak)

    # -- validation -----------------------------------------------------------

    def validate_trade(self, request: TradeRequest) -> TradeValidation:
        """Run all checks in order; the first failure rejects the trade."""
        self._roll_daily_stats()
        cfg = self._config
        state = self._state

        problems = request.validate()
        if problems:
            return self._reject(RejectReason.MISSING_FIELDS, "; ".join(problems))

        remaining = self.cooldown_remaining(request.symbol)
        if remaining > 0:
            return self._reject(
                RejectReason.COOLDOWN,
                f"{request.symbol} in cooldown for another {remaining:.0f}s",
                remaining_seconds=remaining,
            )

        if len(self._open) >= cfg.max_open_positions:
            return self._reject(
                RejectReason.MAX_POSITIONS,
                f"{len(self._open)} open positions (max {cfg.max_open_positions})",
                open_positions=len(self._open),
            )

        if request.symbol in self._open:
            return self._reject(
                RejectReason.DUPLICATE_POSITION,
                f"{request.symbol} already has open position {self._open[request.symbol]}",
            )

        loss_limit = cfg.max_daily_loss * state.portfolio_value
        if state.daily_pnl <= -loss_limit:
            return self._reject(
                RejectReason.DAILY_LOSS_LIMIT,
                f"daily P&L {state.daily_pnl:.2f} at or below -{loss_limit:.2f}",
                daily_pnl=state.daily_pnl,
                limit=-loss_limit,
            )

        drawdown = self.drawdown
        if drawdown >= cfg.max_drawdown:
            return self._reject(
                RejectReason.MAX_DRAWDOWN,
                f"drawdown {drawdown:.2%} at or above {cfg.max_drawdown:.2%}",
                drawdown=drawdown,
                limit=cfg.max_drawdown,
            )

        max_value = cfg.max_position_size * state.portfolio_value
        if request.position_value > max_value * (1.0 + _VALUE_TOLERANCE):
            return self._reject(
                RejectReason.POSITION_SIZE,
                f"position value {request.position_value:.2f} exceeds {max_value:.2f}",
                position_value=request.position_value,
                limit=max_value,
            )

        if request.leverage > cfg.max_leverage:
            return self._reject(
                RejectReason.LEVERAGE,
                f"leverage {request.leverage} exceeds {cfg.max_leverage}",
                leverage=request.leverage,
                limit=cfg.max_leverage,
            )

        ratio = self.risk_reward_ratio(
            request.side, request.entry_price, request.stop_loss, request.take_profit
        )
        if ratio < cfg.min_risk_reward_ratio:
            return self._reject(
                RejectReason.RISK_REWARD,
                f"risk/reward {ratio:.2f} below {cfg.min_risk_reward_ratio}",
                risk_reward=ratio,
                limit=cfg.min_risk_reward_ratio,
            )

        suggested = self.calculate_position_size(
            request.entry_price, request.stop_loss, request.size
        )
        logger.debug(
            "Trade %s %s accepted: size %.8g (requested %.8g), R/R %.2f",
            request.side.value,
            request.symbol,
            suggested,
            request.size,
            ratio,
        )
        return TradeValidation(is_valid=True, suggested_size=suggested, risk_reward=ratio)

    def calculate_position_size(
        self,
        entry_price: float,
        stop_loss: float,
        requested_size: float | None = None,
    ) -> float:
        """Size so that hitting the stop loses ``stop_loss_pct`` of the portfolio.

        Capped at *requested_size* when given.  Zero risk per unit gives 0.
        """
        risk_per_unit = abs(entry_price - stop_loss)
        if risk_per_unit <= 0:
            return 0.0
        size = self._state.portfolio_value * self._config.stop_loss_pct / risk_per_unit
        if requested_size is not None:
            size = min(size, requested_size)
        return max(0.0, size)

    @staticmethod
    def risk_reward_ratio(
        side: PositionSide, entry_price: float, stop_loss: float, take_profit: float
    ) -> float:
        """Reward over risk; ``0.0`` when the risk is not positive."""
        if side is PositionSide.LONG:
            reward, risk = take_profit - entry_price, entry_price - stop_loss
        else:
            reward, risk = entry_price - take_profit, stop_loss - entry_price
        if risk <= 0:
            return 0.0
        return reward / risk

    def cooldown_remaining(self, symbol: str) -> float:
        last = self._last_exit.get(symbol)
        if last is None:
            return 0.0
        return max(0.0, self._config.cooldown_seconds - (self._clock() - last))

    # -- lifecycle hooks ------------------------------------------------------

    def register_position(self, symbol: str, position_id: str, count_trade: bool = True) -> None:
        """Count a newly opened (or restored, ``count_trade=False``) position."""
        self._roll_daily_stats()
        self._open[symbol] = position_id
        if count_trade:
            self._state.daily_trades_count += 1

    def release_position(self, symbol: str, pnl: float) -> None:
        """Record a closed position's realised *pnl* and start the cooldown."""
        self._roll_daily_stats()
        self._open.pop(symbol, None)
        self._last_exit[symbol] = self._clock()

        state = self._state
        state.daily_pnl += pnl
        state.total_pnl += pnl
        if pnl > 0:
            state.winning_trades += 1
            state.consecutive_losses = 0
        elif pnl < 0:
            state.losing_trades += 1
            state.consecutive_losses += 1
        self.update_portfolio_value(state.portfolio_value + pnl)

    def update_portfolio_value(self, value: float) -> None:
        self._state.portfolio_value = value
        if value > self._state.peak_portfolio_value:
            self._state.peak_portfolio_value = value

    # -- limits ---------------------------------------------------------------

    def emergency_stop(self) -> EmergencyStop:
        """Whether new entries must halt, and why."""
        self._roll_daily_stats()
        cfg = self._config
        state = self._state
        reasons: list[str] = []

        loss_limit = cfg.max_daily_loss * state.portfolio_value
        if state.daily_pnl <= -loss_limit:
            reasons.append(f"daily loss {state.daily_pnl:.2f} breached limit -{loss_limit:.2f}")
        if self.drawdown >= cfg.max_drawdown:
            reasons.append(f"drawdown {self.drawdown:.2%} breached {cfg.max_drawdown:.2%}")
        if state.consecutive_losses >= cfg.max_consecutive_losses:
            reasons.append(f"{state.consecutive_losses} consecutive losing trades")
        return EmergencyStop(should_stop=bool(reasons), reasons=tuple(reasons))

    def is_within_risk_limits(self) -> bool:
        return not self.emergency_stop().should_stop

    def ensure_within_limits(self) -> None:
        """Raise :class:`RiskManagementError` if any account-level limit is breached."""
        stop = self.emergency_stop()
        if stop.should_stop:
            raise RiskManagementError("; ".join(stop.reasons), self.risk_metrics())

    def risk_metrics(self) -> dict[str, Any]:
        state = self._state
        closed = state.winning_trades + state.losing_trades
        metrics = asdict(state)
        metrics.update(
            {
                "drawdown": self.drawdown,
                "open_positions": len(self._open),
                "win_rate": state.winning_trades / closed if closed else 0.0,
                "daily_loss_limit": -self._config.max_daily_loss * state.portfolio_value,
                "max_drawdown": self._config.max_drawdown,
            }
        )
        return metrics

    # -- internal -------------------------------------------------------------

    def _roll_daily_stats(self) -> None:
        today = self._today()
        if today != self._state.last_reset_date:
            logger.info(
                "New trading day %s: resetting daily P&L %.2f over %d trade(s)",
                today,
                self._state.daily_pnl,
                self._state.daily_trades_count,
            )
            self._state.daily_pnl = 0.0
            self._state.daily_trades_count = 0
            self._state.last_reset_date = today

    @staticmethod
    def _reject(reason: RejectReason, message: str, **details: Any) -> TradeValidation:
        logger.info("Trade rejected (%s): %s", reason.value, message)
        return TradeValidation(is_valid=False, error=TradingError(reason, message, details))
