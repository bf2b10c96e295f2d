"""CryptoPilot exception hierarchy.

All application-specific exceptions inherit from :class:`CryptoPilotError`.
"No good trade right now" is never an exception: the scorer returns
``None`` and the risk manager returns a rejection value.  Exceptions are
reserved for malformed input, failed external calls and broken invariants.
"""

from __future__ import annotations

from typing import Any


class CryptoPilotError(Exception):
    """Base exception for all CryptoPilot errors."""


# -- Configuration ----------------------------------------------------------


class ConfigError(CryptoPilotError):
    """Invalid or missing configuration."""


# -- Input validation -------------------------------------------------------


class ValidationError(CryptoPilotError):
    """Malformed input; the caller can recover by fixing the call."""


class PositionNotFoundError(ValidationError):
    """An operation referenced a position id that is not open."""

    def __init__(self, position_id: str) -> None:
        super().__init__(f"No open position with id {position_id!r}")
        self.position_id = position_id


# -- Business rules ---------------------------------------------------------


class TradingError(CryptoPilotError):
    """A risk or business rule rejected an action.

    Parameters
    ----------
    reason:
        Machine-readable rejection code (a :class:`RejectReason` value or
        a plain string).
    message:
        Human-readable explanation.
    details:
        Optional numbers that explain the rejection (limits, actual values).
    """

    def __init__(
        self,
        reason: Any,
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or str(reason))
        self.reason = reason
        self.message = message or str(reason)
        self.details = dict(details or {})


class RiskManagementError(CryptoPilotError):
    """A risk limit is breached independent of any specific trade."""

    def __init__(self, message: str, metrics: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.metrics = dict(metrics or {})


# -- Exchange / API ---------------------------------------------------------


class ExchangeError(CryptoPilotError):
    """Exchange API error (network, auth, unexpected response)."""

    def __init__(self, message: str, exchange_code: str | int | None = None) -> None:
        super().__init__(message)
        self.exchange_code = exchange_code


class RateLimitError(ExchangeError):
    """Exchange API rate limit exceeded."""


class InsufficientFundsError(ExchangeError):
    """Not enough balance to execute an order."""


class ExecutionError(ExchangeError):
    """An order was rejected, not filled, or only partially filled."""


# -- Prediction -------------------------------------------------------------


class ModelUnavailableError(CryptoPilotError):
    """The price predictor cannot produce a prediction right now."""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    ExchangeError,
    ConnectionError,
    TimeoutError,
)


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` for transient failures worth retrying.

    Exchange, network and timeout errors are transient.  Insufficient
    funds will not fix itself on retry.
    """
    if isinstance(exc, InsufficientFundsError):
        return False
    return isinstance(exc, RETRYABLE_ERRORS)
