"""Abstract order execution with Binance implementation.

Wraps exchange trading APIs behind an ABC so the position manager can be
tested with :class:`~cryptopilot.core.paper_client.PaperOrderExecutor`.

Orders are all-or-nothing: :meth:`OrderExecutor.submit_order` either
returns a :class:`Fill` for the full requested size or raises
:class:`ExecutionError`.  A partially filled order is reported as a
failure with the executed quantity in the message so an operator can
reconcile it.
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal

from cryptopilot.core.constants import QUOTE_ASSET
from cryptopilot.core.credentials import BinanceCredentials
from cryptopilot.core.exceptions import (
    ExchangeError,
    ExecutionError,
    InsufficientFundsError,
    RateLimitError,
)
from cryptopilot.core.retry import RateLimiter, retry
from cryptopilot.core.symbols import to_binance_symbol
from cryptopilot.models.trade import Fill, OrderSide

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class OrderExecutor(ABC):
    """Abstract market-order interface."""

    @abstractmethod
    def submit_order(self, symbol: str, side: OrderSide, size: float) -> Fill:
        """Place a market order for *size* units of *symbol*.

        Returns the :class:`Fill` of a fully executed order.

        Raises
        ------
        ExecutionError
            Rejected, expired, cancelled or partially filled order.
        ExchangeError
            Transport or API failure before the order was accepted.
        """

    @abstractmethod
    def get_balances(self) -> dict[str, float]:
        """Return non-zero balances keyed by asset, quote asset included."""


# ---------------------------------------------------------------------------
# Binance implementation
# ---------------------------------------------------------------------------

# Binance order status → internal state
_STATUS_MAP: dict[str, str] = {
    "NEW": "pending",
    "PARTIALLY_FILLED": "pending",
    "FILLED": "filled",
    "CANCELED": "canceled",
    "PENDING_CANCEL": "pending",
    "REJECTED": "rejected",
    "EXPIRED": "expired",
    "EXPIRED_IN_MATCH": "expired",
}

_TERMINAL_STATES = frozenset({"filled", "canceled", "rejected", "expired"})

# Binance API error codes with a more specific meaning
_INSUFFICIENT_BALANCE_CODE = -2010
_RATE_LIMIT_CODES = frozenset({-1003, -1015})

# Relative tolerance when comparing executed vs requested quantity
_FILL_TOLERANCE = Decimal("1e-9")


class BinanceOrderExecutor(OrderExecutor):
    """Binance Spot market orders via the ``python-binance`` SDK.

    Quantities are rounded down to the symbol's LOT_SIZE step before the
    order is sent; the rounded quantity is what must fill.

    Spot accounts cannot short: a SELL larger than the free balance is
    rejected by the exchange and surfaces as :class:`ExecutionError`.
    """

    def __init__(
        self,
        credentials: BinanceCredentials,
        calls_per_second: float = 5.0,
        poll_timeout: float = 30.0,
    ) -> None:
        if not credentials.is_valid:
            raise ValueError("Binance credentials are missing or empty")
        self._credentials = credentials
        self._rate_limiter = RateLimiter(calls_per_second)
        self._poll_timeout = poll_timeout
        self._lot_size_cache: dict[str, tuple[Decimal, Decimal]] = {}
        self._client = self._create_client()

    def _create_client(self) -> object:
        """Lazily import and create the Binance client."""
        from binance.client import Client as BinanceClient  # type: ignore[import-untyped]

        return BinanceClient(self._credentials.api_key, self._credentials.api_secret)

    # -- public API -----------------------------------------------------------

    @retry(max_retries=2, base_delay=2.0)
    def get_balances(self) -> dict[str, float]:
        """Return ``{asset: free + locked}`` for all non-zero balances."""
        acct = self._request("get_account")
        result: dict[str, float] = {}
        for bal in acct.get("balances", []) if isinstance(acct, dict) else []:
            asset = bal.get("asset", "")
            total = float(bal.get("free", 0.0) or 0.0) + float(bal.get("locked", 0.0) or 0.0)
            if total > 0:
                result[asset] = total
        result.setdefault(QUOTE_ASSET, 0.0)
        return result

    def submit_order(self, symbol: str, side: OrderSide, size: float) -> Fill:
        """Send a MARKET order and wait until it reaches a terminal state."""
        pair = to_binance_symbol(symbol)
        quantity = self._round_to_lot_size(pair, size)
        if quantity <= 0:
            raise ExecutionError(
                f"{side.value} {symbol}: size {size} rounds to zero for {pair} lot size"
            )

        client_order_id = uuid.uuid4().hex
        method = "order_market_buy" if side is OrderSide.BUY else "order_market_sell"
        raw = self._request(
            method,
            symbol=pair,
            quantity=format(quantity, "f"),
            newClientOrderId=client_order_id,
        )
        adapted = self._adapt_order(raw)
        order_id = adapted.get("id", "")

        if adapted.get("state") not in _TERMINAL_STATES and order_id:
            adapted = self._wait_terminal(pair, order_id) or adapted

        return self._to_fill(adapted, symbol, side, quantity)

    # -- order execution (private) -------------------------------------------

    def _request(self, method: str, **kwargs: object) -> dict:
        """Call an SDK method and translate its errors into the hierarchy."""
        from binance.exceptions import (  # type: ignore[import-untyped]
            BinanceAPIException,
            BinanceOrderException,
            BinanceRequestException,
        )

        self._rate_limiter.acquire()
        try:
            return getattr(self._client, method)(**kwargs)
        except BinanceAPIException as exc:
            code = getattr(exc, "code", None)
            if code == _INSUFFICIENT_BALANCE_CODE:
                raise InsufficientFundsError(f"Binance {method}: {exc}", code) from exc
            if code in _RATE_LIMIT_CODES:
                raise RateLimitError(f"Binance {method}: {exc}", code) from exc
            if method.startswith("order_"):
                raise ExecutionError(f"Binance {method} rejected: {exc}", code) from exc
            raise ExchangeError(f"Binance {method} failed: {exc}", code) from exc
        except BinanceOrderException as exc:
            raise ExecutionError(f"Binance {method} rejected: {exc}", getattr(exc, "code", None)) from exc
        except BinanceRequestException as exc:
            raise ExchangeError(f"Binance {method} failed: {exc}") from exc
        except (ConnectionError, TimeoutError, OSError) as exc:
            raise ExchangeError(f"Binance {method} network error: {exc}") from exc

    def _wait_terminal(self, pair: str, order_id: str) -> dict | None:
        """Poll the order until it reaches a terminal state or times out."""
        deadline = time.time() + self._poll_timeout
        while time.time() < deadline:
            try:
                raw = self._request("get_order", symbol=pair, orderId=int(order_id))
            except (ExchangeError, ValueError) as exc:
                logger.debug("Order poll for %s/%s failed: %s", pair, order_id, exc)
            else:
                adapted = self._adapt_order(raw)
                if adapted.get("state") in _TERMINAL_STATES:
                    return adapted
            time.sleep(1)
        logger.warning("Order %s/%s: timeout waiting for terminal state", pair, order_id)
        return None

    @staticmethod
    def _to_fill(order: dict, symbol: str, side: OrderSide, requested: Decimal) -> Fill:
        state = order.get("state", "")
        executed = Decimal(str(order.get("executed_qty", 0.0)))
        avg_price = float(order.get("average_price", 0.0))
        order_id = order.get("id") or None

        if state != "filled":
            raise ExecutionError(
                f"{side.value} {requested} {symbol} ended in state {state or 'unknown'!r} "
                f"(executed {executed})"
            )
        if executed + requested * _FILL_TOLERANCE < requested or avg_price <= 0:
            raise ExecutionError(
                f"{side.value} {symbol} partially filled: {executed} of {requested}"
            )

        fill = Fill(
            filled_price=avg_price,
            filled_size=float(executed),
            fee=float(order.get("fee_quote", 0.0)),
            order_id=order_id,
        )
        logger.info(
            "Binance %s %s filled: %.8f @ %.8f (order %s)",
            side.value,
            symbol,
            fill.filled_size,
            fill.filled_price,
            order_id,
        )
        return fill

    # -- precision handling ---------------------------------------------------

    def _get_lot_size(self, pair: str) -> tuple[Decimal, Decimal]:
        """Query and cache ``(stepSize, minQty)`` of the LOT_SIZE filter."""
        if pair in self._lot_size_cache:
            return self._lot_size_cache[pair]

        step, min_qty = Decimal("0.00000001"), Decimal("0.00000001")
        try:
            info = self._request("get_symbol_info", symbol=pair)
        except ExchangeError as exc:
            logger.warning("get_symbol_info(%s) failed, using default lot size: %s", pair, exc)
            return step, min_qty

        for f in (info or {}).get("filters", []):
            if f.get("filterType") == "LOT_SIZE":
                step = Decimal(str(f.get("stepSize", step)))
                min_qty = Decimal(str(f.get("minQty", min_qty)))
                break
        self._lot_size_cache[pair] = (step, min_qty)
        return step, min_qty

    def _round_to_lot_size(self, pair: str, quantity: float) -> Decimal:
        """Round *quantity* DOWN to the step size; ``0`` below the minimum."""
        step, min_qty = self._get_lot_size(pair)
        if step <= 0:
            return Decimal(str(quantity))
        rounded = (Decimal(str(quantity)) // step) * step
        if rounded < min_qty:
            return Decimal(0)
        return rounded.normalize()

    # -- response adaptation --------------------------------------------------

    @staticmethod
    def _adapt_order(raw: object) -> dict:
        """Adapt a raw Binance order dict into a normalised shape."""
        if not raw or not isinstance(raw, dict):
            return {}
        status = str(raw.get("status", "")).upper()
        exec_qty = float(raw.get("executedQty", 0.0) or 0.0)
        cum_quote = float(raw.get("cummulativeQuoteQty", 0.0) or 0.0)

        # Per-fill commissions are only reported in quote terms when paid in
        # the quote asset; other commission assets are left to reconciliation.
        fee_quote = 0.0
        for fill in raw.get("fills", []) or []:
            if fill.get("commissionAsset") == QUOTE_ASSET:
                fee_quote += float(fill.get("commission", 0.0) or 0.0)

        return {
            "id": str(raw.get("orderId", "")),
            "state": _STATUS_MAP.get(status, status.lower()),
            "executed_qty": exec_qty,
            "average_price": cum_quote / exec_qty if exec_qty > 0 else 0.0,
            "fee_quote": fee_quote,
        }
