"""Best-effort notification channels.

Notifications describe what the bot did (position opened or closed,
emergency stop).  A failing channel must never break a trading tick, so
:class:`NotifierGroup` fans messages out and logs, rather than raises,
any channel error.

Usage::

    notifier = NotifierGroup([LogNotifier(), TelegramNotifier(creds)])
    notifier.notify(format_position_opened(position))
"""

from __future__ import annotations

import html
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

import requests

from cryptopilot.core.credentials import TelegramCredentials
from cryptopilot.core.exceptions import ExchangeError
from cryptopilot.core.retry import RateLimiter
from cryptopilot.models.position import Position

logger = logging.getLogger(__name__)

_TELEGRAM_API = "https://api.telegram.org"
_TELEGRAM_MAX_LENGTH = 4096


class Notifier(ABC):
    """A notification channel.

    Attributes
    ----------
    name:
        Human-readable channel name used in logs.
    """

    name: str = "notifier"

    @abstractmethod
    def notify(self, message: str) -> None:
        """Deliver *message*.  May raise on delivery failure."""


class LogNotifier(Notifier):
    """Writes notifications to the application log."""

    name = "log"

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def notify(self, message: str) -> None:
        logger.log(self._level, "NOTIFY: %s", message)


class TelegramNotifier(Notifier):
    """Sends messages through the Telegram Bot API ``sendMessage`` call.

    Parameters
    ----------
    credentials:
        Bot token and target chat id.
    session:
        Optional :class:`requests.Session` (connection reuse, tests).
    timeout:
        Per-request timeout in seconds.
    calls_per_second:
        Client-side rate limit; Telegram allows about one message per
        second per chat.
    """

    name = "telegram"

    def __init__(
        self,
        credentials: TelegramCredentials,
        session: requests.Session | None = None,
        timeout: float = 10.0,
        calls_per_second: float = 1.0,
    ) -> None:
        if not credentials.is_valid:
            raise ValueError("Telegram credentials are missing or empty")
        self._credentials = credentials
        self._session = session or requests.Session()
        self._timeout = timeout
        self._rate_limiter = RateLimiter(calls_per_second)

    @property
    def url(self) -> str:
        return f"{_TELEGRAM_API}/bot{self._credentials.bot_token}/sendMessage"

    def notify(self, message: str) -> None:
        payload = {
            "chat_id": self._credentials.chat_id,
            "text": message[:_TELEGRAM_MAX_LENGTH],
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        self._rate_limiter.acquire()
        try:
            response = self._session.post(self.url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise ExchangeError(f"Telegram request failed: {exc}") from exc
        if response.status_code != 200:
            raise ExchangeError(
                f"Telegram sendMessage returned {response.status_code}: {response.text[:200]}",
                response.status_code,
            )


class NotifierGroup(Notifier):
    """Fans a message out to several channels, isolating their failures."""

    name = "group"

    def __init__(self, notifiers: Iterable[Notifier] = ()) -> None:
        self._notifiers: list[Notifier] = list(notifiers)

    @property
    def notifiers(self) -> list[Notifier]:
        return list(self._notifiers)

    def add(self, notifier: Notifier) -> None:
        self._notifiers.append(notifier)
        logger.info("Notifier registered: %s", notifier.name)

    def notify(self, message: str) -> None:
        for notifier in self._notifiers:
            self._safe_call(notifier, message)

    @staticmethod
    def _safe_call(notifier: Notifier, message: str) -> None:
        try:
            notifier.notify(message)
        except Exception:
            logger.exception("Notifier %s failed to deliver message", notifier.name)


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def format_position_opened(position: Position) -> str:
    return (
        f"<b>Opened {position.side.value} {html.escape(position.symbol)}</b>\n"
        f"Size: {position.size:.8g} @ {position.entry_price:.8g}\n"
        f"SL: {position.stop_loss:.8g}  TP: {position.take_profit:.8g}"
    )


def format_position_closed(position: Position) -> str:
    pnl = position.realized_pnl or 0.0
    reason = position.close_reason.value if position.close_reason else "unknown"
    pct = position.pnl_pct(position.exit_price) if position.exit_price is not None else 0.0
    return (
        f"<b>Closed {position.side.value} {html.escape(position.symbol)}</b> ({reason})\n"
        f"Exit: {position.exit_price or 0.0:.8g}  Entry: {position.entry_price:.8g}\n"
        f"P&amp;L: {pnl:+.2f} ({pct:+.2f}%)"
    )


def format_emergency_stop(reasons: Iterable[str]) -> str:
    lines = "\n".join(f"- {html.escape(r)}" for r in reasons)
    return f"<b>EMERGENCY STOP</b>: new entries halted\n{lines}"
