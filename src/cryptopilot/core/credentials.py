"""Multi-source credential loading for the exchange and the notifier.

Priority order (first match wins):

1. Environment variables (e.g. ``BINANCE_API_KEY`` / ``BINANCE_API_SECRET``)
2. OS keyring, service ``"cryptopilot"``
3. Plaintext files in the project directory (``b_key.txt`` / ``b_secret.txt``)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

_KEYRING_SERVICE = "cryptopilot"


@dataclass(frozen=True)
class _Source:
    env: tuple[str, str]
    keyring_names: tuple[str, str]
    files: tuple[str, str]


_BINANCE = _Source(
    env=("BINANCE_API_KEY", "BINANCE_API_SECRET"),
    keyring_names=("binance_api_key", "binance_api_secret"),
    files=("b_key.txt", "b_secret.txt"),
)

_TELEGRAM = _Source(
    env=("TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID"),
    keyring_names=("telegram_bot_token", "telegram_chat_id"),
    files=("telegram_token.txt", "telegram_chat_id.txt"),
)


@dataclass(frozen=True)
class BinanceCredentials:
    """Holds a Binance API key pair."""

    api_key: str
    api_secret: str

    @property
    def is_valid(self) -> bool:
        """True when both key and secret are non-empty."""
        return bool(self.api_key) and bool(self.api_secret)

    @classmethod
    def load(cls, base_dir: Path | None = None) -> BinanceCredentials:
        """Load from env vars, keyring, then files.

        Check :attr:`is_valid` before using: the pair may be empty strings
        if nothing was found anywhere.
        """
        key, secret = _load_pair(_BINANCE, "Binance", base_dir)
        return cls(api_key=key, api_secret=secret)


@dataclass(frozen=True)
class TelegramCredentials:
    """Telegram bot token and target chat id."""

    bot_token: str
    chat_id: str

    @property
    def is_valid(self) -> bool:
        return bool(self.bot_token) and bool(self.chat_id)

    @classmethod
    def load(cls, base_dir: Path | None = None) -> TelegramCredentials:
        token, chat_id = _load_pair(_TELEGRAM, "Telegram", base_dir)
        return cls(bot_token=token, chat_id=chat_id)


def _load_pair(source: _Source, label: str, base_dir: Path | None) -> tuple[str, str]:
    # 1. Environment variables
    first = os.environ.get(source.env[0], "").strip()
    second = os.environ.get(source.env[1], "").strip()
    if first and second:
        logger.info("Loaded %s credentials from environment variables.", label)
        return first, second

    # 2. OS keyring
    try:
        first = (keyring.get_password(_KEYRING_SERVICE, source.keyring_names[0]) or "").strip()
        second = (keyring.get_password(_KEYRING_SERVICE, source.keyring_names[1]) or "").strip()
    except KeyringError as exc:
        logger.debug("Keyring lookup for %s failed: %s", label, exc)
        first = second = ""
    if first and second:
        logger.info("Loaded %s credentials from OS keyring.", label)
        return first, second

    # 3. Plaintext files
    if base_dir is None:
        base_dir = Path.cwd()
    first = _read_file(base_dir / source.files[0])
    second = _read_file(base_dir / source.files[1])
    if first and second:
        logger.info("Loaded %s credentials from text files.", label)
        return first, second

    logger.warning("No %s credentials found in env vars, keyring, or files.", label)
    return "", ""


def _read_file(path: Path) -> str:
    """Read and strip a single-line credential file. Return '' on failure."""
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return ""
