"""Shared pytest fixtures for CryptoPilot tests."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.storage import FileStore
from cryptopilot.models.candle import Candle


@pytest.fixture
def file_store() -> FileStore:
    return FileStore()


@pytest.fixture
def sample_config() -> TradingConfig:
    """All defaults, BTC and ETH."""
    return TradingConfig(symbols=["BTC", "ETH"])


@pytest.fixture
def sample_settings_dict() -> dict[str, Any]:
    """A raw settings.json-style dict for testing config loading."""
    return {
        "symbols": ["btc", "eth", "sol"],
        "timeframes": ["1h", "4h"],
        "candles_limit": 150,
        "paper_trading": True,
        "initial_portfolio_value": 25_000,
        "signals": {
            "min_strength": 70,
            "min_confidence": 65,
            "consensus_threshold": 3,
            "ttl_seconds": 3600,
        },
        "risk": {
            "max_position_size": 0.05,
            "max_daily_loss": 0.03,
            "stop_loss_pct": 0.015,
            "take_profit_pct": 0.045,
            "trailing_stop_pct": 0.01,
            "cooldown_seconds": 120,
        },
        "intervals": {"market_poll_seconds": 10, "signal_seconds": 600, "position_seconds": 15},
        "data_dir": "bot_data",
    }


@pytest.fixture
def settings_file(tmp_path: Path, sample_settings_dict: dict[str, Any]) -> Path:
    p = tmp_path / "settings.json"
    p.write_text(json.dumps(sample_settings_dict, indent=2), encoding="utf-8")
    return p


@pytest.fixture
def make_candles() -> Callable[..., list[Candle]]:
    """Build candles from a close series.

    Each candle opens at the previous close, spans ``spread`` around the
    body and is spaced ``step`` seconds apart.
    """

    def _make(
        closes: Sequence[float],
        volumes: Sequence[float] | None = None,
        spread: float = 0.5,
        start: int = 1_700_000_000,
        step: int = 3600,
    ) -> list[Candle]:
        candles: list[Candle] = []
        prev = closes[0]
        for i, close in enumerate(closes):
            open_ = prev
            candles.append(
                Candle(
                    timestamp=start + i * step,
                    open=open_,
                    high=max(open_, close) + spread,
                    low=max(0.0, min(open_, close) - spread),
                    close=close,
                    volume=volumes[i] if volumes is not None else 100.0,
                )
            )
            prev = close
        return candles

    return _make
