"""Tests for cryptopilot.models.types."""

from __future__ import annotations

from cryptopilot.models.types import Price, Score, Symbol, Timeframe


class TestTypeAliases:
    """Type aliases only document intent; verify they're importable and usable."""

    def test_timeframe_is_str(self) -> None:
        tf: Timeframe = "1h"
        assert isinstance(tf, str)

    def test_symbol_is_str(self) -> None:
        coin: Symbol = "BTC"
        assert isinstance(coin, str)

    def test_price_and_score_are_float(self) -> None:
        price: Price = 42000.50
        score: Score = 72.5
        assert isinstance(price, float)
        assert isinstance(score, float)
