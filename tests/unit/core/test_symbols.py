"""Tests for cryptopilot.core.symbols."""

import pytest

from cryptopilot.core.symbols import (
    from_binance_symbol,
    normalize_symbol,
    to_binance_symbol,
    to_kucoin_symbol,
)


class TestNormalizeSymbol:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("BTC", "BTC"),
            ("btc/usdt", "BTC"),
            ("ETH-USDT", "ETH"),
            ("sol_usdt", "SOL"),
            ("SOLUSDT", "SOL"),
            (" doge ", "DOGE"),
        ],
    )
    def test_spellings(self, raw: str, expected: str) -> None:
        assert normalize_symbol(raw) == expected

    def test_quote_alone_is_kept(self) -> None:
        assert normalize_symbol("USDT") == "USDT"


class TestToKucoinSymbol:
    def test_basic(self) -> None:
        assert to_kucoin_symbol("BTC") == "BTC-USDT"

    def test_from_binance_pair(self) -> None:
        assert to_kucoin_symbol("ethusdt") == "ETH-USDT"


class TestToBinanceSymbol:
    def test_basic(self) -> None:
        assert to_binance_symbol("BTC") == "BTCUSDT"

    def test_lowercase(self) -> None:
        assert to_binance_symbol("eth") == "ETHUSDT"

    def test_slash_pair(self) -> None:
        assert to_binance_symbol("sol/usdt") == "SOLUSDT"

    def test_custom_quote(self) -> None:
        assert to_binance_symbol("BTC", "BUSD") == "BTCBUSD"


class TestFromBinanceSymbol:
    def test_basic(self) -> None:
        assert from_binance_symbol("BTCUSDT") == "BTC"

    def test_whitespace(self) -> None:
        assert from_binance_symbol(" DOGEUSDT ") == "DOGE"

    def test_no_suffix_match(self) -> None:
        assert from_binance_symbol("BTCETH", "USDT") == "BTCETH"


class TestRoundTrip:
    def test_round_trip(self) -> None:
        for coin in ("BTC", "ETH", "XRP", "DOGE", "SOL"):
            assert from_binance_symbol(to_binance_symbol(coin)) == coin
            assert normalize_symbol(to_kucoin_symbol(coin)) == coin
