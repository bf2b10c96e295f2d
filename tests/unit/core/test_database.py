"""Tests for cryptopilot.core.database (file-backed repositories)."""

from __future__ import annotations

from pathlib import Path

from cryptopilot.core.database import (
    FilePositionRepository,
    FileTradeRepository,
    PositionRepository,
    TradeRepository,
)
from cryptopilot.models.position import (
    ExitReason,
    Position,
    PositionSide,
    PositionStatus,
    TrailingStop,
)
from cryptopilot.models.trade import OrderSide, Trade


def _trade(trade_id: str, symbol: str = "BTC", ts: float = 1000.0, pnl: float | None = None) -> Trade:
    return Trade(
        id=trade_id,
        position_id="pos-1",
        symbol=symbol,
        side=OrderSide.BUY,
        price=100.0,
        size=0.5,
        reason="entry",
        timestamp=ts,
        pnl=pnl,
        fee=0.05,
        order_id="ord-1",
    )


def _position(pos_id: str = "pos-BTC-1", symbol: str = "BTC") -> Position:
    return Position(
        id=pos_id,
        symbol=symbol,
        side=PositionSide.LONG,
        size=0.1,
        entry_price=100.0,
        stop_loss=98.0,
        take_profit=104.0,
        current_price=101.0,
        unrealized_pnl=0.1,
        trailing_stop=TrailingStop(percentage=0.01, high_water_mark=101.0, trigger_price=99.99),
        opened_at=1_700_000_000.0,
        signal_id="sig-1",
    )


class TestInterfaces:
    def test_file_repos_implement_abcs(self, tmp_path: Path) -> None:
        assert isinstance(FileTradeRepository(tmp_path), TradeRepository)
        assert isinstance(FilePositionRepository(tmp_path), PositionRepository)


class TestFileTradeRepository:
    def test_save_and_get(self, tmp_path: Path) -> None:
        repo = FileTradeRepository(tmp_path)
        assert repo.save_trade(_trade("t1")) is True
        assert repo.path == tmp_path / "trade_history.jsonl"
        assert repo.get_trades() == [_trade("t1")]

    def test_filter_by_symbol_and_since(self, tmp_path: Path) -> None:
        repo = FileTradeRepository(tmp_path)
        repo.save_trade(_trade("t1", "BTC", ts=100.0))
        repo.save_trade(_trade("t2", "ETH", ts=200.0))
        repo.save_trade(_trade("t3", "BTC", ts=300.0, pnl=4.5))

        assert [t.id for t in repo.get_trades("btc")] == ["t1", "t3"]
        assert [t.id for t in repo.get_trades(since=200.0)] == ["t2", "t3"]
        assert repo.get_trades("BTC", since=250.0)[0].pnl == 4.5

    def test_malformed_records_skipped(self, tmp_path: Path) -> None:
        repo = FileTradeRepository(tmp_path)
        repo.save_trade(_trade("t1"))
        with repo.path.open("a", encoding="utf-8") as fh:
            fh.write('{"id": "broken"}\n')
            fh.write('{"id": "t9", "symbol": "BTC", "side": "HOLD", "price": 1, "size": 1}\n')
        assert [t.id for t in repo.get_trades()] == ["t1"]

    def test_empty_history(self, tmp_path: Path) -> None:
        assert FileTradeRepository(tmp_path).get_trades() == []


class TestFilePositionRepository:
    def test_round_trip_is_exact(self, tmp_path: Path) -> None:
        repo = FilePositionRepository(tmp_path)
        pos = _position()
        assert repo.save_position(pos) is True
        assert repo.get_position(pos.id) == pos

    def test_unknown_id(self, tmp_path: Path) -> None:
        assert FilePositionRepository(tmp_path).get_position("nope") is None

    def test_load_open_skips_closed(self, tmp_path: Path) -> None:
        repo = FilePositionRepository(tmp_path)
        open_pos = _position("pos-BTC-1")
        closed = _position("pos-ETH-1", "ETH")
        closed.close(103.0, ExitReason.TAKE_PROFIT, closed_at=1_700_000_500.0)
        repo.save_position(open_pos)
        repo.save_position(closed)

        loaded = repo.load_open_positions()
        assert [p.id for p in loaded] == ["pos-BTC-1"]
        assert repo.get_position("pos-ETH-1").status is PositionStatus.CLOSED  # type: ignore[union-attr]

    def test_overwrite_updates_state(self, tmp_path: Path) -> None:
        repo = FilePositionRepository(tmp_path)
        pos = _position()
        repo.save_position(pos)
        pos.mark(110.0)
        repo.save_position(pos)
        assert repo.get_position(pos.id).current_price == 110.0  # type: ignore[union-attr]

    def test_malformed_files_skipped(self, tmp_path: Path) -> None:
        repo = FilePositionRepository(tmp_path)
        repo.save_position(_position())
        pos_dir = tmp_path / "positions"
        (pos_dir / "garbage.json").write_text("{{{", encoding="utf-8")
        (pos_dir / "list.json").write_text("[1, 2]", encoding="utf-8")
        (pos_dir / "partial.json").write_text('{"id": "x"}', encoding="utf-8")
        assert len(repo.load_open_positions()) == 1

    def test_missing_dir(self, tmp_path: Path) -> None:
        assert FilePositionRepository(tmp_path / "fresh").load_open_positions() == []

    def test_unsafe_id_sanitised(self, tmp_path: Path) -> None:
        repo = FilePositionRepository(tmp_path)
        pos = _position("../../evil")
        repo.save_position(pos)
        assert (tmp_path / "positions" / "______evil.json").exists()
        assert repo.get_position("../../evil") == pos
