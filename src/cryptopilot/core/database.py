"""Repository interfaces for persistent storage.

Business logic talks to :class:`TradeRepository` and
:class:`PositionRepository`; the file implementations below keep the
storage format trivial (a JSONL trade log, one JSON file per position).
Another backend only has to implement the two ABCs.

Persistence failures are logged and reported through the boolean return
value; they are never raised into a trading tick.

Usage::

    trades = FileTradeRepository(Path("data"))
    trades.save_trade(trade)
    recent = trades.get_trades("BTC", since=time.time() - 86400)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from cryptopilot.core.constants import POSITIONS_DIRNAME, TRADE_HISTORY_FILENAME
from cryptopilot.core.storage import FileStore
from cryptopilot.models.position import Position
from cryptopilot.models.trade import Trade

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Trade repository
# ---------------------------------------------------------------------------


class TradeRepository(ABC):
    """Abstract interface for trade persistence."""

    @abstractmethod
    def save_trade(self, trade: Trade) -> bool:
        """Append a trade record.  Returns ``False`` if it was not stored."""

    @abstractmethod
    def get_trades(self, symbol: str | None = None, since: float = 0.0) -> list[Trade]:
        """Return trades (optionally for one *symbol*) with ``timestamp >= since``."""


class FileTradeRepository(TradeRepository):
    """JSONL trade log at ``<base_dir>/trade_history.jsonl``."""

    def __init__(self, base_dir: Path) -> None:
        self._path = Path(base_dir) / TRADE_HISTORY_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def save_trade(self, trade: Trade) -> bool:
        ok = FileStore.append_jsonl(self._path, trade.to_dict())
        if not ok:
            logger.error("Trade %s (%s %s) was not persisted", trade.id, trade.side.value, trade.symbol)
        return ok

    def get_trades(self, symbol: str | None = None, since: float = 0.0) -> list[Trade]:
        wanted = symbol.upper().strip() if symbol else None
        trades: list[Trade] = []
        for record in FileStore.read_jsonl(self._path):
            try:
                trade = Trade.from_dict(record)
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed trade record: %s", exc)
                continue
            if wanted and trade.symbol.upper() != wanted:
                continue
            if trade.timestamp >= since:
                trades.append(trade)
        return trades


# ---------------------------------------------------------------------------
# Position repository
# ---------------------------------------------------------------------------


class PositionRepository(ABC):
    """Abstract interface for position persistence."""

    @abstractmethod
    def save_position(self, position: Position) -> bool:
        """Persist the current state of *position* (open or closed)."""

    @abstractmethod
    def get_position(self, position_id: str) -> Position | None:
        """Load one position by id, or ``None`` if unknown or unreadable."""

    @abstractmethod
    def load_open_positions(self) -> list[Position]:
        """Return every persisted position whose status is OPEN."""


class FilePositionRepository(PositionRepository):
    """One JSON file per position at ``<base_dir>/positions/<id>.json``.

    Closed positions keep their file as an audit record; only OPEN ones are
    returned by :meth:`load_open_positions`.
    """

    def __init__(self, base_dir: Path) -> None:
        self._dir = Path(base_dir) / POSITIONS_DIRNAME

    def save_position(self, position: Position) -> bool:
        ok = FileStore.write_json(self._path_for(position.id), position.to_dict())
        if not ok:
            logger.error("Position %s (%s) was not persisted", position.id, position.symbol)
        return ok

    def get_position(self, position_id: str) -> Position | None:
        path = self._path_for(position_id)
        data = FileStore.read_json(path)
        if data is None:
            return None
        return self._parse(data, path)

    def load_open_positions(self) -> list[Position]:
        if not self._dir.is_dir():
            return []
        positions: list[Position] = []
        for path in sorted(self._dir.glob("*.json")):
            data = FileStore.read_json(path)
            if data is None:
                continue
            position = self._parse(data, path)
            if position is not None and position.is_open:
                positions.append(position)
        return positions

    @staticmethod
    def _parse(data: object, path: Path) -> Position | None:
        if not isinstance(data, dict):
            logger.warning("Skipping malformed position file %s", path.name)
            return None
        try:
            return Position.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed position file %s: %s", path.name, exc)
            return None

    def _path_for(self, position_id: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in position_id)
        return self._dir / f"{safe}.json"
