"""Trading runner: the asyncio orchestrator.

Three periodic ticks drive the bot:

* **market** (default 5 s): refresh the latest price of every symbol.
* **signal** (default 300 s): regenerate signals, then run consensus →
  risk → entry for symbols without an open position.
* **position** (default 30 s): mark open positions and close those whose
  stop-loss, take-profit or trailing stop fired.

Each tick type is single-flight: if the previous tick of the same type is
still running, the new one is skipped.  The signal and position ticks
share one lock, so evaluating positions and acting on signals never
interleave.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from cryptopilot.core.config import TradingConfig
from cryptopilot.core.constants import STATUS_FILENAME
from cryptopilot.core.exceptions import CryptoPilotError, ExchangeError
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.core.notifier import Notifier, format_emergency_stop
from cryptopilot.core.storage import FileStore
from cryptopilot.models.position import Position
from cryptopilot.thinker.consensus import ConsensusAggregator
from cryptopilot.thinker.runner import SignalRunner
from cryptopilot.trader.position_manager import PositionManager
from cryptopilot.trader.risk_manager import RiskManager

logger = logging.getLogger(__name__)

_TICK_ERRORS = (
    CryptoPilotError,
    OSError,
    RuntimeError,
    ValueError,
    TypeError,
    KeyError,
    IndexError,
    ArithmeticError,
)


class PriceBook:
    """Latest price per symbol, applied last-write-wins by timestamp."""

    def __init__(self) -> None:
        self._prices: dict[str, tuple[float, float]] = {}

    def update(self, symbol: str, price: float, timestamp: float) -> bool:
        """Store *price* unless a newer quote is already held.

        Returns ``False`` for a stale or non-positive quote.
        """
        if price <= 0:
            return False
        current = self._prices.get(symbol)
        if current is not None and timestamp < current[1]:
            logger.debug("Dropping stale %s quote (%.3f < %.3f)", symbol, timestamp, current[1])
            return False
        self._prices[symbol] = (price, timestamp)
        return True

    def get(self, symbol: str) -> float | None:
        entry = self._prices.get(symbol)
        return entry[0] if entry else None

    def timestamp(self, symbol: str) -> float | None:
        entry = self._prices.get(symbol)
        return entry[1] if entry else None

    def snapshot(self) -> dict[str, float]:
        return {s: p for s, (p, _) in self._prices.items()}


class TradingRunner:
    """Runs the market, signal and position ticks.

    Parameters
    ----------
    market:
        Latest-price source.
    signals:
        Signal generation and bookkeeping.
    consensus:
        Cross-timeframe aggregator.
    positions:
        Position lifecycle manager.
    risk:
        Risk manager (polled for the emergency stop).
    config:
        Symbols, tick intervals and data directory.
    notifier:
        Optional channel for the emergency-stop notification.
    store:
        File I/O used for the status snapshot.
    clock:
        Wall-clock source, injectable for tests.
    """

    def __init__(
        self,
        market: MarketDataClient,
        signals: SignalRunner,
        consensus: ConsensusAggregator,
        positions: PositionManager,
        risk: RiskManager,
        config: TradingConfig,
        notifier: Notifier | None = None,
        store: FileStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._market = market
        self._signals = signals
        self._consensus = consensus
        self._positions = positions
        self._risk = risk
        self._config = config
        self._notifier = notifier
        self._store = store or FileStore()
        self._clock = clock
        self._prices = PriceBook()
        self._state_lock = asyncio.Lock()
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._halted = False
        self._running = False

    # -- properties -----------------------------------------------------------

    @property
    def prices(self) -> PriceBook:
        return self._prices

    @property
    def halted(self) -> bool:
        """``True`` while the emergency stop blocks new entries."""
        return self._halted

    @property
    def status_path(self) -> Path:
        return Path(self._config.data_dir) / STATUS_FILENAME

    # -- ticks ----------------------------------------------------------------

    async def market_tick(self) -> dict[str, float]:
        """Fetch the latest price of every symbol concurrently."""
        started = self._clock()
        symbols = list(self._config.symbols)
        results = await asyncio.gather(
            *(asyncio.to_thread(self._market.get_latest_price, s) for s in symbols),
            return_exceptions=True,
        )
        updated: dict[str, float] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                if not isinstance(result, (ExchangeError, OSError, ValueError)):
                    raise result
                logger.warning("Price fetch failed for %s: %s", symbol, result)
                continue
            if self._prices.update(symbol, result, started):
                updated[symbol] = result
        return updated

    async def position_tick(self) -> list[Position]:
        """Evaluate every open position against the latest prices."""
        async with self._state_lock:
            closed: list[Position] = []
            for symbol in sorted(self._positions.symbols):
                price = self._prices.get(symbol)
                if price is None:
                    logger.debug("No price for %s yet, skipping its positions", symbol)
                    continue
                closed.extend(await self._positions.on_price_tick(symbol, price))
            self._check_emergency()
            self.write_status()
            return closed

    async def signal_tick(self) -> list[Position]:
        """Refresh signals, then open positions for eligible consensus decisions."""
        await self._signals.step()
        async with self._state_lock:
            opened: list[Position] = []
            if self._check_emergency():
                self.write_status()
                return opened

            held = self._positions.symbols
            for symbol in self._config.symbols:
                if symbol in held:
                    continue
                decision = self._consensus.decide(
                    symbol,
                    self._signals.active_signals(symbol),
                    self._signals.sentiment_for(symbol),
                )
                if decision is None:
                    continue
                price = self._prices.get(symbol) or max(s.price for s in decision.signals)
                position = await self._positions.open_position(decision, price)
                if position is not None:
                    opened.append(position)
            self.write_status()
            return opened

    # -- loop -----------------------------------------------------------------

    async def run(self) -> None:
        """Restore state and run all ticks until :meth:`stop` is called."""
        self._running = True
        self._positions.restore()
        logger.info(
            "Trading runner started: %s (%s mode)",
            ",".join(self._config.symbols),
            "paper" if self._config.paper_trading else "LIVE",
        )
        await self.market_tick()
        await asyncio.gather(
            self._every("market", self._config.market_poll_seconds, self.market_tick),
            self._every("signal", self._config.signal_interval_seconds, self.signal_tick),
            self._every("position", self._config.position_interval_seconds, self.position_tick),
        )
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Trading runner stopped")

    def stop(self) -> None:
        self._running = False

    async def run_once(self, name: str, tick: Callable[[], Awaitable[Any]]) -> Any:
        """Run *tick* unless a tick named *name* is already in flight.

        Errors are logged and swallowed so one failed tick does not stop
        the bot.  Returns the tick's result, or ``None`` if it was skipped
        or failed.
        """
        if name in self._in_flight:
            logger.debug("Skipping %s tick: previous one still running", name)
            return None
        self._in_flight.add(name)
        try:
            return await tick()
        except _TICK_ERRORS as exc:
            logger.error("%s tick failed: %s", name, exc, exc_info=True)
            return None
        finally:
            self._in_flight.discard(name)

    async def _every(
        self, name: str, interval: float, tick: Callable[[], Awaitable[Any]]
    ) -> None:
        while self._running:
            task = asyncio.create_task(self.run_once(name, tick))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            await asyncio.sleep(interval)

    # -- emergency stop -------------------------------------------------------

    def _check_emergency(self) -> bool:
        """Poll the risk manager; notify once on entering the halted state."""
        stop = self._risk.emergency_stop()
        if stop.should_stop and not self._halted:
            self._halted = True
            logger.critical("Emergency stop: %s", "; ".join(stop.reasons))
            if self._notifier is not None:
                try:
                    self._notifier.notify(format_emergency_stop(stop.reasons))
                except Exception:
                    logger.exception("Emergency stop notification failed")
        elif not stop.should_stop and self._halted:
            self._halted = False
            logger.warning("Emergency stop cleared: entries resumed")
        return self._halted

    # -- status ---------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        prices = self._prices.snapshot()
        positions: dict[str, Any] = {}
        for pos in self._positions.open_positions:
            price = prices.get(pos.symbol, pos.current_price)
            entry = pos.to_dict()
            entry["pnl_pct"] = pos.pnl_pct(price)
            positions[pos.id] = entry
        return {
            "timestamp": self._clock(),
            "mode": "paper" if self._config.paper_trading else "live",
            "halted": self._halted,
            "prices": prices,
            "positions": positions,
            "active_signals": [s.to_dict() for s in self._signals.active_signals()],
            "risk": self._risk.risk_metrics(),
        }

    def write_status(self) -> None:
        self._store.write_json(self.status_path, self.status())
