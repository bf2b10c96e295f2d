#!/usr/bin/env python3
"""Entry point for the CryptoPilot trading bot.

Usage::

    python scripts/run_bot.py                   # Live trading (Binance)
    python scripts/run_bot.py --paper           # Paper trading (simulated fills)
    python scripts/run_bot.py --paper --predictor trend --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the CryptoPilot trading bot.")
    parser.add_argument("--paper", action="store_true", help="Simulate fills instead of trading live")
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Path to settings.json (default: ./settings.json)",
    )
    parser.add_argument(
        "--predictor",
        choices=("none", "trend"),
        default="trend",
        help="Price predictor feeding the ML factor",
    )
    parser.add_argument("--log-level", default="INFO", help="Console/file log level")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    from cryptopilot.core.config import TradingConfig
    from cryptopilot.core.constants import SETTINGS_FILENAME
    from cryptopilot.core.credentials import BinanceCredentials, TelegramCredentials
    from cryptopilot.core.database import FilePositionRepository, FileTradeRepository
    from cryptopilot.core.logging_setup import parse_level, setup_logger
    from cryptopilot.core.market_client import KuCoinMarketClient
    from cryptopilot.core.notifier import LogNotifier, NotifierGroup, TelegramNotifier
    from cryptopilot.core.storage import FileStore
    from cryptopilot.core.trading_client import OrderExecutor
    from cryptopilot.thinker.consensus import ConsensusAggregator
    from cryptopilot.thinker.predictor import NullPredictor, Predictor, TrendPredictor
    from cryptopilot.thinker.runner import SignalRunner
    from cryptopilot.trader.position_manager import PositionManager
    from cryptopilot.trader.risk_manager import RiskManager
    from cryptopilot.trader.runner import TradingRunner

    args = _parse_args(argv)
    base_dir = Path.cwd()
    logger = setup_logger("cryptopilot", base_dir / "logs", level=parse_level(args.log_level))

    config = TradingConfig.from_file(args.settings or base_dir / SETTINGS_FILENAME)
    paper_mode = args.paper or config.paper_trading
    data_dir = base_dir / config.data_dir

    market = KuCoinMarketClient()
    executor: OrderExecutor
    if paper_mode:
        from cryptopilot.core.paper_client import PaperOrderExecutor

        executor = PaperOrderExecutor(market, initial_balance=config.initial_portfolio_value)
    else:
        from cryptopilot.core.trading_client import BinanceOrderExecutor

        creds = BinanceCredentials.load(base_dir)
        if not creds.is_valid:
            print("ERROR: No valid Binance credentials found.")
            print(
                "Set BINANCE_API_KEY/BINANCE_API_SECRET env vars, store them in the OS keyring, "
                "or create b_key.txt/b_secret.txt"
            )
            sys.exit(1)
        executor = BinanceOrderExecutor(creds)

    notifier = NotifierGroup([LogNotifier()])
    telegram = TelegramCredentials.load(base_dir)
    if telegram.is_valid:
        notifier.add(TelegramNotifier(telegram))

    predictor: Predictor = TrendPredictor(market) if args.predictor == "trend" else NullPredictor()
    risk = RiskManager(config)
    signals = SignalRunner(market, config, predictor=predictor)
    positions = PositionManager(
        executor,
        risk,
        config,
        trades=FileTradeRepository(data_dir),
        positions=FilePositionRepository(data_dir),
        notifier=notifier,
    )
    runner = TradingRunner(
        market,
        signals,
        ConsensusAggregator(config),
        positions,
        risk,
        config,
        notifier=notifier,
        store=FileStore(),
    )

    logger.info("Predictor: %s", predictor.version)
    try:
        asyncio.run(runner.run())
    except KeyboardInterrupt:
        runner.stop()
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
