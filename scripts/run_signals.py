#!/usr/bin/env python3
"""Generate and print signals once, without trading.

Usage::

    python scripts/run_signals.py                 # all configured symbols
    python scripts/run_signals.py BTC SOL         # specific symbols
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
from pathlib import Path


def main(argv: list[str] | None = None) -> None:
    from cryptopilot.core.config import TradingConfig
    from cryptopilot.core.constants import SETTINGS_FILENAME
    from cryptopilot.core.logging_setup import setup_logger
    from cryptopilot.core.market_client import KuCoinMarketClient
    from cryptopilot.core.symbols import normalize_symbol
    from cryptopilot.thinker.consensus import ConsensusAggregator
    from cryptopilot.thinker.predictor import TrendPredictor
    from cryptopilot.thinker.runner import SignalRunner

    parser = argparse.ArgumentParser(description="Print current CryptoPilot signals.")
    parser.add_argument("symbols", nargs="*", help="Symbols to score (default: from settings)")
    args = parser.parse_args(argv)

    base_dir = Path.cwd()
    setup_logger("cryptopilot", base_dir / "logs")
    config = TradingConfig.from_file(base_dir / SETTINGS_FILENAME)
    if args.symbols:
        config = dataclasses.replace(config, symbols=[normalize_symbol(s) for s in args.symbols])

    market = KuCoinMarketClient()
    runner = SignalRunner(market, config, predictor=TrendPredictor(market))
    asyncio.run(runner.step())

    consensus = ConsensusAggregator(config)
    for signal in runner.ranked_signals():
        print(
            f"{signal.symbol:>6} {signal.timeframe:>4} {signal.direction.value:<4} "
            f"strength={signal.strength:5.1f} confidence={signal.confidence:5.1f}  "
            + "; ".join(signal.reasons)
        )
    for symbol in config.symbols:
        decision = consensus.decide(symbol, runner.active_signals(symbol))
        if decision is None:
            print(f"{symbol}: no consensus")
        else:
            print(
                f"{symbol}: {decision.direction.value} on {','.join(decision.timeframes)} "
                f"(execution confidence {decision.execution_confidence:.1f})"
            )


if __name__ == "__main__":
    main()
