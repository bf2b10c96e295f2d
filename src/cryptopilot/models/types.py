"""Domain-specific type aliases for CryptoPilot.

These aliases document intent at call sites without introducing runtime cost.
"""

from __future__ import annotations

from typing import TypeAlias

# A timeframe identifier: one of the keys in ``core.constants.TIMEFRAME_SECONDS``.
Timeframe: TypeAlias = str

# A base-coin symbol, e.g. ``"BTC"``, ``"ETH"``.
Symbol: TypeAlias = str

# A price value in the quote asset (always positive float).
Price: TypeAlias = float

# A 0-100 score (signal strength, confidence).
Score: TypeAlias = float
