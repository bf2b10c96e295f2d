"""Shared constants for CryptoPilot.

Every tunable number used by the scorer, the risk manager and the loops
lives here so config defaults and tests agree on a single value.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Timeframes: the evaluation set used for cross-timeframe consensus.
# ---------------------------------------------------------------------------
TIMEFRAMES: tuple[str, ...] = ("15m", "1h", "4h", "1d")

TIMEFRAME_SECONDS: dict[str, int] = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "8h": 28800,
    "12h": 43200,
    "1d": 86400,
    "1w": 604800,
}

# KuCoin kline type names for each internal timeframe.
KUCOIN_TIMEFRAMES: dict[str, str] = {
    "1m": "1min",
    "5m": "5min",
    "15m": "15min",
    "30m": "30min",
    "1h": "1hour",
    "2h": "2hour",
    "4h": "4hour",
    "8h": "8hour",
    "12h": "12hour",
    "1d": "1day",
    "1w": "1week",
}

# ---------------------------------------------------------------------------
# Quote asset: all trading pairs are quoted against USDT.
# ---------------------------------------------------------------------------
QUOTE_ASSET: str = "USDT"

DEFAULT_SYMBOLS: list[str] = ["BTC", "ETH"]
DEFAULT_CANDLES_LIMIT: int = 200
MIN_CANDLES: int = 50  # below this a timeframe is skipped for scoring

# ---------------------------------------------------------------------------
# Indicator periods
# ---------------------------------------------------------------------------
RSI_PERIOD: int = 14
MACD_FAST: int = 12
MACD_SLOW: int = 26
MACD_SIGNAL: int = 9
BB_PERIOD: int = 20
BB_MULTIPLIER: float = 2.0
BB_SQUEEZE_WIDTH_PCT: float = 10.0
STOCH_PERIOD: int = 14
STOCH_SMOOTH: int = 3
ATR_PERIOD: int = 14
VOLUME_PERIOD: int = 20
PIVOT_LOOKBACK: int = 5
SR_MIN_CANDLES: int = 20
SR_MAX_LEVELS: int = 5

# ---------------------------------------------------------------------------
# Signal weights, must sum to 1.0.
# ---------------------------------------------------------------------------
DEFAULT_SIGNAL_WEIGHTS: dict[str, float] = {
    "ml": 0.35,
    "rsi": 0.15,
    "macd": 0.12,
    "ma": 0.10,
    "bb": 0.10,
    "stoch": 0.08,
    "volume": 0.05,
    "sr": 0.05,
}

# ---------------------------------------------------------------------------
# Signal thresholds
# ---------------------------------------------------------------------------
BASE_STRENGTH: float = 50.0
MAX_STRENGTH: float = 95.0
MIN_CONFIDENCE_FLOOR: float = 10.0
MAX_CONFIDENCE: float = 95.0
MIN_REASONS: int = 2

DEFAULT_MIN_SIGNAL_STRENGTH: float = 65.0
DEFAULT_MIN_SIGNAL_CONFIDENCE: float = 60.0
DEFAULT_STRONG_SIGNAL_THRESHOLD: float = 75.0
DEFAULT_CONSENSUS_THRESHOLD: int = 2
DEFAULT_SENTIMENT_VETO_STRENGTH: float = 85.0

ML_MIN_CONFIDENCE: float = 60.0  # predictions at or below this abstain
ML_CONFIDENCE_BOOST_THRESHOLD: float = 70.0
ML_CONFIDENCE_BOOST: float = 10.0
TAG_CONFIDENCE_STEP: float = 2.0
TAG_CONFIDENCE_CAP: float = 20.0
SENTIMENT_STRENGTH_BONUS: float = 5.0

RSI_OVERSOLD: float = 30.0
RSI_OVERBOUGHT: float = 70.0
STOCH_OVERSOLD: float = 20.0
STOCH_OVERBOUGHT: float = 80.0
VOLUME_SURGE_RATIO: float = 1.5
SUPPORT_TOLERANCE: float = 0.02
RESISTANCE_TOLERANCE: float = 0.02

RANK_STRENGTH_WEIGHT: float = 0.7
RANK_CONFIDENCE_WEIGHT: float = 0.3

SIGNAL_TTL_SECONDS: int = 24 * 60 * 60  # 86_400
SIGNAL_HISTORY_LIMIT: int = 1000

# ---------------------------------------------------------------------------
# Risk defaults
# ---------------------------------------------------------------------------
DEFAULT_INITIAL_PORTFOLIO: float = 10_000.0
DEFAULT_MAX_POSITION_SIZE: float = 0.10  # fraction of portfolio per position
DEFAULT_MAX_DAILY_LOSS: float = 0.02
DEFAULT_MAX_DRAWDOWN: float = 0.05
DEFAULT_MAX_OPEN_POSITIONS: int = 5
DEFAULT_MIN_RISK_REWARD: float = 1.5
DEFAULT_MAX_LEVERAGE: float = 3.0
DEFAULT_STOP_LOSS_PCT: float = 0.02
DEFAULT_TAKE_PROFIT_PCT: float = 0.04
DEFAULT_TRAILING_STOP_PCT: float = 0.0  # 0 disables the trailing stop
DEFAULT_COOLDOWN_SECONDS: float = 300.0
DEFAULT_MAX_CONSECUTIVE_LOSSES: int = 5

# ---------------------------------------------------------------------------
# Loop intervals (seconds)
# ---------------------------------------------------------------------------
DEFAULT_MARKET_POLL_SECONDS: float = 5.0
DEFAULT_SIGNAL_INTERVAL_SECONDS: float = 300.0
DEFAULT_POSITION_INTERVAL_SECONDS: float = 30.0

# ---------------------------------------------------------------------------
# File names
# ---------------------------------------------------------------------------
SETTINGS_FILENAME: str = "settings.json"
DATA_DIRNAME: str = "data"
TRADE_HISTORY_FILENAME: str = "trade_history.jsonl"
POSITIONS_DIRNAME: str = "positions"
STATUS_FILENAME: str = "bot_status.json"
