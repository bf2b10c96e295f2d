"""Domain data models for CryptoPilot.

Re-exports all model classes for convenient imports::

    from cryptopilot.models import Candle, Signal, Position, Trade
"""

from cryptopilot.models.candle import Candle
from cryptopilot.models.indicators import (
    BollingerBands,
    IndicatorSet,
    MACDResult,
    StochasticResult,
    SupportResistance,
)
from cryptopilot.models.position import (
    ExitReason,
    Position,
    PositionSide,
    PositionStatus,
    TrailingStop,
)
from cryptopilot.models.prediction import Prediction, PredictionDirection
from cryptopilot.models.signal import Sentiment, Signal, SignalDirection, SignalStatus
from cryptopilot.models.trade import Fill, OrderSide, Trade
from cryptopilot.models.types import Price, Score, Symbol, Timeframe

__all__ = [
    "BollingerBands",
    "Candle",
    "ExitReason",
    "Fill",
    "IndicatorSet",
    "MACDResult",
    "OrderSide",
    "Position",
    "PositionSide",
    "PositionStatus",
    "Prediction",
    "PredictionDirection",
    "Price",
    "Score",
    "Sentiment",
    "Signal",
    "SignalDirection",
    "SignalStatus",
    "StochasticResult",
    "SupportResistance",
    "Symbol",
    "Timeframe",
    "Trade",
    "TrailingStop",
]
