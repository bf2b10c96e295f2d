"""Technical indicator library.

Pure functions over plain float sequences (oldest first).  None of them
raises on a short window: each returns a documented neutral value that
cannot by itself produce a strong vote in the scorer.

=====================  ============================================
Indicator              Neutral value when the window is too short
=====================  ============================================
``sma``                ``0.0``
``ema``                last value (``0.0`` for an empty window)
``rsi``                ``50.0``
``macd``               all zeros, no crossover
``bollinger_bands``    all zeros
``stochastic``         ``k = d = 50``
``atr``                ``0.0``
``volume_ratio``       ``1.0``
``support_resistance`` no levels
=====================  ============================================
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from cryptopilot.core.constants import (
    ATR_PERIOD,
    BB_MULTIPLIER,
    BB_PERIOD,
    BB_SQUEEZE_WIDTH_PCT,
    MACD_FAST,
    MACD_SIGNAL,
    MACD_SLOW,
    PIVOT_LOOKBACK,
    RSI_PERIOD,
    SR_MAX_LEVELS,
    SR_MIN_CANDLES,
    STOCH_PERIOD,
    STOCH_SMOOTH,
    VOLUME_PERIOD,
)
from cryptopilot.models.candle import Candle
from cryptopilot.models.indicators import (
    BollingerBands,
    IndicatorSet,
    MACDResult,
    StochasticResult,
    SupportResistance,
)

NEUTRAL_RSI = 50.0
NEUTRAL_STOCH = 50.0
NEUTRAL_VOLUME_RATIO = 1.0


# ---------------------------------------------------------------------------
# Moving averages
# ---------------------------------------------------------------------------


def sma(values: Sequence[float], period: int) -> float:
    """Simple moving average of the last *period* values."""
    if period <= 0 or len(values) < period:
        return 0.0
    return sum(values[-period:]) / period


def ema(values: Sequence[float], period: int) -> float:
    """Exponential moving average, seeded with the SMA of the first *period* values."""
    series = ema_series(values, period)
    return series[-1] if series else 0.0


def ema_series(values: Sequence[float], period: int) -> list[float]:
    """EMA evaluated at every bar.

    ``result[i]`` equals ``ema(values[: i + 1], period)``: the raw value
    while fewer than *period* values exist, the SMA seed at
    ``i == period - 1``, and the recursive EMA afterwards.
    """
    if not values:
        return []
    if period <= 1:
        return [float(v) for v in values]

    multiplier = 2.0 / (period + 1)
    result: list[float] = [float(v) for v in values[: period - 1]]
    if len(values) < period:
        return result

    current = sum(values[:period]) / period
    result.append(current)
    for value in values[period:]:
        current = (value - current) * multiplier + current
        result.append(current)
    return result


# ---------------------------------------------------------------------------
# Momentum
# ---------------------------------------------------------------------------


def rsi(closes: Sequence[float], period: int = RSI_PERIOD) -> float:
    """Relative Strength Index with Wilder smoothing.

    The first average gain/loss is a simple mean over the first *period*
    price changes; every later change is folded in with
    ``avg = (avg * (period - 1) + x) / period``.
    """
    if period <= 0 or len(closes) < period + 1:
        return NEUTRAL_RSI

    changes = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [c if c > 0 else 0.0 for c in changes]
    losses = [-c if c < 0 else 0.0 for c in changes]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    for i in range(period, len(changes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period

    if avg_loss == 0.0:
        return 100.0 if avg_gain > 0 else NEUTRAL_RSI
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def macd_series(
    closes: Sequence[float],
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> tuple[list[float], list[float], list[float]]:
    """MACD line, signal line and histogram for every bar from ``slow - 1`` on.

    Returns three equally long lists (empty when ``len(closes) < slow``).
    """
    if len(closes) < slow:
        return [], [], []

    fast_ema = ema_series(closes, fast)
    slow_ema = ema_series(closes, slow)
    line = [fast_ema[i] - slow_ema[i] for i in range(slow - 1, len(closes))]
    signal_line = ema_series(line, signal)
    histogram = [m - s for m, s in zip(line, signal_line)]
    return line, signal_line, histogram


def macd(
    closes: Sequence[float],
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> MACDResult:
    """MACD = EMA(fast) - EMA(slow); signal = EMA(MACD, signal).

    A bullish crossover is flagged on the bar where the histogram turns
    positive (``> 0``) after being ``<= 0`` on the previous bar; a bearish
    crossover is the mirror image.
    """
    line, signal_line, histogram = macd_series(closes, fast, slow, signal)
    if not line:
        return MACDResult()

    current = histogram[-1]
    previous = histogram[-2] if len(histogram) > 1 else 0.0
    return MACDResult(
        macd=line[-1],
        signal=signal_line[-1],
        histogram=current,
        previous_histogram=previous,
        bullish_crossover=current > 0 and previous <= 0,
        bearish_crossover=current < 0 and previous >= 0,
    )


def stochastic(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = STOCH_PERIOD,
    smooth: int = STOCH_SMOOTH,
) -> StochasticResult:
    """Stochastic oscillator: %K over *period* bars, %D = SMA(%K, *smooth*).

    A bar with a flat range (highest high == lowest low) scores %K = 50.
    """
    n = min(len(highs), len(lows), len(closes))
    if period <= 0 or n < period:
        return StochasticResult()

    k_values: list[float] = []
    for i in range(period - 1, n):
        highest = max(highs[i - period + 1 : i + 1])
        lowest = min(lows[i - period + 1 : i + 1])
        span = highest - lowest
        if span == 0:
            k_values.append(NEUTRAL_STOCH)
        else:
            k_values.append((closes[i] - lowest) / span * 100.0)

    k = k_values[-1]
    d = sum(k_values[-smooth:]) / smooth if len(k_values) >= smooth else k
    return StochasticResult(k=k, d=d)


# ---------------------------------------------------------------------------
# Volatility
# ---------------------------------------------------------------------------


def bollinger_bands(
    closes: Sequence[float],
    period: int = BB_PERIOD,
    multiplier: float = BB_MULTIPLIER,
) -> BollingerBands:
    """Bands at ``SMA ± multiplier × σ``, σ being the *population* std-dev."""
    if period <= 0 or len(closes) < period:
        return BollingerBands()

    window = closes[-period:]
    middle = sum(window) / period
    variance = sum((c - middle) ** 2 for c in window) / period
    std_dev = math.sqrt(variance)
    upper = middle + std_dev * multiplier
    lower = middle - std_dev * multiplier

    width = (upper - lower) / middle * 100.0 if middle else 0.0
    position = (closes[-1] - lower) / (upper - lower) if upper > lower else 0.5
    return BollingerBands(
        upper=upper,
        middle=middle,
        lower=lower,
        width=width,
        position=position,
        squeeze=width < BB_SQUEEZE_WIDTH_PCT,
    )


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = ATR_PERIOD,
) -> float:
    """Average True Range: mean of the last *period* true ranges."""
    n = min(len(highs), len(lows), len(closes))
    if period <= 0 or n < period + 1:
        return 0.0
    ranges = [
        max(
            highs[i] - lows[i],
            abs(highs[i] - closes[i - 1]),
            abs(lows[i] - closes[i - 1]),
        )
        for i in range(1, n)
    ]
    return sum(ranges[-period:]) / period


# ---------------------------------------------------------------------------
# Volume / structure
# ---------------------------------------------------------------------------


def volume_ratio(volumes: Sequence[float], period: int = VOLUME_PERIOD) -> float:
    """Latest volume divided by the mean of the last *period* volumes."""
    if period <= 0 or len(volumes) < period:
        return NEUTRAL_VOLUME_RATIO
    average = sum(volumes[-period:]) / period
    if average <= 0:
        return NEUTRAL_VOLUME_RATIO
    return volumes[-1] / average


def support_resistance(
    candles: Sequence[Candle],
    lookback: int = PIVOT_LOOKBACK,
    max_levels: int = SR_MAX_LEVELS,
) -> SupportResistance:
    """Pivot support and resistance levels.

    A bar is a pivot high when its high is strictly above every high within
    *lookback* bars on both sides (pivot low: strictly below every low).
    Resistance holds the highest pivot highs (descending), support the
    lowest pivot lows (ascending).
    """
    if len(candles) < SR_MIN_CANDLES:
        return SupportResistance()

    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    pivot_highs: list[float] = []
    pivot_lows: list[float] = []

    for i in range(lookback, len(candles) - lookback):
        neighbours = [j for j in range(i - lookback, i + lookback + 1) if j != i]
        if all(highs[j] < highs[i] for j in neighbours):
            pivot_highs.append(highs[i])
        if all(lows[j] > lows[i] for j in neighbours):
            pivot_lows.append(lows[i])

    return SupportResistance(
        support=tuple(sorted(pivot_lows)[:max_levels]),
        resistance=tuple(sorted(pivot_highs, reverse=True)[:max_levels]),
    )


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


def compute_indicators(candles: Sequence[Candle]) -> IndicatorSet:
    """Compute the full :class:`IndicatorSet` for a candle window (oldest first)."""
    if not candles:
        return IndicatorSet()

    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    volumes = [c.volume for c in candles]

    return IndicatorSet(
        rsi=rsi(closes),
        macd=macd(closes),
        bollinger=bollinger_bands(closes),
        stochastic=stochastic(highs, lows, closes),
        sma20=sma(closes, 20),
        sma50=sma(closes, 50),
        ema12=ema(closes, 12),
        ema26=ema(closes, 26),
        atr=atr(highs, lows, closes),
        volume_ratio=volume_ratio(volumes),
        support_resistance=support_resistance(candles),
        price=closes[-1],
        timestamp=candles[-1].timestamp,
    )
