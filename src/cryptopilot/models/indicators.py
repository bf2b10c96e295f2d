"""Technical indicator snapshot models.

An :class:`IndicatorSet` is derived from one candle window and never
mutated; the scorer reads it, the next window produces a new one.
Every component has a neutral default, which is what the indicator
functions return when the window is too short.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class MACDResult:
    """MACD line, signal line, histogram and crossover flags."""

    macd: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0
    previous_histogram: float = 0.0
    bullish_crossover: bool = False
    bearish_crossover: bool = False


@dataclass(frozen=True, slots=True)
class BollingerBands:
    """Bollinger bands around an SMA, with band width in percent.

    ``position`` is where the last close sits inside the bands
    (0 = lower band, 1 = upper band).
    """

    upper: float = 0.0
    middle: float = 0.0
    lower: float = 0.0
    width: float = 0.0
    position: float = 0.0
    squeeze: bool = False


@dataclass(frozen=True, slots=True)
class StochasticResult:
    """Stochastic oscillator %K and %D (neutral 50/50)."""

    k: float = 50.0
    d: float = 50.0


@dataclass(frozen=True, slots=True)
class SupportResistance:
    """Pivot-based support (ascending) and resistance (descending) levels."""

    support: tuple[float, ...] = ()
    resistance: tuple[float, ...] = ()

    def near_support(self, price: float, tolerance: float) -> bool:
        """``True`` if *price* is at or below any support level plus *tolerance*."""
        return any(price <= level * (1.0 + tolerance) for level in self.support)

    def near_resistance(self, price: float, tolerance: float) -> bool:
        """``True`` if *price* is at or above any resistance level minus *tolerance*."""
        return any(price >= level * (1.0 - tolerance) for level in self.resistance)


@dataclass(frozen=True, slots=True)
class IndicatorSet:
    """Read-only snapshot of every indicator computed from one candle window.

    Parameters
    ----------
    price:
        Close of the last candle in the window.
    timestamp:
        Open time of the last candle (Unix seconds).  Used to decide which
        of two evaluations of the same timeframe is newer.
    """

    rsi: float = 50.0
    macd: MACDResult = field(default_factory=MACDResult)
    bollinger: BollingerBands = field(default_factory=BollingerBands)
    stochastic: StochasticResult = field(default_factory=StochasticResult)
    sma20: float = 0.0
    sma50: float = 0.0
    ema12: float = 0.0
    ema26: float = 0.0
    atr: float = 0.0
    volume_ratio: float = 1.0
    support_resistance: SupportResistance = field(default_factory=SupportResistance)
    price: float = 0.0
    timestamp: int = 0

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty means valid)."""
        errors: list[str] = []
        if not 0.0 <= self.rsi <= 100.0:
            errors.append(f"rsi={self.rsi} outside 0-100.")
        bb = self.bollinger
        if not bb.lower <= bb.middle <= bb.upper:
            errors.append(
                f"bollinger bands out of order: lower={bb.lower} middle={bb.middle} "
                f"upper={bb.upper}."
            )
        if self.atr < 0:
            errors.append(f"atr={self.atr} must be >= 0.")
        if self.volume_ratio < 0:
            errors.append(f"volume_ratio={self.volume_ratio} must be >= 0.")
        return errors
