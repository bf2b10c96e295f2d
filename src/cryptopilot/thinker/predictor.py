"""Price predictor adapters.

The scorer treats the model as a black box behind :class:`Predictor`.
A predictor either returns a :class:`Prediction` or raises
:class:`ModelUnavailableError`; callers turn the failure into "no ML
contribution" and keep scoring from the indicators alone.

Each predictor reports a ``version`` and ``is_healthy`` so an outer
process can decide to swap or roll back a model; no model lifecycle
logic lives here.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

from cryptopilot.core.exceptions import ExchangeError, ModelUnavailableError
from cryptopilot.core.market_client import MarketDataClient
from cryptopilot.models.prediction import Prediction

logger = logging.getLogger(__name__)


class Predictor(ABC):
    """Abstract price predictor."""

    @property
    def version(self) -> str:
        """Identifier of the loaded model."""
        return "unversioned"

    @property
    def is_healthy(self) -> bool:
        """``False`` when the model is known to be unable to predict."""
        return True

    @abstractmethod
    def predict(self, symbol: str, timeframe: str) -> Prediction:
        """Forecast *symbol* on *timeframe*.

        Raises
        ------
        ModelUnavailableError
            When no prediction can be made (no model, no data, model error).
        """


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class NullPredictor(Predictor):
    """No model at all: the scorer runs on indicators only."""

    @property
    def version(self) -> str:
        return "none"

    @property
    def is_healthy(self) -> bool:
        return False

    def predict(self, symbol: str, timeframe: str) -> Prediction:
        raise ModelUnavailableError("No prediction model configured")


class StaticPredictor(Predictor):
    """Serves preset predictions keyed by ``(symbol, timeframe)``.

    Used for replaying recorded model output and in tests.  Missing keys
    raise :class:`ModelUnavailableError`.
    """

    def __init__(
        self,
        predictions: Mapping[tuple[str, str], Prediction] | None = None,
        version: str = "static",
    ) -> None:
        self._predictions = dict(predictions or {})
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    def set(self, prediction: Prediction) -> None:
        self._predictions[(prediction.symbol, prediction.timeframe)] = prediction

    def predict(self, symbol: str, timeframe: str) -> Prediction:
        try:
            return self._predictions[(symbol, timeframe)]
        except KeyError:
            raise ModelUnavailableError(
                f"No prediction for {symbol}/{timeframe}"
            ) from None


class TrendPredictor(Predictor):
    """Least-squares trend extrapolation over recent closes.

    Fits a straight line to the last *window* closes and projects it
    *horizon* bars ahead.  Confidence is the fit's R² scaled to 0-100, so
    a noisy series produces a low-confidence prediction that the scorer
    ignores.

    Parameters
    ----------
    market:
        Source of historical candles.
    window:
        Number of closes to fit.
    horizon:
        Bars ahead to project.
    max_failures:
        Consecutive failures after which the predictor reports unhealthy.
    retry_after:
        Seconds after the last failure before an unhealthy predictor is
        offered one trial call again.  A success clears the failure
        streak; another failure restarts the wait.
    clock:
        Time source, injectable for tests.
    """

    def __init__(
        self,
        market: MarketDataClient,
        window: int = 30,
        horizon: int = 1,
        max_failures: int = 3,
        retry_after: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window < 3:
            raise ValueError("window must be >= 3")
        self._market = market
        self._window = window
        self._horizon = horizon
        self._max_failures = max_failures
        self._retry_after = retry_after
        self._clock = clock
        # predict() runs in worker threads for several pairs at once
        self._lock = threading.Lock()
        self._failures = 0
        self._last_failure = 0.0

    @property
    def version(self) -> str:
        return f"trend-ls-w{self._window}-h{self._horizon}"

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            if self._failures < self._max_failures:
                return True
            return self._clock() - self._last_failure >= self._retry_after

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._failures

    def _record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure = self._clock()
            if self._failures == self._max_failures:
                logger.warning(
                    "Trend predictor unhealthy after %d failures; retrying in %.0fs",
                    self._failures,
                    self._retry_after,
                )

    def _record_success(self) -> None:
        with self._lock:
            if self._failures >= self._max_failures:
                logger.info("Trend predictor recovered")
            self._failures = 0

    def predict(self, symbol: str, timeframe: str) -> Prediction:
        try:
            candles = self._market.get_historical_candles(symbol, timeframe, self._window)
        except (ExchangeError, OSError, ValueError) as exc:
            self._record_failure()
            raise ModelUnavailableError(f"No data for {symbol}/{timeframe}: {exc}") from exc

        closes = [c.close for c in candles[-self._window :]]
        if len(closes) < self._window:
            self._record_failure()
            raise ModelUnavailableError(
                f"Need {self._window} candles for {symbol}/{timeframe}, got {len(closes)}"
            )

        slope, intercept, r_squared = _linear_fit(closes)
        current = closes[-1]
        projected = intercept + slope * (len(closes) - 1 + self._horizon)
        self._record_success()

        return Prediction(
            symbol=symbol,
            timeframe=timeframe,
            current_price=current,
            predicted_price=max(projected, 0.0),
            confidence=round(r_squared * 100.0, 2),
            model_version=self.version,
            created_at=self._clock(),
        )


def _linear_fit(values: list[float]) -> tuple[float, float, float]:
    """Return ``(slope, intercept, r_squared)`` of an OLS fit over index → value."""
    n = len(values)
    mean_x = (n - 1) / 2.0
    mean_y = sum(values) / n
    sxx = sum((i - mean_x) ** 2 for i in range(n))
    sxy = sum((i - mean_x) * (v - mean_y) for i, v in enumerate(values))
    syy = sum((v - mean_y) ** 2 for v in values)

    slope = sxy / sxx if sxx else 0.0
    intercept = mean_y - slope * mean_x
    if syy == 0.0 or sxx == 0.0:
        return slope, intercept, 0.0
    r_squared = (sxy * sxy) / (sxx * syy)
    if not math.isfinite(r_squared):
        r_squared = 0.0
    return slope, intercept, min(1.0, max(0.0, r_squared))
