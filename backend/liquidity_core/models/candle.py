"""Candle (OHLC) data models.

Two representations, same split as everywhere else in the engine:

- ``Candle``: cold path pydantic model (Decimal prices, datetime period start).
  This is what gets stored, analyzed and replayed.
- ``CandleState``: hot path slotted dataclass (float prices, epoch seconds)
  mutated in place by the candle builder while a period is open.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class Candle(BaseModel):
    """Closed or resumed OHLC candle for one (pair, timeframe) period."""

    model_config = ConfigDict(frozen=True)

    pair: str
    timeframe: str
    timestamp: datetime  # Period start (UTC)
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal("0")

    @property
    def is_bullish(self) -> bool:
        """Close at or above open counts as bullish (matches body-trade rules)."""
        return self.close >= self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body_high(self) -> Decimal:
        return max(self.open, self.close)

    @property
    def body_low(self) -> Decimal:
        return min(self.open, self.close)

    @property
    def epoch(self) -> float:
        """Period start as Unix timestamp in seconds."""
        return self.timestamp.timestamp()

    def is_consistent(self) -> bool:
        """Check OHLC coherence: high/low bracket open and close."""
        return (
            self.high >= max(self.open, self.close, self.low)
            and self.low <= min(self.open, self.close, self.high)
            and self.volume >= 0
        )


@dataclass(slots=True)
class CandleState:
    """In-memory candle for the currently open period.

    ``ticks`` counts observed prices; a state with zero ticks is empty and
    is never flushed.
    """

    pair: str
    timeframe: str
    period_start: int  # Unix timestamp in seconds, period aligned
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    volume: float = 0.0
    ticks: int = 0

    @property
    def has_data(self) -> bool:
        return self.ticks > 0

    def apply_price(self, price: float) -> None:
        """Fold one observed price into the candle."""
        if self.ticks == 0:
            self.open = price
            self.high = price
            self.low = price
        else:
            if price > self.high:
                self.high = price
            if price < self.low:
                self.low = price
        self.close = price
        self.ticks += 1

    def add_volume(self, quantity: float) -> None:
        self.volume += quantity


def state_to_candle(state: CandleState) -> Candle:
    """Convert a hot path CandleState to a Candle for storage."""
    return Candle(
        pair=state.pair,
        timeframe=state.timeframe,
        timestamp=datetime.fromtimestamp(state.period_start, tz=timezone.utc),
        open=Decimal(str(state.open)),
        high=Decimal(str(state.high)),
        low=Decimal(str(state.low)),
        close=Decimal(str(state.close)),
        volume=Decimal(str(state.volume)),
    )


def candle_to_state(candle: Candle) -> CandleState:
    """Rebuild the in-memory state from a stored candle (resume on startup)."""
    return CandleState(
        pair=candle.pair,
        timeframe=candle.timeframe,
        period_start=int(candle.epoch),
        open=float(candle.open),
        high=float(candle.high),
        low=float(candle.low),
        close=float(candle.close),
        volume=float(candle.volume),
        ticks=1,
    )
