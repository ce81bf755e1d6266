"""Configuration models for the pure-logic components."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class IntrabarPolicy(str, Enum):
    """Which exit wins when one candle crosses both TP and SL.

    OHLC data cannot tell which extreme printed first; this is a policy,
    not a market fact.
    """

    TP_FIRST = "tp_first"
    SL_FIRST = "sl_first"


class AnalyzerConfig(BaseModel):
    """Liquidity level analyzer parameters."""

    swing_strength: int = 5
    major_threshold_pct: Decimal = Decimal("0.3")
    # Percent price difference under which two same-type levels merge
    req_threshold_pct: Decimal = Decimal("0.02")

    # Per-timeframe pivot window, used by analyze_for_timeframe()
    timeframe_swing_strength: dict[str, int] = {
        "5m": 3,
        "15m": 4,
        "30m": 5,
        "1h": 6,
    }
    default_timeframe_swing_strength: int = 4

    def swing_strength_for(self, timeframe: str) -> int:
        return self.timeframe_swing_strength.get(
            timeframe, self.default_timeframe_swing_strength
        )


class GeneratorConfig(BaseModel):
    """Signal generator pricing parameters."""

    long_entry_mult: Decimal = Decimal("0.985")
    short_entry_mult: Decimal = Decimal("1.015")
    long_sl_mult: Decimal = Decimal("0.99")
    short_sl_mult: Decimal = Decimal("1.01")
    reward_risk: Decimal = Decimal("3")
    # Candles required after the chosen level formed
    min_candles_after_level: int = 5


class LifecycleConfig(BaseModel):
    """Signal lifecycle checker parameters."""

    expiry_days: int = 7
    intrabar_policy: IntrabarPolicy = IntrabarPolicy.TP_FIRST
