"""Data models."""

from liquidity_core.models.candle import (
    Candle,
    CandleState,
    candle_to_state,
    state_to_candle,
)
from liquidity_core.models.config import (
    AnalyzerConfig,
    GeneratorConfig,
    IntrabarPolicy,
    LifecycleConfig,
)
from liquidity_core.models.level import LevelType, LiquidityLevel, LiquidityResult
from liquidity_core.models.signal import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    CheckSummary,
    Direction,
    ExitType,
    SeasonalBias,
    SignalFilter,
    SignalStatus,
    TradingSignal,
    risk_reward_ratio,
)

__all__ = [
    # Candles
    "Candle",
    "CandleState",
    "candle_to_state",
    "state_to_candle",
    # Levels
    "LevelType",
    "LiquidityLevel",
    "LiquidityResult",
    # Signals
    "CheckSummary",
    "Direction",
    "ExitType",
    "OPEN_STATUSES",
    "SeasonalBias",
    "SignalFilter",
    "SignalStatus",
    "TERMINAL_STATUSES",
    "TradingSignal",
    "risk_reward_ratio",
    # Config
    "AnalyzerConfig",
    "GeneratorConfig",
    "IntrabarPolicy",
    "LifecycleConfig",
]
