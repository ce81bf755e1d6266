"""Signal generator: turns liquidity levels and a seasonal bias into a trade idea.

Pure business logic. The caller supplies candles, analyzed levels, the bias
and the current price; persistence is the service layer's job.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence

from liquidity_core.models import (
    Candle,
    Direction,
    GeneratorConfig,
    LevelType,
    LiquidityLevel,
    LiquidityResult,
    SeasonalBias,
    SignalStatus,
    TradingSignal,
)

logger = logging.getLogger(__name__)

# Matches the DECIMAL(18, 8) storage precision
PRICE_QUANTUM = Decimal("0.00000001")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def direction_for_bias(bias: SeasonalBias) -> Direction:
    """Short only on a bearish bias; bullish and neutral trade long."""
    return Direction.SHORT if bias == SeasonalBias.BEARISH else Direction.LONG


def select_level(
    levels: LiquidityResult,
    direction: Direction,
    bias: SeasonalBias,
) -> LiquidityLevel | None:
    """Pick the major level that anchors the stop loss.

    Long: the lowest major SSL. Short: the highest major BSL. With a neutral
    bias and no such level, fall back to the opposite type (lowest major BSL
    for long, highest major SSL for short).
    """
    if direction == Direction.LONG:
        primary, fallback, pick = LevelType.SSL, LevelType.BSL, min
    else:
        primary, fallback, pick = LevelType.BSL, LevelType.SSL, max

    candidates = levels.major(primary)
    if not candidates and bias == SeasonalBias.NEUTRAL:
        candidates = levels.major(fallback)
    if not candidates:
        return None
    return pick(candidates, key=lambda level: level.price)


class SignalGenerator:
    """Generates at most one waiting signal per call."""

    def __init__(
        self,
        config: GeneratorConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or GeneratorConfig()
        self._clock = clock

    def price_levels(
        self,
        direction: Direction,
        current_price: Decimal,
        level_price: Decimal,
    ) -> tuple[Decimal, Decimal, Decimal]:
        """Compute (entry, stop_loss, take_profit).

        Take profit sits ``reward_risk`` times the entry/stop distance away
        from entry, on the profit side.
        """
        cfg = self.config
        if direction == Direction.LONG:
            entry = current_price * cfg.long_entry_mult
            stop_loss = level_price * cfg.long_sl_mult
            take_profit = entry + (entry - stop_loss) * cfg.reward_risk
        else:
            entry = current_price * cfg.short_entry_mult
            stop_loss = level_price * cfg.short_sl_mult
            take_profit = entry - (stop_loss - entry) * cfg.reward_risk

        return (
            entry.quantize(PRICE_QUANTUM),
            stop_loss.quantize(PRICE_QUANTUM),
            take_profit.quantize(PRICE_QUANTUM),
        )

    def generate(
        self,
        pair: str,
        timeframe: str,
        candles: Sequence[Candle],
        levels: LiquidityResult,
        seasonality_bias: SeasonalBias,
        current_price: Decimal,
        positive_probability: Decimal | None = None,
    ) -> TradingSignal | None:
        """Produce a WAITING signal, or None when the setup is not there.

        Abstains when no candidate level exists, when fewer than
        ``min_candles_after_level`` candles closed after the level formed,
        or when the computed prices would not be ordered for the direction.
        """
        direction = direction_for_bias(seasonality_bias)
        level = select_level(levels, direction, seasonality_bias)
        if level is None:
            logger.debug(f"No major level for {direction.value} {pair} {timeframe}")
            return None

        after = sum(1 for candle in candles if candle.timestamp > level.formation_time)
        if after < self.config.min_candles_after_level:
            logger.debug(
                f"Only {after} candles after {level.type.value} {level.price} "
                f"for {pair} {timeframe}, skipping"
            )
            return None

        entry, stop_loss, take_profit = self.price_levels(
            direction, Decimal(current_price), level.price
        )

        if direction == Direction.LONG:
            ordered = stop_loss < entry < take_profit
        else:
            ordered = take_profit < entry < stop_loss
        if not ordered:
            logger.info(
                f"Skipping {direction.value} {pair} {timeframe}: level {level.price} "
                f"on the wrong side of entry {entry}"
            )
            return None

        signal = TradingSignal(
            pair=pair,
            timeframe=timeframe,
            direction=direction,
            entry_price=entry,
            stop_loss=stop_loss,
            take_profit=take_profit,
            created_at=self._clock(),
            status=SignalStatus.WAITING,
            major_level=level.price,
            seasonality=seasonality_bias,
            positive_probability=positive_probability,
        )

        logger.info(
            f"Signal generated: {pair} {timeframe} {direction.value.upper()} "
            f"@ {entry} (SL: {stop_loss}, TP: {take_profit})"
        )
        return signal
