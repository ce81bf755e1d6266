"""Timeframe helpers and candle batch validation."""

from typing import Iterable

from liquidity_core.errors import DataIntegrityError
from liquidity_core.models import Candle

# Timeframe to seconds mapping
TIMEFRAME_SECONDS = {
    "1m": 60,
    "3m": 3 * 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "30m": 30 * 60,
    "1h": 60 * 60,
    "4h": 4 * 60 * 60,
    "1d": 24 * 60 * 60,
}


def timeframe_seconds(timeframe: str) -> int:
    """Duration of one period in seconds.

    Raises:
        ValueError: If the timeframe is not supported
    """
    try:
        return TIMEFRAME_SECONDS[timeframe]
    except KeyError:
        raise ValueError(f"Unsupported timeframe: {timeframe}") from None


def period_start(timestamp: float, timeframe: str) -> int:
    """Start of the period containing ``timestamp`` (both in epoch seconds)."""
    seconds = timeframe_seconds(timeframe)
    return (int(timestamp) // seconds) * seconds


def validate_candles(candles: Iterable[Candle]) -> list[Candle]:
    """Check a candle batch before it is stored or analyzed.

    Requires strictly increasing period starts within one (pair, timeframe)
    and coherent OHLC values.

    Returns:
        The candles as a list

    Raises:
        DataIntegrityError: On the first offending candle
    """
    result = list(candles)
    previous: Candle | None = None

    for candle in result:
        if not candle.is_consistent():
            raise DataIntegrityError(
                f"Malformed candle {candle.pair} {candle.timeframe} at "
                f"{candle.timestamp.isoformat()}: o={candle.open} h={candle.high} "
                f"l={candle.low} c={candle.close} v={candle.volume}"
            )
        if previous is not None:
            if (candle.pair, candle.timeframe) != (previous.pair, previous.timeframe):
                raise DataIntegrityError(
                    f"Mixed series in batch: {previous.pair} {previous.timeframe} "
                    f"and {candle.pair} {candle.timeframe}"
                )
            if candle.timestamp <= previous.timestamp:
                raise DataIntegrityError(
                    f"Non-monotonic candles for {candle.pair} {candle.timeframe}: "
                    f"{candle.timestamp.isoformat()} after {previous.timestamp.isoformat()}"
                )
        previous = candle

    return result
