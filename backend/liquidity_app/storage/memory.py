"""In-memory stores for running without PostgreSQL and for tests."""

import asyncio
from datetime import datetime
from typing import Any, Sequence

from liquidity_core.models import Candle, SignalStatus, TradingSignal
from liquidity_core.timeframes import validate_candles


class InMemoryCandleStore:
    """CandleStore backed by a dict per (pair, timeframe)."""

    def __init__(self):
        self._candles: dict[tuple[str, str], dict[datetime, Candle]] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, pair: str, timeframe: str, candles: Sequence[Candle]) -> None:
        if not candles:
            return
        batch = validate_candles(candles)
        async with self._lock:
            series = self._candles.setdefault((pair, timeframe), {})
            for candle in batch:
                series[candle.timestamp] = candle

    def _sorted(self, pair: str, timeframe: str) -> list[Candle]:
        series = self._candles.get((pair, timeframe), {})
        return [series[ts] for ts in sorted(series)]

    async def latest(self, pair: str, timeframe: str) -> Candle | None:
        candles = self._sorted(pair, timeframe)
        return candles[-1] if candles else None

    async def range(
        self, pair: str, timeframe: str, start: datetime, end: datetime
    ) -> list[Candle]:
        return [c for c in self._sorted(pair, timeframe) if start <= c.timestamp <= end]

    async def recent(self, pair: str, timeframe: str, limit: int = 100) -> list[Candle]:
        candles = self._sorted(pair, timeframe)
        return candles[-limit:] if limit > 0 else []

    def count(self, pair: str, timeframe: str) -> int:
        return len(self._candles.get((pair, timeframe), {}))


class InMemorySignalStore:
    """SignalStore backed by a dict keyed by signal id.

    ``writes`` counts successful mutations so callers can assert that a
    no-op check did not touch storage.
    """

    def __init__(self):
        self._signals: dict[str, TradingSignal] = {}
        self._lock = asyncio.Lock()
        self.writes = 0

    async def save(self, signal: TradingSignal) -> None:
        async with self._lock:
            self._signals[signal.id] = signal
            self.writes += 1

    async def get_by_id(self, signal_id: str) -> TradingSignal | None:
        return self._signals.get(signal_id)

    async def get_by_status(
        self,
        statuses: Sequence[SignalStatus],
        pair: str | None = None,
        timeframe: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TradingSignal]:
        matches = [
            s
            for s in self._signals.values()
            if s.status in statuses
            and (pair is None or s.pair == pair)
            and (timeframe is None or s.timeframe == timeframe)
        ]
        matches.sort(key=lambda s: (s.created_at, s.id))
        end = None if limit is None else offset + limit
        return matches[offset:end]

    async def update_fields(
        self,
        signal_id: str,
        values: dict[str, Any],
        expected_status: SignalStatus | None = None,
    ) -> bool:
        if not values:
            return False
        async with self._lock:
            current = self._signals.get(signal_id)
            if current is None:
                return False
            if expected_status is not None and current.status != expected_status:
                return False
            self._signals[signal_id] = TradingSignal.model_validate(
                {**current.model_dump(), **values}
            )
            self.writes += 1
            return True

    async def get_recent(
        self, limit: int = 100, pair: str | None = None
    ) -> list[TradingSignal]:
        matches = [s for s in self._signals.values() if pair is None or s.pair == pair]
        matches.sort(key=lambda s: s.created_at, reverse=True)
        return matches[:limit]

    async def delete(self, signal_id: str) -> bool:
        async with self._lock:
            return self._signals.pop(signal_id, None) is not None


class InMemorySignalArchive:
    """Completed-signal archive keyed by signal id."""

    def __init__(self):
        self.archived: dict[str, TradingSignal] = {}

    async def archive(self, signal: TradingSignal, notes: str | None = None) -> None:
        if signal.exit_type is None:
            raise ValueError(f"Signal {signal.id} has not exited")
        self.archived.setdefault(signal.id, signal)
