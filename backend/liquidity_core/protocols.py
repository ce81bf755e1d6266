"""Storage and market-data protocols.

Any backend (PostgreSQL, in-memory, test doubles) can implement these to be
used by the candle builder and the signal services.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Protocol, Sequence, runtime_checkable

from liquidity_core.models import Candle, SignalStatus, TradingSignal


@runtime_checkable
class CandleStore(Protocol):
    """Durable OHLC history."""

    async def upsert(self, pair: str, timeframe: str, candles: Sequence[Candle]) -> None:
        """Insert or replace candles; idempotent on (pair, timeframe, timestamp)."""
        ...

    async def latest(self, pair: str, timeframe: str) -> Candle | None:
        """Most recent stored candle."""
        ...

    async def range(
        self, pair: str, timeframe: str, start: datetime, end: datetime
    ) -> list[Candle]:
        """Candles with start <= timestamp <= end, oldest first."""
        ...

    async def recent(self, pair: str, timeframe: str, limit: int = 100) -> list[Candle]:
        """The last ``limit`` candles, oldest first."""
        ...


@runtime_checkable
class SignalStore(Protocol):
    """Signal persistence."""

    async def save(self, signal: TradingSignal) -> None:
        """Persist a new signal (or overwrite an existing one)."""
        ...

    async def get_by_id(self, signal_id: str) -> TradingSignal | None:
        ...

    async def get_by_status(
        self,
        statuses: Sequence[SignalStatus],
        pair: str | None = None,
        timeframe: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TradingSignal]:
        """Signals in any of ``statuses``, oldest first."""
        ...

    async def update_fields(
        self,
        signal_id: str,
        values: dict[str, Any],
        expected_status: SignalStatus | None = None,
    ) -> bool:
        """Partial update.

        When ``expected_status`` is given the write only applies if the stored
        status still equals it. Returns True if a row was updated.
        """
        ...

    async def get_recent(
        self, limit: int = 100, pair: str | None = None
    ) -> list[TradingSignal]:
        """Newest signals first."""
        ...

    async def delete(self, signal_id: str) -> bool:
        ...


# Market data callback receives (pair, price, quantity, timestamp_seconds).
# quantity is None for ticker-style updates.
PriceCallback = Callable[[str, float, float | None, float], Awaitable[None]]


@runtime_checkable
class MarketDataSource(Protocol):
    """Streaming price source; reconnection is the implementation's concern."""

    async def subscribe(self, pair: str, callback: PriceCallback) -> None:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


@runtime_checkable
class PriceSource(Protocol):
    """Latest known price lookup."""

    async def get_price(self, pair: str) -> Decimal | None:
        ...
