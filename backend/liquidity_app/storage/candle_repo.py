"""Candle data repository (PostgreSQL)."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from liquidity_core.errors import TransientIOError
from liquidity_core.models import Candle
from liquidity_core.timeframes import validate_candles
from liquidity_app.storage.database import CandleTable, get_database

logger = logging.getLogger(__name__)


def _row_to_candle(row: CandleTable) -> Candle:
    return Candle(
        pair=row.pair,
        timeframe=row.timeframe,
        timestamp=row.timestamp,
        open=Decimal(str(row.open)),
        high=Decimal(str(row.high)),
        low=Decimal(str(row.low)),
        close=Decimal(str(row.close)),
        volume=Decimal(str(row.volume)),
    )


class CandleRepository:
    """Repository for OHLC candle operations.

    Implements the CandleStore protocol. Database errors surface as
    TransientIOError.
    """

    async def upsert(
        self,
        pair: str,
        timeframe: str,
        candles: Sequence[Candle],
        chunk_size: int = 1000,
    ) -> None:
        """Insert or replace candles, idempotent on (pair, timeframe, timestamp).

        Args:
            pair: Trading pair
            timeframe: Candle interval
            candles: Candles for this pair/timeframe, oldest first
            chunk_size: Rows per insert (PostgreSQL parameter limit)

        Raises:
            DataIntegrityError: If the batch is malformed or out of order
            TransientIOError: On database failure
        """
        if not candles:
            return
        batch = validate_candles(candles)

        try:
            async with get_database().session() as session:
                for i in range(0, len(batch), chunk_size):
                    chunk = batch[i:i + chunk_size]
                    values = [
                        {
                            "pair": pair,
                            "timeframe": timeframe,
                            "timestamp": c.timestamp,
                            "open": c.open,
                            "high": c.high,
                            "low": c.low,
                            "close": c.close,
                            "volume": c.volume,
                        }
                        for c in chunk
                    ]
                    stmt = insert(CandleTable).values(values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["pair", "timeframe", "timestamp"],
                        set_={
                            "open": stmt.excluded.open,
                            "high": stmt.excluded.high,
                            "low": stmt.excluded.low,
                            "close": stmt.excluded.close,
                            "volume": stmt.excluded.volume,
                        },
                    )
                    await session.execute(stmt)
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to upsert {len(batch)} {pair} {timeframe} candles: {e}") from e

    async def latest(self, pair: str, timeframe: str) -> Candle | None:
        """Most recent stored candle."""
        candles = await self.recent(pair, timeframe, limit=1)
        return candles[-1] if candles else None

    async def recent(self, pair: str, timeframe: str, limit: int = 100) -> list[Candle]:
        """The last ``limit`` candles, oldest first."""
        try:
            async with get_database().session() as session:
                stmt = (
                    select(CandleTable)
                    .where(
                        CandleTable.pair == pair,
                        CandleTable.timeframe == timeframe,
                    )
                    .order_by(CandleTable.timestamp.desc())
                    .limit(limit)
                )
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to load recent {pair} {timeframe} candles: {e}") from e

        return [_row_to_candle(row) for row in reversed(rows)]

    async def range(
        self,
        pair: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> list[Candle]:
        """Candles with start <= timestamp <= end, oldest first."""
        try:
            async with get_database().session() as session:
                stmt = (
                    select(CandleTable)
                    .where(
                        CandleTable.pair == pair,
                        CandleTable.timeframe == timeframe,
                        CandleTable.timestamp >= start,
                        CandleTable.timestamp <= end,
                    )
                    .order_by(CandleTable.timestamp.asc())
                )
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to load {pair} {timeframe} candle range: {e}") from e

        return [_row_to_candle(row) for row in rows]
