"""Signal data repositories (PostgreSQL)."""

import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from liquidity_core.errors import TransientIOError
from liquidity_core.models import (
    Direction,
    ExitType,
    SeasonalBias,
    SignalStatus,
    TradingSignal,
)
from liquidity_app.storage.database import CompletedSignalTable, SignalTable, get_database

logger = logging.getLogger(__name__)

# Model field -> column name where they differ
_COLUMN_NAMES = {"direction": "signal_type"}


def _dec(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def _to_columns(values: dict[str, Any]) -> dict[str, Any]:
    """Translate model field values into column values."""
    columns = {}
    for key, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        columns[_COLUMN_NAMES.get(key, key)] = value
    return columns


def _row_to_signal(row: SignalTable) -> TradingSignal:
    return TradingSignal(
        id=row.id,
        pair=row.pair,
        timeframe=row.timeframe,
        direction=Direction(row.signal_type),
        entry_price=_dec(row.entry_price),
        stop_loss=_dec(row.stop_loss),
        take_profit=_dec(row.take_profit),
        created_at=row.created_at,
        updated_at=row.updated_at,
        status=SignalStatus(row.status),
        entry_hit_time=row.entry_hit_time,
        exit_type=ExitType(row.exit_type) if row.exit_type else None,
        exit_price=_dec(row.exit_price),
        exit_time=row.exit_time,
        profit_loss=_dec(row.profit_loss),
        profit_loss_percent=_dec(row.profit_loss_percent),
        risk_reward_ratio=_dec(row.risk_reward_ratio) or Decimal("0"),
        signal_source=row.signal_source,
        major_level=_dec(row.major_level),
        seasonality=SeasonalBias(row.seasonality),
        positive_probability=_dec(row.positive_probability),
    )


class SignalRepository:
    """Repository for generated signals.

    Implements the SignalStore protocol. Database errors surface as
    TransientIOError.
    """

    async def save(self, signal: TradingSignal) -> None:
        """Save a signal (upsert on id)."""
        values = _to_columns(signal.model_dump())
        try:
            async with get_database().session() as session:
                stmt = insert(SignalTable).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["id"],
                    set_={key: stmt.excluded[key] for key in values if key != "id"},
                )
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to save signal {signal.id}: {e}") from e

    async def get_by_id(self, signal_id: str) -> TradingSignal | None:
        """Get a signal by ID."""
        try:
            async with get_database().session() as session:
                stmt = select(SignalTable).where(SignalTable.id == signal_id)
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to load signal {signal_id}: {e}") from e

        if row is None:
            return None
        return _row_to_signal(row)

    async def get_by_status(
        self,
        statuses: Sequence[SignalStatus],
        pair: str | None = None,
        timeframe: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TradingSignal]:
        """Signals in any of ``statuses``, oldest first."""
        try:
            async with get_database().session() as session:
                stmt = select(SignalTable).where(
                    SignalTable.status.in_([s.value for s in statuses])
                )
                if pair:
                    stmt = stmt.where(SignalTable.pair == pair)
                if timeframe:
                    stmt = stmt.where(SignalTable.timeframe == timeframe)
                stmt = stmt.order_by(SignalTable.created_at.asc(), SignalTable.id.asc())
                if offset:
                    stmt = stmt.offset(offset)
                if limit is not None:
                    stmt = stmt.limit(limit)

                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to query signals by status: {e}") from e

        return [_row_to_signal(row) for row in rows]

    async def update_fields(
        self,
        signal_id: str,
        values: dict[str, Any],
        expected_status: SignalStatus | None = None,
    ) -> bool:
        """Partial update, optionally conditional on the stored status.

        Returns:
            True if a row was updated
        """
        if not values:
            return False
        try:
            async with get_database().session() as session:
                stmt = update(SignalTable).where(SignalTable.id == signal_id)
                if expected_status is not None:
                    stmt = stmt.where(SignalTable.status == expected_status.value)
                stmt = stmt.values(**_to_columns(values))
                result = await session.execute(stmt)
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to update signal {signal_id}: {e}") from e

    async def get_recent(
        self, limit: int = 100, pair: str | None = None
    ) -> list[TradingSignal]:
        """Get recent signals, newest first."""
        try:
            async with get_database().session() as session:
                stmt = select(SignalTable)
                if pair:
                    stmt = stmt.where(SignalTable.pair == pair)
                stmt = stmt.order_by(SignalTable.created_at.desc()).limit(limit)

                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to load recent signals: {e}") from e

        return [_row_to_signal(row) for row in rows]

    async def delete(self, signal_id: str) -> bool:
        """Delete a signal. Returns True if it existed."""
        try:
            async with get_database().session() as session:
                stmt = (
                    delete(SignalTable)
                    .where(SignalTable.id == signal_id)
                    .returning(SignalTable.id)
                )
                result = await session.execute(stmt)
                return len(result.all()) > 0
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to delete signal {signal_id}: {e}") from e


class CompletedSignalRepository:
    """Archive of closed signals (one row per signal id)."""

    async def archive(self, signal: TradingSignal, notes: str | None = None) -> None:
        """Record a completed or expired signal. Re-archiving is a no-op."""
        if signal.exit_type is None:
            raise ValueError(f"Signal {signal.id} has not exited")

        try:
            async with get_database().session() as session:
                stmt = insert(CompletedSignalTable).values(
                    signal_id=signal.id,
                    signal_type=signal.direction.value,
                    pair=signal.pair,
                    timeframe=signal.timeframe,
                    entry_price=signal.entry_price,
                    stop_loss=signal.stop_loss,
                    take_profit=signal.take_profit,
                    exit_price=signal.exit_price,
                    exit_type=signal.exit_type.value,
                    entry_time=signal.entry_hit_time,
                    exit_time=signal.exit_time,
                    profit_loss=signal.profit_loss,
                    profit_loss_percent=signal.profit_loss_percent,
                    risk_reward_ratio=signal.risk_reward_ratio,
                    signal_source=signal.signal_source,
                    notes=notes,
                )
                stmt = stmt.on_conflict_do_nothing(index_elements=["signal_id"])
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to archive signal {signal.id}: {e}") from e
