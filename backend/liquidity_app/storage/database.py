"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from liquidity_app.config import get_settings

Base = declarative_base()


class CandleTable(Base):
    """OHLC candles, one row per (pair, timeframe, period start)."""

    __tablename__ = "ohlc_candles"

    pair = Column(String(20), primary_key=True)
    timeframe = Column(String(10), primary_key=True)
    timestamp = Column(DateTime(timezone=True), primary_key=True)
    open = Column(Numeric(18, 8), nullable=False)
    high = Column(Numeric(18, 8), nullable=False)
    low = Column(Numeric(18, 8), nullable=False)
    close = Column(Numeric(18, 8), nullable=False)
    volume = Column(Numeric(28, 8), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_ohlc_candles_pair_tf_time", "pair", "timeframe", "timestamp"),
    )


class SignalTable(Base):
    """Generated signals and their lifecycle state."""

    __tablename__ = "generated_signals"

    id = Column(String(36), primary_key=True)
    pair = Column(String(20), nullable=False)
    timeframe = Column(String(10), nullable=False)
    signal_type = Column(String(10), nullable=False)  # long | short
    entry_price = Column(Numeric(18, 8), nullable=False)
    stop_loss = Column(Numeric(18, 8), nullable=False)
    take_profit = Column(Numeric(18, 8), nullable=False)
    status = Column(String(20), nullable=False, default="waiting")
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    entry_hit_time = Column(DateTime(timezone=True), nullable=True)
    exit_type = Column(String(10), nullable=True)
    exit_price = Column(Numeric(18, 8), nullable=True)
    exit_time = Column(DateTime(timezone=True), nullable=True)
    profit_loss = Column(Numeric(18, 8), nullable=True)
    profit_loss_percent = Column(Numeric(18, 8), nullable=True)
    risk_reward_ratio = Column(Numeric(18, 8), nullable=False, default=0)
    signal_source = Column(String(50), nullable=False, default="liquidity")
    major_level = Column(Numeric(18, 8), nullable=True)
    seasonality = Column(String(10), nullable=False, default="neutral")
    positive_probability = Column(Numeric(10, 4), nullable=True)

    __table_args__ = (
        Index("idx_generated_signals_status", "status"),
        Index("idx_generated_signals_pair_tf_status", "pair", "timeframe", "status"),
        Index("idx_generated_signals_created", "created_at"),
    )


class CompletedSignalTable(Base):
    """Archive of signals that left the market (tp, sl, expired, manual)."""

    __tablename__ = "completed_signals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    signal_id = Column(String(36), nullable=False)
    signal_type = Column(String(10), nullable=False)
    pair = Column(String(20), nullable=False)
    timeframe = Column(String(10), nullable=False)
    entry_price = Column(Numeric(18, 8), nullable=False)
    stop_loss = Column(Numeric(18, 8), nullable=False)
    take_profit = Column(Numeric(18, 8), nullable=False)
    exit_price = Column(Numeric(18, 8), nullable=True)
    exit_type = Column(String(10), nullable=False)
    entry_time = Column(DateTime(timezone=True), nullable=True)
    exit_time = Column(DateTime(timezone=True), nullable=True)
    profit_loss = Column(Numeric(18, 8), nullable=True)
    profit_loss_percent = Column(Numeric(18, 8), nullable=True)
    risk_reward_ratio = Column(Numeric(18, 8), nullable=True)
    signal_source = Column(String(50), nullable=False, default="liquidity")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_completed_signals_signal_id", "signal_id", unique=True),
        Index("idx_completed_signals_pair_tf", "pair", "timeframe"),
    )


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # Sized for pairs x timeframes candle flushes plus concurrent signal checks
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=settings.store_timeout,
            connect_args={
                "timeout": settings.request_timeout,
                "command_timeout": settings.store_timeout,
            },
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db


async def close_database() -> None:
    """Dispose of the global database instance."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
