"""Data storage layer."""

from liquidity_app.storage.database import (
    Database,
    close_database,
    get_database,
    init_database,
)
from liquidity_app.storage.candle_repo import CandleRepository
from liquidity_app.storage.signal_repo import CompletedSignalRepository, SignalRepository
from liquidity_app.storage.memory import (
    InMemoryCandleStore,
    InMemorySignalArchive,
    InMemorySignalStore,
)
from liquidity_app.storage.price_cache import PriceCache
from liquidity_app.storage import cache

__all__ = [
    "Database",
    "close_database",
    "get_database",
    "init_database",
    "CandleRepository",
    "SignalRepository",
    "CompletedSignalRepository",
    "InMemoryCandleStore",
    "InMemorySignalArchive",
    "InMemorySignalStore",
    "PriceCache",
    "cache",
]
