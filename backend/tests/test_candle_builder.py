"""Tests for the candle builder."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from liquidity_core.candle_builder import CandleBuilder
from liquidity_core.errors import TransientIOError
from liquidity_core.models import Candle
from liquidity_app.storage.memory import InMemoryCandleStore


def ts(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def make_builder(store=None, timeframes=("5m",), **kwargs) -> CandleBuilder:
    return CandleBuilder(
        ["BTCUSDT"],
        list(timeframes),
        store if store is not None else InMemoryCandleStore(),
        clock=lambda: 0.0,
        **kwargs,
    )


class FlakyStore(InMemoryCandleStore):
    """Candle store that fails while ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = True
        self.calls = 0

    async def upsert(self, pair, timeframe, candles):
        self.calls += 1
        if self.failing:
            raise TransientIOError("database unavailable")
        await super().upsert(pair, timeframe, candles)


class SlowStore(InMemoryCandleStore):
    async def upsert(self, pair, timeframe, candles):
        await asyncio.sleep(1)


# =============================================================================
# Tick and trade handling
# =============================================================================


class TestPriceUpdates:
    """Tests for in-period updates."""

    async def test_first_trade_seeds_candle(self):
        """Test the first trade opens a candle."""
        builder = make_builder()

        await builder.on_trade("BTCUSDT", 100.0, 1.5, timestamp=610)

        candle = builder.current("BTCUSDT", "5m")
        assert candle is not None
        assert candle.timestamp == ts(600)
        assert candle.open == candle.high == candle.low == candle.close == Decimal("100.0")
        assert candle.volume == Decimal("1.5")

    async def test_updates_within_period(self):
        """Test OHLCV updates within one period."""
        builder = make_builder()

        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=600)
        await builder.on_trade("BTCUSDT", 105.0, 1.0, timestamp=650)
        await builder.on_trade("BTCUSDT", 97.0, 1.0, timestamp=700)
        await builder.on_trade("BTCUSDT", 101.0, 2.0, timestamp=899)

        candle = builder.current("BTCUSDT", "5m")
        assert candle.open == Decimal("100.0")
        assert candle.high == Decimal("105.0")
        assert candle.low == Decimal("97.0")
        assert candle.close == Decimal("101.0")
        assert candle.volume == Decimal("5.0")

    async def test_ticker_volume_ignored(self):
        """Test ticker volume does not add to the candle."""
        builder = make_builder()

        await builder.on_trade("BTCUSDT", 100.0, 2.0, timestamp=600)
        await builder.on_tick("BTCUSDT", 102.0, volume=123456.0, timestamp=620)

        candle = builder.current("BTCUSDT", "5m")
        assert candle.close == Decimal("102.0")
        assert candle.volume == Decimal("2.0")

    async def test_non_positive_price_rejected(self):
        """Test zero and negative prices are skipped."""
        builder = make_builder()

        await builder.on_trade("BTCUSDT", 0.0, 1.0, timestamp=600)
        await builder.on_tick("BTCUSDT", -5.0, timestamp=600)

        assert builder.current("BTCUSDT", "5m") is None

    async def test_unregistered_pair_ignored(self):
        """Test prices for unknown pairs are ignored."""
        builder = make_builder()

        await builder.on_trade("DOGEUSDT", 0.1, 100.0, timestamp=600)

        assert builder.current("DOGEUSDT", "5m") is None
        assert builder.current("BTCUSDT", "5m") is None

    async def test_updates_every_timeframe(self):
        """Test one trade updates every timeframe."""
        builder = make_builder(timeframes=("5m", "15m"))

        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=1000)

        assert builder.current("BTCUSDT", "5m").timestamp == ts(900)
        assert builder.current("BTCUSDT", "15m").timestamp == ts(900)


# =============================================================================
# Rollover and sweep
# =============================================================================


class TestRollover:
    """Tests for period rollover on incoming prices."""

    async def test_rollover_flushes_previous_candle(self):
        """Test a new period flushes the previous candle."""
        store = InMemoryCandleStore()
        builder = make_builder(store)

        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=600)
        await builder.on_trade("BTCUSDT", 104.0, 1.0, timestamp=700)
        await builder.on_trade("BTCUSDT", 103.0, 1.0, timestamp=905)

        stored = await store.recent("BTCUSDT", "5m")
        assert len(stored) == 1
        assert stored[0].timestamp == ts(600)
        assert stored[0].open == Decimal("100.0")
        assert stored[0].high == Decimal("104.0")
        assert stored[0].close == Decimal("104.0")

        current = builder.current("BTCUSDT", "5m")
        assert current.timestamp == ts(900)
        assert current.open == Decimal("103.0")

    async def test_empty_period_not_flushed(self):
        """Test a period with no prices is never stored."""
        store = InMemoryCandleStore()
        builder = make_builder(store)

        # Builder starts at period 0 with no data
        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=900)

        assert store.count("BTCUSDT", "5m") == 0

    async def test_late_trade_skipped(self):
        """Test a trade from an earlier period leaves the open candle alone."""
        store = InMemoryCandleStore()
        builder = make_builder(store)

        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=610)
        await builder.on_trade("BTCUSDT", 101.0, 2.0, timestamp=905)
        await builder.on_trade("BTCUSDT", 150.0, 5.0, timestamp=899)

        current = builder.current("BTCUSDT", "5m")
        assert current.timestamp == ts(900)
        assert current.open == current.high == current.low == current.close == Decimal("101.0")
        assert current.volume == Decimal("2.0")

        stored = await store.recent("BTCUSDT", "5m")
        assert [c.high for c in stored] == [Decimal("100.0")]

    async def test_finalized_candles_are_consistent(self):
        """Test stored candles keep high and low bounds."""
        store = InMemoryCandleStore()
        builder = make_builder(store)
        prices = [100, 103, 98, 101, 99, 107, 95, 102, 104, 96, 100, 101]

        for i, price in enumerate(prices):
            await builder.on_trade("BTCUSDT", float(price), 0.1, timestamp=600 + i * 100)

        stored = await store.recent("BTCUSDT", "5m")
        assert len(stored) >= 3
        for candle in stored:
            assert candle.high >= max(candle.open, candle.close, candle.low)
            assert candle.low <= min(candle.open, candle.close, candle.high)


class TestSweep:
    """Tests for closing idle periods."""

    async def test_sweep_closes_ended_period(self):
        """Test sweep flushes a candle after its period ends."""
        store = InMemoryCandleStore()
        builder = make_builder(store)
        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=600)

        flushed = await builder.sweep(now=1200)

        assert len(flushed) == 1
        assert store.count("BTCUSDT", "5m") == 1
        assert builder.current("BTCUSDT", "5m") is None

    async def test_sweep_keeps_open_period(self):
        """Test sweep leaves the current period open."""
        store = InMemoryCandleStore()
        builder = make_builder(store)
        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=600)

        flushed = await builder.sweep(now=899)

        assert flushed == []
        assert builder.current("BTCUSDT", "5m") is not None

    async def test_sweep_waits_half_period_after_flush(self):
        """Test sweep waits half a period after the last flush."""
        store = InMemoryCandleStore()
        builder = make_builder(store)
        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=600)
        # Rollover flush at t=1199 (state moves to period 900)
        await builder.on_trade("BTCUSDT", 101.0, 1.0, timestamp=1199)

        assert await builder.sweep(now=1200) == []
        assert builder.current("BTCUSDT", "5m").timestamp == ts(900)

        flushed = await builder.sweep(now=1350)
        assert [c.timestamp for c in flushed] == [ts(900)]
        assert store.count("BTCUSDT", "5m") == 2


# =============================================================================
# Resume and failure handling
# =============================================================================


class TestLoadState:
    """Tests for resuming from the store."""

    async def test_resumes_current_period(self):
        """Test startup resumes a stored candle from this period."""
        store = InMemoryCandleStore()
        await store.upsert(
            "BTCUSDT",
            "5m",
            [
                Candle(
                    pair="BTCUSDT",
                    timeframe="5m",
                    timestamp=ts(600),
                    open=Decimal("100"),
                    high=Decimal("102"),
                    low=Decimal("99"),
                    close=Decimal("101"),
                    volume=Decimal("3"),
                )
            ],
        )
        builder = make_builder(store)

        await builder.load_state(now=700)
        await builder.on_trade("BTCUSDT", 103.0, 1.0, timestamp=710)

        candle = builder.current("BTCUSDT", "5m")
        assert candle.open == Decimal("100.0")
        assert candle.high == Decimal("103.0")
        assert candle.low == Decimal("99.0")
        assert candle.volume == Decimal("4.0")

    async def test_stale_candle_not_resumed(self):
        """Test startup ignores a candle from an old period."""
        store = InMemoryCandleStore()
        await store.upsert(
            "BTCUSDT",
            "5m",
            [
                Candle(
                    pair="BTCUSDT",
                    timeframe="5m",
                    timestamp=ts(300),
                    open=Decimal("100"),
                    high=Decimal("100"),
                    low=Decimal("100"),
                    close=Decimal("100"),
                )
            ],
        )
        builder = make_builder(store)

        await builder.load_state(now=700)

        assert builder.current("BTCUSDT", "5m") is None


class TestStoreFailures:
    """Store errors never reach the tick path."""

    async def test_failed_flush_is_retried_on_sweep(self):
        """Test a failed flush is retried on the next sweep."""
        store = FlakyStore()
        builder = make_builder(store)

        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=600)
        await builder.on_trade("BTCUSDT", 101.0, 1.0, timestamp=900)

        assert builder.pending_count() == 1
        assert builder.stats["failed_flushes"] == 1

        store.failing = False
        flushed = await builder.sweep(now=950)

        assert [c.timestamp for c in flushed] == [ts(600)]
        assert builder.pending_count() == 0
        assert store.count("BTCUSDT", "5m") == 1

    async def test_retry_queue_is_bounded(self):
        """Test the retry queue drops the oldest candles."""
        store = FlakyStore()
        builder = make_builder(store, max_pending=2)

        for i in range(5):
            await builder.on_trade("BTCUSDT", 100.0 + i, 1.0, timestamp=600 + i * 300)

        assert builder.pending_count() == 2

    async def test_store_timeout_queues_candle(self):
        """Test a slow store times out and queues the candle."""
        builder = make_builder(SlowStore(), store_timeout=0.01)

        await builder.on_trade("BTCUSDT", 100.0, 1.0, timestamp=600)
        await builder.on_trade("BTCUSDT", 101.0, 1.0, timestamp=900)

        assert builder.pending_count() == 1
        assert builder.current("BTCUSDT", "5m").open == Decimal("101.0")


def test_unknown_timeframe_rejected():
    """Test an unknown timeframe fails at construction."""
    with pytest.raises(ValueError):
        CandleBuilder(["BTCUSDT"], ["7m"], InMemoryCandleStore())
