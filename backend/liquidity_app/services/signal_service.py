"""Signal service: wires analysis, generation and lifecycle checks to storage.

Concurrency rules:
- One asyncio.Lock per signal id serializes check/complete/cancel of a
  signal within this process.
- Every persisted transition is conditional on the status that was read
  (``expected_status``), so a concurrent writer elsewhere cannot be
  overwritten by a stale check.
- Batch checks run signals concurrently under a semaphore; a failing
  signal only increments the ``errors`` counter.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Protocol, Sequence

from liquidity_core.errors import SignalNotFoundError
from liquidity_core.generator import SignalGenerator
from liquidity_core.lifecycle import SignalLifecycleChecker, changed_fields
from liquidity_core.liquidity import LiquidityAnalyzer
from liquidity_core.models import (
    OPEN_STATUSES,
    Candle,
    CheckSummary,
    ExitType,
    LiquidityResult,
    SeasonalBias,
    SignalFilter,
    SignalStatus,
    TradingSignal,
)
from liquidity_core.protocols import CandleStore, PriceSource, SignalStore
from liquidity_core.seasonality import DEFAULT_MONTHLY_RETURNS, MonthlyReturns, seasonal_bias
from liquidity_core.stats import SignalStats, calculate_signal_stats
from liquidity_core.timeframes import period_start, timeframe_seconds, validate_candles

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (SignalStatus.COMPLETED, SignalStatus.EXPIRED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalArchive(Protocol):
    """Sink for signals that left the market."""

    async def archive(self, signal: TradingSignal, notes: str | None = None) -> None:
        ...


class CandleHistorySource(Protocol):
    """Backfill source for candles missing from the store."""

    async def get_klines(
        self,
        pair: str,
        timeframe: str,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        limit: int = 500,
    ) -> list[Candle]:
        ...


class SignalService:
    """Generates and tracks trading signals.

    Usage:
        service = SignalService(candle_store, signal_store)
        signal = await service.generate_signal("BTCUSDT", "15m")
        summary = await service.check_all_active(SignalFilter(pair="BTCUSDT"))
    """

    def __init__(
        self,
        candle_store: CandleStore,
        signal_store: SignalStore,
        analyzer: LiquidityAnalyzer | None = None,
        generator: SignalGenerator | None = None,
        checker: SignalLifecycleChecker | None = None,
        price_source: PriceSource | None = None,
        fallback_price_source: PriceSource | None = None,
        history: CandleHistorySource | None = None,
        archive: SignalArchive | None = None,
        monthly_returns: MonthlyReturns | None = None,
        analysis_limit: int = 100,
        check_concurrency: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.candle_store = candle_store
        self.signal_store = signal_store
        self.analyzer = analyzer or LiquidityAnalyzer()
        self.generator = generator or SignalGenerator(clock=clock)
        self.checker = checker or SignalLifecycleChecker(clock=clock)
        self.price_source = price_source
        self.fallback_price_source = fallback_price_source
        self.history = history
        self.archive = archive
        self.monthly_returns = (
            DEFAULT_MONTHLY_RETURNS if monthly_returns is None else monthly_returns
        )
        self.analysis_limit = analysis_limit
        self.check_concurrency = check_concurrency
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, signal_id: str) -> asyncio.Lock:
        lock = self._locks.get(signal_id)
        if lock is None:
            lock = self._locks[signal_id] = asyncio.Lock()
        return lock

    # =========================================================================
    # Analysis and generation
    # =========================================================================

    def analyze_liquidity(
        self,
        candles: Sequence[Candle],
        swing_strength: int | None = None,
        timeframe: str | None = None,
    ) -> LiquidityResult:
        """Validate a candle window and compute its liquidity levels.

        Uses the per-timeframe pivot window when ``timeframe`` is given and
        no explicit ``swing_strength`` is.

        Raises:
            DataIntegrityError: If the candles are malformed or out of order
        """
        batch = validate_candles(candles)
        if swing_strength is None and timeframe is not None:
            return self.analyzer.analyze_for_timeframe(batch, timeframe)
        return self.analyzer.analyze(batch, swing_strength=swing_strength)

    async def load_candles(self, pair: str, timeframe: str, limit: int | None = None) -> list[Candle]:
        """Recent closed candles, backfilled from history when the store is short."""
        limit = limit or self.analysis_limit
        candles = await self.candle_store.recent(pair, timeframe, limit)
        if len(candles) >= limit or self.history is None:
            return candles

        fetched = await self.history.get_klines(pair, timeframe, limit=limit + 1)
        # The exchange includes the still-open period; the builder owns that one
        open_start = period_start(self._clock().timestamp(), timeframe)
        closed = [c for c in fetched if c.epoch < open_start]
        if closed:
            await self.candle_store.upsert(pair, timeframe, closed)
            logger.info(f"Backfilled {len(closed)} {pair} {timeframe} candles from history")
        return await self.candle_store.recent(pair, timeframe, limit)

    async def get_current_price(
        self, pair: str, candles: Sequence[Candle] | None = None
    ) -> Decimal | None:
        """Latest price: price source, then fallback source, then last close."""
        for source in (self.price_source, self.fallback_price_source):
            if source is None:
                continue
            try:
                price = await source.get_price(pair)
            except Exception as e:
                logger.warning(f"Price lookup for {pair} failed: {e}")
                continue
            if price is not None:
                return price

        if candles:
            return candles[-1].close
        return None

    def current_bias(self) -> tuple[SeasonalBias, Decimal]:
        return seasonal_bias(self.monthly_returns, self._clock().month)

    async def generate_signal(
        self,
        pair: str,
        timeframe: str,
        bias: SeasonalBias | None = None,
    ) -> TradingSignal | None:
        """Analyze recent candles and persist a new WAITING signal if one forms.

        Args:
            pair: Trading pair
            timeframe: Candle timeframe
            bias: Directional bias; seasonality of the current month if None

        Returns:
            The saved signal, or None when the generator abstains
        """
        timeframe_seconds(timeframe)  # Reject unknown timeframes early

        candles = validate_candles(await self.load_candles(pair, timeframe))
        levels = self.analyzer.analyze(candles)
        if levels.is_empty:
            logger.info(f"No liquidity levels for {pair} {timeframe} ({len(candles)} candles)")
            return None

        probability: Decimal | None = None
        if bias is None:
            bias, probability = self.current_bias()

        price = await self.get_current_price(pair, candles)
        if price is None:
            logger.warning(f"No price available for {pair}, skipping generation")
            return None

        signal = self.generator.generate(
            pair,
            timeframe,
            candles,
            levels,
            bias,
            price,
            positive_probability=probability,
        )
        if signal is None:
            return None

        await self.signal_store.save(signal)
        return signal

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def get_signal(self, signal_id: str) -> TradingSignal:
        signal = await self.signal_store.get_by_id(signal_id)
        if signal is None:
            raise SignalNotFoundError(f"Signal {signal_id} not found")
        return signal

    async def list_signals(
        self,
        status: SignalStatus | None = None,
        pair: str | None = None,
        timeframe: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TradingSignal]:
        if status is None and timeframe is None and offset == 0:
            return await self.signal_store.get_recent(limit=limit, pair=pair)
        statuses = [status] if status else list(SignalStatus)
        return await self.signal_store.get_by_status(
            statuses, pair=pair, timeframe=timeframe, limit=limit, offset=offset
        )

    async def check_signal(self, signal_id: str) -> TradingSignal:
        """Advance one signal from stored candles and persist any change.

        Raises:
            SignalNotFoundError: If the id is unknown
            DataIntegrityError: If the stored candles are malformed
            TransientIOError: On storage failure
        """
        async with self._lock_for(signal_id):
            signal = await self.get_signal(signal_id)
            return await self._check_locked(signal)

    async def _check_locked(self, signal: TradingSignal) -> TradingSignal:
        if signal.is_terminal:
            return signal

        now = self._clock()
        candles = validate_candles(
            await self.candle_store.range(signal.pair, signal.timeframe, signal.created_at, now)
        )

        latest_price = None
        if (
            signal.status == SignalStatus.WAITING
            and now - signal.created_at > self.checker.expiry
        ):
            latest_price = await self.get_current_price(signal.pair, candles)

        updated = self.checker.check(signal, candles, now, latest_price)
        if updated is signal:
            return signal

        return await self._persist(signal, updated)

    async def _persist(self, before: TradingSignal, after: TradingSignal) -> TradingSignal:
        """Conditionally write a transition and archive closed signals."""
        changes = changed_fields(before, after)
        applied = await self.signal_store.update_fields(
            before.id, changes, expected_status=before.status
        )
        if not applied:
            logger.warning(
                f"Signal {before.id} changed concurrently (expected {before.status.value}), "
                f"discarding {after.status.value} update"
            )
            current = await self.signal_store.get_by_id(before.id)
            return current or before

        if after.status in CLOSED_STATUSES and self.archive is not None:
            try:
                await self.archive.archive(after)
            except Exception as e:
                logger.error(f"Failed to archive signal {after.id}: {e}")

        if after.is_terminal:
            self._locks.pop(after.id, None)
        return after

    async def check_all_active(self, signal_filter: SignalFilter | None = None) -> CheckSummary:
        """Check one page of WAITING/ACTIVE signals.

        ``next_offset`` accounts for signals that left the open set during
        this batch, so passing it back continues where this page ended.
        """
        signal_filter = signal_filter or SignalFilter()
        page = await self.signal_store.get_by_status(
            OPEN_STATUSES,
            pair=signal_filter.pair,
            timeframe=signal_filter.timeframe,
            limit=signal_filter.limit + 1,
            offset=signal_filter.offset,
        )
        has_more = len(page) > signal_filter.limit
        batch = page[: signal_filter.limit]

        summary = CheckSummary(checked=len(batch), has_more=has_more)
        semaphore = asyncio.Semaphore(self.check_concurrency)

        async def check_one(signal: TradingSignal) -> TradingSignal | Exception:
            async with semaphore:
                try:
                    return await self.check_signal(signal.id)
                except Exception as e:
                    logger.error(f"Error checking signal {signal.id} ({signal.pair}): {e}")
                    return e

        results = await asyncio.gather(*(check_one(s) for s in batch))

        for before, result in zip(batch, results):
            if isinstance(result, Exception):
                summary.errors += 1
                continue
            if result.status == before.status:
                continue
            summary.updated += 1
            if result.status == SignalStatus.COMPLETED:
                summary.completed += 1
            elif result.status == SignalStatus.EXPIRED:
                summary.expired += 1

        left_open_set = summary.completed + summary.expired
        summary.next_offset = signal_filter.offset + summary.checked - left_open_set

        logger.info(
            f"Checked {summary.checked} signals: {summary.updated} updated, "
            f"{summary.completed} completed, {summary.expired} expired, {summary.errors} errors"
        )
        return summary

    async def complete_signal(
        self,
        signal_id: str,
        exit_price: Decimal,
        exit_type: ExitType = ExitType.MANUAL,
    ) -> TradingSignal:
        """Manually close an active signal.

        Raises:
            SignalNotFoundError: If the id is unknown
            InvalidTransitionError: If the signal is not active
        """
        async with self._lock_for(signal_id):
            signal = await self.get_signal(signal_id)
            updated = self.checker.complete(signal, exit_price, exit_type, self._clock())
            return await self._persist(signal, updated)

    async def cancel_signal(self, signal_id: str) -> TradingSignal:
        """Cancel a waiting or active signal.

        Raises:
            SignalNotFoundError: If the id is unknown
            InvalidTransitionError: If the signal is already terminal
        """
        async with self._lock_for(signal_id):
            signal = await self.get_signal(signal_id)
            updated = self.checker.cancel(signal, self._clock())
            return await self._persist(signal, updated)

    async def get_stats(self, signal_filter: SignalFilter | None = None) -> SignalStats:
        """Statistics over closed signals matching the filter."""
        signal_filter = signal_filter or SignalFilter(limit=1000)
        signals = await self.signal_store.get_by_status(
            CLOSED_STATUSES,
            pair=signal_filter.pair,
            timeframe=signal_filter.timeframe,
            limit=signal_filter.limit,
            offset=signal_filter.offset,
        )
        return calculate_signal_stats(signals)
