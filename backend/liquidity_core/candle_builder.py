"""Candle builder: turns a tick/trade stream into per-timeframe OHLC candles.

One in-memory CandleState per (pair, timeframe) key, aligned to
``period_start = floor(now / timeframe) * timeframe``.

Rules:
- A tick or trade in a new period flushes the old candle (if it saw any
  price) and seeds a new one with open=high=low=close=price.
- Trades add their quantity to volume; ticker volume (already cumulative
  on the exchange side) is ignored for the open candle.
- ``sweep()`` closes candles whose period ended when no tick arrived to roll
  them, at most once per half timeframe per key.
- Tick/trade handling and sweep for one key are serialized by that key's lock.
- Store failures are logged and never reach the tick path. Failed flushes
  stay in a bounded per-key retry queue that each sweep drains.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from liquidity_core.models import Candle, CandleState, candle_to_state, state_to_candle
from liquidity_core.protocols import CandleStore
from liquidity_core.timeframes import period_start, timeframe_seconds

logger = logging.getLogger(__name__)

# Type alias for (pair, timeframe)
CandleKey = tuple[str, str]


@dataclass
class _KeySlot:
    """Per-key state owned by one builder."""

    state: CandleState
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_flush: float = 0.0
    pending: deque[Candle] = field(default_factory=deque)


class CandleBuilder:
    """Builds candles for a fixed set of pairs and timeframes.

    Usage:
        builder = CandleBuilder(["BTCUSDT"], ["5m", "1h"], store)
        await builder.load_state()

        await builder.on_trade("BTCUSDT", 50000.0, 0.1)
        await builder.sweep()
    """

    def __init__(
        self,
        pairs: list[str],
        timeframes: list[str],
        store: CandleStore,
        store_timeout: float = 10.0,
        max_pending: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            pairs: Trading pairs to build candles for
            timeframes: Timeframes to build (each must be supported)
            store: Candle store that receives closed candles
            store_timeout: Seconds before a store call is abandoned
            max_pending: Failed flushes kept per key for retry
            clock: Source of "now" in epoch seconds
        """
        for timeframe in timeframes:
            timeframe_seconds(timeframe)  # Validate early

        self.pairs = list(pairs)
        self.timeframes = list(timeframes)
        self.store = store
        self.store_timeout = store_timeout
        self.max_pending = max_pending
        self._clock = clock

        now = clock()
        self._slots: dict[CandleKey, _KeySlot] = {
            (pair, tf): _KeySlot(state=self._empty_state(pair, tf, now))
            for pair in self.pairs
            for tf in self.timeframes
        }

        self._flushed_count = 0
        self._failed_flushes = 0

        logger.info(
            f"CandleBuilder initialized for {len(self.pairs)} pairs x "
            f"{len(self.timeframes)} timeframes"
        )

    @staticmethod
    def _empty_state(pair: str, timeframe: str, now: float) -> CandleState:
        return CandleState(
            pair=pair,
            timeframe=timeframe,
            period_start=period_start(now, timeframe),
        )

    async def load_state(self, now: float | None = None) -> None:
        """Resume the open period for each key from the store.

        If the latest stored candle belongs to the current period it becomes
        the in-memory candle again; otherwise the key starts empty.
        """
        now = self._clock() if now is None else now

        for (pair, timeframe), slot in self._slots.items():
            current_start = period_start(now, timeframe)
            latest: Candle | None = None
            try:
                latest = await asyncio.wait_for(
                    self.store.latest(pair, timeframe), timeout=self.store_timeout
                )
            except Exception as e:
                logger.error(f"Error loading latest {timeframe} candle for {pair}: {e}")

            async with slot.lock:
                if latest is not None and int(latest.epoch) == current_start:
                    slot.state = candle_to_state(latest)
                    logger.info(
                        f"Resumed {pair} {timeframe} candle at {latest.timestamp.isoformat()}"
                    )
                else:
                    slot.state = self._empty_state(pair, timeframe, now)

    async def on_tick(
        self,
        pair: str,
        price: float,
        volume: float | None = None,
        timestamp: float | None = None,
    ) -> None:
        """Process a ticker update.

        ``volume`` is accepted for interface parity with ticker feeds but is
        not applied: exchange ticker volume is a rolling cumulative figure and
        would corrupt the per-period total.
        """
        await self._process(pair, price, None, timestamp)

    async def on_trade(
        self,
        pair: str,
        price: float,
        quantity: float,
        timestamp: float | None = None,
    ) -> None:
        """Process an individual trade; its quantity adds to volume."""
        await self._process(pair, price, quantity, timestamp)

    async def _process(
        self,
        pair: str,
        price: float,
        quantity: float | None,
        timestamp: float | None,
    ) -> None:
        if price <= 0:
            logger.warning(f"Ignoring non-positive price {price} for {pair}")
            return

        now = self._clock() if timestamp is None else timestamp

        for timeframe in self.timeframes:
            slot = self._slots.get((pair, timeframe))
            if slot is None:
                return  # Pair not registered

            try:
                async with slot.lock:
                    await self._apply(slot, price, quantity, now)
            except Exception as e:
                # One bad update must not stop the stream
                logger.error(f"Error processing price for {pair} {timeframe}: {e}")

    async def _apply(
        self,
        slot: _KeySlot,
        price: float,
        quantity: float | None,
        now: float,
    ) -> None:
        """Fold one price into a slot. Caller holds slot.lock."""
        state = slot.state
        current_start = period_start(now, state.timeframe)

        if current_start > state.period_start:
            if state.has_data:
                await self._flush(slot, state_to_candle(state), now)
            state = CandleState(
                pair=state.pair,
                timeframe=state.timeframe,
                period_start=current_start,
            )
            slot.state = state
        elif current_start < state.period_start:
            logger.warning(
                f"Skipping late price {price} for {state.pair} {state.timeframe} "
                f"(period {current_start} < {state.period_start})"
            )
            return

        state.apply_price(price)
        if quantity is not None:
            state.add_volume(quantity)

    async def sweep(self, now: float | None = None) -> list[Candle]:
        """Close candles whose period ended without a rolling tick.

        Returns:
            Candles flushed successfully during this sweep
        """
        now = self._clock() if now is None else now
        flushed: list[Candle] = []

        for (pair, timeframe), slot in self._slots.items():
            half_period = timeframe_seconds(timeframe) / 2

            try:
                async with slot.lock:
                    flushed.extend(await self._retry_pending(slot))

                    current_start = period_start(now, timeframe)
                    state = slot.state
                    if state.period_start >= current_start:
                        continue
                    if now - slot.last_flush < half_period:
                        continue

                    if state.has_data:
                        candle = state_to_candle(state)
                        if await self._flush(slot, candle, now):
                            flushed.append(candle)
                            logger.info(
                                f"Stored and started new {timeframe} candle for {pair}"
                            )
                    slot.state = CandleState(
                        pair=pair, timeframe=timeframe, period_start=current_start
                    )
            except Exception as e:
                logger.error(f"Error processing candle closure for {pair} {timeframe}: {e}")

        return flushed

    async def _flush(self, slot: _KeySlot, candle: Candle, now: float) -> bool:
        """Write one closed candle. Caller holds slot.lock.

        On failure the candle is queued for retry by the next sweep.
        """
        slot.last_flush = now
        try:
            await asyncio.wait_for(
                self.store.upsert(candle.pair, candle.timeframe, [candle]),
                timeout=self.store_timeout,
            )
        except Exception as e:
            self._failed_flushes += 1
            logger.error(
                f"Error storing completed candle for {candle.pair} {candle.timeframe}: {e}"
            )
            self._queue_pending(slot, candle)
            return False

        self._flushed_count += 1
        return True

    def _queue_pending(self, slot: _KeySlot, candle: Candle) -> None:
        if len(slot.pending) >= self.max_pending:
            dropped = slot.pending.popleft()
            logger.error(
                f"Retry queue full for {dropped.pair} {dropped.timeframe}, "
                f"dropping candle at {dropped.timestamp.isoformat()}"
            )
        slot.pending.append(candle)

    async def _retry_pending(self, slot: _KeySlot) -> list[Candle]:
        """Retry queued flushes oldest first. Caller holds slot.lock."""
        if not slot.pending:
            return []

        batch = list(slot.pending)
        pair, timeframe = batch[0].pair, batch[0].timeframe
        try:
            await asyncio.wait_for(
                self.store.upsert(pair, timeframe, batch), timeout=self.store_timeout
            )
        except Exception as e:
            logger.warning(
                f"Retry of {len(batch)} pending candles for {pair} {timeframe} failed: {e}"
            )
            return []

        slot.pending.clear()
        self._flushed_count += len(batch)
        logger.info(f"Flushed {len(batch)} pending candles for {pair} {timeframe}")
        return batch

    def current(self, pair: str, timeframe: str) -> Candle | None:
        """The open candle for a key, or None if it has seen no price yet."""
        slot = self._slots.get((pair, timeframe))
        if slot is None or not slot.state.has_data:
            return None
        return state_to_candle(slot.state)

    def pending_count(self, pair: str | None = None) -> int:
        """Number of candles waiting for a retried flush."""
        return sum(
            len(slot.pending)
            for (slot_pair, _), slot in self._slots.items()
            if pair is None or slot_pair == pair
        )

    @property
    def stats(self) -> dict:
        return {
            "flushed": self._flushed_count,
            "failed_flushes": self._failed_flushes,
            "pending": self.pending_count(),
        }
