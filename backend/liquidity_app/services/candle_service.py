"""Candle collection service.

Wires a MarketDataSource into the CandleBuilder:
1. Resume open candles from the store
2. Subscribe every configured pair; trades and tickers go to the builder
   and the latest price goes to the price cache
3. Run the sweep loop that closes idle periods
"""

import asyncio
import logging

from liquidity_core.candle_builder import CandleBuilder
from liquidity_core.protocols import MarketDataSource
from liquidity_app.storage.price_cache import PriceCache

logger = logging.getLogger(__name__)


class CandleService:
    """Runs the candle builder against a live market data source."""

    def __init__(
        self,
        builder: CandleBuilder,
        source: MarketDataSource,
        price_cache: PriceCache | None = None,
        sweep_interval: float = 1.0,
    ):
        self.builder = builder
        self.source = source
        self.price_cache = price_cache
        self.sweep_interval = sweep_interval
        self._sweep_task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Resume state, subscribe pairs and start the sweep loop."""
        if self._running:
            return

        await self.builder.load_state()

        for pair in self.builder.pairs:
            await self.source.subscribe(pair, self._on_price)

        await self.source.start()
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            f"Candle service started: {len(self.builder.pairs)} pairs, "
            f"timeframes {self.builder.timeframes}"
        )

    async def stop(self) -> None:
        """Stop feeding ticks and flush periods that already ended."""
        if not self._running:
            return
        self._running = False

        await self.source.stop()

        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        await self.builder.sweep()
        logger.info(f"Candle service stopped ({self.builder.stats})")

    async def _on_price(
        self,
        pair: str,
        price: float,
        quantity: float | None,
        timestamp: float,
    ) -> None:
        """Market data callback."""
        if quantity is None:
            await self.builder.on_tick(pair, price, timestamp=timestamp)
        else:
            await self.builder.on_trade(pair, price, quantity, timestamp=timestamp)

        if self.price_cache is not None:
            await self.price_cache.update_price(pair, price, timestamp, quantity)

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.builder.sweep()
            except Exception as e:
                logger.error(f"Error in candle sweep: {e}")
