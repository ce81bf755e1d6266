"""Latest price per pair.

Prices are held in memory as they stream in and written to Redis in
batches (``price:{pair}`` -> JSON {price, timestamp, volume}, with TTL) so
other processes can read them. Implements the PriceSource protocol.
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal

import orjson

from liquidity_app.storage import cache

logger = logging.getLogger(__name__)

# Prices become stale quickly
PRICE_TTL = 60

# Flush pending updates to Redis at most this often (seconds)
BATCH_FLUSH_INTERVAL = 1.0

# In-memory entries older than this are ignored by get_price
MAX_PRICE_AGE = 300


def _price_key(pair: str) -> str:
    return f"{cache.KEY_PREFIX_PRICE}{pair}"


class PriceCache:
    """Batched latest-price cache.

    Usage:
        prices = PriceCache()
        await prices.update_price("BTCUSDT", 50000.0)
        price = await prices.get_price("BTCUSDT")  # Decimal("50000.0")
    """

    def __init__(self, flush_interval: float = BATCH_FLUSH_INTERVAL, clock=time.time):
        self.flush_interval = flush_interval
        self._clock = clock
        self._latest: dict[str, dict] = {}
        self._dirty: set[str] = set()
        self._last_flush = 0.0
        self._lock = asyncio.Lock()

    async def update_price(
        self,
        pair: str,
        price: float,
        timestamp: float | None = None,
        volume: float | None = None,
    ) -> None:
        """Record the latest price; flushes to Redis once per interval."""
        now = self._clock()
        async with self._lock:
            self._latest[pair] = {
                "price": price,
                "timestamp": timestamp or now,
                "volume": volume,
            }
            self._dirty.add(pair)
            should_flush = now - self._last_flush >= self.flush_interval

        if should_flush:
            await self.flush()

    async def flush(self) -> bool:
        """Write pending prices to Redis in one pipeline round-trip."""
        client = cache.get_client()
        if client is None:
            return False

        async with self._lock:
            if not self._dirty:
                return True
            payload = {
                pair: orjson.dumps(self._latest[pair])
                for pair in self._dirty
                if pair in self._latest
            }
            self._dirty.clear()
            self._last_flush = self._clock()

        try:
            async with client.pipeline(transaction=False) as pipe:
                for pair, data in payload.items():
                    pipe.setex(_price_key(pair), PRICE_TTL, data)
                await pipe.execute()
            return True
        except Exception as e:
            logger.warning(f"Failed to flush prices to Redis: {e}")
            return False

    async def get_price(self, pair: str) -> Decimal | None:
        """Latest known price: memory first, then Redis."""
        entry = self._latest.get(pair)
        if entry is not None and self._clock() - entry["timestamp"] <= MAX_PRICE_AGE:
            return Decimal(str(entry["price"]))

        data = await cache.get_json(_price_key(pair))
        if data is None or data.get("price") is None:
            return None
        return Decimal(str(data["price"]))
