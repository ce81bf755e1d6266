"""Binance REST API client with base-URL fallback."""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx

from liquidity_core.errors import TransientIOError
from liquidity_core.models import Candle

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = [
    "https://fapi.binance.com/fapi/v1",
    "https://api.binance.com/api/v3",
]


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 1200):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


class BinanceRestClient:
    """Binance REST client that walks a list of base URLs.

    Each request tries the bases in order, starting from the last one that
    worked. A base fails over on transport errors, timeouts and 5xx/429
    responses; other 4xx responses are returned to the caller as errors
    without trying further bases.
    """

    def __init__(
        self,
        base_urls: list[str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_urls: API roots including version path, e.g.
                "https://api.binance.com/api/v3"
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_urls = list(DEFAULT_BASE_URLS if base_urls is None else base_urls)
        if not self.base_urls:
            raise ValueError("At least one base URL is required")
        self.timeout = timeout
        self.rate_limiter = RateLimiter()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._preferred = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make an API request, failing over across base URLs.

        Raises:
            TransientIOError: If every base URL failed
            httpx.HTTPStatusError: On a non-retryable client error
        """
        await self.rate_limiter.acquire()
        client = await self._get_client()

        count = len(self.base_urls)
        errors: list[str] = []
        for step in range(count):
            index = (self._preferred + step) % count
            base = self.base_urls[index]
            try:
                response = await client.request(method, f"{base}{endpoint}", params=params)
                if response.status_code == 429 or response.status_code >= 500:
                    errors.append(f"{base}: HTTP {response.status_code}")
                    logger.warning(f"Binance {base}{endpoint} returned {response.status_code}, trying next")
                    continue
                response.raise_for_status()
                self._preferred = index
                return response.json()
            except httpx.HTTPStatusError:
                raise
            except httpx.HTTPError as e:
                errors.append(f"{base}: {type(e).__name__}")
                logger.warning(f"Binance request to {base}{endpoint} failed: {e!r}, trying next")

        raise TransientIOError(f"All Binance endpoints failed for {endpoint}: {'; '.join(errors)}")

    async def get_ticker_price(self, pair: str) -> Decimal:
        """Latest traded price for a pair."""
        data = await self._request("GET", "/ticker/price", {"symbol": pair})
        return Decimal(str(data["price"]))

    async def get_klines(
        self,
        pair: str,
        timeframe: str,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        limit: int = 500,
    ) -> list[Candle]:
        """
        Fetch candles from Binance.

        Args:
            pair: Trading pair (e.g., "BTCUSDT")
            timeframe: Interval (e.g., "5m", "1h")
            start_time: Start time (inclusive)
            end_time: End time (inclusive)
            limit: Maximum number of candles (max 1000)

        Returns:
            Candles oldest first
        """
        params: dict[str, Any] = {
            "symbol": pair,
            "interval": timeframe,
            "limit": min(limit, 1000),
        }
        if start_time:
            params["startTime"] = int(start_time.timestamp() * 1000)
        if end_time:
            params["endTime"] = int(end_time.timestamp() * 1000)

        data = await self._request("GET", "/klines", params)

        return [
            Candle(
                pair=pair,
                timeframe=timeframe,
                timestamp=datetime.fromtimestamp(item[0] / 1000, tz=timezone.utc),
                open=Decimal(str(item[1])),
                high=Decimal(str(item[2])),
                low=Decimal(str(item[3])),
                close=Decimal(str(item[4])),
                volume=Decimal(str(item[5])),
            )
            for item in data
        ]


class RestPriceSource:
    """PriceSource backed by the REST ticker endpoint."""

    def __init__(self, client: BinanceRestClient):
        self.client = client

    async def get_price(self, pair: str) -> Decimal | None:
        try:
            return await self.client.get_ticker_price(pair)
        except (TransientIOError, httpx.HTTPStatusError) as e:
            logger.warning(f"REST price lookup for {pair} failed: {e}")
            return None
