"""Tests for the Binance REST client (httpx MockTransport, no network)."""

from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from liquidity_core.errors import TransientIOError
from liquidity_app.clients.binance_rest import BinanceRestClient, RestPriceSource

FUTURES = "https://fapi.binance.com/fapi/v1"
SPOT = "https://api.binance.com/api/v3"


def make_client(handler) -> BinanceRestClient:
    return BinanceRestClient(
        base_urls=[FUTURES, SPOT],
        transport=httpx.MockTransport(handler),
    )


class TestFailover:
    """Tests for base URL fallback."""

    async def test_falls_back_on_server_error(self):
        """Test a 503 moves on to the next base URL."""
        hosts = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if request.url.host == "fapi.binance.com":
                return httpx.Response(503)
            return httpx.Response(200, json={"symbol": "BTCUSDT", "price": "50000.10"})

        client = make_client(handler)
        try:
            price = await client.get_ticker_price("BTCUSDT")
            # Second call starts from the base that worked
            await client.get_ticker_price("BTCUSDT")
        finally:
            await client.close()

        assert price == Decimal("50000.10")
        assert hosts == ["fapi.binance.com", "api.binance.com", "api.binance.com"]

    async def test_falls_back_on_rate_limit(self):
        """Test a 429 moves on to the next base URL."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "fapi.binance.com":
                return httpx.Response(429)
            return httpx.Response(200, json={"price": "1.5"})

        client = make_client(handler)
        try:
            assert await client.get_ticker_price("XRPUSDT") == Decimal("1.5")
        finally:
            await client.close()

    async def test_all_endpoints_down(self):
        """Test failure on every base URL raises TransientIOError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        try:
            with pytest.raises(TransientIOError):
                await client.get_ticker_price("BTCUSDT")
        finally:
            await client.close()

    async def test_client_error_not_retried(self):
        """Test a 400 is raised without trying other bases."""
        hosts = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            return httpx.Response(400, json={"code": -1121, "msg": "Invalid symbol."})

        client = make_client(handler)
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_ticker_price("NOPE")
        finally:
            await client.close()

        assert hosts == ["fapi.binance.com"]

    def test_requires_base_url(self):
        """Test an explicit empty base URL list is rejected."""
        with pytest.raises(ValueError):
            BinanceRestClient(base_urls=[])

    def test_default_base_urls(self):
        """Test futures then spot roots are used when none are given."""
        assert BinanceRestClient().base_urls == [FUTURES, SPOT]


class TestKlines:
    """Tests for kline parsing."""

    async def test_parses_klines(self):
        """Test kline rows are parsed into candles."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            seen["path"] = request.url.path
            return httpx.Response(
                200,
                json=[
                    [1700000100000, "100.0", "101.5", "99.5", "101.0", "12.3", 1700000399999],
                    [1700000400000, "101.0", "102.0", "100.5", "101.5", "8.1", 1700000699999],
                ],
            )

        client = make_client(handler)
        start = datetime.fromtimestamp(1700000100, tz=timezone.utc)
        try:
            candles = await client.get_klines("BTCUSDT", "5m", start_time=start, limit=2000)
        finally:
            await client.close()

        assert seen["path"] == "/fapi/v1/klines"
        assert seen["interval"] == "5m"
        assert seen["limit"] == "1000"
        assert seen["startTime"] == "1700000100000"
        assert len(candles) == 2
        assert candles[0].timestamp == start
        assert candles[0].high == Decimal("101.5")
        assert candles[1].volume == Decimal("8.1")


class TestRestPriceSource:
    async def test_returns_none_on_failure(self):
        """Test the price source returns None when REST fails."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        client = make_client(handler)
        try:
            assert await RestPriceSource(client).get_price("BTCUSDT") is None
        finally:
            await client.close()
