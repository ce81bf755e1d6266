"""Exchange clients."""

from liquidity_app.clients.binance_rest import BinanceRestClient, RateLimiter, RestPriceSource
from liquidity_app.clients.binance_stream import BinanceMarketStream

__all__ = [
    "BinanceRestClient",
    "RateLimiter",
    "RestPriceSource",
    "BinanceMarketStream",
]
