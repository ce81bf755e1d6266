"""Binance WebSocket market data stream (trades + tickers) using picows."""

import asyncio
import logging
import time
from typing import Callable

import orjson
from picows import ws_connect, WSFrame, WSTransport, WSListener, WSMsgType, WSCloseCode

from liquidity_core.protocols import PriceCallback

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = ["wss://fstream.binance.com/ws"]

TRADE_EVENTS = ("aggTrade", "trade")
TICKER_EVENT = "24hrTicker"


def stream_names(pair: str) -> list[str]:
    """Streams subscribed per pair: aggregated trades and the 24h ticker."""
    symbol = pair.lower()
    return [f"{symbol}@aggTrade", f"{symbol}@ticker"]


def parse_message(data: dict) -> tuple[str, float, float | None, float] | None:
    """Extract (pair, price, quantity, timestamp_seconds) from a stream event.

    Tickers carry no per-event quantity (their volume is a rolling 24h
    total), so quantity is None for them. Returns None for anything that is
    not a trade or ticker event.
    """
    event = data.get("e")
    if event in TRADE_EVENTS:
        return data["s"], float(data["p"]), float(data["q"]), data["T"] / 1000
    if event == TICKER_EVENT:
        return data["s"], float(data["c"]), None, data["E"] / 1000
    return None


class BinanceStreamListener(WSListener):
    """picows listener that dispatches trade/ticker events to callbacks."""

    def __init__(
        self,
        callbacks: dict[str, list[PriceCallback]],
        on_connected: Callable[[], None],
        on_disconnected: Callable[[], None],
        loop: asyncio.AbstractEventLoop,
    ):
        self._callbacks = callbacks
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._transport: WSTransport | None = None
        self._loop = loop

    def on_ws_connected(self, transport: WSTransport):
        self._transport = transport
        logger.info("picows: market stream connected")

        if self._callbacks:
            streams = [s for pair in self._callbacks for s in stream_names(pair)]
            self.send_subscribe(streams)

        self._on_connected()

    def on_ws_disconnected(self, transport: WSTransport):
        logger.info("picows: market stream disconnected")
        self._transport = None
        self._on_disconnected()

    def on_ws_frame(self, transport: WSTransport, frame: WSFrame):
        if frame.msg_type == WSMsgType.TEXT:
            self._handle_message(frame.get_payload_as_bytes())
        elif frame.msg_type == WSMsgType.PING:
            transport.send_pong(frame.get_payload_as_bytes())

    def send_subscribe(self, streams: list[str]) -> None:
        """Send a SUBSCRIBE request for ``streams``."""
        if not self._transport:
            return

        msg = {
            "method": "SUBSCRIBE",
            "params": streams,
            "id": int(time.time() * 1000),
        }
        self._transport.send(WSMsgType.TEXT, orjson.dumps(msg))
        logger.info(f"Subscribed to streams: {streams}")

    def _handle_message(self, message: bytes) -> None:
        try:
            data = orjson.loads(message)

            # Subscription confirmations
            if "result" in data or "id" in data:
                return

            parsed = parse_message(data)
            if parsed is None:
                return

            pair = parsed[0]
            for callback in self._callbacks.get(pair, []):
                asyncio.run_coroutine_threadsafe(
                    self._safe_callback(callback, *parsed), self._loop
                )

        except orjson.JSONDecodeError as e:
            logger.error(f"Failed to parse stream message: {e}")
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed stream message: {e}")

    async def _safe_callback(
        self,
        callback: PriceCallback,
        pair: str,
        price: float,
        quantity: float | None,
        timestamp: float,
    ) -> None:
        try:
            await callback(pair, price, quantity, timestamp)
        except Exception as e:
            logger.error(f"Market data callback error for {pair}: {e}")

    def disconnect(self) -> None:
        if self._transport:
            self._transport.send_close(WSCloseCode.OK)
            self._transport.disconnect()


class BinanceMarketStream:
    """MarketDataSource over Binance WebSocket streams.

    Connection failures rotate to the next endpoint and back off
    exponentially from ``base_delay``. After ``max_attempts`` consecutive
    failures the stream gives up and stops feeding prices.
    """

    def __init__(
        self,
        endpoints: list[str] | None = None,
        max_attempts: int = 5,
        base_delay: float = 3.0,
        connect_timeout: float = 10.0,
    ):
        self.endpoints = list(DEFAULT_ENDPOINTS if endpoints is None else endpoints)
        if not self.endpoints:
            raise ValueError("At least one WebSocket endpoint is required")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.connect_timeout = connect_timeout

        self._callbacks: dict[str, list[PriceCallback]] = {}
        self._running = False
        self._task: asyncio.Task | None = None
        self._listener: BinanceStreamListener | None = None
        self._connected = asyncio.Event()
        self._disconnected = asyncio.Event()
        self._endpoint_index = 0
        self._failures = 0

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def endpoint(self) -> str:
        return self.endpoints[self._endpoint_index]

    async def subscribe(self, pair: str, callback: PriceCallback) -> None:
        """
        Subscribe to trade and ticker updates for a pair.

        Args:
            pair: Trading pair (e.g., "BTCUSDT")
            callback: Async function called with (pair, price, quantity, timestamp)

        Note: Duplicate callbacks are ignored so reconnects do not accumulate them.
        """
        callbacks = self._callbacks.setdefault(pair.upper(), [])
        if callback not in callbacks:
            callbacks.append(callback)

        if self._listener and self._connected.is_set():
            self._listener.send_subscribe(stream_names(pair))

    async def start(self) -> None:
        """Start the connection loop."""
        if self._running:
            return

        self._running = True
        self._failures = 0
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the connection loop and disconnect."""
        self._running = False
        if self._listener:
            self._listener.disconnect()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def _on_connected(self) -> None:
        self._connected.set()
        self._disconnected.clear()
        self._failures = 0

    def _on_disconnected(self) -> None:
        self._connected.clear()
        self._disconnected.set()

    def next_delay(self) -> float:
        """Backoff before the next attempt: base, 2x base, 4x base..."""
        return self.base_delay * (2 ** max(self._failures - 1, 0))

    async def _run(self) -> None:
        """Main loop with endpoint rotation and bounded reconnection."""
        while self._running:
            try:
                await self._connect_and_process()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Market stream error on {self.endpoint}: {e}")
                self._failures += 1
                self._endpoint_index = (self._endpoint_index + 1) % len(self.endpoints)

            if not self._running:
                break

            if self._failures >= self.max_attempts:
                logger.error(
                    f"Market stream giving up after {self._failures} failed attempts"
                )
                self._running = False
                break

            delay = self.next_delay()
            logger.info(f"Reconnecting market stream to {self.endpoint} in {delay} seconds...")
            await asyncio.sleep(delay)

    async def _connect_and_process(self) -> None:
        """Connect to the current endpoint and wait for disconnection."""
        self._disconnected.clear()
        loop = asyncio.get_running_loop()

        def listener_factory():
            self._listener = BinanceStreamListener(
                callbacks=self._callbacks,
                on_connected=self._on_connected,
                on_disconnected=self._on_disconnected,
                loop=loop,
            )
            return self._listener

        logger.info(f"Connecting market stream to {self.endpoint}")
        await asyncio.wait_for(
            ws_connect(
                listener_factory,
                self.endpoint,
                enable_auto_ping=True,
                auto_ping_idle_timeout=30,
                auto_ping_reply_timeout=10,
            ),
            timeout=self.connect_timeout,
        )

        await self._disconnected.wait()
