"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("picows").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

# Try to use uvloop for better performance (Unix only)
try:
    import uvloop
    uvloop.install()
    _UVLOOP_ENABLED = True
except ImportError:
    _UVLOOP_ENABLED = False

from liquidity_core.candle_builder import CandleBuilder
from liquidity_core.generator import SignalGenerator
from liquidity_core.lifecycle import SignalLifecycleChecker
from liquidity_core.liquidity import LiquidityAnalyzer
from liquidity_core.models import SignalFilter
from liquidity_app.api import router
from liquidity_app.clients import BinanceMarketStream, BinanceRestClient, RestPriceSource
from liquidity_app.config import Settings, get_settings
from liquidity_app.services import CandleService, SignalService, load_monthly_returns
from liquidity_app.storage import (
    CandleRepository,
    CompletedSignalRepository,
    InMemoryCandleStore,
    InMemorySignalArchive,
    InMemorySignalStore,
    PriceCache,
    SignalRepository,
    cache,
    close_database,
    init_database,
)

logger = logging.getLogger(__name__)

# Global services
candle_service: CandleService | None = None
signal_service: SignalService | None = None
rest_client: BinanceRestClient | None = None
_check_task: asyncio.Task | None = None


def build_stores(settings: Settings):
    """Persistent stores when the database is enabled, in-memory otherwise."""
    if settings.database_enabled:
        return CandleRepository(), SignalRepository(), CompletedSignalRepository()
    logger.warning("Database disabled - using in-memory stores")
    return InMemoryCandleStore(), InMemorySignalStore(), InMemorySignalArchive()


async def _periodic_check(service: SignalService, interval: float, batch_size: int) -> None:
    """Page through all open signals every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            offset = 0
            while True:
                summary = await service.check_all_active(
                    SignalFilter(limit=batch_size, offset=offset)
                )
                if not summary.has_more:
                    break
                offset = summary.next_offset
        except Exception as e:
            logger.error(f"Periodic signal check failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global candle_service, signal_service, rest_client, _check_task

    settings = get_settings()
    logger.info("Starting liquidity signal engine...")
    logger.info(f"Event loop: {'uvloop' if _UVLOOP_ENABLED else 'asyncio'}")

    db_initialized = False
    cache_initialized = False

    try:
        if settings.database_enabled:
            try:
                await asyncio.wait_for(init_database(), timeout=30)
                db_initialized = True
                logger.info("Database initialized")
            except asyncio.TimeoutError:
                raise RuntimeError("Database initialization timed out after 30s")

        if settings.redis_enabled:
            try:
                await asyncio.wait_for(cache.init_cache(), timeout=10)
                cache_initialized = True
                if cache.is_cache_available():
                    logger.info("Redis cache initialized")
                else:
                    logger.warning("Redis cache unavailable - running without caching")
            except asyncio.TimeoutError:
                logger.warning("Redis cache initialization timed out - running without caching")

        candle_store, signal_store, archive = build_stores(settings)
        price_cache = PriceCache()
        rest_client = BinanceRestClient(
            base_urls=settings.rest_base_urls,
            timeout=settings.request_timeout,
        )

        builder = CandleBuilder(
            settings.pairs,
            settings.timeframes,
            candle_store,
            store_timeout=settings.store_timeout,
            max_pending=settings.max_pending_candles,
        )
        stream = BinanceMarketStream(
            endpoints=settings.ws_endpoints,
            max_attempts=settings.reconnect_attempts,
            base_delay=settings.reconnect_base_delay,
            connect_timeout=settings.request_timeout,
        )
        candle_service = CandleService(
            builder,
            stream,
            price_cache=price_cache,
            sweep_interval=settings.sweep_interval,
        )

        signal_service = SignalService(
            candle_store,
            signal_store,
            analyzer=LiquidityAnalyzer(settings.analyzer_config()),
            generator=SignalGenerator(settings.generator_config()),
            checker=SignalLifecycleChecker(settings.lifecycle_config()),
            price_source=price_cache,
            fallback_price_source=RestPriceSource(rest_client),
            history=rest_client,
            archive=archive,
            monthly_returns=load_monthly_returns(settings.seasonality_file),
            analysis_limit=settings.analysis_candle_limit,
            check_concurrency=settings.check_concurrency,
        )

        app.state.signal_service = signal_service
        app.state.candle_store = candle_store

        await candle_service.start()
        logger.info("Candle collection started")

        if settings.check_interval > 0:
            _check_task = asyncio.create_task(
                _periodic_check(signal_service, settings.check_interval, settings.check_batch_size)
            )

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        if rest_client:
            await rest_client.close()
        if cache_initialized:
            try:
                await cache.close_cache()
            except Exception as cleanup_err:
                logger.warning(f"Error closing cache: {cleanup_err}")
        if db_initialized:
            try:
                await close_database()
            except Exception as cleanup_err:
                logger.warning(f"Error closing database: {cleanup_err}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down...")
    app.state.signal_service = None

    if _check_task:
        _check_task.cancel()
        try:
            await _check_task
        except asyncio.CancelledError:
            pass

    if candle_service:
        await candle_service.stop()

    if rest_client:
        await rest_client.close()

    if cache_initialized:
        await cache.close_cache()

    if db_initialized:
        try:
            await close_database()
            logger.info("Database connections closed")
        except Exception as e:
            logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="Liquidity Signal Engine",
    description="Liquidity-level trading signals for crypto pairs",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "Liquidity Signal Engine",
        "version": "0.1.0",
        "docs": "/docs",
        "event_loop": "uvloop" if _UVLOOP_ENABLED else "asyncio",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "candles": candle_service.builder.stats if candle_service else None,
        "cache": cache.is_cache_available(),
    }


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "liquidity_app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
