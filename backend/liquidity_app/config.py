"""Application configuration."""

from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from liquidity_core.models import (
    AnalyzerConfig,
    GeneratorConfig,
    IntrabarPolicy,
    LifecycleConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/liquidity_signals"
    database_enabled: bool = True

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = True

    # Market data
    pairs: list[str] = [
        "BTCUSDT",
        "ETHUSDT",
        "XRPUSDT",
        "BNBUSDT",
        "SOLUSDT",
        "DOGEUSDT",
        "ADAUSDT",
        "LINKUSDT",
    ]
    timeframes: list[str] = ["5m", "15m", "30m", "1h"]
    ws_endpoints: list[str] = [
        "wss://fstream.binance.com/ws",
        "wss://stream.binance.com:9443/ws",
    ]
    # Tried in order; each base includes its API version path
    rest_base_urls: list[str] = [
        "https://fapi.binance.com/fapi/v1",
        "https://api.binance.com/api/v3",
        "https://api1.binance.com/api/v3",
        "https://api-eu.binance.com/api/v3",
    ]
    request_timeout: float = 10.0
    reconnect_attempts: int = 5
    reconnect_base_delay: float = 3.0

    # Candle builder
    sweep_interval: float = 1.0
    store_timeout: float = 10.0
    max_pending_candles: int = 100

    # Liquidity analysis
    swing_strength: int = 5
    major_threshold_pct: Decimal = Decimal("0.3")
    req_threshold_pct: Decimal = Decimal("0.02")
    analysis_candle_limit: int = 100

    # Signal generation
    long_entry_mult: Decimal = Decimal("0.985")
    short_entry_mult: Decimal = Decimal("1.015")
    long_sl_mult: Decimal = Decimal("0.99")
    short_sl_mult: Decimal = Decimal("1.01")
    reward_risk: Decimal = Decimal("3")
    min_candles_after_level: int = 5
    seasonality_file: str = ""  # JSON month -> year -> return %, bundled table if empty

    # Signal lifecycle
    expiry_days: int = 7
    intrabar_policy: IntrabarPolicy = IntrabarPolicy.TP_FIRST
    check_batch_size: int = 50
    check_concurrency: int = 10
    check_interval: float = 60.0  # Seconds between background checks, 0 disables

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    def analyzer_config(self) -> AnalyzerConfig:
        return AnalyzerConfig(
            swing_strength=self.swing_strength,
            major_threshold_pct=self.major_threshold_pct,
            req_threshold_pct=self.req_threshold_pct,
        )

    def generator_config(self) -> GeneratorConfig:
        return GeneratorConfig(
            long_entry_mult=self.long_entry_mult,
            short_entry_mult=self.short_entry_mult,
            long_sl_mult=self.long_sl_mult,
            short_sl_mult=self.short_sl_mult,
            reward_risk=self.reward_risk,
            min_candles_after_level=self.min_candles_after_level,
        )

    def lifecycle_config(self) -> LifecycleConfig:
        return LifecycleConfig(
            expiry_days=self.expiry_days,
            intrabar_policy=self.intrabar_policy,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
