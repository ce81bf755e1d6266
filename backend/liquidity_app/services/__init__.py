"""Business services."""

from liquidity_app.services.candle_service import CandleService
from liquidity_app.services.seasonality import load_monthly_returns
from liquidity_app.services.signal_service import SignalService

__all__ = [
    "CandleService",
    "SignalService",
    "load_monthly_returns",
]
