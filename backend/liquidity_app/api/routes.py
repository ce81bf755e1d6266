"""REST API routes."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from liquidity_core.errors import (
    DataIntegrityError,
    InvalidTransitionError,
    LiquidityEngineError,
    SignalNotFoundError,
    TransientIOError,
)
from liquidity_core.models import (
    CheckSummary,
    ExitType,
    SeasonalBias,
    SignalFilter,
    SignalStatus,
    TradingSignal,
)
from liquidity_core.protocols import CandleStore
from liquidity_core.stats import SignalStats
from liquidity_core.timeframes import timeframe_seconds
from liquidity_app.services.signal_service import SignalService

logger = logging.getLogger(__name__)

router = APIRouter()


# Request/response models
class SignalResponse(BaseModel):
    """Signal response model."""

    id: str
    pair: str
    timeframe: str
    direction: str
    entry_price: float
    stop_loss: float
    take_profit: float
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    entry_hit_time: Optional[datetime] = None
    exit_type: Optional[str] = None
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    profit_loss: Optional[float] = None
    profit_loss_percent: Optional[float] = None
    risk_reward_ratio: float
    signal_source: str
    major_level: Optional[float] = None
    seasonality: str
    positive_probability: Optional[float] = None


class CandleResponse(BaseModel):
    """Candle response model."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


class GenerateRequest(BaseModel):
    pair: str
    timeframe: str
    bias: Optional[SeasonalBias] = None


class GenerateResponse(BaseModel):
    generated: bool
    signal: Optional[SignalResponse] = None


class CheckRequest(BaseModel):
    pair: Optional[str] = None
    timeframe: Optional[str] = None
    limit: int = 50
    offset: int = 0


class CompleteRequest(BaseModel):
    exit_price: float
    exit_type: ExitType = ExitType.MANUAL


def _optional_float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def to_response(s: TradingSignal) -> SignalResponse:
    return SignalResponse(
        id=s.id,
        pair=s.pair,
        timeframe=s.timeframe,
        direction=s.direction.value,
        entry_price=float(s.entry_price),
        stop_loss=float(s.stop_loss),
        take_profit=float(s.take_profit),
        status=s.status.value,
        created_at=s.created_at,
        updated_at=s.updated_at,
        entry_hit_time=s.entry_hit_time,
        exit_type=s.exit_type.value if s.exit_type else None,
        exit_price=_optional_float(s.exit_price),
        exit_time=s.exit_time,
        profit_loss=_optional_float(s.profit_loss),
        profit_loss_percent=_optional_float(s.profit_loss_percent),
        risk_reward_ratio=float(s.risk_reward_ratio),
        signal_source=s.signal_source,
        major_level=_optional_float(s.major_level),
        seasonality=s.seasonality.value,
        positive_probability=_optional_float(s.positive_probability),
    )


def http_error(e: Exception) -> HTTPException:
    """Map engine errors to HTTP status codes."""
    if isinstance(e, SignalNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, DataIntegrityError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, TransientIOError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail="Internal error")


# Dependencies
def get_signal_service(request: Request) -> SignalService:
    service = getattr(request.app.state, "signal_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Signal service not ready")
    return service


def get_candle_store(request: Request) -> CandleStore:
    store = getattr(request.app.state, "candle_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Candle store not ready")
    return store


@router.get("/signals", response_model=list[SignalResponse])
async def get_signals(
    pair: Optional[str] = Query(None, description="Filter by pair"),
    timeframe: Optional[str] = Query(None, description="Filter by timeframe"),
    status: Optional[SignalStatus] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum signals to return"),
    offset: int = Query(0, ge=0),
    service: SignalService = Depends(get_signal_service),
):
    """Get signals, newest first unless filtered by status or timeframe."""
    try:
        signals = await service.list_signals(
            status=status, pair=pair, timeframe=timeframe, limit=limit, offset=offset
        )
    except LiquidityEngineError as e:
        raise http_error(e) from e
    return [to_response(s) for s in signals]


@router.get("/signals/stats", response_model=SignalStats)
async def get_signal_stats(
    pair: Optional[str] = Query(None),
    timeframe: Optional[str] = Query(None),
    limit: int = Query(1000, ge=1, le=10000),
    service: SignalService = Depends(get_signal_service),
):
    """Performance statistics over completed and expired signals."""
    try:
        return await service.get_stats(SignalFilter(pair=pair, timeframe=timeframe, limit=limit))
    except LiquidityEngineError as e:
        raise http_error(e) from e


@router.get("/signals/{signal_id}", response_model=SignalResponse)
async def get_signal(
    signal_id: str,
    service: SignalService = Depends(get_signal_service),
):
    """Get a single signal by ID."""
    try:
        return to_response(await service.get_signal(signal_id))
    except LiquidityEngineError as e:
        raise http_error(e) from e


@router.post("/signals/generate", response_model=GenerateResponse)
async def generate_signal(
    body: GenerateRequest,
    service: SignalService = Depends(get_signal_service),
):
    """Run liquidity analysis and create a signal if the setup is present."""
    try:
        signal = await service.generate_signal(body.pair, body.timeframe, body.bias)
    except (LiquidityEngineError, ValueError) as e:
        raise http_error(e) from e

    if signal is None:
        return GenerateResponse(generated=False)
    return GenerateResponse(generated=True, signal=to_response(signal))


@router.post("/signals/check", response_model=CheckSummary)
async def check_signals(
    body: CheckRequest | None = None,
    service: SignalService = Depends(get_signal_service),
):
    """Check one page of waiting/active signals."""
    body = body or CheckRequest()
    try:
        return await service.check_all_active(
            SignalFilter(
                pair=body.pair,
                timeframe=body.timeframe,
                limit=body.limit,
                offset=body.offset,
            )
        )
    except LiquidityEngineError as e:
        raise http_error(e) from e


@router.post("/signals/{signal_id}/check", response_model=SignalResponse)
async def check_signal(
    signal_id: str,
    service: SignalService = Depends(get_signal_service),
):
    """Check a single signal against stored candles."""
    try:
        return to_response(await service.check_signal(signal_id))
    except LiquidityEngineError as e:
        raise http_error(e) from e


@router.post("/signals/{signal_id}/complete", response_model=SignalResponse)
async def complete_signal(
    signal_id: str,
    body: CompleteRequest,
    service: SignalService = Depends(get_signal_service),
):
    """Manually close an active signal."""
    if body.exit_price <= 0:
        raise HTTPException(status_code=400, detail="exit_price must be positive")
    try:
        signal = await service.complete_signal(
            signal_id, Decimal(str(body.exit_price)), body.exit_type
        )
    except LiquidityEngineError as e:
        raise http_error(e) from e
    return to_response(signal)


@router.post("/signals/{signal_id}/cancel", response_model=SignalResponse)
async def cancel_signal(
    signal_id: str,
    service: SignalService = Depends(get_signal_service),
):
    """Cancel a waiting or active signal."""
    try:
        return to_response(await service.cancel_signal(signal_id))
    except LiquidityEngineError as e:
        raise http_error(e) from e


@router.get("/candles/{pair}/{timeframe}", response_model=list[CandleResponse])
async def get_candles(
    pair: str,
    timeframe: str,
    limit: int = Query(100, ge=1, le=1000),
    store: CandleStore = Depends(get_candle_store),
):
    """Get the most recent stored candles, oldest first."""
    try:
        timeframe_seconds(timeframe)
        candles = await store.recent(pair.upper(), timeframe, limit)
    except (LiquidityEngineError, ValueError) as e:
        raise http_error(e) from e

    return [
        CandleResponse(
            timestamp=c.timestamp,
            open=float(c.open),
            high=float(c.high),
            low=float(c.low),
            close=float(c.close),
            volume=float(c.volume),
        )
        for c in candles
    ]
