"""Tests for the REST API routes."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from fastapi.testclient import TestClient

from liquidity_core.models import Candle, Direction, ExitType, SignalStatus, TradingSignal
from liquidity_app.api import router
from liquidity_app.services.signal_service import SignalService
from liquidity_app.storage.memory import InMemoryCandleStore, InMemorySignalStore

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
CREATED = NOW - timedelta(hours=1)


def make_signal(signal_id: str, **kwargs) -> TradingSignal:
    return TradingSignal(
        id=signal_id,
        pair="BTCUSDT",
        timeframe="5m",
        direction=Direction.LONG,
        entry_price=Decimal("100"),
        stop_loss=Decimal("90"),
        take_profit=Decimal("130"),
        created_at=CREATED,
        **kwargs,
    )


def make_candle(minutes: int, high="101", low="99") -> Candle:
    return Candle(
        pair="BTCUSDT",
        timeframe="5m",
        timestamp=CREATED + timedelta(minutes=minutes),
        open=Decimal("100"),
        high=Decimal(high),
        low=Decimal(low),
        close=Decimal("100"),
    )


@pytest.fixture
def stores():
    return InMemoryCandleStore(), InMemorySignalStore()


@pytest.fixture
def client(stores):
    candle_store, signal_store = stores
    app = FastAPI(default_response_class=ORJSONResponse)
    app.include_router(router, prefix="/api")
    app.state.signal_service = SignalService(candle_store, signal_store, clock=lambda: NOW)
    app.state.candle_store = candle_store
    with TestClient(app) as test_client:
        yield test_client


def save(stores, *signals):
    """Seed signals synchronously through the store's dict."""
    _, signal_store = stores
    for signal in signals:
        signal_store._signals[signal.id] = signal


class TestSignalRoutes:
    """Tests for /api/signals."""

    def test_get_signal(self, client, stores):
        """Test fetching a signal by id."""
        save(stores, make_signal("a"))

        response = client.get("/api/signals/a")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "a"
        assert data["direction"] == "long"
        assert data["status"] == "waiting"
        assert data["entry_price"] == 100.0
        assert data["risk_reward_ratio"] == 3.0

    def test_get_missing_signal(self, client):
        """Test an unknown id returns 404."""
        assert client.get("/api/signals/nope").status_code == 404

    def test_list_signals(self, client, stores):
        """Test listing signals with and without a status filter."""
        save(stores, make_signal("a"), make_signal("b", status=SignalStatus.CANCELLED))

        all_signals = client.get("/api/signals").json()
        cancelled = client.get("/api/signals", params={"status": "cancelled"}).json()

        assert {s["id"] for s in all_signals} == {"a", "b"}
        assert [s["id"] for s in cancelled] == ["b"]

    def test_cancel_then_conflict(self, client, stores):
        """Test cancelling twice returns 409 the second time."""
        save(stores, make_signal("a"))

        first = client.post("/api/signals/a/cancel")
        second = client.post("/api/signals/a/cancel")

        assert first.status_code == 200
        assert first.json()["status"] == "cancelled"
        assert second.status_code == 409

    def test_complete_active(self, client, stores):
        """Test completing an active signal manually."""
        save(stores, make_signal("a", status=SignalStatus.ACTIVE, entry_hit_time=CREATED))

        response = client.post("/api/signals/a/complete", json={"exit_price": 120})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["exit_type"] == "manual"
        assert data["profit_loss"] == 20.0

    def test_complete_rejects_non_positive_price(self, client, stores):
        """Test a zero exit price is rejected with 400."""
        save(stores, make_signal("a", status=SignalStatus.ACTIVE, entry_hit_time=CREATED))

        response = client.post("/api/signals/a/complete", json={"exit_price": 0})

        assert response.status_code == 400

    def test_check_one(self, client, stores):
        """Test checking a single signal against stored candles."""
        candle_store, _ = stores
        candle_store._candles[("BTCUSDT", "5m")] = {
            c.timestamp: c for c in (make_candle(5), make_candle(10, high="131", low="95"))
        }
        save(stores, make_signal("a"))

        response = client.post("/api/signals/a/check")

        assert response.status_code == 200
        assert response.json()["exit_type"] == "tp"

    def test_check_batch(self, client, stores):
        """Test the batch check returns a summary."""
        save(stores, make_signal("a"))

        response = client.post("/api/signals/check", json={"limit": 10})

        assert response.status_code == 200
        summary = response.json()
        assert summary["checked"] == 1
        assert summary["has_more"] is False

    def test_generate_without_candles(self, client):
        """Test generating with no candles reports nothing generated."""
        response = client.post("/api/signals/generate", json={"pair": "BTCUSDT", "timeframe": "5m"})

        assert response.status_code == 200
        assert response.json() == {"generated": False, "signal": None}

    def test_generate_unknown_timeframe(self, client):
        """Test generating for an unknown timeframe returns 400."""
        response = client.post("/api/signals/generate", json={"pair": "BTCUSDT", "timeframe": "7m"})

        assert response.status_code == 400

    def test_stats(self, client, stores):
        """Test the stats endpoint aggregates completed signals."""
        save(
            stores,
            make_signal(
                "win",
                status=SignalStatus.COMPLETED,
                exit_type=ExitType.TP,
                profit_loss=Decimal("30"),
                profit_loss_percent=Decimal("30"),
            ),
            make_signal(
                "loss",
                status=SignalStatus.COMPLETED,
                exit_type=ExitType.SL,
                profit_loss=Decimal("-10"),
                profit_loss_percent=Decimal("-10"),
            ),
        )

        stats = client.get("/api/signals/stats").json()

        assert stats["total_signals"] == 2
        assert stats["profit_factor"] == 3.0


class TestCandleRoutes:
    def test_recent_candles(self, client, stores):
        """Test fetching recent candles with a lowercase pair."""
        candle_store, _ = stores
        candle_store._candles[("BTCUSDT", "5m")] = {
            c.timestamp: c for c in (make_candle(0), make_candle(5))
        }

        response = client.get("/api/candles/btcusdt/5m", params={"limit": 1})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["high"] == 101.0

    def test_unknown_timeframe(self, client):
        """Test an unknown candle timeframe returns 400."""
        assert client.get("/api/candles/BTCUSDT/7m").status_code == 400


def test_service_not_ready():
    """Test routes return 503 before services are attached."""
    app = FastAPI()
    app.include_router(router, prefix="/api")

    with TestClient(app) as test_client:
        assert test_client.get("/api/signals").status_code == 503
