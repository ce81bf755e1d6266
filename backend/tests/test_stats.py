"""Tests for signal performance statistics."""

import math
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from liquidity_core.models import Direction, ExitType, SignalStatus, TradingSignal
from liquidity_core.stats import calculate_signal_stats


def make_closed(profit_loss, status=SignalStatus.COMPLETED) -> TradingSignal:
    """Long signal 100/90/130 closed with the given P/L (percent equals P/L)."""
    pnl = Decimal(str(profit_loss))
    exit_type = None
    if status == SignalStatus.COMPLETED:
        exit_type = ExitType.TP if pnl > 0 else ExitType.SL
    elif status == SignalStatus.EXPIRED:
        exit_type = ExitType.EXPIRED
    return TradingSignal(
        pair="BTCUSDT",
        timeframe="5m",
        direction=Direction.LONG,
        entry_price=Decimal("100"),
        stop_loss=Decimal("90"),
        take_profit=Decimal("130"),
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        status=status,
        exit_type=exit_type,
        exit_price=Decimal("100") + pnl if exit_type else None,
        profit_loss=pnl if exit_type else None,
        profit_loss_percent=pnl if exit_type else None,
    )


class TestCalculateSignalStats:
    """Tests for calculate_signal_stats."""

    def test_mixed_results(self):
        """Test stats over wins and losses."""
        signals = [make_closed(30), make_closed(10), make_closed(-10)]

        stats = calculate_signal_stats(signals)

        assert stats.total_signals == 3
        assert stats.winning_signals == 2
        assert stats.losing_signals == 1
        assert stats.win_rate == pytest.approx(66.6667, rel=1e-4)
        assert stats.average_profit_percent == pytest.approx(20.0)
        assert stats.average_loss_percent == pytest.approx(10.0)
        assert stats.total_profit_loss == pytest.approx(30.0)
        assert stats.profit_factor == pytest.approx(4.0)
        assert stats.expectancy == pytest.approx(10.0)
        assert stats.largest_win == pytest.approx(30.0)
        assert stats.largest_loss == pytest.approx(10.0)
        assert stats.average_rrr == pytest.approx(3.0)

    def test_no_losses_gives_infinite_profit_factor(self):
        """Test profit factor is infinite with no losses."""
        stats = calculate_signal_stats([make_closed(30)])

        assert math.isinf(stats.profit_factor)
        assert stats.win_rate == pytest.approx(100.0)

    def test_only_losses(self):
        """Test stats with only losing signals."""
        stats = calculate_signal_stats([make_closed(-10), make_closed(-5)])

        assert stats.profit_factor == 0.0
        assert stats.win_rate == 0.0
        assert stats.expectancy == pytest.approx(-7.5)

    def test_expired_signals_count(self):
        """Test expired signals are included."""
        stats = calculate_signal_stats([make_closed(4, SignalStatus.EXPIRED)])

        assert stats.total_signals == 1
        assert stats.winning_signals == 1

    def test_open_and_cancelled_ignored(self):
        """Test open and cancelled signals are ignored."""
        signals = [
            make_closed(30),
            make_closed(0, SignalStatus.WAITING),
            make_closed(0, SignalStatus.CANCELLED),
        ]

        stats = calculate_signal_stats(signals)

        assert stats.total_signals == 1

    def test_breakeven_neither_win_nor_loss(self):
        """Test a breakeven signal is neither win nor loss."""
        stats = calculate_signal_stats([make_closed(0, SignalStatus.EXPIRED)])

        assert stats.total_signals == 1
        assert stats.winning_signals == 0
        assert stats.losing_signals == 0

    def test_empty(self):
        """Test stats for no signals."""
        stats = calculate_signal_stats([])

        assert stats.total_signals == 0
        assert stats.profit_factor == 0.0
