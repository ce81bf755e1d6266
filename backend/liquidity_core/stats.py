"""Performance statistics over closed signals."""

from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel

from liquidity_core.models import SignalStatus, TradingSignal

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class SignalStats(BaseModel):
    """Aggregate results of completed and expired signals.

    Percent fields are in percent units. ``profit_factor`` is infinite when
    there is profit and no loss.
    """

    total_signals: int = 0
    winning_signals: int = 0
    losing_signals: int = 0
    win_rate: float = 0.0
    average_profit_percent: float = 0.0
    average_loss_percent: float = 0.0
    total_profit_loss: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    average_rrr: float = 0.0


def calculate_signal_stats(signals: Iterable[TradingSignal]) -> SignalStats:
    """Compute win rate, profit factor, expectancy and extremes.

    Only COMPLETED and EXPIRED signals count; open and cancelled ones are
    ignored. A signal with zero P/L is neither a win nor a loss.
    """
    closed = [
        signal
        for signal in signals
        if signal.status in (SignalStatus.COMPLETED, SignalStatus.EXPIRED)
    ]
    if not closed:
        return SignalStats()

    wins = [s for s in closed if s.profit_loss is not None and s.profit_loss > 0]
    losses = [s for s in closed if s.profit_loss is not None and s.profit_loss < 0]

    total = len(closed)
    win_rate = Decimal(len(wins)) / Decimal(total) * HUNDRED

    total_profit = sum((s.profit_loss for s in wins), ZERO)
    total_loss = abs(sum((s.profit_loss for s in losses), ZERO))

    avg_profit_pct = (
        sum((s.profit_loss_percent or ZERO for s in wins), ZERO) / len(wins) if wins else ZERO
    )
    avg_loss_pct = (
        abs(sum((s.profit_loss_percent or ZERO for s in losses), ZERO)) / len(losses)
        if losses
        else ZERO
    )

    if total_loss > 0:
        profit_factor = float(total_profit / total_loss)
    elif total_profit > 0:
        profit_factor = float("inf")
    else:
        profit_factor = 0.0

    win_fraction = win_rate / HUNDRED
    expectancy = win_fraction * avg_profit_pct - (1 - win_fraction) * avg_loss_pct

    return SignalStats(
        total_signals=total,
        winning_signals=len(wins),
        losing_signals=len(losses),
        win_rate=float(win_rate),
        average_profit_percent=float(avg_profit_pct),
        average_loss_percent=float(avg_loss_pct),
        total_profit_loss=float(total_profit - total_loss),
        profit_factor=profit_factor,
        expectancy=float(expectancy),
        largest_win=float(max(s.profit_loss for s in wins)) if wins else 0.0,
        largest_loss=float(abs(min(s.profit_loss for s in losses))) if losses else 0.0,
        average_rrr=float(sum((s.risk_reward_ratio for s in closed), ZERO) / total),
    )
