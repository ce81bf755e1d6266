"""Signal lifecycle checker.

Replays candle history against a signal:

    WAITING --entry hit--> ACTIVE --tp/sl hit--> COMPLETED
    WAITING --older than expiry, no entry--> EXPIRED
    WAITING/ACTIVE --manual--> CANCELLED or COMPLETED(manual)

Terminal signals are never touched again; ``check()`` on one returns the
same instance. Any change produces a new validated instance.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Sequence

from liquidity_core.errors import InvalidTransitionError
from liquidity_core.models import (
    Candle,
    Direction,
    ExitType,
    IntrabarPolicy,
    LifecycleConfig,
    SignalStatus,
    TradingSignal,
    risk_reward_ratio,
)

logger = logging.getLogger(__name__)

PNL_QUANTUM = Decimal("0.00000001")
MANUAL_EXIT_TYPES = (ExitType.TP, ExitType.SL, ExitType.MANUAL)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def entry_hit(signal: TradingSignal, candle: Candle) -> bool:
    """Long fills when price trades down to entry, short when it trades up."""
    if signal.direction == Direction.LONG:
        return candle.low <= signal.entry_price
    return candle.high >= signal.entry_price


def exit_hit(
    signal: TradingSignal,
    candle: Candle,
    policy: IntrabarPolicy = IntrabarPolicy.TP_FIRST,
) -> ExitType | None:
    """Which exit (if any) a candle triggers.

    When one candle spans both TP and SL the intrabar order is unknown and
    ``policy`` decides.
    """
    if signal.direction == Direction.LONG:
        tp = candle.high >= signal.take_profit
        sl = candle.low <= signal.stop_loss
    else:
        tp = candle.low <= signal.take_profit
        sl = candle.high >= signal.stop_loss

    if tp and sl:
        return ExitType.TP if policy == IntrabarPolicy.TP_FIRST else ExitType.SL
    if tp:
        return ExitType.TP
    if sl:
        return ExitType.SL
    return None


def close_values(
    signal: TradingSignal,
    exit_type: ExitType,
    exit_price: Decimal,
    exit_time: datetime,
) -> dict[str, Any]:
    """Field updates for a signal leaving the market at ``exit_price``."""
    profit_loss = signal.profit_at(exit_price)
    return {
        "exit_type": exit_type,
        "exit_price": exit_price,
        "exit_time": exit_time,
        "profit_loss": profit_loss.quantize(PNL_QUANTUM),
        "profit_loss_percent": (profit_loss / signal.entry_price * 100).quantize(PNL_QUANTUM),
        "risk_reward_ratio": risk_reward_ratio(
            signal.entry_price, signal.stop_loss, signal.take_profit
        ),
    }


def changed_fields(before: TradingSignal, after: TradingSignal) -> dict[str, Any]:
    """Fields whose values differ between two versions of one signal."""
    old = before.model_dump()
    return {
        key: value
        for key, value in after.model_dump().items()
        if old.get(key) != value
    }


class SignalLifecycleChecker:
    """Advances signals through their lifecycle from candle history.

    Usage:
        checker = SignalLifecycleChecker(LifecycleConfig(expiry_days=7))
        updated = checker.check(signal, candles, now)
        if updated is not signal:
            ...persist changed_fields(signal, updated)
    """

    def __init__(
        self,
        config: LifecycleConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or LifecycleConfig()
        self._clock = clock

    @property
    def expiry(self) -> timedelta:
        return timedelta(days=self.config.expiry_days)

    def check(
        self,
        signal: TradingSignal,
        candles: Sequence[Candle],
        now: datetime | None = None,
        latest_price: Decimal | None = None,
    ) -> TradingSignal:
        """Advance one signal.

        Args:
            signal: Signal to check
            candles: Chronological candles from the signal's creation up to now
            now: Current time (defaults to the clock)
            latest_price: Latest known market price, used as the expiry exit

        Returns:
            The same instance if nothing changed, otherwise a new one
        """
        if signal.is_terminal:
            return signal

        now = now or self._clock()
        updates: dict[str, Any] = {}
        entry_time = signal.entry_hit_time

        if signal.status == SignalStatus.WAITING:
            for candle in candles:
                if entry_hit(signal, candle):
                    entry_time = candle.timestamp
                    updates["status"] = SignalStatus.ACTIVE
                    updates["entry_hit_time"] = entry_time
                    logger.info(
                        f"Entry hit for {signal.pair} {signal.timeframe} "
                        f"{signal.direction.value} signal {signal.id} at {signal.entry_price}"
                    )
                    break

            if entry_time is None:
                if now - signal.created_at > self.expiry:
                    return self._expire(signal, candles, now, latest_price)
                return signal

        exit_candle, exit_type = self._scan_exit(signal, candles, entry_time)
        if exit_type is not None:
            exit_price = signal.take_profit if exit_type == ExitType.TP else signal.stop_loss
            updates["status"] = SignalStatus.COMPLETED
            updates.update(close_values(signal, exit_type, exit_price, exit_candle.timestamp))
            logger.info(
                f"{exit_type.value.upper()} hit for {signal.pair} {signal.timeframe} "
                f"{signal.direction.value} signal {signal.id} at {exit_price}"
            )

        if not updates:
            return signal

        updates["updated_at"] = now
        return self._apply(signal, updates)

    def _scan_exit(
        self,
        signal: TradingSignal,
        candles: Sequence[Candle],
        entry_time: datetime | None,
    ) -> tuple[Candle | None, ExitType | None]:
        """First candle at or after the entry candle that triggers an exit."""
        for candle in candles:
            if entry_time is not None and candle.timestamp < entry_time:
                continue
            exit_type = exit_hit(signal, candle, self.config.intrabar_policy)
            if exit_type is not None:
                return candle, exit_type
        return None, None

    def _expire(
        self,
        signal: TradingSignal,
        candles: Sequence[Candle],
        now: datetime,
        latest_price: Decimal | None,
    ) -> TradingSignal:
        if latest_price is not None:
            exit_price = Decimal(latest_price)
        elif candles:
            exit_price = candles[-1].close
        else:
            exit_price = signal.entry_price

        updates = {"status": SignalStatus.EXPIRED, "updated_at": now}
        updates.update(close_values(signal, ExitType.EXPIRED, exit_price, now))
        logger.info(
            f"Signal {signal.id} for {signal.pair} {signal.timeframe} expired "
            f"without entry (exit price {exit_price})"
        )
        return self._apply(signal, updates)

    def complete(
        self,
        signal: TradingSignal,
        exit_price: Decimal,
        exit_type: ExitType = ExitType.MANUAL,
        now: datetime | None = None,
    ) -> TradingSignal:
        """Close an active signal at an externally supplied price.

        Raises:
            InvalidTransitionError: If the signal is not ACTIVE or the exit
                type is not a manual-close type
        """
        if signal.status != SignalStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Cannot complete signal {signal.id} in status {signal.status.value}"
            )
        if exit_type not in MANUAL_EXIT_TYPES:
            raise InvalidTransitionError(f"Exit type {exit_type.value} cannot be set manually")

        now = now or self._clock()
        updates = {"status": SignalStatus.COMPLETED, "updated_at": now}
        updates.update(close_values(signal, exit_type, Decimal(exit_price), now))
        logger.info(f"Signal {signal.id} completed manually ({exit_type.value}) at {exit_price}")
        return self._apply(signal, updates)

    def cancel(self, signal: TradingSignal, now: datetime | None = None) -> TradingSignal:
        """Cancel a waiting or active signal.

        Raises:
            InvalidTransitionError: If the signal is already terminal
        """
        if signal.is_terminal:
            raise InvalidTransitionError(
                f"Cannot cancel signal {signal.id} in status {signal.status.value}"
            )

        now = now or self._clock()
        logger.info(f"Signal {signal.id} cancelled")
        return self._apply(
            signal,
            {"status": SignalStatus.CANCELLED, "exit_time": now, "updated_at": now},
        )

    @staticmethod
    def _apply(signal: TradingSignal, updates: dict[str, Any]) -> TradingSignal:
        # Re-validate so the status/exit invariants hold on every new version
        return TradingSignal.model_validate({**signal.model_dump(), **updates})
