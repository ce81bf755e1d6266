"""Trading signal data models."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class Direction(str, Enum):
    """Trade direction."""

    LONG = "long"
    SHORT = "short"


class SignalStatus(str, Enum):
    """Lifecycle status of a signal."""

    WAITING = "waiting"  # Entry not hit yet
    ACTIVE = "active"  # Entry hit, waiting for TP/SL
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {SignalStatus.COMPLETED, SignalStatus.EXPIRED, SignalStatus.CANCELLED}
)
OPEN_STATUSES = (SignalStatus.WAITING, SignalStatus.ACTIVE)


class ExitType(str, Enum):
    """How a signal left the market."""

    TP = "tp"
    SL = "sl"
    EXPIRED = "expired"
    MANUAL = "manual"


class SeasonalBias(str, Enum):
    """Externally supplied directional bias."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def risk_reward_ratio(
    entry_price: Decimal, stop_loss: Decimal, take_profit: Decimal
) -> Decimal:
    """Reward distance over risk distance; zero when risk is zero."""
    risk = abs(entry_price - stop_loss)
    if risk == 0:
        return Decimal("0")
    return abs(take_profit - entry_price) / risk


class TradingSignal(BaseModel):
    """A proposed trade and its lifecycle state.

    Created by the signal generator in WAITING status. Only the lifecycle
    checker (or an explicit manual complete/cancel) mutates it afterwards.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    pair: str
    timeframe: str
    direction: Direction
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None
    status: SignalStatus = SignalStatus.WAITING
    entry_hit_time: datetime | None = None
    exit_type: ExitType | None = None
    exit_price: Decimal | None = None
    exit_time: datetime | None = None
    profit_loss: Decimal | None = None
    profit_loss_percent: Decimal | None = None
    risk_reward_ratio: Decimal = Decimal("0")

    # Generation context
    signal_source: str = "liquidity"
    major_level: Decimal | None = None
    seasonality: SeasonalBias = SeasonalBias.NEUTRAL
    positive_probability: Decimal | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "TradingSignal":
        if self.direction == Direction.LONG:
            ordered = self.stop_loss < self.entry_price < self.take_profit
        else:
            ordered = self.take_profit < self.entry_price < self.stop_loss
        if not ordered:
            raise ValueError(
                f"{self.direction.value} signal prices out of order: "
                f"sl={self.stop_loss} entry={self.entry_price} tp={self.take_profit}"
            )

        has_exit = self.exit_type is not None
        exits = self.status in (SignalStatus.COMPLETED, SignalStatus.EXPIRED)
        if has_exit != exits:
            raise ValueError(
                f"exit_type={self.exit_type} inconsistent with status={self.status.value}"
            )

        if self.risk_reward_ratio == 0:
            self.risk_reward_ratio = risk_reward_ratio(
                self.entry_price, self.stop_loss, self.take_profit
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def risk_amount(self) -> Decimal:
        """Distance from entry to stop loss."""
        return abs(self.entry_price - self.stop_loss)

    @property
    def reward_amount(self) -> Decimal:
        """Distance from entry to take profit."""
        return abs(self.take_profit - self.entry_price)

    def profit_at(self, exit_price: Decimal) -> Decimal:
        """Signed per-unit profit if closed at ``exit_price``."""
        if self.direction == Direction.LONG:
            return exit_price - self.entry_price
        return self.entry_price - exit_price


class SignalFilter(BaseModel):
    """Selection for batch operations (pair/timeframe filter + paging)."""

    pair: str | None = None
    timeframe: str | None = None
    limit: int = 50
    offset: int = 0


class CheckSummary(BaseModel):
    """Counters returned by a batch lifecycle check."""

    checked: int = 0
    updated: int = 0
    completed: int = 0
    expired: int = 0
    errors: int = 0
    has_more: bool = False
    next_offset: int = 0
