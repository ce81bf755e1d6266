"""Liquidity level models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LevelType(str, Enum):
    """Which side of the book a level sits on."""

    BSL = "BSL"  # Buyside liquidity, pivot highs
    SSL = "SSL"  # Sellside liquidity, pivot lows


class LiquidityLevel(BaseModel):
    """A swing pivot classified as a support/resistance level.

    Derived data: recomputed from a candle window on demand, never stored
    as the system of record.
    """

    model_config = ConfigDict(frozen=True)

    price: Decimal
    formation_time: datetime
    formation_index: int
    type: LevelType
    is_major: bool = False
    is_traded: bool = False
    is_traded_by_body: bool = False


class LiquidityResult(BaseModel):
    """Analyzer output, one list per level type in formation order."""

    model_config = ConfigDict(frozen=True)

    bsl: list[LiquidityLevel] = Field(default_factory=list)
    ssl: list[LiquidityLevel] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.bsl and not self.ssl

    def major(self, level_type: LevelType) -> list[LiquidityLevel]:
        """Major levels of one type."""
        levels = self.bsl if level_type == LevelType.BSL else self.ssl
        return [level for level in levels if level.is_major]
