"""Liquidity level analysis (ICT-style buyside/sellside liquidity).

Pure functions over a candle sequence, no I/O:

1. Pivot detection: candle i is a pivot high (BSL) if its high is strictly
   above every high within ``swing_strength`` candles on both sides; pivot
   lows (SSL) mirror this with lows.
2. Major classification: swing size in percent between the pivot and the
   candle ``swing_strength`` away (before for BSL, after for SSL) meets
   ``major_threshold_pct``, or the move to the candle ``2 * swing_strength``
   away meets 1.5x the threshold.
3. REQ merge: same-type levels within ``req_threshold_pct`` of each other
   collapse to one. A major level beats a non-major one; otherwise BSL keeps
   the higher price and SSL the lower.
4. Traded marking: a later wick beyond the level sets ``is_traded``; a later
   body beyond it also sets ``is_traded_by_body`` and ends the scan.
"""

import logging
from decimal import Decimal
from typing import Sequence

from liquidity_core.models import (
    AnalyzerConfig,
    Candle,
    LevelType,
    LiquidityLevel,
    LiquidityResult,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
MAJOR_SECONDARY_FACTOR = Decimal("1.5")


def _pct_move(pivot: Decimal, reference: Decimal) -> Decimal:
    """Absolute percent distance between pivot and reference, relative to pivot."""
    if pivot == 0:
        return Decimal("0")
    return abs(pivot - reference) / pivot * HUNDRED


def _is_pivot_high(candles: Sequence[Candle], i: int, strength: int) -> bool:
    high = candles[i].high
    for j in range(1, strength + 1):
        if high <= candles[i - j].high or high <= candles[i + j].high:
            return False
    return True


def _is_pivot_low(candles: Sequence[Candle], i: int, strength: int) -> bool:
    low = candles[i].low
    for j in range(1, strength + 1):
        if low >= candles[i - j].low or low >= candles[i + j].low:
            return False
    return True


def _is_major_high(
    candles: Sequence[Candle], i: int, strength: int, threshold: Decimal
) -> bool:
    pivot = candles[i].high
    if _pct_move(pivot, candles[i - strength].high) >= threshold:
        return True
    far = i - 2 * strength
    return far >= 0 and _pct_move(pivot, candles[far].high) >= threshold * MAJOR_SECONDARY_FACTOR


def _is_major_low(
    candles: Sequence[Candle], i: int, strength: int, threshold: Decimal
) -> bool:
    pivot = candles[i].low
    if _pct_move(pivot, candles[i + strength].low) >= threshold:
        return True
    far = i + 2 * strength
    return far < len(candles) and _pct_move(pivot, candles[far].low) >= threshold * MAJOR_SECONDARY_FACTOR


def find_pivots(
    candles: Sequence[Candle],
    swing_strength: int,
    major_threshold_pct: Decimal,
) -> tuple[list[LiquidityLevel], list[LiquidityLevel]]:
    """Detect pivot highs and lows.

    Returns:
        Tuple of (bsl_candidates, ssl_candidates) in formation order
    """
    bsl: list[LiquidityLevel] = []
    ssl: list[LiquidityLevel] = []

    for i in range(swing_strength, len(candles) - swing_strength):
        candle = candles[i]

        if _is_pivot_high(candles, i, swing_strength):
            bsl.append(
                LiquidityLevel(
                    price=candle.high,
                    formation_time=candle.timestamp,
                    formation_index=i,
                    type=LevelType.BSL,
                    is_major=_is_major_high(candles, i, swing_strength, major_threshold_pct),
                )
            )

        if _is_pivot_low(candles, i, swing_strength):
            ssl.append(
                LiquidityLevel(
                    price=candle.low,
                    formation_time=candle.timestamp,
                    formation_index=i,
                    type=LevelType.SSL,
                    is_major=_is_major_low(candles, i, swing_strength, major_threshold_pct),
                )
            )

    return bsl, ssl


def merge_equal_levels(
    levels: list[LiquidityLevel],
    req_threshold_pct: Decimal,
) -> list[LiquidityLevel]:
    """Collapse relatively equal (REQ) levels of one type.

    Levels are compared pairwise in formation order; the loser of each
    comparison is dropped and never compared again.
    """
    removed: set[int] = set()

    for i in range(len(levels)):
        if i in removed:
            continue
        for j in range(i + 1, len(levels)):
            if j in removed:
                continue

            first, second = levels[i], levels[j]
            if _pct_move(first.price, second.price) > req_threshold_pct:
                continue

            if first.is_major and not second.is_major:
                removed.add(j)
            elif second.is_major and not first.is_major:
                removed.add(i)
                break
            elif first.type == LevelType.BSL:
                if first.price > second.price:
                    removed.add(j)
                else:
                    removed.add(i)
                    break
            else:
                if first.price < second.price:
                    removed.add(j)
                else:
                    removed.add(i)
                    break

    return [level for index, level in enumerate(levels) if index not in removed]


def mark_traded(
    levels: list[LiquidityLevel],
    candles: Sequence[Candle],
) -> list[LiquidityLevel]:
    """Flag levels that later price action has traded through."""
    marked: list[LiquidityLevel] = []

    for level in levels:
        is_traded = False
        is_traded_by_body = False

        for candle in candles[level.formation_index + 1 :]:
            if level.type == LevelType.BSL:
                if candle.high <= level.price:
                    continue
                is_traded = True
                # Bullish: close carried the body above; bearish: the open did
                body_edge = candle.close if candle.is_bullish else candle.open
                if body_edge > level.price:
                    is_traded_by_body = True
                    break
            else:
                if candle.low >= level.price:
                    continue
                is_traded = True
                body_edge = candle.open if candle.is_bullish else candle.close
                if body_edge < level.price:
                    is_traded_by_body = True
                    break

        marked.append(
            level.model_copy(
                update={"is_traded": is_traded, "is_traded_by_body": is_traded_by_body}
            )
        )

    return marked


def analyze_liquidity(
    candles: Sequence[Candle],
    swing_strength: int = 5,
    major_threshold_pct: Decimal = Decimal("0.3"),
    req_threshold_pct: Decimal = Decimal("0.02"),
) -> LiquidityResult:
    """Compute classified BSL/SSL levels for a chronological candle window.

    Returns an empty result when there are fewer than
    ``2 * swing_strength + 1`` candles.
    """
    if swing_strength < 1 or len(candles) < swing_strength * 2 + 1:
        return LiquidityResult()

    bsl, ssl = find_pivots(candles, swing_strength, Decimal(major_threshold_pct))
    bsl = merge_equal_levels(bsl, Decimal(req_threshold_pct))
    ssl = merge_equal_levels(ssl, Decimal(req_threshold_pct))

    return LiquidityResult(
        bsl=mark_traded(bsl, candles),
        ssl=mark_traded(ssl, candles),
    )


class LiquidityAnalyzer:
    """Analyzer bound to an AnalyzerConfig."""

    def __init__(self, config: AnalyzerConfig | None = None):
        self.config = config or AnalyzerConfig()

    def analyze(
        self,
        candles: Sequence[Candle],
        swing_strength: int | None = None,
    ) -> LiquidityResult:
        """Analyze with the configured thresholds."""
        result = analyze_liquidity(
            candles,
            swing_strength=swing_strength or self.config.swing_strength,
            major_threshold_pct=self.config.major_threshold_pct,
            req_threshold_pct=self.config.req_threshold_pct,
        )
        logger.debug(
            f"Analyzed {len(candles)} candles: {len(result.bsl)} BSL, {len(result.ssl)} SSL"
        )
        return result

    def analyze_for_timeframe(
        self, candles: Sequence[Candle], timeframe: str
    ) -> LiquidityResult:
        """Analyze using the pivot window configured for ``timeframe``."""
        return self.analyze(candles, swing_strength=self.config.swing_strength_for(timeframe))
