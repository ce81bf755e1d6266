"""Tests for liquidity level detection."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from liquidity_core.liquidity import (
    LiquidityAnalyzer,
    analyze_liquidity,
    merge_equal_levels,
)
from liquidity_core.models import AnalyzerConfig, Candle, LevelType, LiquidityLevel

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candle(index: int, high, low, open_=None, close=None) -> Candle:
    high = Decimal(str(high))
    low = Decimal(str(low))
    mid = (high + low) / 2
    return Candle(
        pair="BTCUSDT",
        timeframe="5m",
        timestamp=BASE_TIME + timedelta(minutes=5 * index),
        open=Decimal(str(open_)) if open_ is not None else mid,
        high=high,
        low=low,
        close=Decimal(str(close)) if close is not None else mid,
    )


def make_series(highs, lows) -> list[Candle]:
    return [make_candle(i, h, l) for i, (h, l) in enumerate(zip(highs, lows))]


def make_level(price, index, level_type=LevelType.BSL, is_major=False) -> LiquidityLevel:
    return LiquidityLevel(
        price=Decimal(str(price)),
        formation_time=BASE_TIME + timedelta(minutes=5 * index),
        formation_index=index,
        type=level_type,
        is_major=is_major,
    )


PEAK_HIGHS = [10, 11, 12, 15, 12, 11, 10]
TROUGH_LOWS = [10, 9, 8, 5, 8, 9, 10]


class TestPivotDetection:
    """Tests for swing pivot detection."""

    def test_single_pivot_high(self):
        """Test a strict pivot high becomes a BSL level."""
        candles = make_series(PEAK_HIGHS, [9] * 7)

        result = analyze_liquidity(candles, swing_strength=2)

        assert len(result.bsl) == 1
        assert result.ssl == []
        level = result.bsl[0]
        assert level.price == Decimal("15")
        assert level.formation_index == 3
        assert level.formation_time == candles[3].timestamp
        assert level.type == LevelType.BSL

    def test_single_pivot_low(self):
        """Test a strict pivot low becomes an SSL level."""
        candles = make_series([20] * 7, TROUGH_LOWS)

        result = analyze_liquidity(candles, swing_strength=2)

        assert result.bsl == []
        assert len(result.ssl) == 1
        assert result.ssl[0].price == Decimal("5")
        assert result.ssl[0].formation_index == 3

    def test_equal_highs_are_not_pivots(self):
        """Test equal neighbouring highs are not pivots."""
        candles = make_series([10, 11, 12, 12, 11, 10, 9], [8] * 7)

        result = analyze_liquidity(candles, swing_strength=2)

        assert result.bsl == []

    def test_insufficient_candles_returns_empty(self):
        """Test too few candles give no levels."""
        candles = make_series(PEAK_HIGHS[:4], [9] * 4)

        result = analyze_liquidity(candles, swing_strength=2)

        assert result.is_empty

    def test_zero_strength_returns_empty(self):
        """Test zero swing strength gives no levels."""
        candles = make_series(PEAK_HIGHS, [9] * 7)

        assert analyze_liquidity(candles, swing_strength=0).is_empty


class TestMajorClassification:
    """Tests for the major level threshold."""

    def test_large_swing_is_major(self):
        """Test a large swing marks the level major."""
        candles = make_series(PEAK_HIGHS, [9] * 7)

        result = analyze_liquidity(candles, swing_strength=2)

        # (15 - 11) / 15 = 26.7% against a 0.3% threshold
        assert result.bsl[0].is_major

    def test_small_swing_is_not_major(self):
        """Test a small swing leaves the level minor."""
        candles = make_series(PEAK_HIGHS, [9] * 7)

        result = analyze_liquidity(candles, swing_strength=2, major_threshold_pct=Decimal("50"))

        assert not result.bsl[0].is_major

    def test_low_swing_measured_forward(self):
        """Test SSL swing size is measured after the pivot."""
        candles = make_series([20] * 7, TROUGH_LOWS)

        result = analyze_liquidity(candles, swing_strength=2, major_threshold_pct=Decimal("70"))

        # (9 - 5) / 5 = 80%
        assert result.ssl[0].is_major


class TestEqualLevelMerge:
    """Tests for REQ (relatively equal) level merging."""

    def test_keeps_higher_bsl(self):
        """Test merging keeps the higher of two close BSLs."""
        candles = make_series([99, 100, 99, 100.01, 99], [98] * 5)

        result = analyze_liquidity(
            candles, swing_strength=1, major_threshold_pct=Decimal("50")
        )

        assert len(result.bsl) == 1
        assert result.bsl[0].price == Decimal("100.01")

    def test_major_beats_higher_price(self):
        """Test merging prefers a major level over a higher one."""
        candles = make_series([99, 100, 99.9, 100.01, 99.95], [98] * 5)

        result = analyze_liquidity(
            candles, swing_strength=1, major_threshold_pct=Decimal("0.5")
        )

        assert len(result.bsl) == 1
        assert result.bsl[0].price == Decimal("100")
        assert result.bsl[0].is_major

    def test_keeps_lower_ssl(self):
        """Test merging keeps the lower of two close SSLs."""
        levels = [
            make_level("50.005", 2, LevelType.SSL),
            make_level("50.000", 6, LevelType.SSL),
        ]

        merged = merge_equal_levels(levels, Decimal("0.02"))

        assert [level.price for level in merged] == [Decimal("50.000")]

    def test_distant_levels_not_merged(self):
        """Test levels far apart are both kept."""
        levels = [make_level(100, 2), make_level(101, 6)]

        merged = merge_equal_levels(levels, Decimal("0.02"))

        assert len(merged) == 2


class TestTradedMarking:
    """Tests for wick and body trades through a level."""

    def test_wick_through_bsl(self):
        """Test a wick through BSL marks it traded."""
        candles = make_series(PEAK_HIGHS, [9] * 7)
        candles.append(make_candle(7, 16, 9, open_=13, close=14))

        level = analyze_liquidity(candles, swing_strength=2).bsl[0]

        assert level.is_traded
        assert not level.is_traded_by_body

    def test_bullish_body_through_bsl(self):
        """Test a bullish body through BSL marks it body-traded."""
        candles = make_series(PEAK_HIGHS, [9] * 7)
        candles.append(make_candle(7, 16, 9, open_=13, close=15.5))

        level = analyze_liquidity(candles, swing_strength=2).bsl[0]

        assert level.is_traded
        assert level.is_traded_by_body

    def test_bearish_body_through_bsl(self):
        """Test a bearish body through BSL marks it body-traded."""
        candles = make_series(PEAK_HIGHS, [9] * 7)
        candles.append(make_candle(7, 16, 9, open_=15.5, close=13))

        level = analyze_liquidity(candles, swing_strength=2).bsl[0]

        assert level.is_traded_by_body

    def test_body_through_ssl(self):
        """Test a body through SSL marks it body-traded."""
        candles = make_series([20] * 7, TROUGH_LOWS)
        candles.append(make_candle(7, 20, 4, open_=6, close=4.5))

        level = analyze_liquidity(candles, swing_strength=2).ssl[0]

        assert level.is_traded
        assert level.is_traded_by_body

    def test_wick_through_ssl(self):
        """Test a wick through SSL marks it traded."""
        candles = make_series([20] * 7, TROUGH_LOWS)
        candles.append(make_candle(7, 20, 4, open_=6, close=7))

        level = analyze_liquidity(candles, swing_strength=2).ssl[0]

        assert level.is_traded
        assert not level.is_traded_by_body

    def test_untouched_level(self):
        """Test a level price never reached stays untraded."""
        candles = make_series(PEAK_HIGHS, [9] * 7)

        level = analyze_liquidity(candles, swing_strength=2).bsl[0]

        assert not level.is_traded


class TestLiquidityAnalyzer:
    """Tests for the configured analyzer."""

    def test_uses_configured_strength(self):
        """Test the analyzer uses its configured swing strength."""
        candles = make_series(PEAK_HIGHS, [9] * 7)
        analyzer = LiquidityAnalyzer(AnalyzerConfig(swing_strength=2))

        assert len(analyzer.analyze(candles).bsl) == 1
        assert analyzer.analyze(candles, swing_strength=4).is_empty

    def test_timeframe_strength(self):
        """Test per-timeframe swing strength."""
        candles = make_series(PEAK_HIGHS, [9] * 7)
        analyzer = LiquidityAnalyzer()

        # 5m uses a 3-candle window, 1h needs 13 candles
        assert len(analyzer.analyze_for_timeframe(candles, "5m").bsl) == 1
        assert analyzer.analyze_for_timeframe(candles, "1h").is_empty

    def test_unknown_timeframe_uses_default(self):
        """Test unlisted timeframes use the default strength."""
        config = AnalyzerConfig()

        assert config.swing_strength_for("4h") == config.default_timeframe_swing_strength
