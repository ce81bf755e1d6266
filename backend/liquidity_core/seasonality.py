"""Seasonal directional bias from historical monthly returns."""

from datetime import datetime
from decimal import Decimal
from typing import Mapping

from liquidity_core.models import SeasonalBias

BULLISH_PROBABILITY = Decimal("60")
BEARISH_PROBABILITY = Decimal("40")
NEUTRAL_PROBABILITY = Decimal("50")

# Type alias: month (1-12) -> year -> return in percent
MonthlyReturns = Mapping[int, Mapping[int, float]]

# Historical BTC monthly returns (percent), 2011-2024
DEFAULT_MONTHLY_RETURNS: dict[int, dict[int, float]] = {
    1: {2011: 66.67, 2012: 10.0, 2013: 15.38, 2014: -14.29, 2015: -33.33, 2016: 11.11, 2017: 15.79,
        2018: -14.29, 2019: 2.7, 2020: 4.73, 2021: 10.37, 2022: -2.17, 2023: 25.0, 2024: 0.72},
    2: {2011: 100.0, 2012: 0.0, 2013: 33.33, 2014: -16.67, 2015: 25.0, 2016: 20.0, 2017: 18.18,
        2018: -16.67, 2019: 5.26, 2020: 20.0, 2021: 40.63, 2022: -11.11, 2023: 8.0, 2024: 43.76},
    3: {2011: 400.0, 2012: 9.09, 2013: 50.0, 2014: -10.0, 2015: 0.0, 2016: 8.33, 2017: 7.69,
        2018: -10.0, 2019: 25.0, 2020: -16.67, 2021: 33.33, 2022: -12.5, 2023: 5.56, 2024: 16.62},
    4: {2011: 10.0, 2012: 0.0, 2013: 733.33, 2014: 33.33, 2015: 0.0, 2016: 7.69, 2017: 28.57,
        2018: -11.11, 2019: 20.0, 2020: 20.0, 2021: 6.67, 2022: -8.57, 2023: 2.79, 2024: -15.0},
    5: {2011: 81.82, 2012: 0.0, 2013: -40.0, 2014: -8.33, 2015: 8.0, 2016: 7.14, 2017: 11.11,
        2018: -12.5, 2019: 33.33, 2020: 5.56, 2021: -14.06, 2022: -9.38, 2023: -6.87, 2024: 11.35},
    6: {2011: 200.0, 2012: -8.33, 2013: -20.0, 2014: -9.09, 2015: 7.41, 2016: 20.0, 2017: -25.0,
        2018: -14.29, 2019: 25.0, 2020: 5.26, 2021: -9.09, 2022: -13.79, 2023: 11.97, 2024: -7.13},
    7: {2011: -33.33, 2012: 0.0, 2013: 8.33, 2014: -20.0, 2015: -13.79, 2016: -5.56, 2017: -6.67,
        2018: 16.67, 2019: 10.0, 2020: 5.0, 2021: -10.0, 2022: 20.0, 2023: -4.09, 2024: 3.1},
    8: {2011: -25.0, 2012: 9.09, 2013: -7.69, 2014: -12.5, 2015: 4.0, 2016: -5.88, 2017: 7.14,
        2018: -14.29, 2019: -13.64, 2020: 14.29, 2021: 11.11, 2022: -6.67, 2023: -11.29, 2024: -8.75},
    9: {2011: -33.33, 2012: 0.0, 2013: 8.33, 2014: -14.29, 2015: 7.69, 2016: -6.25, 2017: 33.33,
        2018: -16.67, 2019: -10.53, 2020: -8.33, 2021: -20.0, 2022: -3.57, 2023: 3.99, 2024: 7.39},
    10: {2011: 0.0, 2012: 8.33, 2013: 53.85, 2014: -16.67, 2015: 7.14, 2016: 6.67, 2017: 50.0,
         2018: -10.0, 2019: -5.88, 2020: 9.09, 2021: 50.0, 2022: -3.7, 2023: 28.55, 2024: 10.87},
    11: {2011: -30.0, 2012: 7.69, 2013: 400.0, 2014: -20.0, 2015: 33.33, 2016: 12.5, 2017: 133.33,
         2018: -11.11, 2019: -12.5, 2020: 53.19, 2021: 15.0, 2022: -3.85, 2023: 8.81, 2024: 37.36},
    12: {2011: -28.57, 2012: 92.14, 2013: -30.0, 2014: 50.0, 2015: 12.5, 2016: 5.56, 2017: 100.0,
         2018: -7.5, 2019: 0.0, 2020: 57.72, 2021: -33.33, 2022: -20.0, 2023: 12.06, 2024: -3.14},
}


def positive_probability(returns: Mapping[int, float]) -> Decimal | None:
    """Share of strictly positive returns, in percent. None without data."""
    values = list(returns.values())
    if not values:
        return None
    positive = sum(1 for value in values if value > 0)
    return Decimal(positive) / Decimal(len(values)) * 100


def seasonal_bias(
    monthly_returns: MonthlyReturns,
    month: int,
) -> tuple[SeasonalBias, Decimal]:
    """Classify a calendar month as bullish, bearish or neutral.

    Args:
        monthly_returns: month (1-12) -> year -> percent return
        month: Calendar month, 1-12

    Returns:
        Tuple of (bias, positive probability in percent)
    """
    probability = positive_probability(monthly_returns.get(month, {}))
    if probability is None:
        return SeasonalBias.NEUTRAL, NEUTRAL_PROBABILITY

    if probability >= BULLISH_PROBABILITY:
        return SeasonalBias.BULLISH, probability
    if probability <= BEARISH_PROBABILITY:
        return SeasonalBias.BEARISH, probability
    return SeasonalBias.NEUTRAL, probability


def current_seasonal_bias(
    now: datetime,
    monthly_returns: MonthlyReturns | None = None,
) -> tuple[SeasonalBias, Decimal]:
    """Bias for the month containing ``now``."""
    return seasonal_bias(
        DEFAULT_MONTHLY_RETURNS if monthly_returns is None else monthly_returns,
        now.month,
    )
