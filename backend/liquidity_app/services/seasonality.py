"""Loading monthly return tables for the seasonal bias."""

import logging
from pathlib import Path

import orjson

from liquidity_core.seasonality import DEFAULT_MONTHLY_RETURNS

logger = logging.getLogger(__name__)


def load_monthly_returns(path: str | None = None) -> dict[int, dict[int, float]]:
    """Read a month -> year -> return% table from JSON.

    The file maps month numbers ("1".."12") to objects of year -> percent
    return. Without a path the bundled table is used.

    Raises:
        ValueError: If the file content is not a valid table
    """
    if not path:
        return DEFAULT_MONTHLY_RETURNS

    raw = orjson.loads(Path(path).read_bytes())
    if not isinstance(raw, dict):
        raise ValueError(f"Seasonality file {path} must contain a JSON object")

    table: dict[int, dict[int, float]] = {}
    for month, years in raw.items():
        month_number = int(month)
        if not 1 <= month_number <= 12:
            raise ValueError(f"Invalid month {month} in {path}")
        table[month_number] = {int(year): float(value) for year, value in years.items()}

    logger.info(f"Loaded seasonality for {len(table)} months from {path}")
    return table
