"""Core business logic for the liquidity signal engine.

This package contains pure business logic with no I/O dependencies:
- Data models (candles, liquidity levels, signals, config)
- Candle builder
- Liquidity level analysis
- Signal generation and lifecycle checking
- Statistics

All I/O (storage, cache, exchange clients) lives in the liquidity_app package.
"""
