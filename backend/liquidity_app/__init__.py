"""I/O layer of the liquidity signal engine: storage, exchange clients, services and API."""
