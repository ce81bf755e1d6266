"""API endpoints."""

from liquidity_app.api.routes import router

__all__ = [
    "router",
]
