"""Backoffice API package."""

from backoffice.api.routes import issue_router, order_router, return_router

__all__ = ["order_router", "return_router", "issue_router"]
