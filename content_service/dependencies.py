"""
Shared dependencies for the application.

Provides dependency injection functions used across routers.
"""

from fastapi import Request

from .repositories.base import ModelManager


async def get_model_manager(request: Request) -> ModelManager:
    """
    Get the ModelManager created by the application lifespan.

    Used by all routers that touch the store or the cache.
    """
    mm = getattr(request.app.state, "mm", None)
    if mm is None:
        raise RuntimeError("ModelManager not initialized")
    return mm
