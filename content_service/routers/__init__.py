"""
API routers for content service endpoints.
"""

from . import author_router, edit_router, health_router, post_router

__all__ = ["author_router", "edit_router", "health_router", "post_router"]
