"""
API route modules.
"""

from api.routes.consortium import router as consortium_router
from api.routes.health import router as health_router

__all__ = ["consortium_router", "health_router"]
