"""
Health check endpoint.

Used by load balancers and orchestration systems to check liveness.
"""

from datetime import datetime, timezone

from fastapi import APIRouter


router = APIRouter(tags=["Health"])


@router.get("/healthcheck")
async def health_check() -> dict:
    """
    Liveness check.

    Always returns 200 while the API listener is serving.
    """
    return {
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
