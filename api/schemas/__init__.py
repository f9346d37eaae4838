"""
Pydantic schemas for API request/response bodies.
"""

from api.schemas.consortium import (
    Consortium,
    CreateConsortiumRequest,
    CreateConsortiumResponse,
)

__all__ = [
    "Consortium",
    "CreateConsortiumRequest",
    "CreateConsortiumResponse",
]
