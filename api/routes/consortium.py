"""
Consortium endpoints.

- POST /api/v1/consortium - Create a consortium
- GET /api/v1/consortium/{consortium_id} - Read a consortium back
"""

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_storage
from api.schemas.consortium import (
    Consortium,
    CreateConsortiumRequest,
    CreateConsortiumResponse,
)
from core.logging import get_logger
from core.storage import KVStoragePlugin


logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/consortium", tags=["Consortium"])


def storage_key(consortium_id: str) -> str:
    return f"consortium/{consortium_id}"


@router.post("", status_code=201, response_model=CreateConsortiumResponse)
async def create_consortium(
    request: CreateConsortiumRequest,
    storage: KVStoragePlugin = Depends(get_storage),
) -> CreateConsortiumResponse:
    """
    Create a new consortium.

    The record is persisted through the configured storage plugin.
    """
    consortium = Consortium(
        consortiumId=uuid.uuid4().hex,
        consortiumName=request.consortium_name,
        organizationName=request.organization_name,
        baseUrl=request.base_url,
        createdAt=datetime.now(timezone.utc),
    )

    await storage.set(
        storage_key(consortium.consortium_id),
        consortium.model_dump(mode="json", by_alias=True),
    )

    logger.info(
        "Consortium created",
        consortium_id=consortium.consortium_id,
        consortium_name=consortium.consortium_name,
    )

    return CreateConsortiumResponse(
        consortiumId=consortium.consortium_id,
        consortiumName=consortium.consortium_name,
    )


@router.get("/{consortium_id}", response_model=Consortium)
async def get_consortium(
    consortium_id: str,
    storage: KVStoragePlugin = Depends(get_storage),
) -> Consortium:
    """Get a consortium by id."""
    record = await storage.get(storage_key(consortium_id))

    if record is None:
        raise HTTPException(
            status_code=404,
            detail=f"Consortium {consortium_id} not found",
        )

    return Consortium.model_validate(record)
