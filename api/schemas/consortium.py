"""
Consortium request and response schemas.

The wire contract is declared in api.openapi_spec and enforced by the
validation middleware; these models give handlers typed access to it.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateConsortiumRequest(_CamelModel):
    """Request body for creating a consortium."""

    consortium_name: str = Field(
        ...,
        alias="consortiumName",
        description="Human readable consortium name",
        examples=["Supply Chain Pilot"],
    )
    organization_name: str = Field(
        ...,
        alias="organizationName",
        description="Organization founding the consortium",
        examples=["Acme Corp"],
    )
    base_url: Optional[str] = Field(
        default=None,
        alias="baseUrl",
        description="Base URL of the founding organization's API server",
        examples=["https://bif.acme.example"],
    )


class CreateConsortiumResponse(_CamelModel):
    """Response after creating a consortium."""

    consortium_id: str = Field(..., alias="consortiumId")
    consortium_name: str = Field(..., alias="consortiumName")


class Consortium(_CamelModel):
    """Stored consortium record."""

    consortium_id: str = Field(..., alias="consortiumId")
    consortium_name: str = Field(..., alias="consortiumName")
    organization_name: str = Field(..., alias="organizationName")
    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    created_at: datetime = Field(..., alias="createdAt")
