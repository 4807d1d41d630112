"""
Shared base schemas for API responses.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Reads straight from ORM rows."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class IDSchema(BaseSchema):
    id: UUID


class RecordSchema(IDSchema):
    """A persisted audit record."""

    created_at: datetime
    updated_at: datetime


class ErrorResponse(BaseSchema):
    """Body of every 4xx/5xx the audit API returns."""

    detail: str


# OpenAPI ``responses=`` for endpoints that look up a run or page
NOT_FOUND_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Audit run or page not found"},
    503: {"model": ErrorResponse, "description": "Audit store unavailable"},
}
