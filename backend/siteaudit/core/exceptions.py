"""
Custom HTTP exceptions for the audit API.
"""
from fastapi import HTTPException, status

from siteaudit.core.errors import (
    AuditError,
    AuditNotFoundError,
    DiscoveryFailedError,
    PageNotFoundError,
    StoreError,
)


class NotFoundError(HTTPException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found"
        )


class BadRequestError(HTTPException):
    """Bad request exception."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )


class UnprocessableError(HTTPException):
    """Request was valid but the audit could not be carried out."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail
        )


class ServiceUnavailableError(HTTPException):
    """Backing store unavailable."""

    def __init__(self, detail: str = "Audit store unavailable"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail
        )


def to_http_error(error: AuditError) -> HTTPException:
    """Map an audit engine error onto the HTTP error the API returns."""
    if isinstance(error, AuditNotFoundError):
        return NotFoundError("Audit")
    if isinstance(error, PageNotFoundError):
        return NotFoundError("Page")
    if isinstance(error, DiscoveryFailedError):
        return UnprocessableError(error.message)
    if isinstance(error, StoreError):
        return ServiceUnavailableError()
    return BadRequestError(error.message)
