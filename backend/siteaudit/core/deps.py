"""
FastAPI dependencies.
"""
from typing import Annotated

from fastapi import Depends

from siteaudit.database import get_session_maker
from siteaudit.services.audit_store import AuditStore


def get_store() -> AuditStore:
    """Audit store bound to the process-wide session maker."""
    return AuditStore(get_session_maker())


Store = Annotated[AuditStore, Depends(get_store)]
