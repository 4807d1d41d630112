"""
ORM models for the audit store.
"""
from siteaudit.models.base import Base, BaseModel
from siteaudit.models.audit import AuditPhase, AuditRun
from siteaudit.models.page import (
    AnalysisStatus,
    AuditPage,
    FetchStatus,
    PageAnalysisRecord,
    PageStatus,
)
from siteaudit.models.page_records import (
    AssetAudit,
    AssetType,
    LinkAudit,
    LinkStatus,
    LinkType,
    PerformanceAudit,
)

__all__ = [
    "Base",
    "BaseModel",
    "AuditPhase",
    "AuditRun",
    "AnalysisStatus",
    "AuditPage",
    "FetchStatus",
    "PageAnalysisRecord",
    "PageStatus",
    "AssetAudit",
    "AssetType",
    "LinkAudit",
    "LinkStatus",
    "LinkType",
    "PerformanceAudit",
]
