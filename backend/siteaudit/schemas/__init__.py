"""
Pydantic schemas for the SiteAudit API and analyzer.
"""
from siteaudit.schemas.common import (
    BaseSchema,
    IDSchema,
    RecordSchema,
    ErrorResponse,
    NOT_FOUND_RESPONSES,
)
from siteaudit.schemas.analysis import (
    IssueSeverity,
    IssueType,
    PageAnalysis,
    PageIssue,
    PageScores,
    SEVERITY_WEIGHTS,
)
from siteaudit.schemas.audit import (
    AuditCreate,
    AuditRunResponse,
    AuditPageResponse,
    PageAnalysisResponse,
    LinkAuditResponse,
    AssetAuditResponse,
    PerformanceAuditResponse,
    PageDetailResponse,
    ScanMoreRequest,
    RetryFailedRequest,
    RetryFailedResponse,
    TaskQueuedResponse,
)

__all__ = [
    # Common
    "BaseSchema",
    "IDSchema",
    "RecordSchema",
    "ErrorResponse",
    "NOT_FOUND_RESPONSES",
    # Analysis
    "IssueSeverity",
    "IssueType",
    "PageAnalysis",
    "PageIssue",
    "PageScores",
    "SEVERITY_WEIGHTS",
    # Audit
    "AuditCreate",
    "AuditRunResponse",
    "AuditPageResponse",
    "PageAnalysisResponse",
    "LinkAuditResponse",
    "AssetAuditResponse",
    "PerformanceAuditResponse",
    "PageDetailResponse",
    "ScanMoreRequest",
    "RetryFailedRequest",
    "RetryFailedResponse",
    "TaskQueuedResponse",
]
