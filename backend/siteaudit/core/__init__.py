"""
Core utilities for the audit engine.
"""
from siteaudit.core.errors import (
    AuditError,
    AuditNotFoundError,
    AnalyzerError,
    DiscoveryFailedError,
    ExtractionError,
    PageFetchError,
    PageNotFoundError,
    StoreError,
)

__all__ = [
    "AuditError",
    "AuditNotFoundError",
    "AnalyzerError",
    "DiscoveryFailedError",
    "ExtractionError",
    "PageFetchError",
    "PageNotFoundError",
    "StoreError",
]
