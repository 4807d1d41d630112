"""
Domain errors for the audit engine.

Page-scoped errors (fetch, extraction, analyzer) are recovered by the
analysis coordinator and recorded on the page. Run-scoped errors
(discovery, store) propagate to the caller.
"""


class AuditError(Exception):
    """Base class for audit engine errors."""

    code = "AUDIT_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DiscoveryFailedError(AuditError):
    """Root URL and every sitemap candidate were unreachable."""

    code = "DISCOVERY_FAILED"


class PageFetchError(AuditError):
    """A page could not be fetched (timeout, non-2xx, network, not HTML)."""

    code = "PAGE_FETCH_FAILED"

    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    NETWORK = "network"
    NOT_HTML = "not_html"

    def __init__(self, message: str, kind: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class ExtractionError(AuditError):
    """Fetched HTML could not be turned into structured page data."""

    code = "EXTRACTION_FAILED"


class AnalyzerError(AuditError):
    """The AI analyzer failed, timed out, or returned a malformed payload."""

    code = "ANALYZER_FAILED"


class StoreError(AuditError):
    """Persistence failed; the run-level summary can no longer be trusted."""

    code = "STORE_FAILED"


class AuditNotFoundError(AuditError):
    code = "AUDIT_NOT_FOUND"


class PageNotFoundError(AuditError):
    code = "PAGE_NOT_FOUND"
