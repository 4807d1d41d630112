"""
Discovered page and its AI analysis.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from siteaudit.models.base import Base, BaseModel, JSONData, utcnow


class PageStatus(str, PyEnum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    FAILED = "failed"


class FetchStatus(str, PyEnum):
    NOT_ATTEMPTED = "not_attempted"
    FETCHED = "fetched"
    FETCH_FAILED = "fetch_failed"


class AnalysisStatus(str, PyEnum):
    NOT_ATTEMPTED = "not_attempted"
    ANALYZED = "analyzed"
    ANALYSIS_FAILED = "analysis_failed"


class AuditPage(Base, BaseModel):
    """One discovered URL belonging to a run."""

    __tablename__ = "audit_pages"
    __table_args__ = (
        UniqueConstraint("run_id", "url", name="uq_audit_pages_run_url"),
        Index("ix_audit_pages_run_status_order", "run_id", "status", "discovery_order"),
    )

    run_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("audit_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url = Column(String(2048), nullable=False)
    path = Column(String(2048), nullable=False, default="/")
    status = Column(
        Enum(PageStatus),
        default=PageStatus.PENDING,
        nullable=False,
    )
    discovery_order = Column(Integer, nullable=False)
    discovered_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    analyzed_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    title = Column(String(1024), nullable=True)
    status_code = Column(Integer, nullable=True)
    fetch_status = Column(
        Enum(FetchStatus),
        default=FetchStatus.NOT_ATTEMPTED,
        nullable=False,
    )
    analysis_status = Column(
        Enum(AnalysisStatus),
        default=AnalysisStatus.NOT_ATTEMPTED,
        nullable=False,
    )
    attempts = Column(Integer, default=0, nullable=False)

    run = relationship("AuditRun", back_populates="pages")
    analysis = relationship(
        "PageAnalysisRecord",
        back_populates="page",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<AuditPage {self.url} ({self.status.value})>"


class PageAnalysisRecord(Base, BaseModel):
    """AI verdict for one page. A retried analysis replaces the row."""

    __tablename__ = "page_analyses"

    page_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("audit_pages.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    score = Column(Float, nullable=False)
    seo_score = Column(Float, nullable=True)
    aeo_score = Column(Float, nullable=True)
    content_score = Column(Float, nullable=True)
    technical_score = Column(Float, nullable=True)
    issues = Column(JSONData, default=list)
    analysis = Column(JSONData, default=dict)
    metadata_snapshot = Column(JSONData, default=dict)
    markdown_content = Column(Text, nullable=True)
    tokens_used = Column(Integer, default=0, nullable=False)
    cost = Column(Float, default=0.0, nullable=False)

    page = relationship("AuditPage", back_populates="analysis")
