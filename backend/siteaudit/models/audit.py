"""
Audit run model: one audit of one site.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, Float, Integer, String, Text
from sqlalchemy.orm import relationship

from siteaudit.models.base import Base, BaseModel, JSONData


class AuditPhase(str, PyEnum):
    DISCOVERING = "discovering"
    ANALYZING = "analyzing"
    IDLE = "idle"


class AuditRun(Base, BaseModel):
    """Audit run tracking and aggregated results."""

    __tablename__ = "audit_runs"

    project_id = Column(String(255), nullable=False, index=True)
    root_url = Column(String(2048), nullable=False)
    sitemap_url = Column(String(2048), nullable=True)
    max_pages_discovered = Column(Integer, nullable=False)
    max_pages_to_analyze = Column(Integer, nullable=False)
    phase = Column(
        Enum(AuditPhase),
        default=AuditPhase.DISCOVERING,
        nullable=False,
    )
    crawl_delay_ms = Column(Integer, nullable=True)

    # Aggregates, refreshed after every analysis batch
    total_pages = Column(Integer, default=0, nullable=False)
    pages_analyzed = Column(Integer, default=0, nullable=False)
    pages_failed = Column(Integer, default=0, nullable=False)
    critical_issues = Column(Integer, default=0, nullable=False)
    warning_issues = Column(Integer, default=0, nullable=False)
    info_issues = Column(Integer, default=0, nullable=False)
    health_score = Column(Integer, nullable=True)
    overall_score = Column(Float, nullable=True)
    seo_score = Column(Float, nullable=True)
    aeo_score = Column(Float, nullable=True)
    content_score = Column(Float, nullable=True)
    technical_score = Column(Float, nullable=True)

    discovery_errors = Column(JSONData, default=list)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    discovery_completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    pages = relationship("AuditPage", back_populates="run", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<AuditRun {self.id} {self.root_url} ({self.phase.value})>"
