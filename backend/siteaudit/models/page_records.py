"""
Per-page link, asset and performance records derived from extraction.
"""
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, Enum, Float, ForeignKey, Integer, String, Text, Uuid

from siteaudit.models.base import Base, BaseModel, JSONData


class LinkType(str, PyEnum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class LinkStatus(str, PyEnum):
    ACTIVE = "active"
    BROKEN = "broken"
    REDIRECT = "redirect"
    TIMEOUT = "timeout"
    UNCHECKED = "unchecked"


class AssetType(str, PyEnum):
    IMAGE = "image"
    SVG = "svg"
    GIF = "gif"
    VIDEO = "video"
    OTHER = "other"


class LinkAudit(Base, BaseModel):
    __tablename__ = "link_audits"

    page_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("audit_pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    href = Column(String(2048), nullable=False)
    anchor_text = Column(Text, nullable=True)
    link_type = Column(Enum(LinkType), nullable=False)
    status = Column(Enum(LinkStatus), default=LinkStatus.UNCHECKED, nullable=False)
    status_code = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    is_nofollow = Column(Boolean, default=False, nullable=False)
    issues = Column(JSONData, default=list)


class AssetAudit(Base, BaseModel):
    __tablename__ = "asset_audits"

    page_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("audit_pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    src = Column(String(2048), nullable=False)
    asset_type = Column(Enum(AssetType), nullable=False)
    format = Column(String(20), nullable=True)
    alt_text = Column(Text, nullable=True)
    has_alt = Column(Boolean, default=False, nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    is_lazy_loaded = Column(Boolean, default=False, nullable=False)
    issues = Column(JSONData, default=list)


class PerformanceAudit(Base, BaseModel):
    __tablename__ = "performance_audits"

    page_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("audit_pages.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    response_time_ms = Column(Integer, nullable=False)
    response_size_bytes = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    metrics = Column(JSONData, default=dict)
    issues = Column(JSONData, default=list)
