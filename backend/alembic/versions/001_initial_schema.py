"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    'auditphase': ('DISCOVERING', 'ANALYZING', 'IDLE'),
    'pagestatus': ('PENDING', 'ANALYZING', 'ANALYZED', 'FAILED'),
    'fetchstatus': ('NOT_ATTEMPTED', 'FETCHED', 'FETCH_FAILED'),
    'analysisstatus': ('NOT_ATTEMPTED', 'ANALYZED', 'ANALYSIS_FAILED'),
    'linktype': ('INTERNAL', 'EXTERNAL'),
    'linkstatus': ('ACTIVE', 'BROKEN', 'REDIRECT', 'TIMEOUT', 'UNCHECKED'),
    'assettype': ('IMAGE', 'SVG', 'GIF', 'VIDEO', 'OTHER'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _id_and_timestamps() -> list:
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Create enum types
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # Audit runs
    op.create_table(
        'audit_runs',
        *_id_and_timestamps(),
        sa.Column('project_id', sa.String(255), nullable=False),
        sa.Column('root_url', sa.String(2048), nullable=False),
        sa.Column('sitemap_url', sa.String(2048)),
        sa.Column('max_pages_discovered', sa.Integer, nullable=False),
        sa.Column('max_pages_to_analyze', sa.Integer, nullable=False),
        sa.Column('phase', _enum('auditphase'), nullable=False, server_default='DISCOVERING'),
        sa.Column('crawl_delay_ms', sa.Integer),
        sa.Column('total_pages', sa.Integer, nullable=False, server_default='0'),
        sa.Column('pages_analyzed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('pages_failed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('critical_issues', sa.Integer, nullable=False, server_default='0'),
        sa.Column('warning_issues', sa.Integer, nullable=False, server_default='0'),
        sa.Column('info_issues', sa.Integer, nullable=False, server_default='0'),
        sa.Column('health_score', sa.Integer),
        sa.Column('overall_score', sa.Float),
        sa.Column('seo_score', sa.Float),
        sa.Column('aeo_score', sa.Float),
        sa.Column('content_score', sa.Float),
        sa.Column('technical_score', sa.Float),
        sa.Column('discovery_errors', postgresql.JSONB, server_default='[]'),
        sa.Column('error_message', sa.Text),
        sa.Column('started_at', sa.DateTime(timezone=True)),
        sa.Column('discovery_completed_at', sa.DateTime(timezone=True)),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_audit_runs_id', 'audit_runs', ['id'])
    op.create_index('ix_audit_runs_project_id', 'audit_runs', ['project_id'])

    # Discovered pages
    op.create_table(
        'audit_pages',
        *_id_and_timestamps(),
        sa.Column('run_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audit_runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('path', sa.String(2048), nullable=False, server_default='/'),
        sa.Column('status', _enum('pagestatus'), nullable=False, server_default='PENDING'),
        sa.Column('discovery_order', sa.Integer, nullable=False),
        sa.Column('discovered_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('analyzed_at', sa.DateTime(timezone=True)),
        sa.Column('last_error', sa.Text),
        sa.Column('title', sa.String(1024)),
        sa.Column('status_code', sa.Integer),
        sa.Column('fetch_status', _enum('fetchstatus'), nullable=False,
                  server_default='NOT_ATTEMPTED'),
        sa.Column('analysis_status', _enum('analysisstatus'), nullable=False,
                  server_default='NOT_ATTEMPTED'),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.UniqueConstraint('run_id', 'url', name='uq_audit_pages_run_url'),
    )
    op.create_index('ix_audit_pages_id', 'audit_pages', ['id'])
    op.create_index('ix_audit_pages_run_id', 'audit_pages', ['run_id'])
    op.create_index('ix_audit_pages_run_status_order', 'audit_pages',
                    ['run_id', 'status', 'discovery_order'])

    # AI analyses, one per page
    op.create_table(
        'page_analyses',
        *_id_and_timestamps(),
        sa.Column('page_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audit_pages.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('score', sa.Float, nullable=False),
        sa.Column('seo_score', sa.Float),
        sa.Column('aeo_score', sa.Float),
        sa.Column('content_score', sa.Float),
        sa.Column('technical_score', sa.Float),
        sa.Column('issues', postgresql.JSONB, server_default='[]'),
        sa.Column('analysis', postgresql.JSONB, server_default='{}'),
        sa.Column('metadata_snapshot', postgresql.JSONB, server_default='{}'),
        sa.Column('markdown_content', sa.Text),
        sa.Column('tokens_used', sa.Integer, nullable=False, server_default='0'),
        sa.Column('cost', sa.Float, nullable=False, server_default='0'),
    )
    op.create_index('ix_page_analyses_id', 'page_analyses', ['id'])

    # Per-page link, asset and performance records
    op.create_table(
        'link_audits',
        *_id_and_timestamps(),
        sa.Column('page_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audit_pages.id', ondelete='CASCADE'), nullable=False),
        sa.Column('href', sa.String(2048), nullable=False),
        sa.Column('anchor_text', sa.Text),
        sa.Column('link_type', _enum('linktype'), nullable=False),
        sa.Column('status', _enum('linkstatus'), nullable=False, server_default='UNCHECKED'),
        sa.Column('status_code', sa.Integer),
        sa.Column('response_time_ms', sa.Integer),
        sa.Column('is_nofollow', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('issues', postgresql.JSONB, server_default='[]'),
    )
    op.create_index('ix_link_audits_id', 'link_audits', ['id'])
    op.create_index('ix_link_audits_page_id', 'link_audits', ['page_id'])

    op.create_table(
        'asset_audits',
        *_id_and_timestamps(),
        sa.Column('page_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audit_pages.id', ondelete='CASCADE'), nullable=False),
        sa.Column('src', sa.String(2048), nullable=False),
        sa.Column('asset_type', _enum('assettype'), nullable=False),
        sa.Column('format', sa.String(20)),
        sa.Column('alt_text', sa.Text),
        sa.Column('has_alt', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('width', sa.Integer),
        sa.Column('height', sa.Integer),
        sa.Column('is_lazy_loaded', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('issues', postgresql.JSONB, server_default='[]'),
    )
    op.create_index('ix_asset_audits_id', 'asset_audits', ['id'])
    op.create_index('ix_asset_audits_page_id', 'asset_audits', ['page_id'])

    op.create_table(
        'performance_audits',
        *_id_and_timestamps(),
        sa.Column('page_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('audit_pages.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('response_time_ms', sa.Integer, nullable=False),
        sa.Column('response_size_bytes', sa.Integer, nullable=False),
        sa.Column('score', sa.Float, nullable=False),
        sa.Column('metrics', postgresql.JSONB, server_default='{}'),
        sa.Column('issues', postgresql.JSONB, server_default='[]'),
    )
    op.create_index('ix_performance_audits_id', 'performance_audits', ['id'])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('performance_audits')
    op.drop_table('asset_audits')
    op.drop_table('link_audits')
    op.drop_table('page_analyses')
    op.drop_table('audit_pages')
    op.drop_table('audit_runs')

    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
