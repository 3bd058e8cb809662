"""quote_versions

Revision ID: 001_quote_versions
Revises:
Create Date: 2026-10-18

Adds the append-only quote revision table:
- quote_versions: one row per (scoping_record_id, version) snapshot with
  line items, applied multipliers and totals as JSON, plus denormalised
  totals and integrity status for reporting.

DDL is guarded by existence checks so the migration is idempotent and safe to
run even when Base.metadata.create_all() already created the table.
"""
import logging
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import JSONB

revision = '001_quote_versions'
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.001")

_JSON = sa.JSON().with_variant(JSONB(), "postgresql")


def _table_exists(conn, table_name: str) -> bool:
    return inspect(conn).has_table(table_name)


def upgrade() -> None:
    conn = op.get_bind()

    if _table_exists(conn, 'quote_versions'):
        logger.info("quote_versions already exists, skipping")
        return

    op.create_table(
        'quote_versions',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('scoping_record_id', sa.String(64), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('line_items_json', _JSON, nullable=False),
        sa.Column('applied_multipliers_json', _JSON, nullable=False),
        sa.Column('totals_json', _JSON, nullable=False),
        sa.Column('total_client_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_vendor_cost', sa.Numeric(14, 2), nullable=False),
        sa.Column('gross_margin_percent', sa.Numeric(7, 2), nullable=False),
        sa.Column('integrity_status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(255)),
        sa.UniqueConstraint('scoping_record_id', 'version', name='uq_quote_versions_record_version'),
    )
    op.create_index('ix_quote_versions_record', 'quote_versions', ['scoping_record_id'])


def downgrade() -> None:
    conn = op.get_bind()

    if _table_exists(conn, 'quote_versions'):
        op.drop_index('ix_quote_versions_record', table_name='quote_versions')
        op.drop_table('quote_versions')
