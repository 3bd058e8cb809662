"""ORM Models for the S2P quote engine — SQLAlchemy 2.0"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    JSON, String, Integer, Numeric, DateTime, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from app.db import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
_JSON = JSON().with_variant(JSONB(), "postgresql")


# ── QUOTE VERSIONS ────────────────────────────────────────────────────────────
class QuoteVersion(Base):
    """One immutable quote snapshot; rows are only ever inserted."""
    __tablename__ = "quote_versions"
    __table_args__ = (
        UniqueConstraint("scoping_record_id", "version", name="uq_quote_versions_record_version"),
        Index("ix_quote_versions_record", "scoping_record_id"),
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    scoping_record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    line_items_json: Mapped[list] = mapped_column(_JSON, nullable=False)
    applied_multipliers_json: Mapped[list] = mapped_column(_JSON, nullable=False, default=list)
    totals_json: Mapped[dict] = mapped_column(_JSON, nullable=False)
    # Denormalised for the reporting / scorecard consumer
    total_client_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_vendor_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    gross_margin_percent: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    integrity_status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(255))
