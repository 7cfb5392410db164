"""SQLAlchemy ORM models for PLD compliance state."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class OperationRecord(Base):
    __tablename__ = "operations"

    tenant_id: Mapped[str] = mapped_column(String, primary_key=True)
    operation_id: Mapped[str] = mapped_column(String, primary_key=True)
    client_identity: Mapped[str] = mapped_column(String)
    # Upper-cased, stripped identity for grouping and lookup
    client_key: Mapped[str] = mapped_column(String, index=True)
    client_name: Mapped[str | None] = mapped_column(String, nullable=True)
    activity_type: Mapped[str] = mapped_column(String, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    operation_date: Mapped[date] = mapped_column(Date, index=True)
    risk_level: Mapped[str] = mapped_column(String, default="LOW")
    risk_score: Mapped[int] = mapped_column(Integer, default=0)
    risk_tier: Mapped[str | None] = mapped_column(String, nullable=True)
    triggered_factors: Mapped[list] = mapped_column(JsonType, default=list)
    status: Mapped[str] = mapped_column(String, index=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    catalog_version: Mapped[str | None] = mapped_column(String, nullable=True)
    zero_declaration: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    escalated_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reported_by: Mapped[str | None] = mapped_column(String, nullable=True)
    history: Mapped[list] = mapped_column(JsonType, default=list)
