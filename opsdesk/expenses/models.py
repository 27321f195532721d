"""Expense ORM models: ExpenseType, ExpenseRequest, VoidPaymentHistory.

SQLAlchemy 2.0 async-compatible models.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.common.audit import TimestampMixin, utcnow
from opsdesk.common.constants import ExpenseRequestStatus
from opsdesk.database import Base


class ExpenseType(Base, TimestampMixin):
    """Chart-of-accounts style classification for an expense."""

    __tablename__ = "expense_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    expense_name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    is_asset: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    def __repr__(self) -> str:
        return f"<ExpenseType {self.expense_name!r}>"


class ExpenseRequest(Base, TimestampMixin):
    """A spend awaiting classification, approval and payment."""

    __tablename__ = "expense_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    request_number: Mapped[str] = mapped_column(sa.String(30), unique=True, nullable=False)
    request_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False)
    amount: Mapped[float] = mapped_column(sa.Numeric(14, 2, asdecimal=False), nullable=False)
    currency_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("currencies.id"),
    )
    base_currency_amount: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(14, 2, asdecimal=False),
    )
    expense_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("expense_types.id"),
    )
    is_asset: Mapped[bool] = mapped_column(sa.Boolean, default=False)

    # ── Payment routing ─────────────────────────────────────────────
    payment_method: Mapped[Optional[str]] = mapped_column(sa.String(20))
    bank_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("banks.id"),
    )
    treasury_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("treasuries.id"),
    )

    # ── Workflow ────────────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default=ExpenseRequestStatus.pending.value, index=True,
    )
    requester_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    classified_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    classified_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    paid_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    expense_type: Mapped[Optional[ExpenseType]] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<ExpenseRequest {self.request_number} {self.status} {self.amount}>"


class VoidPaymentHistory(Base):
    """Immutable record of a reversed payment."""

    __tablename__ = "void_payment_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    expense_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("expense_requests.id", ondelete="SET NULL"),
    )
    request_number: Mapped[str] = mapped_column(sa.String(30), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    original_amount: Mapped[float] = mapped_column(sa.Numeric(14, 2, asdecimal=False))
    treasury_amount: Mapped[Optional[float]] = mapped_column(sa.Numeric(14, 2, asdecimal=False))
    treasury_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    treasury_entry_number: Mapped[Optional[str]] = mapped_column(sa.String(30))
    original_paid_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    voided_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    voided_by_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
