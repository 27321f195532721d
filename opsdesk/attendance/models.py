"""Attendance ORM models: device punches, device keys, saved batches, deduction rules."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.common.audit import TimestampMixin, utcnow
from opsdesk.common.constants import PunchType, RecordStatus
from opsdesk.database import Base


# ═════════════════════════════════════════════════════════════════════
# Device side
# ═════════════════════════════════════════════════════════════════════


class DeviceApiKey(Base, TimestampMixin):
    """Key a fingerprint terminal (or its bridge) uses to push punches."""

    __tablename__ = "device_api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    api_key: Mapped[str] = mapped_column(sa.String(128), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    allow_zk_attendance: Mapped[bool] = mapped_column(sa.Boolean, default=False)

    def __repr__(self) -> str:
        return f"<DeviceApiKey {self.name!r} active={self.is_active}>"


class ZkAttendanceLog(Base):
    """One raw punch received from a ZK device."""

    __tablename__ = "zk_attendance_logs"
    __table_args__ = (
        sa.Index("ix_zk_logs_code_date", "employee_code", "attendance_date"),
        sa.Index("ix_zk_logs_date_time", "attendance_date", "attendance_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    attendance_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # HH:MM:SS
    attendance_time: Mapped[str] = mapped_column(sa.String(8), nullable=False)
    record_type: Mapped[str] = mapped_column(
        sa.String(10), nullable=False, default=PunchType.unknown.value,
    )
    raw_data: Mapped[Optional[dict]] = mapped_column(JSONB)
    is_processed: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    api_key_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("device_api_keys.id", ondelete="SET NULL"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )


# ═════════════════════════════════════════════════════════════════════
# Deductions
# ═════════════════════════════════════════════════════════════════════


class DeductionRule(Base, TimestampMixin):
    """Payroll deduction for lateness, early exit or absence.

    ``percentage`` values are fractions of a daily salary (0.25 = a quarter
    day); ``hourly`` multiplies the hourly rate by the minutes late.
    """

    __tablename__ = "deduction_rules"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    rule_name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    rule_type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    min_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)
    max_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)
    deduction_type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    deduction_value: Mapped[float] = mapped_column(
        sa.Numeric(12, 4, asdecimal=False), nullable=False, default=0,
    )
    sort_order: Mapped[int] = mapped_column(sa.Integer, default=0)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    def __repr__(self) -> str:
        return f"<DeductionRule {self.rule_type} {self.rule_name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Saved attendance
# ═════════════════════════════════════════════════════════════════════


class SavedAttendance(Base):
    """Reconciled attendance for one employee on one day, saved in a batch."""

    __tablename__ = "saved_attendance"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_code", "attendance_date", name="uq_saved_attendance_code_date",
        ),
        sa.Index("ix_saved_attendance_batch", "batch_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    attendance_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    in_time: Mapped[Optional[str]] = mapped_column(sa.String(8))
    out_time: Mapped[Optional[str]] = mapped_column(sa.String(8))
    total_hours: Mapped[Optional[float]] = mapped_column(sa.Numeric(6, 2, asdecimal=False))
    expected_hours: Mapped[Optional[float]] = mapped_column(sa.Numeric(6, 2, asdecimal=False))
    difference_hours: Mapped[Optional[float]] = mapped_column(sa.Numeric(6, 2, asdecimal=False))
    record_status: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default=RecordStatus.normal.value,
    )
    vacation_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    late_minutes: Mapped[int] = mapped_column(sa.Integer, default=0)
    early_exit_minutes: Mapped[int] = mapped_column(sa.Integer, default=0)
    deduction_rule_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("deduction_rules.id", ondelete="SET NULL"),
    )
    deduction_amount: Mapped[float] = mapped_column(
        sa.Numeric(12, 2, asdecimal=False), default=0,
    )

    # ── Confirmation / batch ────────────────────────────────────────
    is_confirmed: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    confirmed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    saved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    saved_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    filter_from_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    filter_to_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    deduction_rule: Mapped[Optional[DeductionRule]] = relationship(lazy="selectin")
