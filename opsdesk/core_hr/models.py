"""Core HR ORM models: AttendanceType, Employee.

Only the fields attendance reconciliation and payroll deductions read are
modelled here; employees are matched to device punches by
``zk_employee_code``.
"""

from __future__ import annotations

import uuid
from datetime import time
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.common.audit import TimestampMixin
from opsdesk.database import Base


# ═════════════════════════════════════════════════════════════════════
# AttendanceType
# ═════════════════════════════════════════════════════════════════════


class AttendanceType(Base, TimestampMixin):
    """Working-hours policy: fixed shift window plus grace allowances."""

    __tablename__ = "attendance_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    fixed_start_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    fixed_end_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    allow_late_minutes: Mapped[int] = mapped_column(sa.Integer, default=0)
    allow_early_exit_minutes: Mapped[int] = mapped_column(sa.Integer, default=0)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    employees: Mapped[list[Employee]] = relationship(back_populates="attendance_type")

    @property
    def expected_hours(self) -> Optional[float]:
        """Length of the fixed shift in hours; None when the window is empty or inverted."""
        if self.fixed_start_time is None or self.fixed_end_time is None:
            return None
        start = self.fixed_start_time.hour * 60 + self.fixed_start_time.minute
        end = self.fixed_end_time.hour * 60 + self.fixed_end_time.minute
        if end <= start:
            return None
        return round((end - start) / 60, 2)

    def __repr__(self) -> str:
        return f"<AttendanceType {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base, TimestampMixin):
    """Employee record as seen by attendance and deductions."""

    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_number: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    zk_employee_code: Mapped[Optional[str]] = mapped_column(
        sa.String(50), unique=True, index=True,
    )

    # ── Name / Contact ──────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(sa.String(255))

    # ── Attendance / Pay ────────────────────────────────────────────
    attendance_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("attendance_types.id"),
    )
    basic_salary: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(12, 2, asdecimal=False),
    )

    employment_status: Mapped[str] = mapped_column(sa.String(30), default="active")
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    attendance_type: Mapped[Optional[AttendanceType]] = relationship(
        back_populates="employees", lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee {self.employee_number} {self.full_name!r}>"
