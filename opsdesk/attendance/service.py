"""Attendance service layer — device punches and saved attendance batches.

Business logic:
  - Device ingest with per-record validation (ZK terminals push raw punches)
  - Punch log maintenance: edit, delete, approve, CSV export, daily summary
  - Reconciliation of punches into saved attendance batches with deductions
  - Batch review: edit/recompute, confirm, delete, per-employee totals
  - Summary email of confirmed records to each employee
"""

from __future__ import annotations

import csv
import html
import io
import logging
import re
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Optional, Sequence

from fastapi.exceptions import HTTPException
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.attendance.deductions import (
    calculate_deduction,
    edited_hours,
    is_correct_time,
    minutes_over,
    normalize_time,
    pick_in_out,
    time_to_minutes,
    worked_hours,
)
from opsdesk.attendance.models import (
    DeductionRule,
    DeviceApiKey,
    SavedAttendance,
    ZkAttendanceLog,
)
from opsdesk.auth.models import User
from opsdesk.common.audit import create_audit_entry, utcnow
from opsdesk.common.constants import (
    ZK_LOG_LIST_LIMIT,
    ProcessType,
    PunchType,
    RecordStatus,
)
from opsdesk.common.exceptions import (
    AppException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from opsdesk.common.filters import apply_filters, apply_sorting
from opsdesk.common.mailer import OutgoingEmail, send_email
from opsdesk.core_hr.models import AttendanceType, Employee

logger = logging.getLogger(__name__)

# ── Constants ───────────────────────────────────────────────────────

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")
MAX_PROCESS_RANGE_DAYS = 62
DEFAULT_RECORD_SORT = "employee_code,attendance_date"

ZK_CSV_HEADERS = ["Employee Code", "Employee Name", "Date", "Time", "Type", "Received At"]
SAVED_CSV_HEADERS = [
    "Employee Code", "Employee Name", "Date", "In Time", "Out Time", "Total Hours",
    "Difference", "Status", "Deduction Rule", "Deduction Amount", "Confirmed",
]


def csv_filename(prefix: str, now: Optional[datetime] = None) -> str:
    return f"{prefix}_{(now or utcnow()).strftime('%Y%m%d_%H%M%S')}.csv"


def _render_csv(headers: list[str], rows: list[list[Any]]) -> str:
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(headers)
    writer.writerows(rows)
    return out.getvalue()


def _fmt_signed(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{'+' if value >= 0 else ''}{value:.2f}"


async def _employees_by_code(db: AsyncSession) -> dict[str, Employee]:
    result = await db.execute(
        select(Employee).where(Employee.zk_employee_code.is_not(None)),
    )
    return {e.zk_employee_code: e for e in result.scalars().all()}


# ═════════════════════════════════════════════════════════════════════
# ZkLogService
# ═════════════════════════════════════════════════════════════════════


class ZkLogService:
    """Raw punch intake and maintenance."""

    # ── Device authentication ───────────────────────────────────────

    @staticmethod
    async def authenticate_device(db: AsyncSession, api_key: Optional[str]) -> DeviceApiKey:
        if not api_key:
            raise HTTPException(status_code=401, detail="API key is required")
        result = await db.execute(
            select(DeviceApiKey).where(DeviceApiKey.api_key == api_key),
        )
        device = result.scalars().first()
        if device is None:
            logger.warning("Rejected punch push with unknown API key")
            raise HTTPException(status_code=401, detail="Invalid API key")
        if not device.is_active:
            raise HTTPException(status_code=401, detail="API key is inactive")
        if not device.allow_zk_attendance:
            raise ForbiddenException(detail="API key does not have ZK attendance permission")
        return device

    # ── Ingest ──────────────────────────────────────────────────────

    @staticmethod
    def validate_records(
        records: Sequence[dict[str, Any]],
    ) -> tuple[list[dict[str, Any]], list[str]]:
        """Split device records into insertable rows and ``Record <n>: ...`` messages."""
        valid: list[dict[str, Any]] = []
        errors: list[str] = []
        for index, record in enumerate(records, start=1):
            code = str(record.get("employee_code") or "").strip()
            raw_date = record.get("date")
            raw_time = record.get("time")
            if not code:
                errors.append(f"Record {index}: employee_code is required")
                continue
            if not raw_date:
                errors.append(f"Record {index}: date is required")
                continue
            if not raw_time:
                errors.append(f"Record {index}: time is required")
                continue
            if not DATE_RE.match(str(raw_date)):
                errors.append(f"Record {index}: date must be in YYYY-MM-DD format")
                continue
            try:
                parsed_date = date.fromisoformat(str(raw_date))
            except ValueError:
                errors.append(f"Record {index}: date must be in YYYY-MM-DD format")
                continue
            if not TIME_RE.match(str(raw_time)):
                errors.append(f"Record {index}: time must be in HH:MM or HH:MM:SS format")
                continue

            record_type = record.get("record_type") or PunchType.unknown.value
            if record_type not in {p.value for p in PunchType}:
                record_type = PunchType.unknown.value
            valid.append({
                "employee_code": code,
                "attendance_date": parsed_date,
                "attendance_time": normalize_time(str(raw_time)),
                "record_type": record_type,
                "raw_data": dict(record),
            })
        return valid, errors

    @staticmethod
    async def ingest(
        db: AsyncSession,
        device: DeviceApiKey,
        records: Sequence[dict[str, Any]],
    ) -> dict[str, Any]:
        if not records:
            raise AppException(
                status_code=400,
                error_type="bad-request",
                title="Bad Request",
                detail="records array is required and must not be empty",
            )

        valid, errors = ZkLogService.validate_records(records)
        if not valid:
            raise AppException(
                status_code=400,
                error_type="bad-request",
                title="Bad Request",
                detail="No valid records to insert",
                errors={"records": errors},
            )

        for row in valid:
            db.add(ZkAttendanceLog(api_key_id=device.id, **row))
        await db.flush()

        logger.info(
            "Device %s pushed %d punches (%d skipped)", device.name, len(valid), len(errors),
        )
        return {
            "success": True,
            "message": f"Successfully received {len(valid)} attendance records",
            "inserted_count": len(valid),
            "skipped_count": len(errors),
            "validation_errors": errors or None,
        }

    @staticmethod
    async def latest(db: AsyncSession) -> dict[str, Any]:
        result = await db.execute(
            select(ZkAttendanceLog)
            .order_by(
                ZkAttendanceLog.attendance_date.desc(),
                ZkAttendanceLog.attendance_time.desc(),
            )
            .limit(1),
        )
        row = result.scalars().first()
        if row is None:
            return {
                "success": True,
                "last_date": None,
                "last_time": None,
                "last_employee_code": None,
                "message": "No attendance records found",
            }
        return {
            "success": True,
            "last_date": row.attendance_date,
            "last_time": row.attendance_time,
            "last_employee_code": row.employee_code,
        }

    # ── Read ────────────────────────────────────────────────────────

    @staticmethod
    async def list_logs(
        db: AsyncSession,
        employee_code: Optional[str] = None,
        attendance_date: Optional[date] = None,
        record_type: Optional[PunchType] = None,
        limit: int = ZK_LOG_LIST_LIMIT,
    ) -> tuple[list[ZkAttendanceLog], int]:
        """Newest punches first, capped at *limit*, with the uncapped match count."""
        query = apply_filters(
            select(ZkAttendanceLog),
            ZkAttendanceLog,
            {
                "employee_code__ilike": employee_code,
                "attendance_date": attendance_date,
                "record_type": record_type.value if record_type else None,
            },
        )
        total = (
            await db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()
        rows = (
            await db.execute(
                query.order_by(
                    ZkAttendanceLog.attendance_date.desc(),
                    ZkAttendanceLog.attendance_time.desc(),
                ).limit(limit),
            )
        ).scalars().all()
        return list(rows), total

    @staticmethod
    async def employee_names(db: AsyncSession) -> dict[str, str]:
        return {code: emp.full_name for code, emp in (await _employees_by_code(db)).items()}

    # ── Write ───────────────────────────────────────────────────────

    @staticmethod
    async def _get_log(db: AsyncSession, log_id: uuid.UUID) -> ZkAttendanceLog:
        log = await db.get(ZkAttendanceLog, log_id)
        if log is None:
            raise NotFoundException("ZkAttendanceLog", log_id)
        return log

    @staticmethod
    async def update_log(
        db: AsyncSession,
        log_id: uuid.UUID,
        employee_code: Optional[str],
        attendance_date: Optional[date],
        attendance_time: Optional[str],
        record_type: PunchType = PunchType.unknown,
    ) -> ZkAttendanceLog:
        errors: dict[str, list[str]] = {}
        if not employee_code or not employee_code.strip():
            errors["employee_code"] = ["Employee code is required."]
        if attendance_date is None:
            errors["attendance_date"] = ["Date is required."]
        if not attendance_time:
            errors["attendance_time"] = ["Time is required."]
        elif not TIME_RE.match(attendance_time):
            errors["attendance_time"] = ["Time must be in HH:MM or HH:MM:SS format."]
        if errors:
            raise ValidationException(errors)

        log = await ZkLogService._get_log(db, log_id)
        log.employee_code = employee_code.strip()
        log.attendance_date = attendance_date
        log.attendance_time = normalize_time(attendance_time)
        log.record_type = record_type.value
        await db.flush()
        return log

    @staticmethod
    async def delete_log(db: AsyncSession, log_id: uuid.UUID) -> None:
        log = await ZkLogService._get_log(db, log_id)
        await db.delete(log)
        await db.flush()

    @staticmethod
    async def approve_log(db: AsyncSession, log_id: uuid.UUID, actor: User) -> ZkAttendanceLog:
        """Accept a punch for an employee known by its device code."""
        log = await ZkLogService._get_log(db, log_id)
        result = await db.execute(
            select(Employee.id).where(
                Employee.zk_employee_code == log.employee_code,
                Employee.is_active.is_(True),
            ),
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundException("Employee", log.employee_code)

        log.is_processed = True
        log.processed_at = utcnow()
        await db.flush()
        await create_audit_entry(
            db,
            action="approve",
            entity_type="zk_attendance_log",
            entity_id=log.id,
            actor_id=actor.id,
            new_values={"employee_code": log.employee_code, "is_processed": True},
        )
        return log

    # ── Derived views ───────────────────────────────────────────────

    @staticmethod
    async def export_csv(
        db: AsyncSession,
        employee_code: Optional[str] = None,
        attendance_date: Optional[date] = None,
        record_type: Optional[PunchType] = None,
    ) -> tuple[str, str]:
        """Return ``(filename, csv_text)`` for the filtered log view."""
        logs, _ = await ZkLogService.list_logs(db, employee_code, attendance_date, record_type)
        names = await ZkLogService.employee_names(db)
        rows = [
            [
                log.employee_code,
                names.get(log.employee_code) or "-",
                log.attendance_date.isoformat(),
                log.attendance_time,
                log.record_type,
                log.created_at.strftime("%Y-%m-%d %H:%M:%S") if log.created_at else "",
            ]
            for log in logs
        ]
        return csv_filename("zk_attendance"), _render_csv(ZK_CSV_HEADERS, rows)

    @staticmethod
    def summarize_daily(logs: Sequence[ZkAttendanceLog]) -> list[dict[str, Any]]:
        """Earliest entry, latest exit and punch count per employee and day."""
        summary: dict[tuple[str, date], dict[str, Any]] = {}
        for log in logs:
            key = (log.employee_code, log.attendance_date)
            item = summary.setdefault(key, {
                "employee_code": log.employee_code,
                "attendance_date": log.attendance_date,
                "entry_time": None,
                "exit_time": None,
                "punch_count": 0,
            })
            item["punch_count"] += 1
            if log.record_type == PunchType.entry.value:
                if item["entry_time"] is None or log.attendance_time < item["entry_time"]:
                    item["entry_time"] = log.attendance_time
            elif log.record_type == PunchType.exit.value:
                if item["exit_time"] is None or log.attendance_time > item["exit_time"]:
                    item["exit_time"] = log.attendance_time
        return sorted(
            summary.values(),
            key=lambda i: (-i["attendance_date"].toordinal(), i["employee_code"]),
        )

    @staticmethod
    async def daily_summary(
        db: AsyncSession,
        employee_code: Optional[str] = None,
        attendance_date: Optional[date] = None,
        record_type: Optional[PunchType] = None,
    ) -> list[dict[str, Any]]:
        logs, _ = await ZkLogService.list_logs(db, employee_code, attendance_date, record_type)
        names = await ZkLogService.employee_names(db)
        items = ZkLogService.summarize_daily(logs)
        for item in items:
            item["employee_name"] = names.get(item["employee_code"])
        return items


# ═════════════════════════════════════════════════════════════════════
# SavedAttendanceService
# ═════════════════════════════════════════════════════════════════════


class SavedAttendanceService:
    """Reconciliation of punches into reviewable attendance batches."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def active_rules(db: AsyncSession) -> list[DeductionRule]:
        result = await db.execute(
            select(DeductionRule)
            .where(DeductionRule.is_active.is_(True))
            .order_by(DeductionRule.sort_order, DeductionRule.rule_name),
        )
        return list(result.scalars().all())

    @staticmethod
    async def _get_record(db: AsyncSession, record_id: uuid.UUID) -> SavedAttendance:
        record = await db.get(SavedAttendance, record_id)
        if record is None:
            raise NotFoundException("SavedAttendance", record_id)
        return record

    @staticmethod
    async def allowances_by_code(
        db: AsyncSession,
    ) -> dict[str, tuple[Optional[int], Optional[int]]]:
        """``{zk_code: (allow_late, allow_early)}`` for employees with an attendance type."""
        allowances: dict[str, tuple[Optional[int], Optional[int]]] = {}
        for code, emp in (await _employees_by_code(db)).items():
            if emp.attendance_type is not None:
                allowances[code] = (
                    emp.attendance_type.allow_late_minutes,
                    emp.attendance_type.allow_early_exit_minutes,
                )
        return allowances

    @staticmethod
    def correct_time(
        record: SavedAttendance,
        allowances: dict[str, tuple[Optional[int], Optional[int]]],
    ) -> bool:
        allow_late, allow_early = allowances.get(record.employee_code, (None, None))
        return is_correct_time(
            record.record_status, record.difference_hours, allow_late, allow_early,
        )

    # ── Processing ──────────────────────────────────────────────────

    @staticmethod
    async def process_attendance(
        db: AsyncSession,
        from_date: date,
        to_date: date,
        process_type: ProcessType,
        actor: Optional[User] = None,
    ) -> dict[str, Any]:
        """Build a new batch from the device punches of ``[from_date, to_date]``."""
        if to_date < from_date:
            raise ValidationException({"to_date": ["End date must not be before start date."]})
        if (to_date - from_date).days >= MAX_PROCESS_RANGE_DAYS:
            raise ValidationException({
                "to_date": [f"Date range must not exceed {MAX_PROCESS_RANGE_DAYS} days."],
            })

        employees = (await db.execute(
            select(Employee).where(
                Employee.zk_employee_code.is_not(None),
                Employee.is_active.is_(True),
                Employee.employment_status == "active",
            ),
        )).scalars().all()
        rules = await SavedAttendanceService.active_rules(db)

        logs = (await db.execute(
            select(ZkAttendanceLog)
            .where(
                ZkAttendanceLog.attendance_date >= from_date,
                ZkAttendanceLog.attendance_date <= to_date,
            )
            .order_by(ZkAttendanceLog.attendance_date, ZkAttendanceLog.attendance_time),
        )).scalars().all()
        punches: dict[tuple[str, date], list[ZkAttendanceLog]] = defaultdict(list)
        for log in logs:
            punches[(log.employee_code, log.attendance_date)].append(log)

        existing = {
            (r.employee_code, r.attendance_date): r
            for r in (await db.execute(
                select(SavedAttendance).where(
                    SavedAttendance.attendance_date >= from_date,
                    SavedAttendance.attendance_date <= to_date,
                ),
            )).scalars().all()
        }

        batch_id = uuid.uuid4()
        now = utcnow()
        saved = absent = skipped_confirmed = 0
        used_log_ids: list[uuid.UUID] = []

        day = from_date
        while day <= to_date:
            for emp in employees:
                code = emp.zk_employee_code
                day_logs = punches.get((code, day), [])
                in_time, out_time = pick_in_out([l.attendance_time for l in day_logs])
                if process_type == ProcessType.morning:
                    if not in_time:
                        continue
                    out_time = None

                current = existing.get((code, day))
                if current is not None and current.is_confirmed:
                    skipped_confirmed += 1
                    continue

                att_type: Optional[AttendanceType] = emp.attendance_type
                salary = float(emp.basic_salary) if emp.basic_salary is not None else None
                expected = att_type.expected_hours if att_type else None
                is_absent = process_type == ProcessType.evening and not day_logs

                late = early = 0
                if in_time and att_type and att_type.fixed_start_time:
                    late = minutes_over(
                        time_to_minutes(in_time),
                        time_to_minutes(att_type.fixed_start_time.strftime("%H:%M")),
                        att_type.allow_late_minutes or 0,
                    )
                if out_time and att_type and att_type.fixed_end_time:
                    early = minutes_over(
                        time_to_minutes(att_type.fixed_end_time.strftime("%H:%M")),
                        time_to_minutes(out_time),
                        att_type.allow_early_exit_minutes or 0,
                    )

                deduction = calculate_deduction(late, early, is_absent, salary, rules)
                total = worked_hours(in_time, out_time)
                difference = (
                    round(total - expected, 2)
                    if total is not None and expected is not None else None
                )

                values = dict(
                    in_time=in_time,
                    out_time=out_time,
                    total_hours=total,
                    expected_hours=expected,
                    difference_hours=difference,
                    record_status=(RecordStatus.absent if is_absent else RecordStatus.normal).value,
                    late_minutes=late,
                    early_exit_minutes=early,
                    deduction_rule_id=deduction.rule_id,
                    deduction_amount=deduction.amount,
                    is_confirmed=False,
                    saved_by=actor.id if actor else None,
                    saved_at=now,
                    filter_from_date=from_date,
                    filter_to_date=to_date,
                    batch_id=batch_id,
                )
                if current is None:
                    current = SavedAttendance(employee_code=code, attendance_date=day, **values)
                    db.add(current)
                    existing[(code, day)] = current
                else:
                    for field, value in values.items():
                        setattr(current, field, value)

                saved += 1
                absent += int(is_absent)
                used_log_ids.extend(l.id for l in day_logs)
            day += timedelta(days=1)

        if used_log_ids:
            await db.execute(
                update(ZkAttendanceLog)
                .where(ZkAttendanceLog.id.in_(used_log_ids))
                .values(is_processed=True, processed_at=now),
            )
        await db.flush()

        await create_audit_entry(
            db,
            action="process",
            entity_type="saved_attendance_batch",
            entity_id=batch_id,
            actor_id=actor.id if actor else None,
            new_values={
                "from_date": from_date.isoformat(),
                "to_date": to_date.isoformat(),
                "process_type": process_type.value,
                "saved": saved,
            },
        )
        logger.info(
            "Processed attendance %s..%s (%s): %d saved, %d absent, %d confirmed kept",
            from_date, to_date, process_type.value, saved, absent, skipped_confirmed,
        )
        return {
            "batch_id": batch_id,
            "saved_count": saved,
            "absent_count": absent,
            "skipped_confirmed": skipped_confirmed,
            "processed_logs": len(used_log_ids),
        }

    # ── Batches ─────────────────────────────────────────────────────

    @staticmethod
    async def list_batches(db: AsyncSession) -> list[dict[str, Any]]:
        confirmed = func.sum(case((SavedAttendance.is_confirmed.is_(True), 1), else_=0))
        saved_at = func.max(SavedAttendance.saved_at)
        result = await db.execute(
            select(
                SavedAttendance.batch_id,
                func.count().label("record_count"),
                confirmed.label("confirmed_count"),
                func.min(SavedAttendance.attendance_date).label("from_date"),
                func.max(SavedAttendance.attendance_date).label("to_date"),
                saved_at.label("saved_at"),
            )
            .where(SavedAttendance.batch_id.is_not(None))
            .group_by(SavedAttendance.batch_id)
            .order_by(saved_at.desc()),
        )
        batches = []
        for row in result.all():
            confirmed_count = int(row.confirmed_count or 0)
            batches.append({
                "batch_id": row.batch_id,
                "record_count": row.record_count,
                "confirmed_count": confirmed_count,
                "pending_count": row.record_count - confirmed_count,
                "from_date": row.from_date,
                "to_date": row.to_date,
                "saved_at": row.saved_at,
            })
        return batches

    @staticmethod
    async def list_records(
        db: AsyncSession,
        batch_id: Optional[uuid.UUID] = None,
        employee_code: Optional[str] = None,
        is_confirmed: Optional[bool] = None,
        sort: Optional[str] = None,
    ) -> list[SavedAttendance]:
        query = apply_filters(
            select(SavedAttendance),
            SavedAttendance,
            {
                "batch_id": batch_id,
                "employee_code__ilike": employee_code,
                "is_confirmed": is_confirmed,
            },
        )
        query = apply_sorting(query, SavedAttendance, sort or DEFAULT_RECORD_SORT)
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def update_record(
        db: AsyncSession,
        record_id: uuid.UUID,
        changes: dict[str, Any],
        actor: User,
    ) -> SavedAttendance:
        """Apply manual edits; hours are recomputed from the edited in/out times."""
        record = await SavedAttendanceService._get_record(db, record_id)
        if record.is_confirmed:
            raise ValidationException({"is_confirmed": ["Confirmed records cannot be edited."]})

        for field in ("in_time", "out_time"):
            if field in changes:
                value = changes[field] or None
                if value is not None and not TIME_RE.match(value):
                    raise ValidationException({field: ["Time must be in HH:MM or HH:MM:SS format."]})
                setattr(record, field, normalize_time(value) if value else None)

        for field in ("record_status", "vacation_type", "deduction_rule_id", "deduction_amount", "notes"):
            if field in changes:
                value = changes[field]
                setattr(record, field, value.value if hasattr(value, "value") else value)

        if record.in_time and record.out_time:
            record.total_hours = edited_hours(record.in_time, record.out_time)
            record.difference_hours = (
                round(record.total_hours - record.expected_hours, 2)
                if record.expected_hours is not None else None
            )
        else:
            record.total_hours = None
            record.difference_hours = None

        await db.flush()
        await create_audit_entry(
            db,
            action="update",
            entity_type="saved_attendance",
            entity_id=record.id,
            actor_id=actor.id,
            new_values={k: str(v) if v is not None else None for k, v in changes.items()},
        )
        return record

    @staticmethod
    async def confirm_record(db: AsyncSession, record_id: uuid.UUID, actor: User) -> SavedAttendance:
        record = await SavedAttendanceService._get_record(db, record_id)
        record.is_confirmed = True
        record.confirmed_by = actor.id
        record.confirmed_at = utcnow()
        await db.flush()
        await create_audit_entry(
            db,
            action="confirm",
            entity_type="saved_attendance",
            entity_id=record.id,
            actor_id=actor.id,
            new_values={"is_confirmed": True},
        )
        return record

    @staticmethod
    async def confirm_all(db: AsyncSession, batch_id: uuid.UUID, actor: User) -> int:
        """Confirm every pending record of a batch; returns how many changed."""
        pending = (await db.execute(
            select(SavedAttendance).where(
                SavedAttendance.batch_id == batch_id,
                SavedAttendance.is_confirmed.is_(False),
            ),
        )).scalars().all()
        now = utcnow()
        for record in pending:
            record.is_confirmed = True
            record.confirmed_by = actor.id
            record.confirmed_at = now
        await db.flush()
        await create_audit_entry(
            db,
            action="confirm_all",
            entity_type="saved_attendance_batch",
            entity_id=batch_id,
            actor_id=actor.id,
            new_values={"confirmed": len(pending)},
        )
        return len(pending)

    @staticmethod
    async def delete_record(db: AsyncSession, record_id: uuid.UUID) -> None:
        record = await SavedAttendanceService._get_record(db, record_id)
        await db.delete(record)
        await db.flush()

    @staticmethod
    async def delete_batch(db: AsyncSession, batch_id: uuid.UUID, actor: User) -> int:
        result = await db.execute(
            delete(SavedAttendance).where(SavedAttendance.batch_id == batch_id),
        )
        await create_audit_entry(
            db,
            action="delete",
            entity_type="saved_attendance_batch",
            entity_id=batch_id,
            actor_id=actor.id,
            old_values={"records": result.rowcount},
        )
        return result.rowcount or 0

    # ── Reporting ───────────────────────────────────────────────────

    @staticmethod
    def totals_for(
        records: Sequence[SavedAttendance],
        names: dict[str, str],
    ) -> list[dict[str, Any]]:
        totals: dict[str, dict[str, Any]] = {}
        for r in records:
            item = totals.get(r.employee_code)
            if item is None:
                item = totals[r.employee_code] = {
                    "employee_code": r.employee_code,
                    "employee_name": names.get(r.employee_code) or r.employee_code,
                    "total_days": 0,
                    "present_days": 0,
                    "absent_days": 0,
                    "vacation_days": 0,
                    "total_worked_hours": 0.0,
                    "total_expected_hours": 0.0,
                    "total_difference_hours": 0.0,
                    "total_deduction": 0.0,
                }
            item["total_days"] += 1
            if r.record_status == RecordStatus.absent.value:
                item["absent_days"] += 1
            elif r.record_status == RecordStatus.vacation.value:
                item["vacation_days"] += 1
            elif r.in_time or r.out_time:
                item["present_days"] += 1
            item["total_worked_hours"] += r.total_hours or 0
            item["total_expected_hours"] += r.expected_hours or 0
            item["total_difference_hours"] += r.difference_hours or 0
            item["total_deduction"] += r.deduction_amount or 0

        for item in totals.values():
            for key in ("total_worked_hours", "total_expected_hours",
                        "total_difference_hours", "total_deduction"):
                item[key] = round(item[key], 2)
        return list(totals.values())

    @staticmethod
    async def employee_totals(db: AsyncSession, batch_id: uuid.UUID) -> list[dict[str, Any]]:
        records = await SavedAttendanceService.list_records(db, batch_id=batch_id)
        names = await ZkLogService.employee_names(db)
        return SavedAttendanceService.totals_for(records, names)

    @staticmethod
    async def export_csv(db: AsyncSession, batch_id: uuid.UUID) -> tuple[str, str]:
        records = await SavedAttendanceService.list_records(db, batch_id=batch_id)
        names = await ZkLogService.employee_names(db)
        rows = [
            [
                r.employee_code,
                names.get(r.employee_code, ""),
                r.attendance_date.isoformat(),
                r.in_time or "-",
                r.out_time or "-",
                f"{r.total_hours:.2f}" if r.total_hours is not None else "-",
                _fmt_signed(r.difference_hours),
                r.record_status,
                r.deduction_rule.rule_name if r.deduction_rule else "-",
                f"{r.deduction_amount or 0:.2f}",
                "Yes" if r.is_confirmed else "No",
            ]
            for r in records
        ]
        return csv_filename("saved_attendance"), _render_csv(SAVED_CSV_HEADERS, rows)

    # ── Summary email ───────────────────────────────────────────────

    @staticmethod
    def _summary_html(name: str, summary: dict[str, Any]) -> str:
        rows = "".join(
            "<tr>"
            f"<td>{r.attendance_date.isoformat()}</td>"
            f"<td>{html.escape(r.record_status)}</td>"
            f"<td>{r.in_time or '-'}</td>"
            f"<td>{r.out_time or '-'}</td>"
            f"<td>{_fmt_signed(r.difference_hours)}</td>"
            f"<td>{(r.deduction_amount or 0):.2f}</td>"
            f"<td>{html.escape(r.deduction_rule.rule_name) if r.deduction_rule else '-'}</td>"
            "</tr>"
            for r in summary["records"]
        )
        return (
            f"<h2>Attendance Summary</h2><p>Dear {html.escape(name)},</p>"
            "<table border='1' cellpadding='4' cellspacing='0'>"
            "<tr><th>Date</th><th>Status</th><th>In</th><th>Out</th>"
            "<th>Difference</th><th>Deduction</th><th>Rule</th></tr>"
            f"{rows}</table>"
            f"<p>Total deduction: {summary['total_deduction']:.2f}<br>"
            f"Absent days: {summary['total_absent_days']}<br>"
            f"Late days: {summary['total_late_days']}<br>"
            f"Vacation days: {summary['total_vacation_days']}</p>"
        )

    @staticmethod
    async def send_summary_email(
        db: AsyncSession,
        batch_id: uuid.UUID,
        employee_codes: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        query = (
            select(SavedAttendance)
            .where(
                SavedAttendance.batch_id == batch_id,
                SavedAttendance.is_confirmed.is_(True),
            )
            .order_by(SavedAttendance.attendance_date)
        )
        if employee_codes:
            query = query.where(SavedAttendance.employee_code.in_(employee_codes))
        records = (await db.execute(query)).scalars().all()
        if not records:
            raise ValidationException({"batch_id": ["No confirmed records found"]})

        employees = await _employees_by_code(db)
        summaries: dict[str, dict[str, Any]] = {}
        for r in records:
            emp = employees.get(r.employee_code)
            if emp is None or not emp.email:
                continue
            s = summaries.setdefault(r.employee_code, {
                "employee": emp,
                "records": [],
                "total_deduction": 0.0,
                "total_absent_days": 0,
                "total_late_days": 0,
                "total_vacation_days": 0,
            })
            s["records"].append(r)
            s["total_deduction"] += r.deduction_amount or 0
            if r.record_status in (RecordStatus.absent.value, RecordStatus.absent_with_note.value):
                s["total_absent_days"] += 1
            elif r.record_status == RecordStatus.vacation.value:
                s["total_vacation_days"] += 1
            if r.deduction_rule_id:
                s["total_late_days"] += 1

        first, last = records[0].attendance_date, records[-1].attendance_date
        sent = failed = 0
        errors: list[str] = []
        for s in summaries.values():
            emp: Employee = s["employee"]
            ok = await send_email(OutgoingEmail(
                to=emp.email,
                subject=f"Attendance Summary {first.isoformat()} - {last.isoformat()}",
                html=SavedAttendanceService._summary_html(emp.full_name, s),
            ))
            if ok:
                sent += 1
            else:
                failed += 1
                errors.append(f"{emp.full_name}: delivery failed")

        return {"success": True, "sent": sent, "failed": failed, "errors": errors or None}
