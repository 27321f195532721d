"""Attendance Pydantic v2 schemas — device push, punch logs, saved batches."""

import uuid
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from opsdesk.common.constants import ProcessType, PunchType, RecordStatus


# ═════════════════════════════════════════════════════════════════════
# Device push
# ═════════════════════════════════════════════════════════════════════


class DevicePushRequest(BaseModel):
    # Records stay loose dicts; each one is validated individually so a
    # bad punch is reported instead of rejecting the whole push.
    records: List[dict[str, Any]] = Field(default_factory=list)


class DevicePushResponse(BaseModel):
    success: bool
    message: str
    inserted_count: int
    skipped_count: int
    validation_errors: Optional[List[str]] = None


class LatestPunchResponse(BaseModel):
    success: bool = True
    last_date: Optional[date] = None
    last_time: Optional[str] = None
    last_employee_code: Optional[str] = None
    message: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Punch logs
# ═════════════════════════════════════════════════════════════════════


class ZkLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    employee_name: Optional[str] = None
    attendance_date: date
    attendance_time: str
    record_type: str
    is_processed: bool = False
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ZkLogListResponse(BaseModel):
    data: List[ZkLogOut]
    total: int


class ZkLogUpdate(BaseModel):
    employee_code: Optional[str] = Field(None, max_length=50)
    attendance_date: Optional[date] = None
    attendance_time: Optional[str] = Field(None, max_length=8)
    record_type: PunchType = PunchType.unknown


class DailySummaryItem(BaseModel):
    employee_code: str
    employee_name: Optional[str] = None
    attendance_date: date
    entry_time: Optional[str] = None
    exit_time: Optional[str] = None
    punch_count: int


# ═════════════════════════════════════════════════════════════════════
# Saved attendance
# ═════════════════════════════════════════════════════════════════════


class ProcessRequest(BaseModel):
    from_date: date
    to_date: date
    process_type: ProcessType = ProcessType.evening


class ProcessResponse(BaseModel):
    batch_id: uuid.UUID
    saved_count: int
    absent_count: int
    skipped_confirmed: int
    processed_logs: int


class BatchOut(BaseModel):
    batch_id: uuid.UUID
    record_count: int
    confirmed_count: int
    pending_count: int
    from_date: date
    to_date: date
    saved_at: Optional[datetime] = None


class SavedAttendanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    attendance_date: date
    in_time: Optional[str] = None
    out_time: Optional[str] = None
    total_hours: Optional[float] = None
    expected_hours: Optional[float] = None
    difference_hours: Optional[float] = None
    record_status: str
    vacation_type: Optional[str] = None
    late_minutes: int = 0
    early_exit_minutes: int = 0
    deduction_rule_id: Optional[uuid.UUID] = None
    deduction_amount: float = 0
    is_confirmed: bool = False
    confirmed_at: Optional[datetime] = None
    batch_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    is_correct_time: bool = False


class SavedAttendanceUpdate(BaseModel):
    in_time: Optional[str] = Field(None, max_length=8)
    out_time: Optional[str] = Field(None, max_length=8)
    record_status: Optional[RecordStatus] = None
    vacation_type: Optional[str] = Field(None, max_length=50)
    deduction_rule_id: Optional[uuid.UUID] = None
    deduction_amount: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)


class ConfirmAllResponse(BaseModel):
    batch_id: uuid.UUID
    confirmed_count: int


class DeleteBatchResponse(BaseModel):
    batch_id: uuid.UUID
    deleted_count: int


class EmployeeTotalOut(BaseModel):
    employee_code: str
    employee_name: str
    total_days: int
    present_days: int
    absent_days: int
    vacation_days: int
    total_worked_hours: float
    total_expected_hours: float
    total_difference_hours: float
    total_deduction: float


class SummaryEmailRequest(BaseModel):
    employee_codes: Optional[List[str]] = None


class SummaryEmailResponse(BaseModel):
    success: bool
    sent: int
    failed: int
    errors: Optional[List[str]] = None
