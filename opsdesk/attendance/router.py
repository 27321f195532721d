"""Attendance router — device push, punch logs, saved attendance batches.

Device endpoints authenticate with the ``x-api-key`` header; everything
else requires a signed-in user with the matching page.
"""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.attendance.schemas import (
    BatchOut,
    ConfirmAllResponse,
    DailySummaryItem,
    DeleteBatchResponse,
    DevicePushRequest,
    DevicePushResponse,
    EmployeeTotalOut,
    LatestPunchResponse,
    ProcessRequest,
    ProcessResponse,
    SavedAttendanceOut,
    SavedAttendanceUpdate,
    SummaryEmailRequest,
    SummaryEmailResponse,
    ZkLogListResponse,
    ZkLogOut,
    ZkLogUpdate,
)
from opsdesk.attendance.service import SavedAttendanceService, ZkLogService
from opsdesk.auth.dependencies import require_page_access
from opsdesk.auth.models import User
from opsdesk.common.constants import PageKey, PunchType
from opsdesk.common.rate_limit import DEVICE_INGEST_LIMIT, limiter
from opsdesk.database import get_db

router = APIRouter(prefix="", tags=["attendance"])

_logs_page = require_page_access(PageKey.zk_attendance_logs)
_saved_page = require_page_access(PageKey.saved_attendance)


def _csv_response(filename: str, content: str) -> Response:
    return Response(
        content=content.encode("utf-8-sig"),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ═════════════════════════════════════════════════════════════════════
# Device endpoints
# ═════════════════════════════════════════════════════════════════════


@router.post("/zk/push", response_model=DevicePushResponse, status_code=201)
@limiter.limit(DEVICE_INGEST_LIMIT)
async def device_push(
    request: Request,
    body: DevicePushRequest,
    x_api_key: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    device = await ZkLogService.authenticate_device(db, x_api_key)
    result = await ZkLogService.ingest(db, device, body.records)
    await db.commit()
    return DevicePushResponse(**result)


@router.get("/zk/latest", response_model=LatestPunchResponse)
async def device_latest(
    x_api_key: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    await ZkLogService.authenticate_device(db, x_api_key)
    return LatestPunchResponse(**await ZkLogService.latest(db))


# ═════════════════════════════════════════════════════════════════════
# Punch logs
# ═════════════════════════════════════════════════════════════════════


@router.get("/zk/logs", response_model=ZkLogListResponse)
async def list_logs(
    employee_code: Optional[str] = Query(None),
    attendance_date: Optional[date] = Query(None),
    record_type: Optional[PunchType] = Query(None),
    user: User = Depends(_logs_page),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await ZkLogService.list_logs(db, employee_code, attendance_date, record_type)
    names = await ZkLogService.employee_names(db)
    data = []
    for row in rows:
        item = ZkLogOut.model_validate(row)
        item.employee_name = names.get(row.employee_code)
        data.append(item)
    return ZkLogListResponse(data=data, total=total)


@router.get("/zk/logs/export")
async def export_logs(
    employee_code: Optional[str] = Query(None),
    attendance_date: Optional[date] = Query(None),
    record_type: Optional[PunchType] = Query(None),
    user: User = Depends(_logs_page),
    db: AsyncSession = Depends(get_db),
):
    filename, content = await ZkLogService.export_csv(
        db, employee_code, attendance_date, record_type,
    )
    return _csv_response(filename, content)


@router.get("/zk/logs/daily-summary", response_model=List[DailySummaryItem])
async def daily_summary(
    employee_code: Optional[str] = Query(None),
    attendance_date: Optional[date] = Query(None),
    record_type: Optional[PunchType] = Query(None),
    user: User = Depends(_logs_page),
    db: AsyncSession = Depends(get_db),
):
    items = await ZkLogService.daily_summary(db, employee_code, attendance_date, record_type)
    return [DailySummaryItem(**i) for i in items]


@router.put("/zk/logs/{log_id}", response_model=ZkLogOut)
async def update_log(
    log_id: uuid.UUID,
    body: ZkLogUpdate,
    user: User = Depends(_logs_page),
    db: AsyncSession = Depends(get_db),
):
    log = await ZkLogService.update_log(
        db,
        log_id,
        employee_code=body.employee_code,
        attendance_date=body.attendance_date,
        attendance_time=body.attendance_time,
        record_type=body.record_type,
    )
    await db.commit()
    return ZkLogOut.model_validate(log)


@router.delete("/zk/logs/{log_id}", status_code=204)
async def delete_log(
    log_id: uuid.UUID,
    user: User = Depends(_logs_page),
    db: AsyncSession = Depends(get_db),
):
    await ZkLogService.delete_log(db, log_id)
    await db.commit()
    return Response(status_code=204)


@router.post("/zk/logs/{log_id}/approve", response_model=ZkLogOut)
async def approve_log(
    log_id: uuid.UUID,
    user: User = Depends(_logs_page),
    db: AsyncSession = Depends(get_db),
):
    log = await ZkLogService.approve_log(db, log_id, user)
    await db.commit()
    return ZkLogOut.model_validate(log)


# ═════════════════════════════════════════════════════════════════════
# Saved attendance
# ═════════════════════════════════════════════════════════════════════


@router.post("/saved/process", response_model=ProcessResponse, status_code=201)
async def process_attendance(
    body: ProcessRequest,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    result = await SavedAttendanceService.process_attendance(
        db, body.from_date, body.to_date, body.process_type, user,
    )
    await db.commit()
    return ProcessResponse(**result)


@router.get("/saved/batches", response_model=List[BatchOut])
async def list_batches(
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    return [BatchOut(**b) for b in await SavedAttendanceService.list_batches(db)]


@router.get("/saved/records", response_model=List[SavedAttendanceOut])
async def list_records(
    batch_id: Optional[uuid.UUID] = Query(None),
    employee_code: Optional[str] = Query(None),
    is_confirmed: Optional[bool] = Query(None),
    sort: Optional[str] = Query(None, description="e.g. employee_code,-attendance_date"),
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    rows = await SavedAttendanceService.list_records(
        db, batch_id=batch_id, employee_code=employee_code, is_confirmed=is_confirmed, sort=sort,
    )
    allowances = await SavedAttendanceService.allowances_by_code(db)
    data = []
    for row in rows:
        item = SavedAttendanceOut.model_validate(row)
        item.is_correct_time = SavedAttendanceService.correct_time(row, allowances)
        data.append(item)
    return data


@router.patch("/saved/records/{record_id}", response_model=SavedAttendanceOut)
async def update_record(
    record_id: uuid.UUID,
    body: SavedAttendanceUpdate,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    record = await SavedAttendanceService.update_record(
        db, record_id, body.model_dump(exclude_unset=True), user,
    )
    await db.commit()
    return SavedAttendanceOut.model_validate(record)


@router.post("/saved/records/{record_id}/confirm", response_model=SavedAttendanceOut)
async def confirm_record(
    record_id: uuid.UUID,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    record = await SavedAttendanceService.confirm_record(db, record_id, user)
    await db.commit()
    return SavedAttendanceOut.model_validate(record)


@router.delete("/saved/records/{record_id}", status_code=204)
async def delete_record(
    record_id: uuid.UUID,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    await SavedAttendanceService.delete_record(db, record_id)
    await db.commit()
    return Response(status_code=204)


@router.post("/saved/batches/{batch_id}/confirm", response_model=ConfirmAllResponse)
async def confirm_batch(
    batch_id: uuid.UUID,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    count = await SavedAttendanceService.confirm_all(db, batch_id, user)
    await db.commit()
    return ConfirmAllResponse(batch_id=batch_id, confirmed_count=count)


@router.delete("/saved/batches/{batch_id}", response_model=DeleteBatchResponse)
async def delete_batch(
    batch_id: uuid.UUID,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    count = await SavedAttendanceService.delete_batch(db, batch_id, user)
    await db.commit()
    return DeleteBatchResponse(batch_id=batch_id, deleted_count=count)


@router.get("/saved/batches/{batch_id}/totals", response_model=List[EmployeeTotalOut])
async def employee_totals(
    batch_id: uuid.UUID,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    return [EmployeeTotalOut(**t) for t in await SavedAttendanceService.employee_totals(db, batch_id)]


@router.get("/saved/batches/{batch_id}/export")
async def export_batch(
    batch_id: uuid.UUID,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    filename, content = await SavedAttendanceService.export_csv(db, batch_id)
    return _csv_response(filename, content)


@router.post("/saved/batches/{batch_id}/email", response_model=SummaryEmailResponse)
async def email_summary(
    batch_id: uuid.UUID,
    body: SummaryEmailRequest,
    user: User = Depends(_saved_page),
    db: AsyncSession = Depends(get_db),
):
    result = await SavedAttendanceService.send_summary_email(db, batch_id, body.employee_codes)
    return SummaryEmailResponse(**result)
