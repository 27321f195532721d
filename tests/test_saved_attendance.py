"""Saved attendance batch tests.

Covers:
- Evening and morning processing, absences, deductions
- Confirmed rows surviving a re-run
- Date range guards
- Record edits, confirmation, deletion
- Per-employee totals, CSV export, summary email
"""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from opsdesk.attendance.models import DeductionRule, SavedAttendance, ZkAttendanceLog
from opsdesk.attendance.service import SavedAttendanceService
from opsdesk.common.exceptions import ValidationException
from opsdesk.common.constants import ProcessType
from opsdesk.core_hr.models import AttendanceType, Employee
from tests.conftest import TestSessionFactory, _make_attendance_type, _make_employee

PROCESS_URL = "/api/v1/attendance/saved/process"
RECORDS_URL = "/api/v1/attendance/saved/records"
BATCHES_URL = "/api/v1/attendance/saved/batches"

MON, TUE = date(2024, 3, 4), date(2024, 3, 5)


async def _seed() -> dict:
    """Two active employees, one terminated, rules and Monday punches.

    Employee 101 works 08:00-16:00 with 15 minutes grace and earns 6000;
    102 has no shift, no salary and no email.
    """
    async with TestSessionFactory() as s:
        shift = AttendanceType(**_make_attendance_type())
        s.add(shift)
        await s.flush()
        s.add_all([
            Employee(**_make_employee(zk_code="101", attendance_type_id=shift.id)),
            Employee(**_make_employee(
                zk_code="102", first_name="Omar", last_name="Hassan",
                email=None, basic_salary=None,
            )),
            Employee(**{
                **_make_employee(zk_code="103", first_name="Gone", email=None),
                "employment_status": "terminated",
            }),
        ])
        late = DeductionRule(
            rule_name="Late up to an hour", rule_type="late_arrival",
            min_minutes=1, max_minutes=60, deduction_type="fixed", deduction_value=20,
        )
        absence = DeductionRule(
            rule_name="Absence", rule_type="absence",
            deduction_type="percentage", deduction_value=1, sort_order=1,
        )
        s.add_all([late, absence])
        for code, at in (
            ("101", "08:30:00"), ("101", "16:00:00"),
            ("102", "07:50:00"), ("102", "17:00:00"),
            ("103", "08:00:00"),
        ):
            s.add(ZkAttendanceLog(
                employee_code=code, attendance_date=MON, attendance_time=at, record_type="unknown",
            ))
        await s.commit()
        return {"late_rule": late.id, "absence_rule": absence.id}


async def _process(client, headers, process_type: str = "evening") -> dict:
    resp = await client.post(
        PROCESS_URL,
        json={"from_date": MON.isoformat(), "to_date": TUE.isoformat(), "process_type": process_type},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _records(client, headers, **params) -> list[dict]:
    resp = await client.get(RECORDS_URL, params=params, headers=headers)
    assert resp.status_code == 200
    return resp.json()


def _by_key(records: list[dict]) -> dict:
    return {(r["employee_code"], r["attendance_date"]): r for r in records}


# ── Processing ──────────────────────────────────────────────────────


async def test_evening_processing(client, hr_headers):
    ids = await _seed()

    result = await _process(client, hr_headers)

    assert result["saved_count"] == 4
    assert result["absent_count"] == 2
    assert result["skipped_confirmed"] == 0
    assert result["processed_logs"] == 4

    rows = _by_key(await _records(client, hr_headers, batch_id=result["batch_id"]))
    assert set(rows) == {
        ("101", "2024-03-04"), ("101", "2024-03-05"),
        ("102", "2024-03-04"), ("102", "2024-03-05"),
    }

    monday = rows[("101", "2024-03-04")]
    assert monday["in_time"] == "08:30:00"
    assert monday["out_time"] == "16:00:00"
    assert monday["total_hours"] == pytest.approx(7.5)
    assert monday["expected_hours"] == pytest.approx(8)
    assert monday["difference_hours"] == pytest.approx(-0.5)
    assert monday["late_minutes"] == 15
    assert monday["deduction_amount"] == pytest.approx(20)
    assert monday["deduction_rule_id"] == str(ids["late_rule"])
    assert monday["record_status"] == "normal"
    assert monday["is_correct_time"] is True

    absent = rows[("101", "2024-03-05")]
    assert absent["record_status"] == "absent"
    assert absent["deduction_amount"] == pytest.approx(200)
    assert absent["deduction_rule_id"] == str(ids["absence_rule"])
    assert absent["is_correct_time"] is False

    no_shift = rows[("102", "2024-03-04")]
    assert no_shift["total_hours"] == pytest.approx(9.17)
    assert no_shift["expected_hours"] is None
    assert no_shift["difference_hours"] is None
    assert no_shift["deduction_amount"] == 0
    assert rows[("102", "2024-03-05")]["deduction_amount"] == 0


async def test_morning_processing_skips_days_without_entry(client, hr_headers):
    await _seed()

    result = await _process(client, hr_headers, "morning")

    assert result["saved_count"] == 2
    assert result["absent_count"] == 0
    rows = _by_key(await _records(client, hr_headers))
    assert set(rows) == {("101", "2024-03-04"), ("102", "2024-03-04")}
    assert all(r["out_time"] is None for r in rows.values())
    assert all(r["total_hours"] is None for r in rows.values())
    assert rows[("101", "2024-03-04")]["deduction_amount"] == pytest.approx(20)


async def test_reprocess_keeps_confirmed_rows(client, hr_headers):
    await _seed()
    first = await _process(client, hr_headers)
    rows = _by_key(await _records(client, hr_headers))
    confirmed_id = rows[("101", "2024-03-04")]["id"]
    resp = await client.post(f"{RECORDS_URL}/{confirmed_id}/confirm", headers=hr_headers)
    assert resp.json()["is_confirmed"] is True

    second = await _process(client, hr_headers)

    assert second["skipped_confirmed"] == 1
    assert second["saved_count"] == 3
    rows = _by_key(await _records(client, hr_headers))
    assert len(rows) == 4
    assert rows[("101", "2024-03-04")]["batch_id"] == first["batch_id"]
    assert rows[("102", "2024-03-04")]["batch_id"] == second["batch_id"]


async def test_process_range_guards(db):
    with pytest.raises(ValidationException) as exc:
        await SavedAttendanceService.process_attendance(db, TUE, MON, ProcessType.evening)
    assert "to_date" in exc.value.errors

    with pytest.raises(ValidationException):
        await SavedAttendanceService.process_attendance(
            db, date(2024, 1, 1), date(2024, 3, 3), ProcessType.evening,
        )


async def test_process_without_employees_saves_nothing(db):
    result = await SavedAttendanceService.process_attendance(
        db, date(2024, 1, 1), date(2024, 3, 1), ProcessType.evening,
    )
    assert result["saved_count"] == 0


# ── Batches ─────────────────────────────────────────────────────────


async def test_batches_listing(client, hr_headers):
    await _seed()
    result = await _process(client, hr_headers)

    resp = await client.get(BATCHES_URL, headers=hr_headers)

    assert resp.status_code == 200
    (batch,) = resp.json()
    assert batch["batch_id"] == result["batch_id"]
    assert batch["record_count"] == 4
    assert batch["confirmed_count"] == 0
    assert batch["pending_count"] == 4
    assert batch["from_date"] == "2024-03-04"
    assert batch["to_date"] == "2024-03-05"


async def test_confirm_and_delete_batch(client, hr_headers):
    await _seed()
    batch_id = (await _process(client, hr_headers))["batch_id"]

    confirmed = await client.post(f"{BATCHES_URL}/{batch_id}/confirm", headers=hr_headers)
    assert confirmed.json() == {"batch_id": batch_id, "confirmed_count": 4}
    again = await client.post(f"{BATCHES_URL}/{batch_id}/confirm", headers=hr_headers)
    assert again.json()["confirmed_count"] == 0

    deleted = await client.delete(f"{BATCHES_URL}/{batch_id}", headers=hr_headers)
    assert deleted.json() == {"batch_id": batch_id, "deleted_count": 4}
    assert await _records(client, hr_headers) == []


async def test_sorting_records(client, hr_headers):
    await _seed()
    await _process(client, hr_headers)

    rows = await _records(client, hr_headers, sort="-employee_code,-attendance_date")

    assert [(r["employee_code"], r["attendance_date"]) for r in rows] == [
        ("102", "2024-03-05"), ("102", "2024-03-04"),
        ("101", "2024-03-05"), ("101", "2024-03-04"),
    ]


# ── Record edits ────────────────────────────────────────────────────


async def test_update_record_recomputes_hours(client, hr_headers):
    await _seed()
    await _process(client, hr_headers)
    record = _by_key(await _records(client, hr_headers))[("101", "2024-03-04")]

    resp = await client.patch(
        f"{RECORDS_URL}/{record['id']}",
        json={"in_time": "08:00", "out_time": "16:30", "record_status": "present", "notes": "Fixed"},
        headers=hr_headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["in_time"] == "08:00:00"
    assert body["total_hours"] == pytest.approx(8.5)
    assert body["difference_hours"] == pytest.approx(0.5)
    assert body["record_status"] == "present"
    assert body["notes"] == "Fixed"


async def test_update_record_overnight_and_cleared_out_time(client, hr_headers):
    await _seed()
    await _process(client, hr_headers)
    record = _by_key(await _records(client, hr_headers))[("102", "2024-03-04")]

    overnight = await client.patch(
        f"{RECORDS_URL}/{record['id']}",
        json={"in_time": "22:00", "out_time": "06:00"},
        headers=hr_headers,
    )
    assert overnight.json()["total_hours"] == pytest.approx(8)

    cleared = await client.patch(
        f"{RECORDS_URL}/{record['id']}", json={"out_time": None}, headers=hr_headers,
    )
    assert cleared.json()["out_time"] is None
    assert cleared.json()["total_hours"] is None
    assert cleared.json()["difference_hours"] is None


async def test_update_record_rejects_bad_time(client, hr_headers):
    await _seed()
    await _process(client, hr_headers)
    record = (await _records(client, hr_headers))[0]

    resp = await client.patch(
        f"{RECORDS_URL}/{record['id']}", json={"in_time": "8h"}, headers=hr_headers,
    )

    assert resp.status_code == 422
    assert "in_time" in resp.json()["errors"]


async def test_confirmed_record_is_read_only(client, hr_headers):
    await _seed()
    await _process(client, hr_headers)
    record = (await _records(client, hr_headers))[0]
    await client.post(f"{RECORDS_URL}/{record['id']}/confirm", headers=hr_headers)

    resp = await client.patch(
        f"{RECORDS_URL}/{record['id']}", json={"notes": "late edit"}, headers=hr_headers,
    )

    assert resp.status_code == 422
    assert resp.json()["errors"] == {"is_confirmed": ["Confirmed records cannot be edited."]}


async def test_delete_record(client, hr_headers):
    await _seed()
    await _process(client, hr_headers)
    record = (await _records(client, hr_headers))[0]

    resp = await client.delete(f"{RECORDS_URL}/{record['id']}", headers=hr_headers)
    assert resp.status_code == 204
    assert len(await _records(client, hr_headers)) == 3

    missing = await client.delete(f"{RECORDS_URL}/{record['id']}", headers=hr_headers)
    assert missing.status_code == 404


# ── Reporting ───────────────────────────────────────────────────────


async def test_employee_totals(client, hr_headers):
    await _seed()
    batch_id = (await _process(client, hr_headers))["batch_id"]

    resp = await client.get(f"{BATCHES_URL}/{batch_id}/totals", headers=hr_headers)

    totals = {t["employee_code"]: t for t in resp.json()}
    sara = totals["101"]
    assert sara["employee_name"] == "Sara Ali"
    assert sara["total_days"] == 2
    assert sara["present_days"] == 1
    assert sara["absent_days"] == 1
    assert sara["total_worked_hours"] == pytest.approx(7.5)
    assert sara["total_expected_hours"] == pytest.approx(16)
    assert sara["total_difference_hours"] == pytest.approx(-0.5)
    assert sara["total_deduction"] == pytest.approx(220)
    assert totals["102"]["total_deduction"] == 0


def test_totals_count_vacation_days():
    records = [
        SavedAttendance(employee_code="101", attendance_date=MON, record_status="vacation",
                        deduction_amount=0),
        SavedAttendance(employee_code="101", attendance_date=TUE, record_status="normal",
                        in_time="08:00:00", total_hours=8, deduction_amount=5.5),
    ]

    (total,) = SavedAttendanceService.totals_for(records, {})

    assert total["employee_name"] == "101"
    assert total["vacation_days"] == 1
    assert total["present_days"] == 1
    assert total["total_deduction"] == pytest.approx(5.5)


async def test_export_batch_csv(client, hr_headers):
    await _seed()
    batch_id = (await _process(client, hr_headers))["batch_id"]

    resp = await client.get(f"{BATCHES_URL}/{batch_id}/export", headers=hr_headers)

    assert resp.status_code == 200
    assert "saved_attendance_" in resp.headers["content-disposition"]
    lines = resp.content.decode("utf-8-sig").splitlines()
    assert lines[0].startswith("Employee Code,Employee Name,Date,In Time,Out Time")
    assert lines[1] == (
        "101,Sara Ali,2024-03-04,08:30:00,16:00:00,7.50,-0.50,normal,Late up to an hour,20.00,No"
    )
    assert lines[2] == "101,Sara Ali,2024-03-05,-,-,-,-,absent,Absence,200.00,No"


# ── Summary email ───────────────────────────────────────────────────


async def test_summary_email_requires_confirmed_records(client, hr_headers):
    await _seed()
    batch_id = (await _process(client, hr_headers))["batch_id"]

    resp = await client.post(f"{BATCHES_URL}/{batch_id}/email", json={}, headers=hr_headers)

    assert resp.status_code == 422
    assert resp.json()["errors"] == {"batch_id": ["No confirmed records found"]}


async def test_summary_email_sent_per_employee_with_address(client, hr_headers):
    await _seed()
    batch_id = (await _process(client, hr_headers))["batch_id"]
    await client.post(f"{BATCHES_URL}/{batch_id}/confirm", headers=hr_headers)

    with patch(
        "opsdesk.attendance.service.send_email", new_callable=AsyncMock, return_value=True,
    ) as send:
        resp = await client.post(f"{BATCHES_URL}/{batch_id}/email", json={}, headers=hr_headers)

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "sent": 1, "failed": 0, "errors": None}
    mail = send.await_args.args[0]
    assert mail.to == "sara.ali@opsdesk.io"
    assert mail.subject == "Attendance Summary 2024-03-04 - 2024-03-05"
    assert "Total deduction: 220.00" in mail.html
    assert "Absent days: 1" in mail.html


async def test_summary_email_reports_failures(client, hr_headers):
    await _seed()
    batch_id = (await _process(client, hr_headers))["batch_id"]
    await client.post(f"{BATCHES_URL}/{batch_id}/confirm", headers=hr_headers)

    with patch(
        "opsdesk.attendance.service.send_email", new_callable=AsyncMock, return_value=False,
    ):
        resp = await client.post(
            f"{BATCHES_URL}/{batch_id}/email",
            json={"employee_codes": ["101"]},
            headers=hr_headers,
        )

    assert resp.json() == {
        "success": True, "sent": 0, "failed": 1, "errors": ["Sara Ali: delivery failed"],
    }


async def test_saved_pages_need_grant(client, accountant_headers):
    resp = await client.get(BATCHES_URL, headers=accountant_headers)
    assert resp.status_code == 403
    assert resp.json()["page"] == "saved_attendance"
