"""Tests for common utilities — filters, sorting, problem details, health, test harness."""

from __future__ import annotations

import sys
import uuid
from datetime import date
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.attendance.models import ZkAttendanceLog
from opsdesk.common.filters import _get_column, apply_filters, apply_sorting, parse_sort
from tests.conftest import TestSessionFactory


async def _seed_logs(db: AsyncSession) -> None:
    for code, day, at, kind in (
        ("101", date(2024, 3, 4), "08:00:00", "entry"),
        ("101", date(2024, 3, 5), "16:00:00", "exit"),
        ("202", date(2024, 3, 5), "07:45:00", "entry"),
        ("1010", date(2024, 3, 6), "08:30:00", "entry"),
    ):
        db.add(ZkAttendanceLog(
            employee_code=code, attendance_date=day, attendance_time=at, record_type=kind,
        ))
    await db.flush()


async def _codes(db: AsyncSession, query) -> list[str]:
    return [r.employee_code for r in (await db.execute(query)).scalars().all()]


# ═════════════════════════════════════════════════════════════════════
# SORTING
# ═════════════════════════════════════════════════════════════════════


class TestSorting:

    def test_parse_sort(self):
        assert parse_sort("employee_code,-attendance_date") == [
            ("employee_code", False), ("attendance_date", True),
        ]
        assert parse_sort(" a , ,-b ") == [("a", False), ("b", True)]
        assert parse_sort(None) == []
        assert parse_sort("") == []

    async def test_multi_column_sort(self, db: AsyncSession):
        await _seed_logs(db)
        query = apply_sorting(
            select(ZkAttendanceLog), ZkAttendanceLog, "-attendance_date,employee_code",
        )
        rows = (await db.execute(query)).scalars().all()
        assert [(r.attendance_date.day, r.employee_code) for r in rows] == [
            (6, "1010"), (5, "101"), (5, "202"), (4, "101"),
        ]

    async def test_unknown_sort_column_ignored(self, db: AsyncSession):
        await _seed_logs(db)
        query = apply_sorting(select(ZkAttendanceLog), ZkAttendanceLog, "drop_table,employee_code")
        assert await _codes(db, query) == ["101", "101", "1010", "202"]


# ═════════════════════════════════════════════════════════════════════
# FILTERS
# ═════════════════════════════════════════════════════════════════════


class TestApplyFilters:

    async def test_equality_and_skipped_values(self, db: AsyncSession):
        await _seed_logs(db)
        query = apply_filters(select(ZkAttendanceLog), ZkAttendanceLog, {
            "record_type": "exit", "employee_code": None, "attendance_time": "",
        })
        assert await _codes(db, query) == ["101"]

    async def test_ilike(self, db: AsyncSession):
        await _seed_logs(db)
        query = apply_filters(
            select(ZkAttendanceLog), ZkAttendanceLog, {"employee_code__ilike": "10"},
        )
        assert sorted(await _codes(db, query)) == ["101", "101", "1010"]

    async def test_date_range(self, db: AsyncSession):
        await _seed_logs(db)
        query = apply_filters(select(ZkAttendanceLog), ZkAttendanceLog, {
            "attendance_date__from": date(2024, 3, 5),
            "attendance_date__to": date(2024, 3, 5),
        })
        assert sorted(await _codes(db, query)) == ["101", "202"]

    async def test_in(self, db: AsyncSession):
        await _seed_logs(db)
        query = apply_filters(
            select(ZkAttendanceLog), ZkAttendanceLog, {"employee_code__in": ["202", "1010"]},
        )
        assert sorted(await _codes(db, query)) == ["1010", "202"]

    async def test_unknown_column_ignored(self, db: AsyncSession):
        await _seed_logs(db)
        query = apply_filters(select(ZkAttendanceLog), ZkAttendanceLog, {"nope": "x"})
        assert len(await _codes(db, query)) == 4

    def test_get_column_only_returns_mapped_attributes(self):
        assert _get_column(ZkAttendanceLog, "employee_code") is ZkAttendanceLog.employee_code
        assert _get_column(ZkAttendanceLog, "__tablename__") is None
        assert _get_column(ZkAttendanceLog, "missing") is None


# ═════════════════════════════════════════════════════════════════════
# ERROR FORMAT / HEALTH
# ═════════════════════════════════════════════════════════════════════


class TestProblemDetails:

    async def test_not_found_problem(self, client, accountant_headers):
        missing = uuid.uuid4()
        resp = await client.get(f"/api/v1/expense-requests/{missing}", headers=accountant_headers)

        assert resp.status_code == 404
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"] == "https://opsdesk.local/errors/not-found"
        assert body["status"] == 404
        assert body["instance"] == f"/api/v1/expense-requests/{missing}"
        assert str(missing) in body["detail"]
        assert "errors" not in body

    async def test_request_validation_problem(self, client, hr_headers):
        resp = await client.post(
            "/api/v1/attendance/saved/process",
            json={"from_date": "soon", "process_type": "night"},
            headers=hr_headers,
        )

        assert resp.status_code == 422
        body = resp.json()
        assert body["type"] == "https://opsdesk.local/errors/validation-error"
        assert body["detail"] == "Request validation failed."
        assert set(body["errors"]) == {"from_date", "to_date", "process_type"}


class TestHarness:

    def test_conftest_is_loaded_once(self):
        here = Path(__file__).with_name("conftest.py").resolve()
        loaded = sorted(
            name for name, mod in list(sys.modules.items())
            if getattr(mod, "__file__", None) and Path(mod.__file__).resolve() == here
        )
        assert loaded == ["tests.conftest"]

    async def test_helper_sessions_share_the_test_database(self, db: AsyncSession):
        async with TestSessionFactory() as session:
            session.add(ZkAttendanceLog(
                employee_code="555", attendance_date=date(2024, 3, 4),
                attendance_time="08:00:00", record_type="entry",
            ))
            await session.commit()

        assert await _codes(db, select(ZkAttendanceLog)) == ["555"]


async def test_health_needs_no_auth(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert set(body) == {"status", "version", "environment"}
