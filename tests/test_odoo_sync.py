"""Odoo sync tests.

Covers:
- Grouping of sales rows into orders and aggregated invoices
- Preview endpoint
- Background runs (orders and aggregated), completion email
- Stop / pause, retry of failed orders, reset, supplier check
- Single-step endpoint and configuration errors
"""

from __future__ import annotations

import json
from datetime import date
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import select

from opsdesk.common.constants import SyncMode
from opsdesk.common.exceptions import ValidationException
from opsdesk.odoo.client import OdooClient
from opsdesk.odoo.grouping import (
    build_aggregated_invoices,
    build_order_groups,
    date_to_int,
    int_to_date,
)
from opsdesk.odoo.models import (
    AggregatedOrderMapping,
    OdooApiConfig,
    OdooSyncRun,
    OdooSyncRunDetail,
    Product,
    SalesTransaction,
    Supplier,
)
from opsdesk.odoo.schemas import TransactionLine
from opsdesk.odoo.service import OdooSyncService, format_duration, stop_registry
from tests.conftest import TestSessionFactory, _make_odoo_config, _make_transaction

API = "/api/v1/odoo-sync"
DAY = date(2024, 3, 5)
RANGE = {"from_date": "2024-03-05", "to_date": "2024-03-05"}


def _line(**overrides) -> TransactionLine:
    return TransactionLine(**_make_transaction(**overrides))


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content)


async def _seed_sales(db, *rows: dict) -> None:
    db.add_all([SalesTransaction(**_make_transaction(**r)) for r in rows])
    await db.commit()


def _odoo_accepts_everything(stub) -> None:
    stub.on("PUT", "/customers/", (200, {"success": True, "partner_profile_id": 5}))
    stub.on("PUT", "/brands/", (200, {"success": True, "category_id": 3}))
    stub.on("PUT", "/products/", (200, {"success": True, "product_id": 8}))
    stub.on("POST", "/sales-orders", (200, {"success": True}))
    stub.on("POST", "/purchase-orders", (201, {"success": True}))


async def _sendodoo_flags() -> dict[str, bool]:
    async with TestSessionFactory() as session:
        rows = (await session.execute(
            select(SalesTransaction.order_number, SalesTransaction.sendodoo),
        )).all()
    return {r.order_number: r.sendodoo for r in rows}


async def _start(client, headers, **body) -> dict:
    resp = await client.post(f"{API}/runs", json={**RANGE, **body}, headers=headers)
    assert resp.status_code == 202, resp.text
    return resp.json()


async def _details(client, headers, run_id: str, **params) -> dict[str, dict]:
    resp = await client.get(f"{API}/runs/{run_id}/details", params=params, headers=headers)
    assert resp.status_code == 200
    return {d["order_number"]: d for d in resp.json()}


# ── Grouping ────────────────────────────────────────────────────────


def test_date_ints():
    assert date_to_int(date(2024, 3, 5)) == 20240305
    assert int_to_date(20241231) == date(2024, 12, 31)


def test_order_groups_keep_first_seen_order():
    groups = build_order_groups([
        _line(order_number="B"),
        _line(order_number="A", product_id="P-9", product_name="Voucher", unit_price=10.5, qty=3),
        _line(order_number="B", product_id="P-2", product_name="Gift Card 50", unit_price=50),
    ], non_stock={"P-9"})

    assert [g.order_number for g in groups] == ["B", "A"]
    b, a = groups
    assert b.product_names == "Gift Card 100, Gift Card 50"
    assert b.total_amount == 150
    assert b.date == DAY
    assert b.has_non_stock is False
    assert a.total_amount == 31.5
    assert a.has_non_stock is True
    assert b.step_status.order == "pending"


def test_aggregated_invoices_numbered_per_day():
    invoices = build_aggregated_invoices([
        _line(order_number="O1"),
        _line(order_number="O2"),
        _line(order_number="O2", product_id="P-2", unit_price=50, qty=2),
        _line(order_number="O3", user_name="cashier2"),
        _line(order_number="O4", day=date(2024, 3, 6)),
    ], non_stock={"P-2"})

    assert [i.order_number for i in invoices] == [
        "AGG-20240305-0001", "AGG-20240305-0002", "AGG-20240306-0001",
    ]
    first = invoices[0]
    assert first.original_order_numbers == ["O1", "O2"]
    assert [(l.product_sku, l.total_qty, l.total_amount) for l in first.product_lines] == [
        ("P-1", 2, 200), ("P-2", 2, 100),
    ]
    assert first.grand_total == 300
    assert first.has_non_stock is True
    assert first.customer_phone == "0000"
    assert invoices[1].user_name == "cashier2"

    lines = first.synthetic_lines()
    assert {l.order_number for l in lines} == {"AGG-20240305-0001"}
    assert lines[0].customer_name == "Cash Customer"
    assert lines[0].qty == 2


def test_aggregated_lines_split_on_price():
    (invoice,) = build_aggregated_invoices([
        _line(order_number="O1", unit_price=100),
        _line(order_number="O2", unit_price=95),
    ], non_stock=set())

    assert [l.unit_price for l in invoice.product_lines] == [100, 95]


def test_format_duration():
    assert format_duration(3723) == "1h 2m 3s"
    assert format_duration(123) == "2m 3s"
    assert format_duration(3.9) == "3s"


# ── Preview ─────────────────────────────────────────────────────────


async def test_preview_orders(client, db, admin_headers):
    db.add(Product(product_id="P-2", sku="NS-2", non_stock=True))
    await _seed_sales(
        db,
        dict(order_number="ORD-1"),
        dict(order_number="ORD-1", product_id="P-2", product_name="Gift Card 50", unit_price=50),
        dict(order_number="ORD-2", payment_method="point"),
        dict(order_number="ORD-3", sendodoo=True),
        dict(order_number="ORD-4", day=date(2024, 3, 7)),
    )

    resp = await client.post(f"{API}/preview", json=RANGE, headers=admin_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["mode"] == "orders"
    assert body["total"] == 1
    (group,) = body["groups"]
    assert group["order_number"] == "ORD-1"
    assert group["product_names"] == "Gift Card 100, Gift Card 50"
    assert group["total_amount"] == 150
    assert group["has_non_stock"] is True
    assert group["step_status"]["customer"] == "pending"
    assert len(group["lines"]) == 2

    with_synced = await client.post(
        f"{API}/preview", json={**RANGE, "include_synced": True}, headers=admin_headers,
    )
    assert with_synced.json()["total"] == 2


async def test_preview_aggregated(client, db, admin_headers):
    await _seed_sales(db, dict(order_number="ORD-1"), dict(order_number="ORD-2"))

    resp = await client.post(
        f"{API}/preview", json={**RANGE, "mode": "aggregated"}, headers=admin_headers,
    )

    body = resp.json()
    assert body["total"] == 1
    assert body["groups"] == []
    (invoice,) = body["invoices"]
    assert invoice["order_number"] == "AGG-20240305-0001"
    assert invoice["original_order_numbers"] == ["ORD-1", "ORD-2"]
    assert invoice["grand_total"] == 200


async def test_preview_rejects_inverted_range(client, admin_headers):
    resp = await client.post(
        f"{API}/preview", json={"from_date": "2024-03-05", "to_date": "2024-03-01"},
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert "to_date" in resp.json()["errors"]


async def test_odoo_pages_need_grant(client, hr_headers):
    resp = await client.post(f"{API}/preview", json=RANGE, headers=hr_headers)
    assert resp.status_code == 403
    assert resp.json()["page"] == "odoo_sync"


# ── Runs ────────────────────────────────────────────────────────────


async def test_run_syncs_orders(client, db, admin_headers, odoo_config, odoo_stub):
    db.add(Product(product_id="P-3", sku="NS-3", non_stock=True))
    await _seed_sales(
        db,
        dict(order_number="ORD-1"),
        dict(order_number="ORD-1", product_id="P-2", product_name="Gift Card 50", unit_price=50),
        dict(order_number="ORD-2", product_id="P-3", vendor_name="Acme", cost_price=90),
        dict(order_number="ORD-3", payment_method="point"),
    )
    _odoo_accepts_everything(odoo_stub)

    with patch(
        "opsdesk.odoo.service.send_email", new_callable=AsyncMock, return_value=True,
    ) as send:
        started = await _start(client, admin_headers)

    assert started["status"] == "running"
    assert started["total_orders"] == 2

    run = (await client.get(f"{API}/runs/{started['id']}", headers=admin_headers)).json()
    assert run["status"] == "completed"
    assert run["successful_orders"] == 2
    assert run["failed_orders"] == 0
    assert run["progress"] == 100
    assert run["end_time"] is not None

    details = await _details(client, admin_headers, started["id"])
    first = details["ORD-1"]
    assert first["sync_status"] == "success"
    assert [first[f"step_{s}"] for s in ("customer", "brand", "product", "order", "purchase")] == [
        "found", "found", "found", "sent", "skipped",
    ]
    assert first["total_amount"] == 150
    assert details["ORD-2"]["step_purchase"] == "created"

    purchase = _body(odoo_stub.called("POST", "/purchase-orders")[0])
    assert purchase["order_number"] == "ORD-2"
    assert purchase["lines"][0]["product_sku"] == "NS-3"
    assert purchase["lines"][0]["unit_price"] == 90

    assert await _sendodoo_flags() == {"ORD-1": True, "ORD-2": True, "ORD-3": False}

    mail = send.await_args.args[0]
    assert mail.subject == "Odoo Sync Complete - 2024-03-05 to 2024-03-05"
    assert "finished successfully" in mail.html

    runs = await client.get(f"{API}/runs", headers=admin_headers)
    assert [r["id"] for r in runs.json()] == [started["id"]]


async def test_run_honours_selection_and_skips(client, db, admin_headers, odoo_config, odoo_stub):
    await _seed_sales(
        db, dict(order_number="ORD-1"), dict(order_number="ORD-2"), dict(order_number="ORD-3"),
    )
    _odoo_accepts_everything(odoo_stub)

    started = await _start(
        client, admin_headers,
        selected_order_numbers=["ORD-1", "ORD-2"], skipped_order_numbers=["ORD-2"],
    )

    run = (await client.get(f"{API}/runs/{started['id']}", headers=admin_headers)).json()
    assert run["successful_orders"] == 1
    assert run["skipped_orders"] == 2
    details = await _details(client, admin_headers, started["id"], sync_status="skipped")
    assert set(details) == {"ORD-2", "ORD-3"}
    assert details["ORD-2"]["step_order"] == "skipped"
    assert await _sendodoo_flags() == {"ORD-1": True, "ORD-2": False, "ORD-3": False}


async def test_run_without_orders_is_422(client, admin_headers, odoo_config):
    resp = await client.post(f"{API}/runs", json=RANGE, headers=admin_headers)

    assert resp.status_code == 422
    assert resp.json()["errors"] == {"orders": ["No Orders"]}


async def test_run_without_config_is_502(client, db, admin_headers):
    await _seed_sales(db, dict(order_number="ORD-1"))

    resp = await client.post(f"{API}/runs", json=RANGE, headers=admin_headers)

    assert resp.status_code == 502
    assert resp.json()["detail"] == "No active Odoo API configuration found"


async def test_aggregated_run_and_reset(client, db, admin_headers, odoo_config, odoo_stub):
    await _seed_sales(db, dict(order_number="ORD-1"), dict(order_number="ORD-2"))
    _odoo_accepts_everything(odoo_stub)

    started = await _start(client, admin_headers, mode="aggregated")

    details = await _details(client, admin_headers, started["id"])
    invoice = details["AGG-20240305-0001"]
    assert invoice["sync_status"] == "success"
    assert invoice["customer_phone"] == "0000"
    assert invoice["step_customer"] == "skipped"
    assert invoice["step_order"] == "sent"
    assert odoo_stub.called("PUT", "/customers/") == []

    payload = _body(odoo_stub.called("POST", "/sales-orders")[0])
    assert payload["order_number"] == "AGG-20240305-0001"
    assert payload["customer_phone"] == "0000"
    assert payload["order_date"] == "2024-03-05 00:00:00"
    assert [(l["product_sku"], l["quantity"], l["total"]) for l in payload["lines"]] == [
        ("P-1", 2, 200),
    ]

    async with TestSessionFactory() as session:
        mappings = (await session.execute(select(AggregatedOrderMapping))).scalars().all()
    assert {m.original_order_number: m.aggregated_order_number for m in mappings} == {
        "ORD-1": "AGG-20240305-0001", "ORD-2": "AGG-20240305-0001",
    }
    assert await _sendodoo_flags() == {"ORD-1": True, "ORD-2": True}

    reset = await client.post(
        f"{API}/reset", json={"from_date_int": 20240301, "to_date_int": 20240331},
        headers=admin_headers,
    )

    assert reset.json() == {
        "success": True,
        "transactions_reset": 2,
        "mappings_deleted": 2,
        "message": "Reset 2 transaction(s) and 2 aggregated mapping(s) successfully",
    }
    assert await _sendodoo_flags() == {"ORD-1": False, "ORD-2": False}


async def test_reset_rejects_inverted_range(client, admin_headers):
    resp = await client.post(
        f"{API}/reset", json={"from_date_int": 20240331, "to_date_int": 20240301},
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert "to_date_int" in resp.json()["errors"]


# ── Stop / pause ────────────────────────────────────────────────────


async def test_pause_and_stop_requests(client, db, admin_headers):
    paused = OdooSyncRun(from_date=DAY, to_date=DAY, total_orders=3, status="running")
    running = OdooSyncRun(from_date=DAY, to_date=DAY, total_orders=3, status="running")
    db.add_all([paused, running])
    await db.commit()

    resp = await client.post(
        f"{API}/runs/{paused.id}/stop", json={"pause": True}, headers=admin_headers,
    )
    assert resp.json()["status"] == "paused"
    assert resp.json()["end_time"] is None

    resp = await client.post(f"{API}/runs/{running.id}/stop", json={}, headers=admin_headers)
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["end_time"] is not None

    again = await client.post(f"{API}/runs/{paused.id}/stop", json={}, headers=admin_headers)
    assert again.status_code == 422
    assert again.json()["errors"] == {"status": ["Run is paused, not running."]}


async def test_process_stops_before_first_unit(db, odoo_stub):
    await _seed_sales(db, dict(order_number="ORD-1"), dict(order_number="ORD-2"))
    async with TestSessionFactory() as session:
        plan = await OdooSyncService.prepare_run(session, DAY, DAY, SyncMode.orders, None)
        await session.commit()

    stop_registry.request(plan.run_id)
    async with TestSessionFactory() as session:
        async with OdooClient(OdooApiConfig(**_make_odoo_config()), transport=odoo_stub.transport) as client:
            run = await OdooSyncService(session, client).process(plan)

    assert run.status == "cancelled"
    assert run.successful_orders == 0
    assert odoo_stub.calls == []
    assert not stop_registry.is_set(plan.run_id)


async def _prepare(actor=None, **kwargs):
    async with TestSessionFactory() as session:
        plan = await OdooSyncService.prepare_run(session, DAY, DAY, SyncMode.orders, actor, **kwargs)
        await session.commit()
    return plan


async def _process(plan, odoo_stub):
    async with TestSessionFactory() as session:
        async with OdooClient(OdooApiConfig(**_make_odoo_config()), transport=odoo_stub.transport) as client:
            return await OdooSyncService(session, client).process(plan)


def _stop_while_sending(run_id, order_number, actor, *, pause):
    """Sales-order handler that files a stop request while ``order_number`` is in flight."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if _body(request)["order_number"] == order_number:
            async with TestSessionFactory() as other:
                await OdooSyncService.request_stop(other, run_id, actor, pause=pause)
                await other.commit()
        return httpx.Response(200, json={"success": True})

    return handler


async def _detail_numbers(run_id) -> list[str]:
    async with TestSessionFactory() as session:
        rows = (await session.execute(
            select(OdooSyncRunDetail.order_number)
            .where(OdooSyncRunDetail.run_id == run_id)
            .order_by(OdooSyncRunDetail.order_number),
        )).scalars().all()
    return list(rows)


async def test_pause_after_first_order(db, admin_user, odoo_stub):
    await _seed_sales(
        db, dict(order_number="ORD-1"), dict(order_number="ORD-2"), dict(order_number="ORD-3"),
    )
    _odoo_accepts_everything(odoo_stub)
    plan = await _prepare()
    odoo_stub.on("POST", "/sales-orders", _stop_while_sending(plan.run_id, "ORD-1", admin_user, pause=True))

    run = await _process(plan, odoo_stub)

    assert run.status == "paused"
    assert run.end_time is None
    assert run.successful_orders == 1
    assert len(odoo_stub.called("POST", "/sales-orders")) == 1
    assert await _detail_numbers(plan.run_id) == ["ORD-1"]
    assert await _sendodoo_flags() == {"ORD-1": True, "ORD-2": False, "ORD-3": False}
    assert not stop_registry.is_active(plan.run_id)


async def test_stop_during_last_order_is_not_overwritten(db, admin_user, odoo_stub):
    await _seed_sales(db, dict(order_number="ORD-1"), dict(order_number="ORD-2"))
    _odoo_accepts_everything(odoo_stub)
    plan = await _prepare(admin_user)
    odoo_stub.on("POST", "/sales-orders", _stop_while_sending(plan.run_id, "ORD-2", admin_user, pause=False))

    with patch("opsdesk.odoo.service.send_email", new_callable=AsyncMock) as send:
        run = await _process(plan, odoo_stub)

    assert run.status == "cancelled"
    assert run.successful_orders == 2
    assert run.end_time is not None
    send.assert_not_awaited()
    async with TestSessionFactory() as session:
        stored = await session.get(OdooSyncRun, plan.run_id)
        assert stored.status == "cancelled"


async def test_resume_skips_orders_already_recorded(db, admin_user, odoo_stub):
    await _seed_sales(
        db, dict(order_number="ORD-1"), dict(order_number="ORD-2"), dict(order_number="ORD-3"),
    )
    _odoo_accepts_everything(odoo_stub)
    plan = await _prepare()
    odoo_stub.on("POST", "/sales-orders", _stop_while_sending(plan.run_id, "ORD-1", admin_user, pause=True))
    await _process(plan, odoo_stub)

    _odoo_accepts_everything(odoo_stub)
    resumed = await _prepare(admin_user, resume_run_id=plan.run_id)
    assert resumed.run_id == plan.run_id
    assert [u.order_number for u in resumed.units] == ["ORD-2", "ORD-3"]

    with patch("opsdesk.odoo.service.send_email", new_callable=AsyncMock, return_value=True):
        run = await _process(resumed, odoo_stub)

    assert run.status == "completed"
    assert run.end_time is not None
    assert run.successful_orders == 3
    assert await _detail_numbers(plan.run_id) == ["ORD-1", "ORD-2", "ORD-3"]
    sent = [_body(r)["order_number"] for r in odoo_stub.called("POST", "/sales-orders")]
    assert sent == ["ORD-1", "ORD-2", "ORD-3"]


async def test_resume_refuses_running_and_completed_runs(db, odoo_stub):
    await _seed_sales(db, dict(order_number="ORD-1"), dict(order_number="ORD-2"))
    done = OdooSyncRun(from_date=DAY, to_date=DAY, total_orders=2, status="completed")
    db.add(done)
    await db.commit()
    live = await _prepare()
    stop_registry.request(live.run_id)

    for run_id, status in ((live.run_id, "running"), (done.id, "completed")):
        with pytest.raises(ValidationException) as exc:
            await _prepare(resume_run_id=run_id)
        assert exc.value.errors == {
            "status": [f"Run is {status}; only paused or cancelled runs can be resumed."],
        }

    assert stop_registry.is_set(live.run_id)
    stop_registry.discard(live.run_id)


async def test_resume_waits_for_the_previous_loop(db, admin_user):
    await _seed_sales(db, dict(order_number="ORD-1"))
    live = await _prepare()
    async with TestSessionFactory() as session:
        await OdooSyncService.request_stop(session, live.run_id, admin_user, pause=True)
        await session.commit()

    with pytest.raises(ValidationException) as exc:
        await _prepare(resume_run_id=live.run_id)

    assert exc.value.errors == {"status": ["Run is still being processed."]}
    assert stop_registry.is_set(live.run_id)
    stop_registry.discard(live.run_id)


async def test_missing_run_is_404(client, admin_headers):
    resp = await client.get(
        f"{API}/runs/00000000-0000-0000-0000-000000000000", headers=admin_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["title"] == "OdooSyncRun Not Found"


# ── Retry ───────────────────────────────────────────────────────────


async def test_retry_treats_already_sent_order_as_success(
    client, db, admin_headers, odoo_config, odoo_stub,
):
    await _seed_sales(db, dict(order_number="ORD-1"), dict(order_number="ORD-2"))
    _odoo_accepts_everything(odoo_stub)

    def orders(request):
        if _body(request)["order_number"] == "ORD-2":
            return httpx.Response(200, json={"success": False, "error": "Duplicate order"})
        return httpx.Response(200, json={"success": True})

    odoo_stub.on("POST", "/sales-orders", orders)
    started = await _start(client, admin_headers)

    run = (await client.get(f"{API}/runs/{started['id']}", headers=admin_headers)).json()
    assert (run["successful_orders"], run["failed_orders"]) == (1, 1)
    failed = (await _details(client, admin_headers, started["id"], sync_status="failed"))["ORD-2"]
    assert failed["error_message"] == "Order: Duplicate order"
    assert failed["step_order"] == "failed"
    assert failed["step_purchase"] == "pending"

    odoo_stub.on("POST", "/sales-orders", (200, {"success": False, "error": "Order ORD-2 already exists"}))
    resp = await client.post(f"{API}/details/{failed['id']}/retry", json={}, headers=admin_headers)

    assert resp.status_code == 200
    retried = resp.json()
    assert retried["sync_status"] == "success"
    assert retried["step_order"] == "sent"
    assert retried["step_purchase"] == "skipped"
    assert retried["error_message"] is None
    run = (await client.get(f"{API}/runs/{started['id']}", headers=admin_headers)).json()
    assert (run["successful_orders"], run["failed_orders"]) == (2, 0)
    assert (await _sendodoo_flags())["ORD-2"] is True

    again = await client.post(f"{API}/details/{failed['id']}/retry", json={}, headers=admin_headers)
    assert again.status_code == 422
    assert "sync_status" in again.json()["errors"]


async def test_retry_purchase_with_supplier_override(
    client, db, admin_headers, odoo_config, odoo_stub,
):
    db.add(Product(product_id="P-3", non_stock=True))
    await _seed_sales(db, dict(order_number="ORD-1", product_id="P-3", vendor_name="Nobody"))
    _odoo_accepts_everything(odoo_stub)
    odoo_stub.on("POST", "/purchase-orders", (500, {"error": "supplier missing"}))
    started = await _start(client, admin_headers)

    failed = (await _details(client, admin_headers, started["id"]))["ORD-1"]
    assert failed["sync_status"] == "failed"
    assert failed["step_order"] == "sent"
    assert failed["error_message"].startswith("Purchase: Failed to create purchase order")

    partial = await client.post(
        f"{API}/details/{failed['id']}/retry", json={"retry_type": "purchase"}, headers=admin_headers,
    )
    assert partial.json()["sync_status"] == "partial"
    assert partial.json()["error_message"].startswith("Purchase: ")
    assert len(odoo_stub.called("POST", "/sales-orders")) == 1

    odoo_stub.on("POST", "/purchase-orders", (201, {"success": True}))
    done = await client.post(
        f"{API}/details/{failed['id']}/retry",
        json={"retry_type": "purchase", "supplier_code": "SUP-X"},
        headers=admin_headers,
    )
    assert done.json()["sync_status"] == "success"
    assert done.json()["step_purchase"] == "created"
    assert _body(odoo_stub.called("POST", "/purchase-orders")[-1])["supplier_code"] == "SUP-X"


# ── Suppliers ───────────────────────────────────────────────────────


async def test_check_suppliers(client, db, admin_headers, odoo_config, odoo_stub):
    db.add_all([
        Supplier(supplier_code="S1", supplier_name="Alpha", partner_profile_id=1),
        Supplier(supplier_code="S2", supplier_name="Beta", partner_profile_id=2),
        Supplier(supplier_code="S3", supplier_name="Gamma"),
    ])
    await db.commit()
    odoo_stub.on("PUT", "/suppliers/1", (200, {"success": True}))

    resp = await client.post(f"{API}/suppliers/check", headers=admin_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["environment"] == "Test"
    assert body["total_checked"] == 2
    assert [s["supplier_code"] for s in body["in_odoo"]] == ["S1"]
    assert body["not_in_odoo"][0]["supplier_code"] == "S2"
    assert body["not_in_odoo"][0]["error"] == "not found"


async def test_check_suppliers_needs_url(client, db, admin_headers):
    db.add(OdooApiConfig(**{**_make_odoo_config(), "supplier_api_url_test": None}))
    await db.commit()

    resp = await client.post(f"{API}/suppliers/check", headers=admin_headers)

    assert resp.status_code == 422
    assert resp.json()["errors"]["supplier_api_url"] == [
        "Supplier API URL or API key not configured for Test environment",
    ]


# ── Single step ─────────────────────────────────────────────────────


async def test_step_endpoint(client, admin_headers, odoo_config, odoo_stub):
    odoo_stub.on("POST", "/customers", (201, {"partner_profile_id": 44}))

    resp = await client.post(
        f"{API}/step",
        json={"step": "customer", "transactions": [
            {"order_number": "ORD-9", "customer_phone": "0555", "customer_name": "Mona"},
        ]},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["status"] == "created"
    assert body["message"] == "New customer created: Mona"


async def test_step_endpoint_reports_missing_step(client, admin_headers, odoo_config):
    resp = await client.post(f"{API}/step", json={"transactions": []}, headers=admin_headers)

    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "Missing step or transactions"


async def test_step_endpoint_without_config(client, admin_headers):
    resp = await client.post(f"{API}/step", json={"step": "customer"}, headers=admin_headers)

    assert resp.status_code == 502
    assert resp.json()["title"] == "Odoo Unavailable"
