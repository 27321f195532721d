"""Expense request workflow tests.

Covers:
- Numbering and base-currency amount on create
- Classification validation messages
- Status transitions and their guards
- Payment: ledger row, balance decrement, insufficient balance
- Void payment: balance restore, entry deletion, history, admin-only route
"""

from __future__ import annotations

import uuid
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import delete, func, select

from opsdesk.common.audit import AuditTrail
from opsdesk.common.constants import ExpenseRequestStatus, PaymentMethod
from opsdesk.common.exceptions import ConflictError, NotFoundException, ValidationException
from opsdesk.expenses.models import ExpenseRequest, ExpenseType, VoidPaymentHistory
from opsdesk.expenses.service import ExpenseRequestService, next_request_number
from opsdesk.treasury.models import (
    Bank,
    BankEntry,
    Currency,
    CurrencyRate,
    Treasury,
    TreasuryEntry,
)
from tests.conftest import TestSessionFactory


# ── Helpers ─────────────────────────────────────────────────────────


async def _accounts(db, *, treasury_balance: float = 1000, bank_balance: float = 5000):
    treasury = Treasury(treasury_code="T1", treasury_name="Main Safe",
                        current_balance=treasury_balance)
    bank = Bank(bank_code="B1", bank_name="Riyad Bank", current_balance=bank_balance)
    expense_type = ExpenseType(expense_name="Office Supplies")
    asset_type = ExpenseType(expense_name="Laptops", is_asset=True)
    db.add_all([treasury, bank, expense_type, asset_type])
    await db.commit()
    return treasury, bank, expense_type, asset_type


async def _approved_request(db, actor, *, amount: float = 200, method=PaymentMethod.treasury):
    treasury, bank, expense_type, _ = await _accounts(db)
    req = await ExpenseRequestService.create_request(db, actor, "Printer paper", amount)
    await ExpenseRequestService.classify(
        db, req.id, actor, expense_type.id, method,
        bank_id=bank.id, treasury_id=treasury.id,
    )
    await ExpenseRequestService.approve(db, req.id, actor)
    await db.commit()
    return req, treasury, bank


# ── Create ──────────────────────────────────────────────────────────


async def test_requests_are_numbered_sequentially(db, accountant_user):
    first = await ExpenseRequestService.create_request(db, accountant_user, "Taxi", 40)
    second = await ExpenseRequestService.create_request(db, accountant_user, "Lunch", 60)

    assert first.request_number == "EXR-00001"
    assert second.request_number == "EXR-00002"
    assert first.status == ExpenseRequestStatus.pending.value
    assert first.requester_id == accountant_user.id


async def test_foreign_amount_is_converted_to_base(db, accountant_user):
    base = Currency(currency_code="SAR", currency_name="Saudi Riyal", is_base=True)
    usd = Currency(currency_code="USD", currency_name="US Dollar")
    db.add_all([base, usd])
    await db.flush()
    db.add(CurrencyRate(currency_id=usd.id, rate_to_base=3.75,
                        conversion_operator="multiply", effective_date=date(2024, 1, 1)))
    await db.flush()

    req = await ExpenseRequestService.create_request(
        db, accountant_user, "Software licence", 100, currency_id=usd.id,
    )

    assert req.base_currency_amount == pytest.approx(375.0)


async def test_numbering_continues_after_a_deleted_request(db, accountant_user):
    first = await ExpenseRequestService.create_request(db, accountant_user, "Taxi", 40)
    await ExpenseRequestService.create_request(db, accountant_user, "Lunch", 60)
    await ExpenseRequestService.create_request(db, accountant_user, "Fuel", 80)
    await db.execute(delete(ExpenseRequest).where(ExpenseRequest.id == first.id))

    nxt = await ExpenseRequestService.create_request(db, accountant_user, "Parking", 15)

    assert nxt.request_number == "EXR-00004"


async def test_numbering_orders_by_length_past_five_digits(db, accountant_user):
    req = await ExpenseRequestService.create_request(db, accountant_user, "Taxi", 40)
    req.request_number = "EXR-99999"
    other = await ExpenseRequestService.create_request(db, accountant_user, "Lunch", 60)
    assert other.request_number == "EXR-100000"

    assert await next_request_number(db) == "EXR-100001"


async def test_taken_request_number_is_a_conflict(db, accountant_user):
    first = await ExpenseRequestService.create_request(db, accountant_user, "Taxi", 40)
    await db.commit()

    with patch(
        "opsdesk.expenses.service.next_request_number",
        AsyncMock(return_value=first.request_number),
    ):
        with pytest.raises(ConflictError) as exc:
            await ExpenseRequestService.create_request(db, accountant_user, "Lunch", 60)

    assert exc.value.status_code == 409
    assert exc.value.errors == {"request_number": ["'EXR-00001' is already in use."]}


# ── Classify ────────────────────────────────────────────────────────


async def test_classify_requires_type_and_account(db, accountant_user):
    req = await ExpenseRequestService.create_request(db, accountant_user, "Fuel", 80)

    with pytest.raises(ValidationException) as exc:
        await ExpenseRequestService.classify(
            db, req.id, accountant_user, None, PaymentMethod.bank,
        )

    assert exc.value.errors == {
        "expense_type_id": ["Please select expense type."],
        "bank_id": ["Please select bank."],
    }


async def test_classify_requires_treasury_for_cash(db, accountant_user):
    _, _, expense_type, _ = await _accounts(db)
    req = await ExpenseRequestService.create_request(db, accountant_user, "Fuel", 80)

    with pytest.raises(ValidationException) as exc:
        await ExpenseRequestService.classify(
            db, req.id, accountant_user, expense_type.id, PaymentMethod.treasury,
        )

    assert exc.value.errors == {"treasury_id": ["Please select treasury."]}


async def test_classify_takes_asset_flag_from_type(db, accountant_user):
    treasury, bank, _, asset_type = await _accounts(db)
    req = await ExpenseRequestService.create_request(db, accountant_user, "MacBook", 900)

    classified = await ExpenseRequestService.classify(
        db, req.id, accountant_user, asset_type.id, PaymentMethod.bank,
        bank_id=bank.id, treasury_id=treasury.id,
    )

    assert classified.status == ExpenseRequestStatus.classified.value
    assert classified.is_asset is True
    assert classified.bank_id == bank.id
    # only the chosen account is kept
    assert classified.treasury_id is None
    assert classified.classified_by == accountant_user.id


async def test_classify_unknown_request_is_404(db, accountant_user):
    with pytest.raises(NotFoundException):
        await ExpenseRequestService.classify(
            db, uuid.uuid4(), accountant_user, uuid.uuid4(), PaymentMethod.bank,
            bank_id=uuid.uuid4(),
        )


# ── Transitions ─────────────────────────────────────────────────────


async def test_approve_requires_classified(db, accountant_user):
    req = await ExpenseRequestService.create_request(db, accountant_user, "Fuel", 80)

    with pytest.raises(ValidationException) as exc:
        await ExpenseRequestService.approve(db, req.id, accountant_user)

    assert "status" in exc.value.errors


async def test_cancel_from_pending_and_not_after_payment(db, accountant_user):
    pending = await ExpenseRequestService.create_request(db, accountant_user, "Fuel", 80)
    cancelled = await ExpenseRequestService.cancel(db, pending.id, accountant_user)
    assert cancelled.status == ExpenseRequestStatus.cancelled.value

    req, _, _ = await _approved_request(db, accountant_user)
    await ExpenseRequestService.pay(db, req.id, accountant_user)
    with pytest.raises(ValidationException):
        await ExpenseRequestService.cancel(db, req.id, accountant_user)


async def test_transitions_are_audited(db, accountant_user):
    req, _, _ = await _approved_request(db, accountant_user)

    actions = (await db.execute(
        select(AuditTrail.action).where(AuditTrail.entity_id == req.id),
    )).scalars().all()

    assert set(actions) >= {"create", "classify", "approved"}


async def test_summary_has_every_status(db, accountant_user):
    await ExpenseRequestService.create_request(db, accountant_user, "A", 1)
    req = await ExpenseRequestService.create_request(db, accountant_user, "B", 2)
    await ExpenseRequestService.cancel(db, req.id, accountant_user)

    summary = await ExpenseRequestService.summary(db)

    assert summary == {
        "pending": 1, "classified": 0, "approved": 0,
        "paid": 0, "rejected": 0, "cancelled": 1,
    }


# ── Pay ─────────────────────────────────────────────────────────────


async def test_pay_from_treasury(db, accountant_user):
    req, treasury, _ = await _approved_request(db, accountant_user, amount=200)

    paid, entry = await ExpenseRequestService.pay(db, req.id, accountant_user)

    assert paid.status == ExpenseRequestStatus.paid.value
    assert paid.paid_by == accountant_user.id
    assert isinstance(entry, TreasuryEntry)
    assert entry.entry_number.startswith("TRS")
    assert entry.entry_type == "withdrawal"
    assert entry.converted_amount == pytest.approx(200)
    assert entry.balance_after == pytest.approx(800)
    assert entry.description == f"Expense Request: {req.request_number}"
    assert treasury.current_balance == pytest.approx(800)


async def test_pay_from_bank(db, accountant_user):
    req, _, bank = await _approved_request(
        db, accountant_user, amount=1200, method=PaymentMethod.bank,
    )

    _, entry = await ExpenseRequestService.pay(db, req.id, accountant_user)

    assert isinstance(entry, BankEntry)
    assert entry.entry_number.startswith("BNK")
    assert bank.current_balance == pytest.approx(3800)


async def test_pay_insufficient_balance(db, accountant_user):
    req, treasury, _ = await _approved_request(db, accountant_user, amount=1500)

    with pytest.raises(ValidationException) as exc:
        await ExpenseRequestService.pay(db, req.id, accountant_user)

    assert exc.value.errors == {
        "amount": ["Insufficient balance: available 1000.00, required 1500.00."],
    }
    assert treasury.current_balance == pytest.approx(1000)


async def test_pay_requires_approval(db, accountant_user):
    req = await ExpenseRequestService.create_request(db, accountant_user, "Fuel", 80)

    with pytest.raises(ValidationException):
        await ExpenseRequestService.pay(db, req.id, accountant_user)


# ── Void payment ────────────────────────────────────────────────────


async def test_void_payment_restores_balance(db, admin_user):
    req, treasury, _ = await _approved_request(db, admin_user, amount=300)
    await ExpenseRequestService.pay(db, req.id, admin_user)
    await db.commit()

    result = await ExpenseRequestService.void_payment(db, req.id, "Paid twice", admin_user)
    await db.commit()

    assert result == {"success": True, "deleted_count": 1, "restored_amount": 300.0}
    async with TestSessionFactory() as session:
        fresh_req = await session.get(ExpenseRequest, req.id)
        fresh_treasury = await session.get(Treasury, treasury.id)
        entries = (await session.execute(
            select(func.count()).select_from(TreasuryEntry),
        )).scalar_one()
        history = (await session.execute(select(VoidPaymentHistory))).scalars().all()

    assert fresh_req.status == ExpenseRequestStatus.approved.value
    assert fresh_req.paid_at is None
    assert fresh_treasury.current_balance == pytest.approx(1000)
    assert entries == 0
    assert len(history) == 1
    assert history[0].reason == "Paid twice"
    assert history[0].voided_by_name == "Admin User"
    assert history[0].treasury_entry_number.startswith("TRS")


@pytest.mark.parametrize("reason", ["", " x ", "y" * 501])
async def test_void_reason_length(db, admin_user, reason):
    with pytest.raises(ValidationException) as exc:
        await ExpenseRequestService.void_payment(db, uuid.uuid4(), reason, admin_user)
    assert "reason" in exc.value.errors


async def test_void_requires_paid_status(db, admin_user):
    req, _, _ = await _approved_request(db, admin_user)

    with pytest.raises(ValidationException) as exc:
        await ExpenseRequestService.void_payment(db, req.id, "Mistake", admin_user)

    assert "status" in exc.value.errors


# ── API ─────────────────────────────────────────────────────────────


async def test_full_workflow_over_http(client, db, accountant_headers, admin_headers):
    treasury, _, expense_type, _ = await _accounts(db, treasury_balance=500)

    created = await client.post(
        "/api/v1/expense-requests/",
        json={"description": "Team dinner", "amount": "150.00"},
        headers=accountant_headers,
    )
    assert created.status_code == 201
    req_id = created.json()["id"]
    assert created.json()["request_number"] == "EXR-00001"

    classified = await client.post(
        f"/api/v1/expense-requests/{req_id}/classify",
        json={
            "expense_type_id": str(expense_type.id),
            "payment_method": "treasury",
            "treasury_id": str(treasury.id),
        },
        headers=accountant_headers,
    )
    assert classified.json()["status"] == "classified"

    approved = await client.post(
        f"/api/v1/expense-requests/{req_id}/approve", headers=accountant_headers,
    )
    assert approved.json()["status"] == "approved"

    paid = await client.post(f"/api/v1/expense-requests/{req_id}/pay", headers=accountant_headers)
    assert paid.status_code == 200
    body = paid.json()
    assert body["request"]["status"] == "paid"
    assert body["entry"]["treasury_id"] == str(treasury.id)
    assert body["entry"]["balance_after"] == pytest.approx(350)

    entries = await client.get(
        "/api/v1/treasury/entries",
        params={"expense_request_id": req_id},
        headers=accountant_headers,
    )
    assert entries.json()["total"] == 1

    voided = await client.post(
        f"/api/v1/expense-requests/{req_id}/void-payment",
        json={"reason": "Wrong safe"},
        headers=admin_headers,
    )
    assert voided.status_code == 200
    assert voided.json()["restored_amount"] == pytest.approx(150)

    history = await client.get("/api/v1/expense-requests/void-history", headers=admin_headers)
    assert [h["reason"] for h in history.json()] == ["Wrong safe"]

    summary = await client.get("/api/v1/expense-requests/summary", headers=accountant_headers)
    assert summary.json()["approved"] == 1


async def test_classify_errors_over_http(client, db, accountant_headers):
    created = await client.post(
        "/api/v1/expense-requests/",
        json={"description": "Fuel", "amount": 50},
        headers=accountant_headers,
    )

    resp = await client.post(
        f"/api/v1/expense-requests/{created.json()['id']}/classify",
        json={"payment_method": "bank"},
        headers=accountant_headers,
    )

    assert resp.status_code == 422
    assert resp.json()["errors"]["bank_id"] == ["Please select bank."]


async def test_create_rejects_non_positive_amount(client, accountant_headers):
    resp = await client.post(
        "/api/v1/expense-requests/",
        json={"description": "Nothing", "amount": 0},
        headers=accountant_headers,
    )
    assert resp.status_code == 422
    assert "amount" in resp.json()["errors"]


async def test_list_filters_by_status(client, db, accountant_user, accountant_headers):
    await ExpenseRequestService.create_request(db, accountant_user, "A", 10)
    req = await ExpenseRequestService.create_request(db, accountant_user, "B", 20)
    await ExpenseRequestService.cancel(db, req.id, accountant_user)
    await db.commit()

    resp = await client.get(
        "/api/v1/expense-requests/", params={"status": "cancelled"}, headers=accountant_headers,
    )

    assert resp.json()["total"] == 1
    assert resp.json()["data"][0]["description"] == "B"


async def test_get_unknown_request_is_404(client, accountant_headers):
    resp = await client.get(f"/api/v1/expense-requests/{uuid.uuid4()}", headers=accountant_headers)

    assert resp.status_code == 404
    assert resp.json()["type"].endswith("/not-found")


async def test_expense_types_listing(client, db, accountant_headers):
    db.add_all([
        ExpenseType(expense_name="Travel"),
        ExpenseType(expense_name="Archived", is_active=False),
    ])
    await db.commit()

    resp = await client.get("/api/v1/expense-requests/types", headers=accountant_headers)

    assert [t["expense_name"] for t in resp.json()] == ["Travel"]
