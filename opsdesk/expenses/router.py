"""Expense request router — approval queue, payment and void.

Every endpoint requires the ``expense_requests`` page; voiding a payment
additionally requires the admin role.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.auth.dependencies import require_page_access, require_role
from opsdesk.auth.models import User
from opsdesk.common.constants import ExpenseRequestStatus, PageKey, UserRole
from opsdesk.database import get_db
from opsdesk.expenses.models import ExpenseType
from opsdesk.expenses.schemas import (
    ClassifyRequest,
    ExpenseRequestCreate,
    ExpenseRequestListResponse,
    ExpenseRequestOut,
    ExpenseTypeOut,
    PaymentOut,
    StatusSummary,
    VoidHistoryOut,
    VoidPaymentOut,
    VoidPaymentRequest,
)
from opsdesk.expenses.service import ExpenseRequestService
from opsdesk.treasury.schemas import LedgerEntryOut

router = APIRouter(prefix="", tags=["expense-requests"])

_page = require_page_access(PageKey.expense_requests)


# ── Queue ────────────────────────────────────────────────────────────

@router.post("/", response_model=ExpenseRequestOut, status_code=201)
async def create_request(
    body: ExpenseRequestCreate,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    req = await ExpenseRequestService.create_request(
        db,
        requester=user,
        description=body.description,
        amount=float(body.amount),
        currency_id=body.currency_id,
        request_date=body.request_date,
        notes=body.notes,
    )
    await db.commit()
    return ExpenseRequestOut.model_validate(req)


@router.get("/", response_model=ExpenseRequestListResponse)
async def list_requests(
    status: Optional[ExpenseRequestStatus] = Query(None),
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    rows = await ExpenseRequestService.list_requests(db, status)
    return ExpenseRequestListResponse(
        data=[ExpenseRequestOut.model_validate(r) for r in rows],
        total=len(rows),
    )


@router.get("/summary", response_model=StatusSummary)
async def status_summary(
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    return StatusSummary(**await ExpenseRequestService.summary(db))


@router.get("/types", response_model=list[ExpenseTypeOut])
async def list_expense_types(
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ExpenseType)
        .where(ExpenseType.is_active.is_(True))
        .order_by(ExpenseType.expense_name),
    )
    return [ExpenseTypeOut.model_validate(t) for t in result.scalars().all()]


@router.get("/void-history", response_model=list[VoidHistoryOut])
async def void_history(
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    rows = await ExpenseRequestService.list_void_history(db)
    return [VoidHistoryOut.model_validate(r) for r in rows]


@router.get("/{request_id}", response_model=ExpenseRequestOut)
async def get_request(
    request_id: uuid.UUID,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    return ExpenseRequestOut.model_validate(
        await ExpenseRequestService.get_request(db, request_id),
    )


# ── Transitions ──────────────────────────────────────────────────────

@router.post("/{request_id}/classify", response_model=ExpenseRequestOut)
async def classify_request(
    request_id: uuid.UUID,
    body: ClassifyRequest,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    req = await ExpenseRequestService.classify(
        db,
        request_id,
        user,
        expense_type_id=body.expense_type_id,
        payment_method=body.payment_method,
        bank_id=body.bank_id,
        treasury_id=body.treasury_id,
        is_asset=body.is_asset,
    )
    await db.commit()
    return ExpenseRequestOut.model_validate(req)


@router.post("/{request_id}/approve", response_model=ExpenseRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    req = await ExpenseRequestService.approve(db, request_id, user)
    await db.commit()
    return ExpenseRequestOut.model_validate(req)


@router.post("/{request_id}/reject", response_model=ExpenseRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    req = await ExpenseRequestService.reject(db, request_id, user)
    await db.commit()
    return ExpenseRequestOut.model_validate(req)


@router.post("/{request_id}/cancel", response_model=ExpenseRequestOut)
async def cancel_request(
    request_id: uuid.UUID,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    req = await ExpenseRequestService.cancel(db, request_id, user)
    await db.commit()
    return ExpenseRequestOut.model_validate(req)


@router.post("/{request_id}/pay", response_model=PaymentOut)
async def pay_request(
    request_id: uuid.UUID,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    req, entry = await ExpenseRequestService.pay(db, request_id, user)
    await db.commit()
    return PaymentOut(
        request=ExpenseRequestOut.model_validate(req),
        entry=LedgerEntryOut.model_validate(entry),
    )


@router.post("/{request_id}/void-payment", response_model=VoidPaymentOut)
async def void_payment(
    request_id: uuid.UUID,
    body: VoidPaymentRequest,
    user: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    result = await ExpenseRequestService.void_payment(db, request_id, body.reason, user)
    await db.commit()
    return VoidPaymentOut(**result)
