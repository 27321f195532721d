"""Expense request service layer — approval queue, payment and void."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.auth.models import User
from opsdesk.common.audit import create_audit_entry, utcnow
from opsdesk.common.constants import (
    EntryType,
    ExpenseRequestStatus,
    PaymentMethod,
)
from opsdesk.common.exceptions import ConflictError, NotFoundException, ValidationException
from opsdesk.expenses.models import ExpenseRequest, ExpenseType, VoidPaymentHistory
from opsdesk.treasury.currency import (
    calculate_exchange_rate,
    convert_to_base,
    load_rate_table,
)
from opsdesk.treasury.models import Bank, BankEntry, Treasury, TreasuryEntry
from opsdesk.treasury.service import (
    BANK_ENTRY_PREFIX,
    TREASURY_ENTRY_PREFIX,
    next_entry_number,
)

logger = logging.getLogger(__name__)

REQUEST_NUMBER_PREFIX = "EXR-"
VOID_REASON_MIN = 2
VOID_REASON_MAX = 500


async def next_request_number(db: AsyncSession) -> str:
    """Highest existing request number plus one (longest first, so 100000 > 99999)."""
    last = (await db.execute(
        select(ExpenseRequest.request_number)
        .where(ExpenseRequest.request_number.like(f"{REQUEST_NUMBER_PREFIX}%"))
        .order_by(
            func.length(ExpenseRequest.request_number).desc(),
            ExpenseRequest.request_number.desc(),
        )
        .limit(1)
    )).scalar_one_or_none()
    seq = int(last[len(REQUEST_NUMBER_PREFIX):]) if last else 0
    return f"{REQUEST_NUMBER_PREFIX}{seq + 1:05d}"


def _snapshot(req: ExpenseRequest) -> dict[str, Any]:
    return {
        "status": req.status,
        "payment_method": req.payment_method,
        "bank_id": str(req.bank_id) if req.bank_id else None,
        "treasury_id": str(req.treasury_id) if req.treasury_id else None,
        "expense_type_id": str(req.expense_type_id) if req.expense_type_id else None,
    }


def _require_status(req: ExpenseRequest, *allowed: ExpenseRequestStatus) -> None:
    if req.status not in {s.value for s in allowed}:
        names = " or ".join(s.value for s in allowed)
        raise ValidationException(
            {"status": [f"Request is '{req.status}'; expected {names}."]},
        )


class ExpenseRequestService:
    """Business logic for the expense request approval queue."""

    # ── Create ────────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        requester: User,
        description: str,
        amount: float,
        currency_id: Optional[uuid.UUID] = None,
        request_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> ExpenseRequest:
        """Submit a new request; numbered ``EXR-00001`` style."""
        request_number = await next_request_number(db)
        table = await load_rate_table(db)

        req = ExpenseRequest(
            request_number=request_number,
            request_date=request_date or date.today(),
            description=description,
            amount=amount,
            currency_id=currency_id,
            base_currency_amount=round(
                convert_to_base(amount, currency_id, table.rates, table.base_currency_id), 2,
            ),
            status=ExpenseRequestStatus.pending.value,
            requester_id=requester.id,
            notes=notes,
        )
        db.add(req)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            if "request_number" in str(exc.orig):
                raise ConflictError("request_number", request_number)
            raise

        await create_audit_entry(
            db,
            action="create",
            entity_type="expense_request",
            entity_id=req.id,
            actor_id=requester.id,
            new_values={"request_number": req.request_number, "amount": amount},
        )
        return req

    # ── Read ──────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(db: AsyncSession, request_id: uuid.UUID) -> ExpenseRequest:
        req = await db.get(ExpenseRequest, request_id)
        if req is None:
            raise NotFoundException("ExpenseRequest", request_id)
        return req

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        status: Optional[ExpenseRequestStatus] = None,
    ) -> list[ExpenseRequest]:
        query = select(ExpenseRequest).order_by(
            ExpenseRequest.request_date.desc(),
            ExpenseRequest.request_number.desc(),
        )
        if status is not None:
            query = query.where(ExpenseRequest.status == status.value)
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def summary(db: AsyncSession) -> dict[str, int]:
        """Count per status; every status key is present."""
        counts = {s.value: 0 for s in ExpenseRequestStatus}
        result = await db.execute(
            select(ExpenseRequest.status, func.count()).group_by(ExpenseRequest.status),
        )
        for status, count in result.all():
            if status in counts:
                counts[status] = count
        return counts

    # ── Classify ──────────────────────────────────────────────────────

    @staticmethod
    async def classify(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
        expense_type_id: Optional[uuid.UUID],
        payment_method: PaymentMethod,
        bank_id: Optional[uuid.UUID] = None,
        treasury_id: Optional[uuid.UUID] = None,
        is_asset: Optional[bool] = None,
    ) -> ExpenseRequest:
        req = await ExpenseRequestService.get_request(db, request_id)
        _require_status(req, ExpenseRequestStatus.pending, ExpenseRequestStatus.classified)

        errors: dict[str, list[str]] = {}
        if not expense_type_id:
            errors["expense_type_id"] = ["Please select expense type."]
        if payment_method == PaymentMethod.bank and not bank_id:
            errors["bank_id"] = ["Please select bank."]
        if payment_method == PaymentMethod.treasury and not treasury_id:
            errors["treasury_id"] = ["Please select treasury."]
        if errors:
            raise ValidationException(errors)

        expense_type = await db.get(ExpenseType, expense_type_id)
        if expense_type is None:
            raise NotFoundException("ExpenseType", expense_type_id)

        old = _snapshot(req)
        req.expense_type_id = expense_type.id
        req.is_asset = expense_type.is_asset if is_asset is None else is_asset
        req.payment_method = payment_method.value
        req.bank_id = bank_id if payment_method == PaymentMethod.bank else None
        req.treasury_id = treasury_id if payment_method == PaymentMethod.treasury else None
        req.status = ExpenseRequestStatus.classified.value
        req.classified_by = actor.id
        req.classified_at = utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="classify",
            entity_type="expense_request",
            entity_id=req.id,
            actor_id=actor.id,
            old_values=old,
            new_values=_snapshot(req),
        )
        return req

    # ── Simple transitions ────────────────────────────────────────────

    @staticmethod
    async def _transition(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
        target: ExpenseRequestStatus,
        allowed: tuple[ExpenseRequestStatus, ...],
    ) -> ExpenseRequest:
        req = await ExpenseRequestService.get_request(db, request_id)
        _require_status(req, *allowed)

        old_status = req.status
        req.status = target.value
        if target == ExpenseRequestStatus.approved:
            req.approved_by = actor.id
            req.approved_at = utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action=target.value,
            entity_type="expense_request",
            entity_id=req.id,
            actor_id=actor.id,
            old_values={"status": old_status},
            new_values={"status": req.status},
        )
        return req

    @staticmethod
    async def approve(db: AsyncSession, request_id: uuid.UUID, actor: User) -> ExpenseRequest:
        return await ExpenseRequestService._transition(
            db, request_id, actor,
            ExpenseRequestStatus.approved,
            (ExpenseRequestStatus.classified,),
        )

    @staticmethod
    async def reject(db: AsyncSession, request_id: uuid.UUID, actor: User) -> ExpenseRequest:
        return await ExpenseRequestService._transition(
            db, request_id, actor,
            ExpenseRequestStatus.rejected,
            (ExpenseRequestStatus.classified,),
        )

    @staticmethod
    async def cancel(db: AsyncSession, request_id: uuid.UUID, actor: User) -> ExpenseRequest:
        return await ExpenseRequestService._transition(
            db, request_id, actor,
            ExpenseRequestStatus.cancelled,
            (ExpenseRequestStatus.pending, ExpenseRequestStatus.classified),
        )

    # ── Pay ───────────────────────────────────────────────────────────

    @staticmethod
    async def pay(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
    ) -> tuple[ExpenseRequest, Union[BankEntry, TreasuryEntry]]:
        """Withdraw the request amount from its bank or treasury.

        The ledger row, the balance change and the status change are
        flushed together and committed by the caller as one transaction.
        """
        req = await ExpenseRequestService.get_request(db, request_id)
        _require_status(req, ExpenseRequestStatus.approved)

        account: Union[Bank, Treasury, None]
        if req.payment_method == PaymentMethod.bank.value:
            if not req.bank_id:
                raise ValidationException({"bank_id": ["Please select bank."]})
            account = await db.get(Bank, req.bank_id, with_for_update=True)
            if account is None:
                raise NotFoundException("Bank", req.bank_id)
        elif req.payment_method == PaymentMethod.treasury.value:
            if not req.treasury_id:
                raise ValidationException({"treasury_id": ["Please select treasury."]})
            account = await db.get(Treasury, req.treasury_id, with_for_update=True)
            if account is None:
                raise NotFoundException("Treasury", req.treasury_id)
        else:
            raise ValidationException({"payment_method": ["Request has not been classified."]})

        table = await load_rate_table(db)
        rate = calculate_exchange_rate(
            req.currency_id, account.currency_id, table.rates, table.base_currency_id,
        )
        converted = round(float(req.amount) * rate, 2)
        balance = float(account.current_balance or 0)
        if balance < converted:
            raise ValidationException({
                "amount": [
                    f"Insufficient balance: available {balance:.2f}, required {converted:.2f}.",
                ],
            })

        now = utcnow()
        balance_after = round(balance - converted, 2)
        common = dict(
            entry_type=EntryType.withdrawal.value,
            amount=float(req.amount),
            exchange_rate=rate,
            converted_amount=converted,
            balance_after=balance_after,
            description=f"Expense Request: {req.request_number}",
            entry_date=now.date(),
            status="approved",
            expense_request_id=req.id,
            created_by=actor.id,
            approved_by=actor.id,
            approved_at=now,
        )
        entry: Union[BankEntry, TreasuryEntry]
        if isinstance(account, Bank):
            entry = BankEntry(
                entry_number=next_entry_number(BANK_ENTRY_PREFIX, now),
                bank_id=account.id,
                **common,
            )
        else:
            entry = TreasuryEntry(
                entry_number=next_entry_number(TREASURY_ENTRY_PREFIX, now),
                treasury_id=account.id,
                **common,
            )
        db.add(entry)

        account.current_balance = balance_after
        req.status = ExpenseRequestStatus.paid.value
        req.paid_by = actor.id
        req.paid_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="pay",
            entity_type="expense_request",
            entity_id=req.id,
            actor_id=actor.id,
            old_values={"status": ExpenseRequestStatus.approved.value, "balance": balance},
            new_values={
                "status": req.status,
                "entry_number": entry.entry_number,
                "converted_amount": converted,
                "balance_after": balance_after,
            },
        )
        logger.info(
            "Paid %s from %s: %.2f (rate %s)",
            req.request_number, req.payment_method, converted, rate,
        )
        return req, entry

    # ── Void payment ──────────────────────────────────────────────────

    @staticmethod
    async def void_payment(
        db: AsyncSession,
        request_id: uuid.UUID,
        reason: str,
        actor: User,
    ) -> dict[str, Any]:
        """Reverse a payment: drop its ledger rows, restore balances, reopen the request."""
        reason = (reason or "").strip()
        if len(reason) < VOID_REASON_MIN or len(reason) > VOID_REASON_MAX:
            raise ValidationException({
                "reason": [f"Reason must be between {VOID_REASON_MIN} and {VOID_REASON_MAX} characters."],
            })

        req = await ExpenseRequestService.get_request(db, request_id)
        _require_status(req, ExpenseRequestStatus.paid)

        treasury_entries = (await db.execute(
            select(TreasuryEntry).where(TreasuryEntry.expense_request_id == req.id),
        )).scalars().all()
        bank_entries = (await db.execute(
            select(BankEntry).where(BankEntry.expense_request_id == req.id),
        )).scalars().all()

        restored = 0.0
        for t_entry in treasury_entries:
            treasury = await db.get(Treasury, t_entry.treasury_id, with_for_update=True)
            if treasury is not None:
                treasury.current_balance = round(
                    float(treasury.current_balance or 0) + float(t_entry.converted_amount or 0), 2,
                )
            restored += float(t_entry.converted_amount or 0)
        for b_entry in bank_entries:
            bank = await db.get(Bank, b_entry.bank_id, with_for_update=True)
            if bank is not None:
                bank.current_balance = round(
                    float(bank.current_balance or 0) + float(b_entry.converted_amount or 0), 2,
                )
            restored += float(b_entry.converted_amount or 0)

        first_entry_number = (
            treasury_entries[0].entry_number if treasury_entries
            else bank_entries[0].entry_number if bank_entries
            else None
        )
        deleted = len(treasury_entries) + len(bank_entries)
        if treasury_entries:
            await db.execute(
                delete(TreasuryEntry).where(TreasuryEntry.expense_request_id == req.id),
            )
        if bank_entries:
            await db.execute(
                delete(BankEntry).where(BankEntry.expense_request_id == req.id),
            )

        db.add(VoidPaymentHistory(
            expense_request_id=req.id,
            request_number=req.request_number,
            description=req.description,
            original_amount=float(req.amount),
            treasury_amount=round(restored, 2) or None,
            treasury_id=req.treasury_id,
            treasury_entry_number=first_entry_number,
            original_paid_at=req.paid_at,
            voided_by=actor.id,
            voided_by_name=actor.display_name or actor.email,
            reason=reason,
        ))

        req.status = ExpenseRequestStatus.approved.value
        req.paid_by = None
        req.paid_at = None
        await db.flush()

        await create_audit_entry(
            db,
            action="void_payment",
            entity_type="expense_request",
            entity_id=req.id,
            actor_id=actor.id,
            old_values={"status": ExpenseRequestStatus.paid.value},
            new_values={
                "status": req.status,
                "void_reason": reason,
                "deleted_entries_count": deleted,
            },
        )
        logger.warning(
            "Voided payment of %s by %s: %d entries, %.2f restored",
            req.request_number, actor.email, deleted, restored,
        )
        return {
            "success": True,
            "deleted_count": deleted,
            "restored_amount": round(restored, 2),
        }

    @staticmethod
    async def list_void_history(db: AsyncSession) -> list[VoidPaymentHistory]:
        result = await db.execute(
            select(VoidPaymentHistory).order_by(VoidPaymentHistory.created_at.desc()),
        )
        return list(result.scalars().all())
