"""Treasury router — currencies, accounts and ledger entries."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.auth.dependencies import get_current_user, require_page_access
from opsdesk.auth.models import User
from opsdesk.common.constants import PageKey
from opsdesk.database import get_db
from opsdesk.treasury.schemas import (
    BankOut,
    ConversionOut,
    CurrencyOut,
    LedgerEntryListResponse,
    LedgerEntryOut,
    TreasuryOut,
)
from opsdesk.treasury.service import TreasuryService

router = APIRouter(prefix="", tags=["treasury"])

_treasury_page = require_page_access(PageKey.treasury)


@router.get("/currencies", response_model=list[CurrencyOut])
async def list_currencies(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await TreasuryService.list_currencies(db)
    return [CurrencyOut.model_validate(r) for r in rows]


@router.get("/currencies/convert", response_model=ConversionOut)
async def convert_amount(
    amount: float = Query(...),
    from_currency_id: Optional[uuid.UUID] = Query(None),
    to_currency_id: Optional[uuid.UUID] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rate, converted = await TreasuryService.convert(db, amount, from_currency_id, to_currency_id)
    return ConversionOut(
        amount=amount,
        from_currency_id=from_currency_id,
        to_currency_id=to_currency_id,
        exchange_rate=rate,
        converted_amount=converted,
    )


@router.get("/banks", response_model=list[BankOut])
async def list_banks(
    user: User = Depends(_treasury_page),
    db: AsyncSession = Depends(get_db),
):
    return [BankOut.model_validate(b) for b in await TreasuryService.list_banks(db)]


@router.get("/treasuries", response_model=list[TreasuryOut])
async def list_treasuries(
    user: User = Depends(_treasury_page),
    db: AsyncSession = Depends(get_db),
):
    return [TreasuryOut.model_validate(t) for t in await TreasuryService.list_treasuries(db)]


@router.get("/entries", response_model=LedgerEntryListResponse)
async def list_entries(
    expense_request_id: Optional[uuid.UUID] = Query(None),
    user: User = Depends(_treasury_page),
    db: AsyncSession = Depends(get_db),
):
    entries = await TreasuryService.list_entries(db, expense_request_id)
    return LedgerEntryListResponse(
        data=[LedgerEntryOut.model_validate(e) for e in entries],
        total=len(entries),
    )
