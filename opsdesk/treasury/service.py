"""Treasury service layer — accounts, ledger lookups and entry numbering."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.audit import utcnow
from opsdesk.common.exceptions import NotFoundException
from opsdesk.treasury.currency import calculate_exchange_rate, load_rate_table
from opsdesk.treasury.models import Bank, BankEntry, Currency, Treasury, TreasuryEntry

BANK_ENTRY_PREFIX = "BNK"
TREASURY_ENTRY_PREFIX = "TRS"


def next_entry_number(prefix: str, now: Optional[datetime] = None) -> str:
    """``BNK``/``TRS`` + ``yyMMddHHmmss`` of *now*."""
    now = now or utcnow()
    return f"{prefix}{now.strftime('%y%m%d%H%M%S')}"


class TreasuryService:
    """Read side of banks, treasuries and their ledgers."""

    @staticmethod
    async def list_currencies(db: AsyncSession) -> list[Currency]:
        result = await db.execute(
            select(Currency)
            .where(Currency.is_active.is_(True))
            .order_by(Currency.is_base.desc(), Currency.currency_code),
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_banks(db: AsyncSession) -> list[Bank]:
        result = await db.execute(
            select(Bank).where(Bank.is_active.is_(True)).order_by(Bank.bank_name),
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_treasuries(db: AsyncSession) -> list[Treasury]:
        result = await db.execute(
            select(Treasury)
            .where(Treasury.is_active.is_(True))
            .order_by(Treasury.treasury_name),
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_bank(db: AsyncSession, bank_id: uuid.UUID) -> Bank:
        bank = await db.get(Bank, bank_id)
        if bank is None:
            raise NotFoundException("Bank", bank_id)
        return bank

    @staticmethod
    async def get_treasury(db: AsyncSession, treasury_id: uuid.UUID) -> Treasury:
        treasury = await db.get(Treasury, treasury_id)
        if treasury is None:
            raise NotFoundException("Treasury", treasury_id)
        return treasury

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        expense_request_id: Optional[uuid.UUID] = None,
    ) -> list[Union[BankEntry, TreasuryEntry]]:
        """Bank and treasury rows, newest first, optionally for one expense request."""
        entries: list[Union[BankEntry, TreasuryEntry]] = []
        for model in (BankEntry, TreasuryEntry):
            query = select(model)
            if expense_request_id is not None:
                query = query.where(model.expense_request_id == expense_request_id)
            entries.extend((await db.execute(query)).scalars().all())
        entries.sort(key=lambda e: (e.entry_date, e.created_at), reverse=True)
        return entries

    @staticmethod
    async def convert(
        db: AsyncSession,
        amount: float,
        from_currency_id: Optional[uuid.UUID],
        to_currency_id: Optional[uuid.UUID],
    ) -> tuple[float, float]:
        """Return ``(exchange_rate, converted_amount)`` using the latest rates."""
        table = await load_rate_table(db)
        rate = calculate_exchange_rate(
            from_currency_id, to_currency_id, table.rates, table.base_currency_id,
        )
        return rate, round(amount * rate, 2)
