"""Treasury ORM models: Currency, CurrencyRate, Bank, Treasury and their ledger entries."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.common.audit import TimestampMixin, utcnow
from opsdesk.common.constants import ConversionOperator
from opsdesk.database import Base


# ═════════════════════════════════════════════════════════════════════
# Currencies
# ═════════════════════════════════════════════════════════════════════


class Currency(Base, TimestampMixin):
    __tablename__ = "currencies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    currency_code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    currency_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    symbol: Mapped[Optional[str]] = mapped_column(sa.String(10))
    is_base: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Currency {self.currency_code}{' (base)' if self.is_base else ''}>"


class CurrencyRate(Base, TimestampMixin):
    """Rate of one currency against the base currency, valid from ``effective_date``."""

    __tablename__ = "currency_rates"
    __table_args__ = (
        sa.Index("ix_currency_rates_currency_date", "currency_id", "effective_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    currency_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("currencies.id", ondelete="CASCADE"), nullable=False,
    )
    rate_to_base: Mapped[float] = mapped_column(
        sa.Numeric(18, 6, asdecimal=False), nullable=False,
    )
    conversion_operator: Mapped[str] = mapped_column(
        sa.String(10), nullable=False, default=ConversionOperator.multiply.value,
    )
    effective_date: Mapped[date] = mapped_column(sa.Date, nullable=False)

    currency: Mapped[Currency] = relationship()


# ═════════════════════════════════════════════════════════════════════
# Accounts
# ═════════════════════════════════════════════════════════════════════


class Bank(Base, TimestampMixin):
    __tablename__ = "banks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    bank_code: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    bank_name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    currency_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("currencies.id"),
    )
    current_balance: Mapped[float] = mapped_column(
        sa.Numeric(14, 2, asdecimal=False), nullable=False, default=0,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Bank {self.bank_code} balance={self.current_balance}>"


class Treasury(Base, TimestampMixin):
    """Cash box."""

    __tablename__ = "treasuries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    treasury_code: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    treasury_name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    currency_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("currencies.id"),
    )
    current_balance: Mapped[float] = mapped_column(
        sa.Numeric(14, 2, asdecimal=False), nullable=False, default=0,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Treasury {self.treasury_code} balance={self.current_balance}>"


# ═════════════════════════════════════════════════════════════════════
# Ledger entries
# ═════════════════════════════════════════════════════════════════════


class _LedgerEntryColumns:
    """Columns shared by bank and treasury ledger rows."""

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    entry_number: Mapped[str] = mapped_column(sa.String(30), nullable=False, index=True)
    entry_type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    amount: Mapped[float] = mapped_column(sa.Numeric(14, 2, asdecimal=False), nullable=False)
    exchange_rate: Mapped[float] = mapped_column(
        sa.Numeric(18, 6, asdecimal=False), nullable=False, default=1,
    )
    converted_amount: Mapped[float] = mapped_column(
        sa.Numeric(14, 2, asdecimal=False), nullable=False,
    )
    balance_after: Mapped[Optional[float]] = mapped_column(sa.Numeric(14, 2, asdecimal=False))
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    entry_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="approved")
    expense_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("expense_requests.id", ondelete="SET NULL"),
        index=True,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )


class BankEntry(_LedgerEntryColumns, Base):
    __tablename__ = "bank_entries"

    bank_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("banks.id"), nullable=False,
    )

    bank: Mapped[Bank] = relationship()


class TreasuryEntry(_LedgerEntryColumns, Base):
    __tablename__ = "treasury_entries"

    treasury_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("treasuries.id"), nullable=False,
    )

    treasury: Mapped[Treasury] = relationship()
