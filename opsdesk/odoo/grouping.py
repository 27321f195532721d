"""Turning sales transactions into syncable units.

Two shapes are produced from the same rows:

* ``OrderGroup`` — one storefront order, synced step by step.
* ``AggregatedInvoice`` — every line of one day, brand, payment method,
  payment brand and cashier folded into a single cash-customer invoice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.constants import (
    CASH_CUSTOMER_NAME,
    CASH_CUSTOMER_PHONE,
    DEFAULT_COMPANY,
    EXCLUDED_PAYMENT_METHOD,
    OrderSyncStatus,
    StepState,
)
from opsdesk.odoo.models import Product, SalesTransaction
from opsdesk.odoo.schemas import TransactionLine


@dataclass
class StepStatus:
    customer: str = StepState.pending.value
    brand: str = StepState.pending.value
    product: str = StepState.pending.value
    order: str = StepState.pending.value
    purchase: str = StepState.pending.value

    def as_columns(self) -> dict[str, str]:
        return {f"step_{name}": value for name, value in vars(self).items()}


@dataclass
class OrderGroup:
    order_number: str
    lines: list[TransactionLine]
    date: Optional[date] = None
    customer_phone: Optional[str] = None
    product_names: str = ""
    total_amount: float = 0.0
    payment_method: Optional[str] = None
    payment_brand: Optional[str] = None
    has_non_stock: bool = False
    selected: bool = True
    skip_sync: bool = False
    sync_status: str = OrderSyncStatus.pending.value
    error_message: Optional[str] = None
    step_status: StepStatus = field(default_factory=StepStatus)


@dataclass
class InvoiceLine:
    product_sku: str
    product_name: Optional[str]
    unit_price: float
    total_qty: float = 0.0
    total_amount: float = 0.0
    cost_price: float = 0.0
    cost_sold: float = 0.0
    vendor_name: Optional[str] = None


@dataclass
class AggregatedInvoice:
    order_number: str
    date: date
    brand_name: Optional[str]
    brand_code: Optional[str]
    payment_method: Optional[str]
    payment_brand: Optional[str]
    user_name: Optional[str]
    company: str = DEFAULT_COMPANY
    product_lines: list[InvoiceLine] = field(default_factory=list)
    grand_total: float = 0.0
    original_order_numbers: list[str] = field(default_factory=list)
    has_non_stock: bool = False
    selected: bool = True
    skip_sync: bool = False
    sync_status: str = OrderSyncStatus.pending.value
    error_message: Optional[str] = None
    step_status: StepStatus = field(default_factory=StepStatus)

    @property
    def customer_phone(self) -> str:
        return CASH_CUSTOMER_PHONE

    @property
    def product_names(self) -> str:
        return ", ".join(pl.product_name or pl.product_sku for pl in self.product_lines)

    @property
    def total_amount(self) -> float:
        return self.grand_total

    def synthetic_lines(self) -> list[TransactionLine]:
        """Transaction lines the step executor sends for this invoice."""
        return [
            TransactionLine(
                order_number=self.order_number,
                created_at_date=self.date,
                customer_name=CASH_CUSTOMER_NAME,
                customer_phone=CASH_CUSTOMER_PHONE,
                brand_code=self.brand_code,
                brand_name=self.brand_name,
                product_id=pl.product_sku,
                sku=pl.product_sku,
                product_name=pl.product_name,
                unit_price=pl.unit_price,
                total=pl.total_amount,
                qty=pl.total_qty,
                cost_price=pl.cost_price or None,
                cost_sold=pl.cost_sold or None,
                payment_method=self.payment_method,
                payment_brand=self.payment_brand,
                user_name=self.user_name,
                vendor_name=pl.vendor_name,
                company=self.company,
            )
            for pl in self.product_lines
        ]


# ── Loading ─────────────────────────────────────────────────────────

def date_to_int(value: date) -> int:
    return value.year * 10000 + value.month * 100 + value.day


def int_to_date(value: int) -> date:
    return date(value // 10000, value // 100 % 100, value % 100)


async def load_transactions(
    db: AsyncSession,
    from_date: date,
    to_date: date,
    include_synced: bool = False,
) -> list[SalesTransaction]:
    query = select(SalesTransaction).where(
        SalesTransaction.created_at_date_int >= date_to_int(from_date),
        SalesTransaction.created_at_date_int <= date_to_int(to_date),
        or_(
            SalesTransaction.payment_method.is_(None),
            SalesTransaction.payment_method != EXCLUDED_PAYMENT_METHOD,
        ),
        SalesTransaction.is_deleted.is_(False),
    )
    if not include_synced:
        query = query.where(SalesTransaction.sendodoo.is_(False))
    query = query.order_by(SalesTransaction.created_at_date, SalesTransaction.order_number)
    return list((await db.execute(query)).scalars().all())


async def non_stock_skus(db: AsyncSession) -> set[str]:
    """SKUs and product ids of every non-stock product."""
    rows = (await db.execute(
        select(Product.sku, Product.product_id).where(Product.non_stock.is_(True)),
    )).all()
    keys: set[str] = set()
    for sku, product_id in rows:
        if sku:
            keys.add(sku)
        if product_id:
            keys.add(product_id)
    return keys


def is_non_stock(line: TransactionLine, non_stock: set[str]) -> bool:
    return bool(
        (line.sku and line.sku in non_stock)
        or (line.product_id and line.product_id in non_stock)
    )


def _as_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


# ── Builders ────────────────────────────────────────────────────────

def build_order_groups(
    transactions: Sequence[SalesTransaction | TransactionLine],
    non_stock: set[str],
) -> list[OrderGroup]:
    """Group rows by order number, keeping the order in which orders first appear."""
    groups: dict[str, OrderGroup] = {}
    for row in transactions:
        line = row if isinstance(row, TransactionLine) else TransactionLine.model_validate(row)
        group = groups.get(line.order_number)
        if group is None:
            group = groups[line.order_number] = OrderGroup(
                order_number=line.order_number,
                lines=[],
                date=_as_date(line.created_at_date),
                customer_phone=line.customer_phone,
                payment_method=line.payment_method,
                payment_brand=line.payment_brand,
            )
        group.lines.append(line)
        group.total_amount += float(line.total or 0)
        if is_non_stock(line, non_stock):
            group.has_non_stock = True

    for group in groups.values():
        group.total_amount = round(group.total_amount, 2)
        group.product_names = ", ".join(l.product_name or l.product_id or "" for l in group.lines)
    return list(groups.values())


def build_aggregated_invoices(
    transactions: Sequence[SalesTransaction | TransactionLine],
    non_stock: set[str],
) -> list[AggregatedInvoice]:
    """Fold rows into one invoice per (date, brand, payment method, payment brand, cashier).

    Lines inside an invoice merge per (sku, unit price). Invoice numbers are
    ``AGG-<YYYYMMDD>-<NNNN>``, counted per date in first-seen key order.
    """
    invoices: dict[tuple, AggregatedInvoice] = {}
    line_index: dict[tuple, dict[tuple[str, float], InvoiceLine]] = {}
    per_date: dict[date, int] = {}

    for row in transactions:
        line = row if isinstance(row, TransactionLine) else TransactionLine.model_validate(row)
        day = _as_date(line.created_at_date)
        if day is None:
            continue
        key = (day, line.brand_name, line.payment_method, line.payment_brand, line.user_name)

        invoice = invoices.get(key)
        if invoice is None:
            per_date[day] = per_date.get(day, 0) + 1
            invoice = invoices[key] = AggregatedInvoice(
                order_number=f"AGG-{day.strftime('%Y%m%d')}-{per_date[day]:04d}",
                date=day,
                brand_name=line.brand_name,
                brand_code=line.brand_code,
                payment_method=line.payment_method,
                payment_brand=line.payment_brand,
                user_name=line.user_name,
                company=line.company or DEFAULT_COMPANY,
            )
            line_index[key] = {}

        sku = line.sku or line.product_id or ""
        price = float(line.unit_price or 0)
        product_line = line_index[key].get((sku, price))
        if product_line is None:
            product_line = InvoiceLine(
                product_sku=sku,
                product_name=line.product_name,
                unit_price=price,
                vendor_name=line.vendor_name,
            )
            line_index[key][(sku, price)] = product_line
            invoice.product_lines.append(product_line)
        product_line.total_qty += float(line.qty or 0)
        product_line.total_amount += float(line.total or 0)
        product_line.cost_price = float(line.cost_price or product_line.cost_price or 0)
        product_line.cost_sold += float(line.cost_sold or 0)

        invoice.grand_total += float(line.total or 0)
        if line.order_number not in invoice.original_order_numbers:
            invoice.original_order_numbers.append(line.order_number)
        if is_non_stock(line, non_stock):
            invoice.has_non_stock = True

    for invoice in invoices.values():
        invoice.grand_total = round(invoice.grand_total, 2)
        for pl in invoice.product_lines:
            pl.total_amount = round(pl.total_amount, 2)
            pl.cost_sold = round(pl.cost_sold, 2)
    return list(invoices.values())
