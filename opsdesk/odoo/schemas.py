"""Odoo sync Pydantic v2 schemas — transaction lines, previews, runs, results."""

import datetime as dt
import uuid
from datetime import date, datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from opsdesk.common.constants import SyncMode


# ═════════════════════════════════════════════════════════════════════
# Transaction line (what the step executor consumes)
# ═════════════════════════════════════════════════════════════════════


class TransactionLine(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_number: str
    created_at_date: Optional[Union[datetime, date, str]] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    brand_code: Optional[str] = None
    brand_name: Optional[str] = None
    product_id: Optional[str] = None
    sku: Optional[str] = None
    product_name: Optional[str] = None
    unit_price: Optional[float] = 0
    total: Optional[float] = 0
    qty: Optional[float] = 1
    cost_price: Optional[float] = None
    cost_sold: Optional[float] = None
    payment_method: Optional[str] = None
    payment_brand: Optional[str] = None
    user_name: Optional[str] = None
    vendor_name: Optional[str] = None
    company: Optional[str] = None
    supplier_code: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Preview
# ═════════════════════════════════════════════════════════════════════


class PreviewRequest(BaseModel):
    from_date: date
    to_date: date
    mode: SyncMode = SyncMode.orders
    include_synced: bool = False


class StepStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer: str
    brand: str
    product: str
    order: str
    purchase: str


class OrderGroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_number: str
    date: Optional[dt.date] = None
    customer_phone: Optional[str] = None
    product_names: str
    total_amount: float
    payment_method: Optional[str] = None
    payment_brand: Optional[str] = None
    has_non_stock: bool
    selected: bool
    skip_sync: bool
    sync_status: str
    error_message: Optional[str] = None
    step_status: StepStatusOut
    lines: List[TransactionLine]


class InvoiceLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_sku: str
    product_name: Optional[str] = None
    unit_price: float
    total_qty: float
    total_amount: float


class AggregatedInvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_number: str
    date: dt.date
    brand_name: Optional[str] = None
    brand_code: Optional[str] = None
    payment_method: Optional[str] = None
    payment_brand: Optional[str] = None
    user_name: Optional[str] = None
    company: Optional[str] = None
    product_lines: List[InvoiceLineOut]
    grand_total: float
    original_order_numbers: List[str]
    has_non_stock: bool


class PreviewResponse(BaseModel):
    mode: SyncMode
    total: int
    groups: List[OrderGroupOut] = Field(default_factory=list)
    invoices: List[AggregatedInvoiceOut] = Field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════
# Runs
# ═════════════════════════════════════════════════════════════════════


class StartRunRequest(BaseModel):
    from_date: date
    to_date: date
    mode: SyncMode = SyncMode.orders
    # None selects every order in range
    selected_order_numbers: Optional[List[str]] = None
    skipped_order_numbers: List[str] = Field(default_factory=list)
    resume_run_id: Optional[uuid.UUID] = None


class StopRunRequest(BaseModel):
    pause: bool = False


class SyncRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    from_date: date
    to_date: date
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_orders: int
    successful_orders: int
    failed_orders: int
    skipped_orders: int
    progress: int = 0
    status: str
    mode: str
    created_by: Optional[uuid.UUID] = None


class SyncRunDetailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    run_id: uuid.UUID
    order_number: str
    order_date: Optional[date] = None
    customer_phone: Optional[str] = None
    product_names: Optional[str] = None
    total_amount: float = 0
    payment_method: Optional[str] = None
    payment_brand: Optional[str] = None
    sync_status: str
    error_message: Optional[str] = None
    step_customer: str
    step_brand: str
    step_product: str
    step_order: str
    step_purchase: str


class RetryRequest(BaseModel):
    retry_type: Literal["all", "order", "purchase"] = "all"
    supplier_code: Optional[str] = Field(None, max_length=50)


class ResetRequest(BaseModel):
    from_date_int: int = Field(..., ge=19000101, le=99991231)
    to_date_int: int = Field(..., ge=19000101, le=99991231)


class ResetResponse(BaseModel):
    success: bool
    transactions_reset: int
    mappings_deleted: int
    message: str


class SupplierCheckItem(BaseModel):
    supplier_code: str
    supplier_name: str
    partner_profile_id: Optional[int] = None
    exists_in_odoo: bool
    error: Optional[str] = None


class SupplierCheckResponse(BaseModel):
    success: bool
    environment: str
    total_checked: int
    in_odoo_count: int
    not_in_odoo_count: int
    in_odoo: List[SupplierCheckItem]
    not_in_odoo: List[SupplierCheckItem]


# ═════════════════════════════════════════════════════════════════════
# Single step
# ═════════════════════════════════════════════════════════════════════


class StepRequest(BaseModel):
    step: Optional[str] = None
    transactions: List[TransactionLine] = Field(default_factory=list)
    non_stock_products: List[TransactionLine] = Field(default_factory=list)


class StepResultOut(BaseModel):
    success: bool
    status: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[Any] = None
