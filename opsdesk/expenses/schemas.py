"""Expense request Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from opsdesk.common.constants import PaymentMethod
from opsdesk.treasury.schemas import LedgerEntryOut


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class ExpenseRequestCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=2000)
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    currency_id: Optional[uuid.UUID] = None
    request_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=2000)


class ClassifyRequest(BaseModel):
    expense_type_id: Optional[uuid.UUID] = None
    payment_method: PaymentMethod = PaymentMethod.treasury
    bank_id: Optional[uuid.UUID] = None
    treasury_id: Optional[uuid.UUID] = None
    is_asset: Optional[bool] = None


class VoidPaymentRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class ExpenseTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    expense_name: str
    is_asset: bool = False


class ExpenseRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_number: str
    request_date: date
    description: str
    amount: float
    currency_id: Optional[uuid.UUID] = None
    base_currency_amount: Optional[float] = None
    expense_type_id: Optional[uuid.UUID] = None
    is_asset: bool = False
    payment_method: Optional[str] = None
    bank_id: Optional[uuid.UUID] = None
    treasury_id: Optional[uuid.UUID] = None
    status: str
    requester_id: Optional[uuid.UUID] = None
    classified_by: Optional[uuid.UUID] = None
    classified_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    paid_by: Optional[uuid.UUID] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class ExpenseRequestListResponse(BaseModel):
    data: List[ExpenseRequestOut]
    total: int


class StatusSummary(BaseModel):
    pending: int = 0
    classified: int = 0
    approved: int = 0
    paid: int = 0
    rejected: int = 0
    cancelled: int = 0


class PaymentOut(BaseModel):
    request: ExpenseRequestOut
    entry: LedgerEntryOut


class VoidPaymentOut(BaseModel):
    success: bool
    deleted_count: int
    restored_amount: float


class VoidHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_number: str
    description: Optional[str] = None
    original_amount: float
    treasury_amount: Optional[float] = None
    treasury_entry_number: Optional[str] = None
    original_paid_at: Optional[datetime] = None
    voided_by_name: Optional[str] = None
    reason: str
    created_at: datetime
