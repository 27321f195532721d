"""Treasury Pydantic v2 schemas."""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class CurrencyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    currency_code: str
    currency_name: str
    symbol: Optional[str] = None
    is_base: bool = False


class BankOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    bank_code: str
    bank_name: str
    currency_id: Optional[uuid.UUID] = None
    current_balance: float = 0


class TreasuryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    treasury_code: str
    treasury_name: str
    currency_id: Optional[uuid.UUID] = None
    current_balance: float = 0


class LedgerEntryOut(BaseModel):
    """A bank or treasury ledger row; exactly one of the account ids is set."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    entry_number: str
    entry_type: str
    bank_id: Optional[uuid.UUID] = None
    treasury_id: Optional[uuid.UUID] = None
    amount: float
    exchange_rate: float
    converted_amount: float
    balance_after: Optional[float] = None
    description: Optional[str] = None
    entry_date: date
    status: str
    expense_request_id: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None


class LedgerEntryListResponse(BaseModel):
    data: List[LedgerEntryOut]
    total: int


class ConversionOut(BaseModel):
    amount: float
    from_currency_id: Optional[uuid.UUID] = None
    to_currency_id: Optional[uuid.UUID] = None
    exchange_rate: float
    converted_amount: float
