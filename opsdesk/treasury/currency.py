"""Currency conversion against the base currency.

Rates are expressed per currency as ``rate_to_base`` plus an operator:

* ``multiply`` → ``base_amount = amount * rate_to_base``
* ``divide``   → ``base_amount = amount / rate_to_base``

The conversion helpers are pure functions over a ``{currency_id: RateInfo}``
mapping; ``load_rate_table`` builds that mapping from the database.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.constants import ConversionOperator
from opsdesk.treasury.models import Currency, CurrencyRate

Rates = Mapping[uuid.UUID, "RateInfo"]


@dataclass(frozen=True)
class RateInfo:
    rate_to_base: float
    conversion_operator: ConversionOperator = ConversionOperator.multiply


@dataclass
class RateTable:
    rates: dict[uuid.UUID, RateInfo] = field(default_factory=dict)
    base_currency_id: Optional[uuid.UUID] = None


def convert_to_base(
    amount: float,
    currency_id: Optional[uuid.UUID],
    rates: Rates,
    base_currency_id: Optional[uuid.UUID] = None,
) -> float:
    """Convert ``amount`` in ``currency_id`` into the base currency."""
    if not currency_id or not amount:
        return amount
    if base_currency_id is not None and currency_id == base_currency_id:
        return amount
    rate = rates.get(currency_id)
    if rate is None or rate.rate_to_base <= 0:
        return amount
    if rate.conversion_operator == ConversionOperator.divide:
        return amount / rate.rate_to_base
    return amount * rate.rate_to_base


def convert_from_base(
    amount: float,
    currency_id: Optional[uuid.UUID],
    rates: Rates,
    base_currency_id: Optional[uuid.UUID] = None,
) -> float:
    """Convert a base-currency ``amount`` into ``currency_id``."""
    if not currency_id or not amount:
        return amount
    if base_currency_id is not None and currency_id == base_currency_id:
        return amount
    rate = rates.get(currency_id)
    if rate is None or rate.rate_to_base <= 0:
        return amount
    if rate.conversion_operator == ConversionOperator.divide:
        return amount * rate.rate_to_base
    return amount / rate.rate_to_base


def calculate_exchange_rate(
    from_currency_id: Optional[uuid.UUID],
    to_currency_id: Optional[uuid.UUID],
    rates: Rates,
    base_currency_id: Optional[uuid.UUID] = None,
) -> float:
    """Rate that turns one unit of ``from_currency_id`` into ``to_currency_id``."""
    if not from_currency_id or not to_currency_id or from_currency_id == to_currency_id:
        return 1.0
    from_in_base = (
        1.0 if from_currency_id == base_currency_id
        else convert_to_base(1.0, from_currency_id, rates)
    )
    to_in_base = (
        1.0 if to_currency_id == base_currency_id
        else convert_to_base(1.0, to_currency_id, rates)
    )
    if to_in_base == 0:
        return 1.0
    return from_in_base / to_in_base


def get_latest_rate(
    currency_id: Optional[uuid.UUID],
    rates: Rates,
    base_currency_id: Optional[uuid.UUID] = None,
) -> float:
    if not currency_id or currency_id == base_currency_id:
        return 1.0
    rate = rates.get(currency_id)
    return rate.rate_to_base if rate and rate.rate_to_base else 1.0


def get_conversion_operator(
    currency_id: Optional[uuid.UUID],
    rates: Rates,
) -> ConversionOperator:
    if not currency_id:
        return ConversionOperator.multiply
    rate = rates.get(currency_id)
    return rate.conversion_operator if rate else ConversionOperator.multiply


# ── DB loader ───────────────────────────────────────────────────────

async def load_rate_table(db: AsyncSession) -> RateTable:
    """Latest rate per currency (by effective date) and the base currency id."""
    table = RateTable()

    base = await db.execute(
        select(Currency.id).where(Currency.is_base.is_(True)).limit(1),
    )
    table.base_currency_id = base.scalar_one_or_none()

    result = await db.execute(
        select(CurrencyRate).order_by(
            CurrencyRate.currency_id,
            CurrencyRate.effective_date.desc(),
            CurrencyRate.created_at.desc(),
        ),
    )
    for row in result.scalars().all():
        if row.currency_id in table.rates:
            continue
        try:
            operator = ConversionOperator(row.conversion_operator)
        except ValueError:
            operator = ConversionOperator.multiply
        table.rates[row.currency_id] = RateInfo(
            rate_to_base=float(row.rate_to_base),
            conversion_operator=operator,
        )
    return table
