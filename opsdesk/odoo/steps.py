"""Step executor — pushes one order's master data and documents to Odoo.

Each step is idempotent against Odoo: an existing customer, brand or
product is detected (local id first, then a ``PUT`` lookup, then the
``existing_*`` hint of a rejected ``POST``) before anything is created.
Odoo ids learned along the way are written back to the local tables.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Sequence

import httpx
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.constants import DEFAULT_COMPANY, StepState, SyncStep
from opsdesk.config import settings
from opsdesk.odoo.client import OdooClient
from opsdesk.odoo.models import Brand, Customer, Product, Supplier
from opsdesk.odoo.schemas import TransactionLine

logger = logging.getLogger(__name__)

_VENDOR_SPLIT = re.compile(r"-|–|—")


@dataclass
class StepResult:
    success: bool
    status: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    details: Any = None

    @classmethod
    def failure(cls, error: str, details: Any = None) -> StepResult:
        return cls(success=False, status=StepState.failed.value, error=error, details=details)


@dataclass
class _ItemOutcome:
    key: str
    status: str
    message: str = ""
    odoo_id: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"key": self.key, "status": self.status, "message": self.message,
                "odoo_id": self.odoo_id, **self.extra}


# ── Helpers ─────────────────────────────────────────────────────────

def normalize_key(value: Any) -> str:
    return " ".join(str(value or "").split()).lower()


def vendor_candidates(vendor_name: Optional[str]) -> list[str]:
    """The raw vendor name followed by its dash-separated parts."""
    raw = (vendor_name or "").strip()
    if not raw:
        return []
    return [raw] + [p.strip() for p in _VENDOR_SPLIT.split(raw) if p.strip()]


def format_order_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return f"{value.isoformat()} 00:00:00"
    text = str(value or "")
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return text


def _unique(values: Sequence[Optional[str]]) -> list[str]:
    seen: dict[str, None] = {}
    for v in values:
        if v:
            seen.setdefault(v, None)
    return list(seen)


def _num(value: Any, default: float) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


# ═════════════════════════════════════════════════════════════════════
# StepExecutor
# ═════════════════════════════════════════════════════════════════════


class StepExecutor:
    """Runs ``customer``, ``brand``, ``product``, ``order`` or ``purchase`` for one order."""

    def __init__(self, db: AsyncSession, client: OdooClient, timeout: Optional[float] = None) -> None:
        self.db = db
        self.client = client
        self.timeout = timeout or settings.ODOO_STEP_TIMEOUT_SECONDS

    async def run(
        self,
        step: Optional[str],
        transactions: Sequence[TransactionLine],
        non_stock_lines: Optional[Sequence[TransactionLine]] = None,
    ) -> StepResult:
        if not step or not transactions:
            return StepResult.failure("Missing step or transactions")
        try:
            step_enum = SyncStep(step)
        except ValueError:
            return StepResult.failure("Unknown step")

        handler = {
            SyncStep.customer: self._customer,
            SyncStep.brand: self._brand,
            SyncStep.product: self._product,
            SyncStep.order: self._order,
            SyncStep.purchase: self._purchase,
        }[step_enum]

        label = "Purchase order" if step_enum == SyncStep.purchase else step_enum.value.capitalize()
        try:
            if step_enum == SyncStep.purchase:
                coro = handler(transactions, list(non_stock_lines or []))
            else:
                coro = handler(transactions)
            result = await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Odoo step %s timed out for %s", step, transactions[0].order_number)
            return StepResult.failure(f"Step {step} timed out after {self.timeout:g}s")
        except httpx.HTTPError as exc:
            logger.error("Odoo step %s failed for %s: %s", step, transactions[0].order_number, exc)
            return StepResult.failure(f"{label} API error: {exc}")

        logger.info(
            "Odoo step %s for %s: %s",
            step, transactions[0].order_number, result.status if result.success else result.error,
        )
        return result

    # ── customer ────────────────────────────────────────────────────

    async def _store_customer_ids(self, phone: str, profile_id: Any, partner_id: Any) -> None:
        await self.db.execute(
            update(Customer)
            .where(Customer.customer_phone == phone)
            .values(partner_profile_id=profile_id, res_partner_id=partner_id),
        )

    async def _customer(self, transactions: Sequence[TransactionLine]) -> StepResult:
        first = transactions[0]
        phone = first.customer_phone or ""
        name = first.customer_name or phone

        local = (await self.db.execute(
            select(Customer).where(Customer.customer_phone == phone),
        )).scalars().first()
        if local is not None and local.partner_profile_id:
            return StepResult(
                success=True,
                status=StepState.found.value,
                message=f"Customer already exists in Odoo (from local DB): {name}",
                details={"partner_profile_id": local.partner_profile_id, "source": "local_database"},
            )

        url = self.client.url("customer")
        if not url:
            return StepResult.failure("Customer API URL not configured")

        check = await self.client.put(f"{url}/{phone}")
        if check.ok and check.data.get("success") is True and check.data.get("partner_profile_id"):
            await self._store_customer_ids(
                phone, check.data["partner_profile_id"], check.data.get("res_partner_id"),
            )
            return StepResult(
                success=True,
                status=StepState.found.value,
                message=f"Customer already exists in Odoo: {name}",
                details=check.data,
            )

        body = {
            "partner_type": "customer",
            "name": first.customer_name or "Customer",
            "phone": phone,
            "email": "",
            "customer_group": "Retail",
            "status": "active",
            "is_blocked": False,
            "block_reason": "",
        }
        created = await self.client.post(url, body)
        if created.ok:
            if created.data.get("partner_profile_id"):
                await self._store_customer_ids(
                    phone, created.data["partner_profile_id"], created.data.get("res_partner_id"),
                )
            return StepResult(
                success=True,
                status=StepState.created.value,
                message=f"New customer created: {name}",
                details=created.data,
            )
        if created.data.get("existing_partner_profile_id"):
            await self._store_customer_ids(
                phone,
                created.data["existing_partner_profile_id"],
                created.data.get("existing_res_partner_id"),
            )
            return StepResult(
                success=True,
                status=StepState.found.value,
                message=f"Customer already exists in Odoo: {name}",
                details=created.data,
            )
        return StepResult.failure(f"Failed to create customer: {created.text}", created.data)

    # ── brand ───────────────────────────────────────────────────────

    async def _brand(self, transactions: Sequence[TransactionLine]) -> StepResult:
        url = self.client.url("brand")
        outcomes: list[_ItemOutcome] = []

        for code in _unique([t.brand_code for t in transactions]):
            tx = next(t for t in transactions if t.brand_code == code)
            name = tx.brand_name or code
            local = (await self.db.execute(
                select(Brand).where(Brand.brand_code == code),
            )).scalars().first()
            if local is not None and local.odoo_category_id:
                outcomes.append(_ItemOutcome(code, "exists", "from local DB", local.odoo_category_id))
                continue
            if not url:
                outcomes.append(_ItemOutcome(code, "failed", "Brand API URL not configured"))
                continue

            try:
                check = await self.client.put(f"{url}/{code}", {"name": name})
                if check.ok and check.data.get("success") is True and check.data.get("category_id"):
                    category_id = check.data["category_id"]
                    outcome = _ItemOutcome(code, "exists", "found in Odoo", category_id)
                else:
                    created = await self.client.post(url, {"cat_code": code, "name": name})
                    if created.ok:
                        category_id = created.data.get("category_id")
                        outcome = _ItemOutcome(code, "created", "New brand created", category_id)
                    elif created.data.get("existing_category_id"):
                        category_id = created.data["existing_category_id"]
                        outcome = _ItemOutcome(code, "exists", "reported by Odoo", category_id)
                    else:
                        category_id = None
                        outcome = _ItemOutcome(code, "failed", created.text)
            except httpx.HTTPError as exc:
                outcomes.append(_ItemOutcome(code, "error", str(exc)))
                continue

            if category_id:
                await self.db.execute(
                    update(Brand).where(Brand.brand_code == code).values(odoo_category_id=category_id),
                )
            outcomes.append(outcome)

        return self._summarize("brand", outcomes)

    # ── product ─────────────────────────────────────────────────────

    async def _product(self, transactions: Sequence[TransactionLine]) -> StepResult:
        url = self.client.url("product")
        product_ids = _unique([t.product_id for t in transactions])
        products = {
            p.product_id: p
            for p in (await self.db.execute(
                select(Product).where(Product.product_id.in_(product_ids)),
            )).scalars().all()
        }
        outcomes: list[_ItemOutcome] = []

        for product_id in product_ids:
            tx = next(t for t in transactions if t.product_id == product_id)
            local = products.get(product_id)
            sku = (local.sku if local else None) or product_id
            name = tx.product_name or sku
            price = _num(tx.unit_price, 0)

            if local is not None and local.odoo_product_id:
                outcomes.append(_ItemOutcome(sku, "exists", "from local DB", local.odoo_product_id))
                continue
            if not url:
                outcomes.append(_ItemOutcome(sku, "failed", "Product API URL not configured"))
                continue

            try:
                check = await self.client.put(f"{url}/{sku}", {"name": name, "list_price": price})
                if check.ok and check.data.get("success") is True and check.data.get("product_id"):
                    odoo_id = check.data["product_id"]
                    outcome = _ItemOutcome(sku, "exists", "found in Odoo", odoo_id)
                else:
                    created = await self.client.post(url, {
                        "default_code": sku,
                        "name": name,
                        "list_price": price,
                        "cat_code": tx.brand_code,
                    })
                    if created.ok:
                        odoo_id = created.data.get("product_id")
                        outcome = _ItemOutcome(sku, "created", "New product created", odoo_id)
                    elif created.data.get("existing_product_id"):
                        odoo_id = created.data["existing_product_id"]
                        outcome = _ItemOutcome(sku, "exists", "reported by Odoo", odoo_id)
                    else:
                        odoo_id = None
                        outcome = _ItemOutcome(sku, "failed", created.text)
            except httpx.HTTPError as exc:
                outcomes.append(_ItemOutcome(sku, "error", str(exc)))
                continue

            if odoo_id:
                await self.db.execute(
                    update(Product)
                    .where(Product.product_id == product_id)
                    .values(odoo_product_id=odoo_id),
                )
            outcomes.append(outcome)

        return self._summarize("product", outcomes)

    @staticmethod
    def _summarize(kind: str, outcomes: list[_ItemOutcome]) -> StepResult:
        failed = [o for o in outcomes if o.status in ("failed", "error")]
        details = [o.as_dict() for o in outcomes]
        if failed:
            return StepResult.failure(
                "; ".join(f"{o.key}: {o.message}" for o in failed), details,
            )
        created = any(o.status == "created" for o in outcomes)
        return StepResult(
            success=True,
            status=(StepState.created if created else StepState.found).value,
            message=f"Processed {len(outcomes)} {kind}(s)",
            details=details,
        )

    # ── order ───────────────────────────────────────────────────────

    async def _sku_map(self, product_ids: list[str]) -> dict[str, str]:
        rows = (await self.db.execute(
            select(Product.product_id, Product.sku).where(Product.product_id.in_(product_ids)),
        )).all()
        return {r.product_id: r.sku for r in rows if r.sku}

    def _sku_for(self, line: TransactionLine, skus: dict[str, str]) -> str:
        return skus.get(line.product_id or "") or line.sku or line.product_id or ""

    async def _order(self, transactions: Sequence[TransactionLine]) -> StepResult:
        url = self.client.url("sales_order")
        if not url:
            return StepResult.failure("Sales order API URL not configured")

        first = transactions[0]
        skus = await self._sku_map(_unique([t.product_id for t in transactions]))
        payload = {
            "order_number": first.order_number,
            "customer_phone": first.customer_phone,
            "order_date": format_order_date(first.created_at_date),
            "payment_method": first.payment_method,
            "payment_brand": first.payment_brand or "",
            "sales_person": first.user_name or "",
            "online_payment": "true",
            "company": first.company or DEFAULT_COMPANY,
            "lines": [
                {
                    "line_number": i,
                    "product_sku": self._sku_for(t, skus),
                    "quantity": _num(t.qty, 1) or 1,
                    "uom": "Unit",
                    "unit_price": _num(t.unit_price, 0),
                    "total": _num(t.total, 0),
                }
                for i, t in enumerate(transactions, start=1)
            ],
        }

        resp = await self.client.post(url, payload)
        data = resp.data
        if data.get("error") or data.get("success") is False:
            error = data.get("error")
            if isinstance(error, dict):
                error = error.get("error") or str(error)
            return StepResult.failure(
                str(error or data.get("message") or f"Failed to create order: {resp.text}"), data,
            )
        if not resp.ok:
            return StepResult.failure(f"Failed to create order: {resp.text}", data)
        return StepResult(
            success=True,
            status=StepState.sent.value,
            message=f"Order {first.order_number} created successfully in Odoo",
            details=data,
        )

    # ── purchase ────────────────────────────────────────────────────

    async def resolve_supplier_code(self, lines: Sequence[TransactionLine]) -> str:
        """Supplier code for the vendor names on ``lines``; falls back to the raw first name."""
        explicit = next((l.supplier_code for l in lines if l.supplier_code), None)
        if explicit:
            return explicit

        candidates = _unique([c for l in lines for c in vendor_candidates(l.vendor_name)])
        codes: dict[str, str] = {}
        if candidates:
            suppliers = (await self.db.execute(
                select(Supplier).where(or_(
                    Supplier.supplier_name.in_(candidates),
                    Supplier.supplier_code.in_(candidates),
                )),
            )).scalars().all()
            for s in suppliers:
                codes[normalize_key(s.supplier_name)] = s.supplier_code
                codes[normalize_key(s.supplier_code)] = s.supplier_code

        for line in lines:
            for candidate in vendor_candidates(line.vendor_name):
                code = codes.get(normalize_key(candidate))
                if code:
                    return code
        return (lines[0].vendor_name or "") if lines else ""

    async def _purchase(
        self,
        transactions: Sequence[TransactionLine],
        non_stock: list[TransactionLine],
    ) -> StepResult:
        if not non_stock:
            return StepResult(
                success=True,
                status=StepState.skipped.value,
                message="No non-stock products - purchase order step skipped",
            )
        url = self.client.url("purchase_order")
        if not url:
            return StepResult.failure("Purchase order API URL not configured")

        first = transactions[0]
        skus = await self._sku_map(_unique([t.product_id for t in non_stock]))
        payload = {
            "order_number": first.order_number,
            "order_date": format_order_date(first.created_at_date),
            "payment_method": first.payment_method or "",
            "payment_brand": first.payment_brand or "",
            "supplier_code": await self.resolve_supplier_code(non_stock),
            "company": first.company or DEFAULT_COMPANY,
            "lines": [
                {
                    "line_number": i,
                    "product_sku": self._sku_for(t, skus),
                    "product_name": t.product_name,
                    "quantity": _num(t.qty, 1) or 1,
                    "uom": "Unit",
                    "unit_price": _num(t.cost_price or t.unit_price, 0),
                    "total": _num(t.cost_sold or t.total, 0),
                }
                for i, t in enumerate(non_stock, start=1)
            ],
        }

        resp = await self.client.post(url, payload)
        if not resp.ok:
            return StepResult.failure(f"Failed to create purchase order: {resp.text}", resp.data)
        return StepResult(
            success=True,
            status=StepState.created.value,
            message=f"Purchase order created for {len(non_stock)} non-stock product(s)",
            details=resp.data,
        )
