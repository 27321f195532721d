"""Odoo sync service — batch runs, stop/resume, retry, reset, supplier check.

Business logic:
  - A run walks the selected orders sequentially and records one detail row each
  - Successful orders mark their transactions ``sendodoo``
  - Aggregated invoices also record which original orders they carried
  - A stop request reaches a running loop through ``stop_registry`` and
    the run's persisted status; the loop stops before the next order
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Sequence, Union

import httpx
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsdesk.auth.models import User
from opsdesk.common.audit import create_audit_entry, utcnow
from opsdesk.common.constants import (
    OrderSyncStatus,
    StepState,
    SyncMode,
    SyncRunStatus,
    SyncStep,
)
from opsdesk.common.exceptions import NotFoundException, ValidationException
from opsdesk.common.mailer import OutgoingEmail, send_email
from opsdesk.odoo.client import OdooClient, load_active_config
from opsdesk.odoo.grouping import (
    AggregatedInvoice,
    OrderGroup,
    StepStatus,
    build_aggregated_invoices,
    build_order_groups,
    int_to_date,
    is_non_stock,
    load_transactions,
    non_stock_skus,
)
from opsdesk.odoo.models import (
    AggregatedOrderMapping,
    OdooSyncRun,
    OdooSyncRunDetail,
    SalesTransaction,
    Supplier,
)
from opsdesk.odoo.schemas import TransactionLine
from opsdesk.odoo.steps import StepExecutor

logger = logging.getLogger(__name__)

SyncUnit = Union[OrderGroup, AggregatedInvoice]

_STOPPED = (SyncRunStatus.paused.value, SyncRunStatus.cancelled.value)
_ALREADY_SENT_MARKERS = ("already exists", "already sent")


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


# ── Stop registry ───────────────────────────────────────────────────

class StopRegistry:
    """In-process stop flags, one ``asyncio.Event`` per running run."""

    def __init__(self) -> None:
        self._events: dict[uuid.UUID, asyncio.Event] = {}

    def register(self, run_id: uuid.UUID) -> asyncio.Event:
        """Flag for a new loop; an existing flag belongs to a loop still going."""
        if run_id in self._events:
            raise ValidationException({"status": ["Run is still being processed."]})
        event = self._events[run_id] = asyncio.Event()
        return event

    def is_active(self, run_id: uuid.UUID) -> bool:
        return run_id in self._events

    def request(self, run_id: uuid.UUID) -> bool:
        event = self._events.get(run_id)
        if event is None:
            return False
        event.set()
        return True

    def is_set(self, run_id: uuid.UUID) -> bool:
        event = self._events.get(run_id)
        return event is not None and event.is_set()

    def discard(self, run_id: uuid.UUID) -> None:
        self._events.pop(run_id, None)


stop_registry = StopRegistry()


# ── Plan ────────────────────────────────────────────────────────────

@dataclass
class SyncPlan:
    """Everything a (possibly background) run needs once it has been created."""

    run_id: uuid.UUID
    mode: SyncMode
    units: list[SyncUnit]
    non_stock: set[str] = field(default_factory=set)
    notify_email: Optional[str] = None
    notify_name: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# OdooSyncService
# ═════════════════════════════════════════════════════════════════════


class OdooSyncService:
    def __init__(self, db: AsyncSession, client: OdooClient) -> None:
        self.db = db
        self.client = client
        self.executor = StepExecutor(db, client)

    # ── Preview ─────────────────────────────────────────────────────

    @staticmethod
    async def preview(
        db: AsyncSession,
        from_date: date,
        to_date: date,
        mode: SyncMode,
        include_synced: bool = False,
    ) -> list[SyncUnit]:
        if to_date < from_date:
            raise ValidationException({"to_date": ["End date must not be before start date."]})
        rows = await load_transactions(db, from_date, to_date, include_synced)
        non_stock = await non_stock_skus(db)
        if mode == SyncMode.aggregated:
            return build_aggregated_invoices(rows, non_stock)
        return build_order_groups(rows, non_stock)

    # ── Single units ────────────────────────────────────────────────

    def _non_stock_lines(self, lines: Sequence[TransactionLine], non_stock: set[str]) -> list[TransactionLine]:
        return [l for l in lines if is_non_stock(l, non_stock)]

    async def sync_group(self, group: OrderGroup, non_stock: set[str]) -> bool:
        """Customer, brand, product, order, then purchase; stops at the first failure."""
        status = group.step_status
        group.sync_status = OrderSyncStatus.running.value
        group.error_message = None

        for step in (SyncStep.customer, SyncStep.brand, SyncStep.product, SyncStep.order):
            setattr(status, step.value, StepState.running.value)
            result = await self.executor.run(step.value, group.lines)
            if not result.success:
                setattr(status, step.value, StepState.failed.value)
                group.sync_status = OrderSyncStatus.failed.value
                group.error_message = f"{step.value.capitalize()}: {result.error}"
                return False
            setattr(status, step.value, result.status)

        ns_lines = self._non_stock_lines(group.lines, non_stock)
        if group.has_non_stock and ns_lines:
            status.purchase = StepState.running.value
            result = await self.executor.run(SyncStep.purchase.value, group.lines, ns_lines)
            if not result.success:
                status.purchase = StepState.failed.value
                group.sync_status = OrderSyncStatus.failed.value
                group.error_message = f"Purchase: {result.error}"
                return False
            status.purchase = result.status
        else:
            status.purchase = StepState.skipped.value

        group.sync_status = OrderSyncStatus.success.value
        return True

    async def sync_invoice(self, invoice: AggregatedInvoice, non_stock: set[str]) -> bool:
        """Order (and purchase for non-stock lines) for a cash-customer invoice."""
        status = invoice.step_status
        status.customer = status.brand = status.product = StepState.skipped.value
        invoice.sync_status = OrderSyncStatus.running.value
        invoice.error_message = None
        lines = invoice.synthetic_lines()

        status.order = StepState.running.value
        result = await self.executor.run(SyncStep.order.value, lines)
        if not result.success:
            status.order = StepState.failed.value
            invoice.sync_status = OrderSyncStatus.failed.value
            invoice.error_message = f"Order: {result.error}"
            return False
        status.order = StepState.sent.value

        ns_lines = self._non_stock_lines(lines, non_stock)
        if invoice.has_non_stock and ns_lines:
            status.purchase = StepState.running.value
            result = await self.executor.run(SyncStep.purchase.value, lines, ns_lines)
            if not result.success:
                status.purchase = StepState.failed.value
                invoice.sync_status = OrderSyncStatus.failed.value
                invoice.error_message = f"Purchase: {result.error}"
                return False
            status.purchase = StepState.created.value
        else:
            status.purchase = StepState.skipped.value

        invoice.sync_status = OrderSyncStatus.success.value
        return True

    # ── Runs ────────────────────────────────────────────────────────

    @staticmethod
    async def prepare_run(
        db: AsyncSession,
        from_date: date,
        to_date: date,
        mode: SyncMode,
        actor: Optional[User],
        selected_order_numbers: Optional[Sequence[str]] = None,
        skipped_order_numbers: Sequence[str] = (),
        resume_run_id: Optional[uuid.UUID] = None,
    ) -> SyncPlan:
        """Create (or reopen) the run row and decide which units it will process."""
        units = await OdooSyncService.preview(
            db, from_date, to_date, mode, include_synced=resume_run_id is not None,
        )
        selected = set(selected_order_numbers) if selected_order_numbers is not None else None
        skipped = set(skipped_order_numbers)
        for unit in units:
            unit.selected = selected is None or unit.order_number in selected
            unit.skip_sync = unit.order_number in skipped

        if not any(u.selected and not u.skip_sync for u in units):
            raise ValidationException({"orders": ["No Orders"]})

        if resume_run_id is not None:
            run = await db.get(OdooSyncRun, resume_run_id)
            if run is None:
                raise NotFoundException("OdooSyncRun", resume_run_id)
            if run.status not in _STOPPED:
                raise ValidationException({
                    "status": [f"Run is {run.status}; only paused or cancelled runs can be resumed."],
                })
            if stop_registry.is_active(run.id):
                raise ValidationException({"status": ["Run is still being processed."]})
            done = set((await db.execute(
                select(OdooSyncRunDetail.order_number).where(OdooSyncRunDetail.run_id == run.id),
            )).scalars().all())
            units = [u for u in units if u.order_number not in done]
            run.status = SyncRunStatus.running.value
            run.end_time = None
        else:
            run = OdooSyncRun(
                from_date=from_date,
                to_date=to_date,
                start_time=utcnow(),
                total_orders=len(units),
                status=SyncRunStatus.running.value,
                mode=mode.value,
                created_by=actor.id if actor else None,
            )
            db.add(run)
        await db.flush()

        await create_audit_entry(
            db,
            action="resume" if resume_run_id else "start",
            entity_type="odoo_sync_run",
            entity_id=run.id,
            actor_id=actor.id if actor else None,
            new_values={"from": from_date.isoformat(), "to": to_date.isoformat(), "mode": mode.value},
        )
        stop_registry.register(run.id)
        return SyncPlan(
            run_id=run.id,
            mode=mode,
            units=units,
            non_stock=await non_stock_skus(db),
            notify_email=actor.email if actor else None,
            notify_name=actor.display_name if actor else None,
        )

    async def _persisted_status(self, run_id: uuid.UUID) -> Optional[str]:
        return (await self.db.execute(
            select(OdooSyncRun.status).where(OdooSyncRun.id == run_id),
        )).scalar_one_or_none()

    async def _stopped(self, run: OdooSyncRun, processed: int) -> bool:
        """Apply a pending stop/pause to ``run``; True when the loop must end."""
        persisted = await self._persisted_status(run.id)
        if not (stop_registry.is_set(run.id) or persisted in _STOPPED):
            return False
        run.status = persisted if persisted in _STOPPED else SyncRunStatus.cancelled.value
        if run.status == SyncRunStatus.cancelled.value and run.end_time is None:
            run.end_time = utcnow()
        await self.db.commit()
        logger.info("Odoo sync run %s stopped (%s) after %d unit(s)", run.id, run.status, processed)
        return True

    def _record(self, run: OdooSyncRun, unit: SyncUnit) -> None:
        self.db.add(OdooSyncRunDetail(
            run_id=run.id,
            order_number=unit.order_number,
            order_date=unit.date,
            customer_phone=unit.customer_phone,
            product_names=unit.product_names,
            total_amount=unit.total_amount,
            payment_method=unit.payment_method,
            payment_brand=unit.payment_brand,
            sync_status=unit.sync_status,
            error_message=unit.error_message,
            **unit.step_status.as_columns(),
        ))

    async def _mark_synced(self, order_numbers: Sequence[str]) -> None:
        await self.db.execute(
            update(SalesTransaction)
            .where(SalesTransaction.order_number.in_(list(order_numbers)))
            .values(sendodoo=True),
        )

    async def _upsert_mappings(self, invoice: AggregatedInvoice) -> None:
        existing = {
            m.original_order_number: m
            for m in (await self.db.execute(
                select(AggregatedOrderMapping).where(
                    AggregatedOrderMapping.original_order_number.in_(invoice.original_order_numbers),
                ),
            )).scalars().all()
        }
        for original in invoice.original_order_numbers:
            mapping = existing.get(original)
            if mapping is None:
                mapping = AggregatedOrderMapping(original_order_number=original)
                self.db.add(mapping)
            mapping.aggregated_order_number = invoice.order_number
            mapping.aggregation_date = invoice.date
            mapping.brand_name = invoice.brand_name
            mapping.payment_method = invoice.payment_method
            mapping.payment_brand = invoice.payment_brand
            mapping.user_name = invoice.user_name

    async def process(self, plan: SyncPlan) -> OdooSyncRun:
        """Sequential loop over the plan's units; commits after every unit."""
        run = await self.db.get(OdooSyncRun, plan.run_id)
        if run is None:
            raise NotFoundException("OdooSyncRun", plan.run_id)
        total = len(plan.units)
        started = utcnow()
        logger.info("Odoo sync run %s started: %d unit(s), mode=%s", run.id, total, plan.mode.value)

        try:
            for i, unit in enumerate(plan.units):
                if await self._stopped(run, i):
                    return run

                if not unit.selected or unit.skip_sync:
                    unit.sync_status = OrderSyncStatus.skipped.value
                    for name in vars(unit.step_status):
                        setattr(unit.step_status, name, StepState.skipped.value)
                    run.skipped_orders += 1
                else:
                    if isinstance(unit, AggregatedInvoice):
                        ok = await self.sync_invoice(unit, plan.non_stock)
                    else:
                        ok = await self.sync_group(unit, plan.non_stock)
                    if ok:
                        run.successful_orders += 1
                        if isinstance(unit, AggregatedInvoice):
                            await self._mark_synced(unit.original_order_numbers)
                            await self._upsert_mappings(unit)
                        else:
                            await self._mark_synced([unit.order_number])
                    else:
                        run.failed_orders += 1
                        logger.warning("Odoo sync of %s failed: %s", unit.order_number, unit.error_message)

                self._record(run, unit)
                run.progress = round((i + 1) / total * 100)
                await self.db.commit()

            # A stop that landed during the last unit must not be overwritten
            if await self._stopped(run, total):
                return run
            run.status = SyncRunStatus.completed.value
            run.end_time = utcnow()
            run.progress = 100
            await self.db.commit()
        finally:
            stop_registry.discard(run.id)

        duration = format_duration((run.end_time - started).total_seconds())
        logger.info(
            "Odoo sync run %s completed in %s: %d ok, %d failed, %d skipped",
            run.id, duration, run.successful_orders, run.failed_orders, run.skipped_orders,
        )
        if plan.notify_email:
            await self.send_completion_email(run, plan.notify_email, plan.notify_name, duration)
        return run

    async def run(
        self,
        from_date: date,
        to_date: date,
        mode: SyncMode,
        actor: Optional[User],
        selected_order_numbers: Optional[Sequence[str]] = None,
        skipped_order_numbers: Sequence[str] = (),
        resume_run_id: Optional[uuid.UUID] = None,
    ) -> OdooSyncRun:
        plan = await self.prepare_run(
            self.db, from_date, to_date, mode, actor,
            selected_order_numbers, skipped_order_numbers, resume_run_id,
        )
        await self.db.commit()
        return await self.process(plan)

    @staticmethod
    async def request_stop(
        db: AsyncSession,
        run_id: uuid.UUID,
        actor: User,
        pause: bool = False,
    ) -> OdooSyncRun:
        run = await db.get(OdooSyncRun, run_id)
        if run is None:
            raise NotFoundException("OdooSyncRun", run_id)
        if run.status != SyncRunStatus.running.value:
            raise ValidationException({"status": [f"Run is {run.status}, not running."]})

        run.status = (SyncRunStatus.paused if pause else SyncRunStatus.cancelled).value
        if not pause:
            run.end_time = utcnow()
        stop_registry.request(run_id)
        await db.flush()
        await create_audit_entry(
            db,
            action="pause" if pause else "stop",
            entity_type="odoo_sync_run",
            entity_id=run.id,
            actor_id=actor.id,
            new_values={"status": run.status},
        )
        return run

    # ── Queries ─────────────────────────────────────────────────────

    @staticmethod
    async def list_runs(db: AsyncSession, limit: int = 50) -> list[OdooSyncRun]:
        result = await db.execute(
            select(OdooSyncRun).order_by(OdooSyncRun.start_time.desc()).limit(limit),
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_run(db: AsyncSession, run_id: uuid.UUID) -> OdooSyncRun:
        run = await db.get(OdooSyncRun, run_id)
        if run is None:
            raise NotFoundException("OdooSyncRun", run_id)
        return run

    @staticmethod
    async def list_details(
        db: AsyncSession,
        run_id: uuid.UUID,
        sync_status: Optional[OrderSyncStatus] = None,
    ) -> list[OdooSyncRunDetail]:
        await OdooSyncService.get_run(db, run_id)
        query = select(OdooSyncRunDetail).where(OdooSyncRunDetail.run_id == run_id)
        if sync_status is not None:
            query = query.where(OdooSyncRunDetail.sync_status == sync_status.value)
        result = await db.execute(query.order_by(OdooSyncRunDetail.created_at))
        return list(result.scalars().all())

    # ── Reset ───────────────────────────────────────────────────────

    @staticmethod
    async def reset(
        db: AsyncSession,
        from_date_int: int,
        to_date_int: int,
        actor: Optional[User] = None,
    ) -> dict[str, Any]:
        """Clear ``sendodoo`` in range and drop aggregated mappings for those dates."""
        if to_date_int < from_date_int:
            raise ValidationException({"to_date_int": ["End date must not be before start date."]})
        try:
            from_day, to_day = int_to_date(from_date_int), int_to_date(to_date_int)
        except ValueError:
            raise ValidationException({"from_date_int": ["Dates must be valid YYYYMMDD values."]})

        in_range = (
            SalesTransaction.created_at_date_int >= from_date_int,
            SalesTransaction.created_at_date_int <= to_date_int,
            SalesTransaction.sendodoo.is_(True),
        )
        count = (await db.execute(
            select(func.count()).select_from(SalesTransaction).where(*in_range),
        )).scalar_one()
        await db.execute(update(SalesTransaction).where(*in_range).values(sendodoo=False))

        deleted = await db.execute(
            delete(AggregatedOrderMapping).where(
                AggregatedOrderMapping.aggregation_date >= from_day,
                AggregatedOrderMapping.aggregation_date <= to_day,
            ),
        )
        mappings = deleted.rowcount or 0

        await create_audit_entry(
            db,
            action="reset",
            entity_type="odoo_sync",
            actor_id=actor.id if actor else None,
            new_values={"from": from_date_int, "to": to_date_int,
                        "transactions": count, "mappings": mappings},
        )
        logger.info("Reset Odoo sync flags %s..%s: %d rows, %d mappings",
                    from_date_int, to_date_int, count, mappings)
        return {
            "success": True,
            "transactions_reset": count,
            "mappings_deleted": mappings,
            "message": (
                f"Reset {count} transaction(s) and {mappings} aggregated mapping(s) successfully"
            ),
        }

    # ── Retry ───────────────────────────────────────────────────────

    async def retry_detail(
        self,
        detail_id: uuid.UUID,
        retry_type: str = "all",
        supplier_code: Optional[str] = None,
    ) -> OdooSyncRunDetail:
        """Re-run the requested steps for one failed order of a run."""
        detail = await self.db.get(OdooSyncRunDetail, detail_id)
        if detail is None:
            raise NotFoundException("OdooSyncRunDetail", detail_id)
        if detail.sync_status not in (OrderSyncStatus.failed.value, OrderSyncStatus.partial.value):
            raise ValidationException({"sync_status": ["Only failed orders can be retried."]})

        rows = (await self.db.execute(
            select(SalesTransaction)
            .where(
                SalesTransaction.order_number == detail.order_number,
                SalesTransaction.is_deleted.is_(False),
            )
            .order_by(SalesTransaction.created_at_date),
        )).scalars().all()
        if not rows:
            raise ValidationException({"order_number": [
                f"No transactions found for order {detail.order_number}.",
            ]})
        lines = [TransactionLine.model_validate(r) for r in rows]
        non_stock = await non_stock_skus(self.db)

        retry_order = retry_type in ("all", "order") or detail.step_order == StepState.failed.value
        retry_purchase = retry_type in ("all", "purchase")
        steps = StepStatus(
            customer=detail.step_customer,
            brand=detail.step_brand,
            product=detail.step_product,
            order=detail.step_order,
            purchase=detail.step_purchase,
        )
        order_error: Optional[str] = None
        purchase_error: Optional[str] = None

        if retry_order:
            for step in (SyncStep.customer, SyncStep.brand, SyncStep.product, SyncStep.order):
                result = await self.executor.run(step.value, lines)
                if (
                    step == SyncStep.order
                    and not result.success
                    and any(m in (result.error or "").lower() for m in _ALREADY_SENT_MARKERS)
                ):
                    steps.order = StepState.sent.value
                    continue
                if not result.success:
                    setattr(steps, step.value, StepState.failed.value)
                    order_error = result.error or f"{step.value} step failed"
                    break
                setattr(steps, step.value, result.status)

        if order_error is None and retry_purchase:
            ns_lines = [l for l in lines if is_non_stock(l, non_stock)]
            if ns_lines:
                if supplier_code:
                    ns_lines = [l.model_copy(update={"supplier_code": supplier_code}) for l in ns_lines]
                result = await self.executor.run(SyncStep.purchase.value, lines, ns_lines)
                if result.success:
                    steps.purchase = result.status
                else:
                    steps.purchase = StepState.failed.value
                    purchase_error = result.error or "Purchase step failed"
            else:
                steps.purchase = StepState.skipped.value
        elif order_error is not None:
            steps.purchase = StepState.pending.value

        if order_error and purchase_error:
            error = f"Order: {order_error} | Purchase: {purchase_error}"
        elif order_error:
            error = f"Order: {order_error}"
        elif purchase_error:
            error = f"Purchase: {purchase_error}"
        else:
            error = None

        if order_error:
            detail.sync_status = OrderSyncStatus.failed.value
        elif purchase_error:
            detail.sync_status = OrderSyncStatus.partial.value
        else:
            detail.sync_status = OrderSyncStatus.success.value
            await self._mark_synced([detail.order_number])
        detail.error_message = error
        for column, value in steps.as_columns().items():
            setattr(detail, column, value)
        await self.db.flush()

        await self._recount(detail.run_id)
        logger.info("Retried %s (%s): %s", detail.order_number, retry_type, detail.sync_status)
        return detail

    async def _recount(self, run_id: uuid.UUID) -> None:
        counts = dict((await self.db.execute(
            select(OdooSyncRunDetail.sync_status, func.count())
            .where(OdooSyncRunDetail.run_id == run_id)
            .group_by(OdooSyncRunDetail.sync_status),
        )).all())
        run = await self.db.get(OdooSyncRun, run_id)
        if run is None:
            return
        run.successful_orders = counts.get(OrderSyncStatus.success.value, 0)
        run.failed_orders = (
            counts.get(OrderSyncStatus.failed.value, 0)
            + counts.get(OrderSyncStatus.partial.value, 0)
        )
        run.skipped_orders = counts.get(OrderSyncStatus.skipped.value, 0)
        await self.db.flush()

    # ── Suppliers ───────────────────────────────────────────────────

    async def check_suppliers(self) -> dict[str, Any]:
        url = self.client.url("supplier")
        if not url or not self.client.api_key:
            raise ValidationException({"supplier_api_url": [
                f"Supplier API URL or API key not configured for {self.client.environment} environment",
            ]})

        suppliers = (await self.db.execute(
            select(Supplier)
            .where(Supplier.partner_profile_id.is_not(None))
            .order_by(Supplier.supplier_name),
        )).scalars().all()

        in_odoo: list[dict[str, Any]] = []
        not_in_odoo: list[dict[str, Any]] = []
        for supplier in suppliers:
            item: dict[str, Any] = {
                "supplier_code": supplier.supplier_code,
                "supplier_name": supplier.supplier_name,
                "partner_profile_id": supplier.partner_profile_id,
                "exists_in_odoo": False,
            }
            try:
                resp = await self.client.put(f"{url}/{supplier.partner_profile_id}")
            except httpx.HTTPError as exc:
                item["error"] = str(exc) or "Network error"
                not_in_odoo.append(item)
                continue
            if resp.ok and resp.data.get("success") is not False and not resp.data.get("error"):
                item["exists_in_odoo"] = True
                in_odoo.append(item)
            else:
                item["error"] = str(
                    resp.data.get("error") or resp.data.get("message") or "Supplier not found in Odoo",
                )
                not_in_odoo.append(item)

        return {
            "success": True,
            "environment": self.client.environment,
            "total_checked": len(suppliers),
            "in_odoo_count": len(in_odoo),
            "not_in_odoo_count": len(not_in_odoo),
            "in_odoo": in_odoo,
            "not_in_odoo": not_in_odoo,
        }

    # ── Notification ────────────────────────────────────────────────

    @staticmethod
    async def send_completion_email(
        run: OdooSyncRun,
        email: str,
        name: Optional[str],
        duration: str,
    ) -> bool:
        marker = "with failures" if run.failed_orders else "successfully"
        html = (
            f"<h2>Odoo Sync Complete</h2><p>Hello {name or email},</p>"
            f"<p>Your Odoo sync for {run.from_date} to {run.to_date} finished {marker}.</p>"
            "<table border='1' cellpadding='4' cellspacing='0'>"
            f"<tr><td>Total orders</td><td>{run.total_orders}</td></tr>"
            f"<tr><td>Successful</td><td>{run.successful_orders}</td></tr>"
            f"<tr><td>Failed</td><td>{run.failed_orders}</td></tr>"
            f"<tr><td>Skipped</td><td>{run.skipped_orders}</td></tr>"
            f"<tr><td>Duration</td><td>{duration}</td></tr>"
            "</table>"
        )
        return await send_email(OutgoingEmail(
            to=email,
            subject=f"Odoo Sync Complete - {run.from_date} to {run.to_date}",
            html=html,
        ))


# ── Background entry point ──────────────────────────────────────────

async def execute_plan(
    session_factory: async_sessionmaker,
    plan: SyncPlan,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """Run a prepared plan in its own session (FastAPI background task)."""
    async with session_factory() as db:
        try:
            config = await load_active_config(db)
            async with OdooClient(config, transport=transport) as client:
                await OdooSyncService(db, client).process(plan)
        except Exception:
            logger.exception("Odoo sync run %s aborted", plan.run_id)
            stop_registry.discard(plan.run_id)
            await db.rollback()
            run = await db.get(OdooSyncRun, plan.run_id)
            if run is not None and run.status == SyncRunStatus.running.value:
                run.status = SyncRunStatus.paused.value
                await db.commit()
