"""Odoo sync router — preview, batch runs, retry, reset, supplier check, single step.

Runs are started here and executed by a background task with its own
database session; progress is read back through ``GET /runs/{id}``.
"""

import uuid
from typing import AsyncGenerator, List, Optional

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsdesk.auth.dependencies import require_page_access
from opsdesk.auth.models import User
from opsdesk.common.constants import OrderSyncStatus, PageKey, SyncMode
from opsdesk.common.rate_limit import SYNC_START_LIMIT, limiter
from opsdesk.database import async_session_factory, get_db
from opsdesk.odoo.client import OdooClient, load_active_config
from opsdesk.odoo.schemas import (
    AggregatedInvoiceOut,
    OrderGroupOut,
    PreviewRequest,
    PreviewResponse,
    ResetRequest,
    ResetResponse,
    RetryRequest,
    StartRunRequest,
    StepRequest,
    StepResultOut,
    StopRunRequest,
    SupplierCheckResponse,
    SyncRunDetailOut,
    SyncRunOut,
)
from opsdesk.odoo.service import OdooSyncService, execute_plan
from opsdesk.odoo.steps import StepExecutor

router = APIRouter(prefix="", tags=["odoo-sync"])

_page = require_page_access(PageKey.odoo_sync)


# ── Dependencies ────────────────────────────────────────────────────

def get_session_factory() -> async_sessionmaker:
    """Session factory for work that outlives the request."""
    return async_session_factory


def get_odoo_transport() -> Optional[httpx.AsyncBaseTransport]:
    """HTTP transport for Odoo calls; None uses the network."""
    return None


async def get_odoo_client(
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_odoo_transport),
) -> AsyncGenerator[OdooClient, None]:
    config = await load_active_config(db)
    async with OdooClient(config, transport=transport) as client:
        yield client


# ── Preview ─────────────────────────────────────────────────────────

@router.post("/preview", response_model=PreviewResponse)
async def preview(
    body: PreviewRequest,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    units = await OdooSyncService.preview(
        db, body.from_date, body.to_date, body.mode, body.include_synced,
    )
    if body.mode == SyncMode.aggregated:
        return PreviewResponse(
            mode=body.mode,
            total=len(units),
            invoices=[AggregatedInvoiceOut.model_validate(u) for u in units],
        )
    return PreviewResponse(
        mode=body.mode,
        total=len(units),
        groups=[OrderGroupOut.model_validate(u) for u in units],
    )


# ── Runs ────────────────────────────────────────────────────────────

@router.post("/runs", response_model=SyncRunOut, status_code=202)
@limiter.limit(SYNC_START_LIMIT)
async def start_run(
    request: Request,
    body: StartRunRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_odoo_transport),
):
    await load_active_config(db)
    plan = await OdooSyncService.prepare_run(
        db,
        body.from_date,
        body.to_date,
        body.mode,
        user,
        selected_order_numbers=body.selected_order_numbers,
        skipped_order_numbers=body.skipped_order_numbers,
        resume_run_id=body.resume_run_id,
    )
    await db.commit()
    run = await OdooSyncService.get_run(db, plan.run_id)
    out = SyncRunOut.model_validate(run)
    background_tasks.add_task(execute_plan, session_factory, plan, transport)
    return out


@router.post("/runs/{run_id}/stop", response_model=SyncRunOut)
async def stop_run(
    run_id: uuid.UUID,
    body: StopRunRequest,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    run = await OdooSyncService.request_stop(db, run_id, user, pause=body.pause)
    await db.commit()
    return SyncRunOut.model_validate(run)


@router.get("/runs", response_model=List[SyncRunOut])
async def list_runs(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    return [SyncRunOut.model_validate(r) for r in await OdooSyncService.list_runs(db, limit)]


@router.get("/runs/{run_id}", response_model=SyncRunOut)
async def get_run(
    run_id: uuid.UUID,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    return SyncRunOut.model_validate(await OdooSyncService.get_run(db, run_id))


@router.get("/runs/{run_id}/details", response_model=List[SyncRunDetailOut])
async def list_details(
    run_id: uuid.UUID,
    sync_status: Optional[OrderSyncStatus] = Query(None),
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    rows = await OdooSyncService.list_details(db, run_id, sync_status)
    return [SyncRunDetailOut.model_validate(r) for r in rows]


@router.post("/details/{detail_id}/retry", response_model=SyncRunDetailOut)
async def retry_detail(
    detail_id: uuid.UUID,
    body: RetryRequest,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
    client: OdooClient = Depends(get_odoo_client),
):
    detail = await OdooSyncService(db, client).retry_detail(
        detail_id, body.retry_type, body.supplier_code,
    )
    await db.commit()
    return SyncRunDetailOut.model_validate(detail)


# ── Maintenance ─────────────────────────────────────────────────────

@router.post("/reset", response_model=ResetResponse)
async def reset_sync(
    body: ResetRequest,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
):
    result = await OdooSyncService.reset(db, body.from_date_int, body.to_date_int, user)
    await db.commit()
    return ResetResponse(**result)


@router.post("/suppliers/check", response_model=SupplierCheckResponse)
async def check_suppliers(
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
    client: OdooClient = Depends(get_odoo_client),
):
    return SupplierCheckResponse(**await OdooSyncService(db, client).check_suppliers())


@router.post("/step", response_model=StepResultOut)
async def run_step(
    body: StepRequest,
    user: User = Depends(_page),
    db: AsyncSession = Depends(get_db),
    client: OdooClient = Depends(get_odoo_client),
):
    result = await StepExecutor(db, client).run(
        body.step, body.transactions, body.non_stock_products,
    )
    await db.commit()
    return StepResultOut(
        success=result.success,
        status=result.status,
        message=result.message,
        error=result.error,
        details=result.details,
    )
