"""Odoo sync ORM models: API config, sales transactions, master data, sync runs."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.common.audit import TimestampMixin, utcnow
from opsdesk.common.constants import (
    OrderSyncStatus,
    StepState,
    SyncMode,
    SyncRunStatus,
)
from opsdesk.database import Base


# ═════════════════════════════════════════════════════════════════════
# Configuration
# ═════════════════════════════════════════════════════════════════════


class OdooApiConfig(Base, TimestampMixin):
    """Odoo endpoints and keys for production and test; one row is active."""

    __tablename__ = "odoo_api_config"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    is_production_mode: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    api_key: Mapped[Optional[str]] = mapped_column(sa.String(255))
    api_key_test: Mapped[Optional[str]] = mapped_column(sa.String(255))

    customer_api_url: Mapped[Optional[str]] = mapped_column(sa.Text)
    customer_api_url_test: Mapped[Optional[str]] = mapped_column(sa.Text)
    brand_api_url: Mapped[Optional[str]] = mapped_column(sa.Text)
    brand_api_url_test: Mapped[Optional[str]] = mapped_column(sa.Text)
    product_api_url: Mapped[Optional[str]] = mapped_column(sa.Text)
    product_api_url_test: Mapped[Optional[str]] = mapped_column(sa.Text)
    sales_order_api_url: Mapped[Optional[str]] = mapped_column(sa.Text)
    sales_order_api_url_test: Mapped[Optional[str]] = mapped_column(sa.Text)
    purchase_order_api_url: Mapped[Optional[str]] = mapped_column(sa.Text)
    purchase_order_api_url_test: Mapped[Optional[str]] = mapped_column(sa.Text)
    supplier_api_url: Mapped[Optional[str]] = mapped_column(sa.Text)
    supplier_api_url_test: Mapped[Optional[str]] = mapped_column(sa.Text)

    def __repr__(self) -> str:
        mode = "production" if self.is_production_mode else "test"
        return f"<OdooApiConfig {mode} active={self.is_active}>"


# ═════════════════════════════════════════════════════════════════════
# Sales and master data
# ═════════════════════════════════════════════════════════════════════


class SalesTransaction(Base):
    """One sold line as imported from the storefront."""

    __tablename__ = "purpletransaction"
    __table_args__ = (
        sa.Index("ix_purpletransaction_date_int", "created_at_date_int"),
        sa.Index("ix_purpletransaction_order", "order_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    order_number: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    created_at_date: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False)
    # YYYYMMDD
    created_at_date_int: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    customer_phone: Mapped[Optional[str]] = mapped_column(sa.String(50))
    brand_code: Mapped[Optional[str]] = mapped_column(sa.String(50))
    brand_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    product_id: Mapped[Optional[str]] = mapped_column(sa.String(100))
    product_name: Mapped[Optional[str]] = mapped_column(sa.String(300))
    unit_price: Mapped[float] = mapped_column(sa.Numeric(14, 4, asdecimal=False), default=0)
    total: Mapped[float] = mapped_column(sa.Numeric(14, 2, asdecimal=False), default=0)
    qty: Mapped[float] = mapped_column(sa.Numeric(12, 3, asdecimal=False), default=1)
    cost_price: Mapped[Optional[float]] = mapped_column(sa.Numeric(14, 4, asdecimal=False))
    cost_sold: Mapped[Optional[float]] = mapped_column(sa.Numeric(14, 2, asdecimal=False))
    payment_method: Mapped[Optional[str]] = mapped_column(sa.String(50))
    payment_brand: Mapped[Optional[str]] = mapped_column(sa.String(50))
    user_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    vendor_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    company: Mapped[Optional[str]] = mapped_column(sa.String(100))
    is_deleted: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    sendodoo: Mapped[bool] = mapped_column(sa.Boolean, default=False)


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    product_id: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(sa.String(100), index=True)
    product_name: Mapped[Optional[str]] = mapped_column(sa.String(300))
    non_stock: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    odoo_product_id: Mapped[Optional[int]] = mapped_column(sa.Integer)


class Brand(Base, TimestampMixin):
    __tablename__ = "brands"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    brand_code: Mapped[str] = mapped_column(sa.String(50), unique=True, nullable=False)
    brand_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    odoo_category_id: Mapped[Optional[int]] = mapped_column(sa.Integer)


class Customer(Base, TimestampMixin):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    customer_phone: Mapped[str] = mapped_column(sa.String(50), unique=True, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    partner_profile_id: Mapped[Optional[int]] = mapped_column(sa.Integer)
    res_partner_id: Mapped[Optional[int]] = mapped_column(sa.Integer)


class Supplier(Base, TimestampMixin):
    __tablename__ = "suppliers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    supplier_code: Mapped[str] = mapped_column(sa.String(50), unique=True, nullable=False)
    supplier_name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    partner_profile_id: Mapped[Optional[int]] = mapped_column(sa.Integer)


# ═════════════════════════════════════════════════════════════════════
# Sync runs
# ═════════════════════════════════════════════════════════════════════


class OdooSyncRun(Base):
    """One batch synchronization and its running totals."""

    __tablename__ = "odoo_sync_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    from_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    to_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_time: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    end_time: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    total_orders: Mapped[int] = mapped_column(sa.Integer, default=0)
    successful_orders: Mapped[int] = mapped_column(sa.Integer, default=0)
    failed_orders: Mapped[int] = mapped_column(sa.Integer, default=0)
    skipped_orders: Mapped[int] = mapped_column(sa.Integer, default=0)
    progress: Mapped[int] = mapped_column(sa.Integer, default=0)
    status: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default=SyncRunStatus.running.value,
    )
    mode: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default=SyncMode.orders.value,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )

    details: Mapped[list[OdooSyncRunDetail]] = relationship(
        back_populates="run", cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<OdooSyncRun {self.from_date}..{self.to_date} {self.status}>"


class OdooSyncRunDetail(Base):
    """Outcome of one order (or aggregated invoice) inside a run."""

    __tablename__ = "odoo_sync_run_details"
    __table_args__ = (
        sa.Index("ix_odoo_sync_run_details_run", "run_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("odoo_sync_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    order_number: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    order_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    customer_phone: Mapped[Optional[str]] = mapped_column(sa.String(50))
    product_names: Mapped[Optional[str]] = mapped_column(sa.Text)
    total_amount: Mapped[float] = mapped_column(sa.Numeric(14, 2, asdecimal=False), default=0)
    payment_method: Mapped[Optional[str]] = mapped_column(sa.String(50))
    payment_brand: Mapped[Optional[str]] = mapped_column(sa.String(50))
    sync_status: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default=OrderSyncStatus.pending.value,
    )
    error_message: Mapped[Optional[str]] = mapped_column(sa.Text)
    step_customer: Mapped[str] = mapped_column(sa.String(20), default=StepState.pending.value)
    step_brand: Mapped[str] = mapped_column(sa.String(20), default=StepState.pending.value)
    step_product: Mapped[str] = mapped_column(sa.String(20), default=StepState.pending.value)
    step_order: Mapped[str] = mapped_column(sa.String(20), default=StepState.pending.value)
    step_purchase: Mapped[str] = mapped_column(sa.String(20), default=StepState.pending.value)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )

    run: Mapped[OdooSyncRun] = relationship(back_populates="details")


class AggregatedOrderMapping(Base):
    """Which original order was sent inside which aggregated invoice."""

    __tablename__ = "aggregated_order_mapping"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    aggregated_order_number: Mapped[str] = mapped_column(sa.String(100), nullable=False, index=True)
    original_order_number: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    aggregation_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    brand_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    payment_method: Mapped[Optional[str]] = mapped_column(sa.String(50))
    payment_brand: Mapped[Optional[str]] = mapped_column(sa.String(50))
    user_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
