"""Enums and constants for opsdesk — values stored as plain strings in the DB."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    user = "user"
    accountant = "accountant"
    hr = "hr"
    admin = "admin"


class PageKey(str, enum.Enum):
    expense_requests = "expense_requests"
    treasury = "treasury"
    zk_attendance_logs = "zk_attendance_logs"
    saved_attendance = "saved_attendance"
    odoo_sync = "odoo_sync"


# ── Expenses / Treasury ─────────────────────────────────────────────

class ExpenseRequestStatus(str, enum.Enum):
    pending = "pending"
    classified = "classified"
    approved = "approved"
    paid = "paid"
    rejected = "rejected"
    cancelled = "cancelled"


class PaymentMethod(str, enum.Enum):
    bank = "bank"
    treasury = "treasury"


class EntryType(str, enum.Enum):
    withdrawal = "withdrawal"
    deposit = "deposit"


class ConversionOperator(str, enum.Enum):
    multiply = "multiply"
    divide = "divide"


# ── Attendance ──────────────────────────────────────────────────────

class PunchType(str, enum.Enum):
    entry = "entry"
    exit = "exit"
    unknown = "unknown"


class RecordStatus(str, enum.Enum):
    normal = "normal"
    present = "present"
    absent = "absent"
    vacation = "vacation"
    absent_with_note = "absent_with_note"


class ProcessType(str, enum.Enum):
    morning = "morning"
    evening = "evening"


class DeductionRuleType(str, enum.Enum):
    late_arrival = "late_arrival"
    early_exit = "early_exit"
    absence = "absence"


class DeductionType(str, enum.Enum):
    percentage = "percentage"
    fixed = "fixed"
    hourly = "hourly"


# ── Odoo sync ───────────────────────────────────────────────────────

class SyncStep(str, enum.Enum):
    customer = "customer"
    brand = "brand"
    product = "product"
    order = "order"
    purchase = "purchase"


class StepState(str, enum.Enum):
    pending = "pending"
    running = "running"
    found = "found"
    created = "created"
    sent = "sent"
    skipped = "skipped"
    failed = "failed"


class OrderSyncStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    success = "success"
    partial = "partial"
    failed = "failed"
    skipped = "skipped"


class SyncRunStatus(str, enum.Enum):
    running = "running"
    completed = "completed"
    paused = "paused"
    cancelled = "cancelled"


class SyncMode(str, enum.Enum):
    orders = "orders"
    aggregated = "aggregated"


# ── Misc constants ──────────────────────────────────────────────────

EXCLUDED_PAYMENT_METHOD = "point"
DEFAULT_COMPANY = "Purple"
CASH_CUSTOMER_NAME = "Cash Customer"
CASH_CUSTOMER_PHONE = "0000"
ZK_LOG_LIST_LIMIT = 500
