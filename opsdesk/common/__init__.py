"""Common module — shared utilities for opsdesk."""

from opsdesk.common.audit import AuditTrail, TimestampMixin, create_audit_entry
from opsdesk.common.constants import (
    ExpenseRequestStatus,
    PageKey,
    RecordStatus,
    StepState,
    SyncRunStatus,
    UserRole,
)
from opsdesk.common.exceptions import (
    AccessDeniedException,
    AppException,
    ConflictError,
    ExternalServiceError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from opsdesk.common.filters import apply_filters, apply_sorting, parse_sort

__all__ = [
    # Audit
    "AuditTrail",
    "TimestampMixin",
    "create_audit_entry",
    # Constants / Enums
    "ExpenseRequestStatus",
    "PageKey",
    "RecordStatus",
    "StepState",
    "SyncRunStatus",
    "UserRole",
    # Exceptions
    "AccessDeniedException",
    "AppException",
    "ConflictError",
    "ExternalServiceError",
    "ForbiddenException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "apply_filters",
    "apply_sorting",
    "parse_sort",
]
