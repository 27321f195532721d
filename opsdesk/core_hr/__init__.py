"""Core HR module — employees and their attendance types."""

from opsdesk.core_hr.models import AttendanceType, Employee

__all__ = ["AttendanceType", "Employee"]
