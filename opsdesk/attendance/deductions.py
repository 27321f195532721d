"""Time arithmetic and payroll deduction rules for attendance reconciliation.

Pure functions only; nothing here touches the database.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from opsdesk.common.constants import DeductionRuleType, DeductionType, RecordStatus

DAYS_PER_MONTH = 30
HOURS_PER_DAY = 8

# Window (minutes since midnight, inclusive) in which a punch may count as the exit
EXIT_WINDOW_START = 14 * 60
EXIT_WINDOW_END = 23 * 60


class RuleLike(Protocol):
    id: uuid.UUID
    rule_type: str
    min_minutes: Optional[int]
    max_minutes: Optional[int]
    deduction_type: str
    deduction_value: float


@dataclass(frozen=True)
class DeductionResult:
    amount: float
    rule_id: Optional[uuid.UUID]


# ── Time helpers ────────────────────────────────────────────────────

def time_to_minutes(value: str) -> int:
    """``"08:15"`` or ``"08:15:30"`` → minutes since midnight (seconds ignored)."""
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def normalize_time(value: str) -> str:
    """Pad ``HH:MM`` to ``HH:MM:SS``."""
    return f"{value}:00" if len(value.split(":")) == 2 else value


def pick_in_out(punch_times: Sequence[str]) -> tuple[Optional[str], Optional[str]]:
    """First punch of the day is the entry; the last punch inside the exit window is the exit."""
    ordered = sorted(punch_times)
    if not ordered:
        return None, None
    in_time = ordered[0]
    exits = [
        t for t in ordered
        if EXIT_WINDOW_START <= time_to_minutes(t) <= EXIT_WINDOW_END
    ]
    return in_time, (exits[-1] if exits else None)


def worked_hours(in_time: Optional[str], out_time: Optional[str]) -> Optional[float]:
    """Hours between two same-day punches; None unless out is after in."""
    if not in_time or not out_time:
        return None
    start, end = time_to_minutes(in_time), time_to_minutes(out_time)
    if end <= start:
        return None
    return round((end - start) / 60, 2)


def edited_hours(in_time: str, out_time: str) -> float:
    """Hours for a manually edited record; an out time before the in time is next day."""
    start, end = time_to_minutes(in_time), time_to_minutes(out_time)
    if end < start:
        end += 24 * 60
    return round((end - start) / 60, 2)


def minutes_over(actual: int, scheduled: int, allowance: int) -> int:
    """Minutes beyond the grace allowance, or 0 inside it."""
    raw = actual - scheduled
    return raw - allowance if raw > allowance else 0


# ── Deductions ──────────────────────────────────────────────────────

def _in_range(minutes: int, rule: RuleLike) -> bool:
    low = rule.min_minutes or 0
    high = rule.max_minutes or math.inf
    return low <= minutes <= high


def calculate_deduction(
    late_minutes: int,
    early_exit_minutes: int,
    is_absent: bool,
    basic_salary: Optional[float],
    rules: Sequence[RuleLike],
) -> DeductionResult:
    """Amount to deduct for one day and the rule that triggered it.

    An absence short-circuits: only the first absence rule applies.
    Otherwise the matching late-arrival and early-exit rules add up and
    the late rule wins the ``rule_id``.
    """
    if not basic_salary or basic_salary <= 0:
        return DeductionResult(0.0, None)

    daily = basic_salary / DAYS_PER_MONTH
    hourly = daily / HOURS_PER_DAY
    amount = 0.0
    rule_id: Optional[uuid.UUID] = None

    if is_absent:
        rule = next((r for r in rules if r.rule_type == DeductionRuleType.absence.value), None)
        if rule is not None:
            if rule.deduction_type == DeductionType.percentage.value:
                amount = daily * float(rule.deduction_value)
            elif rule.deduction_type == DeductionType.fixed.value:
                amount = float(rule.deduction_value)
            rule_id = rule.id
        return DeductionResult(round(amount, 2), rule_id)

    if late_minutes > 0:
        rule = next(
            (
                r for r in rules
                if r.rule_type == DeductionRuleType.late_arrival.value and _in_range(late_minutes, r)
            ),
            None,
        )
        if rule is not None:
            value = float(rule.deduction_value)
            if rule.deduction_type == DeductionType.percentage.value:
                amount += daily * value
            elif rule.deduction_type == DeductionType.fixed.value:
                amount += value
            elif rule.deduction_type == DeductionType.hourly.value:
                amount += hourly * (late_minutes / 60) * value
            rule_id = rule.id

    if early_exit_minutes > 0:
        rule = next(
            (
                r for r in rules
                if r.rule_type == DeductionRuleType.early_exit.value
                and _in_range(early_exit_minutes, r)
            ),
            None,
        )
        if rule is not None:
            value = float(rule.deduction_value)
            if rule.deduction_type == DeductionType.percentage.value:
                amount += daily * value
            elif rule.deduction_type == DeductionType.fixed.value:
                amount += value
            if rule_id is None:
                rule_id = rule.id

    return DeductionResult(round(amount, 2), rule_id)


# ── Correct-time status ─────────────────────────────────────────────

def is_correct_time(
    record_status: str,
    difference_hours: Optional[float],
    allow_late_minutes: Optional[int],
    allow_early_exit_minutes: Optional[int],
) -> bool:
    """Whether a day's shortfall stays within the combined grace allowances."""
    if record_status not in (RecordStatus.present.value, RecordStatus.normal.value):
        return False
    if difference_hours is None or difference_hours >= 0:
        return True
    allowance = (allow_late_minutes or 0) + (allow_early_exit_minutes or 0)
    return abs(difference_hours * 60) <= allowance
