"""Exam clearance eligibility rules."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from core.settings import CLEARANCE
from datetime_utils import ensure_utc, utc_now


CLEARED = "cleared"
CONDITIONAL = "conditional"
BLOCKED = "blocked"
EXEMPT = "exempt"
PENDING_REVIEW = "pending_review"

STATUS_LABELS: Dict[str, str] = {
    CLEARED: "Cleared",
    CONDITIONAL: "Conditional",
    BLOCKED: "Blocked",
    EXEMPT: "Exempt",
    PENDING_REVIEW: "Pending Review",
}

EXAM_FEES = "exam_fees"
EXAM_FEES_LABEL = "Examination Fees"


@dataclass(frozen=True)
class ClearanceThreshold:
    min_payment_percentage: float
    min_categories_required: tuple[str, ...] = ()
    allow_conditional_clearance: bool = False
    name: str = ""
    exam_type: str = "all"
    conditional_max_days: int = 0


DEFAULT_THRESHOLDS: tuple[ClearanceThreshold, ...] = (
    ClearanceThreshold(
        name="End of Term Clearance",
        min_payment_percentage=70,
        min_categories_required=(EXAM_FEES,),
        exam_type="end_of_term",
        allow_conditional_clearance=True,
        conditional_max_days=7,
    ),
    ClearanceThreshold(
        name="Mock Exam Clearance",
        min_payment_percentage=80,
        min_categories_required=(EXAM_FEES, "tuition"),
        exam_type="mock",
    ),
    ClearanceThreshold(
        name="National Exam Clearance",
        min_payment_percentage=100,
        min_categories_required=(EXAM_FEES, "tuition", "registration"),
        exam_type="national",
    ),
    ClearanceThreshold(
        name="Mid-Term Assessment",
        min_payment_percentage=50,
        exam_type="midterm",
        allow_conditional_clearance=True,
        conditional_max_days=14,
    ),
)


@dataclass
class ClearanceCheckResult:
    student_id: str
    can_sit_for_exam: bool
    status: str
    payment_percentage: float
    amount_needed: int
    missing_categories: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class ClearanceRecord:
    """Minimal per-student clearance row used for summaries and follow-ups."""

    student_id: str
    status: str
    total_fees: float = 0
    amount_paid: float = 0
    class_id: str = ""
    promise_date: Optional[datetime] = None
    promise_fulfilled: bool = False

    @property
    def balance(self) -> float:
        return max(0, self.total_fees - self.amount_paid)


@dataclass
class ClearanceSummary:
    total_students: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    clearance_rate: float = 0.0
    total_expected: float = 0
    total_collected: float = 0
    total_outstanding: float = 0


def payment_percentage(total_fees: float, amount_paid: float) -> float:
    """Share of fees paid, 0-100. A student who owes nothing counts as 100."""
    if total_fees <= 0:
        return 100.0
    return max(0.0, min(100.0, amount_paid / total_fees * 100))


def evaluate_clearance(
    payment_percentage: float,
    threshold: ClearanceThreshold,
    exam_fees_paid: bool,
    required_categories_paid: bool,
    *,
    student_id: str = "",
    total_fees: Optional[float] = None,
) -> ClearanceCheckResult:
    """Classify a student against ``threshold``; the first matching rule wins."""

    minimum = threshold.min_payment_percentage
    meets_percentage = payment_percentage >= minimum
    meets_categories = not threshold.min_categories_required or required_categories_paid

    status = BLOCKED
    can_sit = False
    recommendations: List[str] = []
    missing: List[str] = []

    if meets_percentage and meets_categories:
        status = CLEARED
        can_sit = True
    elif meets_percentage:
        recommendations.append("Pay required fee categories (especially exam fees) to be cleared")
        if EXAM_FEES in threshold.min_categories_required and not exam_fees_paid:
            missing.append(EXAM_FEES_LABEL)
    elif threshold.allow_conditional_clearance:
        status = PENDING_REVIEW
        recommendations.append(
            f"Make a payment to reach {minimum:g}% or request conditional clearance"
        )
    else:
        recommendations.append(f"Payment must reach at least {minimum:g}% to be cleared")

    amount_needed = 0
    if not meets_percentage:
        base = total_fees if total_fees and total_fees > 0 else CLEARANCE.nominal_fee_base
        amount_needed = math.ceil((minimum - payment_percentage) * base / 100)

    return ClearanceCheckResult(
        student_id=student_id,
        can_sit_for_exam=can_sit,
        status=status,
        payment_percentage=payment_percentage,
        amount_needed=amount_needed,
        missing_categories=missing,
        recommendations=recommendations,
    )


def summarize_clearances(records: Sequence[ClearanceRecord]) -> ClearanceSummary:
    counts = {status: 0 for status in STATUS_LABELS}
    for record in records:
        counts[record.status] = counts.get(record.status, 0) + 1

    total = len(records)
    allowed = counts[CLEARED] + counts[CONDITIONAL] + counts[EXEMPT]
    expected = sum(r.total_fees for r in records)
    collected = sum(r.amount_paid for r in records)
    return ClearanceSummary(
        total_students=total,
        counts=counts,
        clearance_rate=(allowed / total * 100) if total else 0.0,
        total_expected=expected,
        total_collected=collected,
        total_outstanding=sum(r.balance for r in records),
    )


def follow_up_list(
    records: Iterable[ClearanceRecord],
    now: Optional[datetime] = None,
    within_days: int = CLEARANCE.follow_up_window_days,
) -> List[ClearanceRecord]:
    """Conditional clearances whose unfulfilled promise is due within the window."""

    horizon = ensure_utc(now or utc_now()) + timedelta(days=within_days)
    due: List[ClearanceRecord] = []
    for record in records:
        if record.status != CONDITIONAL or record.promise_date is None:
            continue
        if record.promise_fulfilled:
            continue
        if ensure_utc(record.promise_date) <= horizon:
            due.append(record)
    return due


__all__ = [
    "BLOCKED",
    "CLEARED",
    "CONDITIONAL",
    "DEFAULT_THRESHOLDS",
    "EXEMPT",
    "PENDING_REVIEW",
    "STATUS_LABELS",
    "ClearanceCheckResult",
    "ClearanceRecord",
    "ClearanceSummary",
    "ClearanceThreshold",
    "evaluate_clearance",
    "follow_up_list",
    "payment_percentage",
    "summarize_clearances",
]
