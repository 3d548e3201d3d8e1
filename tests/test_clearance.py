from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.clearance import (
    BLOCKED,
    CLEARED,
    CONDITIONAL,
    DEFAULT_THRESHOLDS,
    EXEMPT,
    PENDING_REVIEW,
    ClearanceRecord,
    ClearanceThreshold,
    evaluate_clearance,
    follow_up_list,
    payment_percentage,
    summarize_clearances,
)

END_OF_TERM = DEFAULT_THRESHOLDS[0]
MOCK = DEFAULT_THRESHOLDS[1]


def test_cleared_when_percentage_and_categories_met():
    result = evaluate_clearance(80, END_OF_TERM, True, True, student_id="stu-1")

    assert result.status == CLEARED
    assert result.can_sit_for_exam is True
    assert result.amount_needed == 0
    assert result.recommendations == []
    assert result.student_id == "stu-1"


def test_blocked_when_required_categories_unpaid():
    result = evaluate_clearance(80, END_OF_TERM, exam_fees_paid=False, required_categories_paid=False)

    assert result.status == BLOCKED
    assert result.can_sit_for_exam is False
    assert result.missing_categories == ["Examination Fees"]
    assert len(result.recommendations) == 1
    assert result.amount_needed == 0


def test_exam_fees_paid_is_not_listed_missing():
    result = evaluate_clearance(90, MOCK, exam_fees_paid=True, required_categories_paid=False)

    assert result.status == BLOCKED
    assert result.missing_categories == []


def test_pending_review_below_threshold_with_conditional():
    result = evaluate_clearance(50, END_OF_TERM, True, True)

    assert result.status == PENDING_REVIEW
    assert result.can_sit_for_exam is False
    assert result.amount_needed == 200_000
    assert "70%" in result.recommendations[0]


def test_amount_needed_uses_known_total_fees():
    result = evaluate_clearance(50, END_OF_TERM, True, True, total_fees=2_500_000)
    assert result.amount_needed == 500_000


def test_blocked_below_threshold_without_conditional():
    result = evaluate_clearance(50, MOCK, True, True)

    assert result.status == BLOCKED
    assert result.recommendations == ["Payment must reach at least 80% to be cleared"]
    assert result.amount_needed == 300_000


def test_threshold_without_required_categories_ignores_flag():
    threshold = ClearanceThreshold(min_payment_percentage=50)
    assert evaluate_clearance(50, threshold, False, False).status == CLEARED


def test_evaluation_does_not_touch_threshold():
    before = END_OF_TERM
    evaluate_clearance(10, END_OF_TERM, False, False)
    assert END_OF_TERM == before
    assert END_OF_TERM.min_categories_required == ("exam_fees",)


def test_payment_percentage_bounds():
    assert payment_percentage(1000, 250) == 25
    assert payment_percentage(1000, 5000) == 100
    assert payment_percentage(0, 0) == 100


def test_summary_counts_and_rate():
    records = [
        ClearanceRecord("a", CLEARED, total_fees=100, amount_paid=100),
        ClearanceRecord("b", CONDITIONAL, total_fees=100, amount_paid=60),
        ClearanceRecord("c", BLOCKED, total_fees=100, amount_paid=10),
        ClearanceRecord("d", EXEMPT, total_fees=0, amount_paid=0),
    ]

    summary = summarize_clearances(records)

    assert summary.total_students == 4
    assert summary.counts[CLEARED] == 1
    assert summary.counts[PENDING_REVIEW] == 0
    assert summary.clearance_rate == 75
    assert summary.total_collected == 170
    assert summary.total_outstanding == 130


def test_summary_of_nobody():
    assert summarize_clearances([]).clearance_rate == 0


def test_follow_up_list_picks_due_promises():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    due = ClearanceRecord("a", CONDITIONAL, promise_date=now + timedelta(days=2))
    later = ClearanceRecord("b", CONDITIONAL, promise_date=now + timedelta(days=10))
    kept = ClearanceRecord("c", CONDITIONAL, promise_date=now, promise_fulfilled=True)
    cleared = ClearanceRecord("d", CLEARED, promise_date=now)

    assert follow_up_list([due, later, kept, cleared], now=now) == [due]
