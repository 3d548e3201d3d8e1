from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.fee_allocation import (
    MANUAL,
    PROPORTIONAL,
    Allocation,
    FeeCategoryStatus,
    allocate,
    allocate_by_priority,
    allocate_manually,
    allocate_proportionally,
    allocated_total,
    apply_allocations,
    category_payment_status,
    unallocated_amount,
)


def cat(category_id, balance, name=""):
    return FeeCategoryStatus(category_id=category_id, balance=balance, category_name=name)


def test_priority_fills_in_order_and_skips_settled():
    categories = [cat("tuition", 300_000), cat("uniform", 0), cat("exam", 100_000), cat("trip", 50_000)]

    result = allocate_by_priority(350_000, categories)

    assert result == [Allocation("tuition", 300_000), Allocation("exam", 50_000)]


@pytest.mark.parametrize("amount", [0, 1, 99_999, 150_000, 450_000, 1_000_000])
def test_priority_never_over_allocates(amount):
    categories = [cat("a", 100_000), cat("b", 200_000), cat("c", 150_000)]

    result = allocate_by_priority(amount, categories)

    assert allocated_total(result) <= amount
    balances = {c.category_id: c.balance for c in categories}
    assert all(a.amount <= balances[a.category_id] for a in result)
    if sum(balances.values()) >= amount:
        assert allocated_total(result) == amount


def test_priority_leaves_excess_to_caller():
    result = allocate_by_priority(500, [cat("a", 200)])
    assert unallocated_amount(500, result) == 300


def test_proportional_last_category_takes_remainder():
    result = allocate_proportionally(1_000_000, [cat("A", 500_000), cat("B", 1_500_000)])

    assert result == [Allocation("A", 250_000), Allocation("B", 750_000)]


def test_proportional_rounding_still_sums_exactly():
    result = allocate_proportionally(100, [cat("a", 100), cat("b", 100), cat("c", 100)])

    assert [a.amount for a in result] == [33, 33, 34]


def test_proportional_caps_and_redistributes_shortfall():
    categories = [cat("a", 4), cat("b", 4), cat("c", 4), cat("d", 4), cat("e", 1)]

    result = allocate_proportionally(14, categories)

    assert [a.amount for a in result] == [4, 3, 3, 3, 1]
    assert allocated_total(result) == 14


def test_proportional_zero_balance_returns_nothing():
    assert allocate_proportionally(1000, [cat("a", 0), cat("b", 0)]) == []
    assert allocate_proportionally(1000, []) == []


def test_manual_resolves_names():
    categories = [cat("tuition", 0, "Tuition"), cat("exam", 0, "Examination Fees")]

    result = allocate_manually(
        500,
        [{"categoryId": "tuition", "amount": 300}, {"category_id": "ghost", "amount": 200}],
        categories,
    )

    assert [(a.category_id, a.amount, a.category_name) for a in result] == [
        ("tuition", 300, "Tuition"),
        ("ghost", 200, "Unknown"),
    ]


def test_allocate_dispatches_and_names():
    categories = [cat("tuition", 600, "Tuition"), cat("exam", 400, "Exam")]

    assert [a.category_name for a in allocate(500, categories, PROPORTIONAL)] == ["Tuition", "Exam"]
    assert allocate(10, categories, MANUAL, [Allocation("exam", 10)])[0].category_name == "Exam"
    with pytest.raises(ValueError):
        allocate(10, categories, "random")


def test_apply_allocations_updates_status():
    categories = [
        FeeCategoryStatus("tuition", 300, "Tuition", amount_due=500, amount_paid=200, status="partial"),
        FeeCategoryStatus("exam", 100, "Exam", amount_due=100),
    ]

    updated = apply_allocations(categories, [Allocation("tuition", 300), Allocation("exam", 40)])

    assert updated[0].balance == 0 and updated[0].status == "paid"
    assert updated[1].balance == 60 and updated[1].status == "partial"
    assert categories[0].balance == 300


def test_category_payment_status():
    assert category_payment_status(100, 0) == "unpaid"
    assert category_payment_status(100, 30) == "partial"
    assert category_payment_status(100, 100) == "paid"
