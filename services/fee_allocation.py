"""Distribution of a payment across a student's fee categories."""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterable, List, Mapping, Optional, Sequence


UNKNOWN_CATEGORY = "Unknown"

PRIORITY = "priority"
PROPORTIONAL = "proportional"
MANUAL = "manual"
ALLOCATION_METHODS = (PRIORITY, PROPORTIONAL, MANUAL)


@dataclass(frozen=True)
class FeeCategoryStatus:
    category_id: str
    balance: float
    category_name: str = ""
    amount_due: float = 0
    amount_paid: float = 0
    status: str = "unpaid"


@dataclass(frozen=True)
class Allocation:
    category_id: str
    amount: float
    category_name: Optional[str] = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def allocate_by_priority(amount: float, categories: Sequence[FeeCategoryStatus]) -> List[Allocation]:
    """Fill categories in the given order until the amount runs out.

    Categories without a positive balance are skipped. Anything left after
    every balance is covered is not allocated; see :func:`unallocated_amount`.
    """

    allocations: List[Allocation] = []
    remaining = amount
    for category in categories:
        if remaining <= 0:
            break
        if category.balance <= 0:
            continue
        share = min(remaining, category.balance)
        allocations.append(Allocation(category.category_id, share))
        remaining -= share
    return allocations


def allocate_proportionally(amount: float, categories: Sequence[FeeCategoryStatus]) -> List[Allocation]:
    """Split the amount in proportion to each category's outstanding balance.

    Shares are rounded half-up; the last category with a positive balance
    takes the rounding remainder. No category receives more than its
    balance. When that cap binds, the shortfall is handed to earlier
    categories that still have headroom, in list order, so the total equals
    ``min(amount, total balance)``.
    """

    payable = [c for c in categories if c.balance > 0]
    total_balance = sum(c.balance for c in payable)
    if total_balance <= 0 or amount <= 0:
        return []

    shares: List[float] = []
    allocated = 0
    last = len(payable) - 1
    for index, category in enumerate(payable):
        if index == last:
            share = amount - allocated
        else:
            share = _round_half_up(amount * category.balance / total_balance)
        share = max(0, min(share, category.balance, amount - allocated))
        shares.append(share)
        allocated += share

    shortfall = min(amount, total_balance) - allocated
    for index, category in enumerate(payable):
        if shortfall <= 0:
            break
        headroom = category.balance - shares[index]
        if headroom <= 0:
            continue
        extra = min(headroom, shortfall)
        shares[index] += extra
        shortfall -= extra

    return [
        Allocation(category.category_id, share)
        for category, share in zip(payable, shares)
        if share > 0
    ]


def _names_by_id(categories: Iterable[FeeCategoryStatus]) -> dict:
    return {c.category_id: c.category_name for c in categories}


def allocate_manually(
    amount: float,
    manual_allocations: Iterable[Mapping[str, object] | Allocation],
    categories: Sequence[FeeCategoryStatus] = (),
) -> List[Allocation]:
    """Pass caller-supplied amounts through, resolving category names.

    No sum validation happens here; ``amount`` is accepted for signature
    parity with the automatic methods.
    """

    names = _names_by_id(categories)
    result: List[Allocation] = []
    for entry in manual_allocations:
        if isinstance(entry, Allocation):
            category_id, share = entry.category_id, entry.amount
        else:
            category_id = str(entry.get("category_id") or entry.get("categoryId") or "")
            share = entry.get("amount") or 0
        result.append(Allocation(category_id, share, names.get(category_id) or UNKNOWN_CATEGORY))
    return result


def allocate(
    amount: float,
    categories: Sequence[FeeCategoryStatus],
    method: str = PRIORITY,
    manual_allocations: Optional[Iterable[Mapping[str, object] | Allocation]] = None,
) -> List[Allocation]:
    """Allocate with the named method and attach category names."""

    if method not in ALLOCATION_METHODS:
        raise ValueError(f"Unsupported allocation method: {method}")
    if method == MANUAL:
        return allocate_manually(amount, manual_allocations or (), categories)

    if method == PRIORITY:
        raw = allocate_by_priority(amount, categories)
    else:
        raw = allocate_proportionally(amount, categories)
    names = _names_by_id(categories)
    return [replace(a, category_name=names.get(a.category_id) or UNKNOWN_CATEGORY) for a in raw]


def allocated_total(allocations: Iterable[Allocation]) -> float:
    return sum(a.amount for a in allocations)


def unallocated_amount(amount: float, allocations: Iterable[Allocation]) -> float:
    return max(0, amount - allocated_total(allocations))


def category_payment_status(amount_due: float, amount_paid: float) -> str:
    if amount_paid <= 0:
        return "unpaid"
    if amount_paid >= amount_due:
        return "paid"
    return "partial"


def apply_allocations(
    categories: Sequence[FeeCategoryStatus],
    allocations: Iterable[Allocation],
) -> List[FeeCategoryStatus]:
    """Return new category statuses with the allocations credited."""

    credited: dict = {}
    for allocation in allocations:
        credited[allocation.category_id] = credited.get(allocation.category_id, 0) + allocation.amount

    updated: List[FeeCategoryStatus] = []
    for category in categories:
        extra = credited.get(category.category_id, 0)
        if not extra:
            updated.append(category)
            continue
        paid = category.amount_paid + extra
        due = category.amount_due or (category.amount_paid + category.balance)
        updated.append(
            replace(
                category,
                amount_paid=paid,
                amount_due=due,
                balance=max(0, due - paid),
                status=category_payment_status(due, paid),
            )
        )
    return updated


__all__ = [
    "ALLOCATION_METHODS",
    "Allocation",
    "FeeCategoryStatus",
    "MANUAL",
    "PRIORITY",
    "PROPORTIONAL",
    "UNKNOWN_CATEGORY",
    "allocate",
    "allocate_by_priority",
    "allocate_manually",
    "allocate_proportionally",
    "allocated_total",
    "apply_allocations",
    "category_payment_status",
    "unallocated_amount",
]
