"""Scoring heuristic for matching bank statement lines to recorded payments."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from core.settings import RECONCILIATION
from datetime_utils import ensure_utc


_AMOUNT_NOISE_RE = re.compile(r"[UGX,\s]", re.I)


@dataclass(frozen=True)
class BankTransaction:
    id: str
    transaction_date: datetime
    amount: float
    reference: str = ""
    description: str = ""
    type: str = "credit"


@dataclass(frozen=True)
class PaymentCandidate:
    id: str
    amount: float
    date: datetime
    reference: Optional[str] = None
    student_name: Optional[str] = None
    student_id: str = ""
    receipt_number: str = ""


@dataclass
class PossibleMatch:
    payment: PaymentCandidate
    confidence: int
    reasons: List[str] = field(default_factory=list)


@dataclass
class AutoMatchResult:
    matches: List[Tuple[BankTransaction, PossibleMatch]] = field(default_factory=list)
    unmatched: List[BankTransaction] = field(default_factory=list)


def parse_amount(value) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _AMOUNT_NOISE_RE.sub("", str(value or "")).strip()
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def _days_apart(a: datetime, b: datetime) -> float:
    return abs((ensure_utc(a) - ensure_utc(b)).total_seconds()) / 86400


def _name_hits(student_name: Optional[str], description: str) -> int:
    if not student_name:
        return 0
    text = description.lower()
    return sum(1 for part in student_name.lower().split() if part and part in text)


def match_confidence(tx: BankTransaction, payment: PaymentCandidate) -> int:
    confidence = 0
    tolerance = RECONCILIATION.close_amount_tolerance

    if tx.amount == payment.amount:
        confidence += 50
    elif abs(tx.amount - payment.amount) < tolerance:
        confidence += 30

    days = _days_apart(tx.transaction_date, payment.date)
    if days == 0:
        confidence += 25
    elif days <= 1:
        confidence += 20
    elif days <= 3:
        confidence += 10

    if payment.reference and payment.reference in tx.reference:
        confidence += 20
    elif payment.reference and payment.reference in tx.description:
        confidence += 15

    hits = _name_hits(payment.student_name, tx.description)
    if hits >= 2:
        confidence += 15
    elif hits == 1:
        confidence += 5

    return min(confidence, 100)


def match_reasons(tx: BankTransaction, payment: PaymentCandidate) -> List[str]:
    reasons: List[str] = []
    if payment.amount == tx.amount:
        reasons.append("Amount matches exactly")
    elif abs(payment.amount - tx.amount) < RECONCILIATION.close_amount_tolerance:
        reasons.append("Amount is close")
    if payment.reference and payment.reference in tx.description:
        reasons.append("Reference found in description")
    return reasons


def suggest_matches(
    tx: BankTransaction,
    payments: Sequence[PaymentCandidate],
    min_confidence: int = RECONCILIATION.suggestion_confidence,
    limit: int = RECONCILIATION.max_suggestions,
) -> List[PossibleMatch]:
    scored = []
    for payment in payments:
        confidence = match_confidence(tx, payment)
        if confidence >= min_confidence:
            scored.append(PossibleMatch(payment, confidence, match_reasons(tx, payment)))
    scored.sort(key=lambda m: m.confidence, reverse=True)
    return scored[:limit]


def auto_match(
    transactions: Sequence[BankTransaction],
    payments: Sequence[PaymentCandidate],
    min_confidence: int = RECONCILIATION.auto_match_confidence,
) -> AutoMatchResult:
    """Pair each transaction with its best unused payment above the bar."""

    result = AutoMatchResult()
    used: set = set()
    for tx in transactions:
        best: Optional[PossibleMatch] = None
        for payment in payments:
            if payment.id in used:
                continue
            confidence = match_confidence(tx, payment)
            if confidence >= min_confidence and (best is None or confidence > best.confidence):
                best = PossibleMatch(payment, confidence, match_reasons(tx, payment))
        if best is None:
            result.unmatched.append(tx)
            continue
        used.add(best.payment.id)
        result.matches.append((tx, best))
    return result


__all__ = [
    "AutoMatchResult",
    "BankTransaction",
    "PaymentCandidate",
    "PossibleMatch",
    "auto_match",
    "match_confidence",
    "match_reasons",
    "parse_amount",
    "suggest_matches",
]
