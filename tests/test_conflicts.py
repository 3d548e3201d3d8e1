from datetime import datetime, timezone
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.conflicts import detect_conflict, merge_records, modified_at, same_content, server_is_stale

T1 = 1_700_000_000_000
T2 = T1 + 60_000


def test_newer_differing_server_conflicts():
    assert detect_conflict({"amount": 500_000, "updatedAt": T1}, {"amount": 450_000, "updatedAt": T2}) is True


def test_identical_content_never_conflicts():
    assert detect_conflict({"amount": 500_000, "updatedAt": T1}, {"amount": 500_000, "updatedAt": T2}) is False
    assert detect_conflict({"amount": 500_000, "updatedAt": T2}, {"amount": 500_000, "updatedAt": T1}) is False


def test_stale_server_is_not_a_conflict():
    local = {"amount": 500_000, "updatedAt": T2}
    server = {"amount": 450_000, "updatedAt": T1}
    assert server_is_stale(local, server) is True
    assert detect_conflict(local, server) is False


def test_missing_timestamps_with_different_content_conflict():
    assert detect_conflict({"amount": 1}, {"amount": 2}) is True
    assert detect_conflict({"amount": 1}, None) is False


def test_modified_at_reads_mixed_formats():
    assert modified_at({"updated_at": "2024-01-01T00:00:00Z"}) == 1_704_067_200_000
    assert modified_at({"lastModified": datetime(2024, 1, 1, tzinfo=timezone.utc)}) == 1_704_067_200_000
    assert modified_at({"updatedAt": str(T1)}) == T1
    assert modified_at({"amount": 1}) is None


def test_same_content_ignores_key_order():
    assert same_content({"a": 1, "b": 2, "updatedAt": 1}, {"b": 2, "a": 1, "updatedAt": 2}) is True


def test_merge_is_shallow_and_local_wins():
    server = {"id": "p1", "amount": 450_000, "status": "verified", "meta": {"a": 1, "b": 2}}
    local = {"id": "p1", "amount": 500_000, "notes": "x", "meta": {"a": 3}}

    merged = merge_records(server, local)

    assert merged["amount"] == 500_000
    assert merged["status"] == "verified"
    assert merged["notes"] == "x"
    assert merged["meta"] == {"a": 3}
    assert server["amount"] == 450_000
