import asyncio
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
import sys

import pytest
from googleapiclient.errors import HttpError

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.firestore_writer import FirestoreWriter, decode_fields, encode_fields

PARENT = "projects/demo/databases/(default)/documents/schools/stmarys"


def http_error(status, reason):
    body = json.dumps({"error": {"code": status, "status": reason, "message": reason.lower()}})
    return HttpError(SimpleNamespace(status=status, reason=reason), body.encode("utf-8"))


class Call:
    def __init__(self, fn):
        self.fn = fn

    def execute(self):
        return self.fn()


class FakeDocuments:
    def __init__(self):
        self.docs = {}
        self.calls = []
        self.patch_error = None
        self.patch_delay = 0.0

    def _doc(self, name, fields, update_time="2024-01-01T00:00:00Z"):
        doc = dict(encode_fields(fields), name=name, updateTime=update_time)
        self.docs[name] = doc
        return doc

    def get(self, name):
        def run():
            if name not in self.docs:
                raise http_error(404, "NOT_FOUND")
            return self.docs[name]

        self.calls.append(("get", {"name": name}))
        return Call(run)

    def createDocument(self, parent, collectionId, documentId, body):
        name = f"{parent}/{collectionId}/{documentId}"

        def run():
            if name in self.docs:
                raise http_error(409, "ALREADY_EXISTS")
            return self._doc(name, decode_fields(body))

        self.calls.append(("create", {"parent": parent, "collectionId": collectionId, "documentId": documentId}))
        return Call(run)

    def patch(self, name, body, **params):
        def run():
            if self.patch_delay:
                time.sleep(self.patch_delay)
            if self.patch_error is not None:
                raise self.patch_error
            return self._doc(name, decode_fields(body))

        self.calls.append(("patch", dict(params, name=name)))
        return Call(run)

    def delete(self, name):
        def run():
            if name not in self.docs:
                raise http_error(404, "NOT_FOUND")
            del self.docs[name]
            return {}

        self.calls.append(("delete", {"name": name}))
        return Call(run)


class FakeService:
    def __init__(self):
        self.documents_api = FakeDocuments()

    def projects(self):
        return self

    def databases(self):
        return self

    def documents(self):
        return self.documents_api


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def writer(service):
    return FirestoreWriter(school_id="stmarys", project_id="demo", service=service, timeout=5)


def _write(writer, *args, **kwargs):
    return asyncio.run(writer.write(*args, **kwargs))


def test_requires_school_and_project():
    with pytest.raises(ValueError):
        FirestoreWriter(school_id="", project_id="demo")
    with pytest.raises(ValueError):
        FirestoreWriter(school_id="stmarys", project_id=None)


def test_typed_value_encoding():
    encoded = encode_fields(
        {"amount": 250000, "rate": 0.5, "paid": True, "notes": None, "tags": ["a"], "meta": {"k": "v"},
         "at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)}
    )["fields"]

    assert encoded["amount"] == {"integerValue": "250000"}
    assert encoded["paid"] == {"booleanValue": True}
    assert encoded["notes"] == {"nullValue": None}
    assert encoded["at"] == {"timestampValue": "2024-01-02T03:04:05Z"}
    assert decode_fields({"fields": encoded})["meta"] == {"k": "v"}


def test_create_goes_to_school_collection(writer, service):
    result = _write(writer, "payment", "create", {"id": "p1", "amount": 100})

    assert result.ok
    kind, params = service.documents_api.calls[0]
    assert kind == "create"
    assert params == {"parent": PARENT, "collectionId": "payments", "documentId": "p1"}


def test_create_existing_document_is_conflict(writer, service):
    service.documents_api._doc(f"{PARENT}/payments/p1", {"id": "p1", "amount": 90})

    result = _write(writer, "payment", "create", {"id": "p1", "amount": 100})

    assert result.conflict
    assert result.server_snapshot == {"id": "p1", "amount": 90}


def test_update_uses_update_time_precondition(writer, service):
    name = f"{PARENT}/students/s1"
    service.documents_api._doc(name, {"id": "s1", "name": "A", "updatedAt": 1}, update_time="2024-02-02T00:00:00Z")

    result = _write(writer, "student", "update", {"id": "s1", "name": "B", "updatedAt": 2})

    assert result.ok
    kind, params = service.documents_api.calls[-1]
    assert kind == "patch"
    assert params["currentDocument_updateTime"] == "2024-02-02T00:00:00Z"


def test_update_against_newer_remote_is_conflict(writer, service):
    service.documents_api._doc(f"{PARENT}/payments/p1", {"id": "p1", "amount": 450, "updatedAt": 2000})

    result = _write(writer, "payment", "update", {"id": "p1", "amount": 500, "updatedAt": 1000})

    assert result.conflict
    assert result.server_snapshot["amount"] == 450
    assert [c[0] for c in service.documents_api.calls] == ["get"]


def test_failed_precondition_is_conflict(writer, service):
    service.documents_api._doc(f"{PARENT}/payments/p1", {"id": "p1", "amount": 450})
    service.documents_api.patch_error = http_error(400, "FAILED_PRECONDITION")

    result = _write(writer, "payment", "update", {"id": "p1", "amount": 500})

    assert result.conflict


def test_overwrite_skips_read_and_precondition(writer, service):
    service.documents_api._doc(f"{PARENT}/payments/p1", {"id": "p1", "amount": 450, "updatedAt": 2000})

    result = _write(writer, "payment", "update", {"id": "p1", "amount": 500, "updatedAt": 1000}, overwrite=True)

    assert result.ok
    assert [c[0] for c in service.documents_api.calls] == ["patch"]
    assert "currentDocument_updateTime" not in service.documents_api.calls[0][1]


def test_delete_missing_document_is_ok(writer):
    assert _write(writer, "settings", "delete", {"id": "fees"}).ok


def test_missing_id_is_not_retryable(writer):
    result = _write(writer, "payment", "create", {"amount": 1})
    assert not result.ok and result.retryable is False


def test_unknown_resource_is_not_retryable(writer):
    assert _write(writer, "invoice", "create", {"id": "x"}).retryable is False


@pytest.mark.parametrize("status, reason, retryable", [(503, "UNAVAILABLE", True), (429, "RESOURCE_EXHAUSTED", True), (400, "INVALID_ARGUMENT", False)])
def test_http_errors_are_classified(writer, service, status, reason, retryable):
    service.documents_api.patch_error = http_error(status, reason)

    result = _write(writer, "payment", "update", {"id": "p1", "amount": 1}, overwrite=True)

    assert result.error and reason in result.error
    assert result.retryable is retryable


def test_slow_call_times_out(service):
    writer = FirestoreWriter(school_id="stmarys", project_id="demo", service=service, timeout=0.05)
    service.documents_api.patch_delay = 0.3

    result = _write(writer, "payment", "update", {"id": "p1"}, overwrite=True)

    assert not result.ok
    assert result.retryable is True
    assert "timed out" in result.error


def test_update_with_same_timestamp_but_other_content_is_conflict(writer, service):
    service.documents_api._doc(f"{PARENT}/payments/p1", {"id": "p1", "amount": 450, "updatedAt": 1000})

    result = _write(writer, "payment", "update", {"id": "p1", "amount": 500, "updatedAt": 1000})

    assert result.conflict
    assert result.server_snapshot["amount"] == 450
    assert [c[0] for c in service.documents_api.calls] == ["get"]
