from __future__ import annotations

import asyncio
import base64
import json
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from core.logs import get_logger
from core.priorities import normalize_resource_type
from core.settings import FIRESTORE, SYNC
from datetime_utils import parse_rfc3339, to_rfc3339_utc
from services.conflicts import modified_at, same_content
from services.queue_types import CREATE, DELETE, UPDATE
from services.remote_writer import RemoteWriteError, VersionConflictError, WriteResult


COLLECTIONS: Dict[str, str] = dict(FIRESTORE.collections)

RETRYABLE_STATUSES = {408, 409, 429, 500, 502, 503, 504}


# ---------- typed values ----------
def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": to_rfc3339_utc(value)}
    if isinstance(value, date):
        return {"stringValue": value.isoformat()}
    if isinstance(value, bytes):
        return {"bytesValue": base64.b64encode(value).decode("ascii")}
    if isinstance(value, Mapping):
        return {"mapValue": encode_fields(value)}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    return {"stringValue": str(value)}


def encode_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {"fields": {str(key): encode_value(val) for key, val in data.items()}}


def decode_value(value: Mapping[str, Any]) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return parse_rfc3339(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"])
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    return None


def decode_fields(document: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(val) for key, val in (document.get("fields") or {}).items()}


def _error_details(exc: HttpError) -> tuple[int, str, str]:
    status = int(getattr(getattr(exc, "resp", None), "status", 0) or 0)
    reason, message = "", str(exc)
    try:
        payload = json.loads(exc.content.decode("utf-8") if isinstance(exc.content, bytes) else exc.content)
        error = payload.get("error", {})
        reason = error.get("status", "") or ""
        message = error.get("message", message) or message
    except (AttributeError, TypeError, ValueError):
        pass
    return status, reason, message


def _remote_is_newer(local: Mapping[str, Any], server: Mapping[str, Any]) -> bool:
    if same_content(local, server):
        return False
    local_ts, server_ts = modified_at(local), modified_at(server)
    return local_ts is not None and server_ts is not None and server_ts >= local_ts


class FirestoreWriter:
    """Writes queue items to ``schools/{school_id}/{collection}/{id}``."""

    def __init__(
        self,
        auth=None,
        *,
        school_id: str,
        project_id: Optional[str] = FIRESTORE.project_id,
        database: str = FIRESTORE.database,
        service=None,
        timeout: float = SYNC.write_timeout_sec,
    ):
        if not school_id:
            raise ValueError("FirestoreWriter needs a school id")
        if not project_id:
            raise ValueError("FirestoreWriter needs a Firebase project id")
        self.auth = auth
        self.school_id = school_id
        self.project_id = project_id
        self.database = database
        self.service = service
        self.timeout = timeout
        self.logger = get_logger()

    def connect(self):
        if self.service is not None:
            return self.service
        if self.auth is None:
            raise RuntimeError("FirestoreWriter: no auth and no service supplied")
        self.auth.ensure_credentials()
        self.service = build(
            "firestore", "v1", credentials=self.auth.get_credentials(), cache_discovery=False
        )
        return self.service

    # ----- paths -----
    @property
    def parent(self) -> str:
        return (
            f"projects/{self.project_id}/databases/{self.database}"
            f"/documents/schools/{self.school_id}"
        )

    def collection_for(self, type: str) -> Optional[str]:
        return COLLECTIONS.get(normalize_resource_type(type))

    def document_name(self, type: str, doc_id: str) -> str:
        return f"{self.parent}/{self.collection_for(type)}/{doc_id}"

    # ----- RemoteWriter -----
    async def write(self, type: str, action: str, data: Dict[str, Any], *, overwrite: bool = False) -> WriteResult:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._write_blocking, type, action, dict(data), overwrite),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return WriteResult.failed(f"Write timed out after {self.timeout:g}s")
        except VersionConflictError as exc:
            return WriteResult.conflicted(exc.server_snapshot)
        except RemoteWriteError as exc:
            return WriteResult.failed(str(exc), retryable=exc.retryable)
        except HttpError as exc:
            status, reason, message = _error_details(exc)
            retryable = status in RETRYABLE_STATUSES or status == 0 or status in (401, 403)
            return WriteResult.failed(f"{status} {reason or 'HTTP error'}: {message}", retryable=retryable)
        except OSError as exc:
            return WriteResult.failed(f"Network error: {exc}")
        return WriteResult.success()

    # ----- blocking calls -----
    def _documents(self):
        return self.connect().projects().databases().documents()

    def _write_blocking(self, type: str, action: str, data: Dict[str, Any], overwrite: bool) -> None:
        doc_id = data.get("id")
        if not doc_id:
            raise RemoteWriteError(f"{type} {action} has no document id", retryable=False)
        collection = self.collection_for(type)
        if collection is None:
            raise RemoteWriteError(f"Unknown resource type: {type}", retryable=False)
        name = self.document_name(type, str(doc_id))

        if action == DELETE:
            self._delete(name)
        elif action == CREATE and not overwrite:
            self._create(collection, str(doc_id), name, data)
        elif action in (CREATE, UPDATE):
            self._update(name, data, overwrite)
        else:
            raise RemoteWriteError(f"Unsupported action: {action}", retryable=False)
        self.logger.info("Firestore %s %s/%s ok", action, collection, doc_id)

    def _get(self, name: str) -> Optional[Dict[str, Any]]:
        try:
            return self._documents().get(name=name).execute()
        except HttpError as exc:
            if _error_details(exc)[0] == 404:
                return None
            raise

    def _create(self, collection: str, doc_id: str, name: str, data: Dict[str, Any]) -> None:
        try:
            self._documents().createDocument(
                parent=self.parent,
                collectionId=collection,
                documentId=doc_id,
                body=encode_fields(data),
            ).execute()
        except HttpError as exc:
            status, reason, _ = _error_details(exc)
            if status == 409 and reason in ("ALREADY_EXISTS", ""):
                current = self._get(name)
                raise VersionConflictError(decode_fields(current or {}), "Document already exists") from exc
            raise

    def _update(self, name: str, data: Dict[str, Any], overwrite: bool) -> None:
        params: Dict[str, Any] = {"name": name, "body": encode_fields(data)}
        if not overwrite:
            current = self._get(name)
            if current is not None:
                snapshot = decode_fields(current)
                if _remote_is_newer(data, snapshot):
                    raise VersionConflictError(snapshot)
                params["currentDocument_updateTime"] = current.get("updateTime")
        try:
            self._documents().patch(**params).execute()
        except HttpError as exc:
            status, reason, _ = _error_details(exc)
            if reason == "FAILED_PRECONDITION" or (status == 409 and reason == "ABORTED" and not overwrite):
                current = self._get(name)
                raise VersionConflictError(decode_fields(current or {})) from exc
            if status == 400:
                raise RemoteWriteError(f"Rejected by Firestore: {reason or 'INVALID_ARGUMENT'}", retryable=False) from exc
            raise

    def _delete(self, name: str) -> None:
        try:
            self._documents().delete(name=name).execute()
        except HttpError as exc:
            if _error_details(exc)[0] == 404:
                return
            raise


__all__ = [
    "FirestoreWriter",
    "decode_fields",
    "decode_value",
    "encode_fields",
    "encode_value",
]
