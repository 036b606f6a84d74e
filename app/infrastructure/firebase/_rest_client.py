"""Thin Firestore REST API client (no firebase-admin).

Uses google-auth for service account tokens and Firestore REST v1.
Keeps the deployment small (avoids grpcio / firebase-admin).
All HTTP calls use httpx.AsyncClient so they do not block the event loop.

Only the endpoints the entity store needs are wrapped: documents.get,
runQuery, runAggregationQuery, commit, beginTransaction and rollback.
Failures are raised as typed errors keyed on the google.rpc status in the
response body (ALREADY_EXISTS and ABORTED are both HTTP 409).
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import quote

import httpx

from app.infrastructure.firebase._rest_encoding import decode_fields, decode_value

_FIRESTORE_SCOPE = "https://www.googleapis.com/auth/datastore"
_BASE = "https://firestore.googleapis.com/v1"


def _get_credentials(key_dict: dict):
    """Return google.oauth2.service_account.Credentials for Firestore."""
    from google.oauth2 import service_account

    return service_account.Credentials.from_service_account_info(
        key_dict, scopes=[_FIRESTORE_SCOPE]
    )


def _get_access_token(credentials) -> str:
    from google.auth.transport.requests import Request

    if not credentials.valid:
        credentials.refresh(Request())
    return credentials.token


class FirestoreError(Exception):
    """Firestore rejected a request."""

    def __init__(self, message: str, status: str = "", http_status: int = 0) -> None:
        super().__init__(message)
        self.status = status
        self.http_status = http_status


class DocumentExistsError(FirestoreError):
    """A write with precondition exists=false hit an existing document (ALREADY_EXISTS)."""


class PreconditionFailedError(FirestoreError):
    """An updateTime precondition did not hold, or a query needs an index (FAILED_PRECONDITION)."""


class TransactionAbortedError(FirestoreError):
    """The transaction lost a contention race and was aborted (ABORTED)."""


_STATUS_ERRORS: dict[str, type[FirestoreError]] = {
    "ALREADY_EXISTS": DocumentExistsError,
    "FAILED_PRECONDITION": PreconditionFailedError,
    "ABORTED": TransactionAbortedError,
}


def _raise_for_error(resp: httpx.Response) -> None:
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    error = payload[0] if isinstance(payload, list) and payload else payload
    error = (error or {}).get("error", {}) if isinstance(error, dict) else {}
    status = error.get("status", "")
    message = error.get("message") or resp.reason_phrase or "Firestore request failed"
    exc_type = _STATUS_ERRORS.get(status, FirestoreError)
    raise exc_type(message, status=status, http_status=resp.status_code)


async def _request_async(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    body: dict | None = None,
    access_token: str | None = None,
) -> Any:
    """Perform async HTTP request to Firestore REST API. 404 returns None."""
    headers = {"Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    if method == "GET":
        resp = await client.get(url, headers=headers)
    elif method == "POST":
        resp = await client.post(url, headers=headers, json=body)
    else:
        raise ValueError(f"Unsupported method: {method!r}")
    if resp.status_code == 404:
        return None
    if resp.status_code not in (200, 204):
        _raise_for_error(resp)
    raw = resp.content
    return json.loads(raw.decode()) if raw else {}


class DocumentSnapshot:
    """Snapshot of a document (id + data + server update time)."""

    def __init__(self, id_: str, data: dict, update_time: str | None = None):
        self.id = id_
        self._data = data
        self.update_time = update_time

    def to_dict(self) -> dict:
        return self._data

    @classmethod
    def from_api(cls, doc: dict) -> DocumentSnapshot:
        name = doc.get("name", "")
        doc_id = name.split("/")[-1] if name else ""
        return cls(doc_id, decode_fields(doc.get("fields")), doc.get("updateTime"))


class FirestoreRESTClient:
    """Lightweight Firestore client using REST API (no firebase-admin)."""

    def __init__(
        self,
        project_id: str,
        credentials,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._project_id = project_id
        self._credentials = credentials
        self._database = f"projects/{project_id}/databases/(default)"
        self._prefix = f"{self._database}/documents"
        self._http = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None

    @property
    def project_id(self) -> str:
        return self._project_id

    async def aclose(self) -> None:
        """Close the HTTP client only if we created it (do not close injected client)."""
        if self._owns_http:
            await self._http.aclose()

    async def get_token(self) -> str:
        """Return a valid access token; refreshes in thread pool to avoid blocking."""
        return await asyncio.to_thread(_get_access_token, self._credentials)

    async def _call(self, url: str, method: str = "GET", body: dict | None = None) -> Any:
        return await _request_async(
            self._http, url, method=method, body=body, access_token=await self.get_token()
        )

    def document_name(self, collection_id: str, document_id: str) -> str:
        """Full resource name used in writes (projects/.../documents/{coll}/{id})."""
        return f"{self._prefix}/{collection_id}/{document_id}"

    async def get_document(
        self, collection_id: str, document_id: str, *, transaction: str | None = None
    ) -> DocumentSnapshot | None:
        """Fetch one document; None if it does not exist."""
        url = f"{_BASE}/{self.document_name(collection_id, quote(document_id, safe=''))}"
        if transaction:
            url = f"{url}?transaction={quote(transaction, safe='')}"
        out = await self._call(url)
        if not out:
            return None
        return DocumentSnapshot.from_api(out)

    async def run_query(
        self, structured_query: dict[str, Any], *, transaction: str | None = None
    ) -> list[DocumentSnapshot]:
        """Run a structuredQuery against the database root and return its documents."""
        body: dict[str, Any] = {"structuredQuery": structured_query}
        if transaction:
            body["transaction"] = transaction
        resp = await self._call(f"{_BASE}/{self._prefix}:runQuery", method="POST", body=body)
        items = resp if isinstance(resp, list) else ([resp] if resp else [])
        return [DocumentSnapshot.from_api(item["document"]) for item in items if "document" in item]

    async def run_count(self, structured_query: dict[str, Any]) -> int:
        """Return COUNT(*) for a structuredQuery (runAggregationQuery)."""
        body = {
            "structuredAggregationQuery": {
                "structuredQuery": structured_query,
                "aggregations": [{"alias": "total", "count": {}}],
            }
        }
        resp = await self._call(
            f"{_BASE}/{self._prefix}:runAggregationQuery", method="POST", body=body
        )
        items = resp if isinstance(resp, list) else ([resp] if resp else [])
        for item in items:
            fields = item.get("result", {}).get("aggregateFields", {})
            if "total" in fields:
                return int(decode_value(fields["total"]) or 0)
        return 0

    async def commit(
        self, writes: list[dict[str, Any]], *, transaction: str | None = None
    ) -> dict[str, Any]:
        """Apply writes atomically. All preconditions must hold or nothing is written."""
        body: dict[str, Any] = {"writes": writes}
        if transaction:
            body["transaction"] = transaction
        out = await self._call(f"{_BASE}/{self._prefix}:commit", method="POST", body=body)
        if out is None:
            # NOT_FOUND: a guarded document was deleted between read and commit.
            raise PreconditionFailedError(
                "Document no longer exists", status="NOT_FOUND", http_status=404
            )
        return out

    async def begin_transaction(self) -> str:
        """Start a read-write transaction and return its id."""
        resp = await self._call(
            f"{_BASE}/{self._prefix}:beginTransaction",
            method="POST",
            body={"options": {"readWrite": {}}},
        )
        return resp["transaction"]

    async def rollback(self, transaction: str) -> None:
        await self._call(
            f"{_BASE}/{self._prefix}:rollback", method="POST", body={"transaction": transaction}
        )
