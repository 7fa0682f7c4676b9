"""Firestore-backed document store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from google.api_core import exceptions as gexc
from google.cloud.firestore import Client as FirestoreClient
from google.cloud.firestore import Increment
from google.cloud.firestore_v1.base_query import FieldFilter
from starlette.concurrency import run_in_threadpool

from pregame.core.errors import RecordWriteError, StoreUnavailableError
from pregame.storage.documents import Document, QueryFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNAVAILABLE_ERRORS: tuple[type[Exception], ...] = (gexc.ServiceUnavailable, gexc.DeadlineExceeded, gexc.InternalServerError, gexc.RetryError, gexc.Unauthenticated)


class FirestoreDocumentStore:
  """`DocumentStore` over the synchronous Firestore client.

  The client is blocking, so every call runs in the threadpool and is bounded by
  `asyncio.wait_for`; the SDK timeout is passed as well so worker threads do not
  outlive the caller indefinitely.
  """

  def __init__(self, *, client: FirestoreClient, timeout_seconds: float = 15.0) -> None:
    self._client = client
    self._timeout_seconds = timeout_seconds

  async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
    ref = self._client.collection(collection).document(doc_id)
    snapshot = await self._run(f"get {collection}/{doc_id}", ref.get, write=False, timeout=self._timeout_seconds)
    if not snapshot.exists:
      return None
    return snapshot.to_dict() or {}

  async def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
    ref = self._client.collection(collection).document(doc_id)
    await self._run(f"set {collection}/{doc_id}", ref.set, data, merge=merge, timeout=self._timeout_seconds)

  async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
    ref = self._client.collection(collection).document(doc_id)
    try:
      await self._run(f"create {collection}/{doc_id}", ref.create, data, timeout=self._timeout_seconds)
    except RecordWriteError as exc:
      # Firestore rejects create() on existing documents; that is the write-once contract.
      if isinstance(exc.__cause__, (gexc.AlreadyExists, gexc.Conflict)):
        return False
      raise
    return True

  async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
    ref = self._client.collection(collection).document(doc_id)
    await self._run(f"update {collection}/{doc_id}", ref.update, data, timeout=self._timeout_seconds)

  async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> None:
    ref = self._client.collection(collection).document(doc_id)
    # A merge-set with a transform creates the document when it is missing.
    await self._run(f"increment {collection}/{doc_id}.{field}", ref.set, {field: Increment(amount)}, merge=True, timeout=self._timeout_seconds)

  async def delete(self, collection: str, doc_id: str) -> None:
    ref = self._client.collection(collection).document(doc_id)
    await self._run(f"delete {collection}/{doc_id}", ref.delete, timeout=self._timeout_seconds)

  async def query(self, collection: str, filters: Sequence[QueryFilter], *, limit: int | None = None) -> list[Document]:
    query: Any = self._client.collection(collection)
    for item in filters:
      query = query.where(filter=FieldFilter(item.field, item.op, item.value))
    if limit is not None:
      query = query.limit(limit)
    snapshots = await self._run(f"query {collection}", query.get, write=False, timeout=self._timeout_seconds)
    return [Document(id=snapshot.id, data=snapshot.to_dict() or {}) for snapshot in snapshots]

  async def _run(self, operation: str, func: Callable[..., T], *args: Any, write: bool = True, **kwargs: Any) -> T:
    """Run a blocking client call with a deadline and map client errors onto the store taxonomy."""
    try:
      return await asyncio.wait_for(run_in_threadpool(func, *args, **kwargs), timeout=self._timeout_seconds)
    except asyncio.TimeoutError as exc:
      raise StoreUnavailableError(f"Firestore {operation} timed out after {self._timeout_seconds}s") from exc
    except _UNAVAILABLE_ERRORS as exc:
      raise StoreUnavailableError(f"Firestore {operation} failed: {exc}") from exc
    except gexc.GoogleAPICallError as exc:
      if not write:
        raise StoreUnavailableError(f"Firestore {operation} failed: {exc}") from exc
      logger.debug("Firestore write rejected operation=%s error=%s", operation, exc)
      raise RecordWriteError(f"Firestore {operation} rejected: {exc}") from exc
