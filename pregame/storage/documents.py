"""Document store contract used by every engine component."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

FilterOp = Literal["==", "<", "<=", ">", ">=", "array-contains", "array-contains-any"]


@dataclass(frozen=True)
class QueryFilter:
  """A single field predicate applied to a collection query."""

  field: str
  op: FilterOp
  value: Any


@dataclass(frozen=True)
class Document:
  """A document snapshot returned from a query."""

  id: str
  data: dict[str, Any]


def where(field: str, op: FilterOp, value: Any) -> QueryFilter:
  """Shorthand for building query filters."""
  return QueryFilter(field=field, op=op, value=value)


class DocumentStore(Protocol):
  """Persistence contract over a schemaless document database.

  Implementations raise `StoreUnavailableError` for connectivity failures and
  timeouts, and `RecordWriteError` when a single write is rejected.
  """

  async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
    """Fetch one document, or None when it does not exist."""

  async def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
    """Write a whole document (or merge fields into it)."""

  async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
    """Create a document only if absent; return False when it already existed."""

  async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
    """Update fields of an existing document."""

  async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> None:
    """Atomically add `amount` to a numeric field, creating the document when missing."""

  async def delete(self, collection: str, doc_id: str) -> None:
    """Delete a document; deleting a missing document is a no-op."""

  async def query(self, collection: str, filters: Sequence[QueryFilter], *, limit: int | None = None) -> list[Document]:
    """Return documents matching all filters."""
