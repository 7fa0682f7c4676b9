"""Idempotency ledger: write-once markers proving an event (or event/recipient pair) was handled."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from pregame.storage.documents import DocumentStore, where

logger = logging.getLogger(__name__)

LEDGER_COLLECTION = "sent_notifications"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.:-]")


def ledger_key(kind: str, source_id: str, recipient_id: str | None = None) -> str:
  """Return the deterministic ledger key for an event or an event/recipient pair."""
  parts = [kind, source_id] if recipient_id is None else [kind, source_id, recipient_id]
  # Firestore document ids cannot contain '/', so normalise everything outside a safe alphabet.
  return "__".join(_UNSAFE_KEY_CHARS.sub("_", str(part)) for part in parts)


class IdempotencyLedger:
  """Persist and look up delivery markers in the `sent_notifications` collection."""

  def __init__(self, *, store: DocumentStore, collection: str = LEDGER_COLLECTION) -> None:
    self._store = store
    self._collection = collection

  async def exists(self, key: str) -> bool:
    """Return True when the key was already recorded."""
    return await self._store.get(self._collection, key) is not None

  async def record(self, key: str, metadata: dict[str, Any] | None = None, *, now: datetime | None = None) -> bool:
    """Write the marker once; return False when another invocation recorded it first."""
    payload = dict(metadata or {})
    payload.setdefault("recipientCount", 0)
    payload["sentAt"] = now or datetime.now(timezone.utc)
    payload["key"] = key
    created = await self._store.create(self._collection, key, payload)
    if not created:
      logger.info("Ledger entry already present key=%s", key)
    return created

  async def purge_older_than(self, cutoff: datetime, *, limit: int = 500) -> int:
    """Delete one batch of entries recorded before `cutoff`."""
    stale = await self._store.query(self._collection, [where("sentAt", "<", cutoff)], limit=limit)
    for document in stale:
      await self._store.delete(self._collection, document.id)
    return len(stale)
