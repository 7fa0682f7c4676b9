"""Persistence for moderation status documents and sanctions."""

from __future__ import annotations

from datetime import datetime

from pregame.moderation.models import SANCTIONS_COLLECTION, STATUS_COLLECTION, ModerationStatus, Sanction
from pregame.storage.documents import Document, DocumentStore, where
from pregame.utils.ids import generate_sanction_id


class ModerationRepository:
  """Read and write `user_moderation_status` and `user_sanctions`."""

  def __init__(self, *, store: DocumentStore) -> None:
    self._store = store

  async def increment_report_count(self, user_id: str) -> None:
    """Add one report atomically; the status document is created when missing."""
    await self._store.increment(STATUS_COLLECTION, user_id, "reportCount", 1)

  async def get_status(self, user_id: str) -> ModerationStatus:
    return ModerationStatus.from_document(user_id, await self._store.get(STATUS_COLLECTION, user_id))

  async def apply_mute(self, user_id: str, *, until: datetime, now: datetime) -> None:
    await self._store.update(STATUS_COLLECTION, user_id, {"isMuted": True, "mutedUntil": until, "updatedAt": now})

  async def apply_suspension(self, user_id: str, *, until: datetime, now: datetime) -> None:
    # Suspension supersedes any active mute.
    await self._store.update(STATUS_COLLECTION, user_id, {"isMuted": False, "mutedUntil": None, "isSuspended": True, "suspendedUntil": until, "updatedAt": now})

  async def create_sanction(self, sanction: Sanction) -> str:
    sanction_id = generate_sanction_id()
    await self._store.set(SANCTIONS_COLLECTION, sanction_id, {**sanction.to_document(), "sanctionId": sanction_id})
    return sanction_id

  async def find_expired_mutes(self, now: datetime) -> list[Document]:
    return await self._store.query(STATUS_COLLECTION, [where("isMuted", "==", True), where("mutedUntil", "<=", now)])

  async def find_expired_suspensions(self, now: datetime) -> list[Document]:
    return await self._store.query(STATUS_COLLECTION, [where("isSuspended", "==", True), where("suspendedUntil", "<=", now)])

  async def find_expired_sanctions(self, now: datetime) -> list[Document]:
    return await self._store.query(SANCTIONS_COLLECTION, [where("isActive", "==", True), where("expiresAt", "<=", now)])

  async def clear_mute(self, user_id: str, *, now: datetime) -> None:
    await self._store.update(STATUS_COLLECTION, user_id, {"isMuted": False, "mutedUntil": None, "updatedAt": now})

  async def clear_suspension(self, user_id: str, *, now: datetime) -> None:
    await self._store.update(STATUS_COLLECTION, user_id, {"isSuspended": False, "suspendedUntil": None, "updatedAt": now})

  async def deactivate_sanction(self, sanction_id: str) -> None:
    await self._store.update(SANCTIONS_COLLECTION, sanction_id, {"isActive": False})
