"""Push token lookup and invalid-token cleanup."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pregame.storage.documents import DocumentStore

logger = logging.getLogger(__name__)

TOKEN_FIELD = "fcmToken"


class TokenHealthManager:
  """Read and clear the FCM token stored on a user (or admin) profile document."""

  def __init__(self, *, store: DocumentStore, collection: str = "users") -> None:
    self._store = store
    self._collection = collection

  @property
  def collection(self) -> str:
    return self._collection

  async def get_token(self, user_id: str) -> str | None:
    """Return the stored token, or None when the profile or token is missing."""
    profile = await self._store.get(self._collection, user_id)
    if not profile:
      return None
    token = profile.get(TOKEN_FIELD)
    if not isinstance(token, str) or not token.strip():
      return None
    return token

  async def clear_token(self, user_id: str, *, token: str | None = None) -> bool:
    """Nullify the stored token; return False when there was nothing to clear.

    When `token` is given the stored value is only cleared if it still matches,
    so a token the client rotated in the meantime survives.
    """
    profile = await self._store.get(self._collection, user_id)
    stored = (profile or {}).get(TOKEN_FIELD)
    if not stored:
      return False
    if token is not None and stored != token:
      logger.info("Skipping token cleanup; token was rotated collection=%s user_id=%s", self._collection, user_id)
      return False

    await self._store.update(self._collection, user_id, {TOKEN_FIELD: None, "fcmTokenClearedAt": datetime.now(timezone.utc)})
    logger.info("Removed invalid FCM token collection=%s user_id=%s", self._collection, user_id)
    return True

  async def list_tokens(self) -> dict[str, str]:
    """Return every non-empty token in the collection keyed by document id."""
    documents = await self._store.query(self._collection, [])
    tokens: dict[str, str] = {}
    for document in documents:
      token = document.data.get(TOKEN_FIELD)
      if isinstance(token, str) and token.strip():
        tokens[document.id] = token
    return tokens
