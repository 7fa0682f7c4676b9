"""Repository helpers for in-app notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pregame.notifications.contracts import NotificationCategory, NotificationContent
from pregame.storage.documents import DocumentStore

logger = logging.getLogger(__name__)

IN_APP_COLLECTION = "notifications"


@dataclass(frozen=True)
class InAppNotificationEntry:
  """Capture a single in-app notification entry."""

  notification_id: str
  user_id: str
  category: NotificationCategory
  content: NotificationContent
  created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

  def to_document(self) -> dict[str, Any]:
    content = self.content
    document: dict[str, Any] = {
      "notificationId": self.notification_id,
      "userId": self.user_id,
      "type": content.notification_type,
      "category": self.category.value,
      "title": content.title,
      "message": content.body,
      "createdAt": self.created_at,
      "isRead": False,
      "data": dict(content.data),
      "actionUrl": content.action_url,
      "priority": content.priority,
    }
    if content.sender is not None:
      document["fromUserId"] = content.sender.user_id
      document["fromUserName"] = content.sender.name
      document["fromUserImage"] = content.sender.image_url
    return document


class InAppNotificationRepository:
  """Persist in-app notifications to the `notifications` collection."""

  def __init__(self, *, store: DocumentStore, collection: str = IN_APP_COLLECTION) -> None:
    self._store = store
    self._collection = collection

  async def insert(self, entry: InAppNotificationEntry) -> bool:
    """Create the record unless one with the same id exists; return True when written."""
    created = await self._store.create(self._collection, entry.notification_id, entry.to_document())
    if not created:
      logger.debug("In-app notification already present notification_id=%s", entry.notification_id)
    return created
