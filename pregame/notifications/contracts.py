"""Contracts for user notification delivery channels."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pregame.notifications.ledger import ledger_key


class NotificationCategory(str, Enum):
  """Notification categories; each value is the preference field that toggles it."""

  MATCH_REMINDER = "matchReminders"
  WATCH_PARTY_INVITE = "watchPartyInvites"
  WATCH_PARTY_UPDATE = "watchPartyUpdates"
  MESSAGE = "messages"
  FRIEND_REQUEST = "friendRequests"
  FAVORITE_TEAM = "favoriteTeamMatches"
  MODERATION = "moderation"
  ADMIN_REPORT = "moderationReports"

  @property
  def mandatory(self) -> bool:
    """Account notices cannot be switched off by the recipient."""
    return self in (NotificationCategory.MODERATION, NotificationCategory.ADMIN_REPORT)


class PushStatus(str, Enum):
  """Per-recipient push outcome."""

  SENT = "sent"
  NO_TOKEN = "no_token"
  SUPPRESSED = "suppressed"
  INVALID_TOKEN = "invalid_token"
  TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class PushMessage:
  """Represents a push notification payload independent of the device token."""

  title: str
  body: str
  data: dict[str, str] = field(default_factory=dict)
  android_channel: str | None = None
  badge: int | None = 1


@dataclass(frozen=True)
class PushResult:
  """Classified result of one push send."""

  status: PushStatus
  message_id: str | None = None
  error: str | None = None

  @property
  def ok(self) -> bool:
    return self.status == PushStatus.SENT


class PushSender(Protocol):
  """Delivery contract for sending push notifications."""

  async def send(self, token: str, message: PushMessage) -> PushResult:
    """Send to a single device token and classify the outcome."""

  async def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> list[PushResult]:
    """Send to many tokens; results are returned in token order."""


@dataclass(frozen=True)
class SenderInfo:
  """The user who caused a notification, copied onto the in-app record."""

  user_id: str
  name: str | None = None
  image_url: str | None = None


@dataclass(frozen=True)
class NotificationContent:
  """Rendered content shared by the push payload and the in-app record."""

  notification_type: str
  title: str
  body: str
  data: dict[str, Any] = field(default_factory=dict)
  action_url: str | None = None
  android_channel: str | None = None
  priority: str = "normal"
  sender: SenderInfo | None = None

  def to_push(self) -> PushMessage:
    """Build the device-independent push payload; the type and route ride along as data."""
    data = {key: "" if value is None else str(value) for key, value in self.data.items()}
    data.setdefault("type", self.notification_type)
    if self.action_url:
      data.setdefault("actionUrl", self.action_url)
    return PushMessage(title=self.title, body=self.body, data=data, android_channel=self.android_channel)


@dataclass(frozen=True)
class DeliveryRequest:
  """One event fanned out to a set of recipients in one category."""

  event_kind: str
  source_id: str
  category: NotificationCategory
  recipient_ids: tuple[str, ...]
  content: NotificationContent
  # Per-recipient overrides for events whose wording depends on the recipient.
  recipient_content: Mapping[str, NotificationContent] = field(default_factory=dict)
  metadata: dict[str, Any] = field(default_factory=dict)

  @property
  def event_key(self) -> str:
    return ledger_key(self.event_kind, self.source_id)

  def recipient_key(self, user_id: str) -> str:
    return ledger_key(self.event_kind, self.source_id, user_id)

  def content_for(self, user_id: str) -> NotificationContent:
    return self.recipient_content.get(user_id, self.content)
