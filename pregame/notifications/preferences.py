"""Per-user notification preferences and quiet hours."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pregame.notifications.contracts import NotificationCategory
from pregame.storage.documents import DocumentStore

logger = logging.getLogger(__name__)

PREFERENCES_COLLECTION = "notification_preferences"


@dataclass(frozen=True)
class QuietHours:
  """A daily local-time window during which push is held back."""

  start: time
  end: time
  timezone: str

  def contains(self, now: datetime) -> bool:
    """Return True when `now` falls inside the window in the recipient's timezone."""
    local_time = now.astimezone(ZoneInfo(self.timezone)).time().replace(second=0, microsecond=0)
    return is_within_quiet_hours(local_time, self.start, self.end)


@dataclass(frozen=True)
class RecipientPreference:
  """Category switches plus optional quiet hours for one recipient."""

  user_id: str
  disabled_categories: frozenset[str] = field(default_factory=frozenset)
  quiet_hours: QuietHours | None = None

  def allows(self, category: NotificationCategory) -> bool:
    if category.mandatory:
      return True
    return category.value not in self.disabled_categories


def parse_hhmm(raw: Any) -> time | None:
  """Parse an "HH:MM" string; return None when it is malformed."""
  if not isinstance(raw, str):
    return None
  parts = raw.strip().split(":")
  if len(parts) != 2 or not all(part.isdigit() for part in parts):
    return None
  hour, minute = int(parts[0]), int(parts[1])
  if hour > 23 or minute > 59:
    return None
  return time(hour=hour, minute=minute)


def is_within_quiet_hours(current: time, start: time, end: time) -> bool:
  """Check a time of day against a window; windows with start > end wrap past midnight."""
  if start == end:
    return False
  if start > end:
    return current >= start or current < end
  return start <= current < end


class PreferenceRepository:
  """Load recipient preferences from `notification_preferences/{userId}`."""

  def __init__(self, *, store: DocumentStore, default_timezone: str = "UTC", collection: str = PREFERENCES_COLLECTION) -> None:
    self._store = store
    self._default_timezone = default_timezone
    self._collection = collection

  async def get(self, user_id: str) -> RecipientPreference:
    """Return the stored preference; a missing document means everything is enabled."""
    data = await self._store.get(self._collection, user_id)
    if not data:
      return RecipientPreference(user_id=user_id)

    # Only an explicit False disables a category.
    disabled = frozenset(category.value for category in NotificationCategory if data.get(category.value) is False)
    return RecipientPreference(user_id=user_id, disabled_categories=disabled, quiet_hours=self._parse_quiet_hours(user_id, data))

  def _parse_quiet_hours(self, user_id: str, data: dict[str, Any]) -> QuietHours | None:
    if data.get("quietHoursEnabled") is not True:
      return None

    start = parse_hhmm(data.get("quietHoursStart"))
    end = parse_hhmm(data.get("quietHoursEnd"))
    if start is None or end is None:
      logger.warning("Ignoring invalid quiet hours user_id=%s start=%r end=%r", user_id, data.get("quietHoursStart"), data.get("quietHoursEnd"))
      return None

    timezone_name = data.get("timezone") or self._default_timezone
    try:
      ZoneInfo(str(timezone_name))
    except (ZoneInfoNotFoundError, ValueError):
      logger.warning("Unknown timezone for quiet hours user_id=%s timezone=%r; using %s", user_id, timezone_name, self._default_timezone)
      timezone_name = self._default_timezone
    return QuietHours(start=start, end=end, timezone=str(timezone_name))
