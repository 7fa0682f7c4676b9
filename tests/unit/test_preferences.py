from __future__ import annotations

from datetime import datetime, time, timezone

import pytest

from pregame.notifications.contracts import NotificationCategory
from pregame.notifications.preferences import PreferenceRepository, QuietHours, is_within_quiet_hours, parse_hhmm


@pytest.mark.parametrize(
  ("current", "expected"),
  [(time(23, 30), True), (time(2, 0), True), (time(6, 59), True), (time(7, 0), False), (time(8, 0), False), (time(21, 59), False), (time(22, 0), True)],
)
def test_overnight_window_wraps_past_midnight(current, expected):
  assert is_within_quiet_hours(current, time(22, 0), time(7, 0)) is expected


def test_same_day_window_is_half_open():
  assert is_within_quiet_hours(time(13, 0), time(13, 0), time(15, 0)) is True
  assert is_within_quiet_hours(time(14, 59), time(13, 0), time(15, 0)) is True
  assert is_within_quiet_hours(time(15, 0), time(13, 0), time(15, 0)) is False


def test_empty_window_never_matches():
  assert is_within_quiet_hours(time(9, 0), time(9, 0), time(9, 0)) is False


@pytest.mark.parametrize("raw", ["25:00", "7", "ab:cd", "07:60", "", None, 700])
def test_parse_hhmm_rejects_malformed_values(raw):
  assert parse_hhmm(raw) is None


def test_parse_hhmm_accepts_single_digit_hour():
  assert parse_hhmm("7:05") == time(7, 5)


def test_quiet_hours_use_recipient_timezone():
  quiet = QuietHours(start=time(22, 0), end=time(7, 0), timezone="America/New_York")
  # 03:30 UTC is 23:30 the previous evening in New York (EDT).
  assert quiet.contains(datetime(2026, 6, 14, 3, 30, tzinfo=timezone.utc)) is True
  # 12:00 UTC is 08:00 in New York.
  assert quiet.contains(datetime(2026, 6, 14, 12, 0, tzinfo=timezone.utc)) is False


@pytest.mark.anyio
async def test_missing_preference_document_enables_everything(store):
  preference = await PreferenceRepository(store=store).get("user-1")

  assert all(preference.allows(category) for category in NotificationCategory)
  assert preference.quiet_hours is None


@pytest.mark.anyio
async def test_only_explicit_false_disables_a_category(store):
  store.seed("notification_preferences", "user-1", {"messages": False, "friendRequests": None})

  preference = await PreferenceRepository(store=store).get("user-1")

  assert preference.allows(NotificationCategory.MESSAGE) is False
  assert preference.allows(NotificationCategory.FRIEND_REQUEST) is True
  assert preference.allows(NotificationCategory.MATCH_REMINDER) is True


@pytest.mark.anyio
async def test_mandatory_categories_ignore_preferences(store):
  store.seed("notification_preferences", "user-1", {"moderation": False})

  preference = await PreferenceRepository(store=store).get("user-1")

  assert preference.allows(NotificationCategory.MODERATION) is True


@pytest.mark.anyio
async def test_invalid_quiet_hours_are_ignored(store, caplog):
  store.seed("notification_preferences", "user-1", {"quietHoursEnabled": True, "quietHoursStart": "late", "quietHoursEnd": "07:00"})

  with caplog.at_level("WARNING"):
    preference = await PreferenceRepository(store=store).get("user-1")

  assert preference.quiet_hours is None
  assert "Ignoring invalid quiet hours" in caplog.text


@pytest.mark.anyio
async def test_disabled_quiet_hours_are_not_loaded(store):
  store.seed("notification_preferences", "user-1", {"quietHoursEnabled": False, "quietHoursStart": "22:00", "quietHoursEnd": "07:00"})

  preference = await PreferenceRepository(store=store).get("user-1")

  assert preference.quiet_hours is None


@pytest.mark.anyio
async def test_unknown_timezone_falls_back_to_default(store):
  store.seed("notification_preferences", "user-1", {"quietHoursEnabled": True, "quietHoursStart": "22:00", "quietHoursEnd": "07:00", "timezone": "Mars/Olympus"})

  preference = await PreferenceRepository(store=store, default_timezone="Europe/Berlin").get("user-1")

  assert preference.quiet_hours == QuietHours(start=time(22, 0), end=time(7, 0), timezone="Europe/Berlin")
