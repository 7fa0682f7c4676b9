from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pregame.core.errors import StoreUnavailableError
from pregame.dispatch.handlers import format_kickoff, message_preview, timing_display
from pregame.events.models import FavoriteTeamMatch, FriendRequestCreated, InviteCreated, InviteResponded, MessageCreated, ReminderDue, WatchPartyCancelled
from pregame.notifications.contracts import PushStatus
from pregame.notifications.pipeline import DeliveryPipeline


def _reminder(now: datetime, **overrides) -> ReminderDue:
  fields = {
    "document_id": "rem-1",
    "user_id": "fan",
    "match_id": "m-42",
    "match_name": "Mexico vs Canada",
    "timing_minutes": 30,
    "reminder_date_time_utc": now - timedelta(seconds=30),
    "match_date_time_utc": now + timedelta(minutes=30),
    "venue_name": "Estadio Azteca",
    "home_team_code": "MEX",
    "away_team_code": "CAN",
  }
  fields.update(overrides)
  return ReminderDue(**fields)


@pytest.mark.parametrize(("minutes", "label"), [(15, "15 minutes"), (60, "1 hour"), (120, "2 hours"), (1440, "1 day"), (45, "45 minutes"), (180, "3 hours"), (90, "1 hour")])
def test_timing_display(minutes, label):
  assert timing_display(minutes) == label


def test_message_preview_describes_non_text_messages():
  assert message_preview("text", "Goal!", "Ana") == "Goal!"
  assert message_preview("image", None, "Ana") == "Ana sent a photo"
  assert message_preview("gameInvite", None, "Ana") == "Ana invited you to watch a game"
  assert message_preview("sticker", None, "Ana") == "Ana sent a message"


def test_format_kickoff():
  assert format_kickoff(datetime(2026, 6, 13, 20, 5, tzinfo=timezone.utc), "UTC") == "Sat, Jun 13, 8:05 PM UTC"
  assert format_kickoff(None, "UTC") == "Tomorrow"


@pytest.mark.anyio
async def test_due_reminder_delivers_and_marks_sent(dispatcher, store, push_sender, now):
  store.seed("users", "fan", {"fcmToken": "tok-fan"})
  store.seed("match_reminders", "rem-1", {"isEnabled": True, "isSent": False})

  result = await dispatcher.dispatch(_reminder(now), now)

  assert result.status == "delivered"
  token, message = push_sender.sent[0]
  assert token == "tok-fan"
  assert message.title == "Match Starting Soon!"
  assert message.body == "Mexico vs Canada kicks off in 30 minutes at Estadio Azteca"
  assert message.android_channel == "match_reminders"
  in_app = store.doc("notifications", "reminder_due__rem-1__fan")
  assert in_app["actionUrl"] == "/match/m-42"
  assert store.doc("match_reminders", "rem-1")["isSent"] is True


@pytest.mark.anyio
async def test_reminder_for_started_match_is_marked_sent_without_delivery(dispatcher, store, push_sender, now):
  store.seed("users", "fan", {"fcmToken": "tok-fan"})
  store.seed("match_reminders", "rem-1", {"isEnabled": True, "isSent": False})

  result = await dispatcher.dispatch(_reminder(now, match_date_time_utc=now - timedelta(minutes=1)), now)

  assert result.status == "expired"
  assert push_sender.sent == []
  assert store.all("notifications") == {}
  assert store.doc("match_reminders", "rem-1")["isSent"] is True


@pytest.mark.anyio
async def test_reminder_with_transient_failure_stays_unsent(dispatcher, store, push_sender, now):
  store.seed("users", "fan", {"fcmToken": "tok-fan"})
  store.seed("match_reminders", "rem-1", {"isEnabled": True, "isSent": False})
  push_sender.fail("tok-fan", PushStatus.TRANSIENT_ERROR)

  result = await dispatcher.dispatch(_reminder(now), now)

  assert result.status == "pending_retry"
  assert store.doc("match_reminders", "rem-1")["isSent"] is False


@pytest.mark.anyio
async def test_reminder_with_category_disabled_is_still_marked_sent(dispatcher, store, push_sender, now):
  store.seed("users", "fan", {"fcmToken": "tok-fan"})
  store.seed("notification_preferences", "fan", {"matchReminders": False})
  store.seed("match_reminders", "rem-1", {"isEnabled": True, "isSent": False})

  await dispatcher.dispatch(_reminder(now), now)

  assert push_sender.sent == []
  assert store.all("notifications") == {}
  assert store.doc("match_reminders", "rem-1")["isSent"] is True


@pytest.mark.anyio
async def test_invite_with_personal_message(dispatcher, store, push_sender, now):
  store.seed("users", "guest", {"fcmToken": "tok-guest"})
  event = InviteCreated(document_id="inv-1", invitee_id="guest", inviter_id="host", inviter_name="Ana", watch_party_id="wp-1", watch_party_name="Final Night", message="Bring snacks")

  await dispatcher.dispatch(event, now)

  _, message = push_sender.sent[0]
  assert message.title == "Watch Party Invitation"
  assert message.body == 'Ana: "Bring snacks"'
  in_app = store.doc("notifications", "invite_created__inv-1__guest")
  assert in_app["fromUserId"] == "host"
  assert in_app["fromUserName"] == "Ana"
  assert in_app["actionUrl"] == "/watch-party/wp-1"


@pytest.mark.anyio
async def test_invite_without_message_names_the_party(dispatcher, store, push_sender, now):
  store.seed("users", "guest", {"fcmToken": "tok-guest"})
  event = InviteCreated(document_id="inv-1", invitee_id="guest", watch_party_id="wp-1", watch_party_name="Final Night")

  await dispatcher.dispatch(event, now)

  assert push_sender.sent[0][1].body == 'Someone invited you to "Final Night"'


@pytest.mark.anyio
async def test_invite_response_notifies_host(dispatcher, store, push_sender, now):
  store.seed("watch_parties", "wp-1", {"hostId": "host", "name": "Final Night"})
  store.seed("users", "guest", {"displayName": "Riley"})
  store.seed("users", "host", {"fcmToken": "tok-host"})

  accepted = await dispatcher.dispatch(InviteResponded(document_id="inv-1", invitee_id="guest", watch_party_id="wp-1", watch_party_name="Final Night", status="accepted"), now)
  declined = await dispatcher.dispatch(InviteResponded(document_id="inv-1", invitee_id="guest", watch_party_id="wp-1", watch_party_name="Final Night", status="declined"), now)

  assert accepted.status == "delivered"
  assert declined.status == "delivered"
  assert [(message.title, message.body) for _, message in push_sender.sent] == [
    ("Invite Accepted!", 'Riley is joining your watch party "Final Night"'),
    ("Invite Declined", "Riley can't make it to \"Final Night\""),
  ]
  assert push_sender.sent[0][1].android_channel == "watch_party_updates"


@pytest.mark.anyio
async def test_invite_response_without_host_is_skipped(dispatcher, push_sender, now):
  result = await dispatcher.dispatch(InviteResponded(document_id="inv-1", invitee_id="guest", watch_party_id="missing", status="accepted"), now)

  assert result.status == "skipped"
  assert push_sender.sent == []


@pytest.mark.anyio
async def test_cancelled_party_notifies_members_except_host(dispatcher, store, push_sender, now):
  for member in ("host", "m1", "m2"):
    store.seed("watch_parties/wp-1/members", member, {"joinedAt": now})
    store.seed("users", member, {"fcmToken": f"tok-{member}"})

  result = await dispatcher.dispatch(WatchPartyCancelled(document_id="wp-1", host_id="host", host_name="Ana", name="Final Night", game_name="MEX vs CAN"), now)

  assert result.detail["recipients"] == 2
  assert sorted(push_sender.tokens_sent()) == ["tok-m1", "tok-m2"]
  assert push_sender.sent[0][1].body == '"Final Night" for MEX vs CAN has been cancelled'
  assert store.doc("notifications", "watch_party_cancelled__wp-1__host") is None


@pytest.mark.anyio
async def test_cancelled_party_without_members_is_recorded_as_noop(dispatcher, store, now):
  result = await dispatcher.dispatch(WatchPartyCancelled(document_id="wp-1", host_id="host"), now)

  assert result.detail["recipients"] == 0
  assert store.doc("sent_notifications", "watch_party_cancelled__wp-1")["recipientCount"] == 0


@pytest.mark.anyio
async def test_group_message_uses_chat_name_and_marks_processed(dispatcher, store, push_sender, now):
  store.seed("message_notifications", "mn-1", {"processed": False})
  store.seed("users", "u2", {"fcmToken": "tok-2"})
  store.seed("users", "u3", {"fcmToken": "tok-3"})
  event = MessageCreated(document_id="mn-1", chat_id="c1", sender_id="u1", sender_name="Ana", message_type="image", recipient_ids=["u1", "u2", "u3"], chat_name="Fan Club", chat_type="group")

  await dispatcher.dispatch(event, now)

  assert sorted(push_sender.tokens_sent()) == ["tok-2", "tok-3"]
  _, message = push_sender.sent[0]
  assert message.title == "Fan Club"
  assert message.body == "Ana sent a photo"
  processed = store.doc("message_notifications", "mn-1")
  assert processed["processed"] is True
  assert processed["processedAt"] == now
  assert processed["error"] is None


@pytest.mark.anyio
async def test_direct_message_uses_sender_as_title(dispatcher, store, push_sender, now):
  store.seed("message_notifications", "mn-1", {})
  store.seed("users", "u2", {"fcmToken": "tok-2"})
  event = MessageCreated(document_id="mn-1", chat_id="c1", sender_id="u1", sender_name="Ana", content="Kickoff!", recipient_ids=["u2"])

  await dispatcher.dispatch(event, now)

  _, message = push_sender.sent[0]
  assert (message.title, message.body) == ("Ana", "Kickoff!")
  assert store.doc("notifications", "message_created__mn-1__u2")["actionUrl"] == "/chat/c1"


@pytest.mark.anyio
async def test_message_failure_is_recorded_on_trigger_document(dispatcher, store, now, monkeypatch):
  store.seed("message_notifications", "mn-1", {})

  async def _broken(self, request, **kwargs):
    raise ValueError("template exploded")

  monkeypatch.setattr(DeliveryPipeline, "run", _broken)
  event = MessageCreated(document_id="mn-1", chat_id="c1", recipient_ids=["u2"])

  result = await dispatcher.dispatch(event, now)

  assert result.status == "failed"
  assert store.doc("message_notifications", "mn-1")["error"] == "template exploded"


@pytest.mark.anyio
async def test_friend_request_accepted_links_to_profile(dispatcher, store, push_sender, now):
  store.seed("friend_request_notifications", "fr-1", {})
  store.seed("users", "u2", {"fcmToken": "tok-2"})
  event = FriendRequestCreated(document_id="fr-1", from_user_id="u1", from_user_name="Ana", to_user_id="u2", request_type="friend_request_accepted")

  await dispatcher.dispatch(event, now)

  _, message = push_sender.sent[0]
  assert (message.title, message.body) == ("Friend Request Accepted", "Ana accepted your friend request")
  in_app = store.doc("notifications", "friend_request_created__fr-1__u2")
  assert in_app["actionUrl"] == "/profile/u1"
  assert in_app["type"] == "friendRequestAccepted"
  assert store.doc("friend_request_notifications", "fr-1")["processed"] is True


@pytest.mark.anyio
async def test_new_friend_request_links_to_requests(dispatcher, store, push_sender, now):
  store.seed("friend_request_notifications", "fr-1", {})
  event = FriendRequestCreated(document_id="fr-1", to_user_id="u2")

  await dispatcher.dispatch(event, now)

  in_app = store.doc("notifications", "friend_request_created__fr-1__u2")
  assert in_app["title"] == "New Friend Request"
  assert in_app["message"] == "Someone wants to be your friend"
  assert in_app["actionUrl"] == "/friends/requests"


@pytest.mark.anyio
async def test_favorite_team_followers_get_personalised_copy(dispatcher, store, push_sender, now):
  store.seed("users", "mex-fan", {"notifyFavoriteTeamMatches": True, "favoriteTeamCodes": ["MEX"], "fcmToken": "tok-mex"})
  store.seed("users", "both-fan", {"notifyFavoriteTeamMatches": True, "favoriteTeamCodes": ["MEX", "CAN"], "fcmToken": "tok-both"})
  store.seed("users", "opted-out", {"notifyFavoriteTeamMatches": False, "favoriteTeamCodes": ["CAN"], "fcmToken": "tok-out"})
  store.seed("users", "other", {"notifyFavoriteTeamMatches": True, "favoriteTeamCodes": ["BRA"], "fcmToken": "tok-bra"})
  event = FavoriteTeamMatch(document_id="m-42", home_team_code="MEX", away_team_code="CAN", home_team_name="Mexico", away_team_name="Canada", date_time_utc=datetime(2026, 6, 14, 20, 0, tzinfo=timezone.utc))

  result = await dispatcher.dispatch(event, now)

  assert result.detail["recipients"] == 2
  bodies = {token: message.body for token, message in push_sender.sent}
  assert bodies == {
    "tok-mex": "Mexico plays - Mexico vs Canada at Sun, Jun 14, 8:00 PM UTC",
    "tok-both": "Mexico and Canada face off - Mexico vs Canada at Sun, Jun 14, 8:00 PM UTC",
  }
  assert all(message.title == "Your Team Plays Tomorrow!" for _, message in push_sender.sent)
  assert store.doc("sent_notifications", "favorite_team_match__m-42")["matchId"] == "m-42"

  again = await dispatcher.dispatch(event, now)
  assert again.status == "duplicate"
  assert len(push_sender.sent) == 2


@pytest.mark.anyio
async def test_store_outage_propagates_from_single_dispatch(dispatcher, store, now):
  store.unavailable = True

  with pytest.raises(StoreUnavailableError):
    await dispatcher.dispatch(_reminder(now), now)
