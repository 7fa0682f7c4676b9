"""One handler per event kind: build the notification, run the pipeline, do the bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from pregame.core.errors import RecordWriteError, StoreUnavailableError
from pregame.events.models import (
  FavoriteTeamMatch,
  FriendRequestCreated,
  InviteCreated,
  InviteResponded,
  MessageCreated,
  NotificationEvent,
  ReminderDue,
  ReportCreated,
  WatchPartyCancelled,
)
from pregame.moderation.service import ModerationService
from pregame.notifications.contracts import DeliveryRequest, NotificationCategory, NotificationContent, SenderInfo
from pregame.notifications.pipeline import DeliveryPipeline, DeliveryReport
from pregame.notifications.templates import render_template
from pregame.storage.documents import DocumentStore, where

logger = logging.getLogger(__name__)

REMINDERS_COLLECTION = "match_reminders"
MESSAGE_TRIGGERS_COLLECTION = "message_notifications"
FRIEND_REQUEST_TRIGGERS_COLLECTION = "friend_request_notifications"

_TIMING_LABELS = {15: "15 minutes", 30: "30 minutes", 60: "1 hour", 120: "2 hours", 1440: "1 day"}

_MESSAGE_TYPE_VERBS = {
  "image": "sent a photo",
  "voice": "sent a voice message",
  "video": "sent a video",
  "file": "sent a file",
  "location": "shared a location",
  "gameInvite": "invited you to watch a game",
  "venueShare": "shared a venue",
}


def timing_display(minutes: int) -> str:
  """Human label for a reminder lead time."""
  if minutes in _TIMING_LABELS:
    return _TIMING_LABELS[minutes]
  if minutes >= 60:
    hours = minutes // 60
    return f"{hours} hour" if hours == 1 else f"{hours} hours"
  return f"{minutes} minutes"


def message_preview(message_type: str, content: str | None, sender_name: str) -> str:
  if message_type == "text":
    return content or ""
  return f"{sender_name} {_MESSAGE_TYPE_VERBS.get(message_type, 'sent a message')}"


def format_kickoff(moment: datetime | None, timezone_name: str) -> str:
  """Render a kickoff time like "Sat, Jun 13, 8:00 PM UTC"."""
  if moment is None:
    return "Tomorrow"
  local = moment.astimezone(ZoneInfo(timezone_name))
  hour = local.hour % 12 or 12
  meridiem = "AM" if local.hour < 12 else "PM"
  return f"{local:%a, %b} {local.day}, {hour}:{local:%M} {meridiem} {local.tzname()}"


@dataclass
class HandlerOutcome:
  """What a handler did with one event."""

  status: str
  report: DeliveryReport | None = None
  detail: dict[str, Any] = field(default_factory=dict)

  @classmethod
  def from_report(cls, report: DeliveryReport, **detail: Any) -> HandlerOutcome:
    if report.duplicate:
      return cls(status="duplicate", report=report, detail=detail)
    return cls(status="delivered", report=report, detail={"recipients": report.recipient_count, "sent": report.sent_count, "skipped": len(report.skipped), **detail})


class EventHandler(Protocol):
  """Processor contract for one event kind."""

  async def handle(self, event: NotificationEvent, now: datetime) -> HandlerOutcome:
    """Handle one validated event."""


class ReminderHandler:
  """Deliver a due match reminder and flag it sent."""

  def __init__(self, *, pipeline: DeliveryPipeline, store: DocumentStore) -> None:
    self._pipeline = pipeline
    self._store = store

  async def handle(self, event: ReminderDue, now: datetime) -> HandlerOutcome:
    if event.match_date_time_utc is not None and event.match_date_time_utc <= now:
      logger.info("Match already started; marking reminder sent reminder_id=%s", event.document_id)
      await self._mark_sent(event.document_id, now)
      return HandlerOutcome(status="expired")

    match_name = event.match_name or "Match"
    minutes = event.timing_minutes or 30
    title, body = render_template(
      template_id="match_reminder_v1",
      data={"match_name": match_name, "timing": timing_display(minutes), "venue_suffix": f" at {event.venue_name}" if event.venue_name else ""},
    )
    content = NotificationContent(
      notification_type="matchReminder",
      title=title,
      body=body,
      data={
        "reminderId": event.document_id,
        "matchId": event.match_id or "",
        "homeTeamCode": event.home_team_code or "",
        "awayTeamCode": event.away_team_code or "",
        "timingMinutes": minutes,
        "venueName": event.venue_name,
      },
      action_url=f"/match/{event.match_id}" if event.match_id else None,
      android_channel="match_reminders",
      priority="high",
    )
    request = DeliveryRequest(event_kind=event.kind, source_id=event.source_id, category=NotificationCategory.MATCH_REMINDER, recipient_ids=(event.user_id,), content=content)
    report = await self._pipeline.run(request, now=now, retry_transient=True)

    if report.has_transient_failures:
      # Left unsent so the next poll inside the slack window tries again.
      return HandlerOutcome(status="pending_retry", report=report)

    await self._mark_sent(event.document_id, now)
    return HandlerOutcome.from_report(report)

  async def _mark_sent(self, reminder_id: str, now: datetime) -> None:
    try:
      await self._store.update(REMINDERS_COLLECTION, reminder_id, {"isSent": True, "sentAt": now})
    except RecordWriteError as exc:
      logger.error("Failed marking reminder sent reminder_id=%s error=%s", reminder_id, exc)


class InviteCreatedHandler:
  def __init__(self, *, pipeline: DeliveryPipeline) -> None:
    self._pipeline = pipeline

  async def handle(self, event: InviteCreated, now: datetime) -> HandlerOutcome:
    inviter_name = event.inviter_name or "Someone"
    party_name = event.watch_party_name or "Watch Party"
    if event.message:
      title, body = render_template(template_id="watch_party_invite_note_v1", data={"inviter_name": inviter_name, "personal_message": event.message})
    else:
      title, body = render_template(template_id="watch_party_invite_v1", data={"inviter_name": inviter_name, "watch_party_name": party_name})

    content = NotificationContent(
      notification_type="watchPartyInvite",
      title=title,
      body=body,
      data={"inviteId": event.document_id, "watchPartyId": event.watch_party_id, "watchPartyName": party_name, "gameName": event.game_name},
      action_url=f"/watch-party/{event.watch_party_id}",
      android_channel="watch_party_invites",
      priority="high",
      sender=SenderInfo(user_id=event.inviter_id, name=inviter_name, image_url=event.inviter_image_url) if event.inviter_id else None,
    )
    request = DeliveryRequest(event_kind=event.kind, source_id=event.source_id, category=NotificationCategory.WATCH_PARTY_INVITE, recipient_ids=(event.invitee_id,), content=content)
    return HandlerOutcome.from_report(await self._pipeline.run(request, now=now))


class InviteRespondedHandler:
  """Tell the party host that an invitee accepted or declined."""

  def __init__(self, *, pipeline: DeliveryPipeline, store: DocumentStore) -> None:
    self._pipeline = pipeline
    self._store = store

  async def handle(self, event: InviteResponded, now: datetime) -> HandlerOutcome:
    party = await self._store.get("watch_parties", event.watch_party_id)
    host_id = (party or {}).get("hostId")
    if not host_id:
      logger.warning("No host found for watch party watch_party_id=%s", event.watch_party_id)
      return HandlerOutcome(status="skipped", detail={"reason": "host_not_found"})

    invitee = await self._store.get("users", event.invitee_id)
    invitee_name = (invitee or {}).get("displayName") or "Someone"
    party_name = event.watch_party_name or (party or {}).get("name") or "Watch Party"
    accepted = event.status == "accepted"
    template_id = "watch_party_invite_accepted_v1" if accepted else "watch_party_invite_declined_v1"
    title, body = render_template(template_id=template_id, data={"invitee_name": invitee_name, "watch_party_name": party_name})

    content = NotificationContent(
      notification_type="watchPartyInviteAccepted" if accepted else "watchPartyInviteDeclined",
      title=title,
      body=body,
      data={"inviteId": event.document_id, "watchPartyId": event.watch_party_id, "watchPartyName": party_name, "status": event.status},
      action_url=f"/watch-party/{event.watch_party_id}",
      android_channel="watch_party_updates",
      sender=SenderInfo(user_id=event.invitee_id, name=invitee_name, image_url=(invitee or {}).get("profileImageUrl")),
    )
    # An invite can be answered more than once, so the answer is part of the source id.
    request = DeliveryRequest(event_kind=event.kind, source_id=f"{event.source_id}_{event.status}", category=NotificationCategory.WATCH_PARTY_UPDATE, recipient_ids=(host_id,), content=content)
    return HandlerOutcome.from_report(await self._pipeline.run(request, now=now))


class WatchPartyCancelledHandler:
  """Tell every member except the host that the party is off."""

  def __init__(self, *, pipeline: DeliveryPipeline, store: DocumentStore) -> None:
    self._pipeline = pipeline
    self._store = store

  async def handle(self, event: WatchPartyCancelled, now: datetime) -> HandlerOutcome:
    members = await self._store.query(f"watch_parties/{event.document_id}/members", [])
    recipients = tuple(member.id for member in members if member.id != event.host_id)
    if not recipients:
      logger.info("No members to notify watch_party_id=%s", event.document_id)

    party_name = event.name or "Watch Party"
    title, body = render_template(template_id="watch_party_cancelled_v1", data={"watch_party_name": party_name, "game_name": event.game_name or "the game"})
    content = NotificationContent(
      notification_type="watchPartyCancelled",
      title=title,
      body=body,
      data={"watchPartyId": event.document_id, "watchPartyName": party_name},
      android_channel="watch_party_updates",
      priority="high",
      sender=SenderInfo(user_id=event.host_id, name=event.host_name or "Host"),
    )
    request = DeliveryRequest(event_kind=event.kind, source_id=event.source_id, category=NotificationCategory.WATCH_PARTY_UPDATE, recipient_ids=recipients, content=content)
    return HandlerOutcome.from_report(await self._pipeline.run(request, now=now))


class _TriggerDocumentHandler:
  """Shared bookkeeping for trigger documents that carry `processed` flags."""

  collection: str

  def __init__(self, *, pipeline: DeliveryPipeline, store: DocumentStore) -> None:
    self._pipeline = pipeline
    self._store = store

  async def _run_and_mark(self, document_id: str, request: DeliveryRequest, now: datetime) -> HandlerOutcome:
    try:
      report = await self._pipeline.run(request, now=now)
    except StoreUnavailableError:
      raise
    except Exception as exc:
      await self._mark_processed(document_id, now, error=str(exc))
      raise
    await self._mark_processed(document_id, now)
    return HandlerOutcome.from_report(report)

  async def _mark_processed(self, document_id: str, now: datetime, *, error: str | None = None) -> None:
    try:
      await self._store.update(self.collection, document_id, {"processed": True, "processedAt": now, "error": error})
    except RecordWriteError as exc:
      logger.error("Failed marking trigger document processed collection=%s document_id=%s error=%s", self.collection, document_id, exc)


class MessageHandler(_TriggerDocumentHandler):
  collection = MESSAGE_TRIGGERS_COLLECTION

  async def handle(self, event: MessageCreated, now: datetime) -> HandlerOutcome:
    sender_name = event.sender_name or "Someone"
    recipients = tuple(recipient for recipient in event.recipient_ids if recipient and recipient != event.sender_id)
    if not recipients:
      logger.warning("No recipients specified message_notification_id=%s", event.document_id)

    chat_title = sender_name if event.chat_type == "direct" else (event.chat_name or "New Message")
    title, body = render_template(template_id="new_message_v1", data={"chat_title": chat_title, "preview": message_preview(event.message_type, event.content, sender_name)})
    content = NotificationContent(
      notification_type="newMessage",
      title=title,
      body=body,
      data={"chatId": event.chat_id, "messageId": event.message_id, "senderId": event.sender_id, "senderName": sender_name, "chatName": event.chat_name or "", "chatType": event.chat_type},
      action_url=f"/chat/{event.chat_id}",
      android_channel="messages",
      priority="high",
      sender=SenderInfo(user_id=event.sender_id, name=sender_name, image_url=event.sender_image_url) if event.sender_id else None,
    )
    request = DeliveryRequest(event_kind=event.kind, source_id=event.source_id, category=NotificationCategory.MESSAGE, recipient_ids=recipients, content=content)
    return await self._run_and_mark(event.document_id, request, now)


class FriendRequestHandler(_TriggerDocumentHandler):
  collection = FRIEND_REQUEST_TRIGGERS_COLLECTION

  async def handle(self, event: FriendRequestCreated, now: datetime) -> HandlerOutcome:
    from_name = event.from_user_name or "Someone"
    accepted = event.request_type == "friend_request_accepted"
    template_id = "friend_request_accepted_v1" if accepted else "friend_request_v1"
    title, body = render_template(template_id=template_id, data={"from_user_name": from_name})

    if accepted and event.from_user_id:
      action_url = f"/profile/{event.from_user_id}"
    else:
      action_url = "/friends/requests"
    content = NotificationContent(
      notification_type="friendRequestAccepted" if accepted else "friendRequest",
      title=title,
      body=body,
      data={"connectionId": event.connection_id, "fromUserId": event.from_user_id, "fromUserName": from_name},
      action_url=action_url,
      android_channel="friend_requests",
      sender=SenderInfo(user_id=event.from_user_id, name=from_name, image_url=event.from_user_image_url) if event.from_user_id else None,
    )
    request = DeliveryRequest(event_kind=event.kind, source_id=event.source_id, category=NotificationCategory.FRIEND_REQUEST, recipient_ids=(event.to_user_id,), content=content)
    return await self._run_and_mark(event.document_id, request, now)


class FavoriteTeamHandler:
  """Notify followers of either team the day before a match."""

  def __init__(self, *, pipeline: DeliveryPipeline, store: DocumentStore, default_timezone: str = "UTC") -> None:
    self._pipeline = pipeline
    self._store = store
    self._default_timezone = default_timezone

  async def handle(self, event: FavoriteTeamMatch, now: datetime) -> HandlerOutcome:
    teams = [event.home_team_code, event.away_team_code]
    followers = await self._store.query(
      "users",
      [where("notifyFavoriteTeamMatches", "==", True), where("favoriteTeamCodes", "array-contains-any", teams)],
    )
    home_name = event.home_team_name or event.home_team_code
    away_name = event.away_team_name or event.away_team_code
    kickoff = format_kickoff(event.date_time_utc, self._default_timezone)

    recipient_content: dict[str, NotificationContent] = {}
    for follower in followers:
      codes = follower.data.get("favoriteTeamCodes") or []
      follows_home = event.home_team_code in codes
      follows_away = event.away_team_code in codes
      if follows_home and follows_away:
        description, verb = f"{home_name} and {away_name}", "face off"
      elif follows_home:
        description, verb = home_name, "plays"
      else:
        description, verb = away_name, "plays"
      recipient_content[follower.id] = self._content(event, description, verb, home_name, away_name, kickoff)

    request = DeliveryRequest(
      event_kind=event.kind,
      source_id=event.source_id,
      category=NotificationCategory.FAVORITE_TEAM,
      recipient_ids=tuple(recipient_content),
      content=self._content(event, home_name, "plays", home_name, away_name, kickoff),
      recipient_content=recipient_content,
      metadata={"matchId": event.document_id, "homeTeamCode": event.home_team_code, "awayTeamCode": event.away_team_code},
    )
    return HandlerOutcome.from_report(await self._pipeline.run(request, now=now))

  @staticmethod
  def _content(event: FavoriteTeamMatch, description: str, verb: str, home_name: str, away_name: str, kickoff: str) -> NotificationContent:
    title, body = render_template(
      template_id="favorite_team_match_v1",
      data={"team_description": description, "verb": verb, "home_team_name": home_name, "away_team_name": away_name, "kickoff": kickoff},
    )
    return NotificationContent(
      notification_type="favoriteTeamMatch",
      title=title,
      body=body,
      data={"matchId": event.document_id, "homeTeamCode": event.home_team_code, "awayTeamCode": event.away_team_code, "teamDescription": description},
      action_url=f"/match/{event.document_id}",
      android_channel="favorite_teams",
      priority="high",
    )


class ReportHandler:
  def __init__(self, *, moderation: ModerationService) -> None:
    self._moderation = moderation

  async def handle(self, event: ReportCreated, now: datetime) -> HandlerOutcome:
    outcome = await self._moderation.handle_report(event, now)
    if outcome.duplicate:
      return HandlerOutcome(status="duplicate")
    return HandlerOutcome(
      status="processed",
      detail={"userId": outcome.user_id, "reportCount": outcome.report_count, "state": outcome.state_after.value, "sanctions": len(outcome.sanction_ids), "adminsAlerted": outcome.admins_alerted},
    )


class SanctionSweepHandler:
  def __init__(self, *, moderation: ModerationService) -> None:
    self._moderation = moderation

  async def handle(self, event: NotificationEvent, now: datetime) -> HandlerOutcome:
    result = await self._moderation.sweep_expired(now)
    return HandlerOutcome(status="swept", detail={"mutesCleared": result.mutes_cleared, "suspensionsCleared": result.suspensions_cleared, "sanctionsExpired": result.sanctions_expired})
