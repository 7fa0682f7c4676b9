"""Notification events: a closed set of variants discriminated by `kind`."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from pregame.core.errors import EventValidationError


def _to_camel(string: str) -> str:
  """Convert snake_case to camelCase so stored documents validate as-is."""
  parts = string.split("_")
  if not parts:
    return string
  return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


class EventBase(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore", alias_generator=_to_camel, frozen=True)

  document_id: str = Field(..., min_length=1, description="Id of the source document")

  @property
  def source_id(self) -> str:
    return self.document_id

  @field_validator("*", mode="after")
  @classmethod
  def _assume_utc(cls, value: Any) -> Any:
    # Naive timestamps in relayed payloads are UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value


class ReminderDue(EventBase):
  kind: Literal["reminder_due"] = "reminder_due"
  user_id: str = Field(..., min_length=1)
  match_id: str | None = None
  match_name: str | None = None
  timing_minutes: int | None = None
  reminder_date_time_utc: datetime
  match_date_time_utc: datetime | None = None
  venue_name: str | None = None
  home_team_code: str | None = None
  away_team_code: str | None = None


class InviteCreated(EventBase):
  kind: Literal["invite_created"] = "invite_created"
  invitee_id: str = Field(..., min_length=1)
  inviter_id: str | None = None
  inviter_name: str | None = None
  inviter_image_url: str | None = None
  watch_party_id: str = Field(..., min_length=1)
  watch_party_name: str | None = None
  game_name: str | None = None
  message: str | None = None


class InviteResponded(EventBase):
  kind: Literal["invite_responded"] = "invite_responded"
  invitee_id: str = Field(..., min_length=1)
  watch_party_id: str = Field(..., min_length=1)
  watch_party_name: str | None = None
  status: Literal["accepted", "declined"]


class WatchPartyCancelled(EventBase):
  kind: Literal["watch_party_cancelled"] = "watch_party_cancelled"
  host_id: str = Field(..., min_length=1)
  host_name: str | None = None
  name: str | None = None
  game_name: str | None = None


class MessageCreated(EventBase):
  kind: Literal["message_created"] = "message_created"
  chat_id: str = Field(..., min_length=1)
  message_id: str | None = None
  sender_id: str | None = None
  sender_name: str | None = None
  sender_image_url: str | None = None
  content: str | None = None
  message_type: str = "text"
  recipient_ids: list[str] = Field(default_factory=list)
  chat_name: str | None = None
  chat_type: str = "direct"


class FriendRequestCreated(EventBase):
  kind: Literal["friend_request_created"] = "friend_request_created"
  connection_id: str | None = None
  from_user_id: str | None = None
  from_user_name: str | None = None
  from_user_image_url: str | None = None
  to_user_id: str = Field(..., min_length=1)
  request_type: str = Field("friend_request", alias="type")


class FavoriteTeamMatch(EventBase):
  kind: Literal["favorite_team_match"] = "favorite_team_match"
  home_team_code: str = Field(..., min_length=1)
  away_team_code: str = Field(..., min_length=1)
  home_team_name: str | None = None
  away_team_name: str | None = None
  date_time_utc: datetime | None = None


class ReportCreated(EventBase):
  kind: Literal["report_created"] = "report_created"
  report_id: str | None = None
  reporter_id: str | None = None
  reporter_display_name: str | None = None
  content_type: str | None = None
  content_id: str | None = None
  content_owner_id: str | None = None
  content_owner_display_name: str | None = None
  reason: str | None = None

  @property
  def source_id(self) -> str:
    return self.report_id or self.document_id


class SanctionExpirySweep(EventBase):
  kind: Literal["sanction_expiry_sweep"] = "sanction_expiry_sweep"
  document_id: str = "scheduled"


NotificationEvent = Annotated[
  Union[ReminderDue, InviteCreated, InviteResponded, WatchPartyCancelled, MessageCreated, FriendRequestCreated, FavoriteTeamMatch, ReportCreated, SanctionExpirySweep],
  Field(discriminator="kind"),
]

_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(NotificationEvent)


def parse_event(payload: dict[str, Any]) -> NotificationEvent:
  """Validate a raw payload (carrying `kind`) into its event variant."""
  try:
    return _EVENT_ADAPTER.validate_python(payload)
  except ValidationError as exc:
    kind = payload.get("kind") if isinstance(payload, dict) else None
    raise EventValidationError(f"Invalid {kind or 'unknown'} event: {exc.error_count()} validation error(s): {exc}") from exc
