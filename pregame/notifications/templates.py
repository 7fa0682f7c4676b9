"""Title/body templates shared by the push and in-app channels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class NotificationTemplate:
  """Define a notification template."""

  template_id: str
  title_template: str
  body_template: str
  required_keys: set[str]


TEMPLATES: dict[str, NotificationTemplate] = {
  "match_reminder_v1": NotificationTemplate(template_id="match_reminder_v1", title_template="Match Starting Soon!", body_template="{{match_name}} kicks off in {{timing}}{{venue_suffix}}", required_keys={"match_name", "timing", "venue_suffix"}),
  "watch_party_invite_v1": NotificationTemplate(template_id="watch_party_invite_v1", title_template="Watch Party Invitation", body_template='{{inviter_name}} invited you to "{{watch_party_name}}"', required_keys={"inviter_name", "watch_party_name"}),
  "watch_party_invite_note_v1": NotificationTemplate(template_id="watch_party_invite_note_v1", title_template="Watch Party Invitation", body_template='{{inviter_name}}: "{{personal_message}}"', required_keys={"inviter_name", "personal_message"}),
  "watch_party_invite_accepted_v1": NotificationTemplate(template_id="watch_party_invite_accepted_v1", title_template="Invite Accepted!", body_template='{{invitee_name}} is joining your watch party "{{watch_party_name}}"', required_keys={"invitee_name", "watch_party_name"}),
  "watch_party_invite_declined_v1": NotificationTemplate(template_id="watch_party_invite_declined_v1", title_template="Invite Declined", body_template="{{invitee_name}} can't make it to \"{{watch_party_name}}\"", required_keys={"invitee_name", "watch_party_name"}),
  "watch_party_cancelled_v1": NotificationTemplate(template_id="watch_party_cancelled_v1", title_template="Watch Party Cancelled", body_template='"{{watch_party_name}}" for {{game_name}} has been cancelled', required_keys={"watch_party_name", "game_name"}),
  "new_message_v1": NotificationTemplate(template_id="new_message_v1", title_template="{{chat_title}}", body_template="{{preview}}", required_keys={"chat_title", "preview"}),
  "friend_request_v1": NotificationTemplate(template_id="friend_request_v1", title_template="New Friend Request", body_template="{{from_user_name}} wants to be your friend", required_keys={"from_user_name"}),
  "friend_request_accepted_v1": NotificationTemplate(template_id="friend_request_accepted_v1", title_template="Friend Request Accepted", body_template="{{from_user_name}} accepted your friend request", required_keys={"from_user_name"}),
  "favorite_team_match_v1": NotificationTemplate(template_id="favorite_team_match_v1", title_template="Your Team Plays Tomorrow!", body_template="{{team_description}} {{verb}} - {{home_team_name}} vs {{away_team_name}} at {{kickoff}}", required_keys={"team_description", "verb", "home_team_name", "away_team_name", "kickoff"}),
  "account_muted_v1": NotificationTemplate(template_id="account_muted_v1", title_template="Account Muted", body_template="Your account has been temporarily muted for {{duration}} due to community guideline violations.", required_keys={"duration"}),
  "account_suspended_v1": NotificationTemplate(template_id="account_suspended_v1", title_template="Account Suspended", body_template="Your account has been suspended for {{duration}} due to repeated community guideline violations.", required_keys={"duration"}),
  "moderation_report_v1": NotificationTemplate(template_id="moderation_report_v1", title_template="New {{content_type}} Report", body_template="{{reporter_name}} reported {{owner_name}} for {{reason}}", required_keys={"content_type", "reporter_name", "owner_name", "reason"}),
}


def render_template(*, template_id: str, data: dict[str, Any]) -> tuple[str, str]:
  """Render a template into a title and body string."""
  template = TEMPLATES.get(template_id)
  if template is None:
    raise ValueError(f"Unknown notification template: {template_id}")
  missing = sorted(template.required_keys - set(data.keys()))
  if missing:
    raise ValueError(f"Missing placeholders for template '{template_id}': {', '.join(missing)}")
  title = template.title_template
  body = template.body_template
  for key, value in data.items():
    title = title.replace(f"{{{{{key}}}}}", str(value))
    body = body.replace(f"{{{{{key}}}}}", str(value))
  return title, body
