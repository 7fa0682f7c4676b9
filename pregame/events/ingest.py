"""Turn source-document change snapshots into notification events."""

from __future__ import annotations

import logging
from typing import Any

from pregame.core.errors import EventValidationError
from pregame.events.models import NotificationEvent, parse_event

logger = logging.getLogger(__name__)

TRIGGER_SOURCES = ("watch_party_invites", "watch_parties", "message_notifications", "friend_request_notifications", "reports")

_INVITE_RESPONSES = {"accepted", "declined"}


def _payload(kind: str, document_id: str, data: dict[str, Any]) -> dict[str, Any]:
  return {**data, "kind": kind, "documentId": document_id}


def events_from_change(source: str, document_id: str, before: dict[str, Any] | None, after: dict[str, Any] | None) -> list[NotificationEvent]:
  """Map one document change to zero or more events.

  `before` is None for creations; a missing `after` (deletion) never produces
  an event. Raises `EventValidationError` for unknown sources and malformed
  documents.
  """
  if source not in TRIGGER_SOURCES:
    raise EventValidationError(f"Unknown trigger source: {source}")
  if not document_id:
    raise EventValidationError(f"Missing document id for {source} trigger")
  if after is None:
    return []
  if not isinstance(after, dict) or (before is not None and not isinstance(before, dict)):
    raise EventValidationError(f"Snapshots for {source}/{document_id} must be objects")

  created = before is None
  status_changed = not created and before.get("status") != after.get("status")

  if source == "watch_party_invites":
    if created:
      return [parse_event(_payload("invite_created", document_id, after))]
    if status_changed and after.get("status") in _INVITE_RESPONSES:
      return [parse_event(_payload("invite_responded", document_id, after))]
    return []

  if source == "watch_parties":
    if status_changed and after.get("status") == "cancelled":
      return [parse_event(_payload("watch_party_cancelled", document_id, after))]
    return []

  if not created:
    return []

  if source == "message_notifications":
    return [parse_event(_payload("message_created", document_id, after))]
  if source == "friend_request_notifications":
    return [parse_event(_payload("friend_request_created", document_id, after))]
  return [parse_event(_payload("report_created", document_id, after))]
