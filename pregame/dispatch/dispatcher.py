"""Route validated events to their handlers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pregame.config import Settings
from pregame.core.errors import StoreUnavailableError
from pregame.dispatch.handlers import (
  EventHandler,
  FavoriteTeamHandler,
  FriendRequestHandler,
  InviteCreatedHandler,
  InviteRespondedHandler,
  MessageHandler,
  ReminderHandler,
  ReportHandler,
  SanctionSweepHandler,
  WatchPartyCancelledHandler,
)
from pregame.events.models import NotificationEvent
from pregame.moderation.repo import ModerationRepository
from pregame.moderation.service import build_moderation_service
from pregame.notifications.contracts import PushSender
from pregame.notifications.factory import build_delivery_pipeline
from pregame.notifications.ledger import IdempotencyLedger
from pregame.storage.documents import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
  """Result wrapper returned for every dispatched event."""

  kind: str
  source_id: str
  status: str
  detail: dict[str, Any] = field(default_factory=dict)
  error: str | None = None

  @property
  def ok(self) -> bool:
    return self.error is None

  def to_dict(self) -> dict[str, Any]:
    payload: dict[str, Any] = {"kind": self.kind, "sourceId": self.source_id, "status": self.status, "detail": self.detail}
    if self.error is not None:
      payload["error"] = self.error
    return payload


class HandlerRegistry:
  """Registry mapping event kinds to handlers."""

  def __init__(self, handlers: dict[str, EventHandler]) -> None:
    self._handlers = handlers

  @property
  def kinds(self) -> list[str]:
    return sorted(self._handlers)

  def resolve(self, kind: str) -> EventHandler:
    """Resolve the handler for an event kind."""
    handler = self._handlers.get(kind)
    if handler is None:
      raise ValueError(f"Unsupported event kind: {kind}")
    return handler


class TriggerDispatcher:
  """Dispatch events one at a time or as an all-settled batch."""

  def __init__(self, registry: HandlerRegistry) -> None:
    self._registry = registry

  async def dispatch(self, event: NotificationEvent, now: datetime | None = None) -> DispatchResult:
    """Run the handler for one event.

    `StoreUnavailableError` propagates so the caller can have the whole
    invocation retried; any other handler failure becomes a failed result.
    """
    now = now or datetime.now(timezone.utc)
    handler = self._registry.resolve(event.kind)
    try:
      outcome = await handler.handle(event, now)
    except StoreUnavailableError:
      logger.error("Store unavailable while handling kind=%s source_id=%s", event.kind, event.source_id)
      raise
    except Exception as exc:  # noqa: BLE001
      logger.error("Handler failed kind=%s source_id=%s error=%s", event.kind, event.source_id, exc, exc_info=True)
      return DispatchResult(kind=event.kind, source_id=event.source_id, status="failed", error=str(exc))

    logger.info("Dispatched kind=%s source_id=%s status=%s", event.kind, event.source_id, outcome.status)
    return DispatchResult(kind=event.kind, source_id=event.source_id, status=outcome.status, detail=outcome.detail)

  async def dispatch_many(self, events: Sequence[NotificationEvent], now: datetime | None = None) -> list[DispatchResult]:
    """Dispatch events concurrently; one failure never blocks the others."""
    now = now or datetime.now(timezone.utc)
    results = await asyncio.gather(*(self.dispatch(event, now) for event in events), return_exceptions=True)
    settled: list[DispatchResult] = []
    for event, result in zip(events, results):
      if isinstance(result, BaseException):
        settled.append(DispatchResult(kind=event.kind, source_id=event.source_id, status="failed", error=str(result)))
      else:
        settled.append(result)
    return settled


def build_dispatcher(settings: Settings, *, store: DocumentStore, push_sender: PushSender | None = None) -> TriggerDispatcher:
  """Wire every handler against one store and push sender."""
  pipeline = build_delivery_pipeline(settings, store=store, push_sender=push_sender)
  moderation = build_moderation_service(settings, repo=ModerationRepository(store=store), ledger=IdempotencyLedger(store=store), pipeline=pipeline)
  handlers: dict[str, EventHandler] = {
    "reminder_due": ReminderHandler(pipeline=pipeline, store=store),
    "invite_created": InviteCreatedHandler(pipeline=pipeline),
    "invite_responded": InviteRespondedHandler(pipeline=pipeline, store=store),
    "watch_party_cancelled": WatchPartyCancelledHandler(pipeline=pipeline, store=store),
    "message_created": MessageHandler(pipeline=pipeline, store=store),
    "friend_request_created": FriendRequestHandler(pipeline=pipeline, store=store),
    "favorite_team_match": FavoriteTeamHandler(pipeline=pipeline, store=store, default_timezone=settings.default_timezone),
    "report_created": ReportHandler(moderation=moderation),
    "sanction_expiry_sweep": SanctionSweepHandler(moderation=moderation),
  }
  return TriggerDispatcher(HandlerRegistry(handlers))
