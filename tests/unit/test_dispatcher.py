from __future__ import annotations

import pytest

from pregame.core.errors import StoreUnavailableError
from pregame.dispatch.dispatcher import DispatchResult, HandlerRegistry, TriggerDispatcher
from pregame.dispatch.handlers import HandlerOutcome
from pregame.events.models import FriendRequestCreated, InviteCreated, MessageCreated


class _StaticHandler:
  def __init__(self, status: str = "delivered") -> None:
    self.status = status
    self.seen: list[str] = []

  async def handle(self, event, now):
    self.seen.append(event.source_id)
    return HandlerOutcome(status=self.status, detail={"echo": event.source_id})


class _ExplodingHandler:
  def __init__(self, exc: Exception) -> None:
    self.exc = exc

  async def handle(self, event, now):
    raise self.exc


def _invite(document_id: str) -> InviteCreated:
  return InviteCreated(document_id=document_id, invitee_id="u2", watch_party_id="wp-1")


def test_registry_rejects_unknown_kind():
  registry = HandlerRegistry({"invite_created": _StaticHandler()})

  assert registry.kinds == ["invite_created"]
  with pytest.raises(ValueError, match="Unsupported event kind"):
    registry.resolve("birthday")


def test_default_dispatcher_covers_every_event_kind(dispatcher):
  assert dispatcher._registry.kinds == sorted(
    [
      "favorite_team_match",
      "friend_request_created",
      "invite_created",
      "invite_responded",
      "message_created",
      "reminder_due",
      "report_created",
      "sanction_expiry_sweep",
      "watch_party_cancelled",
    ]
  )


@pytest.mark.anyio
async def test_dispatch_wraps_handler_outcome(now):
  dispatcher = TriggerDispatcher(HandlerRegistry({"invite_created": _StaticHandler()}))

  result = await dispatcher.dispatch(_invite("inv-1"), now)

  assert result == DispatchResult(kind="invite_created", source_id="inv-1", status="delivered", detail={"echo": "inv-1"})
  assert result.ok is True
  assert result.to_dict() == {"kind": "invite_created", "sourceId": "inv-1", "status": "delivered", "detail": {"echo": "inv-1"}}


@pytest.mark.anyio
async def test_handler_failure_becomes_failed_result(now):
  dispatcher = TriggerDispatcher(HandlerRegistry({"invite_created": _ExplodingHandler(KeyError("watchPartyId"))}))

  result = await dispatcher.dispatch(_invite("inv-1"), now)

  assert result.status == "failed"
  assert result.ok is False
  assert "watchPartyId" in result.to_dict()["error"]


@pytest.mark.anyio
async def test_store_outage_propagates_from_single_dispatch(now):
  dispatcher = TriggerDispatcher(HandlerRegistry({"invite_created": _ExplodingHandler(StoreUnavailableError("deadline exceeded"))}))

  with pytest.raises(StoreUnavailableError):
    await dispatcher.dispatch(_invite("inv-1"), now)


@pytest.mark.anyio
async def test_dispatch_many_settles_every_event(now):
  healthy = _StaticHandler()
  dispatcher = TriggerDispatcher(
    HandlerRegistry(
      {
        "invite_created": healthy,
        "message_created": _ExplodingHandler(RuntimeError("template exploded")),
        "friend_request_created": _ExplodingHandler(StoreUnavailableError("unavailable")),
      }
    )
  )
  events = [
    _invite("inv-1"),
    MessageCreated(document_id="mn-1", chat_id="c1", recipient_ids=["u2"]),
    FriendRequestCreated(document_id="fr-1", to_user_id="u3"),
    _invite("inv-2"),
  ]

  results = await dispatcher.dispatch_many(events, now)

  assert [result.source_id for result in results] == ["inv-1", "mn-1", "fr-1", "inv-2"]
  assert [result.status for result in results] == ["delivered", "failed", "failed", "delivered"]
  assert results[1].error == "template exploded"
  assert results[2].error == "unavailable"
  assert healthy.seen == ["inv-1", "inv-2"]


@pytest.mark.anyio
async def test_dispatch_many_with_no_events(now):
  dispatcher = TriggerDispatcher(HandlerRegistry({}))

  assert await dispatcher.dispatch_many([], now) == []
