"""Filter, deliver and record: the delivery pipeline shared by every notification category."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pregame.core.errors import RecordWriteError, StoreUnavailableError
from pregame.notifications.contracts import DeliveryRequest, NotificationContent, PushResult, PushSender, PushStatus
from pregame.notifications.eligibility import EligibilityFilter, EligibleRecipient, SkipReason
from pregame.notifications.in_app_repo import InAppNotificationEntry, InAppNotificationRepository
from pregame.notifications.ledger import IdempotencyLedger
from pregame.notifications.tokens import TokenHealthManager

logger = logging.getLogger(__name__)


@dataclass
class RecipientOutcome:
  """What happened for one recipient of one event."""

  user_id: str
  push_status: PushStatus
  in_app_created: bool = False
  ledger_recorded: bool = False
  error: str | None = None


@dataclass
class DeliveryReport:
  """Summary of one pipeline run."""

  event_key: str
  duplicate: bool = False
  outcomes: dict[str, RecipientOutcome] = field(default_factory=dict)
  skipped: dict[str, SkipReason] = field(default_factory=dict)
  event_recorded: bool = False

  @property
  def recipient_count(self) -> int:
    return len(self.outcomes)

  @property
  def sent_count(self) -> int:
    return sum(1 for outcome in self.outcomes.values() if outcome.push_status == PushStatus.SENT)

  @property
  def has_transient_failures(self) -> bool:
    return any(outcome.push_status == PushStatus.TRANSIENT_ERROR for outcome in self.outcomes.values())


class DeliveryPipeline:
  """Deliver one event to its eligible recipients over push and in-app channels."""

  def __init__(
    self,
    *,
    eligibility: EligibilityFilter,
    push_sender: PushSender,
    in_app_repo: InAppNotificationRepository,
    ledger: IdempotencyLedger,
    user_tokens: TokenHealthManager,
    admin_tokens: TokenHealthManager,
  ) -> None:
    self._eligibility = eligibility
    self._push_sender = push_sender
    self._in_app_repo = in_app_repo
    self._ledger = ledger
    self._user_tokens = user_tokens
    self._admin_tokens = admin_tokens

  async def run(self, request: DeliveryRequest, *, now: datetime | None = None, retry_transient: bool = False) -> DeliveryReport:
    """Run filter → deliver → record for one event.

    With `retry_transient` a recipient whose push failed transiently gets no
    ledger entry, and neither does the event, so the next poll delivers again.
    """
    now = now or datetime.now(timezone.utc)
    report = DeliveryReport(event_key=request.event_key)

    if await self._ledger.exists(request.event_key):
      logger.info("Event already delivered; skipping event_key=%s", request.event_key)
      report.duplicate = True
      return report

    eligibility = await self._eligibility.evaluate(request, now)
    report.skipped = dict(eligibility.skipped)

    results = await asyncio.gather(*(self._deliver(request, recipient, now=now, retry_transient=retry_transient) for recipient in eligibility.eligible), return_exceptions=True)

    store_failure: StoreUnavailableError | None = None
    for recipient, result in zip(eligibility.eligible, results):
      if isinstance(result, StoreUnavailableError):
        store_failure = store_failure or result
        report.outcomes[recipient.user_id] = RecipientOutcome(user_id=recipient.user_id, push_status=PushStatus.TRANSIENT_ERROR, error=str(result))
      elif isinstance(result, BaseException):
        logger.error("Recipient delivery failed event_key=%s user_id=%s error=%s", request.event_key, recipient.user_id, result, exc_info=result)
        report.outcomes[recipient.user_id] = RecipientOutcome(user_id=recipient.user_id, push_status=PushStatus.TRANSIENT_ERROR, error=str(result))
      else:
        report.outcomes[recipient.user_id] = result

    # Side effects for the other recipients are complete; let the invocation be retried.
    if store_failure is not None:
      raise store_failure

    if retry_transient and report.has_transient_failures:
      logger.warning("Transient push failures; leaving event open for retry event_key=%s", request.event_key)
      return report

    metadata = {"eventKind": request.event_kind, "sourceId": request.source_id, "category": request.category.value, "recipientCount": report.recipient_count, "skippedCount": len(report.skipped), **request.metadata}
    report.event_recorded = await self._record(request.event_key, metadata, now=now)
    logger.info("Event delivered event_key=%s recipients=%d sent=%d skipped=%d", request.event_key, report.recipient_count, report.sent_count, len(report.skipped))
    return report

  async def _deliver(self, request: DeliveryRequest, recipient: EligibleRecipient, *, now: datetime, retry_transient: bool) -> RecipientOutcome:
    user_id = recipient.user_id
    content = request.content_for(user_id)
    outcome = RecipientOutcome(user_id=user_id, push_status=PushStatus.SUPPRESSED)

    token: str | None = None
    if recipient.push_allowed:
      token = await self._user_tokens.get_token(user_id)
      if token is None:
        outcome.push_status = PushStatus.NO_TOKEN
      else:
        result = await self._push_sender.send(token, content.to_push())
        outcome.push_status = result.status
        outcome.error = result.error

    # The in-app record is written whatever happened to the push.
    try:
      outcome.in_app_created = await self._in_app_repo.insert(InAppNotificationEntry(notification_id=request.recipient_key(user_id), user_id=user_id, category=request.category, content=content, created_at=now))
    except RecordWriteError as exc:
      logger.error("In-app notification write failed user_id=%s event_key=%s error=%s", user_id, request.event_key, exc)

    if outcome.push_status == PushStatus.INVALID_TOKEN:
      await self._clear_token(self._user_tokens, user_id, token)
    elif outcome.push_status == PushStatus.TRANSIENT_ERROR:
      logger.warning("Transient push failure user_id=%s event_key=%s error=%s", user_id, request.event_key, outcome.error)
      if retry_transient:
        return outcome

    metadata = {"eventKey": request.event_key, "recipientId": user_id, "pushStatus": outcome.push_status.value, "recipientCount": 1}
    outcome.ledger_recorded = await self._record(request.recipient_key(user_id), metadata, now=now)
    return outcome

  async def alert_admins(self, content: NotificationContent) -> dict[str, PushResult]:
    """Multicast to every admin token; invalid admin tokens are cleared."""
    tokens = await self._admin_tokens.list_tokens()
    if not tokens:
      logger.info("No admin tokens registered; skipping admin alert type=%s", content.notification_type)
      return {}

    admin_ids = list(tokens.keys())
    results = await self._push_sender.send_multicast([tokens[admin_id] for admin_id in admin_ids], content.to_push())
    outcomes = dict(zip(admin_ids, results))
    for admin_id, result in outcomes.items():
      if result.status == PushStatus.INVALID_TOKEN:
        await self._clear_token(self._admin_tokens, admin_id, tokens[admin_id])

    sent = sum(1 for result in results if result.ok)
    logger.info("Admin alert sent type=%s sent=%d failed=%d", content.notification_type, sent, len(results) - sent)
    return outcomes

  async def _record(self, key: str, metadata: dict, *, now: datetime) -> bool:
    try:
      return await self._ledger.record(key, metadata, now=now)
    except RecordWriteError as exc:
      # A missing marker only risks a resend.
      logger.error("Ledger write failed key=%s error=%s", key, exc)
      return False

  @staticmethod
  async def _clear_token(manager: TokenHealthManager, user_id: str, token: str | None) -> None:
    try:
      await manager.clear_token(user_id, token=token)
    except RecordWriteError as exc:
      logger.error("Token cleanup failed collection=%s user_id=%s error=%s", manager.collection, user_id, exc)
