"""Time-based jobs: due-reminder and favourite-team polling, sanction expiry and cleanups."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from pregame.config import Settings
from pregame.core.errors import EventValidationError
from pregame.dispatch.dispatcher import DispatchResult, TriggerDispatcher
from pregame.dispatch.handlers import FRIEND_REQUEST_TRIGGERS_COLLECTION, MESSAGE_TRIGGERS_COLLECTION, REMINDERS_COLLECTION
from pregame.events.models import NotificationEvent, SanctionExpirySweep, parse_event
from pregame.notifications.ledger import IdempotencyLedger
from pregame.storage.documents import Document, DocumentStore, where

logger = logging.getLogger(__name__)

MATCHES_COLLECTION = "worldcup_matches"


@dataclass(frozen=True)
class ScheduledJob:
  """A job Cloud Scheduler invokes on a cron cadence."""

  name: str
  schedule: str
  description: str


SCHEDULED_JOBS: tuple[ScheduledJob, ...] = (
  ScheduledJob(name="match_reminders", schedule="* * * * *", description="Deliver match reminders that just became due"),
  ScheduledJob(name="sanction_expiry", schedule="0 * * * *", description="Lift expired mutes and suspensions"),
  ScheduledJob(name="favorite_team_matches", schedule="0 8,20 * * *", description="Notify followers of teams playing in 24-28 hours"),
  ScheduledJob(name="cleanup_reminders", schedule="0 3 * * *", description="Delete sent reminders for matches older than the retention window"),
  ScheduledJob(name="cleanup_trigger_documents", schedule="0 4 * * *", description="Delete processed message and friend-request trigger documents"),
  ScheduledJob(name="cleanup_ledger", schedule="0 4 * * 0", description="Delete old idempotency ledger entries"),
)

JOB_NAMES = frozenset(job.name for job in SCHEDULED_JOBS)


@dataclass
class JobRunResult:
  job_name: str
  detail: dict[str, Any] = field(default_factory=dict)
  results: list[DispatchResult] = field(default_factory=list)

  def to_dict(self) -> dict[str, Any]:
    return {"job": self.job_name, "detail": self.detail, "results": [result.to_dict() for result in self.results]}


class Scheduler:
  """Run one named scheduled job against the store and dispatcher."""

  def __init__(
    self,
    *,
    store: DocumentStore,
    dispatcher: TriggerDispatcher,
    ledger: IdempotencyLedger,
    reminder_slack: timedelta = timedelta(minutes=5),
    reminder_retention: timedelta = timedelta(days=7),
    trigger_retention: timedelta = timedelta(days=7),
    ledger_retention: timedelta = timedelta(days=30),
    batch_size: int = 500,
  ) -> None:
    self._store = store
    self._dispatcher = dispatcher
    self._ledger = ledger
    self._reminder_slack = reminder_slack
    self._reminder_retention = reminder_retention
    self._trigger_retention = trigger_retention
    self._ledger_retention = ledger_retention
    self._batch_size = batch_size

  async def run_job(self, job_name: str, now: datetime | None = None) -> JobRunResult:
    """Run a job from `SCHEDULED_JOBS` by name."""
    if job_name not in JOB_NAMES:
      raise ValueError(f"Unknown scheduled job: {job_name}")
    now = now or datetime.now(timezone.utc)
    logger.info("Running scheduled job name=%s now=%s", job_name, now.isoformat())

    if job_name == "match_reminders":
      results = await self.poll_due_reminders(now)
      return JobRunResult(job_name=job_name, detail={"dispatched": len(results)}, results=results)
    if job_name == "favorite_team_matches":
      results = await self.poll_favorite_team_matches(now)
      return JobRunResult(job_name=job_name, detail={"dispatched": len(results)}, results=results)
    if job_name == "sanction_expiry":
      result = await self._dispatcher.dispatch(SanctionExpirySweep(document_id=f"sweep_{now:%Y%m%dT%H%M}"), now)
      return JobRunResult(job_name=job_name, detail=dict(result.detail), results=[result])
    if job_name == "cleanup_reminders":
      return JobRunResult(job_name=job_name, detail={"deleted": await self.cleanup_reminders(now)})
    if job_name == "cleanup_trigger_documents":
      return JobRunResult(job_name=job_name, detail={"deleted": await self.cleanup_trigger_documents(now)})
    return JobRunResult(job_name=job_name, detail={"deleted": await self.cleanup_ledger(now)})

  async def poll_due_reminders(self, now: datetime) -> list[DispatchResult]:
    """Dispatch enabled, unsent reminders due inside `[now - slack, now]`."""
    due = await self._store.query(
      REMINDERS_COLLECTION,
      [
        where("isEnabled", "==", True),
        where("isSent", "==", False),
        where("reminderDateTimeUtc", "<=", now),
        where("reminderDateTimeUtc", ">=", now - self._reminder_slack),
      ],
    )
    if not due:
      logger.debug("No reminders due now=%s", now.isoformat())
      return []
    logger.info("Found %d due reminders", len(due))
    return await self._dispatcher.dispatch_many(self._parse_all("reminder_due", due), now)

  async def poll_favorite_team_matches(self, now: datetime) -> list[DispatchResult]:
    """Dispatch scheduled matches kicking off between 24 and 28 hours from now."""
    matches = await self._store.query(
      MATCHES_COLLECTION,
      [where("status", "==", "scheduled"), where("dateTimeUtc", ">=", now + timedelta(hours=24)), where("dateTimeUtc", "<=", now + timedelta(hours=28))],
    )
    logger.info("Found %d upcoming matches for favorite team notifications", len(matches))
    return await self._dispatcher.dispatch_many(self._parse_all("favorite_team_match", matches), now)

  async def cleanup_reminders(self, now: datetime) -> int:
    cutoff = now - self._reminder_retention
    stale = await self._store.query(REMINDERS_COLLECTION, [where("isSent", "==", True), where("matchDateTimeUtc", "<", cutoff)], limit=self._batch_size)
    for document in stale:
      await self._store.delete(REMINDERS_COLLECTION, document.id)
    logger.info("Deleted %d old match reminders", len(stale))
    return len(stale)

  async def cleanup_trigger_documents(self, now: datetime) -> int:
    cutoff = now - self._trigger_retention
    deleted = 0
    for collection in (MESSAGE_TRIGGERS_COLLECTION, FRIEND_REQUEST_TRIGGERS_COLLECTION):
      stale = await self._store.query(collection, [where("processed", "==", True), where("processedAt", "<", cutoff)], limit=self._batch_size)
      for document in stale:
        await self._store.delete(collection, document.id)
      logger.info("Deleted %d processed trigger documents collection=%s", len(stale), collection)
      deleted += len(stale)
    return deleted

  async def cleanup_ledger(self, now: datetime) -> int:
    deleted = await self._ledger.purge_older_than(now - self._ledger_retention, limit=self._batch_size)
    logger.info("Deleted %d old ledger entries", deleted)
    return deleted

  @staticmethod
  def _parse_all(kind: str, documents: list[Document]) -> list[NotificationEvent]:
    events: list[NotificationEvent] = []
    for document in documents:
      try:
        events.append(parse_event({**document.data, "kind": kind, "documentId": document.id}))
      except EventValidationError as exc:
        logger.error("Skipping malformed document kind=%s document_id=%s error=%s", kind, document.id, exc)
    return events


def build_scheduler(settings: Settings, *, store: DocumentStore, dispatcher: TriggerDispatcher) -> Scheduler:
  return Scheduler(
    store=store,
    dispatcher=dispatcher,
    ledger=IdempotencyLedger(store=store),
    reminder_slack=timedelta(seconds=settings.reminder_due_slack_seconds),
    reminder_retention=timedelta(days=settings.reminder_retention_days),
    trigger_retention=timedelta(days=settings.trigger_document_retention_days),
    ledger_retention=timedelta(days=settings.ledger_retention_days),
    batch_size=settings.cleanup_batch_size,
  )
