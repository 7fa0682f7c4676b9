"""Automatic moderation: report thresholds, sanctions and their expiry."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from pregame.config import Settings
from pregame.core.errors import RecordWriteError
from pregame.events.models import ReportCreated
from pregame.moderation.models import ReportOutcome, Sanction, SanctionType, SweepResult
from pregame.moderation.repo import ModerationRepository
from pregame.notifications.contracts import DeliveryRequest, NotificationCategory, NotificationContent
from pregame.notifications.ledger import IdempotencyLedger, ledger_key
from pregame.notifications.pipeline import DeliveryPipeline
from pregame.notifications.templates import render_template

logger = logging.getLogger(__name__)

MODERATION_CHANNEL = "moderation"
REPORT_COUNTED_KIND = "report_counted"

REPORT_REASONS = {
  "spam": "Spam",
  "harassment": "Harassment",
  "hateSpeech": "Hate Speech",
  "violence": "Violence",
  "sexualContent": "Sexual Content",
  "misinformation": "Misinformation",
  "impersonation": "Impersonation",
  "scam": "Scam",
  "inappropriateContent": "Inappropriate Content",
  "other": "Other",
}

CONTENT_TYPES = {
  "user": "User",
  "message": "Message",
  "watchParty": "Watch Party",
  "chatRoom": "Chat Room",
  "prediction": "Prediction",
  "comment": "Comment",
}


def format_report_reason(reason: str | None) -> str:
  return REPORT_REASONS.get(reason or "", reason or "Other")


def format_content_type(content_type: str | None) -> str:
  return CONTENT_TYPES.get(content_type or "", content_type or "Content")


def format_duration(delta: timedelta) -> str:
  """Render a sanction length the way account notices phrase it."""
  hours = int(delta.total_seconds() // 3600)
  if hours >= 48 and delta == timedelta(days=delta.days):
    return f"{delta.days} days"
  return f"{hours} hour" if hours == 1 else f"{hours} hours"


class ModerationService:
  """Escalate CLEAN → MUTED → SUSPENDED from report counts and expire sanctions.

  BANNED is only ever set by a human moderator; the service reads it but never
  enters or leaves it.
  """

  def __init__(
    self,
    *,
    repo: ModerationRepository,
    ledger: IdempotencyLedger,
    pipeline: DeliveryPipeline,
    mute_threshold: int = 5,
    suspend_threshold: int = 10,
    mute_duration: timedelta = timedelta(hours=24),
    suspend_duration: timedelta = timedelta(days=7),
  ) -> None:
    self._repo = repo
    self._ledger = ledger
    self._pipeline = pipeline
    self._mute_threshold = mute_threshold
    self._suspend_threshold = suspend_threshold
    self._mute_duration = mute_duration
    self._suspend_duration = suspend_duration

  async def handle_report(self, report: ReportCreated, now: datetime | None = None) -> ReportOutcome:
    """Count one report against its content owner, sanction if needed, then alert admins.

    Two ledger markers guard a report: `report_counted` once the count is
    incremented, and the report key once thresholds, notices and the admin
    alert are done. A redelivery after a failure in between skips the
    increment and re-runs the (idempotent) threshold checks.
    """
    now = now or datetime.now(timezone.utc)
    outcome = ReportOutcome(report_id=report.source_id, user_id=report.content_owner_id)
    key = ledger_key(report.kind, report.source_id)

    if await self._ledger.exists(key):
      logger.info("Report already processed report_id=%s", report.source_id)
      outcome.duplicate = True
      return outcome

    if report.content_owner_id:
      counted_key = ledger_key(REPORT_COUNTED_KIND, report.source_id)
      if await self._ledger.exists(counted_key):
        logger.info("Report already counted; resuming thresholds report_id=%s", report.source_id)
      else:
        await self._repo.increment_report_count(report.content_owner_id)
        await self._record(counted_key, {"reportId": report.source_id, "userId": report.content_owner_id}, now=now)
      await self._apply_thresholds(report.content_owner_id, outcome, now=now)

    try:
      alerts = await self._pipeline.alert_admins(self._admin_alert_content(report))
      outcome.admins_alerted = sum(1 for result in alerts.values() if result.ok)
    except Exception as exc:  # noqa: BLE001
      logger.error("Admin report alert failed report_id=%s error=%s", report.source_id, exc, exc_info=True)

    await self._record(key, {"reportId": report.source_id, "userId": report.content_owner_id, "reportCount": outcome.report_count, "state": outcome.state_after.value}, now=now)
    logger.info("Report processed report_id=%s user_id=%s count=%d state=%s", report.source_id, report.content_owner_id, outcome.report_count, outcome.state_after.value)
    return outcome

  async def _apply_thresholds(self, user_id: str, outcome: ReportOutcome, *, now: datetime) -> None:
    # Re-read after the increment so concurrent reports see each other.
    status = await self._repo.get_status(user_id)
    outcome.report_count = status.report_count
    outcome.state_before = status.state

    if status.report_count >= self._mute_threshold and not status.is_muted and not status.is_suspended and not status.is_banned:
      until = now + self._mute_duration
      await self._repo.apply_mute(user_id, until=until, now=now)
      status.is_muted = True
      status.muted_until = until
      logger.info("Auto-muted user user_id=%s until=%s", user_id, until.isoformat())
      sanction = Sanction(
        user_id=user_id,
        sanction_type=SanctionType.MUTE,
        reason=f"Automatic mute: Received {self._mute_threshold}+ reports",
        action="temporaryMute",
        issued_at=now,
        expires_at=until,
      )
      await self._issue(sanction, "account_muted_v1", self._mute_duration, outcome, now=now)

    if status.report_count >= self._suspend_threshold and not status.is_suspended and not status.is_banned:
      until = now + self._suspend_duration
      await self._repo.apply_suspension(user_id, until=until, now=now)
      status.is_muted = False
      status.muted_until = None
      status.is_suspended = True
      status.suspended_until = until
      logger.info("Auto-suspended user user_id=%s until=%s", user_id, until.isoformat())
      sanction = Sanction(
        user_id=user_id,
        sanction_type=SanctionType.SUSPEND,
        reason=f"Automatic suspension: Received {self._suspend_threshold}+ reports",
        action="temporarySuspension",
        issued_at=now,
        expires_at=until,
      )
      await self._issue(sanction, "account_suspended_v1", self._suspend_duration, outcome, now=now)

    outcome.state_after = status.state

  async def _issue(self, sanction: Sanction, template_id: str, duration: timedelta, outcome: ReportOutcome, *, now: datetime) -> None:
    """Persist the sanction, then tell the user; runs only after the status write succeeded."""
    sanction_id: str | None = None
    try:
      sanction_id = await self._repo.create_sanction(sanction)
      outcome.sanction_ids.append(sanction_id)
    except RecordWriteError as exc:
      logger.error("Sanction write failed user_id=%s type=%s error=%s", sanction.user_id, sanction.sanction_type.value, exc)

    title, body = render_template(template_id=template_id, data={"duration": format_duration(duration)})
    kind = template_id.removesuffix("_v1")
    content = NotificationContent(
      notification_type="moderation",
      title=title,
      body=body,
      data={"sanctionType": sanction.sanction_type.value, "expiresAt": sanction.expires_at.isoformat() if sanction.expires_at else None},
      android_channel=MODERATION_CHANNEL,
      priority="high",
    )
    source_id = sanction_id or f"{sanction.user_id}_{now.strftime('%Y%m%dT%H%M%S')}"
    request = DeliveryRequest(event_kind=kind, source_id=source_id, category=NotificationCategory.MODERATION, recipient_ids=(sanction.user_id,), content=content)
    await self._pipeline.run(request, now=now)

  def _admin_alert_content(self, report: ReportCreated) -> NotificationContent:
    title, body = render_template(
      template_id="moderation_report_v1",
      data={
        "content_type": format_content_type(report.content_type),
        "reporter_name": report.reporter_display_name or "Someone",
        "owner_name": report.content_owner_display_name or "content",
        "reason": format_report_reason(report.reason),
      },
    )
    return NotificationContent(
      notification_type="moderation_report",
      title=title,
      body=body,
      data={"reportId": report.source_id, "contentType": report.content_type or "", "contentId": report.content_id or ""},
      android_channel=MODERATION_CHANNEL,
      priority="high",
    )

  async def sweep_expired(self, now: datetime | None = None) -> SweepResult:
    """Lift mutes and suspensions whose end has passed and retire expired sanctions."""
    now = now or datetime.now(timezone.utc)
    result = SweepResult()

    for document in await self._repo.find_expired_mutes(now):
      # A report may have re-muted the user since the query ran.
      status = await self._repo.get_status(document.id)
      if not status.is_muted or status.muted_until is None or status.muted_until > now:
        logger.info("Mute no longer expired; leaving it user_id=%s", document.id)
        continue
      logger.info("Clearing expired mute user_id=%s", document.id)
      await self._repo.clear_mute(document.id, now=now)
      result.mutes_cleared += 1

    for document in await self._repo.find_expired_suspensions(now):
      status = await self._repo.get_status(document.id)
      if not status.is_suspended or status.suspended_until is None or status.suspended_until > now:
        logger.info("Suspension no longer expired; leaving it user_id=%s", document.id)
        continue
      logger.info("Clearing expired suspension user_id=%s", document.id)
      await self._repo.clear_suspension(document.id, now=now)
      result.suspensions_cleared += 1

    for document in await self._repo.find_expired_sanctions(now):
      await self._repo.deactivate_sanction(document.id)
      result.sanctions_expired += 1

    logger.info("Sanction sweep cleared %d mutes, %d suspensions, %d sanctions", result.mutes_cleared, result.suspensions_cleared, result.sanctions_expired)
    return result

  async def _record(self, key: str, metadata: dict, *, now: datetime) -> None:
    try:
      await self._ledger.record(key, metadata, now=now)
    except RecordWriteError as exc:
      logger.error("Ledger write failed key=%s error=%s", key, exc)


def build_moderation_service(settings: Settings, *, repo: ModerationRepository, ledger: IdempotencyLedger, pipeline: DeliveryPipeline) -> ModerationService:
  return ModerationService(
    repo=repo,
    ledger=ledger,
    pipeline=pipeline,
    mute_threshold=settings.mute_report_threshold,
    suspend_threshold=settings.suspend_report_threshold,
    mute_duration=timedelta(hours=settings.mute_duration_hours),
    suspend_duration=timedelta(days=settings.suspend_duration_days),
  )
