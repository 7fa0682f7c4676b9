"""Decide which recipients of an event should be notified, and on which channels."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pregame.notifications.contracts import DeliveryRequest
from pregame.notifications.ledger import IdempotencyLedger
from pregame.notifications.preferences import PreferenceRepository

logger = logging.getLogger(__name__)


class SkipReason(str, Enum):
  """Why a recipient was dropped before delivery."""

  DUPLICATE = "duplicate"
  CATEGORY_DISABLED = "category_disabled"


@dataclass(frozen=True)
class EligibleRecipient:
  user_id: str
  push_allowed: bool = True


@dataclass
class EligibilityResult:
  """Recipients to deliver to, plus the ones skipped and why."""

  eligible: list[EligibleRecipient] = field(default_factory=list)
  skipped: dict[str, SkipReason] = field(default_factory=dict)


class EligibilityFilter:
  """Apply dedup, category preference and quiet hours, in that order."""

  def __init__(self, *, ledger: IdempotencyLedger, preferences: PreferenceRepository) -> None:
    self._ledger = ledger
    self._preferences = preferences

  async def evaluate(self, request: DeliveryRequest, now: datetime) -> EligibilityResult:
    result = EligibilityResult()
    # dict.fromkeys keeps the first occurrence of a repeated recipient.
    for user_id in dict.fromkeys(request.recipient_ids):
      if not user_id:
        continue

      if await self._ledger.exists(request.recipient_key(user_id)):
        result.skipped[user_id] = SkipReason.DUPLICATE
        continue

      preference = await self._preferences.get(user_id)
      if not preference.allows(request.category):
        logger.debug("Category disabled user_id=%s category=%s", user_id, request.category.value)
        result.skipped[user_id] = SkipReason.CATEGORY_DISABLED
        continue

      push_allowed = True
      if preference.quiet_hours is not None and preference.quiet_hours.contains(now):
        logger.info("Quiet hours active; push suppressed user_id=%s kind=%s", user_id, request.event_kind)
        push_allowed = False

      result.eligible.append(EligibleRecipient(user_id=user_id, push_allowed=push_allowed))
    return result
