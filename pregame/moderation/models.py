"""Moderation status, sanctions and sweep results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

STATUS_COLLECTION = "user_moderation_status"
SANCTIONS_COLLECTION = "user_sanctions"
SYSTEM_MODERATOR_ID = "system"


class ModerationState(str, Enum):
  CLEAN = "clean"
  MUTED = "muted"
  SUSPENDED = "suspended"
  BANNED = "banned"


class SanctionType(str, Enum):
  MUTE = "mute"
  SUSPEND = "suspend"
  BAN = "ban"


@dataclass
class ModerationStatus:
  """Snapshot of `user_moderation_status/{userId}`."""

  user_id: str
  report_count: int = 0
  is_muted: bool = False
  muted_until: datetime | None = None
  is_suspended: bool = False
  suspended_until: datetime | None = None
  is_banned: bool = False
  ban_reason: str | None = None

  @classmethod
  def from_document(cls, user_id: str, data: dict[str, Any] | None) -> ModerationStatus:
    data = data or {}
    return cls(
      user_id=user_id,
      report_count=int(data.get("reportCount") or 0),
      is_muted=bool(data.get("isMuted")),
      muted_until=data.get("mutedUntil"),
      is_suspended=bool(data.get("isSuspended")),
      suspended_until=data.get("suspendedUntil"),
      is_banned=bool(data.get("isBanned")),
      ban_reason=data.get("banReason"),
    )

  @property
  def state(self) -> ModerationState:
    if self.is_banned:
      return ModerationState.BANNED
    if self.is_suspended:
      return ModerationState.SUSPENDED
    if self.is_muted:
      return ModerationState.MUTED
    return ModerationState.CLEAN


@dataclass(frozen=True)
class Sanction:
  """One automatic or manual sanction, stored in `user_sanctions`."""

  user_id: str
  sanction_type: SanctionType
  reason: str
  action: str
  issued_at: datetime
  expires_at: datetime | None
  moderator_id: str = SYSTEM_MODERATOR_ID
  is_active: bool = True

  def to_document(self) -> dict[str, Any]:
    return {
      "userId": self.user_id,
      "type": self.sanction_type.value,
      "reason": self.reason,
      "action": self.action,
      "issuedAt": self.issued_at,
      "expiresAt": self.expires_at,
      "isActive": self.is_active,
      "moderatorId": self.moderator_id,
    }


@dataclass
class ReportOutcome:
  """What one report did to its content owner."""

  report_id: str
  duplicate: bool = False
  user_id: str | None = None
  report_count: int = 0
  state_before: ModerationState = ModerationState.CLEAN
  state_after: ModerationState = ModerationState.CLEAN
  sanction_ids: list[str] = field(default_factory=list)
  admins_alerted: int = 0


@dataclass
class SweepResult:
  mutes_cleared: int = 0
  suspensions_cleared: int = 0
  sanctions_expired: int = 0

  @property
  def total(self) -> int:
    return self.mutes_cleared + self.suspensions_cleared + self.sanctions_expired
