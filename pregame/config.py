"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Pregame notification service."""

  environment: str
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_dir: str
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  push_notifications_enabled: bool
  push_timeout_seconds: float
  store_timeout_seconds: float
  reminder_due_slack_seconds: int
  default_timezone: str
  mute_report_threshold: int
  suspend_report_threshold: int
  mute_duration_hours: int
  suspend_duration_days: int
  trigger_document_retention_days: int
  reminder_retention_days: int
  ledger_retention_days: int
  cleanup_batch_size: int
  task_secret: str | None


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _parse_timezone(raw: str | None) -> str:
  """Validate an IANA timezone name, defaulting to UTC."""
  timezone_name = (raw or "UTC").strip() or "UTC"
  try:
    ZoneInfo(timezone_name)
  except ZoneInfoNotFoundError:
    raise ValueError(f"PREGAME_DEFAULT_TIMEZONE is not a known timezone: {timezone_name}") from None
  return timezone_name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("PREGAME_ENV", "development").lower()

  # Toggle verbose diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("PREGAME_DEBUG"))

  log_max_bytes = _positive_int("PREGAME_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("PREGAME_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("PREGAME_LOG_BACKUP_COUNT must be zero or a positive integer.")

  push_notifications_enabled = _parse_bool(os.getenv("PREGAME_PUSH_NOTIFICATIONS_ENABLED"))
  firebase_project_id = _optional_str(os.getenv("FIREBASE_PROJECT_ID"))

  # FCM needs an initialized Firebase app, so push requires a project id.
  if push_notifications_enabled and not firebase_project_id:
    raise ValueError("FIREBASE_PROJECT_ID must be set when push notifications are enabled.")

  mute_report_threshold = _positive_int("PREGAME_MUTE_REPORT_THRESHOLD", "5")
  suspend_report_threshold = _positive_int("PREGAME_SUSPEND_REPORT_THRESHOLD", "10")
  if suspend_report_threshold <= mute_report_threshold:
    raise ValueError("PREGAME_SUSPEND_REPORT_THRESHOLD must be greater than PREGAME_MUTE_REPORT_THRESHOLD.")

  return Settings(
    environment=environment,
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_dir=(os.getenv("PREGAME_LOG_DIR") or "./logs").strip(),
    firebase_project_id=firebase_project_id,
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    push_notifications_enabled=push_notifications_enabled,
    push_timeout_seconds=_positive_float("PREGAME_PUSH_TIMEOUT_SECONDS", "10"),
    store_timeout_seconds=_positive_float("PREGAME_STORE_TIMEOUT_SECONDS", "15"),
    reminder_due_slack_seconds=_positive_int("PREGAME_REMINDER_DUE_SLACK_SECONDS", "300"),
    default_timezone=_parse_timezone(os.getenv("PREGAME_DEFAULT_TIMEZONE")),
    mute_report_threshold=mute_report_threshold,
    suspend_report_threshold=suspend_report_threshold,
    mute_duration_hours=_positive_int("PREGAME_MUTE_DURATION_HOURS", "24"),
    suspend_duration_days=_positive_int("PREGAME_SUSPEND_DURATION_DAYS", "7"),
    trigger_document_retention_days=_positive_int("PREGAME_TRIGGER_DOCUMENT_RETENTION_DAYS", "7"),
    reminder_retention_days=_positive_int("PREGAME_REMINDER_RETENTION_DAYS", "7"),
    ledger_retention_days=_positive_int("PREGAME_LEDGER_RETENTION_DAYS", "30"),
    cleanup_batch_size=_positive_int("PREGAME_CLEANUP_BATCH_SIZE", "500"),
    task_secret=_optional_str(os.getenv("PREGAME_TASK_SECRET")),
  )
