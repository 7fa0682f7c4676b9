"""Shared fixtures: in-memory store, recording push sender and wired services."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fakes import InMemoryDocumentStore, RecordingPushSender

from pregame.config import Settings
from pregame.dispatch.dispatcher import build_dispatcher
from pregame.dispatch.scheduler import build_scheduler
from pregame.notifications.factory import build_delivery_pipeline

NOW = datetime(2026, 6, 13, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def now() -> datetime:
  return NOW


@pytest.fixture
def settings(tmp_path) -> Settings:
  return Settings(
    environment="test",
    debug=False,
    log_max_bytes=1048576,
    log_backup_count=1,
    log_dir=str(tmp_path / "logs"),
    firebase_project_id=None,
    firebase_service_account_json_path=None,
    push_notifications_enabled=False,
    push_timeout_seconds=5.0,
    store_timeout_seconds=5.0,
    reminder_due_slack_seconds=300,
    default_timezone="UTC",
    mute_report_threshold=5,
    suspend_report_threshold=10,
    mute_duration_hours=24,
    suspend_duration_days=7,
    trigger_document_retention_days=7,
    reminder_retention_days=7,
    ledger_retention_days=30,
    cleanup_batch_size=500,
    task_secret="test-secret",
  )


@pytest.fixture
def store() -> InMemoryDocumentStore:
  return InMemoryDocumentStore()


@pytest.fixture
def push_sender() -> RecordingPushSender:
  return RecordingPushSender()


@pytest.fixture
def pipeline(settings, store, push_sender):
  return build_delivery_pipeline(settings, store=store, push_sender=push_sender)


@pytest.fixture
def dispatcher(settings, store, push_sender):
  return build_dispatcher(settings, store=store, push_sender=push_sender)


@pytest.fixture
def scheduler(settings, store, dispatcher):
  return build_scheduler(settings, store=store, dispatcher=dispatcher)
