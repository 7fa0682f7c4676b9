"""Factory helpers for notification services."""

from __future__ import annotations

from pregame.config import Settings
from pregame.core.firebase import get_firestore_client, initialize_firebase
from pregame.notifications.contracts import PushSender
from pregame.notifications.eligibility import EligibilityFilter
from pregame.notifications.in_app_repo import InAppNotificationRepository
from pregame.notifications.ledger import IdempotencyLedger
from pregame.notifications.pipeline import DeliveryPipeline
from pregame.notifications.preferences import PreferenceRepository
from pregame.notifications.push_sender import FcmPushSender, NullPushSender
from pregame.notifications.tokens import TokenHealthManager
from pregame.storage.documents import DocumentStore
from pregame.storage.firestore_store import FirestoreDocumentStore


def build_document_store(settings: Settings) -> DocumentStore | None:
  """Return the Firestore-backed store, or None when Firebase is not configured."""
  client = get_firestore_client(settings)
  if client is None:
    return None
  return FirestoreDocumentStore(client=client, timeout_seconds=settings.store_timeout_seconds)


def build_push_sender(settings: Settings) -> PushSender:
  """Use FCM when push is enabled and a Firebase app is available."""
  if settings.push_notifications_enabled and initialize_firebase(settings):
    return FcmPushSender(timeout_seconds=settings.push_timeout_seconds)
  return NullPushSender()


def build_delivery_pipeline(settings: Settings, *, store: DocumentStore, push_sender: PushSender | None = None) -> DeliveryPipeline:
  """Construct the delivery pipeline with every collaborator bound to one store."""
  ledger = IdempotencyLedger(store=store)
  preferences = PreferenceRepository(store=store, default_timezone=settings.default_timezone)
  return DeliveryPipeline(
    eligibility=EligibilityFilter(ledger=ledger, preferences=preferences),
    push_sender=push_sender or build_push_sender(settings),
    in_app_repo=InAppNotificationRepository(store=store),
    ledger=ledger,
    user_tokens=TokenHealthManager(store=store, collection="users"),
    admin_tokens=TokenHealthManager(store=store, collection="admin_users"),
  )
