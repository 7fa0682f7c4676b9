"""Push notification delivery implementations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from starlette.concurrency import run_in_threadpool

from pregame.notifications.contracts import PushMessage, PushResult, PushSender, PushStatus

logger = logging.getLogger(__name__)

# FCM answers these when the registration token itself is unusable.
_INVALID_TOKEN_ERRORS: tuple[type[Exception], ...] = (messaging.UnregisteredError, messaging.SenderIdMismatchError)


class FcmPushSender(PushSender):
  """Firebase Cloud Messaging sender with a per-call deadline and outcome classification."""

  def __init__(self, *, timeout_seconds: float = 10.0, app: object | None = None) -> None:
    self._timeout_seconds = timeout_seconds
    self._app = app

  async def send(self, token: str, message: PushMessage) -> PushResult:
    """Send a single FCM message and map SDK failures onto `PushStatus`."""
    fcm_message = build_fcm_message(message, token=token)
    try:
      message_id = await asyncio.wait_for(run_in_threadpool(messaging.send, fcm_message, app=self._app), timeout=self._timeout_seconds)
    except asyncio.TimeoutError:
      return PushResult(status=PushStatus.TRANSIENT_ERROR, error=f"FCM send timed out after {self._timeout_seconds}s")
    except Exception as exc:  # noqa: BLE001
      return classify_push_exception(exc)
    return PushResult(status=PushStatus.SENT, message_id=str(message_id))

  async def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> list[PushResult]:
    """Send one payload to many tokens and return one result per token."""
    if not tokens:
      return []

    multicast = build_fcm_multicast(message, tokens=tokens)
    try:
      response = await asyncio.wait_for(run_in_threadpool(messaging.send_each_for_multicast, multicast, app=self._app), timeout=self._timeout_seconds)
    except asyncio.TimeoutError:
      return [PushResult(status=PushStatus.TRANSIENT_ERROR, error="FCM multicast timed out") for _ in tokens]
    except Exception as exc:  # noqa: BLE001
      failure = classify_push_exception(exc)
      return [failure for _ in tokens]

    results: list[PushResult] = []
    for item in response.responses:
      if item.success:
        results.append(PushResult(status=PushStatus.SENT, message_id=item.message_id))
      else:
        results.append(classify_push_exception(item.exception))
    return results


class NullPushSender(PushSender):
  """No-op push sender used when push notifications are disabled or unconfigured."""

  async def send(self, token: str, message: PushMessage) -> PushResult:
    """Drop the notification while recording a debug log."""
    logger.debug("Push notifications disabled; dropping push title=%s", message.title)
    return PushResult(status=PushStatus.NO_TOKEN)

  async def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> list[PushResult]:
    logger.debug("Push notifications disabled; dropping multicast tokens=%d", len(tokens))
    return [PushResult(status=PushStatus.NO_TOKEN) for _ in tokens]


def _is_invalid_token_argument(exc: BaseException | None) -> bool:
  """INVALID_ARGUMENT covers malformed payloads too; only a rejected token counts."""
  return isinstance(exc, firebase_exceptions.InvalidArgumentError) and "registration token" in str(exc).lower()


def classify_push_exception(exc: BaseException | None) -> PushResult:
  """Classify an FCM failure as an invalid token or a transient error."""
  if isinstance(exc, _INVALID_TOKEN_ERRORS) or _is_invalid_token_argument(exc):
    return PushResult(status=PushStatus.INVALID_TOKEN, error=str(exc))

  # Everything else (quota, unavailable, internal, unknown) is worth another attempt later.
  if isinstance(exc, firebase_exceptions.FirebaseError):
    logger.warning("FCM provider error code=%s error=%s", exc.code, exc)
  else:
    logger.error("FCM send failed unexpectedly: %s", exc, exc_info=exc)
  return PushResult(status=PushStatus.TRANSIENT_ERROR, error=str(exc))


def _android_config(message: PushMessage) -> messaging.AndroidConfig:
  notification = messaging.AndroidNotification(channel_id=message.android_channel, priority="high", default_sound=True, default_vibrate_timings=True, icon="ic_notification")
  return messaging.AndroidConfig(priority="high", notification=notification)


def _apns_config(message: PushMessage) -> messaging.APNSConfig:
  aps = messaging.Aps(alert=messaging.ApsAlert(title=message.title, body=message.body), badge=message.badge, sound="default")
  return messaging.APNSConfig(payload=messaging.APNSPayload(aps=aps))


def _data_payload(message: PushMessage) -> dict[str, str]:
  # FCM data values must be strings; Flutter clients route taps on click_action.
  data = {key: "" if value is None else str(value) for key, value in message.data.items()}
  data.setdefault("click_action", "FLUTTER_NOTIFICATION_CLICK")
  return data


def build_fcm_message(message: PushMessage, *, token: str) -> messaging.Message:
  """Build a single-device FCM message with Android and APNs overrides."""
  return messaging.Message(
    token=token,
    notification=messaging.Notification(title=message.title, body=message.body),
    data=_data_payload(message),
    android=_android_config(message),
    apns=_apns_config(message),
  )


def build_fcm_multicast(message: PushMessage, *, tokens: Sequence[str]) -> messaging.MulticastMessage:
  """Build a multicast FCM message sharing one payload across tokens."""
  return messaging.MulticastMessage(
    tokens=list(tokens),
    notification=messaging.Notification(title=message.title, body=message.body),
    data=_data_payload(message),
    android=_android_config(message),
    apns=_apns_config(message),
  )
