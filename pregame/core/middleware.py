import logging
import time
import uuid
from typing import Any

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("pregame.core.middleware")


class RequestLoggingMiddleware:
  """Tag each request with an id and log its method, path, status and latency."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    # Skip non-HTTP scopes to avoid interfering with lifespan events.
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    # Store the request id for downstream handlers and exception logging.
    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id

    start_time = time.time()
    method = scope.get("method", "UNKNOWN")
    path = scope.get("path", "")
    logger.info("Incoming request request_id=%s %s %s", request_id, method, path)

    status_holder: dict[str, Any] = {"status": None}

    async def send_wrapper(message: Message) -> None:
      if message["type"] == "http.response.start":
        status_holder["status"] = message.get("status")
      await send(message)

    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      duration_ms = (time.time() - start_time) * 1000
      logger.info("Request completed request_id=%s %s %s status=%s duration_ms=%.1f", request_id, method, path, status_holder["status"], duration_ms)
