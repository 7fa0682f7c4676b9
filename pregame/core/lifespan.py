import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pregame.core.logging import _initialize_logging
from pregame.dispatch.dispatcher import build_dispatcher
from pregame.dispatch.scheduler import build_scheduler
from pregame.notifications.factory import build_document_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and wire the dispatcher and scheduler against Firestore."""
  from pregame.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("pregame.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:  # noqa: BLE001
    # Log initialization failures but allow the app to continue starting.
    logging.getLogger("uvicorn.error").warning("Initial logging setup failed.", exc_info=True)

  # Tests and custom deployments may wire their own collaborators before startup.
  if getattr(app.state, "dispatcher", None) is None:
    store = build_document_store(settings)
    if store is None:
      # Endpoints answer 503 until Firebase is configured.
      logger.warning("Firestore unavailable; internal task endpoints will answer 503.")
      app.state.dispatcher = None
      app.state.scheduler = None
    else:
      dispatcher = build_dispatcher(settings, store=store)
      app.state.dispatcher = dispatcher
      app.state.scheduler = build_scheduler(settings, store=store, dispatcher=dispatcher)
      logger.info("Notification dispatcher ready environment=%s push_enabled=%s", settings.environment, settings.push_notifications_enabled)

  yield
