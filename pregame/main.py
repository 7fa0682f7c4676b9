from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from pregame.api.routes import tasks
from pregame.core.errors import EventValidationError, StoreUnavailableError
from pregame.core.exceptions import (
  event_validation_exception_handler,
  global_exception_handler,
  http_exception_handler,
  request_validation_exception_handler,
  store_unavailable_exception_handler,
)
from pregame.core.lifespan import lifespan
from pregame.core.middleware import RequestLoggingMiddleware

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(StoreUnavailableError, store_unavailable_exception_handler)
app.add_exception_handler(EventValidationError, event_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
