from __future__ import annotations

import logging
import secrets
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from pregame.config import Settings, get_settings
from pregame.core.errors import StoreUnavailableError
from pregame.dispatch.dispatcher import TriggerDispatcher
from pregame.dispatch.scheduler import JOB_NAMES, Scheduler
from pregame.events.ingest import events_from_change

router = APIRouter(tags=["tasks"])
logger = logging.getLogger(__name__)


class TriggerPayload(BaseModel):
  """Document change relayed from a Firestore trigger."""

  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  document_id: str = Field(..., alias="documentId", min_length=1)
  before: dict[str, Any] | None = None
  after: dict[str, Any] | None = None


def require_task_secret(
  settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_pregame_task_secret: str | None = Header(default=None)
) -> None:
  """Authenticate Cloud Scheduler and trigger-relay calls with the shared task secret."""
  # Internal endpoints always require the shared secret.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  expected_auth = f"Bearer {settings.task_secret}"
  # Cloud Scheduler OIDC uses Authorization for Cloud Run invoker auth, so check the dedicated header first.
  shared_secret_valid = secrets.compare_digest((x_pregame_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), expected_auth)
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


def get_dispatcher(request: Request) -> TriggerDispatcher:
  dispatcher = getattr(request.app.state, "dispatcher", None)
  if dispatcher is None:
    raise StoreUnavailableError("Document store is not configured.")
  return dispatcher


def get_scheduler(request: Request) -> Scheduler:
  scheduler = getattr(request.app.state, "scheduler", None)
  if scheduler is None:
    raise StoreUnavailableError("Document store is not configured.")
  return scheduler


@router.post("/tasks/{job_name}", status_code=status.HTTP_200_OK, dependencies=[Depends(require_task_secret)])
async def run_scheduled_job(job_name: str, scheduler: Annotated[Scheduler, Depends(get_scheduler)]) -> dict[str, Any]:
  """Handler for Cloud Scheduler; runs one job from the cadence table."""
  if job_name not in JOB_NAMES:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown scheduled job: {job_name}")
  result = await scheduler.run_job(job_name)
  return {"status": "ok", **result.to_dict()}


@router.post("/triggers/{source}", status_code=status.HTTP_200_OK, dependencies=[Depends(require_task_secret)])
async def handle_trigger(source: str, payload: TriggerPayload, dispatcher: Annotated[TriggerDispatcher, Depends(get_dispatcher)]) -> dict[str, Any]:
  """Handler for the Firestore trigger relay; one call per document change."""
  events = events_from_change(source, payload.document_id, payload.before, payload.after)
  if not events:
    logger.debug("Trigger produced no events source=%s document_id=%s", source, payload.document_id)
    return {"status": "ignored", "results": []}

  # Single events propagate StoreUnavailableError so the relay retries the invocation.
  results = [await dispatcher.dispatch(event) for event in events]
  return {"status": "ok", "results": [result.to_dict() for result in results]}
