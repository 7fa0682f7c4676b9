"""Error taxonomy shared by the store, delivery pipeline and dispatcher."""

from __future__ import annotations


class PregameError(Exception):
  """Base class for engine failures."""


class StoreError(PregameError):
  """Base class for document store failures."""


class StoreUnavailableError(StoreError):
  """Raised when the document store cannot be reached or a call times out.

  Fatal for the current invocation: callers propagate it so the invoking
  infrastructure (Cloud Scheduler, the trigger relay) retries the whole
  invocation later.
  """


class RecordWriteError(StoreError):
  """Raised when a single document write is rejected by the store."""


class EventValidationError(PregameError):
  """Raised when a trigger payload cannot be coerced into a known event variant."""
