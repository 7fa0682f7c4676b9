"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_sanction_id() -> str:
  """Return a new sanction identifier."""
  return str(uuid.uuid4())
