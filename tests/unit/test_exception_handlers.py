"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from pregame.core.exceptions import _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw trigger payloads."""
  errors = [{"type": "value_error", "loc": ("body", "after"), "msg": "Value error, Unsupported status 'maybe'.", "input": {"status": "maybe", "inviteeId": "u2"}, "ctx": {"error": ValueError("Unsupported status 'maybe'."), "input": {"status": "maybe"}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "after"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Unsupported status 'maybe'."
  assert "input" not in sanitized[0]["ctx"]


def test_error_payload_only_carries_request_id_when_known() -> None:
  assert _error_payload("Forbidden") == {"detail": "Forbidden"}
  assert _error_payload("Forbidden", request_id="req-1") == {"detail": "Forbidden", "requestId": "req-1"}
