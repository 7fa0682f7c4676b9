from __future__ import annotations

from datetime import timedelta

import pytest

from pregame.notifications.ledger import IdempotencyLedger, ledger_key
from pregame.notifications.tokens import TokenHealthManager


def test_ledger_key_is_deterministic_and_path_safe():
  assert ledger_key("message_created", "m1") == "message_created__m1"
  assert ledger_key("message_created", "m1", "u1") == "message_created__m1__u1"
  assert ledger_key("report_created", "chats/c1/r 9") == "report_created__chats_c1_r_9"


@pytest.mark.anyio
async def test_record_is_write_once(store, now):
  ledger = IdempotencyLedger(store=store)

  assert await ledger.exists("k1") is False
  assert await ledger.record("k1", {"recipientCount": 3}, now=now) is True
  assert await ledger.record("k1", {"recipientCount": 9}, now=now) is False

  entry = store.doc("sent_notifications", "k1")
  assert entry == {"recipientCount": 3, "sentAt": now, "key": "k1"}
  assert await ledger.exists("k1") is True


@pytest.mark.anyio
async def test_purge_deletes_only_entries_before_cutoff(store, now):
  ledger = IdempotencyLedger(store=store)
  await ledger.record("old", now=now - timedelta(days=40))
  await ledger.record("new", now=now)

  deleted = await ledger.purge_older_than(now - timedelta(days=30))

  assert deleted == 1
  assert list(store.all("sent_notifications")) == ["new"]


@pytest.mark.anyio
async def test_get_token_ignores_blank_values(store):
  store.seed("users", "u1", {"fcmToken": "tok-1"})
  store.seed("users", "u2", {"fcmToken": "   "})
  tokens = TokenHealthManager(store=store)

  assert await tokens.get_token("u1") == "tok-1"
  assert await tokens.get_token("u2") is None
  assert await tokens.get_token("ghost") is None


@pytest.mark.anyio
async def test_clear_token_keeps_rotated_token(store):
  store.seed("users", "u1", {"fcmToken": "tok-new"})
  tokens = TokenHealthManager(store=store)

  assert await tokens.clear_token("u1", token="tok-old") is False
  assert store.doc("users", "u1")["fcmToken"] == "tok-new"

  assert await tokens.clear_token("u1", token="tok-new") is True
  assert store.doc("users", "u1")["fcmToken"] is None
  assert "fcmTokenClearedAt" in store.doc("users", "u1")
  assert await tokens.clear_token("u1") is False


@pytest.mark.anyio
async def test_list_tokens_skips_profiles_without_one(store):
  store.seed("admin_users", "a1", {"fcmToken": "admin-1"})
  store.seed("admin_users", "a2", {"email": "ops@pregame.app"})

  assert await TokenHealthManager(store=store, collection="admin_users").list_tokens() == {"a1": "admin-1"}
