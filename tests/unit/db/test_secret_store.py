"""Tests for SecretStore."""

from __future__ import annotations

from screenlens.db.secret_store import API_KEY_ACCOUNT, SecretStore


def test_read_missing_returns_none(tmp_db):
    assert SecretStore(tmp_db).read() is None


def test_upsert_then_read_trims(tmp_db):
    store = SecretStore(tmp_db)
    store.upsert("  sk-abc  ")
    assert store.read() == "sk-abc"


def test_upsert_overwrites(tmp_db):
    store = SecretStore(tmp_db)
    store.upsert("sk-one")
    store.upsert("sk-two")
    assert store.read(API_KEY_ACCOUNT) == "sk-two"


def test_blank_upsert_deletes(tmp_db):
    store = SecretStore(tmp_db)
    store.upsert("sk-one")
    store.upsert("   ")
    assert store.read() is None


def test_delete_missing_is_noop(tmp_db):
    SecretStore(tmp_db).delete()


def test_services_are_isolated(tmp_db):
    SecretStore(tmp_db, service="a").upsert("sk-a")
    assert SecretStore(tmp_db, service="b").read() is None
    assert SecretStore(tmp_db, service="a").read() == "sk-a"
