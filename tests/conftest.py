"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from screenlens.db.connection import Database
from screenlens.db.schema import initialize

_ENV_VARS = (
    "DASHSCOPE_API_KEY",
    "SCREENLENS_BASE_URL",
    "SCREENLENS_TEXT_MODEL",
    "SCREENLENS_VISION_MODEL",
    "SCREENLENS_HISTORY_ENABLED",
    "SCREENLENS_DB_PATH",
    "SCREENLENS_PHONE_TAG_APP_KEY",
    "SCREENLENS_PHONE_TAG_ACCESS_KEY",
    "SCREENLENS_PHONE_TAG_SECRET_KEY",
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.screenlens and the caller's environment."""
    home = tmp_path / "home"
    monkeypatch.setattr("screenlens.config._GLOBAL_CONFIG_DIR", home)
    monkeypatch.setattr("screenlens.config._GLOBAL_CONFIG_PATH", home / "config.yaml")
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "screenlens.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()
