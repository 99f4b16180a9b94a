"""
tests/test_config.py

Environment handling for database URLs, engine settings and batch upload
settings.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from app.config import DEFAULT_CHUNK_SIZE, get_batch_upload_settings
from app.storage.local import LocalObjectStorage
from db.config import (
    load_env_files,
    normalize_postgres_url,
    resolve_database_url,
    resolve_engine_settings,
)

_DB_VARS = ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL", "ENVIRONMENT")


@pytest.fixture()
def clean_db_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _DB_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("db.config.load_env_files", lambda *args, **kwargs: None)
    return monkeypatch


@pytest.fixture()
def fresh_settings():
    get_batch_upload_settings.cache_clear()
    yield
    get_batch_upload_settings.cache_clear()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@host/db", "postgresql+psycopg://u:p@host/db"),
        ("postgresql://u:p@host/db", "postgresql+psycopg://u:p@host/db"),
        ("postgresql+psycopg://u:p@host/db", "postgresql+psycopg://u:p@host/db"),
        ("sqlite:///local.db", "sqlite:///local.db"),
    ],
)
def test_normalize_postgres_url(raw: str, expected: str) -> None:
    assert normalize_postgres_url(raw) == expected


class TestResolveDatabaseUrl:
    def test_database_url_wins(self, clean_db_env: pytest.MonkeyPatch) -> None:
        clean_db_env.setenv("DATABASE_URL", "postgres://main/db")
        clean_db_env.setenv("LOCAL_DATABASE_URL", "postgres://local/db")

        assert resolve_database_url() == "postgresql+psycopg://main/db"

    def test_cloud_url_only_in_cloud_environments(self, clean_db_env: pytest.MonkeyPatch) -> None:
        clean_db_env.setenv("CLOUD_DATABASE_URL", "postgres://cloud/db")
        clean_db_env.setenv("LOCAL_DATABASE_URL", "postgres://local/db")

        assert resolve_database_url() == "postgresql+psycopg://local/db"

        clean_db_env.setenv("ENVIRONMENT", "Production")
        assert resolve_database_url() == "postgresql+psycopg://cloud/db"

    def test_blank_values_are_skipped(self, clean_db_env: pytest.MonkeyPatch) -> None:
        clean_db_env.setenv("DATABASE_URL", "   ")
        clean_db_env.setenv("LOCAL_DATABASE_URL", "postgres://local/db")

        assert resolve_database_url() == "postgresql+psycopg://local/db"

    def test_missing_url_raises(self, clean_db_env: pytest.MonkeyPatch) -> None:
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            resolve_database_url()


def test_engine_settings_read_pool_options(clean_db_env: pytest.MonkeyPatch) -> None:
    clean_db_env.setenv("DATABASE_URL", "postgres://main/db")
    clean_db_env.setenv("SQL_ECHO", "yes")
    clean_db_env.setenv("DB_POOL_SIZE", "12")
    clean_db_env.setenv("DB_MAX_OVERFLOW", "not-a-number")
    clean_db_env.delenv("DB_POOL_RECYCLE", raising=False)

    settings = resolve_engine_settings()

    assert settings.url == "postgresql+psycopg://main/db"
    assert settings.echo is True
    assert settings.pool_size == 12
    assert settings.max_overflow == 10
    assert settings.pool_recycle == 1800


def test_env_files_do_not_override_existing_values(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    (tmp_path / ".env").write_text(
        "# comment\n"
        "BATCH_TEST_EXISTING=from-file\n"
        'BATCH_TEST_QUOTED="quoted value"\n'
        "not a pair\n",
        encoding="utf-8",
    )
    (tmp_path / ".env.local").write_text("BATCH_TEST_LOCAL=local\n", encoding="utf-8")
    monkeypatch.setenv("BATCH_TEST_EXISTING", "from-process")
    monkeypatch.delenv("BATCH_TEST_QUOTED", raising=False)
    monkeypatch.delenv("BATCH_TEST_LOCAL", raising=False)

    load_env_files(tmp_path)

    assert os.environ["BATCH_TEST_EXISTING"] == "from-process"
    assert os.environ["BATCH_TEST_QUOTED"] == "quoted value"
    assert os.environ["BATCH_TEST_LOCAL"] == "local"
    monkeypatch.delenv("BATCH_TEST_QUOTED")
    monkeypatch.delenv("BATCH_TEST_LOCAL")


class TestBatchUploadSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch, fresh_settings) -> None:
        for name in (
            "BATCH_UPLOAD_CHUNK_SIZE",
            "BATCH_UPLOAD_STORAGE_ROOT",
            "BATCH_UPLOAD_SIGNED_URL_EXPIRY_SECONDS",
            "BATCH_UPLOAD_NOTIFICATIONS_ENABLED",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = get_batch_upload_settings()

        assert settings.chunk_size == DEFAULT_CHUNK_SIZE
        assert settings.storage_root == "data/object-storage"
        assert settings.signed_url_expiry_seconds == 3600
        assert settings.notifications_enabled is True

    def test_overrides_and_floors(self, monkeypatch: pytest.MonkeyPatch, fresh_settings) -> None:
        monkeypatch.setenv("BATCH_UPLOAD_CHUNK_SIZE", "0")
        monkeypatch.setenv("BATCH_UPLOAD_SIGNED_URL_EXPIRY_SECONDS", "120")
        monkeypatch.setenv("BATCH_UPLOAD_NOTIFICATIONS_ENABLED", "off")
        monkeypatch.setenv("BATCH_UPLOAD_STORAGE_ROOT", "  ")

        settings = get_batch_upload_settings()

        assert settings.chunk_size == 1
        assert settings.signed_url_expiry_seconds == 120
        assert settings.notifications_enabled is False
        assert settings.storage_root == "data/object-storage"

    def test_local_storage_defaults_to_configured_root(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        fresh_settings,
    ) -> None:
        monkeypatch.setenv("BATCH_UPLOAD_STORAGE_ROOT", str(tmp_path / "configured"))

        storage = LocalObjectStorage()
        storage.put_object("batch-uploads/a/members.csv", b"member_id\n")

        assert (tmp_path / "configured" / "batch-uploads" / "a" / "members.csv").is_file()
