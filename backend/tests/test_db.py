import pytest

from db import resolve_database_url


def test_defaults_to_local_sqlite():
    assert resolve_database_url({}) == "sqlite+aiosqlite:///./moodtracker.db"


def test_database_path_for_volume_mount():
    url = resolve_database_url({"DATABASE_PATH": "/data/moodtracker.db"})
    assert url == "sqlite+aiosqlite:////data/moodtracker.db"


def test_database_url_wins():
    url = resolve_database_url({"DATABASE_URL": "sqlite+aiosqlite:///:memory:", "ENV": "prod"})
    assert url == "sqlite+aiosqlite:///:memory:"


@pytest.mark.parametrize(
    "url",
    ["postgres://user:pw@db:5432/mood", "postgresql://user:pw@db:5432/mood"],
)
def test_postgres_urls_use_async_driver(url):
    assert resolve_database_url({"DATABASE_URL": url}) == "postgresql+asyncpg://user:pw@db:5432/mood"


def test_async_postgres_url_left_alone():
    url = "postgresql+asyncpg://user:pw@db:5432/mood"
    assert resolve_database_url({"DATABASE_URL": url}) == url


@pytest.mark.parametrize(
    "environ",
    [
        {"ENV": "prod"},
        {"ENV": "production"},
        {"RENDER": "true"},
        {"ENV": "staging", "RENDER": "true"},
    ],
)
def test_refuses_sqlite_fallback_in_production(environ):
    with pytest.raises(RuntimeError, match="DATABASE_URL missing in production"):
        resolve_database_url(environ)


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u@h/db")
    assert resolve_database_url() == "postgresql+asyncpg://u@h/db"
