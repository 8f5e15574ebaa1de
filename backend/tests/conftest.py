"""Pytest configuration and fixtures."""
import os

# Point the app at a throwaway database before anything imports db
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import httpx
import pytest

from db import create_db_and_tables, make_engine, make_session_factory
from discord_client import DiscordClient
from storage import MemoryStorage, SqlStorage

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def sql_storage():
    """SqlStorage on a fresh in-memory database."""
    engine = make_engine(TEST_DB_URL)
    await create_db_and_tables(engine)
    yield SqlStorage(make_session_factory(engine))
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def storage(request):
    """Every storage backend, so the contract is checked against each."""
    if request.param == "memory":
        yield MemoryStorage()
        return

    engine = make_engine(TEST_DB_URL)
    await create_db_and_tables(engine)
    yield SqlStorage(make_session_factory(engine))
    await engine.dispose()


class DiscordRecorder:
    """Collects requests sent to the fake Discord API."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"id": str(len(self.requests))})

    def client(self) -> DiscordClient:
        return DiscordClient("test-token", transport=httpx.MockTransport(self.handler))


@pytest.fixture
def discord_recorder():
    return DiscordRecorder()
