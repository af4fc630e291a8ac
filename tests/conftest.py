import json
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Ensure project root on path before importing app modules
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from groupchat.config import Settings  # noqa: E402
from groupchat.database import create_tables  # noqa: E402
from groupchat.main import create_app  # noqa: E402


class FakeConnection:
    """In-memory stand-in for a realtime connection."""

    def __init__(self, open: bool = True, fail: bool = False):
        self.sent = []
        self.open = open
        self.fail = fail
        self.closed = False

    async def send(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        self.open = False

    def is_open(self) -> bool:
        return self.open

    def events(self, event_type: str | None = None) -> list:
        return [e for e in self.sent if event_type is None or e["type"] == event_type]


@pytest.fixture
def make_connection():
    return FakeConnection


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing at a throwaway SQLite file for this test only."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{(tmp_path / 'test.db').as_posix()}",
        debug=False,
        log_sample_rate=0.0,
        ws_send_timeout_seconds=1,
    )


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client bound to an isolated app with its tables created."""
    await create_tables(app.state.engine)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.engine.dispose()


@pytest.fixture
def sync_client(app):
    """Starlette TestClient for WebSocket flows; runs the app lifespan."""
    with TestClient(app) as tc:
        yield tc


@pytest.fixture
def registry(app):
    return app.state.registry
