"""Pytest configuration and shared fixtures for HomeSim tests."""

from __future__ import annotations

import os
import random
import sys
from datetime import datetime

import pytest

_TESTS_DIR = os.path.dirname(__file__)
_PROJECT_ROOT = os.path.abspath(os.path.join(_TESTS_DIR, ".."))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)


# Zero delays: linkage and scene steps run inline, clock tasks never start
FAST_SIMULATION = {
    "linkage_delay": 0,
    "scene_settle_delay": 0,
    "sample_history_days": 0,
    "connectivity_enabled": False,
}


class FakeClock:
    """Settable replacement for datetime.now."""

    def __init__(self, value: datetime):
        self.value = value

    def __call__(self) -> datetime:
        return self.value


@pytest.fixture
def anyio_backend():
    """Async tests target asyncio; the app and hub are built on asyncio."""
    return "asyncio"


@pytest.fixture
def tmp_db_path(tmp_path):
    """Provide a temporary SQLite database path."""
    return str(tmp_path / "test_homesim.db")


@pytest.fixture
def db(tmp_db_path):
    """Create a fresh Database with schema applied."""
    from persistence.db import Database

    database = Database(db_path=tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 18, 14, 30))


@pytest.fixture
def fast_config():
    return {"simulation": dict(FAST_SIMULATION)}


@pytest.fixture
def home(db, clock, fast_config):
    """A SmartHome with zero delays, persisting to a temporary database."""
    from core.home import SmartHome

    smart_home = SmartHome(
        config=fast_config,
        db=db,
        rng=random.Random(1234),
        now=clock,
    )
    smart_home.registry.add_home(
        {
            "name": "Test Home",
            "rooms": [
                {"id": "bathroom", "name": "Bathroom"},
                {"id": "living", "name": "Living Room"},
            ],
        }
    )
    yield smart_home
    smart_home.stop()


@pytest.fixture
def heater_and_dryer(home):
    """A paired water heater and towel dryer in the bathroom, with built-in rules."""
    heater = home.add_device({"type": "water_heater", "name": "Heater", "room_id": "bathroom"})
    dryer = home.add_device({"type": "towel_dryer", "name": "Dryer", "room_id": "bathroom"})
    return heater["id"], dryer["id"]


@pytest.fixture
def ws_hub():
    """Create a WebSocketHub instance (no event loop bound)."""
    from api.websocket_hub import WebSocketHub

    return WebSocketHub()


@pytest.fixture
def app(home, ws_hub):
    """Create a FastAPI test app with the home injected."""
    from api.app import create_app

    return create_app(home, ws_hub=ws_hub)


@pytest.fixture
async def client(app):
    """Create an AsyncClient for HTTP testing against the ASGI app."""
    import httpx

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as client:
        yield client


@pytest.fixture(autouse=True)
def _run_sync_endpoints_inline(monkeypatch):
    """Run sync FastAPI endpoints inline to avoid AnyIO threadpool hangs."""
    import fastapi.concurrency as fastapi_concurrency
    import fastapi.dependencies.utils as fastapi_dep_utils
    import fastapi.routing as fastapi_routing
    import starlette.concurrency as starlette_concurrency

    async def _run_inline(func, *args, **kwargs):
        return func(*args, **kwargs)

    monkeypatch.setattr(starlette_concurrency, "run_in_threadpool", _run_inline)
    monkeypatch.setattr(fastapi_concurrency, "run_in_threadpool", _run_inline)
    monkeypatch.setattr(fastapi_routing, "run_in_threadpool", _run_inline)
    monkeypatch.setattr(fastapi_dep_utils, "run_in_threadpool", _run_inline)
