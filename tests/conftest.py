"""Pytest configuration."""

import os

# Must be set before keyescrow modules build the engine and settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./keyescrow-test.db")
os.environ.setdefault("RUN_MIGRATIONS", "false")

from collections.abc import AsyncGenerator  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from keyescrow.api.deps import get_protocol_handlers  # noqa: E402
from keyescrow.db.base import Base  # noqa: E402
from keyescrow.main import app  # noqa: E402
from keyescrow.services.ledger import KeyExchangeLedger  # noqa: E402
from keyescrow.services.protocol import ProtocolConfig, ProtocolHandlers  # noqa: E402
from keyescrow.services.provisioner import KeyProvisioner  # noqa: E402
from keyescrow.services.registry import DeviceRegistry  # noqa: E402

DEVICE_HEADER = "X-Device-ID"


@pytest.fixture
async def db_engine(tmp_path):
    """Per-test SQLite database file with the schema created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}",
        echo=False,
        hide_parameters=True,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def registry(session_factory) -> DeviceRegistry:
    return DeviceRegistry(session_factory)


@pytest.fixture
def ledger(session_factory) -> KeyExchangeLedger:
    return KeyExchangeLedger(session_factory)


@pytest.fixture
def provisioner() -> KeyProvisioner:
    return KeyProvisioner()


@pytest.fixture
def handlers(registry, ledger, provisioner) -> ProtocolHandlers:
    return ProtocolHandlers(registry, ledger, provisioner, ProtocolConfig(operation_timeout=10.0))


@pytest.fixture
async def client(handlers) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the app with handlers backed by the test database."""
    app.dependency_overrides[get_protocol_handlers] = lambda: handlers

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


def registration_body(**overrides):
    """A realistic agent registration payload."""
    body = {
        "deviceId": "ignored-body-id",
        "persistentId": "persist-001",
        "hostname": "host1",
        "username": "operator",
        "os": "linux",
        "architecture": "amd64",
        "numCpu": 8,
        "goVersion": "go1.22.1",
        "currentTime": "2026-10-18T09:30:00Z",
        "workingDir": "/home/operator",
        "geo": {"ip": "203.0.113.7", "city": "Lisbon", "region": "Lisboa", "country": "PT"},
        "envVars": ["LANG=en_US.UTF-8", "SHELL=/bin/bash"],
    }
    body.update(overrides)
    return body


def heartbeat_body(**overrides):
    body = {
        "geo": {"ip": "203.0.113.7", "city": "Lisbon", "region": "Lisboa", "country": "PT"},
        "uptime": "3h12m",
        "mem": {"total": 16_000_000_000, "used": 9_000_000_000, "proc": 42_000_000},
        "nonce": "n-0001",
    }
    body.update(overrides)
    return body
