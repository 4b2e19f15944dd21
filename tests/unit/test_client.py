"""Tests for opening and closing MongoDB connections."""
from types import SimpleNamespace

import pytest
from pymongo.errors import ConfigurationError, ServerSelectionTimeoutError

from mongolingo.core.exceptions import DatabaseConnectionError
from mongolingo.schemas.request.mongo_request import ConnectionDescriptor
from mongolingo.services.mongodb import client as client_module
from mongolingo.services.mongodb.client import check_connection, open_database

class StubMotorClient:
    """Records how open_database drives AsyncIOMotorClient."""

    instances = []

    def __init__(self, uri, ping_error=None, default_db_error=None, **kwargs):
        self.uri = uri
        self.kwargs = kwargs
        self.ping_error = ping_error
        self.default_db_error = default_db_error
        self.closed = False
        self.admin = SimpleNamespace(command=self._command)
        StubMotorClient.instances.append(self)

    async def _command(self, name):
        if self.ping_error is not None:
            raise self.ping_error
        return {"ok": 1}

    def __getitem__(self, name):
        return SimpleNamespace(name=name)

    def get_default_database(self, default=None):
        if self.default_db_error is not None:
            raise self.default_db_error
        return SimpleNamespace(name=default)

    def close(self):
        self.closed = True

@pytest.fixture
def motor_client(monkeypatch):
    """Replace AsyncIOMotorClient and return a factory for configuring failures."""
    StubMotorClient.instances = []
    options = {}

    def factory(uri, **kwargs):
        return StubMotorClient(uri, **options, **kwargs)

    monkeypatch.setattr(client_module, "AsyncIOMotorClient", factory)
    return options

@pytest.mark.asyncio
async def test_open_database_yields_named_database_and_closes(motor_client):
    descriptor = ConnectionDescriptor(uri="mongodb://db.internal:27017", db_name="shop")

    async with open_database(descriptor) as db:
        assert db.name == "shop"
        assert StubMotorClient.instances[0].closed is False

    stub = StubMotorClient.instances[0]
    assert stub.uri == "mongodb://db.internal:27017"
    assert "serverSelectionTimeoutMS" in stub.kwargs
    assert stub.closed is True

@pytest.mark.asyncio
async def test_open_database_falls_back_to_default_database(motor_client):
    name = await check_connection(ConnectionDescriptor(uri="mongodb://localhost:27017"))

    assert name == "test"
    assert StubMotorClient.instances[0].closed is True

@pytest.mark.asyncio
async def test_unreachable_server_closes_client(motor_client):
    motor_client["ping_error"] = ServerSelectionTimeoutError("localhost:27017: connection refused")

    with pytest.raises(DatabaseConnectionError) as exc_info:
        async with open_database(ConnectionDescriptor(uri="mongodb://localhost:27017", db_name="shop")):
            pytest.fail("the body must not run when the ping fails")

    assert "connection refused" in exc_info.value.message
    assert exc_info.value.status_code == 503
    assert StubMotorClient.instances[0].closed is True

@pytest.mark.asyncio
async def test_unresolvable_database_closes_client(motor_client):
    motor_client["default_db_error"] = ConfigurationError("No default database name defined or provided.")

    with pytest.raises(DatabaseConnectionError):
        await check_connection(ConnectionDescriptor(uri="mongodb://localhost:27017"))

    assert StubMotorClient.instances[0].closed is True

@pytest.mark.asyncio
async def test_client_is_closed_when_the_work_fails(motor_client):
    with pytest.raises(RuntimeError):
        async with open_database(ConnectionDescriptor(uri="mongodb://localhost:27017", db_name="shop")):
            raise RuntimeError("query failed")

    assert StubMotorClient.instances[0].closed is True
