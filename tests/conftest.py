"""Test configuration and fixtures."""
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import OperationFailure

from fakes import FakeCollection, FakeConnector, FakeDatabase, ScriptedProvider
from mongolingo.api.app import create_app
from mongolingo.schemas.request.mongo_request import ConnectionDescriptor
from mongolingo.services.llm.orchestrator import ModelOrchestrator
from mongolingo.services.mongodb.query_service import ActionExecutor
from mongolingo.services.mongodb.schema_cache import SchemaCache
from mongolingo.services.mongodb.schema_service import SchemaIntrospector

@pytest.fixture
def sample_users():
    return [
        {"_id": ObjectId("64b7f0c2a1b2c3d4e5f60718"), "name": "Asha", "age": 34, "email": "asha@example.com", "city": "Pune"},
        {"_id": ObjectId("64b7f0c2a1b2c3d4e5f60719"), "name": "Ravi", "age": 17, "email": "ravi@example.com", "city": "Mumbai"},
        {"_id": ObjectId("64b7f0c2a1b2c3d4e5f6071a"), "name": "Meera", "age": 41, "email": "meera@example.com", "city": "Pune"},
    ]

@pytest.fixture
def fake_db(sample_users):
    db = FakeDatabase("shop")
    db.add(FakeCollection(
        "users",
        sample_users,
        indexes={"_id_": {"key": [("_id", 1)]}, "email_1": {"key": [("email", 1)], "unique": True}},
    ))
    db.add(FakeCollection("products", [{"name": "Lamp", "price": 499.0, "tags": ["home", "light"]}]))
    return db

@pytest.fixture
def connector(fake_db):
    return FakeConnector(fake_db)

@pytest.fixture
def descriptor():
    return ConnectionDescriptor(uri="mongodb://localhost:27017", db_name="shop")

@pytest.fixture
def introspector(connector):
    return SchemaIntrospector(connector=connector, sample_size=10, cache=SchemaCache(ttl=300))

@pytest.fixture
def provider():
    return ScriptedProvider("primary", ['{"action": "find", "collection": "users", "query": {"age": {"$gt": 30}}}'])

@pytest.fixture
def orchestrator(provider):
    return ModelOrchestrator([provider], max_attempts=3, retry_delay=0, health_timeout=1.0)

@pytest.fixture
def app(introspector, orchestrator, connector):
    """Create a test app wired to in-memory fakes."""
    return create_app(
        introspector=introspector,
        orchestrator=orchestrator,
        executor=ActionExecutor(connector=connector),
    )

@pytest.fixture
def client(app):
    """Create a test client."""
    with TestClient(app) as client:
        yield client

@pytest.fixture
def failing_collection():
    return FakeCollection("broken", fail_with=OperationFailure("not authorized on shop"))
