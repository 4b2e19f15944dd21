"""Request-scoped access to the services created in create_app."""
import uuid

from fastapi import Request

from mongolingo.services.agents.translator import QueryTranslator
from mongolingo.services.mongodb.query_service import ActionExecutor
from mongolingo.services.mongodb.schema_service import SchemaIntrospector

def get_introspector(request: Request) -> SchemaIntrospector:
    return request.app.state.introspector

def get_translator(request: Request) -> QueryTranslator:
    return request.app.state.translator

def get_executor(request: Request) -> ActionExecutor:
    return request.app.state.executor

def new_request_id() -> str:
    return uuid.uuid4().hex[:12]
