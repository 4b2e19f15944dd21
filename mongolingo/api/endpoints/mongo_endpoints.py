"""MongoDB MCP endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from mongolingo.api.dependencies import get_introspector
from mongolingo.schemas.request.mongo_request import ConnectRequest, ConnectionDescriptor, SchemaRequest
from mongolingo.schemas.response.mongo_response import SchemaResponse
from mongolingo.services.agents.context_composer import render_schema_context
from mongolingo.services.mongodb.client import check_connection
from mongolingo.services.mongodb.schema_service import SchemaIntrospector

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/connect")
async def connect(request: ConnectRequest, introspector: SchemaIntrospector = Depends(get_introspector)):
    """
    Check that a MongoDB database is reachable.

    - uri: mongodb:// or mongodb+srv:// connection string
    - db_name: Optional database name; defaults to the one in the URI
    """
    database = await check_connection(request, connector=introspector.connector)
    logger.info(f"Connection check succeeded for database {database}")
    return {"ok": True, "database": database}

@router.post("/schema", response_model=SchemaResponse)
async def get_mongo_schema(request: SchemaRequest, introspector: SchemaIntrospector = Depends(get_introspector)):
    """
    Get the inferred schema of every collection in the database.

    - refresh: Rescan even when a cached snapshot is still fresh
    - format: "json" for the snapshot only, "ai" to also return the context given to the model
    """
    snapshot = await introspector.get_cached(request.connection, force_refresh=request.refresh)

    ai_context = None
    if request.format == "ai":
        ai_context = render_schema_context(snapshot)

    return SchemaResponse(metadata=snapshot, ai_context=ai_context)

@router.delete("/schema")
async def clear_schema_cache(
    connection: Optional[ConnectionDescriptor] = None,
    introspector: SchemaIntrospector = Depends(get_introspector),
):
    """
    Drop cached schema snapshots.

    With a connection in the body only that database's entry is dropped,
    otherwise the whole cache is cleared.
    """
    introspector.clear_cache(connection)
    logger.info(f"Schema cache cleared ({'one entry' if connection else 'all entries'})")
    return {"ok": True, "message": "Schema cache cleared"}
