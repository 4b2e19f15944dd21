"""MongoDB client service."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from mongolingo.config.settings import MONGODB_DEFAULT_DB, MONGODB_SERVER_SELECTION_TIMEOUT_MS
from mongolingo.core.exceptions import DatabaseConnectionError
from mongolingo.schemas.request.mongo_request import ConnectionDescriptor

logger = logging.getLogger(__name__)

def resolve_database(client: AsyncIOMotorClient, descriptor: ConnectionDescriptor) -> AsyncIOMotorDatabase:
    """
    Pick the database a descriptor points at.

    Args:
        client: Connected Motor client
        descriptor: Connection descriptor

    Returns:
        The explicitly named database, else the URI's default database,
        else MONGODB_DEFAULT_DB.
    """
    if descriptor.db_name:
        return client[descriptor.db_name]
    return client.get_default_database(default=MONGODB_DEFAULT_DB)

@asynccontextmanager
async def open_database(descriptor: ConnectionDescriptor) -> AsyncIterator[AsyncIOMotorDatabase]:
    """
    Open a fresh connection for one unit of work and always close it.

    The server is pinged before the database is handed out, so an unreachable
    server surfaces here as DatabaseConnectionError instead of on the first query.

    Args:
        descriptor: Where to connect

    Yields:
        The target database
    """
    client = None
    try:
        client = AsyncIOMotorClient(
            descriptor.uri,
            serverSelectionTimeoutMS=MONGODB_SERVER_SELECTION_TIMEOUT_MS,
        )
        await client.admin.command("ping")
        db = resolve_database(client, descriptor)
    except PyMongoError as e:
        if client is not None:
            client.close()
        logger.error(f"Cannot connect to MongoDB: {str(e)}")
        raise DatabaseConnectionError(f"Cannot connect to MongoDB: {str(e)}") from e

    try:
        yield db
    finally:
        client.close()
        logger.debug(f"Closed MongoDB connection to database {db.name}")

async def check_connection(descriptor: ConnectionDescriptor, connector=open_database) -> str:
    """
    Verify that the database is reachable.

    Returns:
        The name of the database the descriptor resolves to
    """
    async with connector(descriptor) as db:
        return db.name
