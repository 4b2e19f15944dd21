"""MongoDB schema service."""
import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import bson
from bson import ObjectId
from pymongo.errors import PyMongoError

from mongolingo.config.settings import MONGODB_SCHEMA_SAMPLE_SIZE
from mongolingo.core.exceptions import DatabaseConnectionError
from mongolingo.schemas.request.mongo_request import ConnectionDescriptor
from mongolingo.schemas.response.mongo_response import CollectionSchema, DatabaseSnapshot, IndexInfo
from mongolingo.services.mongodb.client import open_database
from mongolingo.services.mongodb.schema_cache import SchemaCache

logger = logging.getLogger(__name__)

DATE_STRING_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")
OBJECT_ID_STRING_PATTERN = re.compile(r"^[a-f0-9]{24}$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")

MAX_SAMPLE_STRING_LENGTH = 50

def infer_field_type(value: Any) -> str:
    """
    Get the type tag for a sampled value.

    Args:
        value: The value to classify

    Returns:
        One of null, array, date, object, integer, double, boolean, string,
        date-string, objectid-string, email, or unknown
    """
    if value is None:
        return "null"
    elif isinstance(value, list):
        return "array"
    elif isinstance(value, datetime):
        return "date"
    elif isinstance(value, dict):
        return "object"
    # bool is a subclass of int, so it has to be checked first
    elif isinstance(value, bool):
        return "boolean"
    elif isinstance(value, int):
        return "integer"
    elif isinstance(value, (float, bson.Decimal128)):
        return "double"
    elif isinstance(value, ObjectId):
        return "objectid-string"
    elif isinstance(value, str):
        if DATE_STRING_PATTERN.match(value):
            return "date-string"
        if OBJECT_ID_STRING_PATTERN.match(value):
            return "objectid-string"
        if EMAIL_PATTERN.match(value):
            return "email"
        return "string"
    return "unknown"

def format_sample_value(value: Any, type_tag: str) -> Any:
    """
    Summarize a sample value for display in the schema context.

    Arrays and objects collapse to their size, dates and ObjectIds become
    strings and long strings are cut short.
    """
    if type_tag == "array":
        return f"[{len(value)} items]"
    if type_tag == "object":
        return f"{{{len(value)} keys}}"
    if type_tag == "date":
        return value.isoformat()
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, bson.Decimal128):
        return float(value.to_decimal())
    if isinstance(value, str) and len(value) > MAX_SAMPLE_STRING_LENGTH:
        return value[:MAX_SAMPLE_STRING_LENGTH - 3] + "..."
    if type_tag == "unknown":
        return str(value)
    return value

def infer_schema(documents: List[Dict[str, Any]]) -> Tuple[List[str], Dict[str, List[str]], Dict[str, Any]]:
    """
    Infer field names, type tags and example values from sampled documents.

    Args:
        documents: Sampled documents

    Returns:
        Tuple of (fields in first-seen order, field -> type tags,
        field -> first non-null sample value)
    """
    fields: List[str] = []
    field_types: Dict[str, List[str]] = {}
    sample_values: Dict[str, Any] = {}

    for doc in documents or []:
        for key, value in doc.items():
            if key not in field_types:
                fields.append(key)
                field_types[key] = []

            type_tag = infer_field_type(value)
            if type_tag not in field_types[key]:
                field_types[key].append(type_tag)

            # Keep the first non-null value only
            if key not in sample_values and value is not None:
                sample_values[key] = format_sample_value(value, type_tag)

    return fields, field_types, sample_values

def parse_index_information(index_info: Dict[str, Any]) -> List[IndexInfo]:
    """Convert Motor's index_information() output to IndexInfo models."""
    indexes = []
    for name, spec in index_info.items():
        keys = [key for key, _direction in spec.get("key", [])]
        indexes.append(IndexInfo(name=name, keys=keys, unique=bool(spec.get("unique", False))))
    return indexes

class SchemaIntrospector:
    """
    Samples a live database and infers a structural schema per collection.
    """

    def __init__(self, connector=open_database, sample_size: int = MONGODB_SCHEMA_SAMPLE_SIZE, cache: Optional[SchemaCache] = None):
        """
        Args:
            connector: Async context manager factory yielding a database for a descriptor
            sample_size: Documents sampled per collection
            cache: Snapshot cache shared by callers of get_cached
        """
        self.connector = connector
        self.sample_size = sample_size
        self.cache = cache if cache is not None else SchemaCache()

    async def scan(self, descriptor: ConnectionDescriptor) -> DatabaseSnapshot:
        """
        Scan every collection of the database.

        Collections are analyzed concurrently. A collection that fails is
        logged and left out of the snapshot.

        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        logger.info("Starting database introspection")

        async with self.connector(descriptor) as db:
            try:
                collection_names = await db.list_collection_names()
            except PyMongoError as e:
                raise DatabaseConnectionError(f"Cannot list collections of {db.name}: {str(e)}") from e
            logger.info(f"Found {len(collection_names)} collections in {db.name}")

            analyzed = await asyncio.gather(
                *(self._analyze_collection_safely(db, name) for name in collection_names)
            )
            database_name = db.name

        collections = [schema for schema in analyzed if schema is not None]

        snapshot = DatabaseSnapshot(
            database_name=database_name,
            collections=collections,
            total_collections=len(collections),
            total_documents=sum(schema.document_count for schema in collections),
            scanned_at=datetime.now(timezone.utc),
        )
        logger.info(f"Database introspection complete: {snapshot.total_collections} collections, {snapshot.total_documents} documents")
        return snapshot

    async def get_cached(self, descriptor: ConnectionDescriptor, force_refresh: bool = False) -> DatabaseSnapshot:
        """
        Return the cached snapshot for this connection, scanning when needed.

        Args:
            descriptor: Connection to introspect
            force_refresh: Rescan even if a fresh entry exists

        Returns:
            The cached snapshot object itself on a hit, else a new snapshot
        """
        if not force_refresh:
            cached = self.cache.get(descriptor.cache_key)
            if cached is not None:
                logger.info("Using cached database metadata")
                return cached

        logger.info("Refreshing database metadata cache")
        snapshot = await self.scan(descriptor)
        self.cache.put(descriptor.cache_key, snapshot)
        return snapshot

    def clear_cache(self, descriptor: Optional[ConnectionDescriptor] = None) -> None:
        self.cache.clear(descriptor.cache_key if descriptor else None)

    async def get_collection_schemas(self, descriptor: ConnectionDescriptor, collection_names: List[str], sample_size: int = 5) -> Dict[str, CollectionSchema]:
        """
        Sample only the named collections, without counts or indexes.

        Args:
            descriptor: Connection to introspect
            collection_names: Collections to sample
            sample_size: Documents sampled per collection

        Returns:
            Dict mapping collection name to its schema. Collections that
            cannot be sampled are logged and left out.
        """
        schemas = {}
        async with self.connector(descriptor) as db:
            for name in collection_names:
                try:
                    documents = await db[name].find({}).limit(sample_size).to_list(length=sample_size)
                except Exception as e:
                    logger.error(f"  Failed to sample {name}: {str(e)}")
                    continue
                fields, field_types, sample_values = infer_schema(documents)
                schemas[name] = CollectionSchema(
                    name=name,
                    fields=fields,
                    field_types=field_types,
                    sample_values=sample_values,
                )
        return schemas

    async def analyze_collection(self, db, collection_name: str) -> CollectionSchema:
        """
        Infer the schema of one collection from a bounded sample.

        Args:
            db: MongoDB database client
            collection_name: Name of the collection

        Returns:
            The collection's schema, with exact document count and indexes
        """
        collection = db[collection_name]

        documents = await collection.find({}).limit(self.sample_size).to_list(length=self.sample_size)
        count = await collection.count_documents({})
        index_info = await collection.index_information()

        fields, field_types, sample_values = infer_schema(documents)

        schema = CollectionSchema(
            name=collection_name,
            fields=fields,
            field_types=field_types,
            sample_values=sample_values,
            indexes=parse_index_information(index_info),
            document_count=count,
        )
        logger.info(f"  {collection_name}: {count} documents, {len(fields)} fields")
        return schema

    async def _analyze_collection_safely(self, db, collection_name: str) -> Optional[CollectionSchema]:
        try:
            return await self.analyze_collection(db, collection_name)
        except Exception as e:
            logger.error(f"  Failed to analyze {collection_name}: {str(e)}")
            return None
