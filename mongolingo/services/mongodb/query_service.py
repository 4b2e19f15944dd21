"""MongoDB query service."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from bson.errors import BSONError
from bson.objectid import ObjectId
from pymongo.errors import PyMongoError

from mongolingo.config.settings import DEFAULT_FIND_LIMIT
from mongolingo.core.exceptions import ActionValidationError, ExecutionError, UnsafeActionError
from mongolingo.schemas.action import Action, ActionKind
from mongolingo.schemas.request.mongo_request import ConnectionDescriptor
from mongolingo.schemas.response.mongo_response import (
    AggregateResult,
    DeleteResult,
    FindResult,
    InsertResult,
    ResultMetadata,
    UpdateResult,
)
from mongolingo.services.mongodb.client import open_database
from mongolingo.utils.bson_helpers import looks_like_object_id, to_json_safe

logger = logging.getLogger(__name__)

async def parse_query_object_ids(query: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse string ObjectIds in a query document into actual ObjectId objects.
    This allows clients to send ObjectIds as strings in their queries.

    Args:
        query: MongoDB query document

    Returns:
        Query with string ObjectIds converted to ObjectId objects
    """
    if not query:
        return {}

    result = {}

    for key, value in query.items():
        # Handle ObjectId in _id field
        if key == "_id" and looks_like_object_id(value):
            result[key] = ObjectId(value)

        # Handle operator expressions like $in, $nin, etc.
        elif isinstance(value, dict) and value and all(k.startswith("$") for k in value.keys()):
            result[key] = {}
            for op, op_value in value.items():
                if op in ("$in", "$nin") and isinstance(op_value, list):
                    result[key][op] = [
                        ObjectId(v) if key == "_id" and looks_like_object_id(v) else v
                        for v in op_value
                    ]
                elif op in ("$eq", "$ne") and key == "_id" and looks_like_object_id(op_value):
                    result[key][op] = ObjectId(op_value)
                else:
                    result[key][op] = op_value

        # $and / $or / $nor clauses
        elif isinstance(value, list) and key.startswith("$"):
            result[key] = [
                await parse_query_object_ids(clause) if isinstance(clause, dict) else clause
                for clause in value
            ]

        # Handle nested documents
        elif isinstance(value, dict):
            result[key] = await parse_query_object_ids(value)

        # Regular field
        else:
            result[key] = value

    return result

def correct_sort(sort: Optional[Dict[str, Any]]) -> Tuple[List[Tuple[str, int]], Dict[str, Any]]:
    """
    Turn a sort document into pymongo's list form, replacing bad directions.

    Args:
        sort: Field -> direction

    Returns:
        Tuple of (sort list, field -> rejected direction)
    """
    sort_list = []
    corrections = {}
    for field, direction in (sort or {}).items():
        if isinstance(direction, bool) or direction not in (1, -1):
            logger.warning(f"Invalid sort value for '{field}': {direction!r}, using 1 (ascending)")
            corrections[field] = direction
            direction = 1
        sort_list.append((field, int(direction)))
    return sort_list, corrections

class ActionExecutor:
    """
    Runs validated actions against the target database.

    Every call opens its own connection and closes it when done, whatever
    the outcome.
    """

    def __init__(self, connector=open_database, default_limit: int = DEFAULT_FIND_LIMIT):
        self.connector = connector
        self.default_limit = default_limit

    async def execute(self, descriptor: ConnectionDescriptor, action: Action):
        """
        Execute one action.

        Args:
            descriptor: Target database
            action: The action to run

        Returns:
            A FindResult, AggregateResult, InsertResult, UpdateResult or DeleteResult

        Raises:
            UnsafeActionError: For a delete or update without a filter
            ActionValidationError: For an unsupported action kind or missing collection
            DatabaseConnectionError: If the database cannot be reached
            ExecutionError: If the operation itself fails
        """
        kind = action.kind
        if kind is None:
            raise ActionValidationError([f"Unsupported action '{action.action}'"], action)
        if not action.collection:
            raise ActionValidationError(["Missing 'collection' field"], action)

        # Destructive actions always need a filter, whether or not they were validated
        if action.is_destructive and not action.query:
            logger.error(f"Refusing {kind.value} on {action.collection} without a filter")
            raise UnsafeActionError(
                f"BLOCKED: refusing to {kind.value} every document in '{action.collection}'; a non-empty query is required",
                detail={"collection": action.collection, "action": kind.value},
            )
        if kind == ActionKind.UPDATE and not action.update:
            raise ActionValidationError(["Update action requires a non-empty 'update' document"], action)
        if kind == ActionKind.INSERT:
            documents = action.insert if isinstance(action.insert, list) else [action.insert]
            if not documents or not all(isinstance(doc, dict) for doc in documents):
                raise ActionValidationError(["Insert payload must be a document or a non-empty list of documents"], action)
        if kind == ActionKind.AGGREGATE and not isinstance(action.pipeline, list):
            raise ActionValidationError(["Aggregate action requires a 'pipeline' list"], action)

        sort_list, corrections = correct_sort(action.options.sort)
        metadata = ResultMetadata(sort_corrections=corrections)

        logger.info(f"Executing {kind.value} on {action.collection}")

        async with self.connector(descriptor) as db:
            collection = db[action.collection]
            try:
                if kind == ActionKind.FIND:
                    return await self._find(collection, action, sort_list, metadata)
                elif kind == ActionKind.AGGREGATE:
                    return await self._aggregate(collection, action, metadata)
                elif kind == ActionKind.INSERT:
                    return await self._insert(collection, action, metadata)
                elif kind == ActionKind.UPDATE:
                    return await self._update(collection, action, metadata)
                else:
                    return await self._delete(collection, action, metadata)
            except (PyMongoError, BSONError, OverflowError) as e:
                logger.error(f"{kind.value} on {action.collection} failed: {str(e)}")
                raise ExecutionError(
                    f"{kind.value} on '{action.collection}' failed: {str(e)}",
                    detail={"collection": action.collection, "action": kind.value},
                ) from e

    async def _find(self, collection, action: Action, sort_list, metadata: ResultMetadata) -> FindResult:
        filter_query = await parse_query_object_ids(action.query or {})
        options = action.options

        find_options = {}
        if options.projection:
            find_options["projection"] = options.projection
            metadata.projection_used = True
            metadata.fields_returned = [field for field, include in options.projection.items() if include]

        cursor = collection.find(filter_query, **find_options)

        if options.skip and options.skip > 0:
            cursor = cursor.skip(options.skip)
            metadata.skipped = options.skip

        if sort_list:
            cursor = cursor.sort(sort_list)

        limit = options.limit if options.limit and options.limit > 0 else self.default_limit
        cursor = cursor.limit(limit)

        documents = []
        async for doc in cursor:
            documents.append(to_json_safe(doc))

        logger.info(f"find on {action.collection} returned {len(documents)} documents")
        return FindResult(collection=action.collection, documents=documents, count=len(documents), metadata=metadata)

    async def _aggregate(self, collection, action: Action, metadata: ResultMetadata) -> AggregateResult:
        documents = []
        async for doc in collection.aggregate(action.pipeline):
            documents.append(to_json_safe(doc))
        return AggregateResult(collection=action.collection, documents=documents, count=len(documents), metadata=metadata)

    async def _insert(self, collection, action: Action, metadata: ResultMetadata) -> InsertResult:
        documents = action.insert if isinstance(action.insert, list) else [action.insert]

        # insert_many adds _id to the documents it is given
        result = await collection.insert_many([dict(doc) for doc in documents])
        inserted_ids = [str(inserted_id) for inserted_id in result.inserted_ids]
        logger.info(f"Inserted {len(inserted_ids)} documents into {action.collection}")
        return InsertResult(
            collection=action.collection,
            inserted_count=len(inserted_ids),
            inserted_ids=inserted_ids,
            metadata=metadata,
        )

    async def _update(self, collection, action: Action, metadata: ResultMetadata) -> UpdateResult:
        filter_query = await parse_query_object_ids(action.query)
        result = await collection.update_many(filter_query, action.update)
        logger.info(f"Updated {result.modified_count} of {result.matched_count} matched documents in {action.collection}")
        return UpdateResult(
            collection=action.collection,
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_count=1 if result.upserted_id is not None else 0,
            metadata=metadata,
        )

    async def _delete(self, collection, action: Action, metadata: ResultMetadata) -> DeleteResult:
        filter_query = await parse_query_object_ids(action.query)
        result = await collection.delete_many(filter_query)
        logger.info(f"Deleted {result.deleted_count} documents from {action.collection}")
        return DeleteResult(collection=action.collection, deleted_count=result.deleted_count, metadata=metadata)
