"""Structural and safety checks for model-generated actions."""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from mongolingo.core.exceptions import ActionValidationError
from mongolingo.schemas.action import DESTRUCTIVE_KINDS, Action, ActionKind, ValidationReport
from mongolingo.schemas.response.mongo_response import CollectionSchema, DatabaseSnapshot

logger = logging.getLogger(__name__)

LOGICAL_OPERATORS = ("$and", "$or", "$nor")
VALID_SORT_DIRECTIONS = (1, -1)

EXPECTED_TYPES = {
    "dict_type": "an object",
    "model_type": "an object",
    "string_type": "a string",
    "int_type": "an integer",
    "int_parsing": "an integer",
    "int_from_float": "an integer",
}

SchemaHint = Union[CollectionSchema, DatabaseSnapshot, None]

def _shape_errors(error: ValidationError) -> List[str]:
    """One message per offending field location, e.g. "'query' must be an object"."""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        expected = EXPECTED_TYPES.get(item["type"])
        message = f"'{location}' must be {expected}" if expected else f"'{location}': {item['msg']}"
        if message not in messages:
            messages.append(message)
    return messages

def _coerce_action(action: Any) -> Tuple[Optional[Dict[str, Any]], List[str]]:
    """Raw field values plus the type errors found while parsing them."""
    if isinstance(action, Action):
        return action.model_dump(), []
    if not isinstance(action, dict):
        return None, []
    try:
        Action.model_validate(action)
    except ValidationError as e:
        return action, _shape_errors(e)
    return action, []

def _action_kind(value: Any) -> Optional[ActionKind]:
    if not isinstance(value, str):
        return None
    try:
        return ActionKind(value)
    except ValueError:
        return None

def _collection_schema(schema: SchemaHint, collection: Any) -> Optional[CollectionSchema]:
    if isinstance(schema, CollectionSchema):
        return schema
    if isinstance(schema, DatabaseSnapshot) and isinstance(collection, str) and collection:
        return schema.get_collection(collection)
    return None

def _query_fields(query: Any) -> List[str]:
    """Field names referenced by a filter, looking inside $and/$or/$nor."""
    fields = []
    if not isinstance(query, dict):
        return fields

    for key, value in query.items():
        if key in LOGICAL_OPERATORS and isinstance(value, list):
            for clause in value:
                fields.extend(_query_fields(clause))
        elif not key.startswith("$"):
            fields.append(key)
    return fields

def _unknown_fields(names: Iterable[str], known: List[str]) -> List[str]:
    unknown = []
    for name in names:
        root = name.split(".", 1)[0]
        if root not in known and name not in unknown:
            unknown.append(name)
    return unknown

def _option(options: Any, name: str) -> Dict[str, Any]:
    value = options.get(name) if isinstance(options, dict) else None
    return value if isinstance(value, dict) else {}

def validate_action(action: Any, schema: SchemaHint = None) -> ValidationReport:
    """
    Check an action against the structural and safety rules.

    All violations are collected; nothing is raised. Fields with the wrong
    type are reported by name and the remaining rules still run against the
    raw values, so a delete with a non-object filter is both a type error
    and BLOCKED. Schema mismatches and out-of-range sort directions are
    reported as warnings only.

    Args:
        action: Action model or its dict form
        schema: Target collection's schema, or a snapshot to look it up in

    Returns:
        ValidationReport with valid=False when any error was found
    """
    fields, errors = _coerce_action(action)
    warnings: List[str] = []
    if fields is None:
        return ValidationReport(valid=False, errors=["Action must be a JSON object with action and collection fields"])

    name = fields.get("action")
    collection = fields.get("collection")
    query = fields.get("query")
    update = fields.get("update")
    insert = fields.get("insert")
    options = fields.get("options")

    kind = _action_kind(name)
    if not name:
        errors.append("Missing 'action' field")
    elif kind is None:
        errors.append(f"Invalid action '{name}'. Must be one of: {', '.join(ActionKind.values())}")

    if not collection:
        errors.append("Missing 'collection' field")

    if kind in DESTRUCTIVE_KINDS and not (isinstance(query, dict) and query):
        errors.append(f"BLOCKED: {kind.value} without a filter would affect every document in the collection")

    if kind == ActionKind.UPDATE and not (isinstance(update, dict) and update):
        errors.append("Update action requires a non-empty 'update' document")

    if kind == ActionKind.INSERT:
        if insert is None:
            errors.append("Insert action requires an 'insert' document or list of documents")
        elif isinstance(insert, list) and not insert:
            errors.append("Insert action requires at least one document")
        elif not isinstance(insert, (dict, list)):
            errors.append("Insert payload must be a document or a list of documents")

    if kind == ActionKind.AGGREGATE and not isinstance(fields.get("pipeline"), list):
        errors.append("Aggregate action requires a 'pipeline' list")

    for field, direction in _option(options, "sort").items():
        if isinstance(direction, bool) or direction not in VALID_SORT_DIRECTIONS:
            warnings.append(f"Sort direction for '{field}' is {direction!r}; it will be executed as 1")

    collection_schema = _collection_schema(schema, collection)
    if collection_schema is not None and collection_schema.fields:
        known = collection_schema.fields
        for field in _unknown_fields(_query_fields(query), known):
            warnings.append(f"Field '{field}' is not in the schema of '{collection_schema.name}'")

        projection = _option(options, "projection")
        for field in _unknown_fields((key for key in projection if key != "_id"), known):
            warnings.append(f"Projected field '{field}' is not in the schema of '{collection_schema.name}'")

    for warning in warnings:
        logger.warning(warning)

    return ValidationReport(valid=not errors, errors=errors, warnings=warnings)

def ensure_valid(action: Any, schema: SchemaHint = None) -> ValidationReport:
    """
    Same as validate_action but raise on errors.

    Raises:
        ActionValidationError: Carrying every error found
    """
    report = validate_action(action, schema)
    if not report.valid:
        logger.error(f"Action rejected: {'; '.join(report.errors)}")
        raise ActionValidationError(report.errors, action)
    return report
