"""
Prompt construction for the natural-language to MongoDB translator.

The prompt is the only channel through which the schema and the safety rules
reach the model, so everything the model is allowed to rely on is written
out here.
"""
import json
import logging
from typing import Any, List, Mapping, Optional, Union

from mongolingo.config.settings import (
    DEFAULT_PREVIEW_LIMIT,
    MAX_FIELDS_PER_COLLECTION,
    MAX_SCHEMA_CONTEXT_CHARS,
)
from mongolingo.schemas.response.mongo_response import CollectionSchema, DatabaseSnapshot

logger = logging.getLogger(__name__)

SchemaInput = Union[DatabaseSnapshot, Mapping[str, Any], None]

SECTION_RULE = "=" * 60

# Term -> candidate field names. English, Hindi and Marathi spellings.
VOCABULARY_HINTS = [
    (["name", "naam", "naav", "नाम", "नाव"], ["firstName", "lastName", "name", "fullName"]),
    (["email", "ईमेल"], ["email"]),
    (["phone", "mobile", "फोन", "फ़ोन"], ["phone", "phoneNumber", "mobile"]),
    (["age", "umar", "उम्र", "वय"], ["age"]),
    (["address", "pata", "पता", "पत्ता"], ["address", "location"]),
    (["city", "shahar", "शहर"], ["city", "address.city"]),
    (["price", "keemat", "कीमत", "किंमत"], ["price", "amount", "cost"]),
    (["date", "tarikh", "तारीख", "दिनांक"], ["createdAt", "date", "updatedAt"]),
    (["id"], ["_id", "userId", "id"]),
]

SAFETY_RULES = [
    "Use ONLY fields that exist in the schema above; if no schema is given, use the most natural field names.",
    "NEVER produce a delete or update without a non-empty query. Deleting or updating a whole collection is forbidden.",
    "Sort values must be exactly 1 (ascending) or -1 (descending).",
    'Match text case-insensitively with a regex: {"$regex": "value", "$options": "i"}.',
    'When projecting fields, always add "_id": 0 unless the user asks for the id.',
    "For name searches use $or over firstName and lastName when both fields exist.",
    "Prefer indexed fields for filtering when there is a choice.",
]

WORKED_EXAMPLES = [
    ("Find all users older than 30",
     {"action": "find", "collection": "users", "query": {"age": {"$gt": 30}}, "options": {"limit": "{limit}"}}),
    ("Show the names and emails of customers in Pune",
     {"action": "find", "collection": "customers", "query": {"city": {"$regex": "pune", "$options": "i"}},
      "options": {"projection": {"name": 1, "email": 1, "_id": 0}, "limit": "{limit}"}}),
    ("सभी उत्पाद कीमत के अनुसार घटते क्रम में दिखाओ",
     {"action": "find", "collection": "products", "query": {}, "options": {"sort": {"price": -1}, "limit": "{limit}"}}),
    ("Delete users with age less than 18",
     {"action": "delete", "collection": "users", "query": {"age": {"$lt": 18}}}),
    ("Update user John's email to john@example.com",
     {"action": "update", "collection": "users", "query": {"name": {"$regex": "^john$", "$options": "i"}},
      "update": {"$set": {"email": "john@example.com"}}}),
    ("Add a product called Lamp priced 499",
     {"action": "insert", "collection": "products", "insert": {"name": "Lamp", "price": 499}}),
    ("Count orders per status",
     {"action": "aggregate", "collection": "orders",
      "pipeline": [{"$group": {"_id": "$status", "count": {"$sum": 1}}}, {"$sort": {"count": -1}}]}),
]

def _coerce_collections(schema: SchemaInput) -> List[CollectionSchema]:
    """Accept a snapshot, a name -> schema mapping, or nothing."""
    if schema is None:
        return []
    if isinstance(schema, DatabaseSnapshot):
        return list(schema.collections)
    if not isinstance(schema, Mapping):
        logger.warning(f"Ignoring schema context of unexpected type {type(schema).__name__}")
        return []

    collections = []
    for name, value in schema.items():
        try:
            if isinstance(value, CollectionSchema):
                collections.append(value)
            elif isinstance(value, Mapping):
                collections.append(CollectionSchema(name=str(name), **{k: v for k, v in value.items() if k != "name"}))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed schema for collection {name}: {str(e)}")
    return collections

def _render_collection(collection: CollectionSchema, max_fields: int) -> str:
    lines = [
        f'Collection: "{collection.name}"',
        f"   Documents: {collection.document_count:,}",
        f"   Fields ({len(collection.fields)}):",
    ]

    for field in collection.fields[:max_fields]:
        types = " | ".join(collection.field_types.get(field, [])) or "unknown"
        line = f"      - {field} ({types})"
        if field in collection.sample_values:
            line += f" -> Example: {json.dumps(collection.sample_values[field], ensure_ascii=False, default=str)}"
        lines.append(line)

    hidden = len(collection.fields) - max_fields
    if hidden > 0:
        lines.append(f"      ... and {hidden} more fields")

    if collection.indexes:
        lines.append(f"   Indexes ({len(collection.indexes)}):")
        for index in collection.indexes:
            unique = " [UNIQUE]" if index.unique else ""
            lines.append(f"      - {index.name}: [{', '.join(index.keys)}]{unique}")

    return "\n".join(lines)

def render_schema_context(
    schema: SchemaInput,
    max_chars: int = MAX_SCHEMA_CONTEXT_CHARS,
    max_fields: int = MAX_FIELDS_PER_COLLECTION,
) -> str:
    """
    Render inferred schemas as a bounded text block for the model.

    Args:
        schema: Snapshot or name -> schema mapping
        max_chars: Overall size bound; collections past it are listed by name only
        max_fields: Fields shown per collection

    Returns:
        The schema context, or a note that no collections are known
    """
    return _render_blocks(_coerce_collections(schema), schema, max_chars, max_fields)

def _render_blocks(collections: List[CollectionSchema], schema: SchemaInput, max_chars: int, max_fields: int) -> str:
    if not collections:
        return "No collections found in database."

    header = ["DATABASE SCHEMA CONTEXT"]
    if isinstance(schema, DatabaseSnapshot):
        header.append(f"Last scanned: {schema.scanned_at.isoformat()}")
        header.append(f"Total collections: {schema.total_collections} | Total documents: {schema.total_documents:,}")
    else:
        header.append(f"Total collections: {len(collections)}")

    blocks = ["\n".join(header)]
    used = len(blocks[0])
    omitted = []

    for collection in collections:
        block = _render_collection(collection, max_fields)
        if omitted or used + len(block) > max_chars:
            omitted.append(collection.name)
            continue
        blocks.append(block)
        used += len(block)

    if omitted:
        blocks.append(f"Other collections (schema omitted for length): {', '.join(omitted)}")

    return "\n\n".join(blocks)

def _render_vocabulary() -> str:
    lines = ["FIELD MAPPING HINTS (multilingual; hints, not rules):",
             "When the user mentions these terms, map them to the matching field names in the schema:"]
    for terms, candidates in VOCABULARY_HINTS:
        lines.append(f"  - {' / '.join(terms)} -> check for: {', '.join(candidates)}")
    return "\n".join(lines)

def _render_examples(preview_limit: int) -> str:
    lines = ["EXAMPLES:"]
    for text, output in WORKED_EXAMPLES:
        rendered = json.dumps(output, ensure_ascii=False).replace('"{limit}"', str(preview_limit))
        lines.append(f'User: "{text}"')
        lines.append(rendered)
        lines.append("")
    return "\n".join(lines).rstrip()

def compose(
    schema: SchemaInput,
    user_text: str,
    available_collections: Optional[List[str]] = None,
    preview_limit: int = DEFAULT_PREVIEW_LIMIT,
) -> str:
    """
    Build the translation prompt.

    Args:
        schema: Snapshot, name -> schema mapping, or None
        user_text: The user's request, appended verbatim as the last section
        available_collections: Collection names to offer when the schema has none
        preview_limit: Default options.limit the model should emit for reads

    Returns:
        The prompt string
    """
    collections = _coerce_collections(schema)
    names = [collection.name for collection in collections] or list(available_collections or [])

    if names:
        available = ", ".join(names)
    else:
        available = "users, posts, comments, products, orders (guess if needed)"

    rules = "\n".join(f"  {i}. {rule}" for i, rule in enumerate(SAFETY_RULES, start=1))

    sections = [
        "You are a MongoDB query translator. Convert user instructions, written in any language, into one MongoDB operation.",
        "OUTPUT FORMAT:\n"
        "  - Respond with ONLY one valid JSON object: no markdown, no explanations.\n"
        "  - Keys: action, collection, query, update, insert, pipeline, options.\n"
        '  - action is one of "find", "insert", "update", "delete", "aggregate".\n'
        "  - find: query plus options (limit, skip, sort, projection).\n"
        "  - update: query (what to match) plus update (operators such as $set).\n"
        "  - delete: query (required).\n"
        "  - insert: insert (a document or a list of documents).\n"
        "  - aggregate: pipeline (a list of stages).\n"
        f"  - Default options.limit for reads is {preview_limit}.",
        SECTION_RULE + "\n" + _render_blocks(collections, schema, MAX_SCHEMA_CONTEXT_CHARS, MAX_FIELDS_PER_COLLECTION) + "\n" + SECTION_RULE,
        f"Available collections: {available}",
        _render_vocabulary(),
        "CRITICAL QUERY GENERATION RULES:\n" + rules,
        _render_examples(preview_limit),
        f'Now convert this user instruction: "{user_text}"',
    ]
    return "\n\n".join(sections)
