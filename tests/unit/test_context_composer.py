"""Tests for translation prompt construction."""
from datetime import datetime, timezone

from mongolingo.schemas.response.mongo_response import CollectionSchema, DatabaseSnapshot, IndexInfo
from mongolingo.services.agents.context_composer import compose, render_schema_context

def _snapshot(*collections):
    return DatabaseSnapshot(
        database_name="shop",
        collections=list(collections),
        total_collections=len(collections),
        total_documents=sum(c.document_count for c in collections),
        scanned_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )

USERS = CollectionSchema(
    name="users",
    fields=["_id", "name", "email"],
    field_types={"_id": ["objectid-string"], "name": ["string"], "email": ["email"]},
    sample_values={"name": "Asha", "email": "asha@example.com"},
    indexes=[IndexInfo(name="email_1", keys=["email"], unique=True)],
    document_count=1200,
)

def test_render_schema_context_lists_fields_types_and_indexes():
    context = render_schema_context(_snapshot(USERS))

    assert 'Collection: "users"' in context
    assert "Documents: 1,200" in context
    assert '- name (string) -> Example: "Asha"' in context
    assert "email_1: [email] [UNIQUE]" in context

def test_render_schema_context_without_collections():
    assert render_schema_context(None) == "No collections found in database."
    assert render_schema_context(_snapshot()) == "No collections found in database."

def test_render_schema_context_truncates_fields_and_collections():
    wide = CollectionSchema(name="events", fields=[f"f{i}" for i in range(10)])
    context = render_schema_context(_snapshot(wide, USERS), max_chars=300, max_fields=3)

    assert "... and 7 more fields" in context
    assert 'Collection: "users"' not in context
    assert "Other collections (schema omitted for length): users" in context

def test_render_schema_context_accepts_plain_mapping(caplog):
    context = render_schema_context({
        "orders": {"fields": ["status"], "field_types": {"status": ["string"]}},
        "bad": {"fields": "not-a-list"},
    })

    assert 'Collection: "orders"' in context
    assert "Skipping malformed schema for collection bad" in caplog.text

def test_compose_puts_user_text_last_and_includes_rules():
    prompt = compose(_snapshot(USERS), "नाम Asha वाले users दिखाओ", preview_limit=25)

    assert prompt.rstrip().endswith('Now convert this user instruction: "नाम Asha वाले users दिखाओ"')
    assert "Available collections: users" in prompt
    assert "NEVER produce a delete or update without a non-empty query" in prompt
    assert "exactly 1 (ascending) or -1 (descending)" in prompt
    assert '"limit": 25' in prompt
    assert "{limit}" not in prompt
    assert "naam" in prompt

def test_compose_without_schema_falls_back_to_given_collections():
    prompt = compose(None, "show orders", available_collections=["orders", "invoices"])

    assert "No collections found in database." in prompt
    assert "Available collections: orders, invoices" in prompt

def test_compose_without_any_collections_offers_a_guess_list():
    prompt = compose(None, "show everything")

    assert "users, posts, comments, products, orders (guess if needed)" in prompt
