"""Tests for recovering actions from raw model output."""
import pytest

from mongolingo.core.exceptions import MalformedResponse
from mongolingo.services.agents.response_normalizer import (
    extract_first_object,
    normalize,
    repair_json,
    strip_code_fences,
)

def test_fenced_output_with_prose_and_trailing_comma():
    raw = (
        "Sure! Here is the query:\n"
        "```json\n"
        '{"action": "find", "collection": "users", "query": {"age": {"$gt": 30},},}\n'
        "```\n"
        "Let me know if you need anything else."
    )

    action = normalize(raw)

    assert action.action == "find"
    assert action.collection == "users"
    assert action.query == {"age": {"$gt": 30}}
    assert action.options.limit == 50

def test_find_all_users_gets_preview_limit_and_empty_query():
    action = normalize('{"action": "find", "collection": "users"}', preview_limit=50)

    assert action.query == {}
    assert action.options.limit == 50

def test_explicit_limit_is_kept():
    action = normalize('{"action": "find", "collection": "users", "options": {"limit": 5}}')

    assert action.options.limit == 5

def test_aliases_and_top_level_options_are_folded():
    raw = '{"operation": "FIND", "collection_name": "orders", "filter": {"status": "paid"}, "sort": {"total": -1}, "limit": 10}'

    action = normalize(raw)

    assert action.action == "find"
    assert action.collection == "orders"
    assert action.query == {"status": "paid"}
    assert action.options.sort == {"total": -1}
    assert action.options.limit == 10

def test_single_quotes_are_repaired():
    action = normalize("{'action': 'delete', 'collection': 'users', 'query': {'name': \"O'Brien\"}}")

    assert action.action == "delete"
    assert action.query == {"name": "O'Brien"}

def test_braces_inside_strings_do_not_end_the_object():
    raw = 'noise {"action": "find", "collection": "notes", "query": {"body": "a } b"}} trailing {"x": 1}'

    assert extract_first_object(raw) == '{"action": "find", "collection": "notes", "query": {"body": "a } b"}}'

def test_repair_leaves_commas_inside_strings_alone():
    assert repair_json('{"text": "a, }", "list": [1, 2,],}') == '{"text": "a, }", "list": [1, 2]}'

def test_unclosed_fence_is_stripped():
    assert strip_code_fences('```json\n{"a": 1}') == '{"a": 1}'

@pytest.mark.parametrize("raw, message", [
    ("", "empty response"),
    ("I cannot help with that.", "No JSON object found"),
    ('{"action": "find", "collection": ', "No JSON object found"),
    ('{"collection": "users"}', "missing the 'action' field"),
    ('{"action": "find"}', "missing the 'collection' field"),
    ('{"action": "find", "collection": "users", "query": {"a": undefined}}', "Failed to parse"),
])
def test_unrecoverable_output_is_rejected(raw, message):
    with pytest.raises(MalformedResponse, match=message):
        normalize(raw)

def test_malformed_response_carries_truncated_raw_text():
    raw = "no json here " * 100

    with pytest.raises(MalformedResponse) as exc_info:
        normalize(raw)

    assert len(exc_info.value.raw_text) == 500
    assert exc_info.value.status_code == 422
    assert exc_info.value.stage == "normalize"
