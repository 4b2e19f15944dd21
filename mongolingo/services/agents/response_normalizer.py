"""
Recover a structured action from raw model output.

Models are told to answer with bare JSON and often don't: replies arrive
wrapped in code fences, surrounded by prose, with trailing commas or
single-quoted strings. This module strips, extracts and repairs before
parsing, and refuses to guess when nothing usable is left.
"""
import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from mongolingo.config.settings import DEFAULT_PREVIEW_LIMIT
from mongolingo.core.exceptions import MalformedResponse
from mongolingo.schemas.action import Action

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")

# Provider-specific spellings of the action keys
KEY_ALIASES = {
    "collection_name": "collection",
    "collectionName": "collection",
    "operation": "action",
    "filter": "query",
}
OPTION_KEYS = ("limit", "skip", "sort", "projection")

def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text itself."""
    match = CODE_FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    # An opening fence the model never closed
    return re.sub(r"^```(?:json|JSON)?\s*", "", text.strip()).strip()

def extract_first_object(text: str) -> Optional[str]:
    """
    Find the first balanced {...} span.

    Braces inside string literals (double or single quoted) do not count.

    Returns:
        The span, or None if there is no balanced object
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    quote = None
    escaped = False

    for i in range(start, len(text)):
        char = text[i]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue

        if char in ('"', "'"):
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None

def repair_json(text: str) -> str:
    """
    Apply light syntactic repair outside string literals.

    - trailing commas before a closing brace or bracket are dropped
    - single-quoted strings become double-quoted strings
    """
    out = []
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char == '"':
            # Copy a double-quoted string verbatim
            j = i + 1
            while j < length and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            out.append(text[i:j + 1])
            i = j + 1
            continue

        if char == "'":
            j = i + 1
            body = []
            while j < length and text[j] != "'":
                if text[j] == "\\" and j + 1 < length:
                    # \' needs no escape once the delimiter is a double quote
                    body.append("'" if text[j + 1] == "'" else text[j:j + 2])
                    j += 2
                    continue
                body.append('\\"' if text[j] == '"' else text[j])
                j += 1
            out.append('"' + "".join(body) + '"')
            i = j + 1
            continue

        if char == ",":
            j = i + 1
            while j < length and text[j].isspace():
                j += 1
            if j < length and text[j] in "}]":
                i += 1
                continue

        out.append(char)
        i += 1

    return "".join(out)

def _apply_aliases(payload: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(payload)
    for alias, canonical in KEY_ALIASES.items():
        if alias in normalized and canonical not in normalized:
            normalized[canonical] = normalized.pop(alias)

    options = normalized.get("options")
    options = dict(options) if isinstance(options, dict) else {}
    for key in OPTION_KEYS:
        if key in normalized and key not in options:
            options[key] = normalized.pop(key)
    normalized["options"] = options

    if isinstance(normalized.get("action"), str):
        normalized["action"] = normalized["action"].strip().lower()
    return normalized

def normalize(raw_text: Any, preview_limit: int = DEFAULT_PREVIEW_LIMIT) -> Action:
    """
    Turn raw model text into an Action.

    Args:
        raw_text: Completion text as returned by the model
        preview_limit: Default options.limit when the model gave none

    Returns:
        The parsed action with defaults filled in

    Raises:
        MalformedResponse: If no JSON object can be recovered or a required field is missing
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise MalformedResponse("Model returned an empty response", raw_text)

    candidate = extract_first_object(strip_code_fences(raw_text))
    if candidate is None:
        raise MalformedResponse("No JSON object found in model response", raw_text)

    try:
        payload = json.loads(repair_json(candidate))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse model response: {str(e)}")
        raise MalformedResponse(f"Failed to parse model response as JSON: {str(e)}", raw_text) from e

    if not isinstance(payload, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(payload).__name__}", raw_text)

    payload = _apply_aliases(payload)

    if payload["options"].get("limit") is None:
        payload["options"]["limit"] = preview_limit
    if payload.get("query") is None:
        payload["query"] = {}

    for required in ("action", "collection"):
        if not payload.get(required):
            raise MalformedResponse(f"Model response is missing the '{required}' field", raw_text)

    try:
        action = Action.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponse(f"Model response has the wrong shape: {str(e)}", raw_text) from e

    logger.info(f"Action parsed: {action.action} on {action.collection}")
    return action
