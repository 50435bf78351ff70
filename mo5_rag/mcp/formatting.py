"""
Text rendering of backend payloads for MCP replies.

Renderers never fail on missing or null fields: an absent value renders as an
empty token. Only a payload of the wrong top-level shape is rejected.
"""

import json
from typing import Any, Mapping

from mo5_rag.sdk.errors import MalformedPayloadError

NO_RESULTS_TEXT = "The search API answered successfully but no results were found."


def _field(item: Any, key: str) -> str:
    if not isinstance(item, Mapping):
        return ""
    value = item.get(key)
    return "" if value is None else str(value)


def _require_list(payload: Any, what: str) -> list:
    if not isinstance(payload, list):
        raise MalformedPayloadError(f"Expected a list of {what}, got {type(payload).__name__}")
    return payload


def _require_object(payload: Any, what: str) -> Mapping:
    if not isinstance(payload, Mapping):
        raise MalformedPayloadError(f"Expected {what} object, got {type(payload).__name__}")
    return payload


def safe_json_dumps(payload: Any) -> str:
    try:
        return json.dumps(payload, indent=2, ensure_ascii=False)
    except TypeError:
        return json.dumps(str(payload), indent=2, ensure_ascii=False)


def format_search_hit(hit: Any) -> str:
    document = hit.get("document") if isinstance(hit, Mapping) else None
    return (
        f"{_field(hit, 'content')}\n"
        f"(Source: {_field(document, 'fileName')}, score: {_field(hit, 'similarityScore')})"
    )


def format_search_results(payload: Any) -> str:
    results = _require_object(payload, "search response").get("results") or []
    if not isinstance(results, list):
        raise MalformedPayloadError("Search response 'results' is not a list")
    if not results:
        return NO_RESULTS_TEXT
    return "\n\n".join(format_search_hit(hit) for hit in results)


def format_document_list(payload: Any) -> str:
    documents = _require_list(payload, "documents")
    return "\n".join(f"- {_field(doc, 'fileName')} (ID: {_field(doc, 'id')})" for doc in documents)


def format_tag_list(payload: Any) -> str:
    tags = _require_list(payload, "tags")
    return ", ".join(_field(tag, "name") for tag in tags)


def format_index_status(payload: Any) -> str:
    # Dumped as-is; the status schema belongs to the backend.
    return safe_json_dumps(payload)


def format_document(payload: Any) -> str:
    doc = _require_object(payload, "document")
    return (
        f"# {_field(doc, 'title')}\n\n"
        f"{_field(doc, 'content')}\n\n"
        f"Source: {_field(doc, 'fileName')}"
    )

