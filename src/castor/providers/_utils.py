"""Shared utilities for provider implementations."""

from __future__ import annotations

import string
from typing import TYPE_CHECKING, Any

from castor.errors import InternalError

if TYPE_CHECKING:
    from castor.schema import Schema

_RESPONSE_SCHEMA_NAME_MAX_LEN = 64
_DEFAULT_RESPONSE_SCHEMA_NAME = "response"
_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_-")


def enforce_strict_objects(node: Any) -> None:
    """Default ``additionalProperties`` to ``False`` on every object schema.

    Works on the serialized JSON form so an explicit ``additionalProperties``
    is left alone. Recurses into ``properties`` of object nodes and into
    ``items`` (single schema or list) and ``anyOf`` at every depth. Mutates
    *node* in place.
    """
    if not isinstance(node, dict):
        return

    if node.get("type") == "object":
        if "additionalProperties" not in node:
            node["additionalProperties"] = False
        properties = node.get("properties")
        if isinstance(properties, dict):
            for child in properties.values():
                enforce_strict_objects(child)

    items = node.get("items")
    if isinstance(items, dict):
        enforce_strict_objects(items)
    elif isinstance(items, list):
        for child in items:
            enforce_strict_objects(child)

    any_of = node.get("anyOf")
    if isinstance(any_of, list):
        for child in any_of:
            enforce_strict_objects(child)


def schema_to_json_object(schema: Schema) -> dict[str, Any]:
    """Serialize a (normalized) schema into a strict JSON schema object.

    Schemas are validated when constructed, so a serialization failure here is
    a contract violation rather than a caller error.
    """
    try:
        obj = schema.to_json()
    except ValueError as e:  # PydanticSerializationError
        raise InternalError(f"Schema could not be serialized: {e}") from e
    enforce_strict_objects(obj)
    return obj


def response_schema_name(schema: Schema) -> str:
    """Derive a provider-safe structured-output name from the schema title.

    Keeps ASCII letters, digits, ``_`` and ``-``, turns spaces into ``_``,
    drops everything else and caps the result at 64 characters.
    """
    name = schema.title or _DEFAULT_RESPONSE_SCHEMA_NAME

    kept: list[str] = []
    for ch in name:
        if len(kept) >= _RESPONSE_SCHEMA_NAME_MAX_LEN:
            break
        if ch in _NAME_CHARS:
            kept.append(ch)
        elif ch == " ":
            kept.append("_")

    return "".join(kept) or _DEFAULT_RESPONSE_SCHEMA_NAME
