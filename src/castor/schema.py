"""Provider-neutral JSON-schema tree used for tools and structured output."""

from __future__ import annotations

from copy import deepcopy
from typing import Any, overload

from pydantic import BaseModel, ConfigDict, Field


class Schema(BaseModel):
    """A recursive schema node.

    Field names follow Python conventions; JSON aliases follow the OpenAPI
    subset providers accept (``anyOf``, ``minItems``, ``propertyOrdering``...).
    Each node owns its children: build new nodes rather than sharing them
    between trees.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    type: str = ""
    description: str = ""
    title: str = ""
    enum: list[str] | None = None
    default: Any = None
    example: Any = None
    format: str = ""
    minimum: float | None = None
    maximum: float | None = None
    min_items: int | None = Field(default=None, alias="minItems")
    max_items: int | None = Field(default=None, alias="maxItems")
    items: Schema | None = None
    properties: dict[str, Schema] | None = None
    required: list[str] | None = None
    any_of: list[Schema] | None = Field(default=None, alias="anyOf")
    property_ordering: list[str] | None = Field(default=None, alias="propertyOrdering")

    def to_json(self) -> dict[str, Any]:
        """Return the JSON form, omitting fields left at their defaults."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)


@overload
def normalize_schema(schema: Schema) -> Schema: ...
@overload
def normalize_schema(schema: None) -> None: ...
@overload
def normalize_schema(schema: Schema | None) -> Schema | None: ...


def normalize_schema(schema: Schema | None) -> Schema | None:
    """Return a canonical deep copy of *schema*.

    Type names are lower-cased (authored schemas mix ``STRING`` and
    ``string``); ``items``, ``properties`` and ``anyOf`` are normalized
    recursively. The input is never mutated and no node or container of the
    result is shared with it, so normalizing twice yields an equal tree.
    """
    if schema is None:
        return None

    return Schema(
        type=schema.type.lower(),
        description=schema.description,
        title=schema.title,
        enum=_copy_list(schema.enum),
        default=deepcopy(schema.default),
        example=deepcopy(schema.example),
        format=schema.format,
        minimum=schema.minimum,
        maximum=schema.maximum,
        min_items=schema.min_items,
        max_items=schema.max_items,
        items=normalize_schema(schema.items),
        properties=normalize_properties(schema.properties),
        required=_copy_list(schema.required),
        any_of=(
            [normalize_schema(s) for s in schema.any_of]
            if schema.any_of is not None
            else None
        ),
        property_ordering=_copy_list(schema.property_ordering),
    )


def normalize_properties(
    properties: dict[str, Schema] | None,
) -> dict[str, Schema] | None:
    """Normalize every value of a ``properties`` mapping into a new dict."""
    if properties is None:
        return None
    return {key: normalize_schema(value) for key, value in properties.items()}


def _copy_list(values: list[str] | None) -> list[str] | None:
    return list(values) if values is not None else None
