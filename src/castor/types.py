"""Provider-neutral conversation and response types."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from castor.errors import CastorError
    from castor.schema import Schema


class MessageRole(str, Enum):
    """Who authored a message."""

    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class TextPart:
    """A span of text."""

    text: str


@dataclass(frozen=True)
class ToolCallPart:
    """A tool invocation requested by the model.

    ``arguments`` is the raw JSON text exactly as the model produced it.
    """

    id: str
    name: str
    arguments: str

    def parsed_arguments(self) -> Any:
        """Decode ``arguments`` as JSON (empty text decodes to ``{}``)."""
        return json.loads(self.arguments or "{}")


@dataclass(frozen=True)
class ToolResultPart:
    """The caller's result for a previous tool call."""

    id: str
    content: str
    #: Tool name, for the caller only. The tool message on the wire carries
    #: just ``tool_call_id`` and ``content``.
    name: str | None = None
    #: Set when the tool failed; the provider sees ``"Error: <error>"``.
    error: BaseException | str | None = None


MessagePart = TextPart | ToolCallPart | ToolResultPart


@dataclass(frozen=True)
class Message:
    """One conversation turn: a role and its ordered parts."""

    role: MessageRole
    parts: tuple[MessagePart, ...] = ()

    @classmethod
    def user_text(cls, text: str) -> Message:
        """Build a user message holding a single text part."""
        return cls(role=MessageRole.USER, parts=(TextPart(text),))

    @classmethod
    def model_text(cls, text: str) -> Message:
        """Build a model message holding a single text part."""
        return cls(role=MessageRole.MODEL, parts=(TextPart(text),))

    @classmethod
    def user_tool_result(cls, result: ToolResultPart) -> Message:
        """Build a user message that returns a tool result."""
        return cls(role=MessageRole.USER, parts=(result,))


def tool_call_part(
    id: str,  # noqa: A002
    name: str,
    arguments: str | Mapping[str, Any],
) -> ToolCallPart:
    """Build a ToolCallPart, serializing mapping arguments to JSON."""
    if not isinstance(arguments, str):
        arguments = json.dumps(dict(arguments))
    return ToolCallPart(id=id, name=name, arguments=arguments)


@dataclass(frozen=True)
class Tool:
    """A tool the model may call. ``schema.properties`` describes its parameters."""

    name: str
    description: str
    schema: Schema


@dataclass(frozen=True)
class ChatCompleteRequest:
    """A provider-neutral chat completion request."""

    messages: list[Message]
    system: str | None = None
    tools: list[Tool] = field(default_factory=list)
    temperature: float | None = None
    #: When set, the model is constrained to produce JSON matching this schema.
    response_schema: Schema | None = None


class FinishReason(str, Enum):
    """Why the model stopped producing output."""

    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"
    REFUSAL = "refusal"
    UNKNOWN = "unknown"


@dataclass
class Usage:
    """Token counts as last reported by the provider (running totals)."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ResponseMetadata:
    """Metadata updated in place while a response streams."""

    finish_reason: FinishReason | None = None
    usage: Usage = field(default_factory=Usage)


@dataclass(frozen=True)
class Step:
    """One advance of a response: a part, a terminal error, or the end.

    A step with neither ``part`` nor ``error`` marks the end of the sequence.
    """

    part: MessagePart | None = None
    error: CastorError | None = None

    @property
    def done(self) -> bool:
        return self.part is None and self.error is None
