"""OpenAI Chat Completions provider implementation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any

from castor.errors import ConfigurationError, ValidationError
from castor.providers._accumulator import ChunkAccumulator
from castor.providers._utils import response_schema_name, schema_to_json_object
from castor.response import ChatCompleteResponse
from castor.schema import normalize_properties, normalize_schema
from castor.telemetry import Tracer
from castor.types import (
    MessageRole,
    ResponseMetadata,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

if TYPE_CHECKING:
    from castor.config import Config
    from castor.providers.base import ChunkSource
    from castor.types import ChatCompleteRequest, Message, Tool

log = logging.getLogger(__name__)

_PROVIDER = "openai"


class ChatModel(str, Enum):
    """Chat models this adapter is known to work with."""

    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"


@dataclass(frozen=True)
class WireRequest:
    """Keyword arguments for ``chat.completions.create`` plus sorted tool names."""

    params: dict[str, Any]
    tool_names: tuple[str, ...] = ()


def translate_request(request: ChatCompleteRequest, *, model: ChatModel | str) -> WireRequest:
    """Translate a neutral request into Chat Completions parameters.

    Nothing is sent here; any unsupported input raises before the transport
    is touched.

    Raises:
        ValidationError: A message has an unknown role or a part the role
            cannot carry.
        InternalError: The response schema could not be serialized.
    """
    messages: list[dict[str, Any]] = []
    if request.system is not None:
        messages.append({"role": "system", "content": request.system})

    for message in request.messages:
        if message.role == MessageRole.USER:
            messages.extend(_user_messages(message))
        elif message.role == MessageRole.MODEL:
            messages.extend(_assistant_messages(message))
        else:
            raise ValidationError(
                f"Unknown message role: {message.role!r}",
                hint="Supported roles: 'user', 'model'.",
            )

    params: dict[str, Any] = {
        "model": model.value if isinstance(model, ChatModel) else model,
        "messages": messages,
        "stream": True,
        "stream_options": {"include_usage": True},
    }

    tool_names: list[str] = []
    if request.tools:
        params["tools"] = [_tool_definition(tool) for tool in request.tools]
        tool_names = sorted(tool.name for tool in request.tools)

    if request.temperature is not None:
        params["temperature"] = float(request.temperature)

    if request.response_schema is not None:
        normalized = normalize_schema(request.response_schema)
        json_schema: dict[str, Any] = {
            "name": response_schema_name(request.response_schema),
            "strict": True,
            "schema": schema_to_json_object(normalized),
        }
        if normalized.description:
            json_schema["description"] = normalized.description
        params["response_format"] = {"type": "json_schema", "json_schema": json_schema}

    return WireRequest(params=params, tool_names=tuple(tool_names))


def _user_messages(message: Message) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    content: list[dict[str, Any]] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, ToolResultPart):
            # Buffered text goes out first as its own message.
            if content:
                out.append({"role": "user", "content": content})
                content = []
            result = part.content
            if part.error is not None:
                result = f"Error: {part.error}"
            out.append({"role": "tool", "tool_call_id": part.id, "content": result})
        else:
            raise ValidationError(
                f"Unsupported part for a user message: {type(part).__name__}",
                hint="User messages carry TextPart and ToolResultPart only.",
            )
    if content:
        out.append({"role": "user", "content": content})
    return out


def _assistant_messages(message: Message) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    content: list[dict[str, Any]] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, ToolCallPart):
            if content:
                out.append({"role": "assistant", "content": content})
                content = []
            out.append(
                {
                    "role": "assistant",
                    "tool_calls": [
                        {
                            "id": part.id,
                            "type": "function",
                            "function": {"name": part.name, "arguments": part.arguments},
                        }
                    ],
                }
            )
        else:
            raise ValidationError(
                f"Unsupported part for a model message: {type(part).__name__}",
                hint="Model messages carry TextPart and ToolCallPart only.",
            )
    if content:
        out.append({"role": "assistant", "content": content})
    return out


def _tool_definition(tool: Tool) -> dict[str, Any]:
    properties = normalize_properties(tool.schema.properties) or {}
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": {
                "type": "object",
                "properties": {
                    key: value.to_json() for key, value in properties.items()
                },
            },
        },
    }


class OpenAIChatCompleter:
    """Streams chat completions from OpenAI (or a compatible endpoint)."""

    def __init__(
        self,
        model: ChatModel | str,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,
        tracer: Tracer | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize for one model.

        Args:
            model: A ``ChatModel`` or its string value.
            api_key: Passed to ``AsyncOpenAI``; the SDK falls back to
                ``OPENAI_API_KEY`` when omitted.
            base_url: Alternative endpoint; normalized to end with ``/``.
            client: A ready ``AsyncOpenAI``-like client (tests inject fakes).
            tracer: Telemetry tracer; disabled when omitted.
            logger: Logger for stream diagnostics; the module logger by default.
        """
        try:
            self.model = ChatModel(model)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown model: {model!r}",
                hint=f"Supported models: {', '.join(m.value for m in ChatModel)}",
            ) from e
        self.api_key = api_key
        self.base_url = _normalize_base_url(base_url)
        self._client: Any = client
        self._tracer = tracer or Tracer()
        self._log = logger or log

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        tracer: Tracer | None = None,
        logger: logging.Logger | None = None,
    ) -> OpenAIChatCompleter:
        """Build a completer from a resolved ``Config``."""
        return cls(
            config.model,
            api_key=config.api_key,
            base_url=config.base_url,
            tracer=tracer,
            logger=logger,
        )

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ConfigurationError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def chat_complete(
        self,
        request: ChatCompleteRequest,
        *,
        timeout_s: float | None = None,
    ) -> ChatCompleteResponse:
        """Start a streamed chat completion.

        The request is translated immediately, but the HTTP stream only opens
        on the first ``next_step()``; open failures surface as the sequence's
        terminal ``TransportError``.

        Args:
            request: The conversation, tools and options.
            timeout_s: Deadline for the whole stream, measured from this call.
                Exceeding it ends the sequence with ``StreamCancelledError``.

        Raises:
            ValidationError: The request cannot be expressed on the wire.
        """
        span = self._tracer.start_span(
            "openai.chat_complete",
            **{
                "ai.model": self.model.value,
                "ai.message_count": len(request.messages),
                "ai.has_system_prompt": request.system is not None,
                "ai.has_response_schema": request.response_schema is not None,
            },
        )
        if request.system is not None:
            span.set_attribute("ai.system_prompt", request.system)

        try:
            wire = translate_request(request, model=self.model)
        except Exception as e:
            span.record_error(e)
            span.set_status("error", "invalid request")
            span.end()
            raise

        span.set_attributes({"ai.tool_count": len(wire.tool_names), "ai.tools": list(wire.tool_names)})
        if request.temperature is not None:
            span.set_attribute("ai.temperature", float(request.temperature))

        client = self._get_client()
        params = wire.params

        async def open_stream() -> ChunkSource:
            self._log.debug(
                "Opening chat completion stream (model=%s, messages=%d)",
                self.model.value,
                len(params["messages"]),
            )
            stream: ChunkSource = await client.chat.completions.create(**params)
            return stream

        deadline = None
        if timeout_s is not None:
            deadline = asyncio.get_running_loop().time() + timeout_s

        meta = ResponseMetadata()
        return ChatCompleteResponse(
            open_stream,
            ChunkAccumulator(meta, span=span, logger=self._log),
            provider=_PROVIDER,
            deadline=deadline,
            span=span,
            logger=self._log,
        )

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


def _normalize_base_url(base_url: str | None) -> str | None:
    if not base_url:
        return None
    return base_url if base_url.endswith("/") else base_url + "/"
