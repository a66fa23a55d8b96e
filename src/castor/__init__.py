"""Castor: streaming OpenAI chat completions behind provider-neutral types.

Public API:
    - OpenAIChatCompleter: starts streamed chat completions
    - ChatCompleteRequest, Message and parts: the conversation
    - ChatCompleteResponse: lazy, cancellable sequence of parts
    - Config: configuration dataclass
"""

from __future__ import annotations

import logging

from castor.config import Config
from castor.errors import (
    CastorError,
    ConfigurationError,
    InternalError,
    RateLimitError,
    RefusalError,
    StreamCancelledError,
    StreamProtocolError,
    TransportError,
    ValidationError,
)
from castor.providers.openai import (
    ChatModel,
    OpenAIChatCompleter,
    WireRequest,
    translate_request,
)
from castor.response import ChatCompleteResponse
from castor.schema import Schema, normalize_schema
from castor.telemetry import SimpleReporter, TelemetryReporter, Tracer
from castor.types import (
    ChatCompleteRequest,
    FinishReason,
    Message,
    MessagePart,
    MessageRole,
    ResponseMetadata,
    Step,
    TextPart,
    Tool,
    ToolCallPart,
    ToolResultPart,
    Usage,
    tool_call_part,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("castor-ai")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("castor").addHandler(logging.NullHandler())

__all__ = [
    "CastorError",
    "ChatCompleteRequest",
    "ChatCompleteResponse",
    "ChatModel",
    "Config",
    "ConfigurationError",
    "FinishReason",
    "InternalError",
    "Message",
    "MessagePart",
    "MessageRole",
    "OpenAIChatCompleter",
    "RateLimitError",
    "RefusalError",
    "ResponseMetadata",
    "Schema",
    "SimpleReporter",
    "Step",
    "StreamCancelledError",
    "StreamProtocolError",
    "TelemetryReporter",
    "TextPart",
    "Tool",
    "ToolCallPart",
    "ToolResultPart",
    "Tracer",
    "TransportError",
    "Usage",
    "ValidationError",
    "WireRequest",
    "normalize_schema",
    "tool_call_part",
    "translate_request",
]
