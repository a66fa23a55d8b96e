"""Provider implementations."""

from .base import ChatCompleter, ChunkSource
from .openai import ChatModel, OpenAIChatCompleter, WireRequest, translate_request

__all__ = [
    "ChatCompleter",
    "ChatModel",
    "ChunkSource",
    "OpenAIChatCompleter",
    "WireRequest",
    "translate_request",
]
