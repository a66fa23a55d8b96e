"""Finish-reason mapping for OpenAI chat completions."""

from __future__ import annotations

from castor.types import FinishReason

_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
    "tool_calls": FinishReason.TOOL_CALLS,
    # Legacy function-calling models still report this.
    "function_call": FinishReason.TOOL_CALLS,
}


def map_finish_reason(reason: str) -> FinishReason:
    """Map a provider finish reason; unrecognized values become ``UNKNOWN``."""
    return _FINISH_REASONS.get(reason, FinishReason.UNKNOWN)
