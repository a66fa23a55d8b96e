"""Chunk accumulation for OpenAI chat completion streams.

The accumulator merges the partial deltas of a streamed chat completion into
complete units (text spans, tool calls, refusals) and reports a unit when it
"just finished": the next chunk belongs to a different unit, the chunk carries
a finish reason, or the stream ended. Text is the exception and streams out
delta by delta.

Chunks are read duck-typed so both SDK ``ChatCompletionChunk`` objects and
plain test doubles work::

    chunk.choices[0].delta.content / .refusal / .tool_calls[i]
    chunk.choices[0].finish_reason
    chunk.usage.prompt_tokens / .completion_tokens / .total_tokens
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any

from castor.errors import RefusalError, StreamProtocolError
from castor.providers._finish import map_finish_reason
from castor.telemetry import NO_OP_SPAN
from castor.types import (
    FinishReason,
    ResponseMetadata,
    Step,
    TextPart,
    ToolCallPart,
    Usage,
)

if TYPE_CHECKING:
    from castor.telemetry import AnySpan

logger = logging.getLogger(__name__)


class UnitState(str, Enum):
    """What the stream is currently producing."""

    IDLE = "idle"
    COLLECTING_TEXT = "collecting-text"
    COLLECTING_REFUSAL = "collecting-refusal"
    COLLECTING_TOOL_CALL = "collecting-tool-call"


@dataclass(frozen=True)
class _Unit:
    state: UnitState
    index: int = 0


_IDLE = _Unit(UnitState.IDLE)


@dataclass
class _ToolCallBuffer:
    id: str = ""
    name: str = ""
    arguments: list[str] = field(default_factory=list)


@dataclass
class _ChoiceBuffer:
    content: list[str] = field(default_factory=list)
    refusal: list[str] = field(default_factory=list)
    tool_calls: dict[int, _ToolCallBuffer] = field(default_factory=dict)
    finish_reason: str = ""


class ChunkAccumulator:
    """Turn ordered chat completion chunks into response steps.

    One accumulator serves exactly one response. ``add_chunk`` returns the
    steps a chunk completes (possibly none); ``finish`` flushes whatever is
    still open once the transport is exhausted. Metadata is updated in place.
    """

    def __init__(
        self,
        meta: ResponseMetadata,
        *,
        span: AnySpan = NO_OP_SPAN,
        logger: logging.Logger = logger,
    ) -> None:
        self.meta = meta
        self._span = span
        self._log = logger
        self._choices: dict[int, _ChoiceBuffer] = {}
        self._unit = _IDLE
        self._unit_choice = 0
        self._finished_tool_calls: set[int] = set()
        self._max_tool_index = -1

    @property
    def state(self) -> UnitState:
        """State of the unit currently being collected."""
        return self._unit.state

    def add_chunk(self, chunk: Any) -> list[Step]:
        """Merge *chunk* and return the steps it completes, in order.

        An error step (refusal) is always last; callers stop reading there.

        Raises:
            StreamProtocolError: A tool-call fragment arrived out of order.
        """
        steps: list[Step] = []
        choices = getattr(chunk, "choices", None) or []

        for choice in choices[1:]:
            self._merge(getattr(choice, "index", 0) or 0, choice)

        if choices:
            choice = choices[0]
            reason = getattr(choice, "finish_reason", None)
            if reason:
                self._record_finish_reason(map_finish_reason(reason))

            delta = getattr(choice, "delta", None)
            unit = _unit_of(delta)
            self._check_tool_call_order(delta)
            choice_index = getattr(choice, "index", 0) or 0
            self._merge(choice_index, choice)

            if unit != self._unit:
                below = unit.index if unit.state is UnitState.COLLECTING_TOOL_CALL else None
                steps.extend(self._finish_unit(below=below))
                self._unit = unit
                self._unit_choice = choice_index

            text = getattr(delta, "content", None)
            if text:
                steps.append(Step(part=TextPart(text)))

            if reason:
                steps.extend(self._finish_unit())
                self._unit = _IDLE

        self._record_usage(getattr(chunk, "usage", None))
        return _truncate_after_error(steps)

    def finish(self) -> list[Step]:
        """Flush the open unit after the stream is exhausted.

        Also applies the accumulated finish reason when no chunk reported one
        while streaming.
        """
        steps = self._finish_unit()
        self._unit = _IDLE

        if self.meta.finish_reason is None and self._choices:
            first = self._choices[min(self._choices)]
            if first.finish_reason:
                self._record_finish_reason(map_finish_reason(first.finish_reason))
        return _truncate_after_error(steps)

    # ------------------------------------------------------------------

    def _merge(self, choice_index: int, choice: Any) -> None:
        buffer = self._choices.setdefault(choice_index, _ChoiceBuffer())
        reason = getattr(choice, "finish_reason", None)
        if reason:
            buffer.finish_reason = reason

        delta = getattr(choice, "delta", None)
        if delta is None:
            return
        content = getattr(delta, "content", None)
        if content:
            buffer.content.append(content)
        refusal = getattr(delta, "refusal", None)
        if refusal:
            buffer.refusal.append(refusal)

        for fragment in getattr(delta, "tool_calls", None) or []:
            index = getattr(fragment, "index", 0) or 0
            call = buffer.tool_calls.setdefault(index, _ToolCallBuffer())
            fragment_id = getattr(fragment, "id", None)
            if fragment_id and not call.id:
                call.id = fragment_id
            function = getattr(fragment, "function", None)
            name = getattr(function, "name", None)
            if name and not call.name:
                call.name = name
            arguments = getattr(function, "arguments", None)
            if arguments:
                call.arguments.append(arguments)

    def _check_tool_call_order(self, delta: Any) -> None:
        for fragment in getattr(delta, "tool_calls", None) or []:
            index = getattr(fragment, "index", 0) or 0
            if index in self._finished_tool_calls or index < self._max_tool_index:
                raise StreamProtocolError(
                    f"Tool call fragment for index {index} arrived out of order",
                    hint="Tool-call fragments must arrive in increasing index order.",
                    retryable=False,
                    provider="openai",
                    phase="stream",
                )
            self._max_tool_index = index

    def _finish_unit(self, *, below: int | None = None) -> list[Step]:
        unit = self._unit
        buffer = self._choices.get(self._unit_choice)
        if buffer is None or unit.state is UnitState.IDLE:
            return []

        if unit.state is UnitState.COLLECTING_TOOL_CALL:
            # One delta may open several calls; every pending index ends here.
            steps: list[Step] = []
            for index in sorted(buffer.tool_calls):
                if index in self._finished_tool_calls:
                    continue
                if below is not None and index >= below:
                    break
                self._finished_tool_calls.add(index)
                call = buffer.tool_calls[index]
                arguments = "".join(call.arguments) or "{}"
                self._log.debug("Tool call %r (%s) finished", call.name, call.id)
                steps.append(
                    Step(part=ToolCallPart(id=call.id, name=call.name, arguments=arguments))
                )
            return steps

        if unit.state is UnitState.COLLECTING_REFUSAL:
            err = RefusalError("".join(buffer.refusal))
            self.meta.finish_reason = FinishReason.REFUSAL
            self._span.set_attribute("ai.finish_reason", FinishReason.REFUSAL.value)
            self._span.record_error(err)
            self._span.set_status("error", "model refused request")
            return [Step(error=err)]

        # Text was already emitted delta by delta; its end is only a boundary.
        return []

    def _record_finish_reason(self, reason: FinishReason) -> None:
        self.meta.finish_reason = reason
        self._span.set_attribute("ai.finish_reason", reason.value)

    def _record_usage(self, usage: Any) -> None:
        if usage is None:
            return
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        if prompt_tokens == 0:
            return
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        self.meta.usage = Usage(
            prompt_tokens=int(prompt_tokens),
            completion_tokens=int(completion_tokens),
        )
        total_tokens = getattr(usage, "total_tokens", None) or self.meta.usage.total_tokens
        self._span.set_attributes(
            {
                "ai.prompt_tokens": int(prompt_tokens),
                "ai.completion_tokens": int(completion_tokens),
                "ai.total_tokens": int(total_tokens),
            }
        )


def _unit_of(delta: Any) -> _Unit:
    """Classify which unit a delta contributes to."""
    if delta is None:
        return _IDLE
    if getattr(delta, "content", None):
        return _Unit(UnitState.COLLECTING_TEXT)
    if getattr(delta, "refusal", None):
        return _Unit(UnitState.COLLECTING_REFUSAL)
    tool_calls = getattr(delta, "tool_calls", None)
    if tool_calls:
        return _Unit(
            UnitState.COLLECTING_TOOL_CALL,
            getattr(tool_calls[0], "index", 0) or 0,
        )
    return _IDLE


def _truncate_after_error(steps: list[Step]) -> list[Step]:
    for i, step in enumerate(steps):
        if step.error is not None:
            return steps[: i + 1]
    return steps
