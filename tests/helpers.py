"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: chunk builders mirror the attribute
shape of the SDK's ``ChatCompletionChunk`` and the scripted source stands in
for ``AsyncStream`` so response tests can count reads and closes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

#: Script item that blocks until the reader is cancelled or times out.
HANG = object()


def chunk(
    *,
    content: str | None = None,
    refusal: str | None = None,
    tool_calls: list[Any] | None = None,
    finish_reason: str | None = None,
    usage: Any = None,
    index: int = 0,
    extra_choices: list[Any] | None = None,
) -> SimpleNamespace:
    """Build one chunk with a single choice (plus optional extra choices)."""
    delta = SimpleNamespace(
        role="assistant",
        content=content,
        refusal=refusal,
        tool_calls=tool_calls,
    )
    choice = SimpleNamespace(index=index, delta=delta, finish_reason=finish_reason)
    return SimpleNamespace(choices=[choice, *(extra_choices or [])], usage=usage)


def text_chunk(text: str, *, finish_reason: str | None = None) -> SimpleNamespace:
    return chunk(content=text, finish_reason=finish_reason)


def refusal_chunk(text: str, *, finish_reason: str | None = None) -> SimpleNamespace:
    return chunk(refusal=text, finish_reason=finish_reason)


def tool_fragment(
    index: int,
    *,
    id: str | None = None,  # noqa: A002
    name: str | None = None,
    arguments: str | None = None,
) -> SimpleNamespace:
    return SimpleNamespace(
        index=index,
        id=id,
        type="function" if id else None,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def tool_chunk(
    index: int,
    *,
    id: str | None = None,  # noqa: A002
    name: str | None = None,
    arguments: str | None = None,
    finish_reason: str | None = None,
) -> SimpleNamespace:
    return chunk(
        tool_calls=[tool_fragment(index, id=id, name=name, arguments=arguments)],
        finish_reason=finish_reason,
    )


def finish_chunk(reason: str) -> SimpleNamespace:
    return chunk(finish_reason=reason)


def usage_chunk(prompt_tokens: int, completion_tokens: int) -> SimpleNamespace:
    """A trailing usage-only chunk (empty ``choices``), as sent with include_usage."""
    return SimpleNamespace(
        choices=[],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
    )


@dataclass
class ScriptedChunkSource:
    """Chunk source that replays a script of chunks and exceptions.

    Exceptions in the script are raised when reached. ``HANG`` blocks forever.
    ``reads`` counts ``__anext__`` calls that returned or raised a script item.
    """

    script: list[Any] = field(default_factory=list)
    close_error: BaseException | None = None
    reads: int = 0
    close_calls: int = 0
    _position: int = 0

    def __aiter__(self) -> ScriptedChunkSource:
        return self

    async def __anext__(self) -> Any:
        if self._position >= len(self.script):
            raise StopAsyncIteration
        item = self.script[self._position]
        self._position += 1
        self.reads += 1
        if item is HANG:
            await asyncio.Event().wait()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


@dataclass
class FakeCompletions:
    """Stands in for ``client.chat.completions``; records create() kwargs."""

    source: ScriptedChunkSource | None = None
    error: BaseException | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def create(self, **kwargs: Any) -> ScriptedChunkSource:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        assert self.source is not None
        return self.source


class FakeOpenAIClient:
    """Minimal ``AsyncOpenAI`` double: ``chat.completions.create`` and ``close``."""

    def __init__(
        self,
        source: ScriptedChunkSource | None = None,
        *,
        error: BaseException | None = None,
    ) -> None:
        self.completions = FakeCompletions(source=source, error=error)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True
