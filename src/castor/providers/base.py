"""Provider protocols: the minimal seams between the core and the outside."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from castor.response import ChatCompleteResponse
    from castor.types import ChatCompleteRequest


@runtime_checkable
class ChunkSource(Protocol):
    """A pull-based stream of provider chunks.

    ``__anext__`` advances (raising ``StopAsyncIteration`` at the end or the
    transport's error on failure); ``close`` releases the connection. The
    OpenAI SDK's ``AsyncStream`` satisfies this protocol.
    """

    def __aiter__(self) -> Any: ...  # noqa: D105
    async def __anext__(self) -> Any: ...  # noqa: D105
    async def close(self) -> None: ...  # noqa: D102


@runtime_checkable
class ChatCompleter(Protocol):
    """Anything that turns a request into a streamed chat response."""

    async def chat_complete(
        self,
        request: ChatCompleteRequest,
        *,
        timeout_s: float | None = None,
    ) -> ChatCompleteResponse:
        """Start a chat completion; parts stream lazily from the response."""
        ...
