"""Lazy, cancellable chat completion responses.

A response is pulled, never pushed: the transport advances only when the
consumer asks for the next step, so at most one chunk is in flight and
stopping early costs nothing beyond closing the transport.

Always consume a response inside ``async with`` (or ``contextlib.aclosing``).
A bare ``async for`` that breaks early leaves the transport open until the
event loop finalizes the iterator; Python gives the response no signal at
the ``break``.

Example:
    response = await completer.chat_complete(request)
    async with response:
        async for part in response:
            if isinstance(part, TextPart):
                print(part.text, end="")
    print(response.meta.finish_reason, response.meta.usage)
"""

from __future__ import annotations

import asyncio
from collections import deque
import logging
from typing import TYPE_CHECKING, Any, Self

from castor.errors import CastorError, StreamCancelledError, TransportError
from castor.providers._errors import wrap_provider_error
from castor.telemetry import NO_OP_SPAN
from castor.types import ResponseMetadata, Step

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable
    from types import TracebackType

    from castor.providers._accumulator import ChunkAccumulator
    from castor.providers.base import ChunkSource
    from castor.telemetry import AnySpan
    from castor.types import MessagePart

logger = logging.getLogger(__name__)

_END = Step()


class ChatCompleteResponse:
    """The parts of one streamed chat completion, produced on demand.

    ``meta`` is updated while the stream is consumed; read it after the last
    step for the final finish reason and token usage.

    Consumption styles:

    - ``await response.next_step()`` returns a ``Step`` holding a part, a
      terminal error, or neither (end). ``await response.stop()`` ends the
      sequence early.
    - ``async for part in response`` yields parts and raises the terminal
      error. Wrap it in ``async with response`` (or
      ``contextlib.aclosing(response)``) so breaking out of the loop closes
      the transport at once.
    """

    def __init__(
        self,
        open_stream: Callable[[], Awaitable[ChunkSource]],
        accumulator: ChunkAccumulator,
        *,
        provider: str = "openai",
        deadline: float | None = None,
        span: AnySpan = NO_OP_SPAN,
        logger: logging.Logger = logger,
    ) -> None:
        self.meta: ResponseMetadata = accumulator.meta
        #: Set when closing the transport failed; kept for diagnostics only.
        self.close_error: BaseException | None = None
        self._open_stream = open_stream
        self._accumulator = accumulator
        self._provider = provider
        self._deadline = deadline
        self._span = span
        self._log = logger
        self._source: ChunkSource | None = None
        self._pending: deque[Step] = deque()
        self._finished = False
        self._closed = False
        self._cancel_reason: str | None = None

    @property
    def finished(self) -> bool:
        """Whether the sequence has ended (exhausted, stopped, or failed)."""
        return self._finished

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation; the next advance ends with StreamCancelledError.

        Safe to call more than once or after completion.
        """
        if self._cancel_reason is None:
            self._cancel_reason = reason or "cancelled by caller"

    async def next_step(self) -> Step:
        """Advance the sequence by one step.

        Returns a step with a part, a step with the terminal error, or the end
        step. Every call after the sequence finished returns the end step.
        """
        while True:
            if self._pending:
                step = self._pending.popleft()
                if step.done or step.error is not None:
                    await self._terminate()
                return step
            if self._finished:
                return _END

            try:
                chunk = await self._advance()
            except StopAsyncIteration:
                try:
                    self._pending.extend(self._accumulator.finish())
                except CastorError as e:
                    return await self._fail(e)
                if not self._pending:
                    await self._terminate()
                    return _END
                # Deliver flushed steps, then end.
                self._pending.append(_END)
                continue
            except asyncio.CancelledError:
                await self._terminate()
                raise
            except CastorError as e:
                return await self._fail(e)
            except Exception as e:
                err = wrap_provider_error(
                    e,
                    provider=self._provider,
                    phase="stream",
                    allow_network_errors=True,
                )
                err.__cause__ = e
                return await self._fail(err)

            try:
                self._pending.extend(self._accumulator.add_chunk(chunk))
            except CastorError as e:
                return await self._fail(e)

    async def stop(self) -> None:
        """End the sequence now; the transport is closed and nothing more is read."""
        if self._finished and self._closed:
            return
        self._pending.clear()
        await self._terminate()

    async def aclose(self) -> None:
        """Alias of ``stop()`` for ``contextlib.aclosing``."""
        await self.stop()

    async def collect(self) -> list[MessagePart]:
        """Consume the whole sequence and return its parts.

        Raises:
            CastorError: The terminal error, if the sequence ended with one.
        """
        parts: list[MessagePart] = []
        async for part in self:
            parts.append(part)
        return parts

    async def text(self) -> str:
        """Consume the whole sequence and return the concatenated text parts."""
        return "".join(getattr(part, "text", "") for part in await self.collect())

    async def __aiter__(self) -> AsyncIterator[MessagePart]:
        try:
            while True:
                step = await self.next_step()
                if step.error is not None:
                    raise step.error
                if step.part is None:
                    return
                yield step.part
        finally:
            await self.stop()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # ------------------------------------------------------------------

    async def _advance(self) -> Any:
        if self._cancel_reason is not None:
            raise StreamCancelledError(
                f"Stream cancelled: {self._cancel_reason}",
                retryable=False,
                provider=self._provider,
                phase="stream",
            )

        if self._deadline is None:
            return await self._next_chunk()
        try:
            async with asyncio.timeout_at(self._deadline):
                return await self._next_chunk()
        except TimeoutError as e:
            raise StreamCancelledError(
                "Stream deadline exceeded",
                retryable=True,
                provider=self._provider,
                phase="stream",
            ) from e

    async def _next_chunk(self) -> Any:
        if self._source is None:
            self._source = await self._open_stream()
        return await self._source.__anext__()

    async def _fail(self, err: CastorError) -> Step:
        if isinstance(err, TransportError):
            self._log.debug("Stream failed: %s", err, exc_info=err)
            self._span.record_error(err)
            self._span.set_status("error", "stream error")
        await self._terminate()
        return Step(error=err)

    async def _terminate(self) -> None:
        self._finished = True
        self._pending.clear()
        await self._close()
        self._span.end()

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        source, self._source = self._source, None
        if source is None:
            return
        try:
            await source.close()
        except Exception as e:
            self.close_error = e
            self._log.info("Error closing stream: %s", e)
