"""Exception hierarchy for Castor."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class CastorError(Exception):
    """Base exception for all Castor errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(CastorError):
    """Configuration validation or resolution failed."""


class ValidationError(CastorError):
    """A request could not be translated; nothing was sent."""


class InternalError(CastorError):
    """A Castor internal error (bug) or contract violation."""


class TransportError(CastorError):
    """The upstream stream failed to open, advance, or decode.

    Providers attach retry metadata so callers can apply their own bounded
    retry policy without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RateLimitError(TransportError):
    """Rate limit exceeded (HTTP 429)."""


class StreamCancelledError(TransportError):
    """The stream was cancelled or ran past its deadline."""


class StreamProtocolError(TransportError):
    """The provider sent chunks that violate the streaming contract."""


class RefusalError(CastorError):
    """The model refused the request."""

    def __init__(self, refusal: str, *, hint: str | None = None) -> None:
        super().__init__(f"refusal: {refusal}", hint=hint)
        self.refusal = refusal


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
