"""Map OpenAI SDK and network failures into TransportError.

The result carries structured retry metadata (status code, Retry-After,
retryable flag) so callers can own retry policy without matching on message
text.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import httpx

from castor._http import RETRYABLE_STATUS_CODES
from castor.errors import (
    RateLimitError,
    TransportError,
    _walk_exception_chain,
)

# OpenAI sends the millisecond form first; the SDK honours it the same way.
_RETRY_AFTER_HEADERS: tuple[tuple[str, float], ...] = (
    ("retry-after-ms", 1000.0),
    ("retry-after", 1.0),
)


def _http_status(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and 100 <= value <= 599:
        return value
    return None


def extract_status_code(exc: BaseException) -> int | None:
    """Return the first HTTP status found on *exc* or its cause/context chain.

    ``openai.APIStatusError`` exposes ``status_code``; other SDKs and proxies
    put it on ``status`` or on an attached ``response``.
    """
    for e in _walk_exception_chain(exc):
        response = getattr(e, "response", None)
        for candidate in (
            getattr(e, "status_code", None),
            getattr(e, "status", None),
            getattr(response, "status_code", None),
        ):
            status = _http_status(candidate)
            if status is not None:
                return status
    return None


def _retry_after_from_headers(headers: Mapping[str, str]) -> float | None:
    for name, divisor in _RETRY_AFTER_HEADERS:
        raw = headers.get(name)
        if not isinstance(raw, str) or not raw.strip():
            continue
        try:
            value = float(raw) / divisor
        except ValueError:
            continue
        if value >= 0:
            return value
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Return the server-requested retry delay in seconds, if any.

    Looks for an explicit ``retry_after`` attribute first, then for
    ``retry-after-ms`` / ``Retry-After`` headers on an attached response.
    HTTP-date values are not interpreted.
    """
    for e in _walk_exception_chain(exc):
        explicit = getattr(e, "retry_after", None)
        if isinstance(explicit, (int, float)) and explicit >= 0:
            return float(explicit)

        headers = getattr(getattr(e, "response", None), "headers", None)
        if not isinstance(headers, (Mapping, httpx.Headers)):
            continue
        if not isinstance(headers, httpx.Headers):
            headers = httpx.Headers(dict(headers))
        seconds = _retry_after_from_headers(headers)
        if seconds is not None:
            return seconds
    return None


def _is_network_error(exc: BaseException) -> bool:
    # openai.APIConnectionError / APITimeoutError chain to the httpx failure.
    return any(
        isinstance(e, (httpx.TimeoutException, httpx.RequestError))
        for e in _walk_exception_chain(exc)
    )


def _auth_hint(status_code: int | None, cause_message: str) -> str | None:
    """Name the credential env var when the failure looks like an auth problem."""
    cause_lower = cause_message.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in cause_lower or "api_key" in cause_lower)
    ):
        return "Check credentials/permissions (try setting OPENAI_API_KEY or Config.api_key)."
    return None


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    allow_network_errors: bool,
    message: str | None = None,
    hint: str | None = None,
) -> TransportError:
    """Build the TransportError (or RateLimitError) describing *exc*.

    ``asyncio.CancelledError`` is re-raised rather than wrapped. An existing
    TransportError is returned as-is with missing context filled in.

    A failure is retryable when the server asked for a delay, when its status
    is in ``RETRYABLE_STATUS_CODES``, or, with *allow_network_errors*, when it
    stems from a connection or timeout error.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, TransportError):
        exc.provider = exc.provider or provider
        exc.phase = exc.phase or phase
        if exc.hint is None:
            exc.hint = hint
        return exc

    status_code = extract_status_code(exc)
    retry_after_s = extract_retry_after_s(exc)
    retryable = (
        retry_after_s is not None
        or status_code in RETRYABLE_STATUS_CODES
        or (allow_network_errors and status_code is None and _is_network_error(exc))
    )

    summary = message or f"{provider} {phase} failed"
    if status_code is not None:
        summary += f" (status={status_code})"
    cause = str(exc)

    err_cls = RateLimitError if status_code == 429 else TransportError
    return err_cls(
        f"{summary}: {cause}" if cause else summary,
        hint=hint if hint is not None else _auth_hint(status_code, cause),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
    )
