"""HTTP layer for the catalog API: timeout, retry and backoff.

Transient failures (connection errors, timeouts and the statuses in
``RETRYABLE_STATUSES``) are retried inside :meth:`ApiClient.request` and only
surface once the retry budget is spent. Everything else raises immediately.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from afont.errors import HttpStatusError, NetworkError

if TYPE_CHECKING:
    from afont.config import ApiSettings

log = structlog.get_logger()

RETRYABLE_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})
MAX_BACKOFF_SECONDS = 30.0
TOKEN_HEADER = "X-Typekit-Token"


def build_http_client(settings: ApiSettings) -> httpx.AsyncClient:
    """Create the shared AsyncClient; timeouts are applied per request."""
    headers = {"Accept": "application/json"}
    if settings.has_token:
        headers[TOKEN_HEADER] = settings.token
    return httpx.AsyncClient(base_url=settings.base_url, headers=headers)


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES


def parse_retry_after(value: str | None, now: datetime | None = None) -> float:
    """Seconds to wait from a Retry-After header, capped at 30s; 0 if absent."""
    if not value:
        return 0.0
    value = value.strip()
    if value.isdigit():
        return min(float(value), MAX_BACKOFF_SECONDS)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return 0.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    delta = (when - (now or datetime.now(UTC))).total_seconds()
    return max(0.0, min(delta, MAX_BACKOFF_SECONDS))


def backoff_delay(attempt: int, base_seconds: float) -> float:
    return min(MAX_BACKOFF_SECONDS, base_seconds * (2**attempt))


def serialize_form(fields: Mapping[str, Any]) -> dict[str, str | list[str]]:
    """Form fields for urlencoding; list values become repeated ``key[]`` pairs."""
    body: dict[str, str | list[str]] = {}
    for key, value in fields.items():
        if isinstance(value, (list, tuple)):
            body[f"{key}[]"] = [str(item) for item in value]
        elif value is not None and value != "":
            body[key] = str(value)
    return body


def _parse_body(response: httpx.Response) -> Any:
    text = response.text
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


class ApiClient:
    """Issues catalog API requests with a hard timeout and bounded retries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: ApiSettings,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._settings = settings
        self._sleep = sleep

    async def request(
        self,
        path: str,
        *,
        method: str = "GET",
        query: Mapping[str, Any] | None = None,
        form: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """Send one logical request and return its parsed JSON body.

        Raises:
            NetworkError: connection failure or timeout on the final attempt.
            HttpStatusError: non-2xx response that is not retryable, or still
                failing after ``max_retries`` retries.
        """
        params = {k: str(v) for k, v in (query or {}).items() if v is not None and v != ""}
        data = serialize_form(form) if form is not None else None
        timeout = min(max(timeout or self._settings.timeout_seconds, 1.0), 120.0)
        retries = self._settings.max_retries if max_retries is None else max_retries
        retries = min(max(retries, 0), 8)

        for attempt in range(retries + 1):
            last_attempt = attempt >= retries
            try:
                response = await self._client.request(
                    method,
                    path,
                    params=params,
                    data=data,
                    headers=dict(headers or {}),
                    timeout=timeout,
                )
            except httpx.TimeoutException as exc:
                if last_attempt:
                    raise NetworkError(
                        f"Request timed out: {method} {path} after {timeout:g}s",
                        details={"timeout_seconds": timeout},
                    ) from exc
                await self._retry_wait(method, path, attempt, reason="timeout")
                continue
            except httpx.TransportError as exc:
                if last_attempt:
                    raise NetworkError(
                        f"Request failed: {method} {path} -> {exc}",
                        details={"error": type(exc).__name__},
                    ) from exc
                await self._retry_wait(method, path, attempt, reason=type(exc).__name__)
                continue

            body = _parse_body(response)
            if response.is_success:
                return body

            retryable = is_retryable_status(response.status_code)
            if retryable and not last_attempt:
                hinted = parse_retry_after(response.headers.get("retry-after"))
                await self._retry_wait(
                    method, path, attempt, reason=str(response.status_code), hinted=hinted
                )
                continue
            raise HttpStatusError(
                f"Request failed: {method} {path} -> HTTP {response.status_code}",
                status=response.status_code,
                body=body,
                retryable=retryable,
            )

        raise AssertionError("unreachable")  # pragma: no cover

    async def _retry_wait(
        self, method: str, path: str, attempt: int, *, reason: str, hinted: float = 0.0
    ) -> None:
        delay = hinted or backoff_delay(attempt, self._settings.retry_base_seconds)
        log.info(
            "http_retry",
            method=method,
            path=path,
            attempt=attempt + 1,
            reason=reason,
            delay_seconds=delay,
        )
        await self._sleep(delay)
