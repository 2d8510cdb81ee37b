from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection, Mapping
from functools import partial
from typing import Any

import httpx
from tenacity.retry import retry_if_exception_type

from ecolojia_resilience.circuit_breaker.breaker import CircuitBreaker
from ecolojia_resilience.errors import TransientError
from ecolojia_resilience.logging import bind_breaker_context
from ecolojia_resilience.retry import (
    RetryBackoffPolicy,
    build_exponential_jitter_retrying,
)

DEFAULT_FAILURE_STATUSES = frozenset({500, 502, 503, 504})


class UpstreamHttpError(TransientError):
    """Raised when an upstream answers with a failure status."""

    def __init__(
        self,
        message: str,
        http_status: int,
        response_body: str | None = None,
    ) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            http_status: HTTP status observed from the upstream.
            response_body: Optional response payload text.
        """
        super().__init__(message)
        self.http_status = http_status
        self.response_body = response_body


class UpstreamUnavailableError(TransientError):
    """Raised when the upstream cannot be reached at the transport level."""


class BreakerHttpClient:
    """Async HTTP client whose requests run under one circuit breaker.

    Failure statuses and transport errors count as breaker failures. Any other
    response, 4xx included, is returned to the caller as a success.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        breaker: CircuitBreaker,
        retry_policy: RetryBackoffPolicy | None = None,
        failure_statuses: Collection[int] = DEFAULT_FAILURE_STATUSES,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Create a breaker-guarded HTTP client.

        Args:
            client: Shared async HTTP client.
            breaker: Breaker guarding every request.
            retry_policy: Optional retries for transient errors inside one
                guarded call. The breaker timeout covers all attempts.
            failure_statuses: Response statuses treated as failures.
            sleep: Optional sleep used between retries.
        """
        self._client = client
        self._breaker = breaker
        self._retry_policy = retry_policy
        self._failure_statuses = frozenset(failure_statuses)
        self._sleep = sleep

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def request(
        self,
        method: str,
        url: str,
        *,
        fallback: Callable[[], Awaitable[httpx.Response]] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request through the breaker."""
        operation = partial(self._request_with_retry, method, url, kwargs)
        with bind_breaker_context(self._breaker.name):
            return await self._breaker.execute(operation, fallback)

    async def get(
        self,
        url: str,
        *,
        fallback: Callable[[], Awaitable[httpx.Response]] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        return await self.request("GET", url, fallback=fallback, **kwargs)

    async def post(
        self,
        url: str,
        *,
        fallback: Callable[[], Awaitable[httpx.Response]] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        return await self.request("POST", url, fallback=fallback, **kwargs)

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        kwargs: Mapping[str, Any],
    ) -> httpx.Response:
        if self._retry_policy is None:
            return await self._request_once(method, url, kwargs)

        retrying = build_exponential_jitter_retrying(
            retry=retry_if_exception_type(TransientError),
            policy=self._retry_policy,
            sleep=self._sleep,
        )
        async for attempt in retrying:
            with attempt:
                return await self._request_once(method, url, kwargs)

        raise RuntimeError("HTTP retry loop exited unexpectedly.")

    async def _request_once(
        self,
        method: str,
        url: str,
        kwargs: Mapping[str, Any],
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise UpstreamUnavailableError(f"{exc.__class__.__name__}: {exc}") from exc

        if response.status_code in self._failure_statuses:
            raise UpstreamHttpError(
                f"{method} {url} returned HTTP {response.status_code}.",
                http_status=response.status_code,
                response_body=response.text,
            )
        return response
