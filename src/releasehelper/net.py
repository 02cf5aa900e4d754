# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""HTTP utilities for releasehelper.

Provides a managed :class:`httpx.AsyncClient` with:

- Connection pooling (configurable pool size).
- Automatic retry with exponential backoff for transient statuses.
- Structured logging of every retry.

Connection failures are *not* retried here: without a reachable host
(or a valid credential) a retry cannot succeed, so the error surfaces
immediately and the caller aborts the operation.

:class:`BackoffPolicy` is the bounded-loop description used by the
optimistic-concurrency retries in the provider and the engines (SHA
conflicts, moved refs).

Usage::

    from releasehelper.net import http_client, request_with_retry

    async with http_client(base_url='https://api.github.com') as client:
        response = await request_with_retry(client, 'GET', '/user/repos')
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Final

import httpx

from releasehelper.logging import get_logger

log = get_logger('releasehelper.net')

# Default connection pool limits.
DEFAULT_POOL_SIZE: Final[int] = 10
DEFAULT_TIMEOUT: Final[float] = 30.0

# Retry configuration for transient statuses.
MAX_RETRIES: Final[int] = 3
RETRY_BACKOFF_BASE: Final[float] = 1.0

# HTTP status codes that trigger a retry.
RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded retry schedule with a linearly growing delay.

    Attributes:
        max_attempts: Number of retries after the first try.
        base_delay: Delay in seconds before the first retry; retry *n*
            waits ``base_delay * n``.
    """

    max_attempts: int = 2
    base_delay: float = 0.5

    def delay(self, attempt: int) -> float:
        """Seconds to wait before retry number *attempt* (1-based)."""
        return self.base_delay * attempt

    def attempts(self) -> range:
        """All attempt numbers, ``0`` being the initial try."""
        return range(self.max_attempts + 1)

    async def wait(self, attempt: int) -> None:
        """Sleep before retry number *attempt*."""
        delay = self.delay(attempt)
        if delay > 0:
            await asyncio.sleep(delay)


@asynccontextmanager
async def http_client(
    *,
    pool_size: int = DEFAULT_POOL_SIZE,
    timeout: float = DEFAULT_TIMEOUT,
    base_url: str = '',
    headers: dict[str, str] | None = None,
) -> AsyncGenerator[httpx.AsyncClient]:
    """Create a managed async HTTP client with connection pooling.

    Args:
        pool_size: Maximum number of connections in the pool.
        timeout: Request timeout in seconds.
        base_url: Optional base URL for all requests.
        headers: Optional default headers.

    Yields:
        An :class:`httpx.AsyncClient` instance.
    """
    limits = httpx.Limits(
        max_connections=pool_size,
        max_keepalive_connections=pool_size,
    )
    async with httpx.AsyncClient(
        limits=limits,
        timeout=httpx.Timeout(timeout),
        base_url=base_url,
        headers=headers or {},
        follow_redirects=True,
    ) as client:
        yield client


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = MAX_RETRIES,
    backoff_base: float = RETRY_BACKOFF_BASE,
    **kwargs: Any,  # noqa: ANN401 - forwarded to httpx
) -> httpx.Response:
    """Make an HTTP request, retrying 429 and 5xx responses.

    Uses exponential backoff between retries. When retries are exhausted
    the last response is returned as-is so the caller can normalize it.

    Args:
        client: The httpx async client to use.
        method: HTTP method (GET, POST, etc.).
        url: Request URL.
        max_retries: Maximum number of retry attempts.
        backoff_base: Base delay in seconds for exponential backoff.
        **kwargs: Additional keyword arguments passed to ``client.request()``.

    Returns:
        The final :class:`httpx.Response`.

    Raises:
        httpx.HTTPError: On transport failures (never retried).
    """
    attempt = 0
    while True:
        response = await client.request(method, url, **kwargs)
        if response.status_code not in RETRYABLE_STATUS_CODES or attempt >= max_retries:
            return response

        delay = backoff_base * (2**attempt)
        log.warning(
            'http_retry',
            method=method,
            url=url,
            status=response.status_code,
            attempt=attempt + 1,
            delay=delay,
        )
        if delay > 0:
            await asyncio.sleep(delay)
        attempt += 1


__all__ = [
    'DEFAULT_POOL_SIZE',
    'DEFAULT_TIMEOUT',
    'MAX_RETRIES',
    'RETRYABLE_STATUS_CODES',
    'BackoffPolicy',
    'http_client',
    'request_with_retry',
]
