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

"""Release store backed by a shared HTTP document store.

Wire contract::

    GET    {store_url}/releases        → [ {release}, ... ]  or {"releases": [...]}
    PUT    {store_url}/releases/{id}   ← {release}
    DELETE {store_url}/releases/{id}   (404 is treated as already gone)

Requests carry the same bearer token as the GitHub calls, read from the
shared :class:`~releasehelper.auth.AuthContext`.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from releasehelper.auth import AuthContext
from releasehelper.errors import E, ReleaseHelperError
from releasehelper.logging import get_logger
from releasehelper.models import Release
from releasehelper.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT, http_client, request_with_retry
from releasehelper.store._base import BaseReleaseStore

log = get_logger(__name__)


class RemoteReleaseStore(BaseReleaseStore):
    """Release store persisted through a REST document store.

    Args:
        base_url: Root URL of the document store.
        auth: Credential holder shared with the Git provider.
        pool_size: HTTP connection pool size.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        auth: AuthContext,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize with the store URL and credentials."""
        super().__init__()
        self._base_url = base_url.rstrip('/')
        self._auth = auth
        self._pool_size = pool_size
        self._timeout = timeout

    def __repr__(self) -> str:
        """Return a safe repr that never exposes the token."""
        return f'RemoteReleaseStore(base_url={self._base_url!r})'

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:  # noqa: ANN401
        headers = {'Authorization': f'Bearer {self._auth.require_token()}', 'Accept': 'application/json'}
        url = f'{self._base_url}{path}'
        try:
            async with http_client(pool_size=self._pool_size, timeout=self._timeout, headers=headers) as client:
                return await request_with_retry(client, method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ReleaseHelperError(
                E.STORE_UNAVAILABLE,
                f'{method} {url} failed: {exc}',
                hint='Check network connectivity and the configured store_url.',
            ) from exc

    async def _read(self) -> list[Release]:
        response = await self._request('GET', '/releases')
        if not response.is_success:
            raise ReleaseHelperError(
                E.STORE_UNAVAILABLE,
                f'Loading releases failed ({response.status_code}): {response.text[:200]}',
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ReleaseHelperError(E.STORE_CORRUPTED, f'Release store returned invalid JSON: {exc}') from exc
        items = data.get('releases', []) if isinstance(data, dict) else data
        try:
            return [Release.from_dict(item) for item in items]
        except (AttributeError, TypeError, ValueError) as exc:
            raise ReleaseHelperError(E.STORE_CORRUPTED, f'Release store returned a malformed record: {exc}') from exc

    async def _persist(
        self,
        records: list[Release],
        *,
        saved: Release | None = None,
        removed: str | None = None,
    ) -> None:
        if saved is not None:
            response = await self._request('PUT', f'/releases/{quote(saved.id, safe="")}', json=saved.to_dict())
            if not response.is_success:
                raise ReleaseHelperError(
                    E.STORE_WRITE_FAILED,
                    f'Saving release {saved.demand_id} failed ({response.status_code}).',
                )
        if removed is not None:
            response = await self._request('DELETE', f'/releases/{quote(removed, safe="")}')
            if not response.is_success and response.status_code != 404:
                raise ReleaseHelperError(
                    E.STORE_WRITE_FAILED,
                    f'Deleting release {removed} failed ({response.status_code}).',
                )


__all__ = [
    'RemoteReleaseStore',
]
