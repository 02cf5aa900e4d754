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

"""Release Store protocol and factory.

The :class:`ReleaseStore` protocol is what the engines persist through.
Implementations:

- :class:`~releasehelper.store.local.LocalReleaseStore`: JSON file (or memory)
- :class:`~releasehelper.store.remote.RemoteReleaseStore`: HTTP document store

Which one is used is decided once, by ``store`` in ``releasehelper.toml``::

    store = open_store(load_config(root), auth=auth)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from releasehelper.auth import AuthContext
from releasehelper.config import HelperConfig
from releasehelper.models import Release
from releasehelper.store._base import BaseReleaseStore, ReleaseListener
from releasehelper.store.local import LocalReleaseStore
from releasehelper.store.remote import RemoteReleaseStore

__all__ = [
    'BaseReleaseStore',
    'LocalReleaseStore',
    'ReleaseListener',
    'ReleaseStore',
    'RemoteReleaseStore',
    'open_store',
]


@runtime_checkable
class ReleaseStore(Protocol):
    """Protocol for release persistence."""

    async def load(self) -> list[Release]:
        """(Re)read every record from the backing store."""
        ...

    async def get_all(self) -> list[Release]:
        """Return copies of every record."""
        ...

    async def get(self, release_id: str) -> Release | None:
        """Return the record with *release_id*, or None."""
        ...

    async def get_by_demand_id(self, demand_id: str) -> Release | None:
        """Return the record for *demand_id* (case-insensitive), or None."""
        ...

    async def search(self, term: str) -> list[Release]:
        """Case-insensitive substring search."""
        ...

    async def create(self, release: Release, *, created_by: str = '') -> Release:
        """Add a new record; duplicate demand ids are rejected."""
        ...

    async def update(
        self,
        release_id: str,
        changes: Mapping[str, Any],  # noqa: ANN401
        *,
        is_versioned: bool | None = None,
        updated_by: str = '',
    ) -> Release:
        """Apply a user edit; resets ``is_versioned`` unless overridden."""
        ...

    async def upsert(self, release: Release) -> Release:
        """Insert or replace by demand id, keeping the stored id."""
        ...

    async def delete(self, release_id: str) -> bool:
        """Remove the record; False when it did not exist."""
        ...

    def subscribe(self, listener: ReleaseListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        ...


def open_store(config: HelperConfig, *, auth: AuthContext | None = None) -> ReleaseStore:
    """Build the store selected by *config*.

    Args:
        config: Loaded configuration.
        auth: Credentials for the remote store; defaults to the environment.
    """
    if config.store == 'remote':
        return RemoteReleaseStore(
            config.store_url,
            auth or AuthContext.from_env(),
            pool_size=config.http_pool_size,
            timeout=config.http_timeout,
        )
    return LocalReleaseStore(config.resolved_store_path())
