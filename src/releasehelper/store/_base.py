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

"""Cache, lookup and notification logic shared by every release store.

Subclasses supply two hooks: :meth:`BaseReleaseStore._read` to fetch the
persisted records and :meth:`BaseReleaseStore._persist` to write a
mutation. The base class applies the mutation to its in-memory cache
only after ``_persist`` succeeded, so a failed write never leaves the
cache ahead of the backing store.

Mutations are serialized through one ``asyncio.Lock``: the duplicate
check, the write and the cache update of one mutation complete before
the next mutation looks at the cache, even when ``_persist`` awaits I/O.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Mapping
from typing import Any

from releasehelper.errors import E, ReleaseHelperError
from releasehelper.logging import get_logger
from releasehelper.models import Release, new_release_id, utcnow

log = get_logger(__name__)

ReleaseListener = Callable[[list[Release]], None]

# Fields a caller may never change through update().
_PROTECTED_FIELDS = frozenset({'id', 'created_at', 'created_by', 'updated_at', 'updated_by', 'is_versioned'})


class BaseReleaseStore:
    """In-memory cache plus change notification over a persistence hook."""

    def __init__(self) -> None:
        """Initialize an empty, not yet loaded store."""
        self._records: dict[str, Release] = {}
        self._listeners: list[ReleaseListener] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    # Persistence hooks

    async def _read(self) -> list[Release]:
        raise NotImplementedError

    async def _persist(
        self,
        records: list[Release],
        *,
        saved: Release | None = None,
        removed: str | None = None,
    ) -> None:
        """Write one mutation; *records* is the full post-mutation list."""
        raise NotImplementedError

    # Reads

    async def load(self) -> list[Release]:
        """(Re)read every record from the backing store."""
        async with self._lock:
            return await self._reload()

    async def _reload(self) -> list[Release]:
        records = await self._read()
        self._records = {r.id: r for r in records}
        self._loaded = True
        log.debug('store_loaded', store=type(self).__name__, releases=len(records))
        return [r.copy() for r in records]

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self._reload()

    async def get_all(self) -> list[Release]:
        """Return copies of every record."""
        await self._ensure_loaded()
        return [r.copy() for r in self._records.values()]

    async def get(self, release_id: str) -> Release | None:
        """Return the record with *release_id*, or None."""
        await self._ensure_loaded()
        record = self._records.get(release_id)
        return record.copy() if record is not None else None

    def _find_by_key(self, demand_id: str) -> Release | None:
        key = demand_id.strip().upper()
        for record in self._records.values():
            if record.key == key:
                return record
        return None

    async def get_by_demand_id(self, demand_id: str) -> Release | None:
        """Return the record for *demand_id* (case-insensitive), or None."""
        await self._ensure_loaded()
        record = self._find_by_key(demand_id)
        return record.copy() if record is not None else None

    async def search(self, term: str) -> list[Release]:
        """Case-insensitive substring search over the identifying fields."""
        await self._ensure_loaded()
        needle = term.strip().lower()
        if not needle:
            return await self.get_all()
        matches = []
        for record in self._records.values():
            haystack = (
                record.demand_id,
                record.title,
                record.description,
                record.responsible.dev,
                record.responsible.functional,
            )
            if any(needle in value.lower() for value in haystack):
                matches.append(record.copy())
        return matches

    # Mutations

    async def _commit(self, *, saved: Release | None = None, removed: str | None = None) -> None:
        """Persist one mutation, then apply it to the cache; call with the lock held."""
        records = dict(self._records)
        if saved is not None:
            records[saved.id] = saved
        if removed is not None:
            records.pop(removed, None)
        await self._persist(list(records.values()), saved=saved, removed=removed)
        if saved is not None:
            self._records[saved.id] = saved
        if removed is not None:
            self._records.pop(removed, None)
        self._notify()

    async def create(self, release: Release, *, created_by: str = '') -> Release:
        """Add a new record with a fresh id and timestamps.

        Raises:
            ReleaseHelperError: ``RH-INVALID-RELEASE`` when the demand id is
                blank, ``RH-DUPLICATE-DEMAND`` when it is already present.
        """
        async with self._lock:
            return await self._create(release, created_by=created_by)

    async def _create(self, release: Release, *, created_by: str) -> Release:
        await self._ensure_loaded()
        if not release.demand_id.strip():
            raise ReleaseHelperError(
                E.INVALID_RELEASE,
                'A release needs a demand id.',
                hint='Fill in the demand id before saving the release.',
            )
        if self._find_by_key(release.demand_id) is not None:
            raise ReleaseHelperError(
                E.DUPLICATE_DEMAND,
                f'A release for demand {release.demand_id} already exists.',
                hint='Edit the existing release instead of creating a new one.',
            )
        now = utcnow()
        record = dataclasses.replace(
            release.copy(),
            id=new_release_id(),
            created_at=now,
            updated_at=now,
            created_by=created_by or release.created_by,
            updated_by=created_by or release.updated_by,
            is_versioned=False,
        )
        await self._commit(saved=record)
        log.info('release_created', demand_id=record.demand_id, id=record.id)
        return record.copy()

    async def update(
        self,
        release_id: str,
        changes: Mapping[str, Any],  # noqa: ANN401 - field values
        *,
        is_versioned: bool | None = None,
        updated_by: str = '',
    ) -> Release:
        """Apply a user edit.

        A local edit is presumed unpublished, so ``is_versioned`` drops to
        False unless the caller passes it explicitly.

        Raises:
            ReleaseHelperError: ``RH-RELEASE-NOT-FOUND``,
                ``RH-DUPLICATE-DEMAND`` or ``RH-INVALID-RELEASE``.
        """
        async with self._lock:
            await self._ensure_loaded()
            current = self._records.get(release_id)
            if current is None:
                raise ReleaseHelperError(E.RELEASE_NOT_FOUND, f'No release with id {release_id}.')
            protected = _PROTECTED_FIELDS.intersection(changes)
            if protected:
                raise ReleaseHelperError(
                    E.INVALID_RELEASE,
                    f'Cannot change {sorted(protected)} through update().',
                    hint='Ids, timestamps and authorship are maintained by the store.',
                )

            demand_id = changes.get('demand_id')
            if demand_id is not None:
                other = self._find_by_key(demand_id)
                if other is not None and other.id != release_id:
                    raise ReleaseHelperError(E.DUPLICATE_DEMAND, f'A release for demand {demand_id} already exists.')

            record = dataclasses.replace(
                current.copy(),
                **dict(changes),
                updated_at=utcnow(),
                updated_by=updated_by or current.updated_by,
                is_versioned=bool(is_versioned),
            )
            await self._commit(saved=record)
        log.info('release_updated', demand_id=record.demand_id, id=release_id, is_versioned=record.is_versioned)
        return record.copy()

    async def upsert(self, release: Release) -> Release:
        """Insert or replace by demand id (then by id), keeping the stored id."""
        async with self._lock:
            await self._ensure_loaded()
            existing = self._find_by_key(release.demand_id) or self._records.get(release.id)
            record = release.copy()
            now = utcnow()
            if existing is not None:
                record.id = existing.id
                record.created_at = record.created_at or existing.created_at
            else:
                record.id = record.id or new_release_id()
                record.created_at = record.created_at or now
            record.updated_at = record.updated_at or now
            await self._commit(saved=record)
        log.debug('release_upserted', demand_id=record.demand_id, id=record.id, is_versioned=record.is_versioned)
        return record.copy()

    async def delete(self, release_id: str) -> bool:
        """Remove the record; False when it did not exist."""
        async with self._lock:
            await self._ensure_loaded()
            if release_id not in self._records:
                return False
            await self._commit(removed=release_id)
        log.info('release_deleted', id=release_id)
        return True

    # Notification

    def subscribe(self, listener: ReleaseListener) -> Callable[[], None]:
        """Call *listener* with the full list after every mutation."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = [r.copy() for r in self._records.values()]
        for listener in list(self._listeners):
            listener(snapshot)


__all__ = [
    'BaseReleaseStore',
    'ReleaseListener',
]
