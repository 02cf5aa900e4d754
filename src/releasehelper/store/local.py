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

"""JSON-file-backed release store.

The whole list lives in one JSON file::

    {
      "version": 1,
      "releases": [ {"id": "REL-...", "demandId": "DMND0011870", ...} ]
    }

A bare JSON array (the shape older exports used) is accepted on read.
Every mutation rewrites the file through ``tempfile`` + ``os.replace``,
so a crash mid-write leaves the previous file intact. ``path=None``
keeps everything in memory.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from releasehelper.errors import E, ReleaseHelperError
from releasehelper.logging import get_logger
from releasehelper.models import Release
from releasehelper.store._base import BaseReleaseStore

log = get_logger(__name__)

_FORMAT_VERSION = 1


class LocalReleaseStore(BaseReleaseStore):
    """Release store persisted to a local JSON file.

    Args:
        path: JSON file location, or None for a memory-only store.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize with an optional backing file."""
        super().__init__()
        self.path = path

    def __repr__(self) -> str:
        """Return a repr naming the backing file."""
        return f'LocalReleaseStore(path={str(self.path) if self.path else None!r})'

    async def _read(self) -> list[Release]:
        if self.path is None:
            return list(self._records.values())
        if not self.path.is_file():
            return []
        try:
            text = self.path.read_text(encoding='utf-8')
        except OSError as exc:
            raise OSError(f'Failed to read release store {self.path}: {exc}') from exc

        try:
            data = json.loads(text) if text.strip() else []
        except json.JSONDecodeError as exc:
            raise ReleaseHelperError(
                E.STORE_CORRUPTED,
                f'Release store {self.path} contains invalid JSON: {exc}',
                hint='Delete or repair the store file, then run a full sync to rebuild it.',
            ) from exc

        items = data.get('releases', []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ReleaseHelperError(E.STORE_CORRUPTED, f'Release store {self.path} has no releases list.')
        try:
            return [Release.from_dict(item) for item in items]
        except (AttributeError, TypeError, ValueError) as exc:
            raise ReleaseHelperError(
                E.STORE_CORRUPTED,
                f'Release store {self.path} holds a malformed record: {exc}',
                hint='Delete or repair the store file, then run a full sync to rebuild it.',
            ) from exc

    async def _persist(
        self,
        records: list[Release],
        *,
        saved: Release | None = None,
        removed: str | None = None,
    ) -> None:
        if self.path is None:
            return
        content = json.dumps(
            {'version': _FORMAT_VERSION, 'releases': [r.to_dict() for r in records]},
            indent=2,
            ensure_ascii=False,
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file in the same directory, then atomically rename.
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.releases-', suffix='.tmp')
            closed = False
            try:
                os.write(fd, (content + '\n').encode('utf-8'))
                os.close(fd)
                closed = True
                os.replace(tmp_path, self.path)
            except BaseException:
                if not closed:
                    os.close(fd)
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise ReleaseHelperError(
                E.STORE_WRITE_FAILED,
                f'Could not write release store {self.path}: {exc}',
                hint='Check that the directory exists and is writable.',
            ) from exc

        log.debug('store_saved', path=str(self.path), releases=len(records))


__all__ = [
    'LocalReleaseStore',
]
