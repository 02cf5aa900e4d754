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

"""Synchronization engine: pull release documents from GitHub into the store.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Pass                │ One full sweep over every repository you can  │
    │                     │ push to. Counts its operations and errors.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Working copy wins   │ If a repository has release_X.md on both      │
    │                     │ branches, the working-branch copy is the one  │
    │                     │ read. It holds edits not merged yet.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Versioned           │ The document was seen on a base branch this   │
    │                     │ pass (or we could not look, and it was        │
    │                     │ versioned before).                            │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Prune               │ Delete a versioned record nobody saw, but     │
    │                     │ only after asking every repository it claims  │
    │                     │ and hearing "not there" from all of them.     │
    └─────────────────────┴────────────────────────────────────────────────┘

Pass pipeline::

    list_accessible_repositories()
        │
        ├── per repo (concurrent): list releases/ on working + base branch
        │       └── working copy wins per file name
        │
        ├── group winning files by demand id
        │       └── per group (concurrent), base copies first, then working:
        │             fetch @ branch head → parse → skip if unchanged (base only)
        │             → enrich scripts → attribute → merge → store.upsert
        │
        └── prune (skipped when errors > operations × prune_error_ratio)

Usage::

    engine = SyncEngine(provider, store, config)
    result = await engine.sync_all()
    if not result.ok:
        for message in result.errors:
            print(message)
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from releasehelper.backends.forge import GitProvider, RepositoryInfo
from releasehelper.config import HelperConfig
from releasehelper.errors import E, ForgeError, ReleaseHelperError, is_fatal
from releasehelper.logging import get_logger, operation_context
from releasehelper.markdown import parse_release
from releasehelper.merge import Attribution, has_tracked_changes, merge_release
from releasehelper.models import GitHubReleaseFile, Release, Script, utcnow
from releasehelper.paths import (
    RepoRef,
    demand_id_from_filename,
    normalize_repo_url,
    parse_repository_url,
    release_filename,
    release_path,
    script_path,
)
from releasehelper.store import ReleaseStore

log = get_logger(__name__)


@dataclass
class SyncResult:
    """Aggregate outcome of a synchronization pass.

    Attributes:
        synced: Documents written to the store.
        skipped: Base-branch documents already up to date.
        removed: Records pruned as absent upstream.
        errors: One message per failed operation.
        releases: Winning document per (demand, repository).
        operations: Remote operations attempted.
        pruning_suppressed: Whether pruning was skipped.
    """

    synced: int = 0
    skipped: int = 0
    removed: int = 0
    errors: list[str] = field(default_factory=list)
    releases: list[GitHubReleaseFile] = field(default_factory=list)
    operations: int = 0
    pruning_suppressed: bool = False

    @property
    def ok(self) -> bool:
        """Return True if no operation failed."""
        return not self.errors


@dataclass
class _Pass:
    """Mutable bookkeeping for one pass."""

    result: SyncResult = field(default_factory=SyncResult)
    # Lowercased ``owner/repo`` of every repository that was listed.
    repositories: set[str] = field(default_factory=set)
    # Lowercased ``owner/repo`` whose base-branch listing failed.
    base_listing_failed: set[str] = field(default_factory=set)
    # Demand keys seen on a base branch.
    on_base: set[str] = field(default_factory=set)
    # Demand keys seen anywhere.
    seen: set[str] = field(default_factory=set)
    files_found: int = 0

    def fail(self, message: str) -> None:
        self.result.errors.append(message)


def _demand_key(file: GitHubReleaseFile) -> str:
    return (demand_id_from_filename(file.name) or file.name.rsplit('.', 1)[0]).upper()


def _repo_key(url: str) -> str:
    return normalize_repo_url(url) if url else ''


class SyncEngine:
    """Reconciles the release store with the documents on GitHub.

    Args:
        provider: Git provider backend.
        store: Release store to write into.
        config: Branch names, paths and thresholds.
    """

    def __init__(self, provider: GitProvider, store: ReleaseStore, config: HelperConfig | None = None) -> None:
        """Initialize with a provider, a store and configuration."""
        self._provider = provider
        self._store = store
        self._config = config or HelperConfig()
        self._running = False
        self.last_synced_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        """Whether a full pass is in progress."""
        return self._running

    @property
    def _working(self) -> str:
        return self._config.working_branch

    def _web_url(self, file: GitHubReleaseFile) -> str:
        return RepoRef(file.owner, file.repo_name, self._config.web_host).url

    # Entry points

    async def sync_all(self) -> SyncResult:
        """Run one full pass over every accessible repository.

        Raises:
            ReleaseHelperError: ``RH-SYNC-IN-PROGRESS`` when a pass is
                already running, or any fatal credential/connectivity
                failure.
        """
        if self._running:
            raise ReleaseHelperError(
                E.SYNC_IN_PROGRESS,
                'A synchronization pass is already running.',
                hint='Wait for the current pass to finish.',
            )
        self._running = True
        try:
            with operation_context('sync_all'):
                result = await self._sync_all()
        finally:
            self._running = False
        self.last_synced_at = utcnow()
        return result

    async def sync_release(self, demand_id: str) -> SyncResult:
        """Refresh one release from the repositories it already lists.

        Same precedence and enrichment as :meth:`sync_all`, no pruning.

        Raises:
            ReleaseHelperError: ``RH-RELEASE-NOT-FOUND`` when the store has
                no record for *demand_id*.
        """
        existing = await self._store.get_by_demand_id(demand_id)
        if existing is None:
            raise ReleaseHelperError(E.RELEASE_NOT_FOUND, f'No release for demand {demand_id}.')
        state = _Pass()
        with operation_context('sync_release', demand_id=existing.demand_id):
            listings = await asyncio.gather(
                *(self._locate_release(existing, repo.url, state) for repo in existing.repositories if repo.url)
            )
            files = [file for listing in listings for file in listing]
            if files:
                await self._sync_group(existing.key, files, state)
            log.info(
                'release_refreshed',
                demand_id=existing.demand_id,
                synced=state.result.synced,
                errors=len(state.result.errors),
            )
        return state.result

    # Full pass

    async def _sync_all(self) -> SyncResult:
        state = _Pass()
        repositories = await self._provider.list_accessible_repositories()
        previous = await self._store.load()
        log.info('sync_started', repositories=len(repositories))

        listings = await asyncio.gather(*(self._list_repository(repo, state) for repo in repositories))

        groups: dict[str, list[GitHubReleaseFile]] = {}
        for listing in listings:
            for file in listing:
                groups.setdefault(_demand_key(file), []).append(file)

        await asyncio.gather(*(self._sync_group(key, files, state) for key, files in groups.items()))
        await self._prune(previous, state)

        result = state.result
        log.info(
            'sync_finished',
            repositories=len(repositories),
            files=state.files_found,
            synced=result.synced,
            skipped=result.skipped,
            removed=result.removed,
            errors=len(result.errors),
            pruning_suppressed=result.pruning_suppressed,
        )
        return result

    async def _list_branch(
        self,
        repo: RepositoryInfo,
        branch: str,
        state: _Pass,
    ) -> list[GitHubReleaseFile] | None:
        state.result.operations += 1
        try:
            return await self._provider.list_release_files(repo.owner, repo.name, branch)
        except ForgeError as exc:
            if is_fatal(exc):
                raise
            log.warning('listing_failed', repo=repo.full_name, branch=branch, error=exc.message)
            state.fail(f'{repo.full_name}@{branch}: {exc.message}')
            return None

    async def _find_base(self, owner: str, name: str, state: _Pass) -> str | None:
        state.result.operations += 1
        try:
            return await self._provider.find_base_branch(owner, name, self._config.base_branches)
        except ForgeError as exc:
            if is_fatal(exc):
                raise
            log.warning('base_branch_lookup_failed', repo=f'{owner}/{name}', error=exc.message)
            state.fail(f'{owner}/{name}: {exc.message}')
            return None

    async def _list_base(self, repo: RepositoryInfo, state: _Pass) -> list[GitHubReleaseFile] | None:
        base = await self._find_base(repo.owner, repo.name, state)
        if base is None:
            return None
        return await self._list_branch(repo, base, state)

    async def _list_repository(self, repo: RepositoryInfo, state: _Pass) -> list[GitHubReleaseFile]:
        """Return the winning copy of every release document in *repo*."""
        key = repo.full_name.lower()
        state.repositories.add(key)
        working, base = await asyncio.gather(
            self._list_branch(repo, self._working, state),
            self._list_base(repo, state),
        )
        if base is None:
            state.base_listing_failed.add(key)

        winners: dict[str, GitHubReleaseFile] = {}
        for file in base or []:
            state.on_base.add(_demand_key(file))
            winners[file.name.lower()] = file
        for file in working or []:
            winners[file.name.lower()] = file

        state.files_found += len(winners)
        return list(winners.values())

    async def _locate_release(self, release: Release, repo_url: str, state: _Pass) -> list[GitHubReleaseFile]:
        """Build the winning listing for one known release in one repository."""
        try:
            ref = parse_repository_url(repo_url, self._config.web_host)
        except ReleaseHelperError as exc:
            state.fail(f'{release.demand_id}: {exc.message}')
            return []
        key = ref.full_name.lower()
        state.repositories.add(key)
        path = release_path(release.demand_id, self._config.releases_dir)

        async def lookup(branch: str | None) -> GitHubReleaseFile | None:
            if branch is None:
                return None
            state.result.operations += 1
            try:
                sha = await self._provider.get_file_sha(ref.owner, ref.repo, path, branch)
            except ForgeError as exc:
                if is_fatal(exc):
                    raise
                state.fail(f'{ref.full_name}@{branch} {path}: {exc.message}')
                if branch != self._working:
                    state.base_listing_failed.add(key)
                return None
            if sha is None:
                return None
            return GitHubReleaseFile(
                repo=ref.full_name,
                name=release_filename(release.demand_id),
                path=path,
                sha=sha,
                branch=branch,
            )

        base = await self._find_base(ref.owner, ref.repo, state)
        if base is None:
            state.base_listing_failed.add(key)
        working_file, base_file = await asyncio.gather(lookup(self._working), lookup(base))
        if base_file is not None:
            state.on_base.add(release.key)
        winner = working_file or base_file
        if winner is None:
            return []
        state.files_found += 1
        return [winner]

    # Per-document processing

    async def _sync_group(self, key: str, files: list[GitHubReleaseFile], state: _Pass) -> None:
        """Apply every copy of one demand, base copies first so working copies land last."""
        state.seen.add(key)
        ordered = sorted(files, key=lambda f: (f.branch == self._working, f.repo.lower()))
        for file in ordered:
            await self._sync_file(key, file, state)

    def _is_versioned(self, key: str, existing: Release | None, state: _Pass) -> bool:
        if key in state.on_base:
            return True
        if existing is None or not existing.is_versioned:
            return False
        # Keep the flag when a repository it claims could not be checked.
        claimed = {_repo_key(r.url) for r in existing.repositories if r.url}
        return bool(claimed & state.base_listing_failed)

    async def _sync_file(self, key: str, file: GitHubReleaseFile, state: _Pass) -> None:
        result = state.result
        result.operations += 1
        try:
            content = await self._provider.get_file_content(file.owner, file.repo_name, file.path, file.branch)
            if content is None:
                log.warning('release_file_vanished', repo=file.repo, branch=file.branch, path=file.path)
                result.skipped += 1
                return

            parsed = parse_release(content, scripts_dir=self._config.scripts_dir)
            parsed.demand_id = parsed.demand_id or demand_id_from_filename(file.name) or key
            existing = await self._store.get_by_demand_id(parsed.demand_id)
            versioned = self._is_versioned(key, existing, state)
            from_working = file.branch == self._working

            if not from_working and existing is not None and not self._needs_write(existing, parsed, file, versioned):
                log.debug('release_unchanged', demand_id=parsed.demand_id, repo=file.repo, branch=file.branch)
                result.skipped += 1
                result.releases.append(file)
                return

            parsed.scripts = await self._enrich_scripts(parsed, file, state)
            attribution = await self._attribute(file)
            merged = merge_release(
                existing,
                parsed,
                source_branch=file.branch,
                working_branch=self._working,
                base_branches=self._config.base_branches,
                observed_repo_url=self._web_url(file),
                attribution=attribution,
                is_versioned=versioned,
            )
            await self._store.upsert(merged)
        except ReleaseHelperError as exc:
            if is_fatal(exc):
                raise
            log.warning('release_sync_failed', repo=file.repo, branch=file.branch, path=file.path, error=exc.message)
            state.fail(f'{file.repo}@{file.branch} {file.path}: {exc.message}')
            return

        result.synced += 1
        result.releases.append(file)
        log.info(
            'release_synced',
            demand_id=merged.demand_id,
            repo=file.repo,
            branch=file.branch,
            is_versioned=merged.is_versioned,
        )

    @staticmethod
    def _needs_write(existing: Release, parsed: Release, file: GitHubReleaseFile, versioned: bool) -> bool:
        if existing.is_versioned != versioned or has_tracked_changes(existing, parsed):
            return True
        known = {_repo_key(r.url) for r in existing.repositories}
        return file.repo.lower() not in known

    async def _enrich_scripts(self, parsed: Release, file: GitHubReleaseFile, state: _Pass) -> list[Script]:
        """Fetch script bodies from the same branch; absent scripts keep ``content=None``."""

        async def fetch(script: Script) -> Script:
            path = script.path or script_path(parsed.demand_id, script.name, self._config.scripts_dir)
            state.result.operations += 1
            try:
                body = await self._provider.get_file_content(file.owner, file.repo_name, path, file.branch)
            except ForgeError as exc:
                if is_fatal(exc):
                    raise
                log.warning('script_fetch_failed', repo=file.repo, path=path, error=exc.message)
                state.fail(f'{file.repo}@{file.branch} {path}: {exc.message}')
                body = None
            if body is None:
                log.debug('script_not_committed', repo=file.repo, branch=file.branch, path=path)
            return Script(name=script.name, path=path, content=body, change_id=script.change_id, id=script.id)

        return list(await asyncio.gather(*(fetch(s) for s in parsed.scripts)))

    async def _attribute(self, file: GitHubReleaseFile) -> Attribution:
        """Authorship from the first and latest commit touching the document."""
        try:
            first, last = await asyncio.gather(
                self._provider.get_file_first_commit(file.owner, file.repo_name, file.path, file.branch),
                self._provider.get_file_last_commit(file.owner, file.repo_name, file.path, file.branch),
            )
        except ForgeError as exc:
            if is_fatal(exc):
                raise
            log.warning('attribution_failed', repo=file.repo, path=file.path, error=exc.message)
            return Attribution()
        return Attribution(
            created_by=first.author if first else '',
            created_at=first.date if first else None,
            updated_by=last.author if last else '',
            updated_at=last.date if last else None,
        )

    # Pruning

    async def _prune(self, previous: Iterable[Release], state: _Pass) -> None:
        result = state.result
        if state.files_found == 0:
            log.warning('prune_skipped', reason='no release documents found')
            result.pruning_suppressed = True
            return
        if len(result.errors) > result.operations * self._config.prune_error_ratio:
            log.warning(
                'prune_skipped',
                reason='too many errors',
                errors=len(result.errors),
                operations=result.operations,
            )
            result.pruning_suppressed = True
            return

        candidates = [r for r in previous if r.is_versioned and r.key not in state.seen]
        if not candidates:
            return
        verdicts = await asyncio.gather(*(self._confirmed_absent(r, state) for r in candidates))
        for release, absent in zip(candidates, verdicts, strict=True):
            if not absent:
                log.info('prune_kept', demand_id=release.demand_id)
                continue
            if await self._store.delete(release.id):
                result.removed += 1
                log.info('release_pruned', demand_id=release.demand_id)

    async def _confirmed_absent(self, release: Release, state: _Pass) -> bool:
        """True only when every claimed repository answers "no such file" on its base branch."""
        urls = [r.url for r in release.repositories if r.url]
        if not urls:
            return False
        path = release_path(release.demand_id, self._config.releases_dir)

        async def absent_from(url: str) -> bool:
            try:
                ref = parse_repository_url(url, self._config.web_host)
            except ReleaseHelperError:
                return False
            key = ref.full_name.lower()
            if key not in state.repositories or key in state.base_listing_failed:
                return False
            try:
                base = await self._provider.find_base_branch(ref.owner, ref.repo, self._config.base_branches)
                if base is None:
                    return False
                return await self._provider.get_file_sha(ref.owner, ref.repo, path, base) is None
            except ForgeError as exc:
                if is_fatal(exc):
                    raise
                log.warning('prune_check_failed', demand_id=release.demand_id, repo=ref.full_name, error=exc.message)
                return False

        return all(await asyncio.gather(*(absent_from(url) for url in urls)))


__all__ = [
    'SyncEngine',
    'SyncResult',
]
