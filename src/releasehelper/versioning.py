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

"""Versioning engine: publish a release to GitHub as one commit plus a PR.

Per repository the steps are strictly sequential, because each one needs
the previous step's result. Repositories run concurrently and
independently; a partial outcome is reported, never rolled back.

Publish flow (one repository)::

    create_branch(working, base candidates)      ← idempotent
        │
        ▼
    diff document + scripts against the working branch
        │  (nothing differs → no commit)
        ▼
    create_commit_with_files(...)                ← one commit, N files
        │  RH-REF-MOVED → re-diff, back off, retry (bounded)
        ▼
    create_pull_request(working → base)
        │  RH-PR-ALREADY-EXISTS → reuse the open PR
        │  RH-PR-NO-DIFF        → actionable error
        ▼
    PullRequestInfo

Removal mirrors it on ``<removal_branch_prefix>-<demandId>``, deleting the
document and every known script path, and skips repositories where the
document is not on the base branch.

A run's ``success`` is False when more than half of the targeted
repositories failed, even if others produced Pull Requests.

Usage::

    engine = VersioningEngine(provider, store, config)
    result = await engine.version_release(release, ['https://github.com/acme/payments'])
    for repo, pr in result.pull_requests.items():
        print(repo, pr.url)
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field

from releasehelper.backends.forge import FileChange, GitProvider, PullRequestInfo
from releasehelper.config import HelperConfig
from releasehelper.errors import E, ForgeError, ReleaseHelperError, is_fatal
from releasehelper.logging import get_logger, operation_context
from releasehelper.markdown import render_release
from releasehelper.models import Release, ReleaseRepository
from releasehelper.paths import RepoRef, normalize_repo_url, parse_repository_url, release_path, script_path
from releasehelper.store import ReleaseStore

log = get_logger(__name__)

_PR_TITLE_RE = re.compile(r'^(Remove\s+)?Release\s+([^\s:]+)', re.IGNORECASE)


@dataclass
class VersioningResult:
    """Aggregate outcome of a publish or removal run.

    Attributes:
        success: False when more than half of the targets failed.
        pull_requests: Pull Request per repository (``owner/repo``).
        errors: One message per failed repository.
        skipped: Repositories that needed nothing.
        targets: Number of repositories targeted.
    """

    success: bool = True
    pull_requests: dict[str, PullRequestInfo] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    targets: int = 0

    @property
    def ok(self) -> bool:
        """Return True if every targeted repository succeeded."""
        return not self.errors


@dataclass(frozen=True)
class ReleasePullRequest:
    """An open Pull Request that carries a release or its removal."""

    repo: str
    demand_id: str
    removal: bool
    pull_request: PullRequestInfo


def versioning_files(release: Release, config: HelperConfig | None = None) -> list[FileChange]:
    """The files a publish writes: the document plus every script with a body."""
    config = config or HelperConfig()
    document = render_release(release, scripts_dir=config.scripts_dir)
    files = [FileChange(path=release_path(release.demand_id, config.releases_dir), content=document)]
    for script in release.scripts:
        if script.content is None:
            continue
        path = script.path or script_path(release.demand_id, script.name, config.scripts_dir)
        files.append(FileChange(path=path, content=script.content))
    return files


def pr_title(release: Release) -> str:
    """``Release <demandId>: <title or first description line>``."""
    summary = release.title.strip() or release.description.strip().split('\n', 1)[0]
    return f'Release {release.demand_id}: {summary}' if summary else f'Release {release.demand_id}'


def pr_body(release: Release, files: Sequence[FileChange]) -> str:
    """Markdown body for a publish Pull Request."""
    lines = [f'## Release {release.demand_id}', '']
    if release.title:
        lines += [f'**{release.title}**', '']
    if release.description:
        lines += [release.description, '']

    people = [
        ('Dev', release.responsible.dev),
        ('Functional', release.responsible.functional),
        ('Tech Lead', release.responsible.tech_lead),
        ('SRE', release.responsible.sre),
    ]
    named = [(role, name) for role, name in people if name]
    if named:
        lines += ['### Responsible', '']
        lines += [f'- {role}: {name}' for role, name in named]
        lines.append('')

    lines += ['### Files', '']
    lines += [f'- `{f.path}`' + (' (removed)' if f.is_delete else '') for f in files]
    return '\n'.join(lines) + '\n'


def _commit_message(release: Release) -> str:
    return f'docs: upsert release {release.demand_id}'


def _removal_message(release: Release) -> str:
    return f'docs: remove release {release.demand_id}'


class VersioningEngine:
    """Publishes releases to GitHub and mirrors their removal.

    Args:
        provider: Git provider backend.
        store: Optional release store; a successful publish marks the
            record versioned there.
        config: Branch names, paths and retry policies.
    """

    def __init__(
        self,
        provider: GitProvider,
        store: ReleaseStore | None = None,
        config: HelperConfig | None = None,
    ) -> None:
        """Initialize with a provider, an optional store and configuration."""
        self._provider = provider
        self._store = store
        self._config = config or HelperConfig()

    @property
    def _working(self) -> str:
        return self._config.working_branch

    # Shared steps

    def _success(self, result: VersioningResult) -> bool:
        return len(result.errors) <= result.targets / 2

    async def _run_per_repository(
        self,
        urls: Sequence[str],
        result: VersioningResult,
        step: Callable[[RepoRef], Awaitable[PullRequestInfo | None]],
    ) -> None:
        async def run(url: str) -> None:
            try:
                ref = parse_repository_url(url, self._config.web_host)
            except ReleaseHelperError as exc:
                result.errors.append(exc.message)
                return
            try:
                pr = await step(ref)
            except ReleaseHelperError as exc:
                if is_fatal(exc):
                    raise
                message = f'{ref.full_name}: {exc.message}'
                if exc.code == E.PR_NO_DIFF and exc.hint:
                    message = f'{message} {exc.hint}'
                log.warning('repository_failed', repo=ref.full_name, code=exc.code.value, error=exc.message)
                result.errors.append(message)
                return
            if pr is None:
                result.skipped.append(ref.full_name)
            else:
                result.pull_requests[ref.full_name] = pr

        await asyncio.gather(*(run(url) for url in urls))

    async def _commit_with_retry(
        self,
        ref: RepoRef,
        branch: str,
        message: str,
        changes: Callable[[], Awaitable[list[FileChange]]],
    ) -> bool:
        """Commit whatever *changes* returns; re-diff and retry when the ref moved.

        Returns:
            False when there was nothing to commit.
        """
        policy = self._config.ref_update_policy
        for attempt in policy.attempts():
            files = await changes()
            if not files:
                log.info('nothing_to_commit', repo=ref.full_name, branch=branch)
                return False
            try:
                await self._provider.create_commit_with_files(ref.owner, ref.repo, branch, message, files)
            except ForgeError as exc:
                if exc.code != E.REF_MOVED or attempt >= policy.max_attempts:
                    raise
                log.warning('ref_moved_retry', repo=ref.full_name, branch=branch, attempt=attempt + 1)
                await policy.wait(attempt + 1)
                continue
            return True
        return False

    async def _open_pull_request(self, ref: RepoRef, *, title: str, head: str, base: str, body: str) -> PullRequestInfo:
        try:
            return await self._provider.create_pull_request(
                ref.owner, ref.repo, title=title, head=head, base=base, body=body
            )
        except ForgeError as exc:
            if exc.code != E.PR_ALREADY_EXISTS:
                raise
            existing = await self._provider.list_pull_requests(ref.owner, ref.repo, state='open', base=base, head=head)
            if not existing:
                raise
            log.info('pull_request_reused', repo=ref.full_name, number=existing[0].number)
            return existing[0]

    async def _diff(self, ref: RepoRef, branch: str, files: Sequence[FileChange]) -> list[FileChange]:
        """Keep only files whose content differs from what *branch* holds."""
        current = await asyncio.gather(
            *(self._provider.get_file_content(ref.owner, ref.repo, f.path, branch) for f in files)
        )
        return [f for f, text in zip(files, current, strict=True) if text != f.content]

    # Publish

    async def version_release(self, release: Release, target_repo_urls: Sequence[str]) -> VersioningResult:
        """Commit *release* to the working branch of each target and open PRs.

        Raises:
            ReleaseHelperError: ``RH-NO-REPOSITORIES-SELECTED`` when
                *target_repo_urls* is empty, or a fatal provider failure.
        """
        urls = list(dict.fromkeys(u for u in target_repo_urls if u))
        if not urls:
            raise ReleaseHelperError(
                E.NO_REPOSITORIES_SELECTED,
                f'No repository selected for release {release.demand_id}.',
                hint='Pick at least one repository to version the release into.',
            )
        files = versioning_files(release, self._config)
        title = pr_title(release)
        body = pr_body(release, files)
        result = VersioningResult(targets=len(urls))

        async def publish(ref: RepoRef) -> PullRequestInfo | None:
            branch = await self._provider.create_branch(ref.owner, ref.repo, self._working, self._config.base_branches)
            base = branch.base or await self._provider.find_base_branch(ref.owner, ref.repo, self._config.base_branches)
            if not base:
                raise ReleaseHelperError(
                    E.BRANCH_BASE_NOT_FOUND,
                    f'{ref.full_name} has no base branch to open a Pull Request against.',
                )
            committed = await self._commit_with_retry(
                ref, self._working, _commit_message(release), lambda: self._diff(ref, self._working, files)
            )
            if not committed:
                open_prs = await self._provider.list_pull_requests(
                    ref.owner, ref.repo, state='open', base=base, head=self._working
                )
                if open_prs:
                    return open_prs[0]
                if await self._provider.compare_branches(ref.owner, ref.repo, base, self._working) == 0:
                    log.info('release_up_to_date', repo=ref.full_name, demand_id=release.demand_id)
                    return None
            pr = await self._open_pull_request(ref, title=title, head=self._working, base=base, body=body)
            log.info('release_versioned', repo=ref.full_name, demand_id=release.demand_id, pr=pr.number)
            return pr

        with operation_context('version_release', demand_id=release.demand_id):
            await self._run_per_repository(urls, result, publish)
            result.success = self._success(result)
            if result.pull_requests and self._store is not None:
                await self._store.upsert(self._versioned_record(release, result.pull_requests))
            log.info(
                'version_release_finished',
                demand_id=release.demand_id,
                pull_requests=len(result.pull_requests),
                errors=len(result.errors),
                success=result.success,
            )
        return result

    def _versioned_record(self, release: Release, published: Mapping[str, PullRequestInfo]) -> Release:
        """The store record after a publish; only repositories that got a PR are added."""
        record = release.copy()
        record.is_versioned = True
        known = {normalize_repo_url(r.url) for r in record.repositories if r.url}
        for full_name in published:
            owner, name = full_name.split('/', 1)
            if full_name.lower() not in known:
                ref = RepoRef(owner, name, self._config.web_host)
                record.repositories.append(
                    ReleaseRepository(url=ref.url, name=ref.repo, release_branch=self._working)
                )
        return record

    # Removal

    async def delete_release_from_github(self, release: Release) -> VersioningResult:
        """Open a removal Pull Request in every repository that has the document.

        Raises:
            ReleaseHelperError: ``RH-NO-REPOSITORIES-SELECTED`` when the
                release lists no repository.
        """
        urls = list(dict.fromkeys(r.url for r in release.repositories if r.url))
        if not urls:
            raise ReleaseHelperError(
                E.NO_REPOSITORIES_SELECTED,
                f'Release {release.demand_id} lists no repository to remove it from.',
            )
        doc_path = release_path(release.demand_id, self._config.releases_dir)
        paths = [doc_path] + [
            s.path or script_path(release.demand_id, s.name, self._config.scripts_dir) for s in release.scripts
        ]
        branch_name = f'{self._config.removal_branch_prefix}-{release.demand_id}'
        result = VersioningResult(targets=len(urls))

        async def remove(ref: RepoRef) -> PullRequestInfo | None:
            base = await self._provider.find_base_branch(ref.owner, ref.repo, self._config.base_branches)
            if base is None or await self._provider.get_file_sha(ref.owner, ref.repo, doc_path, base) is None:
                log.info('release_absent', repo=ref.full_name, demand_id=release.demand_id)
                return None
            await self._provider.create_branch(ref.owner, ref.repo, branch_name, [base])

            async def deletions() -> list[FileChange]:
                shas = await asyncio.gather(
                    *(self._provider.get_file_sha(ref.owner, ref.repo, p, branch_name) for p in paths)
                )
                return [FileChange(path=p, content=None) for p, sha in zip(paths, shas, strict=True) if sha]

            await self._commit_with_retry(ref, branch_name, _removal_message(release), deletions)
            body = pr_body(release, [FileChange(path=p, content=None) for p in paths])
            pr = await self._open_pull_request(
                ref, title=f'Remove Release {release.demand_id}', head=branch_name, base=base, body=body
            )
            log.info('release_removal_opened', repo=ref.full_name, demand_id=release.demand_id, pr=pr.number)
            return pr

        with operation_context('delete_release', demand_id=release.demand_id):
            await self._run_per_repository(urls, result, remove)
            result.success = self._success(result)
        return result

    # Queries

    async def open_release_pull_requests(self, repo_urls: Sequence[str] | None = None) -> list[ReleasePullRequest]:
        """Open release and removal PRs against the preferred base branch.

        A repository whose listing fails, or a URL that does not name a
        repository, contributes nothing.
        """
        host = self._config.web_host
        if repo_urls is None:
            refs = [RepoRef(r.owner, r.name, host) for r in await self._provider.list_accessible_repositories()]
        else:
            refs = []
            for url in repo_urls:
                try:
                    refs.append(parse_repository_url(url, host))
                except ReleaseHelperError as exc:
                    log.warning('pull_request_listing_skipped', url=url, error=exc.message)

        async def collect(ref: RepoRef) -> list[ReleasePullRequest]:
            try:
                prs = await self._provider.list_pull_requests(
                    ref.owner, ref.repo, state='open', base=self._config.base_branch
                )
            except ForgeError as exc:
                if is_fatal(exc):
                    raise
                log.warning('pull_request_listing_failed', repo=ref.full_name, error=exc.message)
                return []
            found = []
            for pr in prs:
                match = _PR_TITLE_RE.match(pr.title)
                if match:
                    found.append(
                        ReleasePullRequest(
                            repo=ref.full_name,
                            demand_id=match.group(2),
                            removal=bool(match.group(1)),
                            pull_request=pr,
                        )
                    )
            return found

        batches = await asyncio.gather(*(collect(ref) for ref in refs))
        return [item for batch in batches for item in batch]

    async def has_pending_commits(self, release: Release) -> bool:
        """Whether the working branch is ahead of the base in any linked repository."""

        async def ahead(url: str) -> bool:
            try:
                ref = parse_repository_url(url, self._config.web_host)
                base = await self._provider.find_base_branch(ref.owner, ref.repo, self._config.base_branches)
                if base is None:
                    return False
                return await self._provider.compare_branches(ref.owner, ref.repo, base, self._working) > 0
            except ReleaseHelperError as exc:
                if is_fatal(exc):
                    raise
                log.warning('pending_check_failed', url=url, error=exc.message)
                return False

        return any(await asyncio.gather(*(ahead(r.url) for r in release.repositories if r.url)))


__all__ = [
    'ReleasePullRequest',
    'VersioningEngine',
    'VersioningResult',
    'pr_body',
    'pr_title',
    'versioning_files',
]
