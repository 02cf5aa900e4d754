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

"""GitHub REST API backend for releasehelper.

Implements the :class:`~releasehelper.backends.forge.GitProvider`
protocol using the GitHub REST API v3 and the Git Data API via ``httpx``.

Authentication:

    The token is read from an :class:`~releasehelper.auth.AuthContext`
    on every request, so sign-in, refresh and sign-out take effect
    immediately. A missing token raises ``RH-AUTH-MISSING`` before any
    network traffic.

Error normalization:

    ┌──────────────────────────┬──────────────────────────────────────────┐
    │ GitHub outcome           │ What callers see                         │
    ├──────────────────────────┼──────────────────────────────────────────┤
    │ 404 on a read            │ ``None`` / ``[]`` (absence is a value)   │
    │ 401                      │ ForgeError RH-FORGE-UNAUTHORIZED (fatal) │
    │ 403                      │ ForgeError RH-FORGE-UNAUTHORIZED         │
    │ 409 / 422 sha mismatch   │ retried, then RH-SHA-CONFLICT            │
    │ ref moved mid-commit     │ ForgeError RH-REF-MOVED                  │
    │ PR already open          │ ForgeError RH-PR-ALREADY-EXISTS          │
    │ PR without commits       │ ForgeError RH-PR-NO-DIFF                 │
    │ 429 / 5xx                │ retried by :mod:`releasehelper.net`      │
    │ connection failure       │ ForgeError RH-FORGE-UNREACHABLE (fatal)  │
    └──────────────────────────┴──────────────────────────────────────────┘

Atomic multi-file commit::

    GET  git/ref/heads/<branch>     head commit
    GET  git/commits/<head>         base tree
    POST git/blobs (× N, concurrent)
    POST git/trees                  one tree over the base tree
    POST git/commits                one commit, parent = head
    GET  git/ref/heads/<branch>     still head?  no → RH-REF-MOVED
    PATCH git/refs/heads/<branch>   force = false

Usage::

    from releasehelper.auth import AuthContext
    from releasehelper.backends.forge.github_api import GitHubAPIBackend

    provider = GitHubAPIBackend(AuthContext.from_env())
    repos = await provider.list_accessible_repositories()

.. seealso::

    `GitHub REST API <https://docs.github.com/en/rest>`_
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from releasehelper.auth import AuthContext
from releasehelper.backends.forge._types import (
    BranchInfo,
    CommitInfo,
    CommitResult,
    FileChange,
    FileWriteResult,
    PullRequestInfo,
    RepositoryInfo,
)
from releasehelper.errors import E, ErrorCode, ForgeError
from releasehelper.logging import get_logger
from releasehelper.models import GitHubReleaseFile
from releasehelper.net import (
    DEFAULT_POOL_SIZE,
    DEFAULT_TIMEOUT,
    MAX_RETRIES,
    RETRY_BACKOFF_BASE,
    BackoffPolicy,
    http_client,
    request_with_retry,
)

if TYPE_CHECKING:
    from releasehelper.config import HelperConfig

log = get_logger('releasehelper.backends.forge.github_api')

# GitHub REST API base URL.
_DEFAULT_BASE_URL = 'https://api.github.com'

# API version header for stable API behavior.
_API_VERSION = '2022-11-28'

# Largest page GitHub serves.
_PAGE_SIZE = 100

_STATUS_CODES: dict[int, ErrorCode] = {
    401: E.FORGE_UNAUTHORIZED,
    403: E.FORGE_UNAUTHORIZED,
    404: E.FORGE_NOT_FOUND,
    409: E.FORGE_CONFLICT,
    422: E.FORGE_UNPROCESSABLE,
}


def _quote_path(path: str) -> str:
    return quote(path.strip('/'), safe='/')


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None


def _error_text(response: httpx.Response) -> str:
    """Flatten GitHub's ``message`` plus ``errors[].message`` into one string."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if not isinstance(data, dict):
        return response.text
    parts = [str(data.get('message', ''))]
    for item in data.get('errors') or []:
        if isinstance(item, dict):
            parts.append(str(item.get('message', '') or item.get('code', '')))
        else:
            parts.append(str(item))
    return '; '.join(p for p in parts if p)


def _raise_for_status(response: httpx.Response, action: str) -> None:
    """Normalize a non-success response into a :class:`ForgeError`."""
    if response.is_success:
        return
    status = response.status_code
    code = _STATUS_CODES.get(status, E.FORGE_REQUEST_FAILED)
    hint = ''
    if status == 401:
        hint = 'The token expired or was revoked. Sign in again.'
    elif status == 403:
        hint = 'The token lacks access to this repository, or the rate limit was hit.'
    raise ForgeError(code, f'{action} failed ({status}): {_error_text(response)}', status=status, hint=hint)


def _decode_base64(content: str) -> str:
    try:
        return base64.b64decode(content).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ForgeError(E.FORGE_REQUEST_FAILED, f'Could not decode file content: {exc}', status=200) from exc


def _encode_base64(content: str) -> str:
    return base64.b64encode(content.encode('utf-8')).decode('ascii')


def _commit_info(data: dict[str, Any]) -> CommitInfo:  # noqa: ANN401 - GitHub JSON
    commit = data.get('commit') or {}
    author = commit.get('author') or {}
    login = (data.get('author') or {}).get('login', '')
    message = str(commit.get('message', ''))
    return CommitInfo(
        sha=data.get('sha', ''),
        author=login or author.get('name', ''),
        date=_parse_datetime(author.get('date')),
        message=message.split('\n', 1)[0],
        url=data.get('html_url', ''),
    )


def _pull_request_info(data: dict[str, Any]) -> PullRequestInfo:  # noqa: ANN401 - GitHub JSON
    return PullRequestInfo(
        number=int(data.get('number', 0)),
        url=data.get('html_url', ''),
        title=data.get('title', ''),
        head=(data.get('head') or {}).get('ref', ''),
        base=(data.get('base') or {}).get('ref', ''),
        state=data.get('state', 'open'),
    )


class GitHubAPIBackend:
    """GitProvider implementation using the GitHub REST API.

    Uses ``httpx`` for async HTTP with connection pooling and automatic
    retry on transient statuses (429, 5xx).

    Args:
        auth: Credential holder consulted on every request.
        base_url: API base URL (override for GitHub Enterprise Server).
        pool_size: HTTP connection pool size.
        timeout: HTTP request timeout in seconds.
        releases_dir: Directory listed for release documents.
        organizations_only: Restrict discovery to organization repositories.
        max_repository_pages: Page ceiling for repository discovery.
        max_commit_pages: Page ceiling for first-commit lookup.
        sha_conflict_policy: Retry schedule for single-file SHA conflicts.
        max_retries: Retries for transient HTTP statuses.
        retry_backoff: Base delay for transient-status retries.
    """

    def __init__(
        self,
        auth: AuthContext,
        *,
        base_url: str = _DEFAULT_BASE_URL,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        releases_dir: str = 'releases',
        organizations_only: bool = False,
        max_repository_pages: int = 50,
        max_commit_pages: int = 10,
        sha_conflict_policy: BackoffPolicy | None = None,
        max_retries: int = MAX_RETRIES,
        retry_backoff: float = RETRY_BACKOFF_BASE,
    ) -> None:
        """Initialize with an auth context and transport settings."""
        self._auth = auth
        self._base_url = base_url.rstrip('/')
        self._pool_size = pool_size
        self._timeout = timeout
        self._releases_dir = releases_dir.strip('/')
        self._organizations_only = organizations_only
        self._max_repository_pages = max_repository_pages
        self._max_commit_pages = max_commit_pages
        self._sha_policy = sha_conflict_policy or BackoffPolicy()
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff

    @classmethod
    def from_config(cls, config: HelperConfig, auth: AuthContext) -> GitHubAPIBackend:
        """Build a backend from a loaded :class:`~releasehelper.config.HelperConfig`."""
        return cls(
            auth,
            base_url=config.github_base_url,
            pool_size=config.http_pool_size,
            timeout=config.http_timeout,
            releases_dir=config.releases_dir,
            organizations_only=config.organizations_only,
            max_repository_pages=config.max_repository_pages,
            max_commit_pages=config.max_commit_pages,
            sha_conflict_policy=config.sha_conflict_policy,
        )

    def __repr__(self) -> str:
        """Return a safe repr that never exposes the API token."""
        return f'GitHubAPIBackend(base_url={self._base_url!r})'

    def _headers(self) -> dict[str, str]:
        return {
            'Authorization': f'Bearer {self._auth.require_token()}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': _API_VERSION,
        }

    def _repo_url(self, owner: str, repo: str) -> str:
        return f'{self._base_url}/repos/{owner}/{repo}'

    @asynccontextmanager
    async def _client(self) -> AsyncGenerator[httpx.AsyncClient]:
        async with http_client(
            pool_size=self._pool_size,
            timeout=self._timeout,
            headers=self._headers(),
        ) as client:
            yield client

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,  # noqa: ANN401 - forwarded to httpx
    ) -> httpx.Response:
        """Issue one request; transport failures and 401 abort immediately."""
        try:
            response = await request_with_retry(
                client,
                method,
                url,
                max_retries=self._max_retries,
                backoff_base=self._retry_backoff,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise ForgeError(
                E.FORGE_UNREACHABLE,
                f'{method} {url} failed: {exc}',
                status=0,
                hint='Check network connectivity and the configured github_base_url.',
            ) from exc
        log.debug('github_request', method=method, url=url, status=response.status_code)
        if response.status_code == 401:
            _raise_for_status(response, f'{method} {url}')
        return response

    async def _paginate(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        params: dict[str, Any] | None = None,  # noqa: ANN401
        max_pages: int,
    ) -> tuple[list[dict[str, Any]], bool]:  # noqa: ANN401
        """Collect up to *max_pages* pages; the flag reports a truncated walk."""
        items: list[dict[str, Any]] = []  # noqa: ANN401
        for page in range(1, max_pages + 1):
            response = await self._send(
                client, 'GET', url, params={**(params or {}), 'per_page': _PAGE_SIZE, 'page': page}
            )
            if response.status_code in (404, 409):
                return items, False
            _raise_for_status(response, f'GET {url}')
            data = response.json()
            if not data:
                return items, False
            items.extend(data)
            if len(data) < _PAGE_SIZE:
                return items, False
        return items, True

    # Repository discovery

    async def list_accessible_repositories(self) -> list[RepositoryInfo]:
        """Return every repository the caller can push to."""
        url = f'{self._base_url}/user/repos'
        async with self._client() as client:
            items, truncated = await self._paginate(
                client,
                url,
                params={'affiliation': 'owner,collaborator,organization_member', 'sort': 'updated'},
                max_pages=self._max_repository_pages,
            )
        if truncated:
            log.warning(
                'repository_page_limit_reached',
                pages=self._max_repository_pages,
                repositories=len(items),
                hint='Raise max_repository_pages in releasehelper.toml to see more repositories.',
            )

        repos: dict[str, RepositoryInfo] = {}
        for item in items:
            owner = item.get('owner') or {}
            info = RepositoryInfo(
                owner=owner.get('login', ''),
                name=item.get('name', ''),
                url=item.get('html_url', ''),
                default_branch=item.get('default_branch', 'main'),
                is_organization=owner.get('type') == 'Organization',
                can_push=bool((item.get('permissions') or {'push': True}).get('push', False)),
            )
            if not info.can_push or item.get('archived'):
                continue
            if self._organizations_only and not info.is_organization:
                continue
            repos.setdefault(info.full_name.lower(), info)

        log.info('repositories_discovered', count=len(repos), organizations_only=self._organizations_only)
        return list(repos.values())

    async def list_release_files(self, owner: str, repo: str, branch: str) -> list[GitHubReleaseFile]:
        """List ``releases/*.md`` on *branch*; absent directory or branch is ``[]``."""
        url = f'{self._repo_url(owner, repo)}/contents/{_quote_path(self._releases_dir)}'
        async with self._client() as client:
            response = await self._send(client, 'GET', url, params={'ref': branch})
        if response.status_code == 404:
            return []
        _raise_for_status(response, f'list {self._releases_dir} on {owner}/{repo}@{branch}')
        data = response.json()
        if not isinstance(data, list):
            return []
        return [
            GitHubReleaseFile(
                repo=f'{owner}/{repo}',
                name=item.get('name', ''),
                path=item.get('path', ''),
                sha=item.get('sha', ''),
                branch=branch,
            )
            for item in data
            if item.get('type') == 'file' and str(item.get('name', '')).lower().endswith('.md')
        ]

    # File contents

    async def _get_contents(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        path: str,
        ref: str,
    ) -> dict[str, Any] | None:  # noqa: ANN401
        url = f'{self._repo_url(owner, repo)}/contents/{_quote_path(path)}'
        response = await self._send(client, 'GET', url, params={'ref': ref})
        if response.status_code == 404:
            return None
        _raise_for_status(response, f'read {path} on {owner}/{repo}@{ref}')
        data = response.json()
        if not isinstance(data, dict) or data.get('type', 'file') != 'file':
            return None
        return data

    async def _decode_contents(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        data: dict[str, Any],  # noqa: ANN401
    ) -> str:
        content = data.get('content') or ''
        if content and data.get('encoding', 'base64') == 'base64':
            return _decode_base64(content)
        if not data.get('size'):
            return ''
        # Files over 1 MB come back without a body; read the blob instead.
        url = f'{self._repo_url(owner, repo)}/git/blobs/{data["sha"]}'
        response = await self._send(client, 'GET', url)
        _raise_for_status(response, f'read blob {data["sha"]} on {owner}/{repo}')
        log.debug('large_file_blob_fallback', repo=f'{owner}/{repo}', path=data.get('path'), size=data.get('size'))
        return _decode_base64(response.json().get('content', ''))

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        """Return the decoded text of *path* at *ref*, or None if absent."""
        async with self._client() as client:
            data = await self._get_contents(client, owner, repo, path, ref)
            if data is None:
                return None
            return await self._decode_contents(client, owner, repo, data)

    async def get_file_sha(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        """Return the blob SHA of *path* at *ref*, or None if absent."""
        async with self._client() as client:
            data = await self._get_contents(client, owner, repo, path, ref)
        return data.get('sha') if data else None

    @staticmethod
    def _is_sha_conflict(response: httpx.Response) -> bool:
        if response.status_code == 409:
            return True
        return response.status_code == 422 and 'sha' in _error_text(response).lower()

    async def create_or_update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        *,
        message: str,
        branch: str,
    ) -> FileWriteResult:
        """Upsert one file, skipping the write when the content is unchanged.

        The current SHA is re-read before every attempt, so a conflict
        retry always targets the latest version.

        Raises:
            ForgeError: ``RH-SHA-CONFLICT`` once conflict retries run out.
        """
        url = f'{self._repo_url(owner, repo)}/contents/{_quote_path(path)}'
        async with self._client() as client:
            for attempt in self._sha_policy.attempts():
                existing = await self._get_contents(client, owner, repo, path, branch)
                if existing is not None:
                    current = await self._decode_contents(client, owner, repo, existing)
                    if current == content:
                        log.debug('file_unchanged', repo=f'{owner}/{repo}', path=path, branch=branch)
                        return FileWriteResult(path=path, sha=existing.get('sha', ''), changed=False)

                payload: dict[str, Any] = {  # noqa: ANN401
                    'message': message,
                    'content': _encode_base64(content),
                    'branch': branch,
                }
                if existing is not None:
                    payload['sha'] = existing.get('sha')

                response = await self._send(client, 'PUT', url, json=payload)
                if response.is_success:
                    data = response.json()
                    log.info('file_written', repo=f'{owner}/{repo}', path=path, branch=branch)
                    return FileWriteResult(
                        path=path,
                        sha=(data.get('content') or {}).get('sha', ''),
                        commit_sha=(data.get('commit') or {}).get('sha', ''),
                    )
                if not self._is_sha_conflict(response):
                    _raise_for_status(response, f'write {path} on {owner}/{repo}@{branch}')
                if attempt < self._sha_policy.max_attempts:
                    log.warning(
                        'sha_conflict_retry',
                        repo=f'{owner}/{repo}',
                        path=path,
                        attempt=attempt + 1,
                        delay=self._sha_policy.delay(attempt + 1),
                    )
                    await self._sha_policy.wait(attempt + 1)

        raise ForgeError(
            E.SHA_CONFLICT,
            f'{path} on {owner}/{repo}@{branch} kept changing after {self._sha_policy.max_attempts} retries.',
            status=response.status_code,
            hint='Someone else is editing the same file. Sync and try again.',
        )

    async def delete_file(self, owner: str, repo: str, path: str, *, message: str, branch: str) -> bool:
        """Delete one file; False when it did not exist."""
        url = f'{self._repo_url(owner, repo)}/contents/{_quote_path(path)}'
        async with self._client() as client:
            existing = await self._get_contents(client, owner, repo, path, branch)
            if existing is None:
                return False
            response = await self._send(
                client,
                'DELETE',
                url,
                json={'message': message, 'sha': existing.get('sha'), 'branch': branch},
            )
        _raise_for_status(response, f'delete {path} on {owner}/{repo}@{branch}')
        log.info('file_deleted', repo=f'{owner}/{repo}', path=path, branch=branch)
        return True

    # Branches

    async def _get_ref(self, client: httpx.AsyncClient, owner: str, repo: str, branch: str) -> str | None:
        url = f'{self._repo_url(owner, repo)}/git/ref/heads/{_quote_path(branch)}'
        response = await self._send(client, 'GET', url)
        if response.status_code in (404, 409):
            return None
        _raise_for_status(response, f'read ref {branch} on {owner}/{repo}')
        data = response.json()
        # A prefix match returns a list of refs; treat it as absent.
        if not isinstance(data, dict):
            return None
        return (data.get('object') or {}).get('sha')

    async def get_default_branch(self, owner: str, repo: str) -> str:
        """Return the repository default branch."""
        async with self._client() as client:
            response = await self._send(client, 'GET', self._repo_url(owner, repo))
        _raise_for_status(response, f'read repository {owner}/{repo}')
        return response.json().get('default_branch', 'main')

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str | None:
        """Return the head commit of *branch*, or None if it does not exist."""
        async with self._client() as client:
            return await self._get_ref(client, owner, repo, branch)

    async def find_base_branch(self, owner: str, repo: str, candidates: Sequence[str]) -> str | None:
        """Return the first existing candidate, else the default branch, else None."""
        async with self._client() as client:
            for candidate in candidates:
                if await self._get_ref(client, owner, repo, candidate):
                    return candidate
        default = await self.get_default_branch(owner, repo)
        if default in candidates:
            return None
        async with self._client() as client:
            if await self._get_ref(client, owner, repo, default):
                log.debug('base_branch_default_fallback', repo=f'{owner}/{repo}', branch=default)
                return default
        return None

    async def create_branch(self, owner: str, repo: str, name: str, base_candidates: Sequence[str]) -> BranchInfo:
        """Create *name* from the first viable base; existing branches are success.

        Raises:
            ForgeError: ``RH-BRANCH-BASE-NOT-FOUND`` when no base exists.
        """
        base = await self.find_base_branch(owner, repo, base_candidates)
        async with self._client() as client:
            existing = await self._get_ref(client, owner, repo, name)
            if existing:
                return BranchInfo(name=name, sha=existing, base=base or '', created=False)
            if base is None:
                raise ForgeError(
                    E.BRANCH_BASE_NOT_FOUND,
                    f'None of {list(base_candidates)} or the default branch exist in {owner}/{repo}.',
                    status=404,
                )
            base_sha = await self._get_ref(client, owner, repo, base)
            if base_sha is None:
                raise ForgeError(E.BRANCH_BASE_NOT_FOUND, f'{base} vanished from {owner}/{repo}.', status=404)

            response = await self._send(
                client,
                'POST',
                f'{self._repo_url(owner, repo)}/git/refs',
                json={'ref': f'refs/heads/{name}', 'sha': base_sha},
            )
            if response.status_code == 422 and 'already exists' in _error_text(response).lower():
                sha = await self._get_ref(client, owner, repo, name)
                return BranchInfo(name=name, sha=sha or base_sha, base=base, created=False)
            _raise_for_status(response, f'create branch {name} on {owner}/{repo}')

        log.info('branch_created', repo=f'{owner}/{repo}', branch=name, base=base)
        return BranchInfo(name=name, sha=base_sha, base=base, created=True)

    async def delete_branch(self, owner: str, repo: str, name: str) -> bool:
        """Delete *name*; False when it did not exist."""
        url = f'{self._repo_url(owner, repo)}/git/refs/heads/{_quote_path(name)}'
        async with self._client() as client:
            response = await self._send(client, 'DELETE', url)
        if response.status_code in (404, 422):
            return False
        _raise_for_status(response, f'delete branch {name} on {owner}/{repo}')
        log.info('branch_deleted', repo=f'{owner}/{repo}', branch=name)
        return True

    async def get_branch_protection(self, owner: str, repo: str, branch: str) -> dict[str, Any] | None:  # noqa: ANN401
        """Return protection settings, or None when unprotected or not visible."""
        url = f'{self._repo_url(owner, repo)}/branches/{_quote_path(branch)}/protection'
        async with self._client() as client:
            response = await self._send(client, 'GET', url)
        if response.status_code in (403, 404):
            return None
        _raise_for_status(response, f'read protection of {branch} on {owner}/{repo}')
        return response.json()

    # Git Data API

    async def _create_blob(self, client: httpx.AsyncClient, owner: str, repo: str, content: str) -> str:
        response = await self._send(
            client,
            'POST',
            f'{self._repo_url(owner, repo)}/git/blobs',
            json={'content': _encode_base64(content), 'encoding': 'base64'},
        )
        _raise_for_status(response, f'create blob on {owner}/{repo}')
        return response.json()['sha']

    async def create_commit_with_files(
        self,
        owner: str,
        repo: str,
        branch: str,
        message: str,
        files: Sequence[FileChange],
    ) -> CommitResult:
        """Write every change in *files* as one commit on *branch*.

        Raises:
            ForgeError: ``RH-REF-MOVED`` when *branch* advanced during the
                build; nothing is forced.
        """
        if not files:
            raise ForgeError(E.FORGE_UNPROCESSABLE, 'An atomic commit needs at least one file.', status=422)
        repo_url = self._repo_url(owner, repo)
        async with self._client() as client:
            head_sha = await self._get_ref(client, owner, repo, branch)
            if head_sha is None:
                raise ForgeError(E.FORGE_NOT_FOUND, f'Branch {branch} does not exist in {owner}/{repo}.', status=404)

            response = await self._send(client, 'GET', f'{repo_url}/git/commits/{head_sha}')
            _raise_for_status(response, f'read commit {head_sha} on {owner}/{repo}')
            base_tree = response.json()['tree']['sha']

            writes = [change for change in files if not change.is_delete]
            blob_shas = await asyncio.gather(
                *(self._create_blob(client, owner, repo, change.content or '') for change in writes)
            )
            blobs = dict(zip((change.path for change in writes), blob_shas, strict=True))
            tree = [
                {'path': change.path, 'mode': '100644', 'type': 'blob', 'sha': blobs.get(change.path)}
                for change in files
            ]

            response = await self._send(
                client, 'POST', f'{repo_url}/git/trees', json={'base_tree': base_tree, 'tree': tree}
            )
            _raise_for_status(response, f'create tree on {owner}/{repo}')
            tree_sha = response.json()['sha']

            response = await self._send(
                client,
                'POST',
                f'{repo_url}/git/commits',
                json={'message': message, 'tree': tree_sha, 'parents': [head_sha]},
            )
            _raise_for_status(response, f'create commit on {owner}/{repo}')
            commit_sha = response.json()['sha']

            current = await self._get_ref(client, owner, repo, branch)
            if current != head_sha:
                raise ForgeError(
                    E.REF_MOVED,
                    f'{branch} on {owner}/{repo} moved from {head_sha[:7]} while the commit was built.',
                    status=409,
                )

            response = await self._send(
                client,
                'PATCH',
                f'{repo_url}/git/refs/heads/{_quote_path(branch)}',
                json={'sha': commit_sha, 'force': False},
            )
            if response.status_code == 422:
                raise ForgeError(
                    E.REF_MOVED,
                    f'{branch} on {owner}/{repo} is no longer a fast-forward of {head_sha[:7]}.',
                    status=422,
                )
            _raise_for_status(response, f'update ref {branch} on {owner}/{repo}')

        log.info('atomic_commit_created', repo=f'{owner}/{repo}', branch=branch, sha=commit_sha, files=len(files))
        return CommitResult(sha=commit_sha, tree_sha=tree_sha, branch=branch, files=len(files))

    # Pull Requests

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        *,
        title: str,
        head: str,
        base: str,
        body: str = '',
    ) -> PullRequestInfo:
        """Open a Pull Request.

        Raises:
            ForgeError: ``RH-PR-ALREADY-EXISTS`` or ``RH-PR-NO-DIFF``.
        """
        async with self._client() as client:
            response = await self._send(
                client,
                'POST',
                f'{self._repo_url(owner, repo)}/pulls',
                json={'title': title, 'head': head, 'base': base, 'body': body},
            )
        if response.status_code == 422:
            text = _error_text(response).lower()
            if 'already exists' in text:
                raise ForgeError(
                    E.PR_ALREADY_EXISTS,
                    f'A Pull Request from {head} to {base} is already open on {owner}/{repo}.',
                    status=422,
                )
            if 'no commits between' in text:
                raise ForgeError(
                    E.PR_NO_DIFF,
                    f'{head} has no commits ahead of {base} on {owner}/{repo}.',
                    status=422,
                    hint='The commit was probably not written. Check the branch on GitHub and version again.',
                )
        _raise_for_status(response, f'open Pull Request on {owner}/{repo}')
        pr = _pull_request_info(response.json())
        log.info('pull_request_created', repo=f'{owner}/{repo}', number=pr.number, head=head, base=base)
        return pr

    async def list_pull_requests(
        self,
        owner: str,
        repo: str,
        *,
        state: str = 'open',
        base: str | None = None,
        head: str | None = None,
    ) -> list[PullRequestInfo]:
        """List Pull Requests, optionally filtered by base and head branch."""
        params: dict[str, str] = {'state': state}
        if base:
            params['base'] = base
        if head:
            # GitHub expects head in "owner:branch" format.
            params['head'] = f'{owner}:{head}'
        async with self._client() as client:
            items, _ = await self._paginate(
                client,
                f'{self._repo_url(owner, repo)}/pulls',
                params=params,
                max_pages=self._max_repository_pages,
            )
        return [_pull_request_info(item) for item in items]

    async def compare_branches(self, owner: str, repo: str, base: str, head: str) -> int:
        """Return how many commits *head* is ahead of *base* (0 if either is missing)."""
        url = f'{self._repo_url(owner, repo)}/compare/{quote(base, safe="")}...{quote(head, safe="")}'
        async with self._client() as client:
            response = await self._send(client, 'GET', url)
        if response.status_code == 404:
            return 0
        _raise_for_status(response, f'compare {base}...{head} on {owner}/{repo}')
        return int(response.json().get('ahead_by', 0))

    # Commit history

    async def list_commits(
        self,
        owner: str,
        repo: str,
        *,
        path: str | None = None,
        ref: str | None = None,
        per_page: int = 30,
        page: int = 1,
    ) -> list[CommitInfo]:
        """Return one page of commit history, newest first."""
        params: dict[str, Any] = {'per_page': per_page, 'page': page}  # noqa: ANN401
        if path:
            params['path'] = path
        if ref:
            params['sha'] = ref
        async with self._client() as client:
            response = await self._send(client, 'GET', f'{self._repo_url(owner, repo)}/commits', params=params)
        # 409 is an empty repository.
        if response.status_code in (404, 409):
            return []
        _raise_for_status(response, f'list commits on {owner}/{repo}')
        return [_commit_info(item) for item in response.json()]

    async def get_file_last_commit(self, owner: str, repo: str, path: str, ref: str) -> CommitInfo | None:
        """Return the most recent commit touching *path* on *ref*."""
        commits = await self.list_commits(owner, repo, path=path, ref=ref, per_page=1)
        return commits[0] if commits else None

    async def get_file_first_commit(self, owner: str, repo: str, path: str, ref: str) -> CommitInfo | None:
        """Return the oldest commit touching *path* on *ref*, within the page cap."""
        async with self._client() as client:
            items, truncated = await self._paginate(
                client,
                f'{self._repo_url(owner, repo)}/commits',
                params={'path': path, 'sha': ref},
                max_pages=self._max_commit_pages,
            )
        if truncated:
            log.warning('commit_page_limit_reached', repo=f'{owner}/{repo}', path=path, pages=self._max_commit_pages)
        return _commit_info(items[-1]) if items else None


__all__ = [
    'GitHubAPIBackend',
]
