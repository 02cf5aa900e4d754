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

"""Git provider protocol for releasehelper.

The :class:`GitProvider` protocol is the async interface the sync and
versioning engines drive. Implementations:

- :class:`~releasehelper.backends.forge.github_api.GitHubAPIBackend`: GitHub REST + Git Data API

Outcome conventions shared by every implementation:

- Absence is a value, not an error: missing files and branches come back
  as ``None`` (or an empty list).
- Every other failure is a :class:`~releasehelper.errors.ForgeError`
  carrying an HTTP-like ``status``; ``0`` means the host was unreachable.
- Optimistic-concurrency conflicts have dedicated codes
  (``RH-SHA-CONFLICT``, ``RH-REF-MOVED``, ``RH-PR-ALREADY-EXISTS``,
  ``RH-PR-NO-DIFF``) so callers can react to them specifically.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from releasehelper.backends.forge._types import (
    BranchInfo,
    CommitInfo,
    CommitResult,
    FileChange,
    FileWriteResult,
    PullRequestInfo,
    RepositoryInfo,
)
from releasehelper.backends.forge.github_api import GitHubAPIBackend as GitHubAPIBackend
from releasehelper.models import GitHubReleaseFile

__all__ = [
    'BranchInfo',
    'CommitInfo',
    'CommitResult',
    'FileChange',
    'FileWriteResult',
    'GitHubAPIBackend',
    'GitProvider',
    'PullRequestInfo',
    'RepositoryInfo',
]


@runtime_checkable
class GitProvider(Protocol):
    """Protocol for Git hosting operations used by the engines."""

    async def list_accessible_repositories(self) -> list[RepositoryInfo]:
        """Return every repository the caller can push to.

        Pagination is transparent and capped; hitting the cap logs a
        warning instead of looping forever.
        """
        ...

    async def list_release_files(self, owner: str, repo: str, branch: str) -> list[GitHubReleaseFile]:
        """List release documents on *branch*; a missing directory or branch is ``[]``."""
        ...

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        """Return the decoded text of *path* at *ref*, or None if absent."""
        ...

    async def get_file_sha(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        """Return the blob SHA of *path* at *ref*, or None if absent."""
        ...

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

        Raises:
            ForgeError: ``RH-SHA-CONFLICT`` once conflict retries run out.
        """
        ...

    async def delete_file(self, owner: str, repo: str, path: str, *, message: str, branch: str) -> bool:
        """Delete one file; False when it did not exist."""
        ...

    async def get_default_branch(self, owner: str, repo: str) -> str:
        """Return the repository default branch."""
        ...

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str | None:
        """Return the head commit of *branch*, or None if it does not exist."""
        ...

    async def find_base_branch(self, owner: str, repo: str, candidates: Sequence[str]) -> str | None:
        """Return the first existing candidate, else the default branch, else None."""
        ...

    async def create_branch(self, owner: str, repo: str, name: str, base_candidates: Sequence[str]) -> BranchInfo:
        """Create *name* from the first viable base; existing branches are success.

        Raises:
            ForgeError: ``RH-BRANCH-BASE-NOT-FOUND`` when no base exists.
        """
        ...

    async def delete_branch(self, owner: str, repo: str, name: str) -> bool:
        """Delete *name*; False when it did not exist."""
        ...

    async def get_branch_protection(self, owner: str, repo: str, branch: str) -> dict[str, Any] | None:
        """Return protection settings, or None when unprotected or not visible."""
        ...

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
        ...

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
        ...

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
        ...

    async def compare_branches(self, owner: str, repo: str, base: str, head: str) -> int:
        """Return how many commits *head* is ahead of *base* (0 if either is missing)."""
        ...

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
        ...

    async def get_file_last_commit(self, owner: str, repo: str, path: str, ref: str) -> CommitInfo | None:
        """Return the most recent commit touching *path* on *ref*."""
        ...

    async def get_file_first_commit(self, owner: str, repo: str, path: str, ref: str) -> CommitInfo | None:
        """Return the oldest commit touching *path* on *ref*, within the page cap."""
        ...
