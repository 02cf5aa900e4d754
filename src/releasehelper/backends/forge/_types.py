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

"""Value types returned by Git provider backends."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RepositoryInfo:
    """A repository the caller can see.

    Attributes:
        owner: Owner login.
        name: Repository name.
        url: Web URL (``https://github.com/<owner>/<name>``).
        default_branch: The repository default branch.
        is_organization: Whether the owner is an organization.
        can_push: Whether the caller may write to it.
    """

    owner: str
    name: str
    url: str = ''
    default_branch: str = 'main'
    is_organization: bool = False
    can_push: bool = True

    @property
    def full_name(self) -> str:
        """``owner/name``."""
        return f'{self.owner}/{self.name}'


@dataclass(frozen=True)
class BranchInfo:
    """Outcome of an idempotent branch creation.

    Attributes:
        name: Branch name.
        sha: Commit the branch points at.
        base: Branch it was created from (or would have been).
        created: False when the branch already existed.
    """

    name: str
    sha: str
    base: str
    created: bool


@dataclass(frozen=True)
class FileChange:
    """One file in an atomic commit.

    Attributes:
        path: Repository path.
        content: New UTF-8 content, or None to delete the file.
    """

    path: str
    content: str | None

    @property
    def is_delete(self) -> bool:
        """Whether this change removes the file."""
        return self.content is None


@dataclass(frozen=True)
class FileWriteResult:
    """Outcome of a single-file upsert.

    Attributes:
        path: Repository path.
        sha: Blob SHA after the call.
        commit_sha: Commit created, empty when nothing was written.
        changed: False when the content was already identical.
    """

    path: str
    sha: str
    commit_sha: str = ''
    changed: bool = True


@dataclass(frozen=True)
class CommitResult:
    """Outcome of an atomic multi-file commit.

    Attributes:
        sha: The new commit.
        tree_sha: Tree the commit points at.
        branch: Branch whose ref was advanced.
        files: Number of files in the commit.
    """

    sha: str
    tree_sha: str
    branch: str
    files: int


@dataclass(frozen=True)
class CommitInfo:
    """A commit from history queries."""

    sha: str
    author: str = ''
    date: datetime | None = None
    message: str = ''
    url: str = ''


@dataclass(frozen=True)
class PullRequestInfo:
    """A Pull Request."""

    number: int
    url: str
    title: str = ''
    head: str = ''
    base: str = ''
    state: str = 'open'


__all__ = [
    'BranchInfo',
    'CommitInfo',
    'CommitResult',
    'FileChange',
    'FileWriteResult',
    'PullRequestInfo',
    'RepositoryInfo',
]
