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

"""Repository URL parsing and file-layout conventions.

Layout inside every linked repository::

    releases/release_<demandId>.md     the release document
    scripts/<demandId>/<scriptName>    one file per script

Both directory names come from :class:`~releasehelper.config.HelperConfig`.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from releasehelper.errors import E, ReleaseHelperError

# scheme, user@, host, :port, then owner/repo; ssh form uses ``host:owner/repo``.
_REPO_URL_RE = re.compile(
    r'^(?:[a-z][a-z0-9+.-]*://)?(?:[^@/\s]+@)?([^/:\s]+(?::\d+)?)[/:]([^/\s]+)/([^/\s]+?)(?:\.git)?/?$',
    re.IGNORECASE,
)
_RELEASE_FILE_RE = re.compile(r'^release_(.+)\.md$', re.IGNORECASE)

DEFAULT_WEB_HOST = 'github.com'


class RepoRef(NamedTuple):
    """Owner and name of a GitHub repository, and the host serving it."""

    owner: str
    repo: str
    host: str = DEFAULT_WEB_HOST

    @property
    def full_name(self) -> str:
        """``owner/repo``."""
        return f'{self.owner}/{self.repo}'

    @property
    def url(self) -> str:
        """Canonical web URL."""
        return f'https://{self.host}/{self.owner}/{self.repo}'


def _same_host(found: str, expected: str) -> bool:
    found = found.lower().removeprefix('www.')
    return found == expected.lower().removeprefix('www.')


def parse_repository_url(url: str, host: str | None = DEFAULT_WEB_HOST) -> RepoRef:
    """Split a repository URL (https or ssh form) into owner and repository.

    Args:
        url: Repository URL as typed by a user or stored in a release.
        host: Web host the URL must point at (``github.com`` or a GitHub
            Enterprise host). None accepts any host.

    Raises:
        ReleaseHelperError: ``RH-INVALID-REPOSITORY-URL`` for anything
            that is not a repository URL on *host*.
    """
    match = _REPO_URL_RE.match(url.strip())
    if not match or (host is not None and not _same_host(match.group(1), host)):
        expected = host or DEFAULT_WEB_HOST
        raise ReleaseHelperError(
            code=E.INVALID_REPOSITORY_URL,
            message=f'Not a repository URL on {expected}: {url!r}',
            hint=f'Use the form https://{expected}/<owner>/<repo>.',
        )
    return RepoRef(match.group(2), match.group(3), host or match.group(1).lower())


def repo_name_from_url(url: str) -> str:
    """Return the repository name of *url*, or the URL itself if unparseable."""
    try:
        return parse_repository_url(url, host=None).repo
    except ReleaseHelperError:
        return url.strip()


def normalize_repo_url(url: str) -> str:
    """Case-folded ``owner/repo`` key used to deduplicate repository entries."""
    try:
        return parse_repository_url(url, host=None).full_name.lower()
    except ReleaseHelperError:
        return url.strip().rstrip('/').lower()


def release_filename(demand_id: str) -> str:
    """``release_<demandId>.md``."""
    return f'release_{demand_id}.md'


def release_path(demand_id: str, releases_dir: str = 'releases') -> str:
    """Repository path of the release document for *demand_id*."""
    return f'{releases_dir}/{release_filename(demand_id)}'


def script_path(demand_id: str, name: str, scripts_dir: str = 'scripts') -> str:
    """Repository path of script *name* for *demand_id*."""
    return f'{scripts_dir}/{demand_id}/{name}'


def demand_id_from_filename(filename: str) -> str | None:
    """Extract the demand id from ``release_<demandId>.md``, else None."""
    match = _RELEASE_FILE_RE.match(filename.rsplit('/', 1)[-1])
    return match.group(1) if match else None


__all__ = [
    'DEFAULT_WEB_HOST',
    'RepoRef',
    'demand_id_from_filename',
    'normalize_repo_url',
    'parse_repository_url',
    'release_filename',
    'release_path',
    'repo_name_from_url',
    'script_path',
]
