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

"""Configuration reader for releasehelper.

Reads ``releasehelper.toml`` from a project root and returns a validated
:class:`HelperConfig` dataclass. Every key is optional; a missing file
yields the defaults, which match the branch and path conventions the
release documents have always used.

Validation Pipeline::

    releasehelper.toml
    ┌──────────────────────┐
    │ working_brnach = ... │  ← typo!
    └──────────┬───────────┘
               │
               ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 1. Unknown key   │────→│ RH-CONFIG-INVALID-KEY:       │
    │    detection     │     │ hint: "Did you mean          │
    └────────┬─────────┘     │       'working_branch'?"     │
             │               └──────────────────────────────┘
             ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 2. Type check    │────→│ RH-CONFIG-INVALID-VALUE:     │
    │    each value    │     │ Expected int, got str        │
    └────────┬─────────┘     └──────────────────────────────┘
             │
             ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 3. Value check   │────→│ RH-CONFIG-INVALID-VALUE:     │
    │    (enums, etc.) │     │ store must be "local" or     │
    └────────┬─────────┘     │ "remote"                     │
             │               └──────────────────────────────┘
             ▼
    ┌──────────────────┐
    │ HelperConfig()   │  ← frozen dataclass, ready to use
    └──────────────────┘

Supported keys in ``releasehelper.toml``::

    github_base_url        = "https://api.github.com"
    github_web_url         = ""               # derived from github_base_url when empty
    working_branch         = "feature/upsert-release"
    base_branches          = ["develop", "main", "master"]
    removal_branch_prefix  = "feature/remove-release"
    releases_dir           = "releases"
    scripts_dir            = "scripts"
    organizations_only     = false
    max_repository_pages   = 50
    max_commit_pages       = 10
    http_pool_size         = 10
    http_timeout           = 30.0
    sha_conflict_retries   = 2
    ref_update_retries     = 3
    retry_backoff          = 0.5
    prune_error_ratio      = 0.5
    store                  = "local"          # "local" or "remote"
    store_path             = ".releasehelper/releases.json"
    store_url              = ""               # required for store = "remote"

Usage::

    from releasehelper.config import load_config

    cfg = load_config(Path('/path/to/project'))
    print(cfg.working_branch)  # "feature/upsert-release"
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import tomlkit
import tomlkit.exceptions

from releasehelper.errors import E, ReleaseHelperError
from releasehelper.logging import get_logger
from releasehelper.net import BackoffPolicy

logger = get_logger(__name__)

# The config file name at the project root.
CONFIG_FILENAME = 'releasehelper.toml'

# All recognized top-level keys in releasehelper.toml.
VALID_KEYS: frozenset[str] = frozenset({
    'base_branches',
    'github_base_url',
    'github_web_url',
    'http_pool_size',
    'http_timeout',
    'max_commit_pages',
    'max_repository_pages',
    'organizations_only',
    'prune_error_ratio',
    'ref_update_retries',
    'releases_dir',
    'removal_branch_prefix',
    'retry_backoff',
    'scripts_dir',
    'sha_conflict_retries',
    'store',
    'store_path',
    'store_url',
    'working_branch',
})

# Allowed values for enum-like config fields.
ALLOWED_STORES: frozenset[str] = frozenset({'local', 'remote'})


@dataclass(frozen=True)
class HelperConfig:
    """Validated configuration shared by the provider, store and engines.

    Attributes:
        github_base_url: Root of the GitHub REST API.
        github_web_url: Web root that repository URLs point at. Empty
            derives it from github_base_url (``github.com`` for the public
            API, the API host without ``/api/v3`` for GitHub Enterprise).
        working_branch: Branch that carries unpublished release edits.
        base_branches: Base branch candidates in preference order. The
            repository default branch is always tried last.
        removal_branch_prefix: Prefix of the branch opened to delete a
            release; the demand id is appended.
        releases_dir: Repository directory holding release documents.
        scripts_dir: Repository directory holding per-demand scripts.
        organizations_only: Only discover organization-owned repositories.
        max_repository_pages: Page ceiling for repository discovery.
        max_commit_pages: Page ceiling for first-commit lookup.
        http_pool_size: Max connections for the httpx connection pool.
        http_timeout: Per-request timeout in seconds.
        sha_conflict_retries: Retries for single-file SHA conflicts.
        ref_update_retries: Retries when the branch ref moved mid-commit.
        retry_backoff: Base delay (seconds) of the linear retry backoff.
        prune_error_ratio: Share of failed operations above which a sync
            pass skips pruning.
        store: ``"local"`` or ``"remote"``.
        store_path: JSON file for the local store, relative to the
            project root.
        store_url: Base URL of the remote document store.
        config_path: Path to the releasehelper.toml that was loaded.
    """

    github_base_url: str = 'https://api.github.com'
    github_web_url: str = ''
    working_branch: str = 'feature/upsert-release'
    base_branches: list[str] = field(default_factory=lambda: ['develop', 'main', 'master'])
    removal_branch_prefix: str = 'feature/remove-release'
    releases_dir: str = 'releases'
    scripts_dir: str = 'scripts'
    organizations_only: bool = False
    max_repository_pages: int = 50
    max_commit_pages: int = 10
    http_pool_size: int = 10
    http_timeout: float = 30.0
    sha_conflict_retries: int = 2
    ref_update_retries: int = 3
    retry_backoff: float = 0.5
    prune_error_ratio: float = 0.5
    store: str = 'local'
    store_path: str = '.releasehelper/releases.json'
    store_url: str = ''
    config_path: Path | None = None

    @property
    def base_branch(self) -> str:
        """The preferred base branch (``develop`` by default)."""
        return self.base_branches[0] if self.base_branches else 'develop'

    @property
    def web_url(self) -> str:
        """Web root of the GitHub instance behind :attr:`github_base_url`."""
        if self.github_web_url:
            return self.github_web_url
        parts = urlsplit(self.github_base_url)
        if parts.netloc.lower() == 'api.github.com':
            return 'https://github.com'
        path = parts.path.rstrip('/').removesuffix('/api/v3')
        return f'{parts.scheme or "https"}://{parts.netloc}{path}'

    @property
    def web_host(self) -> str:
        """Host (with port, if any) that repository URLs must point at."""
        return urlsplit(self.web_url).netloc.lower()

    @property
    def sha_conflict_policy(self) -> BackoffPolicy:
        """Retry schedule for single-file SHA conflicts."""
        return BackoffPolicy(max_attempts=self.sha_conflict_retries, base_delay=self.retry_backoff)

    @property
    def ref_update_policy(self) -> BackoffPolicy:
        """Retry schedule for atomic commits whose branch ref moved."""
        return BackoffPolicy(max_attempts=self.ref_update_retries, base_delay=self.retry_backoff)

    def resolved_store_path(self) -> Path:
        """Return :attr:`store_path` anchored at the config file's directory."""
        path = Path(self.store_path)
        if path.is_absolute() or self.config_path is None:
            return path
        return self.config_path.parent / path


def _suggest_key(unknown: str) -> str | None:
    """Return the closest valid key for a typo, or None."""
    matches = difflib.get_close_matches(unknown, VALID_KEYS, n=1, cutoff=0.6)
    return matches[0] if matches else None


_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'base_branches': list,
    'github_base_url': str,
    'github_web_url': str,
    'http_pool_size': int,
    'http_timeout': (int, float),
    'max_commit_pages': int,
    'max_repository_pages': int,
    'organizations_only': bool,
    'prune_error_ratio': (int, float),
    'ref_update_retries': int,
    'releases_dir': str,
    'removal_branch_prefix': str,
    'retry_backoff': (int, float),
    'scripts_dir': str,
    'sha_conflict_retries': int,
    'store': str,
    'store_path': str,
    'store_url': str,
    'working_branch': str,
}

_NON_NEGATIVE_KEYS = ('sha_conflict_retries', 'ref_update_retries', 'retry_backoff')
_POSITIVE_KEYS = ('max_repository_pages', 'max_commit_pages', 'http_pool_size', 'http_timeout')


def _validate_value_type(
    key: str,
    value: Any,  # noqa: ANN401 - dynamic config values
    *,
    context: str = CONFIG_FILENAME,
) -> None:
    """Raise if a config value has the wrong type."""
    expected = _TYPE_MAP.get(key)
    if expected is None:
        return
    # bool is an int subclass; only accept it where bool is expected.
    wrong_bool = isinstance(value, bool) and expected is not bool
    if wrong_bool or not isinstance(value, expected):
        type_name = expected.__name__ if isinstance(expected, type) else 'number'
        raise ReleaseHelperError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'{key}' must be {type_name}, got {type(value).__name__}",
            hint=f'Check the value of {key} in {context}.',
        )


def _validate_store(raw: dict[str, Any]) -> None:  # noqa: ANN401 - dynamic config
    """Raise if the store selection is unknown or incomplete."""
    store = raw.get('store', 'local')
    if store not in ALLOWED_STORES:
        raise ReleaseHelperError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"store must be one of {sorted(ALLOWED_STORES)}, got '{store}'",
            hint="Use 'local' for a JSON file next to the project, 'remote' for a shared document store.",
        )
    if store == 'remote' and not raw.get('store_url'):
        raise ReleaseHelperError(
            code=E.CONFIG_INVALID_VALUE,
            message="store_url is required when store = 'remote'",
            hint='Set store_url to the base URL of the document store.',
        )


def _validate_ranges(raw: dict[str, Any]) -> None:  # noqa: ANN401 - dynamic config
    """Raise on numeric values outside their meaningful range."""
    for key in _NON_NEGATIVE_KEYS:
        if key in raw and raw[key] < 0:
            raise ReleaseHelperError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'{key}' must not be negative, got {raw[key]}",
            )
    for key in _POSITIVE_KEYS:
        if key in raw and raw[key] <= 0:
            raise ReleaseHelperError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'{key}' must be positive, got {raw[key]}",
            )
    ratio = raw.get('prune_error_ratio')
    if ratio is not None and not 0 <= ratio <= 1:
        raise ReleaseHelperError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'prune_error_ratio' must be between 0 and 1, got {ratio}",
        )
    branches = raw.get('base_branches')
    if branches is not None:
        if not branches:
            raise ReleaseHelperError(
                code=E.CONFIG_INVALID_VALUE,
                message="'base_branches' must list at least one branch",
                hint='Example: base_branches = ["develop", "main", "master"]',
            )
        for item in branches:
            if not isinstance(item, str) or not item:
                raise ReleaseHelperError(
                    code=E.CONFIG_INVALID_VALUE,
                    message=f"'base_branches' items must be non-empty strings, got {item!r}",
                )


def load_config(project_root: Path) -> HelperConfig:
    """Load and validate configuration from ``releasehelper.toml``.

    Args:
        project_root: Directory containing ``releasehelper.toml``.

    Returns:
        A validated :class:`HelperConfig`.

    Raises:
        ReleaseHelperError: If the file cannot be parsed or contains
            invalid config.
    """
    config_path = project_root / CONFIG_FILENAME

    if not config_path.is_file():
        logger.debug('no_releasehelper_config', path=str(config_path))
        return HelperConfig(config_path=None)

    try:
        text = config_path.read_text(encoding='utf-8')
        doc = tomlkit.parse(text)
    except (OSError, tomlkit.exceptions.TOMLKitError) as exc:
        raise ReleaseHelperError(
            code=E.CONFIG_PARSE_ERROR,
            message=f'Failed to read {config_path}: {exc}',
            hint='Fix the TOML syntax or delete the file to use the defaults.',
        ) from exc

    raw: dict[str, Any] = doc.unwrap()  # noqa: ANN401

    if not raw:
        logger.debug('empty_releasehelper_config', path=str(config_path))
        return HelperConfig(config_path=config_path)

    for key in raw:
        if key not in VALID_KEYS:
            suggestion = _suggest_key(key)
            raise ReleaseHelperError(
                code=E.CONFIG_INVALID_KEY,
                message=f"Unknown key '{key}' in {CONFIG_FILENAME}",
                hint=f"Did you mean '{suggestion}'?" if suggestion else f'Valid keys: {", ".join(sorted(VALID_KEYS))}',
            )

    for key, value in raw.items():
        _validate_value_type(key, value)

    _validate_store(raw)
    _validate_ranges(raw)

    kwargs: dict[str, Any] = dict(raw)  # noqa: ANN401
    for key in ('http_timeout', 'retry_backoff', 'prune_error_ratio'):
        if key in kwargs:
            kwargs[key] = float(kwargs[key])
    kwargs['github_base_url'] = kwargs.get('github_base_url', HelperConfig.github_base_url).rstrip('/')
    kwargs['github_web_url'] = kwargs.get('github_web_url', '').rstrip('/')
    kwargs['store_url'] = kwargs.get('store_url', '').rstrip('/')

    logger.debug('releasehelper_config_loaded', path=str(config_path), keys=sorted(raw))
    return HelperConfig(**kwargs, config_path=config_path)


__all__ = [
    'ALLOWED_STORES',
    'CONFIG_FILENAME',
    'VALID_KEYS',
    'HelperConfig',
    'load_config',
]
