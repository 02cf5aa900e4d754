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

"""Structured error system for releasehelper.

Every error has a unique ``RH-NAMED-KEY`` code, a human-readable message,
and an optional hint with a suggested fix.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorCode           │ A unique named ID like "RH-SHA-CONFLICT" for  │
    │                     │ each error. Readable at a glance.             │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ReleaseHelperError  │ An exception you can raise. Carries the code, │
    │                     │ message and hint so the UI can display it.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ForgeError          │ A ReleaseHelperError that also remembers the  │
    │                     │ HTTP status GitHub answered with (0 when the  │
    │                     │ host could not be reached at all).            │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ERRORS catalog      │ Pre-built error cards for common mistakes.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ explain()           │ Looks up an error code and returns details.   │
    └─────────────────────┴────────────────────────────────────────────────┘

Code categories::

    RH-CONFIG-*       Configuration errors
    RH-AUTH-*         Missing or rejected credentials
    RH-FORGE-*        Normalized Git provider failures
    RH-SHA-*/RH-REF-* Optimistic-concurrency conflicts
    RH-PR-*           Pull Request creation conflicts
    RH-STORE-*        Release Store persistence errors

Usage::

    from releasehelper.errors import ForgeError, E

    raise ForgeError(
        E.REF_MOVED,
        'feature/upsert-release moved while the commit was being built.',
        status=409,
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """Enumeration of all releasehelper diagnostic codes."""

    # Configuration
    CONFIG_INVALID_KEY = 'RH-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'RH-CONFIG-INVALID-VALUE'
    CONFIG_PARSE_ERROR = 'RH-CONFIG-PARSE-ERROR'

    # Credentials
    AUTH_MISSING = 'RH-AUTH-MISSING'

    # Git provider
    FORGE_UNAUTHORIZED = 'RH-FORGE-UNAUTHORIZED'
    FORGE_UNREACHABLE = 'RH-FORGE-UNREACHABLE'
    FORGE_NOT_FOUND = 'RH-FORGE-NOT-FOUND'
    FORGE_CONFLICT = 'RH-FORGE-CONFLICT'
    FORGE_UNPROCESSABLE = 'RH-FORGE-UNPROCESSABLE'
    FORGE_REQUEST_FAILED = 'RH-FORGE-REQUEST-FAILED'

    # Optimistic concurrency
    SHA_CONFLICT = 'RH-SHA-CONFLICT'
    REF_MOVED = 'RH-REF-MOVED'
    BRANCH_BASE_NOT_FOUND = 'RH-BRANCH-BASE-NOT-FOUND'
    PR_ALREADY_EXISTS = 'RH-PR-ALREADY-EXISTS'
    PR_NO_DIFF = 'RH-PR-NO-DIFF'

    # Engine inputs
    INVALID_REPOSITORY_URL = 'RH-INVALID-REPOSITORY-URL'
    NO_REPOSITORIES_SELECTED = 'RH-NO-REPOSITORIES-SELECTED'
    RELEASE_NOT_FOUND = 'RH-RELEASE-NOT-FOUND'
    DUPLICATE_DEMAND = 'RH-DUPLICATE-DEMAND'
    INVALID_RELEASE = 'RH-INVALID-RELEASE'
    SYNC_IN_PROGRESS = 'RH-SYNC-IN-PROGRESS'

    # Store
    STORE_CORRUPTED = 'RH-STORE-CORRUPTED'
    STORE_WRITE_FAILED = 'RH-STORE-WRITE-FAILED'
    STORE_UNAVAILABLE = 'RH-STORE-UNAVAILABLE'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The ``RH-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    code: ErrorCode
    message: str
    hint: str = ''


class ReleaseHelperError(Exception):
    """Base exception for all releasehelper errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def message(self) -> str:
        """The human-readable message without the code prefix."""
        return self.info.message

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


class ForgeError(ReleaseHelperError):
    """A Git provider failure normalized to a status code plus message.

    Engines branch on :attr:`status` and :attr:`code` only; the
    provider-native response never escapes the backend.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        status: HTTP status of the failed call, ``0`` for connectivity errors.
        hint: Optional suggestion for how to fix the error.
    """

    def __init__(self, code: ErrorCode, message: str, *, status: int = 0, hint: str = '') -> None:
        """Initialize with an error code, message, status, and optional hint."""
        super().__init__(code, message, hint)
        self.status = status

    @property
    def fatal(self) -> bool:
        """Whether the failure invalidates the whole operation.

        Missing or rejected credentials (401) and an unreachable host cannot
        be fixed by moving on to the next repository. A 403 only denies one
        resource and stays per-item.
        """
        if self.code == E.FORGE_UNAUTHORIZED:
            return self.status != 403
        return self.code in _FATAL_CODES


_FATAL_CODES = frozenset({E.AUTH_MISSING, E.FORGE_UNREACHABLE})


def is_fatal(exc: BaseException) -> bool:
    """Return True when *exc* must abort the current engine operation."""
    if isinstance(exc, ForgeError):
        return exc.fatal
    return isinstance(exc, ReleaseHelperError) and exc.code == E.AUTH_MISSING


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.AUTH_MISSING: ErrorInfo(
        code=E.AUTH_MISSING,
        message='No GitHub token is available.',
        hint='Sign in again or export GITHUB_TOKEN before retrying.',
    ),
    E.FORGE_UNAUTHORIZED: ErrorInfo(
        code=E.FORGE_UNAUTHORIZED,
        message='GitHub rejected the token (401/403).',
        hint='The token may have expired or lack the "repo" scope. Sign in again.',
    ),
    E.FORGE_UNREACHABLE: ErrorInfo(
        code=E.FORGE_UNREACHABLE,
        message='The GitHub API could not be reached.',
        hint='Check network connectivity and the configured github_base_url.',
    ),
    E.SHA_CONFLICT: ErrorInfo(
        code=E.SHA_CONFLICT,
        message='The file changed on GitHub while it was being updated.',
        hint='Someone else edited the same file. Sync and try again.',
    ),
    E.REF_MOVED: ErrorInfo(
        code=E.REF_MOVED,
        message='The branch moved while the commit was being built.',
        hint='Another writer pushed to the working branch. Retry the operation.',
    ),
    E.BRANCH_BASE_NOT_FOUND: ErrorInfo(
        code=E.BRANCH_BASE_NOT_FOUND,
        message='None of the base branch candidates exist in the repository.',
        hint='Create a develop, main or master branch, or set base_branches in releasehelper.toml.',
    ),
    E.PR_ALREADY_EXISTS: ErrorInfo(
        code=E.PR_ALREADY_EXISTS,
        message='An open Pull Request already exists for this head and base.',
        hint='The existing Pull Request already carries the new commit.',
    ),
    E.PR_NO_DIFF: ErrorInfo(
        code=E.PR_NO_DIFF,
        message='The working branch has no commits ahead of the base branch.',
        hint='The commit was probably not written. Check the branch on GitHub and version again.',
    ),
    E.DUPLICATE_DEMAND: ErrorInfo(
        code=E.DUPLICATE_DEMAND,
        message='A release with this demand id already exists.',
        hint='Edit the existing release instead of creating a new one.',
    ),
    E.INVALID_RELEASE: ErrorInfo(
        code=E.INVALID_RELEASE,
        message='The release record is incomplete or the edit is not allowed.',
        hint='Fill in the demand id; ids, timestamps and authorship are set by the store.',
    ),
    E.STORE_CORRUPTED: ErrorInfo(
        code=E.STORE_CORRUPTED,
        message='The release store file could not be parsed.',
        hint='Delete or repair the store file, then run a full sync to rebuild it.',
    ),
    E.SYNC_IN_PROGRESS: ErrorInfo(
        code=E.SYNC_IN_PROGRESS,
        message='A synchronization pass is already running.',
        hint='Wait for the current pass to finish.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"RH-REF-MOVED"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def render_error(exc: ReleaseHelperError, *, file: TextIO | None = None) -> None:
    """Render an error in Rust-compiler style with color.

    Output format::

        error[RH-REF-MOVED]: feature/upsert-release moved during commit.
          |
          = hint: Another writer pushed to the working branch. Retry the operation.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr

    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.message)
        console.print(
            f'[bold red]error[/bold red][bold red]\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]',
        )
        if exc.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}')
        console.print()
    else:
        print(f'error[{exc.code.value}]: {exc.message}', file=out)  # noqa: T201 - UI output
        if exc.hint:
            print('  |', file=out)  # noqa: T201 - UI output
            print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - UI output
        print(file=out)  # noqa: T201 - UI output


__all__ = [
    'E',
    'ERRORS',
    'ErrorCode',
    'ErrorInfo',
    'ForgeError',
    'ReleaseHelperError',
    'explain',
    'is_fatal',
    'render_error',
]
