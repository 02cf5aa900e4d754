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

"""Explicit credential holder for GitHub calls.

The UI layer owns sign-in; it hands the resulting token to an
:class:`AuthContext` which is passed to the provider and the remote
store. Every request reads the token through :meth:`AuthContext.require_token`,
so a token swap (sign-in, refresh, sign-out) takes effect on the next
call without rebuilding any client.

Token resolution for :meth:`AuthContext.from_env`:

    1. ``GITHUB_TOKEN`` env var.
    2. ``GH_TOKEN`` env var (used by the ``gh`` CLI).

Usage::

    from releasehelper.auth import AuthContext

    auth = AuthContext.from_env()
    unsubscribe = auth.subscribe(lambda token: print('signed in' if token else 'signed out'))
    auth.set_token('ghp_...')
    unsubscribe()
"""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable

from releasehelper.errors import E, ReleaseHelperError
from releasehelper.logging import get_logger

log = get_logger('releasehelper.auth')

TokenListener = Callable[[str], None]
TokenRefresher = Callable[[], Awaitable[str]]


class AuthContext:
    """Holds the current GitHub token and notifies listeners on change.

    Args:
        token: Initial token, empty when signed out.
        refresh: Optional coroutine function returning a fresh token.
    """

    def __init__(self, token: str = '', *, refresh: TokenRefresher | None = None) -> None:
        """Initialize with an optional token and refresh hook."""
        self._token = token
        self._refresh = refresh
        self._listeners: list[TokenListener] = []

    @classmethod
    def from_env(cls, *, refresh: TokenRefresher | None = None) -> AuthContext:
        """Build a context from ``GITHUB_TOKEN`` or ``GH_TOKEN``."""
        token = os.environ.get('GITHUB_TOKEN', '') or os.environ.get('GH_TOKEN', '')
        return cls(token, refresh=refresh)

    def __repr__(self) -> str:
        """Return a safe repr that never exposes the token."""
        return f'AuthContext(authenticated={self.is_authenticated})'

    @property
    def is_authenticated(self) -> bool:
        """Whether a token is currently set."""
        return bool(self._token)

    def require_token(self) -> str:
        """Return the current token.

        Raises:
            ReleaseHelperError: ``RH-AUTH-MISSING`` when signed out.
        """
        if not self._token:
            raise ReleaseHelperError(
                code=E.AUTH_MISSING,
                message='No GitHub token is available.',
                hint='Sign in again or export GITHUB_TOKEN before retrying.',
            )
        return self._token

    def set_token(self, token: str) -> None:
        """Replace the token and notify subscribers if it changed."""
        if token == self._token:
            return
        self._token = token
        log.debug('auth_token_changed', authenticated=bool(token))
        for listener in list(self._listeners):
            listener(token)

    def clear(self) -> None:
        """Sign out."""
        self.set_token('')

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        """Register *listener* for token changes.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self) -> str:
        """Fetch a new token through the refresh hook and store it.

        Without a hook the current token is returned unchanged.
        """
        if self._refresh is None:
            return self._token
        token = await self._refresh()
        self.set_token(token)
        log.info('auth_token_refreshed', authenticated=bool(token))
        return token


__all__ = [
    'AuthContext',
    'TokenListener',
    'TokenRefresher',
]
