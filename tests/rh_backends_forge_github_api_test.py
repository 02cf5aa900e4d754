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

"""Tests for the GitHub REST API backend.

Uses httpx mock transport to avoid real network calls.
"""

from __future__ import annotations

import base64
import json
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
import pytest
from releasehelper.auth import AuthContext
from releasehelper.backends.forge import FileChange, GitProvider
from releasehelper.backends.forge.github_api import GitHubAPIBackend
from releasehelper.config import HelperConfig
from releasehelper.errors import E, ForgeError, ReleaseHelperError
from releasehelper.logging import configure_logging
from releasehelper.net import BackoffPolicy

configure_logging(quiet=True)

REPO = '/repos/acme/payments'
DOC = 'releases/release_D1.md'
WORKING = 'feature/upsert-release'

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

Reply = tuple[int, Any] | Callable[[httpx.Request], httpx.Response]


class _Router:
    """Mock transport handler keyed by (method, path).

    Each route holds a queue of replies; the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *replies: Reply) -> None:
        self.routes[method, path] = list(replies)

    def sent(self, method: str, path: str | None = None) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and (path is None or r.url.path == path)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={'message': 'Not Found'})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        status, body = reply
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)


def _make_client_cm(transport: Any) -> Any:  # noqa: ANN401
    """Create a context manager that yields an httpx.AsyncClient with mock transport."""

    @asynccontextmanager
    async def _client_cm(**kw: Any) -> AsyncGenerator[httpx.AsyncClient]:  # noqa: ANN401
        async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
            yield client

    return _client_cm


def _b64(text: str) -> str:
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def _file(text: str, sha: str = 'blob1', path: str = DOC) -> dict[str, Any]:
    return {'type': 'file', 'path': path, 'sha': sha, 'encoding': 'base64', 'content': _b64(text), 'size': len(text)}


def _ref(sha: str) -> dict[str, Any]:
    return {'ref': 'refs/heads/x', 'object': {'sha': sha, 'type': 'commit'}}


def _body(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content)


@pytest.fixture()
def router(monkeypatch: pytest.MonkeyPatch) -> _Router:
    """Route every backend request to an in-memory router."""
    r = _Router()
    monkeypatch.setattr('releasehelper.backends.forge.github_api.http_client', _make_client_cm(r))
    return r


@pytest.fixture()
def gh() -> GitHubAPIBackend:
    """Create a GitHubAPIBackend that never sleeps."""
    return GitHubAPIBackend(
        AuthContext('fake-token'),
        retry_backoff=0,
        sha_conflict_policy=BackoffPolicy(max_attempts=2, base_delay=0),
    )


# ---------------------------------------------------------------------------
# Init / Auth
# ---------------------------------------------------------------------------


class TestInit:
    """Tests for construction and headers."""

    def test_satisfies_protocol(self, gh: GitHubAPIBackend) -> None:
        """The backend is a GitProvider."""
        assert isinstance(gh, GitProvider)

    def test_bearer_header(self, gh: GitHubAPIBackend) -> None:
        """The current token is sent as a bearer token."""
        assert gh._headers()['Authorization'] == 'Bearer fake-token'

    def test_token_change_is_picked_up(self) -> None:
        """Headers follow the auth context."""
        auth = AuthContext('one')
        api = GitHubAPIBackend(auth)
        auth.set_token('two')
        assert api._headers()['Authorization'] == 'Bearer two'

    def test_missing_token(self) -> None:
        """No token raises RH-AUTH-MISSING before any request."""
        with pytest.raises(ReleaseHelperError) as excinfo:
            GitHubAPIBackend(AuthContext())._headers()
        assert excinfo.value.code == E.AUTH_MISSING

    def test_repr_hides_token(self, gh: GitHubAPIBackend) -> None:
        """The token never appears in repr."""
        assert 'fake-token' not in repr(gh)

    def test_from_config(self) -> None:
        """Configuration values reach the backend."""
        config = HelperConfig(github_base_url='https://ghe.corp.com/api/v3/', releases_dir='docs/releases')
        api = GitHubAPIBackend.from_config(config, AuthContext('t'))
        assert api._base_url == 'https://ghe.corp.com/api/v3'
        assert api._releases_dir == 'docs/releases'


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrors:
    """Tests for status and transport error normalization."""

    @pytest.mark.asyncio()
    async def test_401_is_fatal(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A rejected token aborts with a fatal error."""
        router.add('GET', f'{REPO}/contents/{DOC}', (401, {'message': 'Bad credentials'}))
        with pytest.raises(ForgeError) as excinfo:
            await gh.get_file_content('acme', 'payments', DOC, 'develop')
        assert excinfo.value.code == E.FORGE_UNAUTHORIZED
        assert excinfo.value.fatal

    @pytest.mark.asyncio()
    async def test_403_is_per_item(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A forbidden resource is not fatal."""
        router.add('GET', f'{REPO}/compare/develop...{WORKING}', (403, {'message': 'Forbidden'}))
        with pytest.raises(ForgeError) as excinfo:
            await gh.compare_branches('acme', 'payments', 'develop', WORKING)
        assert excinfo.value.code == E.FORGE_UNAUTHORIZED
        assert excinfo.value.status == 403
        assert not excinfo.value.fatal

    @pytest.mark.asyncio()
    async def test_connection_error(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Transport failures become fatal RH-FORGE-UNREACHABLE."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('connection refused', request=request)

        router.add('GET', f'{REPO}/contents/{DOC}', refuse)
        with pytest.raises(ForgeError) as excinfo:
            await gh.get_file_content('acme', 'payments', DOC, 'develop')
        assert excinfo.value.code == E.FORGE_UNREACHABLE
        assert excinfo.value.status == 0
        assert excinfo.value.fatal

    @pytest.mark.asyncio()
    async def test_server_error_retried(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Transient 5xx responses are retried."""
        router.add('GET', f'{REPO}/contents/{DOC}', (502, 'bad gateway'), (200, _file('hello')))
        assert await gh.get_file_content('acme', 'payments', DOC, 'develop') == 'hello'
        assert len(router.sent('GET')) == 2

    @pytest.mark.asyncio()
    async def test_error_message_includes_details(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """GitHub's nested error messages are flattened into the error."""
        router.add(
            'DELETE',
            f'{REPO}/contents/{DOC}',
            (500, {'message': 'Server Error', 'errors': [{'message': 'disk full'}]}),
        )
        router.add('GET', f'{REPO}/contents/{DOC}', (200, _file('x')))
        gh._max_retries = 0
        with pytest.raises(ForgeError) as excinfo:
            await gh.delete_file('acme', 'payments', DOC, message='rm', branch='develop')
        assert excinfo.value.code == E.FORGE_REQUEST_FAILED
        assert 'disk full' in excinfo.value.message


# ---------------------------------------------------------------------------
# Discovery and listing
# ---------------------------------------------------------------------------


def _repo_item(name: str, *, push: bool = True, archived: bool = False, org: bool = True) -> dict[str, Any]:
    return {
        'name': name,
        'html_url': f'https://github.com/acme/{name}',
        'default_branch': 'main',
        'archived': archived,
        'permissions': {'push': push},
        'owner': {'login': 'acme', 'type': 'Organization' if org else 'User'},
    }


class TestDiscovery:
    """Tests for list_accessible_repositories() and list_release_files()."""

    @pytest.mark.asyncio()
    async def test_filters_repositories(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Read-only, archived and duplicate repositories are dropped."""
        router.add(
            'GET',
            '/user/repos',
            (
                200,
                [
                    _repo_item('payments'),
                    _repo_item('readonly', push=False),
                    _repo_item('old', archived=True),
                    _repo_item('Payments'),
                    _repo_item('personal', org=False),
                ],
            ),
        )
        repos = await gh.list_accessible_repositories()
        assert [r.name for r in repos] == ['payments', 'personal']

    @pytest.mark.asyncio()
    async def test_organizations_only(self, router: _Router) -> None:
        """The organization filter drops personal repositories."""
        router.add('GET', '/user/repos', (200, [_repo_item('payments'), _repo_item('personal', org=False)]))
        api = GitHubAPIBackend(AuthContext('t'), organizations_only=True, retry_backoff=0)
        repos = await api.list_accessible_repositories()
        assert [r.name for r in repos] == ['payments']

    @pytest.mark.asyncio()
    async def test_page_cap(self, router: _Router) -> None:
        """Discovery stops at the page ceiling instead of looping forever."""

        def page(request: httpx.Request) -> httpx.Response:
            n = int(request.url.params['page'])
            return httpx.Response(200, json=[_repo_item(f'r{n}-{i}') for i in range(100)])

        router.add('GET', '/user/repos', page)
        api = GitHubAPIBackend(AuthContext('t'), max_repository_pages=2, retry_backoff=0)
        repos = await api.list_accessible_repositories()
        assert len(repos) == 200
        assert len(router.sent('GET', '/user/repos')) == 2

    @pytest.mark.asyncio()
    async def test_release_files(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Only markdown files under releases/ are returned."""
        router.add(
            'GET',
            f'{REPO}/contents/releases',
            (
                200,
                [
                    {'type': 'file', 'name': 'release_D1.md', 'path': DOC, 'sha': 's1'},
                    {'type': 'file', 'name': 'notes.txt', 'path': 'releases/notes.txt', 'sha': 's2'},
                    {'type': 'dir', 'name': 'old.md', 'path': 'releases/old.md', 'sha': 's3'},
                ],
            ),
        )
        files = await gh.list_release_files('acme', 'payments', WORKING)
        assert [(f.name, f.branch, f.repo) for f in files] == [('release_D1.md', WORKING, 'acme/payments')]
        assert router.requests[0].url.params['ref'] == WORKING

    @pytest.mark.asyncio()
    async def test_release_files_missing_directory(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A missing directory or branch lists nothing."""
        assert await gh.list_release_files('acme', 'payments', 'develop') == []


# ---------------------------------------------------------------------------
# File contents
# ---------------------------------------------------------------------------


class TestFileContents:
    """Tests for reads and single-file writes."""

    @pytest.mark.asyncio()
    async def test_missing_file_is_none(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """404 means absent, not an error."""
        assert await gh.get_file_content('acme', 'payments', DOC, 'develop') is None
        assert await gh.get_file_sha('acme', 'payments', DOC, 'develop') is None

    @pytest.mark.asyncio()
    async def test_decodes_utf8(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Base64 content is decoded as UTF-8."""
        router.add('GET', f'{REPO}/contents/{DOC}', (200, _file('Descrição', sha='abc')))
        assert await gh.get_file_content('acme', 'payments', DOC, 'develop') == 'Descrição'
        assert await gh.get_file_sha('acme', 'payments', DOC, 'develop') == 'abc'

    @pytest.mark.asyncio()
    async def test_large_file_blob_fallback(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Files served without a body are read through the blob API."""
        router.add(
            'GET',
            f'{REPO}/contents/{DOC}',
            (200, {'type': 'file', 'path': DOC, 'sha': 'big', 'content': '', 'encoding': 'none', 'size': 2_000_000}),
        )
        router.add('GET', f'{REPO}/git/blobs/big', (200, {'content': _b64('large body'), 'encoding': 'base64'}))
        assert await gh.get_file_content('acme', 'payments', DOC, 'develop') == 'large body'

    @pytest.mark.asyncio()
    async def test_unchanged_write_is_skipped(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Writing identical content sends no PUT."""
        router.add('GET', f'{REPO}/contents/{DOC}', (200, _file('same')))
        result = await gh.create_or_update_file('acme', 'payments', DOC, 'same', message='m', branch=WORKING)
        assert result.changed is False
        assert router.sent('PUT') == []

    @pytest.mark.asyncio()
    async def test_create_sends_no_sha(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A new file is written without a sha."""
        router.add('PUT', f'{REPO}/contents/{DOC}', (201, {'content': {'sha': 'n1'}, 'commit': {'sha': 'c1'}}))
        result = await gh.create_or_update_file('acme', 'payments', DOC, 'new', message='m', branch=WORKING)
        assert result.changed
        assert (result.sha, result.commit_sha) == ('n1', 'c1')
        payload = _body(router.sent('PUT')[0])
        assert 'sha' not in payload
        assert base64.b64decode(payload['content']).decode() == 'new'
        assert payload['branch'] == WORKING

    @pytest.mark.asyncio()
    async def test_sha_conflict_retried(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A conflicting write re-reads the sha and tries again."""
        router.add('GET', f'{REPO}/contents/{DOC}', (200, _file('old', sha='s1')), (200, _file('older', sha='s2')))
        router.add(
            'PUT',
            f'{REPO}/contents/{DOC}',
            (409, {'message': 'is at s2 but expected s1'}),
            (200, {'content': {'sha': 'n1'}, 'commit': {'sha': 'c1'}}),
        )
        result = await gh.create_or_update_file('acme', 'payments', DOC, 'new', message='m', branch=WORKING)
        assert result.changed
        puts = router.sent('PUT')
        assert [_body(p)['sha'] for p in puts] == ['s1', 's2']

    @pytest.mark.asyncio()
    async def test_sha_conflict_exhausted(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Persistent conflicts raise RH-SHA-CONFLICT after the bounded retries."""
        router.add('GET', f'{REPO}/contents/{DOC}', (200, _file('old', sha='s1')))
        router.add('PUT', f'{REPO}/contents/{DOC}', (422, {'message': 'sha does not match'}))
        with pytest.raises(ForgeError) as excinfo:
            await gh.create_or_update_file('acme', 'payments', DOC, 'new', message='m', branch=WORKING)
        assert excinfo.value.code == E.SHA_CONFLICT
        assert len(router.sent('PUT')) == 3

    @pytest.mark.asyncio()
    async def test_delete_missing_file(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Deleting an absent file is a no-op."""
        assert await gh.delete_file('acme', 'payments', DOC, message='rm', branch='develop') is False
        assert router.sent('DELETE') == []


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------


class TestBranches:
    """Tests for base-branch resolution and branch creation."""

    @pytest.mark.asyncio()
    async def test_first_existing_candidate(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Candidates are tried in order."""
        router.add('GET', f'{REPO}/git/ref/heads/main', (200, _ref('m1')))
        assert await gh.find_base_branch('acme', 'payments', ['develop', 'main', 'master']) == 'main'

    @pytest.mark.asyncio()
    async def test_default_branch_fallback(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """With no candidate present the default branch is used."""
        router.add('GET', REPO, (200, {'default_branch': 'trunk'}))
        router.add('GET', f'{REPO}/git/ref/heads/trunk', (200, _ref('t1')))
        assert await gh.find_base_branch('acme', 'payments', ['develop', 'main']) == 'trunk'

    @pytest.mark.asyncio()
    async def test_prefix_match_is_not_a_branch(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A list answer from the ref endpoint means no exact branch."""
        router.add('GET', f'{REPO}/git/ref/heads/develop', (200, [_ref('d1'), _ref('d2')]))
        assert await gh.get_branch_sha('acme', 'payments', 'develop') is None

    @pytest.mark.asyncio()
    async def test_create_branch(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """The branch is created at the base head."""
        router.add('GET', f'{REPO}/git/ref/heads/develop', (200, _ref('d1')))
        router.add('POST', f'{REPO}/git/refs', (201, _ref('d1')))
        branch = await gh.create_branch('acme', 'payments', WORKING, ['develop'])
        assert branch.created
        assert branch.base == 'develop'
        assert _body(router.sent('POST')[0]) == {'ref': f'refs/heads/{WORKING}', 'sha': 'd1'}

    @pytest.mark.asyncio()
    async def test_existing_branch_is_success(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """An existing branch is returned without a POST."""
        router.add('GET', f'{REPO}/git/ref/heads/develop', (200, _ref('d1')))
        router.add('GET', f'{REPO}/git/ref/heads/{WORKING}', (200, _ref('w1')))
        branch = await gh.create_branch('acme', 'payments', WORKING, ['develop'])
        assert not branch.created
        assert branch.sha == 'w1'
        assert router.sent('POST') == []

    @pytest.mark.asyncio()
    async def test_no_base(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Without any base branch creation fails clearly."""
        router.add('GET', REPO, (200, {'default_branch': 'develop'}))
        with pytest.raises(ForgeError) as excinfo:
            await gh.create_branch('acme', 'payments', WORKING, ['develop'])
        assert excinfo.value.code == E.BRANCH_BASE_NOT_FOUND


# ---------------------------------------------------------------------------
# Atomic commit
# ---------------------------------------------------------------------------


def _commit_routes(router: _Router, *, moved: bool = False, patch_status: int = 200) -> None:
    router.add('GET', f'{REPO}/git/ref/heads/{WORKING}', (200, _ref('h1')), (200, _ref('h2' if moved else 'h1')))
    router.add('GET', f'{REPO}/git/commits/h1', (200, {'sha': 'h1', 'tree': {'sha': 't0'}}))
    counter = iter(range(1, 100))
    router.add('POST', f'{REPO}/git/blobs', lambda request: httpx.Response(201, json={'sha': f'b{next(counter)}'}))
    router.add('POST', f'{REPO}/git/trees', (201, {'sha': 't1'}))
    router.add('POST', f'{REPO}/git/commits', (201, {'sha': 'c1'}))
    router.add('PATCH', f'{REPO}/git/refs/heads/{WORKING}', (patch_status, {'message': 'Update is not a fast forward'}))


class TestAtomicCommit:
    """Tests for create_commit_with_files()."""

    FILES = [
        FileChange(path=DOC, content='doc'),
        FileChange(path='scripts/D1/a.sql', content='SELECT 1;'),
        FileChange(path='scripts/D1/old.sql', content=None),
    ]

    @pytest.mark.asyncio()
    async def test_one_tree_one_commit(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Every change lands in a single tree and commit."""
        _commit_routes(router)
        result = await gh.create_commit_with_files('acme', 'payments', WORKING, 'docs: upsert release D1', self.FILES)

        assert (result.sha, result.tree_sha, result.files) == ('c1', 't1', 3)
        assert len(router.sent('POST', f'{REPO}/git/blobs')) == 2
        trees = router.sent('POST', f'{REPO}/git/trees')
        assert len(trees) == 1
        tree = _body(trees[0])
        assert tree['base_tree'] == 't0'
        assert [e['path'] for e in tree['tree']] == [DOC, 'scripts/D1/a.sql', 'scripts/D1/old.sql']
        assert tree['tree'][2]['sha'] is None
        assert all(e['mode'] == '100644' for e in tree['tree'])
        commit = _body(router.sent('POST', f'{REPO}/git/commits')[0])
        assert commit['parents'] == ['h1']
        assert _body(router.sent('PATCH')[0]) == {'sha': 'c1', 'force': False}

    @pytest.mark.asyncio()
    async def test_ref_moved_before_update(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A moved head aborts without touching the ref."""
        _commit_routes(router, moved=True)
        with pytest.raises(ForgeError) as excinfo:
            await gh.create_commit_with_files('acme', 'payments', WORKING, 'm', self.FILES)
        assert excinfo.value.code == E.REF_MOVED
        assert router.sent('PATCH') == []

    @pytest.mark.asyncio()
    async def test_non_fast_forward(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A rejected fast-forward is reported as a moved ref."""
        _commit_routes(router, patch_status=422)
        with pytest.raises(ForgeError) as excinfo:
            await gh.create_commit_with_files('acme', 'payments', WORKING, 'm', self.FILES)
        assert excinfo.value.code == E.REF_MOVED

    @pytest.mark.asyncio()
    async def test_missing_branch(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Committing to a branch that does not exist fails."""
        with pytest.raises(ForgeError) as excinfo:
            await gh.create_commit_with_files('acme', 'payments', WORKING, 'm', self.FILES)
        assert excinfo.value.code == E.FORGE_NOT_FOUND

    @pytest.mark.asyncio()
    async def test_empty_commit_rejected(self, gh: GitHubAPIBackend) -> None:
        """An atomic commit needs at least one file."""
        with pytest.raises(ForgeError):
            await gh.create_commit_with_files('acme', 'payments', WORKING, 'm', [])


# ---------------------------------------------------------------------------
# Pull Requests
# ---------------------------------------------------------------------------


class TestPullRequests:
    """Tests for PR creation, listing and comparison."""

    @pytest.mark.asyncio()
    async def test_create(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """A created PR is parsed."""
        router.add(
            'POST',
            f'{REPO}/pulls',
            (
                201,
                {
                    'number': 7,
                    'html_url': 'https://github.com/acme/payments/pull/7',
                    'title': 'Release D1',
                    'head': {'ref': WORKING},
                    'base': {'ref': 'develop'},
                    'state': 'open',
                },
            ),
        )
        pr = await gh.create_pull_request('acme', 'payments', title='Release D1', head=WORKING, base='develop')
        assert (pr.number, pr.head, pr.base) == (7, WORKING, 'develop')

    @pytest.mark.asyncio()
    async def test_already_exists(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """GitHub's duplicate-PR 422 maps to RH-PR-ALREADY-EXISTS."""
        router.add(
            'POST',
            f'{REPO}/pulls',
            (
                422,
                {
                    'message': 'Validation Failed',
                    'errors': [{'message': f'A pull request already exists for acme:{WORKING}.'}],
                },
            ),
        )
        with pytest.raises(ForgeError) as excinfo:
            await gh.create_pull_request('acme', 'payments', title='t', head=WORKING, base='develop')
        assert excinfo.value.code == E.PR_ALREADY_EXISTS

    @pytest.mark.asyncio()
    async def test_no_commits_between(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """GitHub's empty-diff 422 maps to RH-PR-NO-DIFF with a hint."""
        errors = [{'message': f'No commits between develop and {WORKING}'}]
        router.add('POST', f'{REPO}/pulls', (422, {'message': 'Validation Failed', 'errors': errors}))
        with pytest.raises(ForgeError) as excinfo:
            await gh.create_pull_request('acme', 'payments', title='t', head=WORKING, base='develop')
        assert excinfo.value.code == E.PR_NO_DIFF
        assert excinfo.value.hint

    @pytest.mark.asyncio()
    async def test_list_filters_by_owner_head(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """The head filter is sent in owner:branch form."""
        router.add('GET', f'{REPO}/pulls', (200, []))
        assert await gh.list_pull_requests('acme', 'payments', base='develop', head=WORKING) == []
        params = router.requests[0].url.params
        assert params['head'] == f'acme:{WORKING}'
        assert params['base'] == 'develop'

    @pytest.mark.asyncio()
    async def test_compare(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """ahead_by is returned; a missing branch compares as 0."""

        def compare(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={'ahead_by': 3, 'behind_by': 0})

        router.add('GET', f'{REPO}/compare/develop...{WORKING}', compare)
        assert await gh.compare_branches('acme', 'payments', 'develop', WORKING) == 3
        assert await gh.compare_branches('acme', 'payments', 'develop', 'gone') == 0


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def _commit_item(sha: str, *, login: str = '', name: str = 'Someone') -> dict[str, Any]:
    return {
        'sha': sha,
        'author': {'login': login} if login else None,
        'commit': {'author': {'name': name, 'date': '2026-01-02T03:04:05Z'}, 'message': 'docs: x\n\nbody'},
    }


class TestHistory:
    """Tests for commit history lookups."""

    @pytest.mark.asyncio()
    async def test_author_falls_back_to_name(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """Commits without a linked account use the git author name."""
        router.add('GET', f'{REPO}/commits', (200, [_commit_item('a', name='Ana Lima')]))
        commit = await gh.get_file_last_commit('acme', 'payments', DOC, 'develop')
        assert commit is not None
        assert commit.author == 'Ana Lima'
        assert commit.message == 'docs: x'
        assert commit.date is not None
        assert commit.date.year == 2026

    @pytest.mark.asyncio()
    async def test_first_commit_walks_pages(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """The oldest commit is the last item of the last page."""

        def page(request: httpx.Request) -> httpx.Response:
            if request.url.params['page'] == '1':
                return httpx.Response(200, json=[_commit_item(f'n{i}', login='bruno') for i in range(100)])
            return httpx.Response(200, json=[_commit_item('first', login='ana')])

        router.add('GET', f'{REPO}/commits', page)
        commit = await gh.get_file_first_commit('acme', 'payments', DOC, 'develop')
        assert commit is not None
        assert (commit.sha, commit.author) == ('first', 'ana')

    @pytest.mark.asyncio()
    async def test_empty_repository(self, gh: GitHubAPIBackend, router: _Router) -> None:
        """An empty repository has no history."""
        router.add('GET', f'{REPO}/commits', (409, {'message': 'Git Repository is empty.'}))
        assert await gh.list_commits('acme', 'payments', path=DOC) == []
