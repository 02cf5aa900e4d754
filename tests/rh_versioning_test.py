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

"""Tests for releasehelper.versioning module."""

from __future__ import annotations

import pytest
from releasehelper.backends.forge import FileChange
from releasehelper.config import HelperConfig
from releasehelper.errors import E, ForgeError, ReleaseHelperError
from releasehelper.logging import configure_logging
from releasehelper.markdown import render_release
from releasehelper.models import Release, ReleaseRepository, Responsible, Script
from releasehelper.store import LocalReleaseStore
from releasehelper.versioning import VersioningEngine, pr_body, pr_title, versioning_files

from tests._fakes import FakeGitHub

configure_logging(quiet=True)

WORKING = 'feature/upsert-release'
REMOVAL = 'feature/remove-release-D1'
PAYMENTS = 'https://github.com/acme/payments'
LEDGER = 'https://github.com/acme/ledger'
DOC = 'releases/release_D1.md'


def _release(*, scripts: bool = True) -> Release:
    return Release(
        demand_id='D1',
        title='Rotate keys',
        description='Rotates gateway keys.',
        responsible=Responsible(dev='Ana'),
        scripts=[
            Script(name='a.sql', path='scripts/D1/a.sql', content='SELECT 1;'),
            Script(name='b.sql', path='scripts/D1/b.sql', content='SELECT 2;'),
        ]
        if scripts
        else [],
        repositories=[ReleaseRepository(url=PAYMENTS, name='payments')],
    )


def _engine(forge: FakeGitHub, store: LocalReleaseStore | None = None) -> VersioningEngine:
    return VersioningEngine(forge, store, HelperConfig(retry_backoff=0.0))


def _forge(*repos: str) -> FakeGitHub:
    forge = FakeGitHub()
    for repo in repos or ('acme/payments',):
        forge.add_repo(repo)
    return forge


class TestHelpers:
    """Tests for the module-level helpers."""

    def test_versioning_files_skip_empty_scripts(self) -> None:
        """Only scripts with a body are written."""
        release = _release()
        release.scripts.append(Script(name='c.sql', path='scripts/D1/c.sql'))
        paths = [f.path for f in versioning_files(release)]
        assert paths == [DOC, 'scripts/D1/a.sql', 'scripts/D1/b.sql']

    def test_versioning_files_render_document(self) -> None:
        """The document is the rendered release."""
        release = _release()
        assert versioning_files(release)[0].content == render_release(release)

    def test_pr_title(self) -> None:
        """Title, then first description line, then bare demand id."""
        assert pr_title(_release()) == 'Release D1: Rotate keys'
        assert pr_title(Release(demand_id='D1', description='First\nSecond')) == 'Release D1: First'
        assert pr_title(Release(demand_id='D1')) == 'Release D1'

    def test_pr_body(self) -> None:
        """The body names the release, its people and its files."""
        files = [FileChange(path=DOC, content='x'), FileChange(path='scripts/D1/a.sql', content=None)]
        body = pr_body(_release(), files)
        assert body.startswith('## Release D1\n')
        assert '- Dev: Ana' in body
        assert f'- `{DOC}`\n' in body
        assert '- `scripts/D1/a.sql` (removed)' in body


class TestVersionRelease:
    """Tests for VersioningEngine.version_release()."""

    @pytest.mark.asyncio
    async def test_publishes_in_one_commit_and_one_pr(self) -> None:
        """Branch from develop, one commit with every file, one PR into develop."""
        forge = _forge()
        result = await _engine(forge).version_release(_release(), [PAYMENTS])

        assert result.success
        assert result.ok
        assert forge.created_branches == [('acme/payments', WORKING, 'develop')]
        assert len(forge.commits) == 1
        assert forge.commits[0]['paths'] == [DOC, 'scripts/D1/a.sql', 'scripts/D1/b.sql']
        assert forge.commits[0]['message'] == 'docs: upsert release D1'
        assert len(forge.prs) == 1
        assert (forge.prs[0]['head'], forge.prs[0]['base']) == (WORKING, 'develop')
        assert forge.prs[0]['title'] == 'Release D1: Rotate keys'
        assert result.pull_requests['acme/payments'].number == 1
        assert forge.file('acme/payments', WORKING, 'scripts/D1/a.sql') == 'SELECT 1;'

    @pytest.mark.asyncio
    async def test_republish_unchanged_reuses_open_pr(self) -> None:
        """Publishing the same content again commits nothing and returns the open PR."""
        forge = _forge()
        engine = _engine(forge)
        await engine.version_release(_release(), [PAYMENTS])

        result = await engine.version_release(_release(), [PAYMENTS])

        assert len(forge.commits) == 1
        assert len(forge.prs) == 1
        assert result.pull_requests['acme/payments'].number == 1

    @pytest.mark.asyncio
    async def test_edit_with_open_pr_commits_and_reuses(self) -> None:
        """A changed release adds a commit and keeps the existing PR."""
        forge = _forge()
        engine = _engine(forge)
        await engine.version_release(_release(), [PAYMENTS])
        edited = _release()
        edited.title = 'Rotate all keys'

        result = await engine.version_release(edited, [PAYMENTS])

        assert len(forge.commits) == 2
        assert forge.commits[1]['paths'] == [DOC]
        assert len(forge.prs) == 1
        assert result.ok

    @pytest.mark.asyncio
    async def test_up_to_date_branch_is_skipped(self) -> None:
        """Identical content with nothing ahead of base is not an error."""
        forge = _forge()
        release = _release(scripts=False)
        forge.put_file('acme/payments', WORKING, DOC, render_release(release))

        result = await _engine(forge).version_release(release, [PAYMENTS])

        assert result.ok
        assert result.skipped == ['acme/payments']
        assert forge.commits == []
        assert forge.prs == []

    @pytest.mark.asyncio
    async def test_no_diff_error_carries_hint(self) -> None:
        """GitHub's "no commits between" is reported with guidance."""
        forge = _forge()
        forge.fail(
            'create_pull_request',
            ForgeError(E.PR_NO_DIFF, 'No commits between develop and the working branch', status=422, hint='Sync it.'),
        )

        result = await _engine(forge).version_release(_release(), [PAYMENTS])

        assert not result.success
        assert result.errors == ['acme/payments: No commits between develop and the working branch Sync it.']

    @pytest.mark.asyncio
    async def test_ref_moved_is_retried(self) -> None:
        """A moved ref is re-diffed and committed again."""
        forge = _forge()
        forge.ref_moves = 2

        result = await _engine(forge).version_release(_release(), [PAYMENTS])

        assert result.ok
        assert forge.ref_moves == 0
        assert len(forge.commits) == 1

    @pytest.mark.asyncio
    async def test_ref_moved_gives_up(self) -> None:
        """Retries are bounded; the repository is then reported as failed."""
        forge = _forge()
        forge.ref_moves = 10

        result = await _engine(forge).version_release(_release(), [PAYMENTS])

        assert forge.ref_moves == 10 - 4
        assert forge.commits == []
        assert len(result.errors) == 1
        assert not result.success

    @pytest.mark.asyncio
    async def test_success_when_at_most_half_fail(self) -> None:
        """One failure out of three targets is still a success."""
        forge = _forge('acme/payments', 'acme/ledger', 'acme/infra')
        forge.fail('create_branch', ForgeError(E.FORGE_REQUEST_FAILED, 'boom', status=500), scope='acme/infra')

        result = await _engine(forge).version_release(
            _release(), [PAYMENTS, LEDGER, 'https://github.com/acme/infra']
        )

        assert result.success
        assert not result.ok
        assert set(result.pull_requests) == {'acme/payments', 'acme/ledger'}

    @pytest.mark.asyncio
    async def test_failure_when_most_fail(self) -> None:
        """Two failures out of three targets is a failure."""
        forge = _forge('acme/payments', 'acme/ledger', 'acme/infra')
        for repo in ('acme/ledger', 'acme/infra'):
            forge.fail('create_branch', ForgeError(E.FORGE_REQUEST_FAILED, 'boom', status=500), scope=repo)

        result = await _engine(forge).version_release(
            _release(), [PAYMENTS, LEDGER, 'https://github.com/acme/infra']
        )

        assert not result.success
        assert len(result.errors) == 2

    @pytest.mark.asyncio
    async def test_invalid_url_is_an_error(self) -> None:
        """A non-GitHub URL fails that target only."""
        forge = _forge()
        result = await _engine(forge).version_release(_release(), [PAYMENTS, 'not a url'])
        assert len(result.errors) == 1
        assert 'acme/payments' in result.pull_requests

    @pytest.mark.asyncio
    async def test_invalid_url_leaves_store_record_clean(self) -> None:
        """A bad target is reported, the good one still marks the record versioned."""
        forge = _forge()
        store = LocalReleaseStore()
        stored = await store.create(_release())

        result = await _engine(forge, store).version_release(stored, [PAYMENTS, 'not a url'])

        assert len(result.errors) == 1
        assert 'acme/payments' in result.pull_requests
        record = await store.get(stored.id)
        assert record is not None
        assert record.is_versioned is True
        assert [r.url for r in record.repositories] == [PAYMENTS]

    @pytest.mark.asyncio
    async def test_custom_scripts_dir(self) -> None:
        """Scripts without a path are committed and linked under the configured directory."""
        forge = _forge()
        release = _release(scripts=False)
        release.scripts = [Script(name='a.sql', content='SELECT 1;')]
        engine = VersioningEngine(forge, None, HelperConfig(scripts_dir='db', retry_backoff=0.0))

        result = await engine.version_release(release, [PAYMENTS])

        assert result.ok
        assert forge.commits[0]['paths'] == [DOC, 'db/D1/a.sql']
        document = forge.file('acme/payments', WORKING, DOC)
        assert document is not None
        assert 'db/D1/a.sql' in document
        assert 'scripts/D1/a.sql' not in document

    @pytest.mark.asyncio
    async def test_enterprise_host(self) -> None:
        """URLs must point at the configured instance; stored URLs keep its host."""
        forge = _forge('acme/payments', 'acme/ledger')
        store = LocalReleaseStore()
        release = _release()
        release.repositories = []
        stored = await store.create(release)
        config = HelperConfig(github_base_url='https://ghe.corp.com/api/v3', retry_backoff=0.0)

        result = await VersioningEngine(forge, store, config).version_release(
            stored, ['https://ghe.corp.com/acme/payments', LEDGER]
        )

        assert list(result.pull_requests) == ['acme/payments']
        assert len(result.errors) == 1
        record = await store.get(stored.id)
        assert record is not None
        assert [r.url for r in record.repositories] == ['https://ghe.corp.com/acme/payments']

    @pytest.mark.asyncio
    async def test_no_targets(self) -> None:
        """An empty selection raises RH-NO-REPOSITORIES-SELECTED."""
        with pytest.raises(ReleaseHelperError) as excinfo:
            await _engine(_forge()).version_release(_release(), [])
        assert excinfo.value.code == E.NO_REPOSITORIES_SELECTED

    @pytest.mark.asyncio
    async def test_fatal_error_propagates(self) -> None:
        """An unreachable host aborts the run."""
        forge = _forge()
        forge.fail('create_branch', ForgeError(E.FORGE_UNREACHABLE, 'connection refused'))
        with pytest.raises(ForgeError):
            await _engine(forge).version_release(_release(), [PAYMENTS])

    @pytest.mark.asyncio
    async def test_marks_store_record_versioned(self) -> None:
        """A produced PR flips the flag and records every target repository."""
        forge = _forge('acme/payments', 'acme/ledger')
        store = LocalReleaseStore()
        stored = await store.create(_release())

        await _engine(forge, store).version_release(stored, [PAYMENTS, LEDGER])

        record = await store.get(stored.id)
        assert record is not None
        assert record.is_versioned is True
        ledger = [r for r in record.repositories if r.name == 'ledger']
        assert ledger
        assert ledger[0].release_branch == WORKING

    @pytest.mark.asyncio
    async def test_store_untouched_without_pr(self) -> None:
        """Nothing published means the record stays unversioned."""
        forge = _forge()
        forge.fail('create_branch', ForgeError(E.FORGE_REQUEST_FAILED, 'boom', status=500))
        store = LocalReleaseStore()
        stored = await store.create(_release())

        await _engine(forge, store).version_release(stored, [PAYMENTS])

        record = await store.get(stored.id)
        assert record is not None
        assert record.is_versioned is False


class TestDeleteRelease:
    """Tests for VersioningEngine.delete_release_from_github()."""

    @pytest.mark.asyncio
    async def test_removal_pr_only_where_present(self) -> None:
        """Repositories without the document on base are skipped."""
        forge = _forge('acme/payments', 'acme/ledger')
        forge.put_file('acme/payments', 'develop', DOC, 'doc')
        forge.put_file('acme/payments', 'develop', 'scripts/D1/a.sql', 'SELECT 1;')
        release = _release()
        release.repositories.append(ReleaseRepository(url=LEDGER, name='ledger'))

        result = await _engine(forge).delete_release_from_github(release)

        assert result.ok
        assert result.skipped == ['acme/ledger']
        assert list(result.pull_requests) == ['acme/payments']
        assert forge.created_branches == [('acme/payments', REMOVAL, 'develop')]
        assert forge.commits[0]['deletes'] == [DOC, 'scripts/D1/a.sql']
        assert forge.commits[0]['message'] == 'docs: remove release D1'
        assert forge.prs[0]['title'] == 'Remove Release D1'
        assert (forge.prs[0]['head'], forge.prs[0]['base']) == (REMOVAL, 'develop')
        assert forge.file('acme/payments', 'develop', DOC) == 'doc'

    @pytest.mark.asyncio
    async def test_repeat_reuses_removal_pr(self) -> None:
        """Running the removal twice keeps a single PR."""
        forge = _forge()
        forge.put_file('acme/payments', 'develop', DOC, 'doc')
        engine = _engine(forge)
        await engine.delete_release_from_github(_release())

        result = await engine.delete_release_from_github(_release())

        assert result.ok
        assert len(forge.prs) == 1
        assert len(forge.commits) == 1

    @pytest.mark.asyncio
    async def test_no_repositories(self) -> None:
        """A release listing no repository cannot be removed."""
        with pytest.raises(ReleaseHelperError) as excinfo:
            await _engine(_forge()).delete_release_from_github(Release(demand_id='D1'))
        assert excinfo.value.code == E.NO_REPOSITORIES_SELECTED


class TestQueries:
    """Tests for PR listing and pending-commit checks."""

    @staticmethod
    def _add_pr(forge: FakeGitHub, title: str, *, base: str = 'develop', head: str = WORKING) -> None:
        forge.prs.append({
            'repo': 'acme/payments',
            'number': len(forge.prs) + 1,
            'title': title,
            'head': head,
            'base': base,
            'body': '',
            'state': 'open',
        })

    @pytest.mark.asyncio
    async def test_open_release_pull_requests(self) -> None:
        """Release and removal PRs into the base branch are recognized."""
        forge = _forge('acme/payments', 'acme/ledger')
        self._add_pr(forge, 'Release D1: Rotate keys')
        self._add_pr(forge, 'Remove Release D2', head=REMOVAL)
        self._add_pr(forge, 'chore: bump deps')
        self._add_pr(forge, 'Release D3', base='main')
        forge.fail('list_pull_requests', ForgeError(E.FORGE_REQUEST_FAILED, 'boom', status=500), scope='acme/ledger')

        found = await _engine(forge).open_release_pull_requests()

        assert [(p.repo, p.demand_id, p.removal) for p in found] == [
            ('acme/payments', 'D1', False),
            ('acme/payments', 'D2', True),
        ]

    @pytest.mark.asyncio
    async def test_open_release_pull_requests_for_urls(self) -> None:
        """An explicit URL list skips repository discovery."""
        forge = _forge()
        self._add_pr(forge, 'Release D1')
        found = await _engine(forge).open_release_pull_requests([PAYMENTS])
        assert [p.demand_id for p in found] == ['D1']
        assert ('list_accessible_repositories', '') not in forge.calls

    @pytest.mark.asyncio
    async def test_open_release_pull_requests_skip_bad_urls(self) -> None:
        """A URL that names no repository on the instance is skipped."""
        forge = _forge()
        self._add_pr(forge, 'Release D1')
        found = await _engine(forge).open_release_pull_requests(['not a url', 'https://gitlab.com/acme/x', PAYMENTS])
        assert [p.demand_id for p in found] == ['D1']

    @pytest.mark.asyncio
    async def test_has_pending_commits(self) -> None:
        """True only once the working branch is ahead of base."""
        forge = _forge()
        engine = _engine(forge)
        assert await engine.has_pending_commits(_release()) is False
        await engine.version_release(_release(), [PAYMENTS])
        assert await engine.has_pending_commits(_release()) is True
