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

"""Pure reconciliation of a stored release with a document read from GitHub.

No I/O happens here; the sync engine fetches, this module decides.

Precedence rules::

    ┌──────────────────────┬───────────────────────────────────────────────┐
    │ Source branch        │ Document fields                               │
    ├──────────────────────┼───────────────────────────────────────────────┤
    │ working branch       │ Incoming wins outright, empty values included │
    │                      │ (latest human edit, not merged yet).          │
    ├──────────────────────┼───────────────────────────────────────────────┤
    │ base branch          │ Incoming wins where it carries a value; empty │
    │                      │ incoming values keep what the store has.      │
    └──────────────────────┴───────────────────────────────────────────────┘

    repositories   union keyed by owner/repo, never dropped
    script bodies  incoming body, else the stored body of the same name
    attribution    commit history when known, else what the store has
    id             always the stored id

Branch stamps on repository entries rank by specificity::

    branch named in the document  >  working branch  >  base branch

Usage::

    from releasehelper.merge import merge_release

    merged = merge_release(
        existing,
        parsed,
        source_branch='feature/upsert-release',
        working_branch='feature/upsert-release',
        observed_repo_url='https://github.com/acme/payments',
        is_versioned=False,
    )
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from releasehelper.models import (
    Release,
    ReleaseRepository,
    Responsible,
    Script,
    new_release_id,
    utcnow,
)
from releasehelper.paths import normalize_repo_url, repo_name_from_url

_RESPONSIBLE_FIELDS = ('dev', 'functional', 'tech_lead', 'sre')


@dataclass(frozen=True)
class Attribution:
    """Authorship taken from a file's commit history.

    Any field may be missing when the history lookup failed or was
    partial; missing fields fall back to the stored values.
    """

    created_by: str = ''
    created_at: datetime | None = None
    updated_by: str = ''
    updated_at: datetime | None = None


def branch_specificity(branch: str, *, working_branch: str, base_branches: Sequence[str] = ()) -> int:
    """Rank *branch* for repository stamping; higher is more specific."""
    if not branch:
        return -1
    if branch in base_branches:
        return 0
    if branch == working_branch:
        return 1
    return 2


def _repo_key(repo: ReleaseRepository) -> str:
    return normalize_repo_url(repo.url) if repo.url else repo.name.strip().lower()


def merge_repositories(
    existing: Sequence[ReleaseRepository],
    incoming: Sequence[ReleaseRepository],
    *,
    observed_repo_url: str = '',
    observed_branch: str = '',
    working_branch: str = '',
    base_branches: Sequence[str] = (),
) -> list[ReleaseRepository]:
    """Union *existing* and *incoming* repository entries.

    Entries match on ``owner/repo`` (case-insensitive), falling back to
    the name. Existing order is kept and new entries are appended. The
    repository the document was observed in is always part of the
    result, stamped with *observed_branch* unless a more specific branch
    is already recorded.
    """

    def rank(branch: str) -> int:
        return branch_specificity(branch, working_branch=working_branch, base_branches=base_branches)

    merged: dict[str, ReleaseRepository] = {}
    for repo in existing:
        merged.setdefault(_repo_key(repo), dataclasses.replace(repo))

    for repo in incoming:
        key = _repo_key(repo)
        current = merged.get(key)
        if current is None:
            merged[key] = dataclasses.replace(repo, name=repo.name or repo_name_from_url(repo.url))
            continue
        current.url = current.url or repo.url
        current.name = current.name or repo.name or repo_name_from_url(repo.url)
        if repo.impact:
            current.impact = repo.impact
        if rank(repo.release_branch) > rank(current.release_branch):
            current.release_branch = repo.release_branch

    if observed_repo_url:
        key = normalize_repo_url(observed_repo_url)
        current = merged.get(key)
        if current is None:
            current = ReleaseRepository(url=observed_repo_url, name=repo_name_from_url(observed_repo_url))
            merged[key] = current
        if rank(observed_branch) > rank(current.release_branch):
            current.release_branch = observed_branch

    return list(merged.values())


def _merge_scripts(existing: Sequence[Script], incoming: Sequence[Script]) -> list[Script]:
    bodies = {s.name: s.content for s in existing if s.content is not None}
    merged: list[Script] = []
    for script in incoming:
        content = script.content if script.content is not None else bodies.get(script.name)
        merged.append(dataclasses.replace(script, content=content))
    return merged


def _coalesce_responsible(existing: Responsible, incoming: Responsible) -> Responsible:
    return Responsible(**{f: getattr(incoming, f) or getattr(existing, f) for f in _RESPONSIBLE_FIELDS})


def merge_release(
    existing: Release | None,
    incoming: Release,
    *,
    source_branch: str,
    working_branch: str,
    base_branches: Sequence[str] = (),
    observed_repo_url: str = '',
    attribution: Attribution | None = None,
    is_versioned: bool = False,
    now: datetime | None = None,
) -> Release:
    """Reconcile a stored release with one parsed from *source_branch*.

    Args:
        existing: The stored record, or None for a first discovery.
        incoming: Release parsed from the document (scripts possibly
            enriched with their bodies).
        source_branch: Branch the document was read from.
        working_branch: Name of the working branch.
        base_branches: Base branch names, for repository stamping.
        observed_repo_url: Repository the document was read from.
        attribution: Commit-history authorship, if known.
        is_versioned: Versioned flag for the result.
        now: Clock override for timestamps.

    Returns:
        A new :class:`Release`; neither argument is mutated.
    """
    now = now or utcnow()
    attribution = attribution or Attribution()
    base = existing.copy() if existing is not None else Release()
    authoritative = source_branch == working_branch

    if authoritative:
        title = incoming.title
        description = incoming.description
        observations = incoming.observations
        responsible = dataclasses.replace(incoming.responsible)
        secrets = [dataclasses.replace(s) for s in incoming.secrets]
        scripts = _merge_scripts(base.scripts, incoming.scripts)
    else:
        title = incoming.title or base.title
        description = incoming.description or base.description
        observations = incoming.observations or base.observations
        responsible = _coalesce_responsible(base.responsible, incoming.responsible)
        secrets = [dataclasses.replace(s) for s in incoming.secrets] if incoming.secrets else base.secrets
        scripts = _merge_scripts(base.scripts, incoming.scripts) if incoming.scripts else base.scripts

    repositories = merge_repositories(
        base.repositories,
        incoming.repositories,
        observed_repo_url=observed_repo_url,
        observed_branch=source_branch,
        working_branch=working_branch,
        base_branches=base_branches,
    )

    return Release(
        id=base.id or new_release_id(),
        demand_id=base.demand_id or incoming.demand_id,
        title=title,
        description=description,
        responsible=responsible,
        secrets=secrets,
        scripts=scripts,
        repositories=repositories,
        observations=observations,
        created_at=attribution.created_at or base.created_at or now,
        updated_at=attribution.updated_at or base.updated_at or now,
        created_by=attribution.created_by or base.created_by,
        updated_by=attribution.updated_by or base.updated_by,
        is_versioned=is_versioned,
    )


def _secret_rows(release: Release) -> list[tuple[str, ...]]:
    return [(s.environment.value, s.key, s.description, s.status.value) for s in release.secrets]


def _script_rows(release: Release) -> list[tuple[str, ...]]:
    return [(s.name, s.path, s.change_id) for s in release.scripts]


def has_tracked_changes(existing: Release, incoming: Release) -> bool:
    """Whether *incoming* differs from *existing* in any document-borne field.

    Entry ids and script bodies are ignored. A repository listed in
    *incoming* that *existing* lacks, or whose impact differs, counts as
    a change; repositories only *existing* knows about do not.
    """
    if (existing.title, existing.description, existing.observations) != (
        incoming.title,
        incoming.description,
        incoming.observations,
    ):
        return True
    if existing.responsible != incoming.responsible:
        return True
    if _secret_rows(existing) != _secret_rows(incoming):
        return True
    if _script_rows(existing) != _script_rows(incoming):
        return True
    known = {_repo_key(r): r.impact for r in existing.repositories}
    return any(known.get(_repo_key(r)) != r.impact for r in incoming.repositories)


__all__ = [
    'Attribution',
    'branch_specificity',
    'has_tracked_changes',
    'merge_release',
    'merge_repositories',
]
