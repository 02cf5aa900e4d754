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

"""Release data model.

A :class:`Release` is the unit of work: one demand, the people
responsible for it, the secrets and scripts it needs, and the
repositories it touches. The same release may be mirrored into several
repositories; :attr:`Release.demand_id` is the join key across all of
them and is unique (case-insensitively) within a store.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Release             │ The release checklist for one demand.         │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ is_versioned        │ True once the document is on develop in at    │
    │                     │ least one repository. Local edits reset it.   │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ GitHubReleaseFile   │ "I saw releases/release_X.md on branch Y of   │
    │                     │ repo Z." Never persisted.                     │
    └─────────────────────┴────────────────────────────────────────────────┘

Serialization uses camelCase keys (``demandId``, ``isVersioned``, ...)
so stores written by earlier versions of the tool stay readable.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Environment(str, Enum):
    """Deployment environment a secret belongs to."""

    DEV = 'DEV'
    QAS = 'QAS'
    PRD = 'PRD'


class SecretStatus(str, Enum):
    """Provisioning status of a secret."""

    PENDING = 'PENDING'
    CONFIGURED = 'CONFIGURED'
    NOT_REQUIRED = 'NOT_REQUIRED'


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_entry_id() -> str:
    """Return a short random identifier for a list entry."""
    return uuid.uuid4().hex[:12]


def new_release_id() -> str:
    """Return a fresh opaque release id (``REL-<hex>``)."""
    return f'REL-{uuid.uuid4().hex[:16]}'


def _parse_datetime(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _enum_or(enum_cls: type[Enum], value: object, default: Enum) -> Any:  # noqa: ANN401
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        return default


@dataclass
class Responsible:
    """People accountable for a release.

    Attributes:
        dev: Developer.
        functional: Functional analyst.
        tech_lead: Tech lead (``LT`` in older documents).
        sre: Site reliability engineer.
    """

    dev: str = ''
    functional: str = ''
    tech_lead: str = ''
    sre: str = ''

    def to_dict(self) -> dict[str, str]:
        """Serialize to the store format."""
        return {'dev': self.dev, 'functional': self.functional, 'lt': self.tech_lead, 'sre': self.sre}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Responsible:  # noqa: ANN401
        """Deserialize from the store format."""
        data = data or {}
        return cls(
            dev=data.get('dev', '') or '',
            functional=data.get('functional', '') or '',
            tech_lead=data.get('lt', data.get('techLead', '')) or '',
            sre=data.get('sre', '') or '',
        )


@dataclass
class Secret:
    """A key or secret that must exist before the release ships."""

    environment: Environment = Environment.DEV
    key: str = ''
    description: str = ''
    status: SecretStatus = SecretStatus.PENDING
    id: str = field(default_factory=new_entry_id)

    def to_dict(self) -> dict[str, str]:
        """Serialize to the store format."""
        return {
            'id': self.id,
            'environment': self.environment.value,
            'key': self.key,
            'description': self.description,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Secret:  # noqa: ANN401
        """Deserialize from the store format."""
        return cls(
            environment=_enum_or(Environment, data.get('environment', 'DEV'), Environment.DEV),
            key=data.get('key', '') or '',
            description=data.get('description', '') or '',
            status=_enum_or(SecretStatus, data.get('status', 'PENDING'), SecretStatus.PENDING),
            id=data.get('id') or new_entry_id(),
        )


@dataclass
class Script:
    """A script that runs as part of the release.

    Attributes:
        name: File name, unique within the release.
        path: Repository path, normally ``scripts/<demandId>/<name>``.
        content: Script body when known. Documents never inline it.
        change_id: Change request identifier (CHG).
    """

    name: str = ''
    path: str = ''
    content: str | None = None
    change_id: str = ''
    id: str = field(default_factory=new_entry_id)

    def to_dict(self) -> dict[str, Any]:  # noqa: ANN401
        """Serialize to the store format."""
        data: dict[str, Any] = {'id': self.id, 'name': self.name, 'path': self.path}  # noqa: ANN401
        if self.content is not None:
            data['content'] = self.content
        if self.change_id:
            data['changeId'] = self.change_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Script:  # noqa: ANN401
        """Deserialize from the store format."""
        return cls(
            name=data.get('name', '') or '',
            path=data.get('path', '') or '',
            content=data.get('content'),
            change_id=data.get('changeId', '') or '',
            id=data.get('id') or new_entry_id(),
        )


@dataclass
class ReleaseRepository:
    """A repository impacted by the release.

    Attributes:
        url: Repository web URL (``https://github.com/<owner>/<repo>``).
        name: Repository name, derived from the URL.
        impact: Free-text description of the change in this repository.
        release_branch: Branch the document was last observed on.
    """

    url: str = ''
    name: str = ''
    impact: str = ''
    release_branch: str = ''
    id: str = field(default_factory=new_entry_id)

    def to_dict(self) -> dict[str, str]:
        """Serialize to the store format."""
        data = {'id': self.id, 'url': self.url, 'name': self.name, 'impact': self.impact}
        if self.release_branch:
            data['releaseBranch'] = self.release_branch
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReleaseRepository:  # noqa: ANN401
        """Deserialize from the store format."""
        return cls(
            url=data.get('url', '') or '',
            name=data.get('name', '') or '',
            impact=data.get('impact', '') or '',
            release_branch=data.get('releaseBranch', '') or '',
            id=data.get('id') or new_entry_id(),
        )


@dataclass
class Release:
    """One release, as held by the store and mirrored into repositories."""

    demand_id: str = ''
    title: str = ''
    description: str = ''
    responsible: Responsible = field(default_factory=Responsible)
    secrets: list[Secret] = field(default_factory=list)
    scripts: list[Script] = field(default_factory=list)
    repositories: list[ReleaseRepository] = field(default_factory=list)
    observations: str = ''
    id: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str = ''
    updated_by: str = ''
    is_versioned: bool = False

    @property
    def key(self) -> str:
        """Case-insensitive demand key."""
        return self.demand_id.strip().upper()

    def copy(self) -> Release:
        """Return a deep copy; stores never hand out their own instances."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:  # noqa: ANN401
        """Serialize to the store format."""
        return {
            'id': self.id,
            'demandId': self.demand_id,
            'title': self.title,
            'description': self.description,
            'responsible': self.responsible.to_dict(),
            'secrets': [s.to_dict() for s in self.secrets],
            'scripts': [s.to_dict() for s in self.scripts],
            'repositories': [r.to_dict() for r in self.repositories],
            'observations': self.observations,
            'createdAt': _format_datetime(self.created_at),
            'updatedAt': _format_datetime(self.updated_at),
            'createdBy': self.created_by,
            'updatedBy': self.updated_by,
            'isVersioned': self.is_versioned,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Release:  # noqa: ANN401
        """Deserialize from the store format.

        Raises:
            ValueError: If a timestamp is malformed.
        """
        return cls(
            id=data.get('id', '') or '',
            demand_id=data.get('demandId', '') or '',
            title=data.get('title', '') or '',
            description=data.get('description', '') or '',
            responsible=Responsible.from_dict(data.get('responsible')),
            secrets=[Secret.from_dict(s) for s in data.get('secrets') or []],
            scripts=[Script.from_dict(s) for s in data.get('scripts') or []],
            repositories=[ReleaseRepository.from_dict(r) for r in data.get('repositories') or []],
            observations=data.get('observations', '') or '',
            created_at=_parse_datetime(data.get('createdAt')),
            updated_at=_parse_datetime(data.get('updatedAt')),
            created_by=data.get('createdBy', '') or '',
            updated_by=data.get('updatedBy', '') or '',
            is_versioned=bool(data.get('isVersioned', False)),
        )


@dataclass(frozen=True)
class GitHubReleaseFile:
    """A release document observed on one branch of one repository.

    Attributes:
        repo: Repository full name (``owner/name``).
        name: File name (``release_<demandId>.md``).
        path: Repository path of the file.
        sha: Blob SHA at listing time.
        branch: Branch the file was listed on.
    """

    repo: str
    name: str
    path: str
    sha: str
    branch: str

    @property
    def owner(self) -> str:
        """Repository owner."""
        return self.repo.split('/', 1)[0]

    @property
    def repo_name(self) -> str:
        """Repository name without the owner."""
        return self.repo.split('/', 1)[-1]


__all__ = [
    'Environment',
    'GitHubReleaseFile',
    'Release',
    'ReleaseRepository',
    'Responsible',
    'Script',
    'Secret',
    'SecretStatus',
    'new_entry_id',
    'new_release_id',
    'utcnow',
]
