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

"""Markdown codec for release documents.

The release document is the wire format exchanged with GitHub. Render
is deterministic (no timestamps), so rendering an unchanged release
produces byte-identical content and no redundant commit.

Document layout::

    # Release DMND0011870

    **Rotate payment gateway credentials**

    ## 1. Responsible
    | Role | Name |
    |------|------|
    | Dev | Ana |
    | Functional | - |
    | Tech Lead | - |
    | SRE | - |

    ## 2. Description
    > Multi-line text, one quoted line per line.

    ## 3. Secrets
    | Environment | Key | Description | Status |
    |-------------|-----|-------------|--------|
    | PRD | API_KEY | desc | PENDING |

    ## 4. Scripts
    | Script | Path | CHG |
    |--------|------|-----|
    | - | None | - |

    ## 5. Repositories
    | Repository | Impact | Release Branch |
    |------------|--------|----------------|
    | https://github.com/acme/payments | New endpoint | - |

    ## 6. Observations
    Free text.

Parsing rules:

- Sections are located by their number, so the historical Portuguese
  headers (``## 3. Keys ou Secrets Necessárias``) parse the same way.
  Unnumbered headers fall back to a keyword match.
- Header and separator rows are skipped, as is any row whose first cell
  is ``-`` (the "no entries" placeholder).
- Empty scalar values render as ``-`` and parse back to ``''``.
- ``|`` inside a value is escaped as ``\\|``; newlines become ``<br>``.
- A value that is exactly ``-`` is written as ``\\-`` and reads back as ``-``.
- A trailing ``---`` footer (written by older versions) is ignored.

Accepted normalizations (not preserved by a round trip):

- Leading and trailing whitespace of table cells, the title and the
  description is dropped.
- The title is a single line; line breaks inside it become one space.

Usage::

    from releasehelper.markdown import parse_release, render_release

    text = render_release(release)
    again = parse_release(text)
    assert again.demand_id == release.demand_id
"""

from __future__ import annotations

import re
from pathlib import Path

from releasehelper.models import (
    Environment,
    Release,
    ReleaseRepository,
    Responsible,
    Script,
    Secret,
    SecretStatus,
)
from releasehelper.paths import repo_name_from_url, script_path

EMPTY = '-'
PLACEHOLDER = 'None'
# A value that is literally '-' is written escaped so it does not read back as empty.
_LITERAL_DASH = '\\-'

SECTION_RESPONSIBLE = 1
SECTION_DESCRIPTION = 2
SECTION_SECRETS = 3
SECTION_SCRIPTS = 4
SECTION_REPOSITORIES = 5
SECTION_OBSERVATIONS = 6

_SECTION_TITLES: dict[int, str] = {
    SECTION_RESPONSIBLE: 'Responsible',
    SECTION_DESCRIPTION: 'Description',
    SECTION_SECRETS: 'Secrets',
    SECTION_SCRIPTS: 'Scripts',
    SECTION_REPOSITORIES: 'Repositories',
    SECTION_OBSERVATIONS: 'Observations',
}

# Keyword fallback for headers without a number (English and Portuguese).
_SECTION_KEYWORDS: tuple[tuple[str, int], ...] = (
    ('respons', SECTION_RESPONSIBLE),
    ('descri', SECTION_DESCRIPTION),
    ('secret', SECTION_SECRETS),
    ('keys', SECTION_SECRETS),
    ('script', SECTION_SCRIPTS),
    ('reposit', SECTION_REPOSITORIES),
    ('projeto', SECTION_REPOSITORIES),
    ('observa', SECTION_OBSERVATIONS),
)

_ROLE_LABELS: dict[str, str] = {
    'dev': 'dev',
    'developer': 'dev',
    'functional': 'functional',
    'funcional': 'functional',
    'tech lead': 'tech_lead',
    'techlead': 'tech_lead',
    'lt': 'tech_lead',
    'tl': 'tech_lead',
    'sre': 'sre',
}

_TITLE_RE = re.compile(r'^#\s*Release\s+(\S+)', re.IGNORECASE)
_SUBTITLE_RE = re.compile(r'^\*\*(.+)\*\*$')
_HEADER_RE = re.compile(r'^##(?!#)\s*(?:(\d+)\.?\s*)?(.*)$')
_SEPARATOR_RE = re.compile(r'^\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?$')
_CELL_SPLIT_RE = re.compile(r'(?<!\\)\|')
_BR_RE = re.compile(r'<br\s*/?>', re.IGNORECASE)
_LINE_BREAK_RE = re.compile(r'\s*\r?\n\s*')


def _escape_cell(value: str) -> str:
    value = value.strip()
    if not value:
        return EMPTY
    if value == EMPTY:
        return _LITERAL_DASH
    value = value.replace('\r\n', '\n').replace('|', '\\|')
    return value.replace('\n', '<br>')


def _unescape_cell(value: str) -> str:
    value = value.strip()
    if value == EMPTY:
        return ''
    if value == _LITERAL_DASH:
        return EMPTY
    return _BR_RE.sub('\n', value.replace('\\|', '|'))


def _row(*cells: str) -> str:
    return '| ' + ' | '.join(cells) + ' |'


def _table(headers: tuple[str, ...], rows: list[tuple[str, ...]]) -> list[str]:
    lines = [_row(*headers), '|' + '|'.join('-' * (len(h) + 2) for h in headers) + '|']
    if not rows:
        rows = [(EMPTY, PLACEHOLDER, *([EMPTY] * (len(headers) - 2)))]
        lines.extend(_row(*r) for r in rows)
        return lines
    lines.extend(_row(*(_escape_cell(c) for c in r)) for r in rows)
    return lines


def _text_or_empty(value: str) -> str:
    value = value.replace('\r\n', '\n').strip('\n')
    if value.strip() == EMPTY:
        return _LITERAL_DASH
    return value if value.strip() else EMPTY


def _one_line(value: str) -> str:
    return _LINE_BREAK_RE.sub(' ', value.strip())


def render_release(release: Release, *, scripts_dir: str = 'scripts') -> str:
    """Render *release* as a canonical Markdown document.

    Sections are always emitted in the same numbered order, and empty
    lists render an explicit placeholder row so the table survives a
    round trip. Scripts without an explicit path are listed under
    *scripts_dir*, which must match the directory they are committed to.
    """
    lines: list[str] = [f'# Release {release.demand_id}', '']
    title = _one_line(release.title)
    if title:
        lines += [f'**{title}**', '']

    def header(number: int) -> None:
        lines.append(f'## {number}. {_SECTION_TITLES[number]}')

    responsible = release.responsible
    header(SECTION_RESPONSIBLE)
    lines += _table(
        ('Role', 'Name'),
        [
            ('Dev', responsible.dev),
            ('Functional', responsible.functional),
            ('Tech Lead', responsible.tech_lead),
            ('SRE', responsible.sre),
        ],
    )
    lines.append('')

    header(SECTION_DESCRIPTION)
    lines += [f'> {line}'.rstrip() for line in _text_or_empty(release.description).split('\n')]
    lines.append('')

    header(SECTION_SECRETS)
    lines += _table(
        ('Environment', 'Key', 'Description', 'Status'),
        [(s.environment.value, s.key, s.description, s.status.value) for s in release.secrets],
    )
    lines.append('')

    header(SECTION_SCRIPTS)
    lines += _table(
        ('Script', 'Path', 'CHG'),
        [
            (s.name, f'`{s.path or script_path(release.demand_id, s.name, scripts_dir)}`', s.change_id)
            for s in release.scripts
        ],
    )
    lines.append('')

    header(SECTION_REPOSITORIES)
    lines += _table(
        ('Repository', 'Impact', 'Release Branch'),
        [(r.url, r.impact, r.release_branch) for r in release.repositories],
    )
    lines.append('')

    header(SECTION_OBSERVATIONS)
    lines.append(_text_or_empty(release.observations))

    return '\n'.join(lines) + '\n'


def _section_number(number: str | None, title: str) -> int | None:
    if number:
        return int(number)
    lowered = title.lower()
    for keyword, section in _SECTION_KEYWORDS:
        if keyword in lowered:
            return section
    return None


def _split_sections(lines: list[str]) -> tuple[list[str], dict[int, list[str]]]:
    """Return the preamble and the body lines of each numbered section."""
    preamble: list[str] = []
    sections: dict[int, list[str]] = {}
    current: list[str] = preamble
    for line in lines:
        match = _HEADER_RE.match(line.strip())
        if match:
            number = _section_number(match.group(1), match.group(2))
            current = sections.setdefault(number, []) if number is not None else []
            continue
        current.append(line)
    return preamble, sections


def _strip_footer(lines: list[str]) -> list[str]:
    """Drop a trailing ``---`` footer and whatever generated text follows it."""
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].strip() != '---':
            continue
        tail = [line.strip() for line in lines[index + 1 :] if line.strip()]
        if all(line.startswith('*') for line in tail):
            return lines[:index]
        break
    return lines


def _table_rows(lines: list[str]) -> list[list[str]]:
    """Return the data rows of the first pipe table in *lines*."""
    raw = [line.strip() for line in lines if line.strip().startswith('|')]
    if len(raw) >= 2 and _SEPARATOR_RE.match(raw[1]):
        raw = raw[2:]
    rows: list[list[str]] = []
    for line in raw:
        if _SEPARATOR_RE.match(line):
            continue
        cells = _CELL_SPLIT_RE.split(line)
        if cells and not cells[0].strip():
            cells = cells[1:]
        if cells and not cells[-1].strip():
            cells = cells[:-1]
        if not cells or cells[0].strip() in ('', EMPTY):
            continue
        rows.append([_unescape_cell(c) for c in cells])
    return rows


def _cell(cells: list[str], index: int) -> str:
    return cells[index] if index < len(cells) else ''


def _parse_environment(value: str) -> Environment:
    try:
        return Environment(value.strip().upper())
    except ValueError:
        return Environment.DEV


def _parse_secret_status(value: str) -> SecretStatus:
    normalized = value.strip().upper().replace(' ', '_')
    if 'PEND' in normalized:
        return SecretStatus.PENDING
    if 'CONFIGUR' in normalized:
        return SecretStatus.CONFIGURED
    return SecretStatus.NOT_REQUIRED


def _parse_responsible(lines: list[str]) -> Responsible:
    responsible = Responsible()
    for cells in _table_rows(lines):
        field_name = _ROLE_LABELS.get(' '.join(cells[0].lower().split()))
        if field_name:
            setattr(responsible, field_name, _cell(cells, 1))
    return responsible


def _free_text_value(text: str) -> str:
    stripped = text.strip()
    if stripped == EMPTY:
        return ''
    if stripped == _LITERAL_DASH:
        return EMPTY
    return text


def _parse_blockquote(lines: list[str]) -> str:
    quoted: list[str] = []
    for line in lines:
        stripped = line.strip()
        if stripped.startswith('>'):
            quoted.append(stripped[1:].removeprefix(' ').rstrip())
        elif quoted and stripped:
            # Lazy continuation line.
            quoted.append(stripped)
    text = '\n'.join(quoted).strip('\n')
    return _free_text_value(text)


def _parse_free_text(lines: list[str]) -> str:
    text = '\n'.join(line.rstrip() for line in lines).strip('\n')
    return _free_text_value(text)


def _strip_code(value: str) -> str:
    return value.strip().strip('`').strip()


def parse_release(text: str, *, scripts_dir: str = 'scripts') -> Release:
    """Parse a release document into a partial :class:`Release`.

    Only document-borne fields are filled in: ``id``, timestamps,
    attribution and ``is_versioned`` stay at their defaults, entry ids
    are fresh, and script bodies are ``None``. A document without a
    ``# Release <ID>`` line yields an empty :attr:`Release.demand_id`.
    Scripts listed without a path are placed under *scripts_dir*.
    """
    lines = _strip_footer(text.replace('\r\n', '\n').split('\n'))
    preamble, sections = _split_sections(lines)

    release = Release()
    for line in preamble:
        stripped = line.strip()
        title_match = _TITLE_RE.match(stripped)
        if title_match and not release.demand_id:
            release.demand_id = title_match.group(1)
            continue
        subtitle_match = _SUBTITLE_RE.match(stripped)
        if subtitle_match and not release.title:
            release.title = subtitle_match.group(1).strip()

    release.responsible = _parse_responsible(sections.get(SECTION_RESPONSIBLE, []))
    release.description = _parse_blockquote(sections.get(SECTION_DESCRIPTION, []))

    release.secrets = [
        Secret(
            environment=_parse_environment(cells[0]),
            key=_cell(cells, 1),
            description=_cell(cells, 2),
            status=_parse_secret_status(_cell(cells, 3)),
        )
        for cells in _table_rows(sections.get(SECTION_SECRETS, []))
    ]

    release.scripts = [
        Script(
            name=cells[0],
            path=_strip_code(_cell(cells, 1)) or script_path(release.demand_id, cells[0], scripts_dir),
            change_id=_cell(cells, 2),
        )
        for cells in _table_rows(sections.get(SECTION_SCRIPTS, []))
    ]

    release.repositories = [
        ReleaseRepository(
            url=cells[0],
            name=repo_name_from_url(cells[0]),
            impact=_cell(cells, 1),
            release_branch=_cell(cells, 2),
        )
        for cells in _table_rows(sections.get(SECTION_REPOSITORIES, []))
    ]

    release.observations = _parse_free_text(sections.get(SECTION_OBSERVATIONS, []))
    return release


def read_release_file(path: Path, *, scripts_dir: str = 'scripts') -> Release:
    """Parse the release document stored at *path*.

    Raises:
        OSError: If the file cannot be read.
    """
    return parse_release(path.read_text(encoding='utf-8-sig'), scripts_dir=scripts_dir)


__all__ = [
    'parse_release',
    'read_release_file',
    'render_release',
]
