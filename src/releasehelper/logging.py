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

"""Structured logging for releasehelper.

Configures `structlog <https://www.structlog.org/>`_ with two output modes:

- **Console** (default when TTY): colored, human-readable output.
- **JSON** (``json_log=True``): machine-readable, one JSON object per line.

Both modes write to stderr. The engines are a library embedded in a UI
layer, so the host application decides when (and whether) to call
:func:`configure_logging`; until then structlog's defaults apply.

Every sync or versioning pass binds an ``operation`` and a short
``pass_id`` through :func:`operation_context`, so concurrent per-repository
events can be grouped back together when reading the log.

Usage::

    from releasehelper.logging import configure_logging, get_logger, operation_context

    configure_logging(verbose=True)
    log = get_logger(__name__)
    with operation_context('sync_all'):
        log.info('release_synced', demand_id='DMND0011870', branch='develop')
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def _resolve_level(*, verbose: bool, quiet: bool) -> int:
    """Map the verbosity flags onto a stdlib level; ``quiet`` wins."""
    if quiet:
        return logging.WARNING
    if verbose:
        return logging.DEBUG
    return logging.INFO


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    json_log: bool = False,
) -> None:
    """Configure structlog for releasehelper.

    Should be called once at startup, before any logging calls.

    Args:
        verbose: Enable debug-level output (per-request provider detail).
        quiet: Suppress info-level output (only warnings and errors).
        json_log: Use JSON output instead of colored console output.
    """
    logging.basicConfig(
        format='%(message)s',
        stream=sys.stderr,
        level=_resolve_level(verbose=verbose, quiet=quiet),
        force=True,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_log:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # httpx logs through the stdlib root handlers; render those the same way.
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str = 'releasehelper') -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger.

    Args:
        name: Logger name, used for filtering and identification.

    Returns:
        A :class:`structlog.stdlib.BoundLogger` instance.
    """
    return structlog.get_logger(name)


@contextmanager
def operation_context(operation: str, **extra: object) -> Iterator[str]:
    """Bind ``operation`` and a fresh ``pass_id`` to every event in the block.

    Context variables are copied into tasks created inside the block, so
    fan-out via :func:`asyncio.gather` inherits the binding.

    Args:
        operation: Engine entry point name (e.g. ``"sync_all"``).
        **extra: Additional key/value pairs to bind.

    Yields:
        The generated ``pass_id``.
    """
    pass_id = uuid.uuid4().hex[:8]
    with structlog.contextvars.bound_contextvars(operation=operation, pass_id=pass_id, **extra):
        yield pass_id


__all__ = [
    'configure_logging',
    'get_logger',
    'operation_context',
]
