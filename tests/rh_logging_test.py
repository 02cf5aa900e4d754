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

"""Tests for releasehelper.logging module."""

from __future__ import annotations

import logging

import structlog
from releasehelper.logging import configure_logging, get_logger, operation_context


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_quiet_wins(self) -> None:
        """quiet raises the level to WARNING even with verbose."""
        configure_logging(verbose=True, quiet=True)
        assert logging.getLogger().level == logging.WARNING

    def test_verbose(self) -> None:
        """verbose enables DEBUG."""
        configure_logging(verbose=True)
        assert logging.getLogger().level == logging.DEBUG
        configure_logging(quiet=True)

    def test_get_logger(self) -> None:
        """get_logger returns a usable structlog logger."""
        log = get_logger('releasehelper.test')
        log.info('test_event', key='value')


class TestOperationContext:
    """Tests for operation_context()."""

    def test_binds_operation_and_pass_id(self) -> None:
        """Bound keys are visible inside the block and gone after."""
        with operation_context('sync_all', demand_id='D1') as pass_id:
            bound = structlog.contextvars.get_contextvars()
            assert bound['operation'] == 'sync_all'
            assert bound['pass_id'] == pass_id
            assert bound['demand_id'] == 'D1'
            assert len(pass_id) == 8
        assert 'operation' not in structlog.contextvars.get_contextvars()

    def test_fresh_pass_id(self) -> None:
        """Each block gets its own pass id."""
        with operation_context('a') as first:
            pass
        with operation_context('a') as second:
            pass
        assert first != second
