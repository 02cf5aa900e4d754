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

"""Shared test fakes for releasehelper.

Provides a reusable in-memory implementation of the GitProvider protocol
so that engine tests don't need to duplicate boilerplate classes.

Usage::

    from tests._fakes import FakeGitHub

    forge = FakeGitHub()
    forge.add_repo('acme/payments')
"""

from tests._fakes._forge import FakeGitHub as FakeGitHub

__all__ = [
    'FakeGitHub',
]
