# Copyright 2025 Canonical Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""The interface shared by every charm repository."""

from __future__ import annotations

import abc
import dataclasses
from typing import List, Optional

from .charm import Charm
from .url import URL, Reference


@dataclasses.dataclass
class CharmRevision:
    """The latest revision of a charm, or the error met while looking it up."""

    revision: int = 0
    sha256: str = ''
    err: Optional[Exception] = None


class Repository(abc.ABC):
    """A collection of charms.

    Callers should depend only on this interface: the charm store, a local
    directory tree, and the in-memory test double all implement it.
    """

    @abc.abstractmethod
    def resolve(self, ref: Reference) -> URL:
        """Return the fully qualified URL for a reference, filling in its series."""

    @abc.abstractmethod
    def get(self, url: URL) -> Charm:
        """Return the charm for ``url``; an unrevisioned URL means the latest revision."""

    @abc.abstractmethod
    def latest(self, *urls: URL) -> List[CharmRevision]:
        """Return the latest revision of each charm, regardless of the revision in each URL.

        There is exactly one result per URL. A failure looking up one charm
        is reported in that result's ``err`` and doesn't affect the others.
        """


def latest(repo: Repository, url: URL) -> int:
    """Return the latest revision of the charm referenced by ``url``.

    This calls :meth:`Repository.latest` with a single URL, and raises that
    result's own error if it has one.
    """
    revisions = repo.latest(url)
    if len(revisions) != 1:
        raise RuntimeError(f'expected 1 result, got {len(revisions)}')
    rev = revisions[0]
    if rev.err is not None:
        raise rev.err
    return rev.revision
