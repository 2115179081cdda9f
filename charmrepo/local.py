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

"""A charm repository in a local directory tree."""

from __future__ import annotations

import copy
import logging
import os
import pathlib
from typing import List, Optional, Union

from . import bundle, charm
from .errors import Error, InvalidCharm, PackageNotFound, RepositoryNotFound
from .repo import CharmRevision, Repository
from .url import LOCAL_SCHEMA, URL, Reference

logger = logging.getLogger(__name__)


def _might_be_charm(path: pathlib.Path) -> bool:
    if path.is_dir():
        return not path.name.startswith('.')
    return path.is_file() and path.name.endswith(charm.ARCHIVE_SUFFIX)


class LocalRepository(Repository):
    """A local directory containing subdirectories named after a series.

    Each series directory holds the charms targeted at that series, either
    extracted or archived, and a ``bundle`` directory holds bundles::

        /path/to/repository/oneiric/mongodb/
        /path/to/repository/precise/mongodb.charm
        /path/to/repository/precise/wordpress/
        /path/to/repository/bundle/wordpress-simple/
    """

    def __init__(self, path: Union[str, os.PathLike[str]], default_series: Optional[str] = None):
        self.path = pathlib.Path(path)
        self.default_series = default_series

    def with_default_series(self, default_series: str) -> LocalRepository:
        """Return a copy of this repository with the given default series."""
        new = copy.copy(self)
        new.default_series = default_series
        return new

    def resolve(self, ref: Reference) -> URL:
        """Apply the default series to a reference."""
        return ref.url(self.default_series)

    def latest(self, *urls: URL) -> List[CharmRevision]:
        """Return the latest revision of each charm, regardless of the revision in each URL."""
        result: List[CharmRevision] = []
        for url in urls:
            try:
                ch = self.get(url.with_revision(-1))
            except Error as e:
                result.append(CharmRevision(err=e))
            else:
                result.append(CharmRevision(revision=ch.revision))
        return result

    def _check_repo(self):
        if not self.path.is_dir():
            raise RepositoryNotFound(f'no repository found at {str(self.path)!r}')

    def _not_found(self, url: URL) -> PackageNotFound:
        return PackageNotFound(f'charm not found in {str(self.path)!r}: {url}')

    def get(self, url: URL) -> charm.Charm:
        """Return the charm matching ``url``.

        If ``url`` has no revision, the charm with the highest revision is
        returned. Candidates that can't be read are logged and skipped.

        Raises:
            RepositoryNotFound: if the repository directory doesn't exist.
            PackageNotFound: if no charm matches.
        """
        if url.schema != LOCAL_SCHEMA:
            raise Error(f'local repository got URL with non-local schema: {str(url)!r}')
        self._check_repo()
        series_path = self.path / url.series
        try:
            entries = sorted(os.listdir(series_path))
        except OSError:
            raise self._not_found(url) from None

        latest: Optional[charm.Charm] = None
        for name in entries:
            # is_dir() and is_file() follow symlinks to their targets.
            path = series_path / name
            if not _might_be_charm(path):
                if path.is_symlink() and not path.exists():
                    logger.warning('Failed to load charm at %r: dangling symlink', str(path))
                continue
            try:
                ch = charm.read_charm(path)
            except (InvalidCharm, OSError) as e:
                logger.warning('Failed to load charm at %r: %s', str(path), e)
                continue
            if ch.meta.name != url.name:
                continue
            if ch.revision == url.revision:
                return ch
            if latest is None or ch.revision > latest.revision:
                latest = ch
        if url.revision == -1 and latest is not None:
            return latest
        raise self._not_found(url)

    def get_bundle(self, url: URL) -> bundle.Bundle:
        """Return the bundle named by ``url`` from the repository's ``bundle`` directory.

        Raises:
            RepositoryNotFound: if the repository directory doesn't exist.
            PackageNotFound: if there is no such bundle.
            InvalidBundle: if the bundle exists but can't be read.
        """
        if url.schema != LOCAL_SCHEMA:
            raise Error(f'local repository got URL with non-local schema: {str(url)!r}')
        self._check_repo()
        bundles_path = self.path / 'bundle'
        for path in (bundles_path / url.name, bundles_path / f'{url.name}{bundle.ARCHIVE_SUFFIX}'):
            if path.exists():
                return bundle.read_bundle(path)
        raise PackageNotFound(f'bundle not found in {str(self.path)!r}: {url}')
