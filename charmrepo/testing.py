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

"""Infrastructure for testing code that uses charm repositories."""

from __future__ import annotations

import os
import pathlib
import shutil
import threading
from typing import Dict, List, Optional, Union

from .bundle import BundleDir
from .charm import Charm, CharmArchive, CharmDir
from .errors import Error, PackageNotFound
from .repo import CharmRevision, Repository
from .url import LOCAL_SCHEMA, URL, Reference


class TestRepo:
    """A charm repository on disk, laid out as ``<path>/<series>/<name>``, used by tests.

    Bundles live in ``<path>/bundle/<name>``. Helpers that clone or archive
    write into a caller-supplied directory and never modify the repository.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, path: Union[str, os.PathLike[str]], default_series: str):
        self.path = pathlib.Path(path)
        self.default_series = default_series
        if not self.path.is_dir():
            raise FileNotFoundError(f'cannot read repository found at {str(self.path)!r}')

    def charm_dir_path(self, name: str) -> pathlib.Path:
        """Return the path of the charm directory named ``name`` in the default series."""
        return self.path / self.default_series / name

    def charm_dir(self, name: str) -> CharmDir:
        return CharmDir(self.charm_dir_path(name))

    def bundle_dir_path(self, name: str) -> pathlib.Path:
        return self.path / 'bundle' / name

    def bundle_dir(self, name: str) -> BundleDir:
        return BundleDir(self.bundle_dir_path(name))

    def cloned_dir_path(self, dst: Union[str, os.PathLike[str]], name: str) -> pathlib.Path:
        """Copy the charm directory named ``name`` into ``dst`` and return the copy's path."""
        return pathlib.Path(shutil.copytree(self.charm_dir_path(name), pathlib.Path(dst) / name))

    def cloned_bundle_dir_path(self, dst: Union[str, os.PathLike[str]], name: str) -> pathlib.Path:
        return pathlib.Path(shutil.copytree(self.bundle_dir_path(name), pathlib.Path(dst) / name))

    def renamed_cloned_dir_path(
        self, dst: Union[str, os.PathLike[str]], name: str, new_name: str
    ) -> pathlib.Path:
        """Copy the charm directory named ``name`` into ``dst``, renamed to ``new_name``."""
        return pathlib.Path(
            shutil.copytree(self.charm_dir_path(name), pathlib.Path(dst) / new_name)
        )

    def cloned_dir(self, dst: Union[str, os.PathLike[str]], name: str) -> CharmDir:
        return CharmDir(self.cloned_dir_path(dst, name))

    def cloned_url(self, dst: Union[str, os.PathLike[str]], series: str, name: str) -> URL:
        """Clone the charm named ``name`` into ``dst/series`` and return its local URL."""
        series_dir = pathlib.Path(dst) / series
        series_dir.mkdir(parents=True, exist_ok=True)
        self.cloned_dir_path(series_dir, name)
        return URL(LOCAL_SCHEMA, '', series, name, -1)

    def charm_archive_path(self, dst: Union[str, os.PathLike[str]], name: str) -> pathlib.Path:
        """Archive the charm directory named ``name`` into ``dst/archive.charm``."""
        path = pathlib.Path(dst) / 'archive.charm'
        with path.open('wb') as f:
            self.charm_dir(name).archive_to(f)
        return path

    def charm_archive(self, dst: Union[str, os.PathLike[str]], name: str) -> CharmArchive:
        return CharmArchive(self.charm_archive_path(dst, name))

    def bundle_archive_path(self, dst: Union[str, os.PathLike[str]], name: str) -> pathlib.Path:
        """Archive the bundle directory named ``name`` into ``dst/archive.bundle``."""
        path = pathlib.Path(dst) / 'archive.bundle'
        with path.open('wb') as f:
            self.bundle_dir(name).archive_to(f)
        return path


class MockCharmStore(Repository):
    """An in-memory :class:`Repository` that isolates tests from the real charm store."""

    def __init__(self):
        self._charms: Dict[str, Dict[int, Charm]] = {}

        self._lock = threading.Lock()  # protects all the following attributes
        self._auth_attrs = ''
        self._test_mode = False
        self._default_series = ''

    @property
    def auth_attrs(self) -> str:
        with self._lock:
            return self._auth_attrs

    @auth_attrs.setter
    def auth_attrs(self, auth_attrs: str):
        with self._lock:
            self._auth_attrs = auth_attrs

    @property
    def test_mode(self) -> bool:
        with self._lock:
            return self._test_mode

    @test_mode.setter
    def test_mode(self, test_mode: bool):
        with self._lock:
            self._test_mode = test_mode

    def with_test_mode(self, test_mode: bool) -> MockCharmStore:
        """Set the test mode and return the same store, so tests can observe the change."""
        self.test_mode = test_mode
        return self

    @property
    def default_series(self) -> str:
        with self._lock:
            return self._default_series

    @default_series.setter
    def default_series(self, series: str):
        with self._lock:
            self._default_series = series

    def resolve(self, ref: Reference) -> URL:
        return ref.url(self.default_series)

    def set_charm(self, url: URL, archive: Optional[Charm]):
        """Store or remove a charm.

        ``url`` must be revisioned. If ``archive`` is None the charm is
        removed, otherwise it is stored; its name and revision must match ``url``.
        """
        if url.revision < 0:
            raise Error('bad charm url revision')
        base = str(url.with_revision(-1))
        with self._lock:
            if archive is None:
                self._charms.get(base, {}).pop(url.revision, None)
                return
            if archive.meta.name != url.name or archive.revision != url.revision:
                raise Error(
                    f'charm url {url} mismatch with archive {archive.meta.name}-{archive.revision}'
                )
            self._charms.setdefault(base, {})[url.revision] = archive

    def _interpret(self, url: URL) -> tuple[str, int]:
        """Return the unrevisioned key for url, and its revision or else the latest one stored."""
        base, rev = str(url.with_revision(-1)), url.revision
        if rev == -1:
            rev = max(self._charms.get(base, {}), default=-1)
        return base, rev

    def get(self, url: URL) -> Charm:
        with self._lock:
            base, rev = self._interpret(url)
            ch = self._charms.get(base, {}).get(rev)
        if ch is None:
            raise PackageNotFound(f'charm not found in mock store: {url}')
        return ch

    def latest(self, *urls: URL) -> List[CharmRevision]:
        result: List[CharmRevision] = []
        with self._lock:
            for url in urls:
                url = url.with_revision(-1)
                base, rev = self._interpret(url)
                if rev in self._charms.get(base, {}):
                    result.append(CharmRevision(revision=rev))
                else:
                    result.append(
                        CharmRevision(err=PackageNotFound(f'charm not found in mock store: {url}'))
                    )
        return result
