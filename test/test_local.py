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

import logging
import os
import pathlib

import pytest

import charmrepo
from charmrepo.bundle import BundleArchive, BundleDir
from charmrepo.charm import CharmArchive, CharmDir
from charmrepo.local import LocalRepository
from charmrepo.testing import TestRepo
from charmrepo.url import URL, Reference


@pytest.fixture
def series_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / 'quantal'
    path.mkdir()
    return path


@pytest.fixture
def local_repo(tmp_path: pathlib.Path, series_dir: pathlib.Path) -> LocalRepository:
    return LocalRepository(tmp_path, 'quantal')


def _add_revisions(test_repo: TestRepo, series_dir: pathlib.Path, name: str, *revisions: int):
    for revision in revisions:
        path = test_repo.renamed_cloned_dir_path(series_dir, name, f'{name}{revision}')
        CharmDir(path).set_revision(revision)


def test_resolve(local_repo: LocalRepository):
    assert local_repo.resolve(Reference.parse('local:dummy')) == URL.parse('local:quantal/dummy')
    assert local_repo.resolve(Reference.parse('local:trusty/dummy')).series == 'trusty'


def test_resolve_without_default_series(tmp_path: pathlib.Path):
    with pytest.raises(charmrepo.MalformedIdentity, match='cannot resolve series'):
        LocalRepository(tmp_path).resolve(Reference.parse('local:dummy'))


def test_with_default_series(local_repo: LocalRepository):
    other = local_repo.with_default_series('trusty')
    assert other.default_series == 'trusty'
    assert local_repo.default_series == 'quantal'
    assert other.path == local_repo.path


def test_get_from_test_repo(test_repo: TestRepo):
    repo = LocalRepository(test_repo.path)
    ch = repo.get(URL.parse('local:quantal/wordpress'))
    assert isinstance(ch, CharmDir)
    assert ch.meta.name == 'wordpress'
    assert ch.revision == 3


def test_get_highest_revision(
    test_repo: TestRepo, local_repo: LocalRepository, series_dir: pathlib.Path
):
    _add_revisions(test_repo, series_dir, 'dummy', 2, 5, 9)
    ch = local_repo.get(URL.parse('local:quantal/dummy'))
    assert ch.revision == 9
    assert ch.path == series_dir / 'dummy9'


def test_get_exact_revision(
    test_repo: TestRepo, local_repo: LocalRepository, series_dir: pathlib.Path
):
    _add_revisions(test_repo, series_dir, 'dummy', 2, 5, 9)
    assert local_repo.get(URL.parse('local:quantal/dummy-5')).revision == 5
    with pytest.raises(charmrepo.PackageNotFound, match='charm not found in'):
        local_repo.get(URL.parse('local:quantal/dummy-7'))


def test_get_ignores_other_names(
    test_repo: TestRepo, local_repo: LocalRepository, series_dir: pathlib.Path
):
    test_repo.cloned_dir_path(series_dir, 'mysql')
    with pytest.raises(charmrepo.PackageNotFound):
        local_repo.get(URL.parse('local:quantal/dummy'))
    assert local_repo.get(URL.parse('local:quantal/mysql')).meta.name == 'mysql'


def test_get_archive(test_repo: TestRepo, local_repo: LocalRepository, series_dir: pathlib.Path):
    test_repo.charm_archive_path(series_dir, 'dummy')
    ch = local_repo.get(URL.parse('local:quantal/dummy'))
    assert isinstance(ch, CharmArchive)
    assert ch.revision == 1

    _add_revisions(test_repo, series_dir, 'dummy', 2)
    ch = local_repo.get(URL.parse('local:quantal/dummy'))
    assert isinstance(ch, CharmDir)
    assert ch.revision == 2
    assert isinstance(local_repo.get(URL.parse('local:quantal/dummy-1')), CharmArchive)


def test_get_skips_unreadable_candidates(
    test_repo: TestRepo,
    local_repo: LocalRepository,
    series_dir: pathlib.Path,
    caplog: pytest.LogCaptureFixture,
):
    (series_dir / 'broken').mkdir()
    (series_dir / 'bad.charm').write_bytes(b'not a zip')
    (series_dir / 'README').write_text('not a charm')
    _add_revisions(test_repo, series_dir, 'dummy', 4)

    with caplog.at_level(logging.WARNING, logger='charmrepo.local'):
        ch = local_repo.get(URL.parse('local:quantal/dummy'))
    assert ch.revision == 4
    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 2
    assert 'bad.charm' in messages[0]
    assert 'cannot read charm archive' in messages[0]
    assert 'broken' in messages[1]
    assert 'cannot read charm metadata' in messages[1]


@pytest.mark.parametrize(
    'filename,content',
    [
        ('revision', b'\xff\xfe\n'),
        ('metadata.yaml', b'name: dummy\nrevision: oops\n'),
    ],
)
def test_get_skips_charm_with_bad_revision(
    test_repo: TestRepo,
    local_repo: LocalRepository,
    series_dir: pathlib.Path,
    caplog: pytest.LogCaptureFixture,
    filename: str,
    content: bytes,
):
    _add_revisions(test_repo, series_dir, 'dummy', 4)
    corrupt = test_repo.renamed_cloned_dir_path(series_dir, 'dummy', 'corrupt')
    if filename == 'metadata.yaml':
        (corrupt / 'revision').unlink()
    (corrupt / filename).write_bytes(content)

    with caplog.at_level(logging.WARNING, logger='charmrepo.local'):
        ch = local_repo.get(URL.parse('local:quantal/dummy'))
    assert ch.revision == 4
    assert ch.path == series_dir / 'dummy4'
    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 1
    assert 'corrupt' in messages[0]


def test_get_skips_hidden_directories(
    test_repo: TestRepo, local_repo: LocalRepository, series_dir: pathlib.Path
):
    _add_revisions(test_repo, series_dir, 'dummy', 3)
    hidden = test_repo.renamed_cloned_dir_path(series_dir, 'dummy', '.dummy')
    CharmDir(hidden).set_revision(10)
    assert local_repo.get(URL.parse('local:quantal/dummy')).revision == 3


def test_get_skips_dangling_symlinks(
    test_repo: TestRepo,
    local_repo: LocalRepository,
    series_dir: pathlib.Path,
    tmp_path: pathlib.Path,
    caplog: pytest.LogCaptureFixture,
):
    os.symlink(tmp_path / 'nowhere', series_dir / 'dangling')
    _add_revisions(test_repo, series_dir, 'dummy', 1)
    with caplog.at_level(logging.WARNING, logger='charmrepo.local'):
        assert local_repo.get(URL.parse('local:quantal/dummy')).revision == 1
    assert 'dangling symlink' in caplog.text


def test_get_missing_repository(tmp_path: pathlib.Path):
    repo = LocalRepository(tmp_path / 'missing')
    with pytest.raises(charmrepo.RepositoryNotFound, match='no repository found at'):
        repo.get(URL.parse('local:quantal/dummy'))


def test_get_missing_series(local_repo: LocalRepository):
    with pytest.raises(charmrepo.PackageNotFound, match='charm not found in'):
        local_repo.get(URL.parse('local:trusty/dummy'))


def test_get_non_local_schema(local_repo: LocalRepository):
    with pytest.raises(charmrepo.Error, match='non-local schema'):
        local_repo.get(URL.parse('cs:quantal/dummy'))


def test_latest(test_repo: TestRepo, local_repo: LocalRepository, series_dir: pathlib.Path):
    _add_revisions(test_repo, series_dir, 'dummy', 2, 9)
    revisions = local_repo.latest(
        URL.parse('local:quantal/dummy-2'),
        URL.parse('local:quantal/missing'),
        URL.parse('local:quantal/dummy'),
    )
    assert [r.revision for r in revisions] == [9, 0, 9]
    assert revisions[0].err is None
    assert isinstance(revisions[1].err, charmrepo.PackageNotFound)
    assert revisions[2].err is None

    assert charmrepo.latest(local_repo, URL.parse('local:quantal/dummy-2')) == 9
    with pytest.raises(charmrepo.PackageNotFound):
        charmrepo.latest(local_repo, URL.parse('local:quantal/missing'))


class TestGetBundle:
    def test_bundle_dir(self, test_repo: TestRepo):
        repo = LocalRepository(test_repo.path)
        bundle = repo.get_bundle(URL.parse('local:quantal/wordpress-simple'))
        assert isinstance(bundle, BundleDir)
        assert set(bundle.data.services) == {'wordpress', 'mysql'}

    def test_bundle_archive(
        self, test_repo: TestRepo, local_repo: LocalRepository, tmp_path: pathlib.Path
    ):
        bundles = tmp_path / 'bundle'
        bundles.mkdir()
        test_repo.bundle_archive_path(bundles, 'wordpress-simple')
        bundle = local_repo.get_bundle(URL.parse('local:quantal/archive'))
        assert isinstance(bundle, BundleArchive)
        assert bundle.readme == 'A dummy bundle\n'

    def test_missing(self, local_repo: LocalRepository):
        with pytest.raises(charmrepo.PackageNotFound, match='bundle not found in'):
            local_repo.get_bundle(URL.parse('local:quantal/nothing'))
