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

import pathlib
import zipfile

import pytest

import charmrepo
from charmrepo.charm import CharmArchive, CharmDir, CharmMeta, read_charm
from charmrepo.testing import TestRepo


def test_meta_from_yaml():
    meta = CharmMeta.from_yaml("""
name: wordpress
summary: Blog engine
series: [precise, trusty]
subordinate: false
requires:
  db:
    interface: mysql
provides:
  url: http
""")
    assert meta.name == 'wordpress'
    assert meta.summary == 'Blog engine'
    assert meta.series == ['precise', 'trusty']
    assert not meta.subordinate
    assert meta.requires == {'db': {'interface': 'mysql'}}
    assert meta.provides == {'url': 'http'}
    assert meta.peers == {}


@pytest.mark.parametrize('text', ['summary: no name\n', 'name: [\n', '- a\n'])
def test_meta_errors(text: str):
    with pytest.raises(charmrepo.InvalidCharm):
        CharmMeta.from_yaml(text)


def test_read_charm_dir(test_repo: TestRepo):
    ch = read_charm(test_repo.charm_dir_path('dummy'))
    assert isinstance(ch, CharmDir)
    assert ch.meta.name == 'dummy'
    assert ch.revision == 1
    assert ch.config['options']['title']['default'] == 'My Title'


def test_charm_dir_without_revision_file(test_repo: TestRepo, tmp_path: pathlib.Path):
    path = test_repo.cloned_dir_path(tmp_path, 'mysql')
    (path / 'revision').unlink()
    assert CharmDir(path).revision == 0

    (path / 'metadata.yaml').write_text('name: mysql\nrevision: 12\n')
    assert CharmDir(path).revision == 12


def test_charm_dir_bad_revision(test_repo: TestRepo, tmp_path: pathlib.Path):
    path = test_repo.cloned_dir_path(tmp_path, 'mysql')
    (path / 'revision').write_text('one')
    with pytest.raises(charmrepo.InvalidCharm, match='invalid revision file'):
        CharmDir(path)


def test_charm_dir_undecodable_revision(test_repo: TestRepo, tmp_path: pathlib.Path):
    path = test_repo.cloned_dir_path(tmp_path, 'mysql')
    (path / 'revision').write_bytes(b'\xff\xfe\n')
    with pytest.raises(charmrepo.InvalidCharm, match='invalid revision file'):
        CharmDir(path)


@pytest.mark.parametrize('value', ['oops', '1.5', 'true', '[1]'])
def test_meta_bad_legacy_revision(value: str):
    with pytest.raises(charmrepo.InvalidCharm, match='invalid revision'):
        CharmMeta.from_yaml(f'name: mysql\nrevision: {value}\n')


def test_charm_dir_missing_metadata(tmp_path: pathlib.Path):
    with pytest.raises(charmrepo.InvalidCharm, match='cannot read charm metadata'):
        CharmDir(tmp_path)


def test_set_revision(test_repo: TestRepo, tmp_path: pathlib.Path):
    ch = test_repo.cloned_dir(tmp_path, 'dummy')
    ch.set_revision(42)
    assert ch.revision == 42
    assert CharmDir(ch.path).revision == 42


def test_archive_to(test_repo: TestRepo, tmp_path: pathlib.Path):
    src = test_repo.cloned_dir(tmp_path, 'dummy')
    (src.path / '.hidden').write_text('secret')
    (src.path / 'build').mkdir()
    (src.path / 'build' / 'junk').write_text('junk')
    (src.path / 'hooks').mkdir()
    (src.path / 'hooks' / 'install').write_text('#!/bin/sh\n')

    path = tmp_path / 'dummy.charm'
    with path.open('wb') as f:
        src.archive_to(f)

    with zipfile.ZipFile(path) as zf:
        assert sorted(zf.namelist()) == [
            'config.yaml',
            'hooks/install',
            'metadata.yaml',
            'revision',
        ]

    archive = read_charm(path)
    assert isinstance(archive, CharmArchive)
    assert archive.meta.name == 'dummy'
    assert archive.revision == 1
    assert archive.config == src.config


def test_charm_archive_not_a_zip(tmp_path: pathlib.Path):
    path = tmp_path / 'bad.charm'
    path.write_bytes(b'not a zip file')
    with pytest.raises(charmrepo.InvalidCharm, match='cannot read charm archive'):
        CharmArchive(path)


def test_charm_archive_without_metadata(tmp_path: pathlib.Path):
    path = tmp_path / 'empty.charm'
    with zipfile.ZipFile(path, 'w') as zf:
        zf.writestr('revision', '1')
    with pytest.raises(charmrepo.InvalidCharm, match='has no metadata.yaml'):
        CharmArchive(path)
