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

"""Reading and writing charms, either extracted in a directory or packed in an archive."""

from __future__ import annotations

import os
import pathlib
import zipfile
from typing import Any, BinaryIO, Dict, List, Optional, Union

from ._private import yaml
from .errors import InvalidCharm

ARCHIVE_SUFFIX = '.charm'


class CharmMeta:
    """Object containing the metadata for a charm, as read from ``metadata.yaml``.

    Args:
        raw: a mapping containing the contents of metadata.yaml
    """

    name: str
    """Name of this charm."""

    summary: str
    """Short description of what this charm does."""

    description: str
    """Long description for this charm."""

    series: List[str]
    """List of supported OS series that this charm can support."""

    subordinate: bool
    """Whether this charm is intended to be used as a subordinate charm."""

    requires: Dict[str, Any]
    """Relations this charm requires."""

    provides: Dict[str, Any]
    """Relations this charm provides."""

    peers: Dict[str, Any]
    """Peer relations."""

    def __init__(self, raw: Optional[Dict[str, Any]] = None):
        raw_: Dict[str, Any] = raw or {}
        self.name = raw_.get('name', '')
        if not self.name:
            raise InvalidCharm('charm metadata has no name')
        self.summary = raw_.get('summary', '')
        self.description = raw_.get('description', '')
        self.series = raw_.get('series', [])
        self.subordinate = raw_.get('subordinate', False)
        self.requires = dict(raw_.get('requires') or {})
        self.provides = dict(raw_.get('provides') or {})
        self.peers = dict(raw_.get('peers') or {})
        # Very old charms kept the revision in metadata.yaml.
        self.legacy_revision: Optional[int] = raw_.get('revision')
        if self.legacy_revision is not None and (
            not isinstance(self.legacy_revision, int) or isinstance(self.legacy_revision, bool)
        ):
            raise InvalidCharm(f'invalid revision {self.legacy_revision!r} in charm metadata')

    @classmethod
    def from_yaml(cls, metadata: Union[str, bytes]) -> CharmMeta:
        """Instantiate a :class:`CharmMeta` from the text of ``metadata.yaml``.

        Raises:
            InvalidCharm: if the text is not valid YAML, or lacks a charm name.
        """
        try:
            raw = yaml.safe_load_mapping(metadata, 'charm metadata')
        except (yaml.YAMLError, ValueError) as e:
            raise InvalidCharm(f'cannot parse charm metadata: {e}') from e
        return cls(raw)


class Charm:
    """A charm read from disk, either a :class:`CharmDir` or a :class:`CharmArchive`."""

    path: pathlib.Path
    meta: CharmMeta
    revision: int
    config: Dict[str, Any]

    def __repr__(self):
        return f'<{type(self).__name__} {self.meta.name}-{self.revision} at {str(self.path)!r}>'


def _parse_revision(text: Union[str, bytes], where: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        raise InvalidCharm(f'invalid revision file in {where}') from None


def _parse_config(text: Union[str, bytes], where: str) -> Dict[str, Any]:
    try:
        return yaml.safe_load_mapping(text, 'charm config')
    except (yaml.YAMLError, ValueError) as e:
        raise InvalidCharm(f'cannot parse config.yaml in {where}: {e}') from e


class CharmDir(Charm):
    """A charm extracted in a directory.

    Raises:
        InvalidCharm: if the directory has no readable ``metadata.yaml``.
    """

    def __init__(self, path: Union[str, os.PathLike[str]]):
        self.path = pathlib.Path(path)
        try:
            self.meta = CharmMeta.from_yaml((self.path / 'metadata.yaml').read_bytes())
        except OSError as e:
            raise InvalidCharm(f'cannot read charm metadata in {str(self.path)!r}: {e}') from e
        revision_path = self.path / 'revision'
        if revision_path.exists():
            self.revision = _parse_revision(revision_path.read_bytes(), str(self.path))
        else:
            self.revision = self.meta.legacy_revision or 0
        config_path = self.path / 'config.yaml'
        self.config = {}
        if config_path.exists():
            self.config = _parse_config(config_path.read_bytes(), str(self.path))

    def set_revision(self, revision: int):
        """Write a new revision into the charm's ``revision`` file."""
        (self.path / 'revision').write_text(f'{revision}\n')
        self.revision = revision

    def archive_to(self, stream: BinaryIO):
        """Write the charm to ``stream`` as a zip archive.

        Hidden files and the top-level ``build`` directory are left out; the
        revision is always included.
        """
        with zipfile.ZipFile(stream, 'w', zipfile.ZIP_DEFLATED) as zf:
            for root, dirs, files in os.walk(self.path):
                rel_root = pathlib.Path(root).relative_to(self.path)
                dirs[:] = sorted(
                    d
                    for d in dirs
                    if not d.startswith('.') and not (rel_root == pathlib.Path('.') and d == 'build')
                )
                for name in sorted(files):
                    if name.startswith('.') or name == 'revision':
                        continue
                    zf.write(pathlib.Path(root) / name, (rel_root / name).as_posix())
            zf.writestr('revision', f'{self.revision}\n')


class CharmArchive(Charm):
    """A charm packed in a zip archive.

    Raises:
        InvalidCharm: if the file is not a zip archive, or has no ``metadata.yaml``.
    """

    def __init__(self, path: Union[str, os.PathLike[str]]):
        self.path = pathlib.Path(path)
        try:
            with zipfile.ZipFile(self.path) as zf:
                names = set(zf.namelist())
                if 'metadata.yaml' not in names:
                    raise InvalidCharm(f'charm archive {str(self.path)!r} has no metadata.yaml')
                self.meta = CharmMeta.from_yaml(zf.read('metadata.yaml'))
                if 'revision' in names:
                    self.revision = _parse_revision(zf.read('revision'), str(self.path))
                else:
                    self.revision = self.meta.legacy_revision or 0
                self.config = {}
                if 'config.yaml' in names:
                    self.config = _parse_config(zf.read('config.yaml'), str(self.path))
        except (OSError, zipfile.BadZipFile) as e:
            raise InvalidCharm(f'cannot read charm archive {str(self.path)!r}: {e}') from e


def read_charm(path: Union[str, os.PathLike[str]]) -> Charm:
    """Read a charm from a directory or an archive, whichever ``path`` holds."""
    if os.path.isdir(path):
        return CharmDir(path)
    return CharmArchive(path)


def read_charm_archive(path: Union[str, os.PathLike[str]]) -> CharmArchive:
    """Read a charm archive."""
    return CharmArchive(path)
