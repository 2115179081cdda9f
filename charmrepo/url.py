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

"""Charm URLs and references.

A charm URL identifies a single, possibly revisioned, charm or bundle::

    cs:~user/trusty/wordpress-42
    local:precise/mysql

A reference is the same thing with the series left out, to be filled in
later from a default series.
"""

from __future__ import annotations

import dataclasses
import re

from .errors import MalformedIdentity

STORE_SCHEMA = 'cs'
LOCAL_SCHEMA = 'local'

_SCHEMAS = (STORE_SCHEMA, LOCAL_SCHEMA)

_user_re = re.compile(r'^[a-z0-9][a-zA-Z0-9+.-]+$')
_series_re = re.compile(r'^[a-z]+([a-z0-9]+)?$')
_name_re = re.compile(r'^[a-z][a-z0-9]*(-[a-z0-9]*[a-z][a-z0-9]*)*$')
_revision_re = re.compile(r'^(?P<name>.+)-(?P<revision>\d+)$')


def quote(unsafe: str) -> str:
    """Make a string safe to use as a file name.

    Letters, digits, ``.`` and ``-`` are kept; anything else is replaced
    with ``_<hex>_``.
    """
    out: list[str] = []
    for ch in unsafe:
        if ch.isalnum() or ch in '.-':
            out.append(ch)
        else:
            out.append(f'_{ord(ch):02x}_')
    return ''.join(out)


def _render(schema: str, user: str, series: str, name: str, revision: int) -> str:
    parts = []
    if user:
        parts.append(f'~{user}')
    if series:
        parts.append(series)
    if revision >= 0:
        parts.append(f'{name}-{revision}')
    else:
        parts.append(name)
    return f'{schema}:' + '/'.join(parts)


def _parse(text: str) -> tuple[str, str, str, str, int]:
    """Split text into (schema, user, series, name, revision), series possibly empty."""
    schema, sep, rest = text.partition(':')
    if not sep:
        schema, rest = STORE_SCHEMA, text
    if schema not in _SCHEMAS:
        raise MalformedIdentity(f'charm or bundle URL has invalid schema: {text!r}')
    parts = rest.split('/')
    if not 1 <= len(parts) <= 3:
        raise MalformedIdentity(f'charm or bundle URL has invalid form: {text!r}')

    user = ''
    if parts[0].startswith('~'):
        if schema == LOCAL_SCHEMA:
            raise MalformedIdentity(f'local charm or bundle URL with user name: {text!r}')
        user = parts.pop(0)[1:]
        if not _user_re.match(user):
            raise MalformedIdentity(f'charm or bundle URL has invalid user name: {text!r}')
        if not parts:
            raise MalformedIdentity(f'charm or bundle URL has invalid form: {text!r}')

    series = ''
    if len(parts) == 2:
        series = parts.pop(0)
        if not _series_re.match(series):
            raise MalformedIdentity(f'charm or bundle URL has invalid series: {text!r}')
    elif len(parts) != 1:
        raise MalformedIdentity(f'charm or bundle URL has invalid form: {text!r}')

    name = parts[0]
    revision = -1
    m = _revision_re.match(name)
    if m:
        name = m.group('name')
        revision = int(m.group('revision'))
    if not _name_re.match(name):
        raise MalformedIdentity(f'charm or bundle URL has invalid charm or bundle name: {text!r}')
    return schema, user, series, name, revision


@dataclasses.dataclass(frozen=True)
class URL:
    """A fully qualified charm or bundle URL.

    URLs are immutable; :meth:`with_revision` returns a new URL.
    """

    schema: str
    user: str
    series: str
    name: str
    revision: int = -1

    def __post_init__(self):
        if self.schema not in _SCHEMAS:
            raise MalformedIdentity(f'invalid schema {self.schema!r}')
        if not self.series:
            raise MalformedIdentity(f'charm or bundle URL {self.name!r} has no series')
        if self.revision < -1:
            raise MalformedIdentity(f'invalid revision {self.revision}')

    @classmethod
    def parse(cls, text: str) -> URL:
        """Parse a charm URL; the series must be present.

        Raises:
            MalformedIdentity: if the text is not a valid charm URL.
        """
        schema, user, series, name, revision = _parse(text)
        if not series:
            raise MalformedIdentity(f'charm or bundle URL without series: {text!r}')
        return cls(schema, user, series, name, revision)

    def __str__(self):
        return _render(self.schema, self.user, self.series, self.name, self.revision)

    def path(self) -> str:
        """Return the URL without its schema, as used in store paths."""
        return str(self).split(':', 1)[1]

    def with_revision(self, revision: int) -> URL:
        """Return a copy of this URL with the given revision (-1 for none)."""
        return dataclasses.replace(self, revision=revision)

    def reference(self) -> Reference:
        """Return the reference equivalent to this URL, series included."""
        return Reference.from_url(self)


@dataclasses.dataclass(frozen=True)
class Reference:
    """A charm or bundle reference whose series may still be unknown."""

    schema: str
    user: str
    name: str
    revision: int = -1
    series: str = ''

    @classmethod
    def parse(cls, text: str) -> Reference:
        """Parse a charm reference; the series is optional.

        Raises:
            MalformedIdentity: if the text is not a valid reference.
        """
        schema, user, series, name, revision = _parse(text)
        return cls(schema, user, name, revision, series)

    @classmethod
    def from_url(cls, url: URL) -> Reference:
        return cls(url.schema, url.user, url.name, url.revision, url.series)

    def __str__(self):
        return _render(self.schema, self.user, self.series, self.name, self.revision)

    def url(self, default_series: str | None = None) -> URL:
        """Return the URL for this reference, filling in a missing series.

        Raises:
            MalformedIdentity: if neither the reference nor ``default_series``
                provide a series.
        """
        series = self.series or default_series
        if not series:
            raise MalformedIdentity(f'cannot resolve series for charm URL {str(self)!r}')
        if not _series_re.match(series):
            raise MalformedIdentity(f'invalid series {series!r}')
        return URL(self.schema, self.user, series, self.name, self.revision)

    resolve = url

    def with_revision(self, revision: int) -> Reference:
        """Return a copy of this reference with the given revision (-1 for none)."""
        return dataclasses.replace(self, revision=revision)


def parse_url(text: str) -> URL:
    """Parse text as a fully qualified :class:`URL`."""
    return URL.parse(text)


def parse_reference(text: str) -> Reference:
    """Parse text as a :class:`Reference`."""
    return Reference.parse(text)
