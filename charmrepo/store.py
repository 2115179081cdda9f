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

"""Client for the charm store, with a digest-verified on-disk charm cache."""

from __future__ import annotations

import copy
import dataclasses
import hashlib
import http.client
import json
import logging
import os
import pathlib
import shutil
import tempfile
import threading
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .charm import CharmArchive, read_charm_archive
from .config import DEFAULT_STORE_URL, DEFAULT_TIMEOUT, StoreConfig
from .errors import (
    APIError,
    ConnectivityError,
    DigestMismatch,
    Error,
    PackageNotFound,
    ProtocolError,
    RevisionConflict,
)
from .repo import CharmRevision, Repository
from .url import URL, Reference, quote

logger = logging.getLogger(__name__)

_Location = Union[URL, Reference]


@dataclasses.dataclass
class InfoResponse:
    """Sent by the charm store in response to charm-info requests."""

    canonical_url: str = ''
    revision: int = 0
    sha256: str = ''
    digest: str = ''
    errors: List[str] = dataclasses.field(default_factory=list)
    warnings: List[str] = dataclasses.field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> InfoResponse:
        return cls(
            canonical_url=d.get('canonical-url') or '',
            revision=d.get('revision', 0),
            sha256=d.get('sha256') or '',
            digest=d.get('digest') or '',
            errors=list(d.get('errors') or []),
            warnings=list(d.get('warnings') or []),
        )


@dataclasses.dataclass
class EventResponse:
    """Sent by the charm store in response to charm-event requests."""

    kind: str = ''
    revision: int = 0
    digest: str = ''
    errors: List[str] = dataclasses.field(default_factory=list)
    warnings: List[str] = dataclasses.field(default_factory=list)
    time: str = ''

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> EventResponse:
        return cls(
            kind=d.get('kind') or '',
            revision=d.get('revision', 0),
            digest=d.get('digest') or '',
            errors=list(d.get('errors') or []),
            warnings=list(d.get('warnings') or []),
            time=d.get('time') or '',
        )


class _InteractionRequired(Exception):
    def __init__(self, visit_url: str):
        self.visit_url = visit_url


def _visit_url(body: str) -> Optional[str]:
    """Return the visit URL of an "interaction required" error body, if it is one."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict) or data.get('Code') != 'interaction required':
        return None
    info = data.get('Info')
    if not isinstance(info, dict):
        return None
    return info.get('VisitURL') or None


def _sha256(path: Union[str, os.PathLike[str]]) -> str:
    h = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            h.update(chunk)
    return h.hexdigest()


def _verify(path: pathlib.Path, digest: str):
    """Raise unless a file exists at path with a hex-encoded SHA256 matching digest."""
    if _sha256(path) != digest:
        raise DigestMismatch(f'bad SHA256 of {str(path)!r}')


class CharmStore(Repository):
    """A :class:`Repository` backed by the charm store HTTP API.

    Charms fetched by :meth:`get` are cached in ``cache_dir`` under a name
    derived from their fully revisioned URL, and reused as long as their
    SHA256 still matches what the store reports.

    Problems connecting to the store raise :class:`ConnectivityError`;
    non-success HTTP responses raise :class:`APIError`, with the response
    body attached.

    Args:
        url: base URL of the charm store.
        cache_dir: directory for downloaded charms. Only needed by :meth:`get`.
        opener: urllib opener used for every request; defaults to a standard one.
        visit_web_page: called with a URL the user must visit when the store
            asks for interactive authentication; the request is then retried once.
        auth_attrs: authentication attributes sent with each request.
        test_mode: if true, ask the store not to record download statistics.
        timeout: per-request timeout in seconds.
    """

    _chunk_size = 65536

    def __init__(
        self,
        url: str = DEFAULT_STORE_URL,
        *,
        cache_dir: Optional[Union[str, os.PathLike[str]]] = None,
        opener: Optional[urllib.request.OpenerDirector] = None,
        visit_web_page: Optional[Callable[[str], Any]] = None,
        auth_attrs: str = '',
        test_mode: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if opener is None:
            opener = urllib.request.build_opener()
        self.base_url = url.rstrip('/')
        self.cache_dir = pathlib.Path(cache_dir) if cache_dir else None
        self.opener = opener
        self.visit_web_page = visit_web_page
        self.timeout = timeout
        self._lock = threading.Lock()  # protects _auth_attrs and _test_mode
        self._auth_attrs = auth_attrs
        self._test_mode = test_mode

    @classmethod
    def from_config(
        cls,
        config: StoreConfig,
        opener: Optional[urllib.request.OpenerDirector] = None,
        visit_web_page: Optional[Callable[[str], Any]] = None,
    ) -> CharmStore:
        """Build a charm store client from a :class:`StoreConfig`."""
        return cls(
            config.store_url,
            cache_dir=config.cache_dir,
            opener=opener,
            visit_web_page=visit_web_page,
            auth_attrs=config.auth_attrs,
            test_mode=config.test_mode,
            timeout=config.timeout,
        )

    @property
    def test_mode(self) -> bool:
        """Whether the store is asked not to record download statistics."""
        with self._lock:
            return self._test_mode

    @test_mode.setter
    def test_mode(self, test_mode: bool):
        with self._lock:
            self._test_mode = test_mode

    @property
    def auth_attrs(self) -> str:
        """Authentication attributes sent with each request."""
        with self._lock:
            return self._auth_attrs

    @auth_attrs.setter
    def auth_attrs(self, auth_attrs: str):
        with self._lock:
            self._auth_attrs = auth_attrs

    def _copy(self) -> CharmStore:
        with self._lock:
            new = copy.copy(self)
        new._lock = threading.Lock()
        return new

    def with_test_mode(self, test_mode: bool) -> CharmStore:
        """Return a copy of this store with the given test mode."""
        new = self._copy()
        new._test_mode = test_mode
        return new

    def with_auth_attrs(self, auth_attrs: str) -> CharmStore:
        """Return a copy of this store with the given authentication attributes."""
        new = self._copy()
        new._auth_attrs = auth_attrs
        return new

    def _open(
        self, path: str, query: Optional[Dict[str, Any]], interactive: bool
    ) -> http.client.HTTPResponse:
        url = self.base_url + path
        if query:
            url = f'{url}?{urllib.parse.urlencode(query, doseq=True)}'
        headers: Dict[str, str] = {}
        auth_attrs = self.auth_attrs
        if auth_attrs:
            headers['Authorization'] = f'charmstore {auth_attrs}'
        request = urllib.request.Request(url, method='GET', headers=headers)

        try:
            response = self.opener.open(request, timeout=self.timeout)
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode('utf-8', errors='replace')
            except OSError as e2:
                body = f'{type(e2).__name__} - {e2}'
            if interactive and e.code == 401:
                visit_url = _visit_url(body)
                if visit_url:
                    raise _InteractionRequired(visit_url) from None
            logger.error(
                'Cannot access the charm store: invalid response code %d (%s). Response body: %s',
                e.code,
                e.reason,
                body,
            )
            raise APIError(e.code, str(e.reason), body) from None
        except urllib.error.URLError as e:
            if isinstance(e.reason, OSError):
                raise ConnectivityError(
                    'cannot access the charm store, are you connected to the internet? '
                    f'error details: {e.reason}'
                ) from e
            raise ConnectivityError(e.reason) from e
        except (ConnectionError, TimeoutError, http.client.HTTPException) as e:
            raise ConnectivityError(
                f'cannot access the charm store, are you connected to the internet? '
                f'error details: {e}'
            ) from e
        return response

    def _request_raw(
        self, path: str, query: Optional[Dict[str, Any]] = None
    ) -> http.client.HTTPResponse:
        """Make a GET request to the charm store; return the raw response object."""
        try:
            return self._open(path, query, interactive=self.visit_web_page is not None)
        except _InteractionRequired as e:
            assert self.visit_web_page is not None
            logger.debug('Charm store requires interaction, visiting %s', e.visit_url)
            self.visit_web_page(e.visit_url)
        return self._open(path, query, interactive=False)

    def _request(self, path: str, query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make a GET request to the charm store and decode the JSON object it returns."""
        response = self._request_raw(path, query)
        try:
            raw = json.loads(response.read())
        except ValueError as e:
            raise ProtocolError(f'cannot decode charm store response from {path}: {e}') from e
        finally:
            response.close()
        if not isinstance(raw, dict):
            raise ProtocolError(f'charm store response from {path} is not a JSON object')
        return raw

    def info(self, *locations: _Location) -> List[InfoResponse]:
        """Return details for all the specified charms, in one request.

        Raises:
            ProtocolError: if the store's response lacks any of the charms.
        """
        if not locations:
            return []
        query: Dict[str, Any] = {'charms': [str(loc) for loc in locations]}
        if self.test_mode:
            query['stats'] = '0'
        raw = self._request('/charm-info', query)
        result: List[InfoResponse] = []
        for loc in locations:
            key = str(loc)
            if not isinstance(raw.get(key), dict):
                raise ProtocolError(f'charm store returned response without charm {key!r}')
            info = InfoResponse.from_dict(raw[key])
            if info.errors == ['entry not found']:
                info.errors = [f'charm not found: {key}']
            result.append(info)
        return result

    def event(self, url: URL, digest: str = '') -> EventResponse:
        """Return details for a charm event; the latest one if digest is empty.

        Raises:
            PackageNotFound: if the store has no such event.
        """
        key = str(url)
        query = f'{key}@{digest}' if digest else key
        raw = self._request('/charm-event', {'charms': query})
        if not isinstance(raw.get(key), dict):
            raise ProtocolError(f'charm store returned response without charm {key!r}')
        event = EventResponse.from_dict(raw[key])
        if event.errors == ['entry not found']:
            if digest:
                raise PackageNotFound(f'charm event not found for {key!r} with digest {digest!r}')
            raise PackageNotFound(f'charm event not found for {key!r}')
        return event

    def _revisions(self, *locations: _Location) -> List[CharmRevision]:
        infos = self.info(*locations)
        revisions: List[CharmRevision] = []
        for loc, info in zip(locations, infos):
            for w in info.warnings:
                logger.warning('Charm store reports for %r: %s', str(loc), w)
            if not info.errors:
                revisions.append(CharmRevision(revision=info.revision, sha256=info.sha256))
            else:
                revisions.append(CharmRevision(err=_info_error(loc, info.errors)))
        return revisions

    def latest(self, *urls: URL) -> List[CharmRevision]:
        """Return the latest revision of each charm, in a single store request."""
        if not urls:
            return []
        return self._revisions(*[url.with_revision(-1) for url in urls])

    def resolve(self, ref: Reference) -> URL:
        """Ask the store for the canonical URL of a reference."""
        info = self.info(ref)[0]
        if info.errors:
            raise _info_error(ref, info.errors)
        if not info.canonical_url:
            raise PackageNotFound(f'cannot resolve charm URL: {str(ref)!r}')
        return URL.parse(info.canonical_url)

    def get(self, url: URL) -> CharmArchive:
        """Return the charm referenced by ``url``, downloading it unless it's cached.

        An unrevisioned URL gets the store's current revision.

        Raises:
            RuntimeError: if the store was created without a cache directory.
            RevisionConflict: if ``url`` has a revision other than the store's current one.
            DigestMismatch: if the downloaded charm doesn't match the store's SHA256.
        """
        if not self.cache_dir:
            raise RuntimeError('charm cache directory path is empty')
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        rev = self._revisions(url.with_revision(-1))[0]
        if rev.err is not None:
            raise rev.err
        if url.revision == -1:
            url = url.with_revision(rev.revision)
        elif url.revision != rev.revision:
            raise RevisionConflict(
                f'store returned charm with wrong revision {rev.revision} for {str(url)!r}'
            )

        path = self.cache_dir / f'{quote(str(url))}.charm'
        try:
            _verify(path, rev.sha256)
        except (OSError, DigestMismatch):
            self._download(url, path)
        else:
            logger.debug('Using cached charm %s at %s', url, path)
        _verify(path, rev.sha256)
        return read_charm_archive(path)

    def _download(self, url: URL, path: pathlib.Path):
        """Download a charm to a temporary file and move it into place atomically."""
        assert self.cache_dir is not None
        query = {'stats': '0'} if self.test_mode else None
        logger.debug('Downloading charm %s to %s', url, path)
        response = self._request_raw('/charm/' + urllib.parse.quote(url.path()), query)
        try:
            f = tempfile.NamedTemporaryFile(dir=self.cache_dir, prefix='charm-download', delete=False)
            try:
                with f:
                    shutil.copyfileobj(response, f, self._chunk_size)
                # The rename is atomic, so readers never see a partially written charm.
                os.replace(f.name, path)
            except BaseException:
                os.unlink(f.name)
                raise
        finally:
            response.close()

    def branch_location(self, url: URL) -> str:
        """Return the location of the Launchpad branch holding the charm at ``url``."""
        if url.user:
            return f'lp:~{url.user}/charms/{url.series}/{url.name}/trunk'
        return f'lp:charms/{url.series}/{url.name}'

    def charm_url(self, location: str) -> URL:
        """Return the charm URL for the Launchpad branch at ``location``.

        Raises:
            Error: if the location isn't a known form of charm branch.
        """
        branch = ''
        if location.startswith('~'):
            branch = location
        else:
            for prefix in _branch_prefixes:
                if location.startswith(prefix):
                    branch = location[len(prefix):]
                    break
        if branch:
            u = branch.rstrip('/').split('/')
            if len(u) == 3 and u[0] == 'charms':
                return URL.parse(f'cs:{u[1]}/{u[2]}')
            if len(u) == 4 and u[0] == 'charms' and u[3] == 'trunk':
                return URL.parse(f'cs:{u[1]}/{u[2]}')
            if len(u) == 5 and u[1] == 'charms' and u[4] == 'trunk' and u[0].startswith('~'):
                return URL.parse(f'cs:{u[0]}/{u[2]}/{u[3]}')
        raise Error(f'unknown branch location: {location!r}')


_branch_prefixes: Sequence[str] = (
    'lp:',
    'bzr+ssh://bazaar.launchpad.net/+branch/',
    'bzr+ssh://bazaar.launchpad.net/',
    'http://launchpad.net/+branch/',
    'http://launchpad.net/',
    'https://launchpad.net/+branch/',
    'https://launchpad.net/',
    'http://code.launchpad.net/+branch/',
    'http://code.launchpad.net/',
    'https://code.launchpad.net/+branch/',
    'https://code.launchpad.net/',
)


def _info_error(loc: _Location, errors: List[str]) -> Error:
    # A missing charm gets a more concise message.
    if len(errors) == 1 and errors[0].startswith('charm not found'):
        return PackageNotFound(errors[0])
    return Error(f'charm info errors for {str(loc)!r}: {"; ".join(errors)}')
