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

import hashlib
import io
import json
import pathlib
import typing
import urllib.parse
import urllib.request

import pytest

from charmrepo.testing import TestRepo

REPO_PATH = pathlib.Path(__file__).parent / 'repo'


@pytest.fixture
def test_repo() -> TestRepo:
    return TestRepo(REPO_PATH, 'quantal')


class FakeResponse(io.BytesIO):
    """Enough of http.client.HTTPResponse for the charm store client."""

    def __init__(self, body: bytes, status: int = 200):
        super().__init__(body)
        self.status = status


class FakeStoreOpener:
    """Stands in for urllib's OpenerDirector, serving a fake charm store.

    Requests are recorded in ``requests``. Anything queued in ``responses``
    (bytes, a JSON-able dict, or an exception to raise) is served first;
    otherwise charm-info and charm downloads are answered from ``charms``.
    """

    def __init__(self):
        self.requests: typing.List[urllib.request.Request] = []
        self.responses: typing.List[typing.Any] = []
        # Unrevisioned URL string -> (revision, archive bytes, sha256 reported)
        self.charms: typing.Dict[str, typing.Tuple[int, bytes, str]] = {}

    def add_charm(self, url: str, revision: int, data: bytes, sha256: typing.Optional[str] = None):
        if sha256 is None:
            sha256 = hashlib.sha256(data).hexdigest()
        self.charms[url] = (revision, data, sha256)

    def paths(self) -> typing.List[str]:
        return [urllib.parse.urlsplit(r.full_url).path for r in self.requests]

    def queries(self) -> typing.List[typing.Dict[str, typing.List[str]]]:
        return [urllib.parse.parse_qs(urllib.parse.urlsplit(r.full_url).query) for r in self.requests]

    def open(self, request: urllib.request.Request, timeout: typing.Optional[float] = None):
        self.requests.append(request)
        if self.responses:
            resp = self.responses.pop(0)
            if isinstance(resp, Exception):
                raise resp
            if isinstance(resp, dict):
                resp = json.dumps(resp).encode()
            return FakeResponse(resp)

        split = urllib.parse.urlsplit(request.full_url)
        query = urllib.parse.parse_qs(split.query)
        if split.path == '/charm-info':
            result: typing.Dict[str, typing.Any] = {}
            for key in query['charms']:
                if key in self.charms:
                    revision, _, sha256 = self.charms[key]
                    result[key] = {
                        'canonical-url': f'{key}-{revision}',
                        'revision': revision,
                        'sha256': sha256,
                    }
                else:
                    result[key] = {'errors': ['entry not found']}
            return FakeResponse(json.dumps(result).encode())
        if split.path.startswith('/charm/'):
            path = urllib.parse.unquote(split.path[len('/charm/'):])
            for key, (revision, data, _) in self.charms.items():
                if f'{key.split(":", 1)[1]}-{revision}' == path:
                    return FakeResponse(data)
        raise AssertionError(f'unexpected request {request.full_url}')


@pytest.fixture
def fake_opener() -> FakeStoreOpener:
    return FakeStoreOpener()
