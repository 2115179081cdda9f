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

"""Exceptions raised by the charmrepo library."""

from __future__ import annotations

from typing import Sequence


class Error(Exception):
    """Base class of all errors raised by charmrepo."""

    def __repr__(self):
        return f'<{type(self).__module__}.{type(self).__name__} {self.args}>'


class MalformedIdentity(Error, ValueError):
    """Raised when a charm URL or reference cannot be parsed."""


class MalformedRelation(Error, ValueError):
    """Raised when a bundle relation endpoint is not of the form ``service:relation``."""


class MalformedPlacement(Error, ValueError):
    """Raised when a unit placement directive does not match the placement grammar."""


class VerificationError(Error):
    """Raised by bundle verification, holding every problem that was found.

    Verification never stops at the first problem, so :attr:`errors` is the
    complete pre-flight report.
    """

    errors: list[Exception]
    """All the verification errors, in the order they were found."""

    def __init__(self, errors: Sequence[Exception]):
        self.errors = list(errors)
        super().__init__(self.errors)

    def __str__(self):
        if not self.errors:
            return 'no verification errors!'
        if len(self.errors) == 1:
            return str(self.errors[0])
        return f'{self.errors[0]} (and {len(self.errors) - 1} more errors)'


class NotFoundError(Error):
    """Raised when the requested data wasn't found."""


class PackageNotFound(NotFoundError):
    """Raised when no charm or bundle matches the requested URL."""


class RepositoryNotFound(NotFoundError):
    """Raised when the root of a local repository doesn't exist or isn't a directory."""


class RevisionConflict(Error):
    """Raised when an explicit revision disagrees with the revision the store reports."""


class DigestMismatch(Error):
    """Raised when cached or downloaded content doesn't match the expected SHA256."""


class ConnectivityError(Error):
    """Raised when the charm store can't be reached at all."""


class ProtocolError(Error):
    """Raised when the charm store sends a response of an unexpected shape."""


class APIError(Error):
    """Raised when the charm store answers with a non-success HTTP status."""

    code: int
    """HTTP status code."""

    status: str
    """HTTP status string (reason)."""

    body: str
    """Body of the HTTP response, kept for diagnosis."""

    def __init__(self, code: int, status: str, body: str):
        super().__init__(f'cannot access the charm store: invalid response code {code} ({status})')
        self.code = code
        self.status = status
        self.body = body

    def __repr__(self):
        return f'APIError({self.code!r}, {self.status!r}, {self.body!r})'


class InvalidCharm(Error):
    """Raised when a directory or archive cannot be read as a charm."""


class InvalidBundle(Error):
    """Raised when a directory, archive or document cannot be read as a bundle."""
