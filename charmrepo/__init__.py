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

"""Resolve, fetch, cache and validate charms and bundles.

This library provides:

- :class:`~charmrepo.URL` and :class:`~charmrepo.Reference`, the immutable
  identities of charms and bundles.
- :class:`~charmrepo.Repository`, the interface implemented by
  :class:`~charmrepo.CharmStore` (the remote charm store, with a
  digest-verified cache) and :class:`~charmrepo.LocalRepository` (a local
  directory tree). :func:`~charmrepo.infer` picks one from a reference's schema.
- :class:`~charmrepo.BundleData` and :func:`~charmrepo.verify`, which checks a
  bundle's deployment topology for consistency before it is deployed.
"""

from __future__ import annotations

# The "from .X import Y" imports below don't explicitly tell Pyright (or MyPy)
# that those symbols are part of the public API, so we have to add __all__.
__all__ = [  # noqa: RUF022 `__all__` is not sorted
    '__version__',
    # From url.py
    'LOCAL_SCHEMA',
    'STORE_SCHEMA',
    'URL',
    'Reference',
    'parse_reference',
    'parse_url',
    'quote',
    # From bundle.py
    'Bundle',
    'BundleArchive',
    'BundleData',
    'BundleDir',
    'MachineSpec',
    'ServiceSpec',
    'UnitPlacement',
    'parse_placement',
    'read_bundle',
    'read_bundle_data',
    'verify',
    # From charm.py
    'Charm',
    'CharmArchive',
    'CharmDir',
    'CharmMeta',
    'read_charm',
    # From repo.py
    'CharmRevision',
    'Repository',
    'latest',
    # From store.py
    'CharmStore',
    'EventResponse',
    'InfoResponse',
    # From local.py
    'LocalRepository',
    # From infer.py
    'InferParams',
    'infer',
    # From config.py
    'StoreConfig',
    # From errors.py
    'APIError',
    'ConnectivityError',
    'DigestMismatch',
    'Error',
    'InvalidBundle',
    'InvalidCharm',
    'MalformedIdentity',
    'MalformedPlacement',
    'MalformedRelation',
    'NotFoundError',
    'PackageNotFound',
    'ProtocolError',
    'RepositoryNotFound',
    'RevisionConflict',
    'VerificationError',
]

from .bundle import (
    Bundle,
    BundleArchive,
    BundleData,
    BundleDir,
    MachineSpec,
    ServiceSpec,
    UnitPlacement,
    parse_placement,
    read_bundle,
    read_bundle_data,
    verify,
)
from .charm import Charm, CharmArchive, CharmDir, CharmMeta, read_charm
from .config import StoreConfig
from .errors import (
    APIError,
    ConnectivityError,
    DigestMismatch,
    Error,
    InvalidBundle,
    InvalidCharm,
    MalformedIdentity,
    MalformedPlacement,
    MalformedRelation,
    NotFoundError,
    PackageNotFound,
    ProtocolError,
    RepositoryNotFound,
    RevisionConflict,
    VerificationError,
)
from .infer import InferParams, infer
from .local import LocalRepository
from .repo import CharmRevision, Repository, latest
from .store import CharmStore, EventResponse, InfoResponse
from .url import LOCAL_SCHEMA, STORE_SCHEMA, URL, Reference, parse_reference, parse_url, quote
from .version import version as _version

__version__: str = _version
