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

"""Choosing a repository from the schema of a charm or bundle reference."""

from __future__ import annotations

import dataclasses
import os
import urllib.request
from typing import Any, Callable, Optional, Union

from .config import DEFAULT_STORE_URL, DEFAULT_TIMEOUT
from .errors import Error
from .local import LocalRepository
from .repo import Repository
from .store import CharmStore
from .url import LOCAL_SCHEMA, STORE_SCHEMA, URL, Reference


@dataclasses.dataclass(frozen=True, kw_only=True)
class InferParams:
    """What :func:`infer` needs to build either kind of repository."""

    local_path: Optional[Union[str, os.PathLike[str]]] = None
    """Root of the local repository, required for ``local:`` references."""

    default_series: Optional[str] = None
    """Default series for the local repository."""

    store_url: str = DEFAULT_STORE_URL
    """Base URL of the charm store."""

    store_opener: Optional[urllib.request.OpenerDirector] = None
    """urllib opener used by the charm store client."""

    store_visit_web_page: Optional[Callable[[str], Any]] = None
    """Callback for interactive charm store authentication."""

    cache_dir: Optional[Union[str, os.PathLike[str]]] = None
    """Directory where the charm store client caches downloaded charms."""

    timeout: float = DEFAULT_TIMEOUT
    """Per-request timeout for the charm store client."""


def infer(ref: Union[Reference, URL], params: InferParams) -> Repository:
    """Return the repository that ``ref`` lives in, according to its schema.

    ``cs:`` references get a :class:`CharmStore`, ``local:`` references a
    :class:`LocalRepository` rooted at ``params.local_path``.

    Raises:
        Error: if a local reference is given without a local path, or the
            schema is unknown.
    """
    if ref.schema == STORE_SCHEMA:
        return CharmStore(
            params.store_url,
            cache_dir=params.cache_dir,
            opener=params.store_opener,
            visit_web_page=params.store_visit_web_page,
            timeout=params.timeout,
        )
    if ref.schema == LOCAL_SCHEMA:
        if not params.local_path:
            raise Error('path to local repository not specified')
        return LocalRepository(params.local_path, params.default_series)
    raise Error(f'unknown schema {ref.schema!r} for charm or bundle reference {str(ref)!r}')
