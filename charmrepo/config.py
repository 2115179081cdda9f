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

"""Configuration for talking to the charm store."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

DEFAULT_STORE_URL = 'https://store.juju.ubuntu.com'
DEFAULT_TIMEOUT = 30.0


@dataclasses.dataclass(frozen=True, kw_only=True)
class StoreConfig:
    """Settings for a :class:`~charmrepo.store.CharmStore`.

    The host process decides where the charm cache lives and passes it in
    here; there is no module-level default. Use :meth:`from_environ` to read
    the settings from ``CHARMREPO_*`` environment variables.
    """

    cache_dir: Path | None = None
    """Directory where downloaded charms are cached (from ``CHARMREPO_CACHE_DIR``).

    Required before :meth:`CharmStore.get` can be used.
    """

    store_url: str = DEFAULT_STORE_URL
    """Base URL of the charm store (from ``CHARMREPO_STORE_URL``)."""

    test_mode: bool = False
    """If true, ask the store not to record download statistics (from ``CHARMREPO_TEST_MODE``)."""

    auth_attrs: str = ''
    """Authentication attributes sent with every request (from ``CHARMREPO_AUTH_ATTRS``)."""

    timeout: float = DEFAULT_TIMEOUT
    """Per-request timeout in seconds (from ``CHARMREPO_TIMEOUT``)."""

    @classmethod
    def from_environ(cls) -> StoreConfig:
        """Build a configuration from the ``CHARMREPO_*`` environment variables."""
        return cls._from_dict(os.environ)

    @classmethod
    def _from_dict(cls, env: Mapping[str, Any]) -> StoreConfig:
        timeout = env.get('CHARMREPO_TIMEOUT')
        return cls(
            cache_dir=(
                Path(env['CHARMREPO_CACHE_DIR']).expanduser()
                if env.get('CHARMREPO_CACHE_DIR')
                else None
            ),
            store_url=(env.get('CHARMREPO_STORE_URL') or DEFAULT_STORE_URL).rstrip('/'),
            test_mode='CHARMREPO_TEST_MODE' in env,
            auth_attrs=env.get('CHARMREPO_AUTH_ATTRS', ''),
            timeout=float(timeout) if timeout else DEFAULT_TIMEOUT,
        )
