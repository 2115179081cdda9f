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

"""Internal YAML helpers for charm metadata and bundle documents."""

from typing import Any, Dict, TextIO, Union

import yaml

# Use C speedup if available
_safe_loader = getattr(yaml, 'CSafeLoader', yaml.SafeLoader)

YAMLError = yaml.YAMLError


def safe_load(stream: Union[str, bytes, TextIO]) -> Any:
    """Same as yaml.safe_load, but use fast C loader if available."""
    return yaml.load(stream, Loader=_safe_loader)  # noqa: S506


def safe_load_mapping(stream: Union[str, bytes, TextIO], what: str) -> Dict[str, Any]:
    """Load a YAML document that must be a mapping (an empty document is an empty mapping).

    Raises:
        ValueError: if the document is valid YAML but not a mapping.
        yaml.YAMLError: if the document is not valid YAML.
    """
    data = safe_load(stream)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f'{what} is not a mapping')
    return data
