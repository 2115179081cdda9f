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

"""Bundles: multi-service deployment topologies, and their verification.

A bundle is decoded from ``bundle.yaml`` into a :class:`BundleData`, which
can then be checked for internal consistency with :func:`verify` before
anything is deployed.
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
import re
import zipfile
from typing import Any, BinaryIO, Callable, Dict, List, Mapping, Optional, TextIO, Union

from ._private import yaml
from .errors import (
    InvalidBundle,
    MalformedPlacement,
    MalformedRelation,
    VerificationError,
)
from .url import URL

ARCHIVE_SUFFIX = '.bundle'

_number_snippet = r'(?:0|[1-9][0-9]*)'
_service_snippet = r'(?:[a-z][a-z0-9]*(?:-[a-z0-9]*[a-z][a-z0-9]*)*)'
_relation_snippet = r'(?:[a-z][a-z0-9]*(?:[_-][a-z0-9]+)*)'
_container_snippet = r'(?:[a-z]+)'

_valid_machine_id_re = re.compile(rf'^{_number_snippet}$')
_valid_service_relation_re = re.compile(
    rf'^(?P<service>{_service_snippet}):(?P<relation>{_relation_snippet})$'
)
_valid_placement_re = re.compile(
    rf"""^
    (?:(?P<container>{_container_snippet}):)?         # optional container type
    (?:
        (?P<service>{_service_snippet})(?:/(?P<unit>{_number_snippet}))?  # service, maybe a unit
        |
        (?P<machine>{_number_snippet})                 # or a machine id
    )$""",
    re.VERBOSE,
)


@dataclasses.dataclass(frozen=True)
class MachineSpec:
    """A notional machine that will be mapped onto an actual machine at deployment time."""

    constraints: str = ''
    annotations: Dict[str, str] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> MachineSpec:
        raw = raw or {}
        return cls(
            constraints=raw.get('constraints') or '',
            annotations=dict(raw.get('annotations') or {}),
        )


@dataclasses.dataclass(frozen=True)
class ServiceSpec:
    """A single service that will be deployed as part of a bundle."""

    charm: str
    """The charm URL of the charm to use for the service."""

    num_units: int = 0
    """The number of units of the service that will be deployed."""

    to: List[str] = dataclasses.field(default_factory=list)
    """Up to ``num_units`` placement directives, one per unit.

    Each directive matches ``(<containertype>:)?(<unit>|<machine>|new)``.
    With a container type, the unit is deployed into a new container of
    that type; without one, it is placed directly at the location. The
    location is a unit of another service in the bundle (``wordpress/0``,
    or just ``wordpress``), a machine id from the machines section, or
    ``new`` for a newly created machine.
    """

    options: Dict[str, Any] = dataclasses.field(default_factory=dict)
    """Configuration values to apply to the new service."""

    annotations: Dict[str, str] = dataclasses.field(default_factory=dict)
    """Annotations to apply to the service when deployed."""

    constraints: str = ''
    """Default constraints for new machines created for units of the service."""

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> ServiceSpec:
        raw = raw or {}
        to = raw.get('to') or []
        if isinstance(to, str):
            to = [to]
        return cls(
            charm=raw.get('charm') or '',
            num_units=int(raw.get('num_units') or 0),
            to=[str(p) for p in to],
            options=dict(raw.get('options') or {}),
            annotations=dict(raw.get('annotations') or {}),
            constraints=raw.get('constraints') or '',
        )


@dataclasses.dataclass(frozen=True)
class BundleData:
    """The contents of a bundle.

    The data is not verified when it is created; call :meth:`verify` to check it.
    """

    services: Dict[str, ServiceSpec] = dataclasses.field(default_factory=dict)
    """One entry for each service the bundle will create, keyed by service name."""

    machines: Dict[str, MachineSpec] = dataclasses.field(default_factory=dict)
    """One entry for each machine referred to by unit placements.

    It is an error if a machine is specified but not referred to by any
    placement directive.
    """

    series: str = ''
    """The default series to use when the bundle chooses charms."""

    relations: List[List[str]] = dataclasses.field(default_factory=list)
    """Pairs of ``service:relation`` endpoints to relate to each other."""

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> BundleData:
        raw = raw or {}
        return cls(
            services={
                name: ServiceSpec.from_dict(svc)
                for name, svc in (raw.get('services') or {}).items()
            },
            machines={
                str(id): MachineSpec.from_dict(m) for id, m in (raw.get('machines') or {}).items()
            },
            series=raw.get('series') or '',
            relations=[
                [pair] if isinstance(pair, str) else list(pair)
                for pair in (raw.get('relations') or [])
            ],
        )

    def verify(self, verify_constraints: Optional[Callable[[str], Any]] = None):
        """Verify that the bundle is internally consistent; see :func:`verify`."""
        verify(self, verify_constraints)


def read_bundle_data(stream: Union[str, bytes, TextIO, BinaryIO]) -> BundleData:
    """Read bundle data from a YAML document.

    The returned data is not verified; call :meth:`BundleData.verify` to check it.

    Raises:
        InvalidBundle: if the document cannot be decoded.
    """
    try:
        raw = yaml.safe_load_mapping(stream, 'bundle data')
        return BundleData.from_dict(raw)
    except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
        raise InvalidBundle(f'cannot unmarshal bundle data: {e}') from e


@dataclasses.dataclass(frozen=True)
class UnitPlacement:
    """A parsed unit placement directive."""

    container_type: str = ''
    """The container type of the new unit, or empty if unspecified."""

    machine: str = ''
    """The numeric machine id, or "new", or empty if the placement specifies a service."""

    service: str = ''
    """The service name, or empty if the placement specifies a machine."""

    unit: int = -1
    """The unit number of the service, or -1 if unspecified."""


def parse_placement(placement: str) -> UnitPlacement:
    """Parse a unit placement directive, as found in a service's ``to`` list.

    The service name "new" is read as a new machine, not as a service.

    Raises:
        MalformedPlacement: if the directive does not match the placement grammar.
    """
    m = _valid_placement_re.match(placement)
    if m is None:
        raise MalformedPlacement(f'invalid placement syntax {placement!r}')
    container_type = m.group('container') or ''
    service = m.group('service') or ''
    machine = m.group('machine') or ''
    unit = int(m.group('unit')) if m.group('unit') is not None else -1
    if service == 'new':
        if unit != -1:
            raise MalformedPlacement(f'invalid placement syntax {placement!r}')
        machine, service = 'new', ''
    return UnitPlacement(container_type=container_type, machine=machine, service=service, unit=unit)


def parse_relation(endpoint: str) -> tuple[str, str]:
    """Split a ``service:relation`` endpoint into its service and relation names.

    Raises:
        MalformedRelation: if the endpoint is not of that form.
    """
    m = _valid_service_relation_re.match(endpoint) if isinstance(endpoint, str) else None
    if m is None:
        raise MalformedRelation(f'invalid relation syntax {endpoint!r}')
    return m.group('service'), m.group('relation')


def _accept_constraints(constraints: str):
    pass


class _BundleDataVerifier:
    """Visits every part of a bundle, collecting errors rather than stopping at the first."""

    def __init__(self, bundle: BundleData, verify_constraints: Callable[[str], Any]):
        self.bundle = bundle
        self.verify_constraints = verify_constraints
        self.errors: List[Exception] = []
        # Reference counts of all machines as referred to by placement directives.
        self.machine_ref_counts: Dict[str, int] = {id: 0 for id in bundle.machines}

    def add_error(self, error: Union[str, Exception]):
        if isinstance(error, str):
            error = ValueError(error)
        self.errors.append(error)

    def check_constraints(self, constraints: str, where: str):
        try:
            self.verify_constraints(constraints)
        except Exception as e:
            self.add_error(f'invalid constraints in {where}: {e}')

    def verify(self):
        self.verify_relations()
        self.verify_services()
        self.verify_machines()
        for id, count in self.machine_ref_counts.items():
            if count == 0:
                self.add_error(f'machine {id!r} is not referred to by a placement directive')
        if self.errors:
            raise VerificationError(self.errors)

    def verify_relations(self):
        for i, pair in enumerate(self.bundle.relations):
            if len(pair) != 2:
                self.add_error(f'relation {i} has {len(pair)} relations, not 2')
            services: List[str] = []
            for endpoint in pair:
                try:
                    service, _ = parse_relation(endpoint)
                except MalformedRelation as e:
                    self.add_error(e)
                    continue
                if service not in self.bundle.services:
                    self.add_error(
                        f'service {service!r} not defined (referred to by relation {pair!r})'
                    )
                services.append(service)
            if len(pair) == 2 and len(services) == 2 and services[0] == services[1]:
                self.add_error(f'relation {pair!r} relates a service to itself')

    def verify_services(self):
        for name, svc in self.bundle.services.items():
            if svc.num_units < 0:
                self.add_error(f'negative number of units specified on service {name!r}')
            try:
                URL.parse(svc.charm)
            except ValueError as e:
                self.add_error(f'invalid charm URL in service {name!r}: {e}')
            self.check_constraints(svc.constraints, f'service {name!r}')
            if len(svc.to) > svc.num_units:
                self.add_error(f'too many units specified in unit placement for service {name!r}')
            self.verify_placement(svc.to)

    def verify_placement(self, to: List[str]):
        for p in to:
            try:
                up = parse_placement(p)
            except MalformedPlacement as e:
                self.add_error(e)
                continue
            if up.service:
                target = self.bundle.services.get(up.service)
                if target is None:
                    self.add_error(f'placement {p!r} refers to non-existent service')
                    continue
                # NOTE: the bound is num_units - 1, so the last unit of the target cannot be named.
                if up.unit >= 0 and up.unit >= target.num_units - 1:
                    self.add_error(
                        f'placement {p!r} specifies a unit greater than the '
                        f'{target.num_units} unit(s) started by the target service'
                    )
            elif up.machine == 'new':
                pass
            else:
                if up.machine not in self.bundle.machines:
                    self.add_error(f'placement {p!r} refers to non-existent machine')
                    continue
                self.machine_ref_counts[up.machine] += 1

    def verify_machines(self):
        for id, m in self.bundle.machines.items():
            if not _valid_machine_id_re.match(id):
                self.add_error(f'invalid machine id {id!r} found in machines')
            self.check_constraints(m.constraints, f'machine {id!r}')


def verify(bundle: BundleData, verify_constraints: Optional[Callable[[str], Any]] = None):
    """Verify that a bundle is internally consistent.

    It verifies that:

    - all defined machines are referred to by placement directives,
    - all services referred to by placement directives are specified in the bundle,
    - all services referred to by relations are specified in the bundle,
    - all constraints are valid.

    The bundle is never modified.

    Args:
        bundle: the bundle to verify.
        verify_constraints: called with every constraints string found; it
            should raise an exception if the constraints are invalid. If
            omitted, all constraints are accepted.

    Raises:
        VerificationError: describing all the problems found.
    """
    verifier = _BundleDataVerifier(bundle, verify_constraints or _accept_constraints)
    verifier.verify()


class Bundle:
    """A bundle read from disk, either a :class:`BundleDir` or a :class:`BundleArchive`."""

    path: pathlib.Path
    data: BundleData
    readme: str

    def __repr__(self):
        return f'<{type(self).__name__} at {str(self.path)!r}>'


class BundleDir(Bundle):
    """A bundle extracted in a directory holding ``bundle.yaml`` and ``README.md``.

    Raises:
        InvalidBundle: if either file is missing or ``bundle.yaml`` can't be decoded.
    """

    def __init__(self, path: Union[str, os.PathLike[str]]):
        self.path = pathlib.Path(path)
        try:
            raw = (self.path / 'bundle.yaml').read_bytes()
        except OSError as e:
            raise InvalidBundle(f'cannot read bundle.yaml: {e}') from e
        self.data = read_bundle_data(raw)
        try:
            self.readme = (self.path / 'README.md').read_text()
        except OSError as e:
            raise InvalidBundle(f'cannot read README file: {e}') from e

    def archive_to(self, stream: BinaryIO):
        """Write the bundle to ``stream`` as a zip archive."""
        with zipfile.ZipFile(stream, 'w', zipfile.ZIP_DEFLATED) as zf:
            for name in sorted(os.listdir(self.path)):
                path = self.path / name
                if name.startswith('.') or not path.is_file():
                    continue
                zf.write(path, name)


class BundleArchive(Bundle):
    """A bundle packed in a zip archive.

    Raises:
        InvalidBundle: if the file is not a zip archive or lacks one of its files.
    """

    def __init__(self, path: Union[str, os.PathLike[str]]):
        self.path = pathlib.Path(path)
        try:
            with zipfile.ZipFile(self.path) as zf:
                names = set(zf.namelist())
                if 'bundle.yaml' not in names:
                    raise InvalidBundle(f'bundle archive {str(self.path)!r} has no bundle.yaml')
                if 'README.md' not in names:
                    raise InvalidBundle(f'cannot read README file in {str(self.path)!r}')
                self.data = read_bundle_data(zf.read('bundle.yaml'))
                self.readme = zf.read('README.md').decode('utf-8')
        except (OSError, zipfile.BadZipFile) as e:
            raise InvalidBundle(f'cannot read bundle archive {str(self.path)!r}: {e}') from e


def read_bundle(path: Union[str, os.PathLike[str]]) -> Bundle:
    """Read a bundle from a directory or an archive, whichever ``path`` holds."""
    if os.path.isdir(path):
        return BundleDir(path)
    return BundleArchive(path)
