"""In-memory provider and clock for exercising the convergence engine."""
import itertools
from collections import Counter
from typing import Any, Dict, List, Optional

import pytest

from deploy_engine.core.models import Resource, ResourceKind
from deploy_engine.core.provider import ALREADY_REGISTERED, REGISTERED, Provider, ProviderError

DEFAULT_ZONES = {
    "subnet-a": "us-east-1a",
    "subnet-b": "us-east-1b",
    "subnet-c": "us-east-1a",
}


class FakeProvider(Provider):
    """Provider whose statuses and failures are scripted by the test.

    ``statuses[name]`` is consumed one entry per status query; the last
    entry sticks. ``failures[operation]`` raises on every call to that
    operation.
    """

    duplicate_registration_codes = frozenset({"DuplicateTarget"})

    def __init__(self, subnet_zones: Optional[Dict[str, str]] = None):
        self.subnet_zones = dict(DEFAULT_ZONES if subnet_zones is None else subnet_zones)
        self.existing: Dict[tuple, str] = {}
        self.hidden: set = set()
        self.statuses: Dict[str, List[Any]] = {}
        self.binding_health: List[Any] = ["healthy"]
        self.failures: Dict[str, ProviderError] = {}
        self.attributes: Dict[str, Dict[str, Any]] = {}
        self.console: List[str] = ["boot ok"]
        self.registrations: set = set()
        self.started: List[str] = []
        self.created_configs: Dict[str, Dict[str, Any]] = {}
        self.calls = Counter()
        self._ids = itertools.count(1)

    def _record(self, operation: str) -> None:
        self.calls[operation] += 1
        if operation in self.failures:
            raise self.failures[operation]

    def _next(self, script: List[Any], default: str) -> str:
        if not script:
            return default
        value = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(value, Exception):
            raise value
        return value

    def add_existing(self, kind: ResourceKind, name: str, identity: str) -> None:
        self.existing[(kind, name)] = identity

    def lookup(self, kind, name, config=None):
        self._record("lookup")
        if (kind, name) in self.hidden:
            return None
        return self.existing.get((kind, name))

    def create(self, kind, name, config):
        self._record("create")
        identity = f"{kind.value.lower()}-{next(self._ids)}"
        self.existing[(kind, name)] = identity
        self.created_configs[name] = dict(config)
        return identity

    def describe_status(self, resource: Resource) -> str:
        self._record("describe_status")
        return self._next(self.statuses.get(resource.name, []), "ready")

    def register_binding(self, source, target, port):
        self._record("register_binding")
        key = (source.identity, target.identity, port)
        if key in self.registrations:
            return ALREADY_REGISTERED
        self.registrations.add(key)
        return REGISTERED

    def describe_binding_health(self, source, target, port):
        self._record("describe_binding_health")
        return self._next(self.binding_health, "healthy")

    def describe_subnet_zones(self, subnet_ids):
        self._record("describe_subnet_zones")
        return {s: self.subnet_zones[s] for s in subnet_ids if s in self.subnet_zones}

    def start_instance(self, resource):
        self._record("start_instance")
        self.started.append(resource.identity)

    def describe_attributes(self, resource):
        self._record("describe_attributes")
        return dict(self.attributes.get(resource.name, {}))

    def fetch_diagnostics(self, resource, lines=50):
        self._record("fetch_diagnostics")
        return list(self.console[-lines:])


class FakeClock:
    """Stands in for time.sleep; records every sleep and advances ``now``."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fake_clock():
    return FakeClock()
