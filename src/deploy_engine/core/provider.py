"""
Provider API consumed by the convergence engine.

The engine treats the cloud control plane as an opaque capability and
assumes no more than eventual consistency and idempotent "already
exists" / "already registered" responses.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import Resource, ResourceKind

# Acknowledgements returned by Provider.register_binding
REGISTERED = "registered"
ALREADY_REGISTERED = "already_registered"


class ProviderError(Exception):
    """A provider call failed. ``message`` is the provider's text, verbatim."""

    def __init__(self, code: str, message: str, operation: Optional[str] = None):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.operation = operation


class Provider(ABC):
    """Abstract cloud control plane"""

    # Provider error codes meaning "this target is registered already"
    duplicate_registration_codes: frozenset = frozenset()

    @abstractmethod
    def lookup(self, kind: ResourceKind, name: str, config: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Return the identity of the resource named ``name``, or None when absent.

        ``config`` scopes the lookup for kinds that have no name of their own
        (a listener is found by port on its load balancer).
        """
        pass

    @abstractmethod
    def create(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> str:
        """Create the resource and return its identity."""
        pass

    @abstractmethod
    def describe_status(self, resource: Resource) -> str:
        """Current provider status of a resolved resource."""
        pass

    @abstractmethod
    def register_binding(self, source: Resource, target: Resource, port: int) -> str:
        """Register ``source`` under ``target``; returns REGISTERED or ALREADY_REGISTERED."""
        pass

    @abstractmethod
    def describe_binding_health(self, source: Resource, target: Resource, port: int) -> str:
        """Health of ``source`` as seen by ``target`` (e.g. "healthy", "initial")."""
        pass

    @abstractmethod
    def describe_subnet_zones(self, subnet_ids: List[str]) -> Dict[str, str]:
        """Map each subnet id to its availability zone."""
        pass

    def start_instance(self, resource: Resource) -> None:
        """Start a stopped compute instance."""
        raise NotImplementedError(f"{type(self).__name__} cannot start instances")

    def describe_attributes(self, resource: Resource) -> Dict[str, Any]:
        """Provider details worth reporting (DNS name, public IP, URI)."""
        return {}

    def fetch_diagnostics(self, resource: Resource, lines: int = 50) -> List[str]:
        """Recent log tail for a resource, when the provider can retrieve one."""
        return []
