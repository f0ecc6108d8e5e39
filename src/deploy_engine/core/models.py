import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    """Infrastructure objects the engine manages"""
    COMPUTE_INSTANCE = "ComputeInstance"
    LOAD_BALANCER = "LoadBalancer"
    TARGET_GROUP = "TargetGroup"
    LISTENER = "Listener"
    IMAGE_REPOSITORY = "ImageRepository"


class ResourceState(str, Enum):
    """Resource lifecycle, in forward order"""
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    EXISTING = "existing"     # Found by name, creation skipped
    CREATED = "created"       # Created by this run
    READY = "ready"           # Readiness predicate held
    BOUND = "bound"           # Registered with its dependents
    FAILED = "failed"         # Terminal


# EXISTING and CREATED share a rank: a resolved resource is one or the other
_STATE_RANK = {
    ResourceState.UNRESOLVED: 0,
    ResourceState.RESOLVING: 1,
    ResourceState.EXISTING: 2,
    ResourceState.CREATED: 2,
    ResourceState.READY: 3,
    ResourceState.BOUND: 4,
}


class BindingState(str, Enum):
    UNBOUND = "unbound"
    PENDING = "pending"
    BOUND = "bound"
    REJECTED = "rejected"


class ProbeOutcome(str, Enum):
    PENDING = "pending"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    TIMED_OUT = "timed_out"


@dataclass
class Resource:
    """An external infrastructure object, addressed by logical name."""
    kind: ResourceKind
    name: str
    desired_config: Dict[str, Any] = field(default_factory=dict)
    identity: Optional[str] = None
    state: ResourceState = ResourceState.UNRESOLVED
    failure_reason: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_ready(self) -> bool:
        return self.state in (ResourceState.READY, ResourceState.BOUND)

    @property
    def is_terminal(self) -> bool:
        return self.state == ResourceState.FAILED

    def transition(self, new_state: ResourceState) -> None:
        """Move forward in the lifecycle.

        Re-entering the current state is a no-op so a Bound resource can be
        bound again (e.g. to a second target group).
        """
        if new_state == ResourceState.FAILED:
            raise ValueError("Use fail() to mark a resource as failed")
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot move {self.kind.value} from {self.state.value} to {new_state.value}",
                resource_name=self.name,
                last_status=self.failure_reason,
            )
        if new_state == self.state:
            return
        if _STATE_RANK[new_state] <= _STATE_RANK[self.state]:
            raise InvalidStateTransition(
                f"Backward transition for {self.kind.value} from {self.state.value} to {new_state.value}",
                resource_name=self.name,
            )
        logger.debug(f"{self.kind.value} {self.name}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def fail(self, reason: str) -> None:
        """Mark the resource as failed; reachable from any non-terminal state."""
        if self.is_terminal:
            return
        logger.debug(f"{self.kind.value} {self.name}: {self.state.value} -> failed ({reason})")
        self.state = ResourceState.FAILED
        self.failure_reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "identity": self.identity,
            "state": self.state.value,
            "failure_reason": self.failure_reason,
            "attributes": dict(self.attributes),
        }


@dataclass
class Binding:
    """Registration of ``source`` under ``target`` at ``port``."""
    source: Resource
    target: Resource
    port: int
    state: BindingState = BindingState.UNBOUND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.name,
            "target": self.target.name,
            "port": self.port,
            "state": self.state.value,
        }


@dataclass
class BindResult:
    """Outcome of a bind; ``degraded`` is set when target health never converged."""
    binding: Binding
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)
    last_health: Optional[str] = None


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int
    path: str = "/"
    scheme: str = "http"

    @property
    def url(self) -> str:
        default_port = {"http": 80, "https": 443}.get(self.scheme)
        netloc = self.host if self.port == default_port else f"{self.host}:{self.port}"
        return f"{self.scheme}://{netloc}{self.path}"


@dataclass
class HealthProbe:
    """One verification cycle against an endpoint. Not persisted."""
    endpoint: Endpoint
    attempts: int
    interval: float
    outcome: ProbeOutcome = ProbeOutcome.PENDING
    attempts_made: int = 0


@dataclass
class HealthResult:
    name: str
    endpoint: Endpoint
    outcome: ProbeOutcome
    attempts_made: int
    last_status_code: Optional[int] = None
    last_error: Optional[str] = None
    diagnostics: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.outcome == ProbeOutcome.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.endpoint.url,
            "outcome": self.outcome.value,
            "attempts_made": self.attempts_made,
            "last_status_code": self.last_status_code,
            "last_error": self.last_error,
            "diagnostics": list(self.diagnostics),
        }
