"""Declarative description of what a deployment run converges."""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .exceptions import ResolutionError
from .models import Endpoint, Resource, ResourceKind
from .waiter import StatusPredicate


@dataclass
class ConvergenceContext:
    """Resources resolved so far, plus artifacts produced by hooks (e.g. image references)."""
    resources: Dict[str, Resource] = field(default_factory=dict)
    artifacts: Dict[str, Any] = field(default_factory=dict)

    def resource(self, name: str) -> Resource:
        if name not in self.resources:
            raise ResolutionError(f"Resource {name} has not been resolved", resource_name=name)
        return self.resources[name]

    def identity(self, name: str) -> str:
        return self.resource(name).identity

    def attribute(self, name: str, key: str) -> Any:
        value = self.resource(name).attributes.get(key)
        if value in (None, ""):
            raise ResolutionError(f"Resource {name} has no {key}", resource_name=name)
        return value


ConfigFactory = Callable[[ConvergenceContext], Dict[str, Any]]
ReadyHook = Callable[[Resource, ConvergenceContext], None]


@dataclass
class ResourceSpec:
    """One resource to resolve.

    ``config`` may be a plain mapping or a factory reading identities of
    resources declared earlier in the plan. ``ready_when`` of None means
    the resource is usable as soon as it is resolved.
    """
    kind: ResourceKind
    name: str
    config: Union[Dict[str, Any], ConfigFactory] = field(default_factory=dict)
    ready_when: Optional[StatusPredicate] = None
    wait_interval: float = 15.0
    wait_attempts: int = 40
    start_if_stopped: bool = False
    on_ready: Optional[ReadyHook] = None

    def build_config(self, context: ConvergenceContext) -> Dict[str, Any]:
        if callable(self.config):
            return self.config(context)
        return dict(self.config)


@dataclass
class BindingSpec:
    source: str
    target: str
    port: int


@dataclass
class HealthCheckSpec:
    name: str
    endpoint: Callable[[ConvergenceContext], Endpoint]
    attempts: int
    interval: float
    diagnostics: Optional[Callable[[ConvergenceContext], List[str]]] = None


@dataclass
class DeploymentPlan:
    """Resources in dependency order, then bindings, then health checks."""
    name: str
    resources: List[ResourceSpec] = field(default_factory=list)
    bindings: List[BindingSpec] = field(default_factory=list)
    health_checks: List[HealthCheckSpec] = field(default_factory=list)

    def __post_init__(self):
        seen = set()
        for spec in self.resources:
            if spec.name in seen:
                raise ValueError(f"Duplicate resource name in plan: {spec.name}")
            seen.add(spec.name)
        for binding in self.bindings:
            for name in (binding.source, binding.target):
                if name not in seen:
                    raise ValueError(f"Binding references undeclared resource: {name}")
