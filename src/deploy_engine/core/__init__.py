"""
Convergence engine.

Provider-agnostic resolution, readiness polling, binding and health
verification of deployment resources.
"""
from .engine import ConvergenceEngine
from .exceptions import (ArtifactError, ConfigurationError, ConvergenceError, DeploymentCancelled,
                         HealthCheckFailure, InvalidStateTransition, PreconditionError,
                         ReadinessTimeoutError, ResolutionError)
from .models import Endpoint, Resource, ResourceKind, ResourceState
from .plan import BindingSpec, ConvergenceContext, DeploymentPlan, HealthCheckSpec, ResourceSpec
from .report import ConvergenceReport

__all__ = [
    "ArtifactError",
    "BindingSpec",
    "ConfigurationError",
    "ConvergenceContext",
    "ConvergenceEngine",
    "ConvergenceError",
    "ConvergenceReport",
    "DeploymentCancelled",
    "DeploymentPlan",
    "Endpoint",
    "HealthCheckFailure",
    "HealthCheckSpec",
    "InvalidStateTransition",
    "PreconditionError",
    "ReadinessTimeoutError",
    "ResolutionError",
    "Resource",
    "ResourceKind",
    "ResourceSpec",
    "ResourceState",
]
