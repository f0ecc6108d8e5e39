"""
Error taxonomy for the convergence engine.

Every error carries the logical resource name, the attempt count and the
last status reported by the provider, verbatim, so an operator can resume
a run without re-deriving context.
"""
from typing import Optional


class ConvergenceError(Exception):
    """Base class for engine failures."""

    def __init__(self, message: str, resource_name: Optional[str] = None,
                 attempts: Optional[int] = None, last_status: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.resource_name = resource_name
        self.attempts = attempts
        self.last_status = last_status

    def __str__(self) -> str:
        details = []
        if self.resource_name:
            details.append(f"resource={self.resource_name}")
        if self.attempts is not None:
            details.append(f"attempts={self.attempts}")
        if self.last_status is not None:
            details.append(f"last_status={self.last_status}")
        if not details:
            return self.message
        return f"{self.message} ({', '.join(details)})"


class ResolutionError(ConvergenceError):
    """Lookup or create failed, or a required dependency is missing or invalid.

    ``resource`` is the failed resource when resolution had started, so the
    report can still list it.
    """

    def __init__(self, message: str, resource=None, **kwargs):
        super().__init__(message, **kwargs)
        self.resource = resource


class ReadinessTimeoutError(ConvergenceError, TimeoutError):
    """Readiness was not reached within the attempt budget."""
    pass


class PreconditionError(ConvergenceError):
    """A binding was attempted on resources that are not ready."""
    pass


class HealthCheckFailure(ConvergenceError):
    """An endpoint never answered successfully. Carries the collected diagnostics."""

    def __init__(self, message: str, diagnostics=None, **kwargs):
        super().__init__(message, **kwargs)
        self.diagnostics = list(diagnostics or [])


class InvalidStateTransition(ConvergenceError):
    """Raised for backward or post-terminal resource state transitions."""
    pass


class DeploymentCancelled(ConvergenceError):
    """The run was cancelled at a wait boundary."""
    pass


class ConfigurationError(ConvergenceError):
    """Required settings are missing or inconsistent."""
    pass


class ArtifactError(ConvergenceError):
    """Cloning, building, pushing or shipping the application failed."""
    pass
