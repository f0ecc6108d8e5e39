import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import ConvergenceError, HealthCheckFailure
from .models import BindResult, HealthResult, Resource


@dataclass
class ConvergenceReport:
    """Outcome of one run: what was resolved, bound and verified."""
    mode: str
    resources: List[Resource] = field(default_factory=list)
    bindings: List[BindResult] = field(default_factory=list)
    health: List[HealthResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    failure: Optional[ConvergenceError] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def fail(self, error: ConvergenceError) -> None:
        self.failure = error
        self.errors.append(str(error))

    def finish(self) -> "ConvergenceReport":
        self.finished_at = time.time()
        return self

    @property
    def degraded(self) -> bool:
        return any(result.degraded for result in self.bindings)

    @property
    def unhealthy(self) -> List[HealthResult]:
        return [result for result in self.health if not result.healthy]

    @property
    def succeeded(self) -> bool:
        return self.failure is None and not self.errors and not self.unhealthy

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def health_failures(self) -> List[HealthCheckFailure]:
        return [
            HealthCheckFailure(
                f"{result.name} ({result.endpoint.url}) is {result.outcome.value}; "
                f"last error: {result.last_error}",
                diagnostics=result.diagnostics,
                resource_name=result.name,
                attempts=result.attempts_made,
                last_status=None if result.last_status_code is None else str(result.last_status_code),
            )
            for result in self.unhealthy
        ]

    def last_diagnostics(self) -> List[str]:
        """Context an operator needs after a failed run, most relevant last."""
        lines: List[str] = []
        for failure in self.health_failures():
            lines.append(str(failure))
            lines.extend(failure.diagnostics)
        lines.extend(self.errors)
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "succeeded": self.succeeded,
            "degraded": self.degraded,
            "duration_seconds": self.duration,
            "resources": [resource.to_dict() for resource in self.resources],
            "bindings": [
                {**result.binding.to_dict(), "degraded": result.degraded, "last_health": result.last_health}
                for result in self.bindings
            ],
            "health": [result.to_dict() for result in self.health],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }
