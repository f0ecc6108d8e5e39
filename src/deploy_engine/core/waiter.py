"""Fixed-interval readiness polling."""
import logging
import threading
import time
from typing import Callable, Optional

from .exceptions import ConfigurationError, DeploymentCancelled, ReadinessTimeoutError
from .models import Resource, ResourceState
from .provider import Provider

logger = logging.getLogger(__name__)

StatusPredicate = Callable[[str], bool]


def status_is(*expected: str) -> StatusPredicate:
    """Predicate matching any of ``expected`` statuses."""
    wanted = set(expected)
    return lambda status: status in wanted


class ReadinessWaiter:
    """Poll a resource until a predicate holds or the attempt budget runs out.

    The delay between polls is fixed; there is no backoff. No sleep follows
    the final attempt, so an unsatisfied wait of N attempts at interval T
    takes (N-1)*T plus the time spent in the status queries.
    """

    def __init__(self, provider: Provider, sleep: Callable[[float], None] = time.sleep,
                 cancel_event: Optional[threading.Event] = None):
        self.provider = provider
        self.sleep = sleep
        self.cancel_event = cancel_event

    def await_ready(self, resource: Resource, predicate: StatusPredicate, interval: float,
                    max_attempts: int, status_fn: Optional[Callable[[Resource], str]] = None,
                    mark_ready: bool = True) -> Resource:
        """Block until ``predicate(status)`` holds for ``resource``.

        Args:
            resource: Resolved resource to poll
            predicate: Readiness test over the reported status
            interval: Seconds between polls
            max_attempts: Number of polls before giving up
            status_fn: Status query; defaults to ``provider.describe_status``
            mark_ready: Move the resource to READY on success

        Raises:
            ReadinessTimeoutError: budget exhausted; carries the last status
            DeploymentCancelled: cancel event set at an interval boundary
            ConfigurationError: ``max_attempts`` below 1
        """
        if max_attempts < 1:
            raise ConfigurationError(
                f"Wait budget for {resource.kind.value} {resource.name} must be at least 1 attempt, got {max_attempts}",
                resource_name=resource.name,
                attempts=0,
            )

        query = status_fn or self.provider.describe_status
        last_status = None
        last_error = None

        for attempt in range(1, max_attempts + 1):
            self._check_cancelled(resource, attempt - 1, last_status)
            try:
                last_status = query(resource)
                last_error = None
            except Exception as e:
                # Eventual consistency right after creation shows up as query errors
                last_error = e
                logger.debug(f"Status query for {resource.name} failed (attempt {attempt}/{max_attempts}): {e}")
            else:
                logger.debug(f"{resource.kind.value} {resource.name} status: {last_status} "
                             f"(attempt {attempt}/{max_attempts})")
                if predicate(last_status):
                    if mark_ready and resource.state != ResourceState.BOUND:
                        resource.transition(ResourceState.READY)
                    return resource

            if attempt < max_attempts:  # Don't sleep on last attempt
                self._check_cancelled(resource, attempt, last_status)
                self.sleep(interval)

        if last_error is not None:
            raise ReadinessTimeoutError(
                f"{resource.kind.value} {resource.name} did not become ready; last query failed: {last_error}",
                resource_name=resource.name,
                attempts=max_attempts,
                last_status=str(last_error),
            ) from last_error

        raise ReadinessTimeoutError(
            f"{resource.kind.value} {resource.name} did not become ready within "
            f"{max_attempts} attempts",
            resource_name=resource.name,
            attempts=max_attempts,
            last_status=last_status,
        )

    def _check_cancelled(self, resource: Resource, attempts: int, last_status: Optional[str]) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise DeploymentCancelled(
                f"Cancelled while waiting for {resource.kind.value} {resource.name}",
                resource_name=resource.name,
                attempts=attempts,
                last_status=last_status,
            )
