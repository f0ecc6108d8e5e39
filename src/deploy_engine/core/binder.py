"""Registration of ready resources with their dependents."""
import logging

from .exceptions import PreconditionError, ReadinessTimeoutError, ResolutionError
from .models import Binding, BindingState, BindResult, Resource, ResourceState
from .provider import ALREADY_REGISTERED, Provider, ProviderError
from .waiter import ReadinessWaiter, status_is

logger = logging.getLogger(__name__)

HEALTHY = "healthy"


class DependencyBinder:
    """Bind a source resource (e.g. an instance) into a target (e.g. a target group)."""

    def __init__(self, provider: Provider, waiter: ReadinessWaiter,
                 health_interval: float = 15.0, health_attempts: int = 20):
        self.provider = provider
        self.waiter = waiter
        self.health_interval = health_interval
        self.health_attempts = health_attempts

    def bind(self, source: Resource, target: Resource, port: int) -> BindResult:
        """Register ``source`` under ``target`` at ``port`` and wait for it to turn healthy.

        A health wait that times out does not fail the bind: the binding is
        reported Bound with ``degraded`` set and a warning attached.

        Raises:
            PreconditionError: either endpoint is not Ready; nothing is registered
            ResolutionError: the provider rejected the registration
        """
        binding = Binding(source=source, target=target, port=port)

        not_ready = [r for r in (source, target) if not r.is_ready]
        if not_ready:
            details = ", ".join(f"{r.kind.value} {r.name} is {r.state.value}" for r in not_ready)
            raise PreconditionError(
                f"Cannot bind {source.name} to {target.name}: {details}",
                resource_name=not_ready[0].name,
                last_status=not_ready[0].state.value,
            )

        logger.info(f"Registering {source.kind.value} {source.identity} with {target.kind.value} "
                    f"{target.name} on port {port}")
        binding.state = BindingState.PENDING
        try:
            ack = self.provider.register_binding(source, target, port)
        except ProviderError as e:
            if e.code in self.provider.duplicate_registration_codes:
                ack = ALREADY_REGISTERED
            else:
                binding.state = BindingState.REJECTED
                raise ResolutionError(
                    f"Registration of {source.name} with {target.name} was rejected: {e.message}",
                    resource_name=source.name,
                    attempts=1,
                    last_status=e.code,
                ) from e

        if ack == ALREADY_REGISTERED:
            logger.info(f"{source.name} is already registered with {target.name}")
        else:
            logger.info(f"✅ {source.name} registered with {target.name}")

        result = BindResult(binding=binding)
        logger.info(f"⏳ Waiting for {source.name} to become healthy in {target.name}...")
        try:
            self.waiter.await_ready(
                source,
                status_is(HEALTHY),
                interval=self.health_interval,
                max_attempts=self.health_attempts,
                status_fn=lambda r: self.provider.describe_binding_health(r, target, port),
                mark_ready=False,
            )
            result.last_health = HEALTHY
            logger.info(f"✅ Target {source.name} is healthy in {target.name}")
        except ReadinessTimeoutError as e:
            # Delayed health convergence is tolerated: warn and carry on
            result.degraded = True
            result.last_health = e.last_status
            result.warnings.append(
                f"Target {source.name} did not become healthy in {target.name} within "
                f"{self.health_attempts} attempts (last status: {e.last_status}); "
                f"check application status and security group configuration"
            )
            logger.warning(f"⚠️ {result.warnings[-1]}")

        binding.state = BindingState.BOUND
        source.transition(ResourceState.BOUND)
        return result
