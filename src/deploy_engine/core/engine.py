"""
Convergence engine: drive a DeploymentPlan to a running, reachable app.

Resources are resolved strictly in plan order, each awaited to readiness
before the next one is resolved. Bindings run once every resource is
ready, health checks last. Any resolution, precondition or readiness
error aborts the run; nothing is rolled back.
"""
import logging
import threading
from functools import partial
from typing import List, Optional

from .binder import DependencyBinder
from .exceptions import ConvergenceError, ResolutionError
from .health import HealthCheck, HealthVerifier
from .models import Endpoint, HealthResult, ProbeOutcome, Resource, ResourceState
from .plan import ConvergenceContext, DeploymentPlan, HealthCheckSpec, ResourceSpec
from .provider import Provider, ProviderError
from .report import ConvergenceReport
from .resolver import ResourceResolver
from .waiter import ReadinessWaiter, status_is

logger = logging.getLogger(__name__)

STOPPED = "stopped"
STOPPING = "stopping"

# Placeholder for health checks whose endpoint could not be built
_UNKNOWN_ENDPOINT = Endpoint(host="unknown", port=0)


class ConvergenceEngine:
    """Run deployment plans against a provider.

    A plan with no resources (local mode) needs no provider.
    """

    def __init__(self, provider: Optional[Provider], resolver: Optional[ResourceResolver] = None,
                 waiter: Optional[ReadinessWaiter] = None, binder: Optional[DependencyBinder] = None,
                 verifier: Optional[HealthVerifier] = None, cancel_event: Optional[threading.Event] = None,
                 health_concurrency: bool = False):
        self.provider = provider
        self.cancel_event = cancel_event
        self.resolver = resolver or ResourceResolver(provider)
        self.waiter = waiter or ReadinessWaiter(provider, cancel_event=cancel_event)
        self.binder = binder or DependencyBinder(provider, self.waiter)
        self.verifier = verifier or HealthVerifier(cancel_event=cancel_event)
        self.health_concurrency = health_concurrency

    def converge(self, plan: DeploymentPlan, context: Optional[ConvergenceContext] = None) -> ConvergenceReport:
        """Run ``plan`` and report what happened. Never raises ConvergenceError."""
        context = context if context is not None else ConvergenceContext()
        report = ConvergenceReport(mode=plan.name)
        logger.info(f"🚀 Converging plan '{plan.name}': {len(plan.resources)} resources, "
                    f"{len(plan.bindings)} bindings, {len(plan.health_checks)} health checks")

        try:
            for spec in plan.resources:
                self._converge_resource(spec, context, report)
            for binding_spec in plan.bindings:
                result = self.binder.bind(
                    context.resource(binding_spec.source),
                    context.resource(binding_spec.target),
                    binding_spec.port,
                )
                report.bindings.append(result)
                report.warnings.extend(result.warnings)
        except ConvergenceError as e:
            logger.error(f"❌ Convergence aborted: {e}")
            report.fail(e)
            return report.finish()

        report.health.extend(self._verify(plan.health_checks, context))
        return report.finish()

    def _converge_resource(self, spec: ResourceSpec, context: ConvergenceContext,
                           report: ConvergenceReport) -> Resource:
        config = spec.build_config(context)
        try:
            resource = self.resolver.resolve(spec.kind, spec.name, config)
        except ResolutionError as e:
            if e.resource is not None:
                report.resources.append(e.resource)
            raise
        context.resources[spec.name] = resource
        report.resources.append(resource)

        try:
            if spec.start_if_stopped:
                self._start_if_stopped(resource, spec)

            if spec.ready_when is None:
                resource.transition(ResourceState.READY)
            else:
                logger.info(f"⏳ Waiting for {spec.kind.value} {spec.name} to become ready...")
                self.waiter.await_ready(resource, spec.ready_when, spec.wait_interval, spec.wait_attempts)
                logger.info(f"✅ {spec.kind.value} {spec.name} is ready")
        except ConvergenceError as e:
            resource.fail(e.message)
            raise

        self._refresh_attributes(resource)

        if spec.on_ready is not None:
            try:
                spec.on_ready(resource, context)
            except ConvergenceError as e:
                resource.fail(e.message)
                raise
        return resource

    def _start_if_stopped(self, resource: Resource, spec: ResourceSpec) -> None:
        try:
            status = self.provider.describe_status(resource)
        except ProviderError as e:
            logger.debug(f"Could not read status of {resource.name} before waiting: {e}")
            return

        if status == STOPPING:
            logger.info(f"⏳ {resource.name} is stopping; waiting for it to stop before starting it")
            self.waiter.await_ready(resource, status_is(STOPPED), spec.wait_interval,
                                    spec.wait_attempts, mark_ready=False)
            status = STOPPED

        if status != STOPPED:
            return

        logger.info(f"🔄 Starting stopped {resource.kind.value} {resource.name} ({resource.identity})")
        try:
            self.provider.start_instance(resource)
        except ProviderError as e:
            raise ResolutionError(
                f"Failed to start {resource.kind.value}: {e.message}",
                resource_name=resource.name,
                attempts=1,
                last_status=e.code,
            ) from e

    def _refresh_attributes(self, resource: Resource) -> None:
        try:
            resource.attributes.update(self.provider.describe_attributes(resource))
        except ProviderError as e:
            logger.warning(f"⚠️ Could not describe {resource.name}: {e.message}")

    def _verify(self, specs: List[HealthCheckSpec], context: ConvergenceContext) -> List[HealthResult]:
        """Probe every buildable endpoint; results follow the plan's order."""
        results: List[Optional[HealthResult]] = []
        checks = []
        for spec in specs:
            try:
                endpoint = spec.endpoint(context)
            except ConvergenceError as e:
                logger.error(f"❌ Cannot build endpoint for health check {spec.name}: {e}")
                results.append(HealthResult(
                    name=spec.name,
                    endpoint=_UNKNOWN_ENDPOINT,
                    outcome=ProbeOutcome.UNHEALTHY,
                    attempts_made=0,
                    last_error=str(e),
                ))
                continue
            results.append(None)
            diagnostics = None
            if spec.diagnostics is not None:
                diagnostics = partial(spec.diagnostics, context)
            checks.append(HealthCheck(
                name=spec.name,
                endpoint=endpoint,
                attempts=spec.attempts,
                interval=spec.interval,
                diagnostics=diagnostics,
            ))
        probed = iter(self.verifier.verify_many(checks, concurrent=self.health_concurrency))
        return [result if result is not None else next(probed) for result in results]
