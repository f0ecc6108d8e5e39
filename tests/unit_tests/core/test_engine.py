import threading

import pytest
import requests

from deploy_engine.core.engine import ConvergenceEngine
from deploy_engine.core.exceptions import (
    ArtifactError,
    ConfigurationError,
    DeploymentCancelled,
    PreconditionError,
    ResolutionError,
)
from deploy_engine.core.health import HealthVerifier
from deploy_engine.core.models import Endpoint, ResourceKind, ResourceState
from deploy_engine.core.plan import (
    BindingSpec,
    ConvergenceContext,
    DeploymentPlan,
    HealthCheckSpec,
    ResourceSpec,
)
from deploy_engine.core.provider import ProviderError
from deploy_engine.core.waiter import ReadinessWaiter, status_is

INSTANCE_CONFIG = {
    "image_id": "ami-123",
    "instance_type": "t2.micro",
    "subnet_id": "subnet-a",
    "security_group_ids": ["sg-1"],
}

class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


def ok_get(url, timeout=None):
    return FakeResponse(200)


def down_get(url, timeout=None):
    raise requests.ConnectionError("connection refused")


def _engine(provider, clock, http_get=ok_get, cancel_event=None):
    waiter = ReadinessWaiter(provider, sleep=clock.sleep, cancel_event=cancel_event)
    verifier = HealthVerifier(http_get=http_get, sleep=clock.sleep, cancel_event=cancel_event)
    return ConvergenceEngine(provider, waiter=waiter, verifier=verifier, cancel_event=cancel_event)


def _full_plan(on_ready=None, health_attempts=3):
    return DeploymentPlan(
        name="full",
        resources=[
            ResourceSpec(ResourceKind.COMPUTE_INSTANCE, "app", INSTANCE_CONFIG,
                         ready_when=status_is("running"), wait_interval=15, wait_attempts=40,
                         start_if_stopped=True, on_ready=on_ready),
            ResourceSpec(ResourceKind.LOAD_BALANCER, "alb",
                         {"subnets": ["subnet-a", "subnet-b"], "security_groups": ["sg-1"]},
                         ready_when=status_is("active"), wait_interval=30, wait_attempts=20),
            ResourceSpec(ResourceKind.TARGET_GROUP, "tg", {"vpc_id": "vpc-1", "port": 9000}),
            ResourceSpec(ResourceKind.LISTENER, "alb-http-80", lambda ctx: {
                "load_balancer_arn": ctx.identity("alb"),
                "target_group_arn": ctx.identity("tg"),
                "port": 80,
            }),
        ],
        bindings=[BindingSpec(source="app", target="tg", port=9000)],
        health_checks=[
            HealthCheckSpec("load balancer", lambda ctx: Endpoint(ctx.attribute("alb", "dns_name"), 80),
                            attempts=health_attempts, interval=10,
                            diagnostics=lambda ctx: ["app log: started"]),
        ],
    )


@pytest.fixture
def provider(fake_provider):
    fake_provider.statuses["app"] = ["pending", "pending", "running"]
    fake_provider.statuses["alb"] = ["provisioning", "active"]
    fake_provider.attributes["alb"] = {"dns_name": "alb-123.elb.amazonaws.com"}
    fake_provider.attributes["app"] = {"public_ip": "54.1.2.3"}
    return fake_provider


def test_full_plan_converges(provider, fake_clock):
    report = _engine(provider, fake_clock).converge(_full_plan())

    assert report.succeeded
    assert report.exit_code == 0
    assert [r.name for r in report.resources] == ["app", "alb", "tg", "alb-http-80"]
    assert all(r.is_ready for r in report.resources)
    assert report.resources[0].state == ResourceState.BOUND
    assert report.resources[1].attributes["dns_name"] == "alb-123.elb.amazonaws.com"
    assert report.health[0].healthy
    assert report.health[0].endpoint.url == "http://alb-123.elb.amazonaws.com/"
    assert provider.created_configs["alb-http-80"] == {
        "load_balancer_arn": provider.existing[(ResourceKind.LOAD_BALANCER, "alb")],
        "target_group_arn": provider.existing[(ResourceKind.TARGET_GROUP, "tg")],
        "port": 80,
    }


def test_second_run_creates_nothing(provider, fake_clock):
    engine = _engine(provider, fake_clock)
    engine.converge(_full_plan())
    creates = provider.calls["create"]
    provider.statuses["app"] = ["running"]
    provider.statuses["alb"] = ["active"]

    report = engine.converge(_full_plan())

    assert report.succeeded
    assert provider.calls["create"] == creates
    assert all(r.state != ResourceState.CREATED for r in report.resources)
    assert len(provider.registrations) == 1


def test_stopped_instance_is_started_before_waiting(provider, fake_clock):
    provider.add_existing(ResourceKind.COMPUTE_INSTANCE, "app", "i-stopped")
    provider.statuses["app"] = ["stopped", "pending", "running"]

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert report.succeeded
    assert provider.started == ["i-stopped"]


def test_stopping_instance_waits_for_stop_then_starts(provider, fake_clock):
    provider.add_existing(ResourceKind.COMPUTE_INSTANCE, "app", "i-stopping")
    provider.statuses["app"] = ["stopping", "stopping", "stopped", "pending", "running"]

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert report.succeeded
    assert provider.started == ["i-stopping"]


def test_start_failure_aborts_run(provider, fake_clock):
    provider.add_existing(ResourceKind.COMPUTE_INSTANCE, "app", "i-stopped")
    provider.statuses["app"] = ["stopped"]
    provider.failures["start_instance"] = ProviderError("IncorrectInstanceState", "instance is terminated")

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert not report.succeeded
    assert isinstance(report.failure, ResolutionError)
    assert report.resources[0].state == ResourceState.FAILED
    assert report.health == []


def test_readiness_timeout_stops_before_next_resource(provider, fake_clock):
    provider.statuses["alb"] = ["provisioning"]

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert report.exit_code == 1
    assert report.failure.resource_name == "alb"
    assert report.failure.last_status == "provisioning"
    assert [r.name for r in report.resources] == ["app", "alb"]
    assert report.resources[1].state == ResourceState.FAILED
    # Nothing after the load balancer was touched, and nothing was deleted
    assert (ResourceKind.TARGET_GROUP, "tg") not in provider.existing
    assert provider.registrations == set()
    assert report.health == []


def test_validation_failure_creates_nothing_for_that_resource(provider, fake_clock):
    provider.subnet_zones["subnet-b"] = "us-east-1a"

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert isinstance(report.failure, ResolutionError)
    assert "same availability zone" in report.failure.message
    assert (ResourceKind.LOAD_BALANCER, "alb") not in provider.existing
    failed = report.resources[-1]
    assert failed.name == "alb"
    assert failed.state == ResourceState.FAILED
    assert failed.identity is None
    assert report.to_dict()["resources"][-1]["failure_reason"] == failed.failure_reason
    assert "same availability zone" in failed.failure_reason


def test_on_ready_hook_runs_after_readiness(provider, fake_clock):
    seen = []

    def ship(resource, context):
        seen.append((resource.name, resource.state, resource.attributes.get("public_ip")))
        context.artifacts["shipped"] = True

    context = ConvergenceContext()
    report = _engine(provider, fake_clock).converge(_full_plan(on_ready=ship), context)

    assert report.succeeded
    assert seen == [("app", ResourceState.READY, "54.1.2.3")]
    assert context.artifacts["shipped"] is True


def test_on_ready_failure_marks_resource_failed(provider, fake_clock):
    def ship(resource, context):
        raise ArtifactError("scp failed: connection refused", resource_name=resource.name)

    report = _engine(provider, fake_clock).converge(_full_plan(on_ready=ship))

    assert isinstance(report.failure, ArtifactError)
    assert report.resources[0].state == ResourceState.FAILED
    assert len(report.resources) == 1


def test_degraded_binding_still_runs_health_checks(provider, fake_clock):
    provider.binding_health = ["unhealthy"]

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert report.degraded
    assert report.succeeded
    assert len(report.warnings) == 1
    assert report.health[0].healthy


def test_unhealthy_endpoint_fails_run_with_diagnostics(provider, fake_clock):
    report = _engine(provider, fake_clock, http_get=down_get).converge(_full_plan(health_attempts=3))

    assert report.failure is None
    assert not report.succeeded
    assert report.exit_code == 1
    assert report.health[0].attempts_made == 3
    failure = report.health_failures()[0]
    assert failure.resource_name == "load balancer"
    assert failure.attempts == 3
    assert failure.diagnostics == ["app log: started"]
    assert "app log: started" in report.last_diagnostics()


def test_missing_endpoint_attribute_reports_unhealthy(provider, fake_clock):
    provider.attributes["alb"] = {}

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert not report.succeeded
    assert report.health[0].attempts_made == 0
    assert "dns_name" in report.health[0].last_error


def test_bind_precondition_is_reported(fake_provider):
    plan = DeploymentPlan(
        name="bind-only",
        resources=[ResourceSpec(ResourceKind.COMPUTE_INSTANCE, "app", INSTANCE_CONFIG),
                   ResourceSpec(ResourceKind.TARGET_GROUP, "tg", {"vpc_id": "vpc-1", "port": 9000})],
        bindings=[BindingSpec("app", "tg", 9000)],
    )

    class RefusingBinder:
        def bind(self, source, target, port):
            raise PreconditionError("not ready", resource_name=source.name)

    report = ConvergenceEngine(fake_provider, binder=RefusingBinder()).converge(plan)

    assert isinstance(report.failure, PreconditionError)
    assert report.bindings == []


def test_cancellation_is_reported_as_failure(provider, fake_clock):
    cancel = threading.Event()
    cancel.set()

    report = _engine(provider, fake_clock, cancel_event=cancel).converge(_full_plan())

    assert isinstance(report.failure, DeploymentCancelled)
    assert provider.calls["describe_status"] == 1


def test_local_plan_needs_no_provider(fake_clock):
    plan = DeploymentPlan(name="local", health_checks=[
        HealthCheckSpec("local", lambda ctx: Endpoint("localhost", 9000), attempts=2, interval=1),
    ])
    engine = ConvergenceEngine(None, verifier=HealthVerifier(http_get=ok_get, sleep=fake_clock.sleep))

    report = engine.converge(plan)

    assert report.succeeded
    assert report.to_dict()["health"][0]["url"] == "http://localhost:9000/"


def test_plan_rejects_duplicate_and_undeclared_names():
    with pytest.raises(ValueError, match="Duplicate"):
        DeploymentPlan(name="p", resources=[ResourceSpec(ResourceKind.TARGET_GROUP, "tg"),
                                            ResourceSpec(ResourceKind.TARGET_GROUP, "tg")])
    with pytest.raises(ValueError, match="undeclared"):
        DeploymentPlan(name="p", resources=[ResourceSpec(ResourceKind.TARGET_GROUP, "tg")],
                       bindings=[BindingSpec("app", "tg", 9000)])


def test_zero_wait_budget_is_reported_not_raised(provider, fake_clock):
    plan = DeploymentPlan(name="bad-budget", resources=[
        ResourceSpec(ResourceKind.COMPUTE_INSTANCE, "app", INSTANCE_CONFIG,
                     ready_when=status_is("running"), wait_attempts=0),
    ])

    report = _engine(provider, fake_clock).converge(plan)

    assert isinstance(report.failure, ConfigurationError)
    assert report.exit_code == 1
    assert report.resources[0].state == ResourceState.FAILED


def test_create_failure_lists_failed_resource(provider, fake_clock):
    provider.failures["create"] = ProviderError("InvalidSubnet", "subnet-a does not exist")

    report = _engine(provider, fake_clock).converge(_full_plan())

    assert isinstance(report.failure, ResolutionError)
    assert [(r.name, r.state) for r in report.resources] == [("app", ResourceState.FAILED)]
    assert "subnet-a does not exist" in report.resources[0].failure_reason


def test_health_results_follow_plan_order(provider, fake_clock):
    provider.attributes["app"] = {}
    plan = _full_plan()
    plan.health_checks.insert(0, HealthCheckSpec(
        "instance", lambda ctx: Endpoint(ctx.attribute("app", "public_ip"), 9000), attempts=1, interval=1,
    ))
    plan.health_checks.append(HealthCheckSpec(
        "local", lambda ctx: Endpoint("localhost", 9000), attempts=1, interval=1,
    ))

    report = _engine(provider, fake_clock).converge(plan)

    assert [r.name for r in report.health] == ["instance", "load balancer", "local"]
    assert report.health[0].attempts_made == 0
    assert [r.healthy for r in report.health] == [False, True, True]
