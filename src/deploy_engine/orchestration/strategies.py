"""Deployment strategies, one per CLI mode."""
import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

import requests
from botocore.exceptions import BotoCoreError

from deploy_engine.artifacts import ImageBuilder, LocalAppRunner, RemoteDeployer, RepositoryManager
from deploy_engine.aws import AWSProvider
from deploy_engine.aws.compute import render_user_data
from deploy_engine.aws.preflight import check_credentials
from deploy_engine.core.binder import DependencyBinder
from deploy_engine.core.engine import ConvergenceEngine
from deploy_engine.core.exceptions import ArtifactError, ConfigurationError, ConvergenceError
from deploy_engine.core.health import HealthVerifier
from deploy_engine.core.models import Endpoint, Resource, ResourceKind
from deploy_engine.core.plan import (BindingSpec, ConvergenceContext, DeploymentPlan, HealthCheckSpec,
                                     ResourceSpec)
from deploy_engine.core.provider import Provider, ProviderError
from deploy_engine.core.report import ConvergenceReport
from deploy_engine.core.waiter import ReadinessWaiter, status_is
from deploy_engine.settings import DEPLOYMENT_MODES, Settings
from deploy_engine.utils.decorators import log_operation

from .report import print_summary

logger = logging.getLogger(__name__)

# Logical name of the application instance
APP = "app"


class DeploymentStrategy:
    """Base class for deployment strategies.

    A run validates settings, runs preflight checks, prepares the JAR,
    then hands a DeploymentPlan to the convergence engine.
    """

    def __init__(self, mode: str, settings: Settings, provider: Optional[Provider] = None,
                 cancel_event: Optional[threading.Event] = None, skip_clone: bool = False,
                 concurrent_health: Optional[bool] = None, run: Callable = subprocess.run,
                 sleep: Callable[[float], None] = time.sleep, http_get: Callable = requests.get):
        self.mode = mode
        self.settings = settings
        self.provider = provider
        self.cancel_event = cancel_event or threading.Event()
        self.skip_clone = skip_clone
        self.concurrent_health = settings.health_concurrency if concurrent_health is None else concurrent_health
        self.run_command = run
        self.sleep = sleep
        self.http_get = http_get
        self.repository = RepositoryManager(settings, run=run, sleep=sleep)
        self.waiter = ReadinessWaiter(provider, sleep=sleep, cancel_event=self.cancel_event)
        self.jar: Optional[Path] = None

    def validate(self) -> None:
        missing = self.settings.missing_for_mode(self.mode)
        if self.skip_clone and "GITHUB_REPO_URL" in missing:
            missing.remove("GITHUB_REPO_URL")
        if missing:
            raise ConfigurationError(f"Missing required configuration for mode '{self.mode}': {', '.join(missing)}")
        logger.info(f"✅ Configuration valid for mode '{self.mode}'")

    def connect(self) -> None:
        """Set up the provider. Local runs need none."""
        pass

    def preflight(self) -> None:
        """Checks against external systems before anything is changed."""
        pass

    def prepare(self) -> None:
        self.jar = self.repository.prepare(skip_clone=self.skip_clone)

    def build_plan(self) -> DeploymentPlan:
        raise NotImplementedError

    def create_engine(self) -> ConvergenceEngine:
        waiter = self.waiter
        return ConvergenceEngine(
            self.provider,
            waiter=waiter,
            binder=DependencyBinder(
                self.provider,
                waiter,
                health_interval=self.settings.target_health_interval,
                health_attempts=self.settings.target_health_attempts,
            ),
            verifier=HealthVerifier(
                http_get=self.http_get,
                probe_timeout=self.settings.probe_timeout,
                sleep=self.sleep,
                cancel_event=self.cancel_event,
            ),
            cancel_event=self.cancel_event,
            health_concurrency=self.concurrent_health,
        )

    def deploy(self) -> ConvergenceReport:
        """Run the whole deployment; errors end up in the report, not as exceptions."""
        logger.info(f"🚀 Starting deployment in {self.mode} mode")
        try:
            self.validate()
            self.connect()
            self.preflight()
            self.prepare()
            plan = self.build_plan()
        except ConvergenceError as e:
            logger.error(f"❌ Deployment failed before convergence: {e}")
            report = ConvergenceReport(mode=self.mode)
            report.fail(e)
            report.finish()
        else:
            report = self.create_engine().converge(plan, ConvergenceContext())
        print_summary(report)
        return report


class LocalStrategy(DeploymentStrategy):
    """Run the JAR on this machine and probe it on localhost."""

    def __init__(self, settings: Settings, **kwargs):
        super().__init__("local", settings, **kwargs)
        self.runner = LocalAppRunner(settings, run=self.run_command, sleep=self.sleep)

    @log_operation("Start local application")
    def prepare(self) -> None:
        super().prepare()
        self.runner.start(self.jar)

    def build_plan(self) -> DeploymentPlan:
        return DeploymentPlan(
            name=self.mode,
            health_checks=[HealthCheckSpec(
                name="local application",
                endpoint=lambda ctx: Endpoint("localhost", self.settings.app_port, self.settings.health_path),
                attempts=self.settings.local_health_attempts,
                interval=self.settings.local_health_interval,
                diagnostics=lambda ctx: self.runner.diagnostics(),
            )],
        )


class RemoteInstanceStrategy(DeploymentStrategy):
    """Launch or reuse the EC2 instance and ship the application to it."""

    def __init__(self, settings: Settings, mode: str = "remote-instance", **kwargs):
        super().__init__(mode, settings, **kwargs)
        self.deployer = RemoteDeployer(settings, self.waiter, run=self.run_command)

    def connect(self) -> None:
        if self.provider is not None:
            return
        try:
            self.provider = AWSProvider(self.settings)
        except BotoCoreError as e:
            raise ConfigurationError(f"Could not create AWS clients: {e}") from e
        self.waiter.provider = self.provider

    def preflight(self) -> None:
        check_credentials(self.provider.clients.get_client("sts"))
        self.open_app_port()

    def open_app_port(self) -> None:
        try:
            added = self.provider.ensure_app_port_open(
                self.settings.security_group_id, self.settings.app_port, self.settings.ingress_cidr)
        except ProviderError as e:
            logger.warning(f"⚠️ Could not verify ingress on port {self.settings.app_port}: {e.message}")
            return
        if added:
            logger.info(f"✅ Opened port {self.settings.app_port} on {self.settings.security_group_id}")

    def instance_config(self, context: ConvergenceContext):
        tags = {"Environment": self.settings.environment_tag, "ManagedBy": "deploy-engine"}
        if "image_ref" in context.artifacts:
            tags["ImageRef"] = context.artifacts["image_ref"]
        return {
            "image_id": self.settings.ec2_ami_id,
            "instance_type": self.settings.ec2_instance_type,
            "subnet_id": self.settings.subnet_id_1,
            "security_group_ids": [self.settings.security_group_id],
            "key_name": self.settings.ec2_key_pair_name,
            "user_data": render_user_data(self.settings.remote_app_dir),
            "tags": tags,
        }

    def push_image(self, resource: Resource, context: ConvergenceContext) -> None:
        builder = ImageBuilder(self.settings, self.provider.registry, run=self.run_command)
        tag = self.settings.image_tag
        if tag == "latest":
            tag = self.repository.commit_sha() or tag
        context.artifacts["image_ref"] = builder.build_and_push(resource.identity, tag)

    def ship_application(self, resource: Resource, context: ConvergenceContext) -> None:
        host = resource.attributes.get("public_ip")
        if not host:
            raise ArtifactError("Instance has no public IP; cannot deploy over SSH",
                                resource_name=resource.name, last_status=resource.attributes.get("state"))
        self.deployer.wait_for_ssh(resource, host)
        if self.settings.runtime == "container":
            self.deployer.deploy_container(host, context.artifacts["image_ref"])
        else:
            self.deployer.deploy_jar(host, self.jar)

    def instance_diagnostics(self, context: ConvergenceContext) -> List[str]:
        resource = context.resource(APP)
        lines: List[str] = []
        host = resource.attributes.get("public_ip")
        if host:
            try:
                lines += ["--- application log ---"] + self.deployer.app_log_tail(host)
            except ConvergenceError as e:
                lines.append(f"application log unavailable: {e}")
        try:
            lines += ["--- console output ---"] + self.provider.fetch_diagnostics(resource)
        except ProviderError as e:
            lines.append(f"console output unavailable: {e.message}")
        return lines

    def resource_specs(self) -> List[ResourceSpec]:
        specs = []
        if self.settings.runtime == "container":
            specs.append(ResourceSpec(
                kind=ResourceKind.IMAGE_REPOSITORY,
                name=self.settings.ecr_repository,
                config={"scan_on_push": True},
                on_ready=self.push_image,
            ))
        specs.append(ResourceSpec(
            kind=ResourceKind.COMPUTE_INSTANCE,
            name=APP,
            config=self.instance_config,
            ready_when=status_is("running"),
            wait_interval=self.settings.instance_wait_interval,
            wait_attempts=self.settings.instance_wait_attempts,
            start_if_stopped=True,
            on_ready=self.ship_application,
        ))
        return specs

    def health_checks(self) -> List[HealthCheckSpec]:
        return [HealthCheckSpec(
            name="instance",
            endpoint=lambda ctx: Endpoint(ctx.attribute(APP, "public_ip"), self.settings.app_port,
                                          self.settings.health_path),
            attempts=self.settings.endpoint_health_attempts,
            interval=self.settings.endpoint_health_interval,
            diagnostics=self.instance_diagnostics,
        )]

    def build_plan(self) -> DeploymentPlan:
        return DeploymentPlan(name=self.mode, resources=self.resource_specs(),
                              health_checks=self.health_checks())


class FullStrategy(RemoteInstanceStrategy):
    """Remote instance plus an Application Load Balancer in front of it."""

    def __init__(self, settings: Settings, **kwargs):
        super().__init__(settings, mode="full", **kwargs)

    def resource_specs(self) -> List[ResourceSpec]:
        s = self.settings
        specs = super().resource_specs()
        specs += [
            ResourceSpec(
                kind=ResourceKind.LOAD_BALANCER,
                name=s.alb_name,
                config={
                    "subnets": s.subnet_ids,
                    "security_groups": [s.security_group_id],
                    "environment": s.environment_tag,
                },
                ready_when=status_is("active"),
                wait_interval=s.alb_wait_interval,
                wait_attempts=s.alb_wait_attempts,
            ),
            ResourceSpec(
                kind=ResourceKind.TARGET_GROUP,
                name=s.target_group_name,
                config={
                    "vpc_id": s.vpc_id,
                    "port": s.app_port,
                    "health_path": s.health_path,
                    "health_check_interval": s.health_check_interval_seconds,
                    "health_check_timeout": s.health_check_timeout_seconds,
                    "healthy_threshold": s.healthy_threshold_count,
                    "unhealthy_threshold": s.unhealthy_threshold_count,
                    "environment": s.environment_tag,
                },
            ),
            ResourceSpec(
                kind=ResourceKind.LISTENER,
                name=f"{s.alb_name}-http-{s.listener_port}",
                config=lambda ctx: {
                    "load_balancer_arn": ctx.identity(s.alb_name),
                    "target_group_arn": ctx.identity(s.target_group_name),
                    "port": s.listener_port,
                },
            ),
        ]
        return specs

    def health_checks(self) -> List[HealthCheckSpec]:
        checks = super().health_checks()
        checks.append(HealthCheckSpec(
            name="load balancer",
            endpoint=lambda ctx: Endpoint(ctx.attribute(self.settings.alb_name, "dns_name"),
                                          self.settings.listener_port, self.settings.health_path),
            attempts=self.settings.endpoint_health_attempts,
            interval=self.settings.endpoint_health_interval,
            diagnostics=self.instance_diagnostics,
        ))
        return checks

    def build_plan(self) -> DeploymentPlan:
        return DeploymentPlan(
            name=self.mode,
            resources=self.resource_specs(),
            bindings=[BindingSpec(source=APP, target=self.settings.target_group_name, port=self.settings.app_port)],
            health_checks=self.health_checks(),
        )


def create_strategy(mode: str, settings: Settings, **kwargs) -> DeploymentStrategy:
    """Create deployment strategy based on mode."""
    if mode == "local":
        return LocalStrategy(settings, **kwargs)
    elif mode == "remote-instance":
        return RemoteInstanceStrategy(settings, **kwargs)
    elif mode == "full":
        return FullStrategy(settings, **kwargs)
    else:
        raise ValueError(f"Unsupported deployment mode: {mode}. Use one of {DEPLOYMENT_MODES}")
