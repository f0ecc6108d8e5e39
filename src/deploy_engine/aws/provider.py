"""
boto3-backed Provider for EC2, ELBv2 and ECR.

Every botocore failure surfaces as ProviderError with the AWS error code
and message passed through verbatim.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from deploy_engine.core.models import Resource, ResourceKind
from deploy_engine.core.provider import ALREADY_REGISTERED, REGISTERED, Provider, ProviderError
from deploy_engine.settings import Settings, get_settings

from .clients import AWSClientManager
from .compute import InstanceManager
from .load_balancer import LoadBalancerManager
from .registry import ImageRegistry

logger = logging.getLogger(__name__)

ACTIVE = "active"
MISSING = "missing"


@contextmanager
def provider_call(operation: str):
    """Translate botocore exceptions raised inside the block into ProviderError."""
    try:
        yield
    except ClientError as e:
        error = e.response.get('Error', {})
        raise ProviderError(
            error.get('Code', 'ClientError'),
            error.get('Message', str(e)),
            operation=operation,
        ) from e
    except BotoCoreError as e:
        raise ProviderError(type(e).__name__, str(e), operation=operation) from e


class AWSProvider(Provider):
    """Provider API over EC2 instances, Application Load Balancers and ECR."""

    duplicate_registration_codes = frozenset({'DuplicateTarget', 'DuplicateTargetGroupName'})

    def __init__(self, settings: Optional[Settings] = None, clients: Optional[AWSClientManager] = None):
        self.settings = settings or get_settings()
        self.clients = clients or AWSClientManager(self.settings)
        self.ec2_client = self.clients.get_client('ec2')
        self.instances = InstanceManager(self.ec2_client)
        self.load_balancers = LoadBalancerManager(self.clients.get_client('elbv2'))
        self.registry = ImageRegistry(self.clients.get_client('ecr'))

    def lookup(self, kind: ResourceKind, name: str, config: Optional[Dict[str, Any]] = None) -> Optional[str]:
        config = config or {}
        with provider_call(f"lookup {kind.value}"):
            if kind == ResourceKind.COMPUTE_INSTANCE:
                instance = self.instances.find_instance(name)
                return instance['InstanceId'] if instance else None
            if kind == ResourceKind.LOAD_BALANCER:
                load_balancer = self.load_balancers.find_load_balancer(name)
                return load_balancer['LoadBalancerArn'] if load_balancer else None
            if kind == ResourceKind.TARGET_GROUP:
                target_group = self.load_balancers.find_target_group(name)
                return target_group['TargetGroupArn'] if target_group else None
            if kind == ResourceKind.LISTENER:
                if not config.get('load_balancer_arn'):
                    return None
                listener = self.load_balancers.find_listener(config['load_balancer_arn'], config['port'])
                return listener['ListenerArn'] if listener else None
            if kind == ResourceKind.IMAGE_REPOSITORY:
                return self.registry.find_repository(name)
        raise ProviderError('UnsupportedKind', f"Unsupported resource kind: {kind}", operation="lookup")

    def create(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> str:
        with provider_call(f"create {kind.value}"):
            if kind == ResourceKind.COMPUTE_INSTANCE:
                return self.instances.launch_instance(name, config)
            if kind == ResourceKind.LOAD_BALANCER:
                return self.load_balancers.create_load_balancer(name, config)
            if kind == ResourceKind.TARGET_GROUP:
                return self.load_balancers.create_target_group(name, config)
            if kind == ResourceKind.LISTENER:
                return self.load_balancers.create_listener(config)
            if kind == ResourceKind.IMAGE_REPOSITORY:
                return self.registry.create_repository(name, config)
        raise ProviderError('UnsupportedKind', f"Unsupported resource kind: {kind}", operation="create")

    def describe_status(self, resource: Resource) -> str:
        with provider_call(f"describe {resource.kind.value}"):
            if resource.kind == ResourceKind.COMPUTE_INSTANCE:
                return self.instances.instance_state(resource.identity)
            if resource.kind == ResourceKind.LOAD_BALANCER:
                return self.load_balancers.load_balancer_state(resource.identity)
            if resource.kind == ResourceKind.TARGET_GROUP:
                return ACTIVE if self.load_balancers.target_group_exists(resource.identity) else MISSING
            if resource.kind == ResourceKind.LISTENER:
                return ACTIVE if self.load_balancers.listener_exists(resource.identity) else MISSING
            if resource.kind == ResourceKind.IMAGE_REPOSITORY:
                return ACTIVE if self.registry.find_repository(resource.name) else MISSING
        raise ProviderError('UnsupportedKind', f"Unsupported resource kind: {resource.kind}",
                            operation="describe")

    def register_binding(self, source: Resource, target: Resource, port: int) -> str:
        with provider_call("register targets"):
            if self.load_balancers.is_target_registered(target.identity, source.identity, port):
                return ALREADY_REGISTERED
            self.load_balancers.register_target(target.identity, source.identity, port)
        return REGISTERED

    def describe_binding_health(self, source: Resource, target: Resource, port: int) -> str:
        with provider_call("describe target health"):
            return self.load_balancers.target_health(target.identity, source.identity, port)

    def describe_subnet_zones(self, subnet_ids: List[str]) -> Dict[str, str]:
        with provider_call("describe subnets"):
            return self.instances.describe_subnet_zones(subnet_ids)

    def start_instance(self, resource: Resource) -> None:
        with provider_call("start instance"):
            self.instances.start_instance(resource.identity)

    def describe_attributes(self, resource: Resource) -> Dict[str, Any]:
        with provider_call(f"describe {resource.kind.value}"):
            if resource.kind == ResourceKind.COMPUTE_INSTANCE:
                return self.instances.instance_details(resource.identity)
            if resource.kind == ResourceKind.LOAD_BALANCER:
                load_balancer = self.load_balancers.describe_load_balancer(resource.identity)
                return {'dns_name': load_balancer.get('DNSName'), 'state': load_balancer['State']['Code']}
            if resource.kind == ResourceKind.IMAGE_REPOSITORY:
                return {'repository_uri': resource.identity}
        return {}

    def fetch_diagnostics(self, resource: Resource, lines: int = 50) -> List[str]:
        if resource.kind != ResourceKind.COMPUTE_INSTANCE or not resource.identity:
            return []
        with provider_call("get console output"):
            return self.instances.console_output_tail(resource.identity, lines)

    def ensure_app_port_open(self, group_id: str, port: int, cidr: str = '0.0.0.0/0') -> bool:
        with provider_call("authorize security group ingress"):
            return self.instances.ensure_ingress(group_id, port, cidr)
