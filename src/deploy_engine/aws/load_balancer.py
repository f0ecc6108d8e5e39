"""Application Load Balancer, target group and listener management."""
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# Reported for a target the target group does not know about
UNREGISTERED = 'unregistered'


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


class LoadBalancerManager:
    """Create-or-reuse wrapper over the ELBv2 API."""

    def __init__(self, elbv2_client):
        self.elbv2_client = elbv2_client

    # Load balancer

    def find_load_balancer(self, name: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.elbv2_client.describe_load_balancers(Names=[name])
        except ClientError as e:
            if _error_code(e) == 'LoadBalancerNotFound':
                return None
            raise
        load_balancers = response.get('LoadBalancers', [])
        return load_balancers[0] if load_balancers else None

    def create_load_balancer(self, name: str, config: Dict[str, Any]) -> str:
        logger.info(f"Creating Application Load Balancer {name} in subnets {', '.join(config['subnets'])}")
        response = self.elbv2_client.create_load_balancer(
            Name=name,
            Subnets=list(config['subnets']),
            SecurityGroups=list(config['security_groups']),
            Scheme=config.get('scheme', 'internet-facing'),
            Type='application',
            IpAddressType='ipv4',
            Tags=[
                {'Key': 'Name', 'Value': name},
                {'Key': 'Environment', 'Value': config.get('environment', 'production')},
            ],
        )
        return response['LoadBalancers'][0]['LoadBalancerArn']

    def describe_load_balancer(self, arn: str) -> Dict[str, Any]:
        response = self.elbv2_client.describe_load_balancers(LoadBalancerArns=[arn])
        return response['LoadBalancers'][0]

    def load_balancer_state(self, arn: str) -> str:
        return self.describe_load_balancer(arn)['State']['Code']

    # Target group

    def find_target_group(self, name: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.elbv2_client.describe_target_groups(Names=[name])
        except ClientError as e:
            if _error_code(e) == 'TargetGroupNotFound':
                return None
            raise
        target_groups = response.get('TargetGroups', [])
        return target_groups[0] if target_groups else None

    def create_target_group(self, name: str, config: Dict[str, Any]) -> str:
        logger.info(f"Creating target group {name} (HTTP:{config['port']})")
        response = self.elbv2_client.create_target_group(
            Name=name,
            Protocol='HTTP',
            Port=int(config['port']),
            VpcId=config['vpc_id'],
            TargetType='instance',
            HealthCheckProtocol='HTTP',
            HealthCheckPath=config.get('health_path', '/'),
            HealthCheckIntervalSeconds=config.get('health_check_interval', 30),
            HealthCheckTimeoutSeconds=config.get('health_check_timeout', 5),
            HealthyThresholdCount=config.get('healthy_threshold', 2),
            UnhealthyThresholdCount=config.get('unhealthy_threshold', 3),
            Matcher={'HttpCode': '200'},
            Tags=[
                {'Key': 'Name', 'Value': name},
                {'Key': 'Environment', 'Value': config.get('environment', 'production')},
            ],
        )
        return response['TargetGroups'][0]['TargetGroupArn']

    def target_group_exists(self, arn: str) -> bool:
        try:
            response = self.elbv2_client.describe_target_groups(TargetGroupArns=[arn])
        except ClientError as e:
            if _error_code(e) == 'TargetGroupNotFound':
                return False
            raise
        return bool(response.get('TargetGroups'))

    # Listener

    def find_listener(self, load_balancer_arn: str, port: int) -> Optional[Dict[str, Any]]:
        response = self.elbv2_client.describe_listeners(LoadBalancerArn=load_balancer_arn)
        for listener in response.get('Listeners', []):
            if listener.get('Port') == int(port):
                return listener
        return None

    def create_listener(self, config: Dict[str, Any]) -> str:
        logger.info(f"Creating HTTP listener on port {config['port']}")
        response = self.elbv2_client.create_listener(
            LoadBalancerArn=config['load_balancer_arn'],
            Protocol='HTTP',
            Port=int(config['port']),
            DefaultActions=[{'Type': 'forward', 'TargetGroupArn': config['target_group_arn']}],
        )
        return response['Listeners'][0]['ListenerArn']

    def listener_exists(self, arn: str) -> bool:
        try:
            response = self.elbv2_client.describe_listeners(ListenerArns=[arn])
        except ClientError as e:
            if _error_code(e) == 'ListenerNotFound':
                return False
            raise
        return bool(response.get('Listeners'))

    # Targets

    def is_target_registered(self, target_group_arn: str, instance_id: str, port: int) -> bool:
        response = self.elbv2_client.describe_target_health(TargetGroupArn=target_group_arn)
        for description in response.get('TargetHealthDescriptions', []):
            target = description.get('Target', {})
            if target.get('Id') == instance_id and target.get('Port', port) == port:
                return description.get('TargetHealth', {}).get('State') != 'draining'
        return False

    def register_target(self, target_group_arn: str, instance_id: str, port: int) -> None:
        logger.info(f"Registering {instance_id}:{port} with target group")
        self.elbv2_client.register_targets(
            TargetGroupArn=target_group_arn,
            Targets=[{'Id': instance_id, 'Port': int(port)}],
        )

    def target_health(self, target_group_arn: str, instance_id: str, port: int) -> str:
        response = self.elbv2_client.describe_target_health(TargetGroupArn=target_group_arn)
        for description in response.get('TargetHealthDescriptions', []):
            target = description.get('Target', {})
            if target.get('Id') == instance_id and target.get('Port', port) == port:
                return description.get('TargetHealth', {}).get('State', 'unknown')
        return UNREGISTERED
