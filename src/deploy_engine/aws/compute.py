"""EC2 instance management for the Java application host."""
import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# Instances in these states are reused rather than replaced
REUSABLE_STATES = ['pending', 'running', 'stopping', 'stopped']

BOOTSTRAP_USER_DATA = """#!/bin/bash
# Prepares the host for the Java application; the JAR or image is shipped separately
yum update -y
yum install -y java-11-amazon-corretto docker git curl
systemctl start docker
systemctl enable docker
usermod -a -G docker ec2-user

mkdir -p {app_dir}
chown ec2-user:ec2-user {app_dir}
mkdir -p /var/log/java-app
chown ec2-user:ec2-user /var/log/java-app

echo "EC2 initialization completed at $(date)" >> /var/log/user-data.log
"""


def render_user_data(app_dir: str = "/opt/java-app") -> str:
    return BOOTSTRAP_USER_DATA.format(app_dir=app_dir)


class InstanceManager:
    """Find, launch and inspect the EC2 instance tagged with the application name."""

    def __init__(self, ec2_client):
        self.ec2_client = ec2_client

    def find_instance(self, name: str) -> Optional[Dict[str, Any]]:
        """Find an existing instance by Name tag, preferring one that is already up."""
        response = self.ec2_client.describe_instances(
            Filters=[
                {'Name': 'tag:Name', 'Values': [name]},
                {'Name': 'instance-state-name', 'Values': REUSABLE_STATES},
            ]
        )
        instances = [
            instance
            for reservation in response['Reservations']
            for instance in reservation['Instances']
        ]
        if not instances:
            return None
        for instance in instances:
            if instance['State']['Name'] in ('running', 'pending'):
                return instance
        return instances[0]

    def launch_instance(self, name: str, config: Dict[str, Any]) -> str:
        """Launch one instance from ``config`` and return its id."""
        params = {
            'ImageId': config['image_id'],
            'InstanceType': config['instance_type'],
            'MinCount': 1,
            'MaxCount': 1,
            'NetworkInterfaces': [{
                'AssociatePublicIpAddress': True,
                'DeviceIndex': 0,
                'SubnetId': config['subnet_id'],
                'Groups': list(config['security_group_ids']),
            }],
            'UserData': config.get('user_data') or render_user_data(),
            'TagSpecifications': [{
                'ResourceType': 'instance',
                'Tags': [{'Key': 'Name', 'Value': name}] + [
                    {'Key': key, 'Value': value} for key, value in config.get('tags', {}).items()
                ],
            }],
        }
        if config.get('key_name'):
            params['KeyName'] = config['key_name']

        logger.info(f"🚀 Launching {config['instance_type']} instance {name} from {config['image_id']}")
        response = self.ec2_client.run_instances(**params)
        instance_id = response['Instances'][0]['InstanceId']
        logger.info(f"Launched instance: {instance_id}")
        return instance_id

    def describe_instance(self, instance_id: str) -> Dict[str, Any]:
        response = self.ec2_client.describe_instances(InstanceIds=[instance_id])
        return response['Reservations'][0]['Instances'][0]

    def instance_state(self, instance_id: str) -> str:
        return self.describe_instance(instance_id)['State']['Name']

    def start_instance(self, instance_id: str) -> None:
        self.ec2_client.start_instances(InstanceIds=[instance_id])
        logger.info(f"Start requested for instance: {instance_id}")

    def instance_details(self, instance_id: str) -> Dict[str, Any]:
        instance = self.describe_instance(instance_id)
        return {
            'instance_id': instance_id,
            'state': instance['State']['Name'],
            'public_ip': instance.get('PublicIpAddress'),
            'private_ip': instance.get('PrivateIpAddress'),
            'public_dns': instance.get('PublicDnsName') or None,
        }

    def console_output_tail(self, instance_id: str, lines: int = 50) -> List[str]:
        """Last ``lines`` lines of the instance console output."""
        response = self.ec2_client.get_console_output(InstanceId=instance_id)
        output = response.get('Output') or ''
        try:
            text = base64.b64decode(output, validate=True).decode('utf-8', errors='replace')
        except (binascii.Error, ValueError):
            text = output
        return text.splitlines()[-lines:]

    def describe_subnet_zones(self, subnet_ids: List[str]) -> Dict[str, str]:
        response = self.ec2_client.describe_subnets(SubnetIds=list(subnet_ids))
        return {subnet['SubnetId']: subnet['AvailabilityZone'] for subnet in response['Subnets']}

    def ensure_ingress(self, group_id: str, port: int, cidr: str = '0.0.0.0/0') -> bool:
        """Open ``port`` on the security group. Returns True when a rule was added."""
        response = self.ec2_client.describe_security_groups(GroupIds=[group_id])
        for permission in response['SecurityGroups'][0].get('IpPermissions', []):
            if permission.get('IpProtocol') not in ('tcp', '-1'):
                continue
            if permission.get('IpProtocol') == '-1' or \
                    permission.get('FromPort', 0) <= port <= permission.get('ToPort', -1):
                if any(r.get('CidrIp') == cidr for r in permission.get('IpRanges', [])):
                    logger.info(f"✅ Security group {group_id} already allows port {port} from {cidr}")
                    return False

        logger.info(f"Adding ingress rule for port {port} from {cidr} to {group_id}")
        try:
            self.ec2_client.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[{
                    'IpProtocol': 'tcp',
                    'FromPort': port,
                    'ToPort': port,
                    'IpRanges': [{'CidrIp': cidr, 'Description': 'Java application port'}],
                }],
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'InvalidPermission.Duplicate':
                return False
            raise
        return True
