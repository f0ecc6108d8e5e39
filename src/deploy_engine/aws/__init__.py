"""boto3-backed provider for EC2, Elastic Load Balancing v2 and ECR."""
from .clients import AWSClientManager
from .provider import AWSProvider, provider_call

__all__ = ["AWSClientManager", "AWSProvider", "provider_call"]
