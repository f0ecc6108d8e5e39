"""AWS client management."""
import logging
import os
from typing import Any, Optional

import boto3

from deploy_engine.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Singleton manager for AWS service clients."""
    _instance = None

    def __new__(cls, settings: Optional[Settings] = None):
        if cls._instance is None:
            cls._instance = super(AWSClientManager, cls).__new__(cls)
            cls._instance._initialize(settings or get_settings())
        return cls._instance

    def _initialize(self, settings: Settings):
        self.settings = settings
        self.region = settings.aws_region
        self.endpoint_url = settings.aws_endpoint_url
        self._clients = {}

        logger.info("Initializing AWSClientManager")
        logger.info(f"  Region: {self.region}")
        if self.endpoint_url:
            logger.info(f"  Endpoint: {self.endpoint_url}")

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next call picks up fresh settings."""
        if cls._instance is not None:
            cls._instance.clear_clients()
        cls._instance = None

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {'region_name': self.region}

        # Named profiles (SSO) take precedence over static keys
        aws_profile = os.environ.get('AWS_PROFILE')
        if aws_profile and not self.settings.aws_access_key_id:
            session = boto3.Session(profile_name=aws_profile)
            client = session.client(service_name, region_name=self.region)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client using profile: {aws_profile}")
            return client

        if self.settings.aws_access_key_id:
            client_kwargs['aws_access_key_id'] = self.settings.aws_access_key_id
        if self.settings.aws_secret_access_key:
            client_kwargs['aws_secret_access_key'] = self.settings.aws_secret_access_key
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = boto3.client(service_name, **client_kwargs)
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise
        self._clients[service_name] = client
        logger.debug(f"Created {service_name} client")
        return client

    def clear_clients(self):
        """Clear all cached clients."""
        self._clients.clear()
        logger.debug("Cleared all AWS clients")
