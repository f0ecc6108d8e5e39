"""ECR repository management and registry credentials."""
import base64
import logging
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class ImageRegistry:
    def __init__(self, ecr_client):
        self.ecr_client = ecr_client

    def find_repository(self, name: str) -> Optional[str]:
        """Return the repository URI, or None when it does not exist."""
        try:
            response = self.ecr_client.describe_repositories(repositoryNames=[name])
        except ClientError as e:
            if e.response['Error']['Code'] == 'RepositoryNotFoundException':
                return None
            raise
        repositories = response.get('repositories', [])
        return repositories[0]['repositoryUri'] if repositories else None

    def create_repository(self, name: str, config: Dict[str, Any]) -> str:
        logger.info(f"Creating ECR repository: {name}")
        try:
            response = self.ecr_client.create_repository(
                repositoryName=name,
                imageScanningConfiguration={'scanOnPush': config.get('scan_on_push', True)},
                tags=[{'Key': 'Name', 'Value': name}],
            )
        except ClientError as e:
            if e.response['Error']['Code'] != 'RepositoryAlreadyExistsException':
                raise
            logger.info(f"ECR repository {name} already exists")
            return self.find_repository(name)
        return response['repository']['repositoryUri']

    def get_login(self) -> Tuple[str, str, str]:
        """Registry credentials as (username, password, registry endpoint)."""
        response = self.ecr_client.get_authorization_token()
        auth = response['authorizationData'][0]
        username, password = base64.b64decode(auth['authorizationToken']).decode('utf-8').split(':', 1)
        return username, password, auth['proxyEndpoint']

    def image_digest(self, repository_name: str, tag: str) -> Optional[str]:
        try:
            response = self.ecr_client.describe_images(
                repositoryName=repository_name,
                imageIds=[{'imageTag': tag}],
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ImageNotFoundException':
                return None
            raise
        details = response.get('imageDetails', [])
        return details[0]['imageDigest'] if details else None
