"""Checks run before any resource is touched."""
import logging
from typing import Dict

from botocore.exceptions import BotoCoreError, ClientError

from deploy_engine.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def check_credentials(sts_client) -> Dict[str, str]:
    """Verify AWS credentials by asking STS who we are.

    Raises:
        ConfigurationError: credentials are missing or rejected
    """
    try:
        identity = sts_client.get_caller_identity()
    except (ClientError, BotoCoreError) as e:
        raise ConfigurationError(f"AWS credentials not configured or invalid: {e}") from e
    logger.info(f"✅ AWS credentials valid (account {identity['Account']}, {identity['Arn']})")
    return {'account': identity['Account'], 'arn': identity['Arn'], 'user_id': identity['UserId']}
