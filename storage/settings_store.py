"""SSM Parameter Store backed site settings."""
import logging
from typing import Dict, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class ParameterStoreSettings:
    """Reads and writes the feed settings under a parameter prefix."""

    FEED_URL = 'feed_url'
    TIMEZONE = 'timezone'
    NAMES = (FEED_URL, TIMEZONE)

    def __init__(self, prefix: str, region_name: Optional[str] = None):
        """
        Initialize the SSM client.

        Args:
            prefix: Parameter path prefix, e.g. /pull-events
            region_name: AWS region, defaults to the environment's region
        """
        self.prefix = '/' + prefix.strip('/')
        self.ssm = boto3.client('ssm', region_name=region_name)

    def load(self) -> Dict[str, str]:
        """
        Read all settings that are present.

        Returns:
            Mapping of setting name to value; missing parameters are omitted
        """
        names = [self._path(name) for name in self.NAMES]
        try:
            response = self.ssm.get_parameters(Names=names)
        except ClientError as e:
            logger.error(f"Error reading settings under {self.prefix}: {e}")
            raise

        values = {}
        for parameter in response.get('Parameters', []):
            name = parameter['Name'].rsplit('/', 1)[-1]
            values[name] = parameter['Value']
        if response.get('InvalidParameters'):
            logger.debug(f"Settings not set: {response['InvalidParameters']}")
        return values

    def save(self, name: str, value: str) -> None:
        """
        Write one setting.

        Args:
            name: Setting name (feed_url or timezone)
            value: New value
        """
        if name not in self.NAMES:
            raise ValueError(f"Unknown setting: {name}")
        try:
            self.ssm.put_parameter(
                Name=self._path(name),
                Value=value,
                Type='String',
                Overwrite=True
            )
        except ClientError as e:
            logger.error(f"Error saving setting {name}: {e}")
            raise
        logger.info(f"Saved setting {name}")

    def _path(self, name: str) -> str:
        return f'{self.prefix}/{name}'
