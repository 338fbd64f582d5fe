"""Runtime configuration for the events pull."""
import os
from dataclasses import dataclass
from typing import Optional

from storage.settings_store import ParameterStoreSettings


@dataclass
class Settings:
    """Configuration read once at the start of a run."""
    feed_url: str
    timezone: str
    table_name: str
    log_level: str
    timeout_seconds: int
    default_category: int
    schedule_interval: str
    parameter_prefix: Optional[str] = None
    pull_function_arn: Optional[str] = None


def load_settings(settings_store: Optional[ParameterStoreSettings] = None) -> Settings:
    """
    Load settings from environment variables.

    feed_url and timezone can be overridden from Parameter Store when
    SETTINGS_PARAMETER_PREFIX is set.

    Args:
        settings_store: Parameter store to read overrides from

    Returns:
        Settings object
    """
    settings = Settings(
        feed_url=os.environ.get('FEED_URL', ''),
        timezone=os.environ.get('TIMEZONE', 'UTC'),
        table_name=os.environ.get('TABLE_NAME', 'localist-events'),
        log_level=os.environ.get('LOG_LEVEL', 'INFO'),
        timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '30')),
        default_category=int(os.environ.get('DEFAULT_CATEGORY', '43')),
        schedule_interval=os.environ.get('SCHEDULE_INTERVAL', '1 hour'),
        parameter_prefix=os.environ.get('SETTINGS_PARAMETER_PREFIX') or None,
        pull_function_arn=os.environ.get('PULL_FUNCTION_ARN') or None
    )

    if settings_store is None and settings.parameter_prefix:
        settings_store = ParameterStoreSettings(settings.parameter_prefix)

    if settings_store is not None:
        overrides = settings_store.load()
        if overrides.get(ParameterStoreSettings.FEED_URL):
            settings.feed_url = overrides[ParameterStoreSettings.FEED_URL]
        if overrides.get(ParameterStoreSettings.TIMEZONE):
            settings.timezone = overrides[ParameterStoreSettings.TIMEZONE]

    return settings
