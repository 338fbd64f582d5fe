"""Unit tests for settings loading."""
import os
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from config import load_settings
from storage.settings_store import ParameterStoreSettings


@pytest.fixture
def ssm():
    with mock_aws():
        yield boto3.client('ssm', region_name='us-east-1')


def test_defaults():
    with patch.dict(os.environ, {}, clear=False):
        for name in ('FEED_URL', 'TIMEZONE', 'TABLE_NAME', 'LOG_LEVEL', 'TIMEOUT_SECONDS',
                     'DEFAULT_CATEGORY', 'SCHEDULE_INTERVAL', 'SETTINGS_PARAMETER_PREFIX',
                     'PULL_FUNCTION_ARN'):
            os.environ.pop(name, None)

        settings = load_settings()

    assert settings.feed_url == ''
    assert settings.timezone == 'UTC'
    assert settings.table_name == 'localist-events'
    assert settings.log_level == 'INFO'
    assert settings.timeout_seconds == 30
    assert settings.default_category == 43
    assert settings.schedule_interval == '1 hour'
    assert settings.parameter_prefix is None
    assert settings.pull_function_arn is None


def test_environment_values():
    env_vars = {
        'FEED_URL': 'https://calendar.mit.edu/api/2/events',
        'TIMEZONE': 'America/New_York',
        'TABLE_NAME': 'news-events',
        'TIMEOUT_SECONDS': '10',
        'DEFAULT_CATEGORY': '7',
        'SCHEDULE_INTERVAL': '30 minutes',
        'PULL_FUNCTION_ARN': 'arn:aws:lambda:us-east-1:123456789012:function:pull-events',
    }
    with patch.dict(os.environ, env_vars):
        settings = load_settings()

    assert settings.feed_url == 'https://calendar.mit.edu/api/2/events'
    assert settings.timezone == 'America/New_York'
    assert settings.table_name == 'news-events'
    assert settings.timeout_seconds == 10
    assert settings.default_category == 7
    assert settings.schedule_interval == '30 minutes'
    assert settings.pull_function_arn == 'arn:aws:lambda:us-east-1:123456789012:function:pull-events'


def test_parameter_store_overrides_environment(ssm):
    """Parameter Store values win over the environment."""
    ssm.put_parameter(Name='/pull-events/feed_url', Value='https://feed.example/events',
                      Type='String')
    env_vars = {
        'FEED_URL': 'https://calendar.mit.edu/api/2/events',
        'TIMEZONE': 'America/New_York',
        'SETTINGS_PARAMETER_PREFIX': '/pull-events',
    }
    with patch.dict(os.environ, env_vars):
        settings = load_settings()

    assert settings.feed_url == 'https://feed.example/events'
    assert settings.timezone == 'America/New_York'


def test_settings_store_round_trip(ssm):
    store = ParameterStoreSettings('pull-events/', region_name='us-east-1')

    store.save('timezone', 'Europe/London')

    assert store.load() == {'timezone': 'Europe/London'}
    assert store.prefix == '/pull-events'


def test_settings_store_rejects_unknown_names(ssm):
    store = ParameterStoreSettings('/pull-events', region_name='us-east-1')

    with pytest.raises(ValueError):
        store.save('table_name', 'other')
