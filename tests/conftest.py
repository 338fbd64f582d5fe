"""Shared fixtures for the events pull tests."""
import io
import json
import zipfile

import boto3
import pytest
from moto import mock_aws

from storage.record_store import DynamoDBRecordStore

TABLE_NAME = 'test-localist-events'


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so nothing can reach a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_table():
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'record_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'record_id', 'AttributeType': 'S'},
                {'AttributeName': 'calendar_id', 'AttributeType': 'S'},
                {'AttributeName': 'created_at', 'AttributeType': 'N'}
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': 'calendar-id-index',
                    'KeySchema': [
                        {'AttributeName': 'calendar_id', 'KeyType': 'HASH'},
                        {'AttributeName': 'created_at', 'KeyType': 'RANGE'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'},
                    'ProvisionedThroughput': {
                        'ReadCapacityUnits': 5,
                        'WriteCapacityUnits': 5
                    }
                }
            ],
            BillingMode='PROVISIONED',
            ProvisionedThroughput={
                'ReadCapacityUnits': 5,
                'WriteCapacityUnits': 5
            }
        )

        yield table


@pytest.fixture
def record_store(dynamodb_table):
    """Create DynamoDBRecordStore instance with mock table."""
    return DynamoDBRecordStore(TABLE_NAME, region_name='us-east-1')


@pytest.fixture
def localist_event():
    """Factory for a Localist event object as found in the feed."""
    def _make(event_id='9001', title='Book Sale', start='2024-03-01T10:00:00',
              end=None, description='Used books for sale',
              url='https://calendar.mit.edu/event/book_sale',
              photo='https://calendar.mit.edu/photos/book_sale.jpg'):
        instance = {'id': event_id, 'start': start}
        if end is not None:
            instance['end'] = end
        event = {
            'title': title,
            'description_text': description,
            'event_instances': [{'event_instance': instance}],
        }
        if url is not None:
            event['localist_url'] = url
        if photo is not None:
            event['photo_url'] = photo
        return event
    return _make


@pytest.fixture
def structured_feed():
    """Build a body in the current feed shape (events list with event wrapper)."""
    def _make(*events):
        return json.dumps({
            'events': [{'event': event} for event in events],
            'page': {'current': 1, 'size': 500, 'total': 1},
        }).encode('utf-8')
    return _make


@pytest.fixture
def aws():
    """Mock every AWS service for the duration of a test."""
    with mock_aws():
        yield


@pytest.fixture
def pull_function(aws):
    """Create the pull Lambda that the periodic rule invokes; returns its ARN."""
    iam = boto3.client('iam', region_name='us-east-1')
    role = iam.create_role(
        RoleName='pull-events-role',
        AssumeRolePolicyDocument=json.dumps({
            'Version': '2012-10-17',
            'Statement': [{
                'Effect': 'Allow',
                'Principal': {'Service': 'lambda.amazonaws.com'},
                'Action': 'sts:AssumeRole',
            }]
        })
    )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        archive.writestr(
            'lambda_function.py',
            'def lambda_handler(event, context):\n    return event\n'
        )

    function = boto3.client('lambda', region_name='us-east-1').create_function(
        FunctionName='pull-events',
        Runtime='python3.12',
        Role=role['Role']['Arn'],
        Handler='lambda_function.lambda_handler',
        Code={'ZipFile': buffer.getvalue()}
    )
    return function['FunctionArn']
