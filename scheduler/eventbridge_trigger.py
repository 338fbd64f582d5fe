"""EventBridge rule management for the periodic events pull."""
import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class EventBridgeTrigger:
    """Registers and removes the scheduled rule that invokes the pull."""

    TARGET_ID = 'pull-events'

    def __init__(self, region_name: Optional[str] = None):
        self.events = boto3.client('events', region_name=region_name)
        self.lambda_client = boto3.client('lambda', region_name=region_name)

    def register_periodic_trigger(self, name: str, interval: str, target_arn: str) -> str:
        """
        Create or replace a rate rule pointing at the pull Lambda.

        The target function is also granted permission to be invoked by the
        rule, replacing any grant left by an earlier registration.

        Args:
            name: Rule name
            interval: Rate such as '1 hour' or '30 minutes'
            target_arn: ARN of the Lambda function to invoke

        Returns:
            ARN of the rule
        """
        expression = f'rate({interval})'
        response = self.events.put_rule(
            Name=name,
            ScheduleExpression=expression,
            State='ENABLED',
            Description='Periodic pull of the events feed'
        )
        rule_arn = response['RuleArn']

        self._remove_invoke_permission(name, target_arn)
        self.lambda_client.add_permission(
            FunctionName=target_arn,
            StatementId=self._statement_id(name),
            Action='lambda:InvokeFunction',
            Principal='events.amazonaws.com',
            SourceArn=rule_arn
        )

        self.events.put_targets(
            Rule=name,
            Targets=[{
                'Id': self.TARGET_ID,
                'Arn': target_arn,
                'Input': json.dumps({'confirm': False}),
            }]
        )
        logger.info(f"Registered trigger {name} with {expression} for {target_arn}")
        return rule_arn

    def unregister_trigger(self, name: str) -> bool:
        """
        Remove the rule, its targets and their invoke permissions.

        Args:
            name: Rule name

        Returns:
            True if a rule was removed, False if none existed
        """
        try:
            targets = self.events.list_targets_by_rule(Rule=name).get('Targets', [])
            if targets:
                self.events.remove_targets(
                    Rule=name,
                    Ids=[target['Id'] for target in targets]
                )
            self.events.delete_rule(Name=name)
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceNotFoundException':
                logger.info(f"Trigger {name} is not registered")
                return False
            raise

        for target in targets:
            self._remove_invoke_permission(name, target['Arn'])
        logger.info(f"Unregistered trigger {name}")
        return True

    def _statement_id(self, name: str) -> str:
        return f'{name}-events'

    def _remove_invoke_permission(self, name: str, function_arn: str) -> None:
        try:
            self.lambda_client.remove_permission(
                FunctionName=function_arn,
                StatementId=self._statement_id(name)
            )
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceNotFoundException':
                raise
