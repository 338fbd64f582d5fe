"""DynamoDB-backed content store for synchronized event records."""
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import LocalEventRecord

logger = logging.getLogger(__name__)

RECORD_TYPE = 'record'
CLAIM_TYPE = 'claim'

# Attributes that belong to the record itself; everything else is metadata
CONTENT_FIELDS = (
    'title', 'description', 'slug', 'status', 'category',
    'comment_status', 'ping_status'
)
RESERVED_ATTRIBUTES = set(CONTENT_FIELDS) | {
    'record_id', 'item_type', 'created_at', 'updated_at', 'claimed_record_id'
}

# Metadata keys with a global secondary index (hash key, range created_at)
METADATA_INDEXES = {
    'calendar_id': 'calendar-id-index',
}


class RecordStoreError(Exception):
    """Raised when the store rejects a create, update or metadata write."""

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__('; '.join(self.messages))


class RecordConflictError(RecordStoreError):
    """Raised when a record for the same external id already exists."""

    def __init__(self, external_id: str, existing_record_id: str):
        self.external_id = external_id
        self.existing_record_id = existing_record_id
        super().__init__([
            f"A record for external id {external_id} already exists: "
            f"{existing_record_id}"
        ])


class DynamoDBRecordStore:
    """Record store with WordPress-style post and post-meta operations."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the environment's region
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBRecordStore for table: {table_name}")

    def create_record(
        self,
        fields: Dict[str, Any],
        external_id: Optional[str] = None
    ) -> str:
        """
        Create a new record.

        When an external id is given the record is written together with a
        claim item in one transaction, so at most one record can ever be
        created per external id. A claim left behind by a deleted record is
        taken over.

        Args:
            fields: Content fields (title, description, slug, ...)
            external_id: Identifier of the remote event this record mirrors

        Returns:
            Id of the new record

        Raises:
            RecordConflictError: If the external id is already claimed
            RecordStoreError: If validation or the write fails
        """
        self._validate_fields(fields)
        title = fields.get('title')
        if not title or not str(title).strip():
            raise RecordStoreError(["Content, title, and excerpt are empty."])

        record_id = uuid.uuid4().hex
        now = int(time.time())
        item = {
            'record_id': record_id,
            'item_type': RECORD_TYPE,
            'description': '',
            'status': 'publish',
            'comment_status': 'open',
            'ping_status': 'open',
            'created_at': now,
            'updated_at': now,
        }
        item.update(fields)

        if external_id is None:
            try:
                self.table.put_item(
                    Item=item,
                    ConditionExpression='attribute_not_exists(record_id)'
                )
            except ClientError as e:
                raise self._store_error(e, f"creating record '{title}'") from e
            return record_id

        try:
            self._put_with_claim(item, external_id)
        except ClientError as e:
            if e.response['Error']['Code'] != 'TransactionCanceledException':
                raise self._store_error(e, f"creating record '{title}'") from e
            existing = self._claimed_record_id(external_id)
            if not existing:
                raise self._store_error(e, f"creating record '{title}'") from e
            if self.get_record(existing) is not None:
                raise RecordConflictError(external_id, existing) from e

            logger.warning(
                f"Claim for external id {external_id} points at missing record "
                f"{existing}, replacing it with {record_id}"
            )
            try:
                self._put_with_claim(item, external_id, stale_record_id=existing)
            except ClientError as retry_error:
                if retry_error.response['Error']['Code'] == 'TransactionCanceledException':
                    winner = self._claimed_record_id(external_id)
                    if winner and winner != existing:
                        raise RecordConflictError(external_id, winner) from retry_error
                raise self._store_error(
                    retry_error, f"creating record '{title}'"
                ) from retry_error

        return record_id

    def update_record(self, record_id: str, fields: Dict[str, Any]) -> str:
        """
        Overwrite content fields of an existing record.

        Args:
            record_id: Id of the record to update
            fields: Content fields to overwrite

        Returns:
            Id of the updated record

        Raises:
            RecordStoreError: If the record does not exist or the write fails
        """
        self._validate_fields(fields)
        names = {'#updated_at': 'updated_at'}
        values = {':updated_at': int(time.time()), ':record': RECORD_TYPE}
        assignments = ['#updated_at = :updated_at']
        for i, (name, value) in enumerate(sorted(fields.items())):
            names[f'#f{i}'] = name
            values[f':f{i}'] = value
            assignments.append(f'#f{i} = :f{i}')

        try:
            self.table.update_item(
                Key={'record_id': record_id},
                UpdateExpression='SET ' + ', '.join(assignments),
                ConditionExpression='attribute_exists(record_id) AND item_type = :record',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            raise self._store_error(e, f"updating record {record_id}") from e
        return record_id

    def get_record(self, record_id: str) -> Optional[LocalEventRecord]:
        """
        Fetch one record by id.

        Args:
            record_id: Id of the record

        Returns:
            LocalEventRecord or None if not found
        """
        try:
            response = self.table.get_item(
                Key={'record_id': record_id},
                ConsistentRead=True
            )
        except ClientError as e:
            raise self._store_error(e, f"reading record {record_id}") from e
        item = response.get('Item')
        if not item or item.get('item_type') != RECORD_TYPE:
            return None
        return self._item_to_record(item)

    def query_by_metadata(
        self,
        key: str,
        value: str,
        status: str = 'publish'
    ) -> List[LocalEventRecord]:
        """
        Find records whose metadata field equals a value, newest first.

        Indexed keys use a Query; other keys fall back to a Scan.

        Args:
            key: Metadata field name
            value: Value to match
            status: Only return records with this status

        Returns:
            List of matching LocalEventRecord objects, most recent first

        Raises:
            RecordStoreError: If the query fails
        """
        record_filter = Attr('item_type').eq(RECORD_TYPE) & Attr('status').eq(status)
        try:
            if key in METADATA_INDEXES:
                items = self._paginate(
                    self.table.query,
                    IndexName=METADATA_INDEXES[key],
                    KeyConditionExpression=Key(key).eq(value),
                    FilterExpression=record_filter,
                    ScanIndexForward=False
                )
            else:
                items = self._paginate(
                    self.table.scan,
                    FilterExpression=record_filter & Attr(key).eq(value)
                )
        except ClientError as e:
            raise self._store_error(e, f"querying records by {key}={value}") from e

        records = [self._item_to_record(item) for item in items]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    def get_metadata(self, record_id: str, key: str) -> Optional[Any]:
        """
        Read one metadata value.

        Args:
            record_id: Id of the record
            key: Metadata field name

        Returns:
            Stored value or None if the field is absent
        """
        self._validate_metadata_key(key)
        try:
            response = self.table.get_item(
                Key={'record_id': record_id},
                ProjectionExpression='#k',
                ExpressionAttributeNames={'#k': key},
                ConsistentRead=True
            )
        except ClientError as e:
            raise self._store_error(e, f"reading {key} of record {record_id}") from e
        return response.get('Item', {}).get(key)

    def add_metadata(self, record_id: str, key: str, value: Any) -> None:
        """Add a metadata field that must not exist yet."""
        self._validate_metadata_key(key)
        self._write_metadata(
            record_id,
            key,
            'SET #k = :v, #updated_at = :updated_at',
            'attribute_exists(record_id) AND attribute_not_exists(#k)',
            {':v': value}
        )

    def set_metadata(self, record_id: str, key: str, value: Any) -> None:
        """Overwrite a metadata field."""
        self._validate_metadata_key(key)
        self._write_metadata(
            record_id,
            key,
            'SET #k = :v, #updated_at = :updated_at',
            'attribute_exists(record_id)',
            {':v': value}
        )

    def remove_metadata(self, record_id: str, key: str) -> None:
        """Remove a metadata field entirely."""
        self._validate_metadata_key(key)
        self._write_metadata(
            record_id,
            key,
            'REMOVE #k SET #updated_at = :updated_at',
            'attribute_exists(record_id)',
            {}
        )

    def _write_metadata(
        self,
        record_id: str,
        key: str,
        update_expression: str,
        condition: str,
        values: Dict[str, Any]
    ) -> None:
        values = dict(values)
        values[':updated_at'] = int(time.time())
        try:
            self.table.update_item(
                Key={'record_id': record_id},
                UpdateExpression=update_expression,
                ConditionExpression=condition,
                ExpressionAttributeNames={'#k': key, '#updated_at': 'updated_at'},
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            raise self._store_error(e, f"writing {key} of record {record_id}") from e

    def _paginate(self, operation, **kwargs) -> List[dict]:
        response = operation(**kwargs)
        items = response.get('Items', [])
        while 'LastEvaluatedKey' in response:
            response = operation(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **kwargs
            )
            items.extend(response.get('Items', []))
        return items

    def _claim_key(self, external_id: str) -> str:
        return f'{CLAIM_TYPE}#{external_id}'

    def _put_with_claim(
        self,
        item: Dict[str, Any],
        external_id: str,
        stale_record_id: Optional[str] = None
    ) -> None:
        """Write a record and its external-id claim in one transaction.

        With ``stale_record_id`` the existing claim is taken over, but only
        while it still points at that record.
        """
        claim = {
            'record_id': self._claim_key(external_id),
            'item_type': CLAIM_TYPE,
            'claimed_record_id': item['record_id'],
            'created_at': item['created_at'],
        }
        claim_put = {
            'TableName': self.table_name,
            'Item': claim,
        }
        if stale_record_id is None:
            claim_put['ConditionExpression'] = 'attribute_not_exists(record_id)'
        else:
            claim_put['ConditionExpression'] = 'claimed_record_id = :stale'
            claim_put['ExpressionAttributeValues'] = {':stale': stale_record_id}

        self.dynamodb.meta.client.transact_write_items(
            TransactItems=[
                {
                    'Put': {
                        'TableName': self.table_name,
                        'Item': item,
                        'ConditionExpression': 'attribute_not_exists(record_id)',
                    }
                },
                {'Put': claim_put},
            ]
        )

    def _claimed_record_id(self, external_id: str) -> Optional[str]:
        try:
            response = self.table.get_item(
                Key={'record_id': self._claim_key(external_id)},
                ConsistentRead=True
            )
        except ClientError as e:
            raise self._store_error(e, f"reading claim for external id {external_id}") from e
        return response.get('Item', {}).get('claimed_record_id')

    def _validate_fields(self, fields: Dict[str, Any]) -> None:
        unknown = sorted(set(fields) - set(CONTENT_FIELDS))
        if unknown:
            raise RecordStoreError(
                [f"Unknown record field: {name}" for name in unknown]
            )

    def _validate_metadata_key(self, key: str) -> None:
        if not key or key in RESERVED_ATTRIBUTES:
            raise ValueError(f"Invalid metadata key: {key!r}")

    def _store_error(self, error: ClientError, action: str) -> RecordStoreError:
        code = error.response.get('Error', {}).get('Code', 'Unknown')
        message = error.response.get('Error', {}).get('Message', str(error))
        logger.error(f"Error {action}: {code}: {message}")
        messages = [f"{code}: {message}"]
        for reason in error.response.get('CancellationReasons', []):
            if reason.get('Code') not in (None, 'None'):
                messages.append(f"{reason['Code']}: {reason.get('Message', '')}")
        return RecordStoreError(messages)

    def _item_to_record(self, item: dict) -> LocalEventRecord:
        """
        Convert DynamoDB item to LocalEventRecord object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            LocalEventRecord object
        """
        metadata = {
            name: value for name, value in item.items()
            if name not in RESERVED_ATTRIBUTES
        }
        return LocalEventRecord(
            record_id=item['record_id'],
            title=item.get('title', ''),
            description=item.get('description', ''),
            slug=item.get('slug', ''),
            status=item.get('status', ''),
            category=int(item.get('category', 0)),
            comment_status=item.get('comment_status', ''),
            ping_status=item.get('ping_status', ''),
            metadata=metadata,
            created_at=int(item.get('created_at', 0)),
            updated_at=int(item.get('updated_at', 0))
        )
