"""Reconciler applying normalized events to the local record store."""
import logging
from typing import List, Optional, Tuple

from processor.models import NormalizedEvent, OutcomeStatus, ReconcileOutcome
from processor.record_matcher import RecordMatcher
from storage.record_store import RecordConflictError, RecordStoreError

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y%m%d'
TIME_FORMAT = '%I:%M %p'


def upsert_metadata(store, record_id: str, field: str, value: Optional[str]) -> str:
    """
    Write one metadata field with delete-if-blank semantics.

    A blank value removes the field, a missing field is added and an
    existing field is overwritten.

    Args:
        store: Record store
        record_id: Id of the record
        field: Metadata field name
        value: Value computed for this field

    Returns:
        'removed', 'added' or 'updated'
    """
    if not value:
        store.remove_metadata(record_id, field)
        return 'removed'
    if store.get_metadata(record_id, field) is None:
        store.add_metadata(record_id, field, value)
        return 'added'
    store.set_metadata(record_id, field, value)
    return 'updated'


def metadata_values(event: NormalizedEvent) -> List[Tuple[str, Optional[str]]]:
    """
    Compute the metadata fields for an event.

    event_end_time is only present when the event has an end.

    Args:
        event: Normalized event

    Returns:
        List of (field, value) pairs in write order
    """
    values = [
        ('event_date', event.start_at.strftime(DATE_FORMAT)),
        ('event_start_time', event.start_at.strftime(TIME_FORMAT)),
    ]
    if event.end_at is not None:
        values.append(('event_end_time', event.end_at.strftime(TIME_FORMAT)))
    values.extend([
        ('is_event', '1'),
        ('calendar_url', event.detail_url),
        ('calendar_id', event.external_id),
        ('calendar_image', event.image_url),
    ])
    return values


class EventReconciler:
    """Creates or updates one local record per external event id."""

    def __init__(self, store, matcher: Optional[RecordMatcher] = None,
                 default_category: int = 43):
        """
        Initialize the reconciler.

        Args:
            store: Record store
            matcher: Lookup of existing records, defaults to RecordMatcher(store)
            default_category: Category assigned to newly created records
        """
        self.store = store
        self.matcher = matcher or RecordMatcher(store)
        self.default_category = default_category

    def reconcile(self, event: NormalizedEvent) -> ReconcileOutcome:
        """
        Reconcile a single event against the store.

        Args:
            event: Normalized event from the feed

        Returns:
            ReconcileOutcome describing what happened
        """
        if not event.external_id:
            logger.warning(f"Event '{event.title}' has no external id, skipping")
            return ReconcileOutcome(
                status=OutcomeStatus.SKIPPED,
                title=event.title,
                reason='no-id'
            )

        try:
            existing = self.matcher.find_by_external_id(event.external_id)
            if existing:
                record_id = self._update(existing.record_id, event)
                status = OutcomeStatus.UPDATED
            else:
                try:
                    record_id = self._create(event)
                    status = OutcomeStatus.CREATED
                except RecordConflictError as e:
                    logger.warning(
                        f"Record for {event.external_id} was created concurrently, "
                        f"updating {e.existing_record_id}"
                    )
                    record_id = self._update(e.existing_record_id, event)
                    status = OutcomeStatus.UPDATED
        except RecordStoreError as e:
            for message in e.messages:
                logger.error(message)
            return ReconcileOutcome(
                status=OutcomeStatus.FAILED,
                title=event.title,
                reason='error',
                errors=list(e.messages)
            )

        label = 'Inserted' if status == OutcomeStatus.CREATED else 'Updated'
        logger.info(f"{event.title}: {label}")

        errors = self._apply_metadata(record_id, event)
        return ReconcileOutcome(
            status=status,
            title=event.title,
            record_id=record_id,
            errors=errors
        )

    def _create(self, event: NormalizedEvent) -> str:
        return self.store.create_record(
            {
                'title': event.title,
                'description': event.description,
                'slug': event.slug,
                'status': 'publish',
                'category': self.default_category,
                'comment_status': 'closed',
                'ping_status': 'closed',
            },
            external_id=event.external_id
        )

    def _update(self, record_id: str, event: NormalizedEvent) -> str:
        return self.store.update_record(
            record_id,
            {
                'title': event.title,
                'description': event.description,
                'comment_status': 'closed',
                'ping_status': 'closed',
            }
        )

    def _apply_metadata(self, record_id: str, event: NormalizedEvent) -> List[str]:
        errors = []
        for field, value in metadata_values(event):
            try:
                upsert_metadata(self.store, record_id, field, value)
            except RecordStoreError as e:
                for message in e.messages:
                    logger.error(f"{event.title}: {field}: {message}")
                    errors.append(f"{field}: {message}")
        return errors
