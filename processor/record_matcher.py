"""Lookup of local records by the feed's external identifier."""
import logging
from typing import Optional

from processor.models import LocalEventRecord

logger = logging.getLogger(__name__)

EXTERNAL_ID_FIELD = 'calendar_id'


class RecordMatcher:
    """Finds the local record mirroring a remote event."""

    def __init__(self, store):
        self.store = store

    def find_by_external_id(self, external_id: str) -> Optional[LocalEventRecord]:
        """
        Find the published record whose calendar_id equals external_id.

        Args:
            external_id: Identifier of the remote event

        Returns:
            Most recent matching LocalEventRecord, or None
        """
        if not external_id:
            return None

        matches = self.store.query_by_metadata(EXTERNAL_ID_FIELD, external_id)
        if not matches:
            return None

        if len(matches) > 1:
            logger.warning(
                f"Found {len(matches)} records for {EXTERNAL_ID_FIELD}="
                f"{external_id}, using newest {matches[0].record_id}; "
                f"others: {', '.join(m.record_id for m in matches[1:])}"
            )
        return matches[0]
