"""Normalizer turning raw Localist feed payloads into canonical events."""
import json
import logging
from collections import Counter
from datetime import datetime, timezone as dt_timezone, tzinfo
from typing import Any, Iterator, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.models import NormalizedEvent

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve a timezone identifier, falling back to UTC.

    Args:
        name: IANA timezone name such as 'America/New_York'

    Returns:
        tzinfo for the identifier, or UTC if it is blank or unknown
    """
    if not name or not name.strip():
        logger.warning("No timezone configured, using UTC")
        return dt_timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using UTC")
        return dt_timezone.utc


class EventNormalizer:
    """Normalizer for the shapes the events feed has used over time."""

    # Fallbacks for timestamps that are not ISO 8601
    FALLBACK_FORMATS = [
        '%Y-%m-%d %H:%M:%S',
        '%Y-%m-%d %H:%M',
        '%m/%d/%Y %I:%M %p',
        '%m/%d/%Y %H:%M',
        '%m/%d/%Y',
        '%B %d, %Y %I:%M %p',
        '%B %d, %Y',
    ]

    def __init__(self, timezone: Optional[str] = None):
        """
        Initialize the normalizer.

        The timezone is resolved once so every timestamp in a run is
        computed against the same zone.

        Args:
            timezone: IANA timezone name of the site
        """
        self.tz = resolve_timezone(timezone)
        self.skipped = Counter()

    def normalize(self, raw: bytes) -> List[NormalizedEvent]:
        """
        Parse a raw feed body into normalized events.

        Args:
            raw: Response body from the feed

        Returns:
            List of NormalizedEvent objects; empty if the body cannot be parsed
        """
        self.skipped = Counter()

        try:
            tree = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Events feed is not valid JSON, no events found: {e}")
            return []

        if self._is_structured(tree):
            logger.info("Detected structured feed shape (events/event)")
            candidates = self._structured_candidates(tree)
        else:
            logger.info("No top-level events list, walking feed recursively")
            candidates = self._recursive_candidates(tree)

        events = []
        for candidate in candidates:
            event = self._normalize_candidate(candidate)
            if event:
                events.append(event)

        if self.skipped:
            logger.info(
                f"Skipped {sum(self.skipped.values())} feed records: "
                f"{dict(self.skipped)}"
            )
        logger.info(f"Normalized {len(events)} events")
        return events

    def _is_structured(self, tree: Any) -> bool:
        return isinstance(tree, dict) and isinstance(tree.get('events'), list)

    def _structured_candidates(self, tree: dict) -> Iterator[dict]:
        for item in tree['events']:
            if not isinstance(item, dict):
                continue
            event = item.get('event')
            if isinstance(event, dict):
                yield event
            else:
                self.skipped['no-title'] += 1

    def _recursive_candidates(self, node: Any) -> Iterator[dict]:
        """Pre-order walk yielding every mapping that carries a title."""
        if isinstance(node, dict):
            if 'title' in node:
                yield node
            for value in node.values():
                yield from self._recursive_candidates(value)
        elif isinstance(node, list):
            for element in node:
                yield from self._recursive_candidates(element)

    def _normalize_candidate(self, candidate: dict) -> Optional[NormalizedEvent]:
        """
        Build a NormalizedEvent from one candidate record.

        Args:
            candidate: Mapping with the Localist event fields

        Returns:
            NormalizedEvent or None if the record is not usable
        """
        title = candidate.get('title')
        if not isinstance(title, str) or not title.strip():
            self.skipped['no-title'] += 1
            return None

        instance = self._first_instance(candidate)
        if instance is None or instance.get('id') in (None, ''):
            logger.debug(f"Event '{title}' has no event instance id, skipping")
            self.skipped['no-id'] += 1
            return None

        start_at = self.parse_timestamp(instance.get('start'))
        if start_at is None:
            logger.warning(
                f"Invalid start for event '{title}': {instance.get('start')}"
            )
            self.skipped['no-start'] += 1
            return None

        end_at = None
        if instance.get('end'):
            end_at = self.parse_timestamp(instance['end'])
            if end_at is None:
                logger.warning(
                    f"Ignoring invalid end for event '{title}': {instance['end']}"
                )

        return NormalizedEvent(
            title=title,
            description=candidate.get('description_text') or '',
            external_id=str(instance['id']),
            start_at=start_at,
            end_at=end_at,
            detail_url=candidate.get('localist_url') or None,
            image_url=candidate.get('photo_url') or None,
            slug=title.replace(' ', '-')
        )

    def _first_instance(self, candidate: dict) -> Optional[dict]:
        instances = candidate.get('event_instances')
        if not isinstance(instances, list) or not instances:
            return None
        first = instances[0]
        if not isinstance(first, dict):
            return None
        instance = first.get('event_instance')
        return instance if isinstance(instance, dict) else None

    def parse_timestamp(self, value: Any) -> Optional[datetime]:
        """
        Parse a feed timestamp into the configured timezone.

        Naive values are taken as local time; aware values are converted.

        Args:
            value: Timestamp string, usually ISO 8601

        Returns:
            Timezone-aware datetime or None if parsing fails
        """
        if not isinstance(value, str) or not value.strip():
            return None

        text = value.strip()
        parsed = None
        try:
            if text.endswith('Z'):
                text = text[:-1] + '+00:00'
            parsed = datetime.fromisoformat(text)
        except ValueError:
            for fmt in self.FALLBACK_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue

        if parsed is None:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=self.tz)
        return parsed.astimezone(self.tz)
