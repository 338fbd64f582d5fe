"""Data models for event reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


@dataclass
class NormalizedEvent:
    """Canonical event produced from one feed record."""
    title: str
    description: str
    external_id: str
    start_at: datetime
    end_at: Optional[datetime]
    detail_url: Optional[str]
    image_url: Optional[str]
    slug: str


@dataclass
class LocalEventRecord:
    """Event record persisted in the local content store."""
    record_id: str
    title: str
    description: str
    slug: str
    status: str
    category: int
    comment_status: str
    ping_status: str
    metadata: Dict[str, str]
    created_at: int
    updated_at: int


class OutcomeStatus(Enum):
    """Result of reconciling a single event."""
    CREATED = 'created'
    UPDATED = 'updated'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass
class ReconcileOutcome:
    """Outcome of reconciling one NormalizedEvent against the store."""
    status: OutcomeStatus
    title: str
    record_id: Optional[str] = None
    reason: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in (OutcomeStatus.CREATED, OutcomeStatus.UPDATED)


@dataclass
class PullResult:
    """Result of one pull run."""
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    confirmations: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.skipped + self.failed
