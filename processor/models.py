"""Data models for events, people and sync results."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set


@dataclass(frozen=True)
class ExternalEvent:
    """Normalized event from the external feed."""
    external_id: str
    name: str
    place: str
    start_time: datetime
    external_link: str


@dataclass
class Event:
    """Locally stored event."""
    name: str
    location: str
    event_time: datetime
    event_id: Optional[str] = None
    external_link: Optional[str] = None
    is_private: bool = False
    attendees: Set[str] = field(default_factory=set)

    @property
    def is_upstream_managed(self) -> bool:
        return bool(self.external_link)


@dataclass
class Person:
    """Member who can be checked into events."""
    name: str
    email: str
    person_id: Optional[str] = None
    events: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class SyncFailure:
    """Single event that could not be written during a sync."""
    item_id: str
    error: str


@dataclass
class SyncResult:
    """Result of sync operation."""
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: List[SyncFailure] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [f"{failure.item_id}: {failure.error}" for failure in self.failed]

    def to_dict(self) -> dict:
        return {
            'created': list(self.created),
            'updated': list(self.updated),
            'deleted': list(self.deleted),
            'failed': [
                {'id': failure.item_id, 'error': failure.error}
                for failure in self.failed
            ],
        }
