"""
Domain building blocks

Entities are compared by id, value objects by their fields. Aggregates
buffer the events raised by their state changes until a unit of work
collects them. Every dataclass here is keyword-only, which lets subclasses
add required fields after the defaulted ones below.
"""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List
from uuid import UUID, uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(kw_only=True)
class Entity(ABC):
    """Mutable object with a stable UUID; subclasses must pass ``eq=False``."""
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __eq__(self, other):
        return type(other) is type(self) and other.id == self.id

    def __hash__(self):
        return hash((type(self).__name__, self.id))

    def touch(self, at: datetime):
        self.updated_at = at


@dataclass(frozen=True)
class ValueObject(ABC):
    pass


@dataclass(kw_only=True, eq=False)
class Aggregate(Entity):
    """
    Root of a consistency boundary

    Transition methods call ``add_event``; nothing is delivered until the
    surrounding transaction commits.
    """
    _events: List['DomainEvent'] = field(default_factory=list, repr=False, init=False)

    def add_event(self, event: 'DomainEvent'):
        self._events.append(event)

    def clear_events(self):
        self._events.clear()

    @property
    def events(self) -> List['DomainEvent']:
        # a copy, so callers cannot drop events by mutating it
        return list(self._events)


@dataclass(kw_only=True)
class DomainEvent:
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utcnow)
    aggregate_id: UUID | None = None
