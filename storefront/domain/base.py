"""Building blocks shared by the order domain model."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ValueObject:
    """Immutable value compared by its fields."""


IdT = TypeVar("IdT")


@dataclass(eq=False)
class Entity(Generic[IdT]):
    """Object with an identity that survives changes to its other fields.

    Equality and hashing use ``id`` only, so two snapshots of the same
    inventory item or order compare equal whatever their current state.
    """

    id: IdT

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.id == other.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))


@dataclass(eq=False, kw_only=True)
class AggregateRoot(Entity[IdT]):
    """Consistency boundary that records events while it changes.

    Attributes:
        version: Incremented on every state change; persisted writes
            are conditional on the version the aggregate was loaded with.
        created_at: When the aggregate was created.
        updated_at: When it last changed.
    """

    version: int = 1
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    _pending_events: list["DomainEvent"] = field(default_factory=list, init=False, repr=False)

    def _record_event(self, event: "DomainEvent") -> None:
        self._pending_events.append(event)

    def collect_events(self) -> list["DomainEvent"]:
        """Hand over the events recorded since the last call.

        The service calls this after commit, so events of a rolled-back
        attempt are never emitted.
        """
        events, self._pending_events = self._pending_events, []
        return events

    def _bump_version(self, at: datetime) -> None:
        self.version += 1
        self.updated_at = at


_ENVELOPE_FIELDS = frozenset({"aggregate_id", "event_id", "occurred_at"})


def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Something that happened to an aggregate.

    Subclasses set ``event_type`` and declare their payload as fields.

    Attributes:
        aggregate_id: ID of the aggregate that recorded the event.
        event_id: Unique ID of this occurrence.
        occurred_at: When it happened.
    """

    event_type: ClassVar[str]
    aggregate_type: ClassVar[str] = "Order"

    aggregate_id: str
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utc_now)

    def payload(self) -> dict[str, Any]:
        """Event-specific fields as JSON-friendly values."""
        return {
            f.name: _plain(getattr(self, f.name))
            for f in fields(self)
            if f.name not in _ENVELOPE_FIELDS
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize envelope and payload for the event log."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "payload": self.payload(),
        }
