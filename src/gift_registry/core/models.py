"""Domain models for Gift Registry."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4


def _utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class ClaimStatus(str, Enum):
    """Status of a claim on an item."""

    INTERESTED = "INTERESTED"
    ASSIGNED = "ASSIGNED"


class MemberRole(str, Enum):
    """Role of a member within an inventory."""

    ADMIN = "ADMIN"
    CLAIMANT = "CLAIMANT"
    VIEWER = "VIEWER"


class MemberStatus(str, Enum):
    """Membership status."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"


class EventType(str, Enum):
    """Type of domain event broadcast to live subscribers."""

    ITEM_CREATED = "ITEM_CREATED"
    ITEM_UPDATED = "ITEM_UPDATED"
    ITEM_DELETED = "ITEM_DELETED"
    ITEM_UNDELETED = "ITEM_UNDELETED"
    ITEM_COLLECTED = "ITEM_COLLECTED"
    ITEM_UNCOLLECTED = "ITEM_UNCOLLECTED"
    CLAIM_CREATED = "CLAIM_CREATED"
    CLAIM_DELETED = "CLAIM_DELETED"
    ITEM_ASSIGNED = "ITEM_ASSIGNED"
    ITEM_UNASSIGNED = "ITEM_UNASSIGNED"


# Event types whose wire payload carries the claim id
_CLAIM_EVENTS = frozenset(
    {EventType.CLAIM_CREATED, EventType.CLAIM_DELETED, EventType.ITEM_ASSIGNED}
)


@dataclass
class User:
    """A resolved user identity."""

    email: str
    first_name: str = ""
    last_name: str = ""
    id: UUID = field(default_factory=uuid4)

    @property
    def display_name(self) -> str:
        """Full name, falling back to the e-mail local part."""
        name = f"{self.first_name} {self.last_name}".strip()
        if name:
            return name
        return self.email.split("@")[0]


@dataclass
class Inventory:
    """A shared inventory owned by one user."""

    owner_id: UUID
    name: str
    id: UUID = field(default_factory=uuid4)


@dataclass
class Category:
    """A category grouping items within an inventory."""

    inventory_id: UUID
    name: str
    id: UUID = field(default_factory=uuid4)


@dataclass
class Member:
    """Membership of a user in an inventory."""

    inventory_id: UUID
    user_id: UUID
    role: MemberRole = MemberRole.VIEWER
    status: MemberStatus = MemberStatus.PENDING
    finished_at: datetime | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE


@dataclass
class Item:
    """An item in an inventory.

    The reference number is assigned once on creation and never reused;
    deletion only sets ``is_deleted``.
    """

    inventory_id: UUID
    description: str
    category_id: UUID | None = None
    reference_number: int = 0
    is_deleted: bool = False
    is_collected: bool = False
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)


@dataclass
class Claim:
    """One user's interest in one item."""

    item_id: UUID
    user_id: UUID
    status: ClaimStatus = ClaimStatus.INTERESTED
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class AllocationScope:
    """Scope within which item reference numbers are unique."""

    inventory_id: UUID
    category_id: UUID | None = None

    @property
    def key(self) -> tuple[str, UUID]:
        if self.category_id is not None:
            return ("category", self.category_id)
        return ("inventory", self.inventory_id)


@dataclass(frozen=True)
class DomainEvent:
    """Immutable state change broadcast to the subscribers of an inventory."""

    type: EventType
    inventory_id: UUID
    item_id: UUID
    claim_id: UUID | None = None
    timestamp: int = field(default_factory=_epoch_millis)

    @property
    def name(self) -> str:
        """Stream event name."""
        return self.type.value.lower()

    def payload(self) -> dict:
        """Wire payload for the event stream."""
        data = {
            "type": self.type.value,
            "inventoryId": str(self.inventory_id),
            "itemId": str(self.item_id),
        }
        if self.type in _CLAIM_EVENTS:
            data["claimId"] = str(self.claim_id) if self.claim_id else None
        data["timestamp"] = self.timestamp
        return data

    @classmethod
    def item_created(cls, inventory_id: UUID, item_id: UUID) -> DomainEvent:
        return cls(EventType.ITEM_CREATED, inventory_id, item_id)

    @classmethod
    def item_updated(cls, inventory_id: UUID, item_id: UUID) -> DomainEvent:
        return cls(EventType.ITEM_UPDATED, inventory_id, item_id)

    @classmethod
    def item_deleted(cls, inventory_id: UUID, item_id: UUID) -> DomainEvent:
        return cls(EventType.ITEM_DELETED, inventory_id, item_id)

    @classmethod
    def item_undeleted(cls, inventory_id: UUID, item_id: UUID) -> DomainEvent:
        return cls(EventType.ITEM_UNDELETED, inventory_id, item_id)

    @classmethod
    def item_collected(cls, inventory_id: UUID, item_id: UUID) -> DomainEvent:
        return cls(EventType.ITEM_COLLECTED, inventory_id, item_id)

    @classmethod
    def item_uncollected(cls, inventory_id: UUID, item_id: UUID) -> DomainEvent:
        return cls(EventType.ITEM_UNCOLLECTED, inventory_id, item_id)

    @classmethod
    def claim_created(
        cls, inventory_id: UUID, item_id: UUID, claim_id: UUID
    ) -> DomainEvent:
        return cls(EventType.CLAIM_CREATED, inventory_id, item_id, claim_id)

    @classmethod
    def claim_deleted(
        cls, inventory_id: UUID, item_id: UUID, claim_id: UUID
    ) -> DomainEvent:
        return cls(EventType.CLAIM_DELETED, inventory_id, item_id, claim_id)

    @classmethod
    def item_assigned(
        cls, inventory_id: UUID, item_id: UUID, claim_id: UUID
    ) -> DomainEvent:
        return cls(EventType.ITEM_ASSIGNED, inventory_id, item_id, claim_id)

    @classmethod
    def item_unassigned(cls, inventory_id: UUID, item_id: UUID) -> DomainEvent:
        return cls(EventType.ITEM_UNASSIGNED, inventory_id, item_id)
