"""Storage contract consumed by the core services."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Iterable, Protocol
from uuid import UUID

from gift_registry.core.models import (
    AllocationScope,
    Category,
    Claim,
    ClaimStatus,
    Inventory,
    Item,
    Member,
    MemberRole,
    MemberStatus,
    User,
)


class ScopeTransaction(Protocol):
    """Serialized critical section for one reference-number scope.

    The item inserted through it is committed when the context exits
    without an exception.
    """

    def max_reference_number(self) -> int: ...

    def insert_item(self, item: Item) -> None: ...


class RegistryStore(Protocol):
    """Persistent state of inventories, items, members and claims.

    Implementations raise ``ConstraintViolation`` when a write breaks a
    uniqueness rule. Claims allow one per (item, user) and one ASSIGNED per
    item. Inventory names are unique per owner, category names per inventory.
    """

    def health_check(self) -> bool: ...

    # Users

    def get_user(self, user_id: UUID) -> User | None: ...

    def find_user_by_email(self, email: str) -> User | None: ...

    def add_user(self, user: User) -> User: ...

    # Inventories and categories

    def get_inventory(self, inventory_id: UUID) -> Inventory | None: ...

    def add_inventory(self, inventory: Inventory) -> Inventory: ...

    def list_owned_inventories(self, owner_id: UUID) -> list[Inventory]: ...

    def get_category(self, inventory_id: UUID, category_id: UUID) -> Category | None: ...

    def list_categories(self, inventory_id: UUID) -> list[Category]: ...

    def add_category(self, category: Category) -> Category: ...

    def count_items(self, inventory_id: UUID, category_id: UUID | None = None) -> int:
        """Live items in the inventory, or only in one category when given."""
        ...

    # Members

    def get_member(self, inventory_id: UUID, user_id: UUID) -> Member | None: ...

    def get_member_by_id(self, member_id: UUID) -> Member | None: ...

    def list_members(
        self,
        inventory_id: UUID,
        status: MemberStatus,
        roles: Iterable[MemberRole],
    ) -> list[Member]: ...

    def add_member(self, member: Member) -> Member: ...

    def save_member(self, member: Member) -> Member: ...

    def list_user_memberships(self, user_id: UUID) -> list[Member]: ...

    def delete_member(self, member_id: UUID) -> bool: ...

    # Items

    def get_item(
        self, inventory_id: UUID, item_id: UUID, include_deleted: bool = False
    ) -> Item | None: ...

    def list_items(self, inventory_id: UUID) -> list[Item]: ...

    def save_item(self, item: Item) -> Item: ...

    def lock_scope(self, scope: AllocationScope) -> AbstractContextManager[ScopeTransaction]: ...

    # Claims

    def get_claim(self, claim_id: UUID) -> Claim | None: ...

    def find_claim(self, item_id: UUID, user_id: UUID) -> Claim | None: ...

    def find_claim_by_status(self, item_id: UUID, status: ClaimStatus) -> Claim | None: ...

    def list_claims_for_item(self, item_id: UUID) -> list[Claim]: ...

    def list_claims_for_items(self, item_ids: Iterable[UUID]) -> list[Claim]: ...

    def list_claims_for_inventory(self, inventory_id: UUID) -> list[Claim]: ...

    def insert_claim(self, claim: Claim) -> Claim: ...

    def update_claim_status(self, claim_id: UUID, status: ClaimStatus) -> Claim | None: ...

    def delete_claim(self, claim_id: UUID) -> bool: ...
