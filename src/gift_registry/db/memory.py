"""In-process store used for development and tests."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Iterator
from uuid import UUID

import structlog

from gift_registry.core.errors import ConstraintViolation
from gift_registry.core.locks import KeyedLock
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

logger = structlog.get_logger()


class _MemoryScopeTransaction:
    """Buffers the new item until the scope lock is released."""

    def __init__(self, store: InMemoryStore, scope: AllocationScope):
        self._store = store
        self._scope = scope
        self.pending: list[Item] = []

    def max_reference_number(self) -> int:
        with self._store._lock:
            numbers = [
                item.reference_number
                for item in self._store._items.values()
                if self._store._counts_toward_max(item, self._scope)
            ]
        return max(numbers, default=0)

    def insert_item(self, item: Item) -> None:
        self.pending.append(replace(item))


class InMemoryStore:
    """Dictionary-backed store mirroring the PostgreSQL constraints.

    Every read returns a copy so callers see row semantics rather than
    shared objects.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._scope_locks = KeyedLock()
        self._users: dict[UUID, User] = {}
        self._inventories: dict[UUID, Inventory] = {}
        self._categories: dict[UUID, Category] = {}
        self._members: dict[UUID, Member] = {}
        self._items: dict[UUID, Item] = {}
        self._claims: dict[UUID, Claim] = {}

    def health_check(self) -> bool:
        return True

    def clear(self) -> None:
        """Drop all data."""
        with self._lock:
            for table in (
                self._claims,
                self._items,
                self._members,
                self._categories,
                self._inventories,
                self._users,
            ):
                table.clear()

    # User operations

    def get_user(self, user_id: UUID) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    def find_user_by_email(self, email: str) -> User | None:
        with self._lock:
            for user in self._users.values():
                if user.email.lower() == email.lower():
                    return replace(user)
        return None

    def add_user(self, user: User) -> User:
        with self._lock:
            if any(u.email.lower() == user.email.lower() for u in self._users.values()):
                raise ConstraintViolation(f"duplicate user email {user.email}")
            self._users[user.id] = replace(user)
        return user

    # Inventory and category operations

    def get_inventory(self, inventory_id: UUID) -> Inventory | None:
        with self._lock:
            inventory = self._inventories.get(inventory_id)
            return replace(inventory) if inventory else None

    def add_inventory(self, inventory: Inventory) -> Inventory:
        with self._lock:
            if any(
                i.owner_id == inventory.owner_id and i.name == inventory.name
                for i in self._inventories.values()
            ):
                raise ConstraintViolation(f"duplicate inventory name {inventory.name}")
            self._inventories[inventory.id] = replace(inventory)
        return inventory

    def list_owned_inventories(self, owner_id: UUID) -> list[Inventory]:
        with self._lock:
            return [replace(i) for i in self._inventories.values() if i.owner_id == owner_id]

    def get_category(self, inventory_id: UUID, category_id: UUID) -> Category | None:
        with self._lock:
            category = self._categories.get(category_id)
            if category is None or category.inventory_id != inventory_id:
                return None
            return replace(category)

    def list_categories(self, inventory_id: UUID) -> list[Category]:
        with self._lock:
            return [
                replace(c)
                for c in self._categories.values()
                if c.inventory_id == inventory_id
            ]

    def add_category(self, category: Category) -> Category:
        with self._lock:
            if any(
                c.inventory_id == category.inventory_id and c.name == category.name
                for c in self._categories.values()
            ):
                raise ConstraintViolation(f"duplicate category name {category.name}")
            self._categories[category.id] = replace(category)
        return category

    def count_items(self, inventory_id: UUID, category_id: UUID | None = None) -> int:
        with self._lock:
            return sum(
                1
                for i in self._items.values()
                if i.inventory_id == inventory_id
                and not i.is_deleted
                and (category_id is None or i.category_id == category_id)
            )

    # Member operations

    def get_member(self, inventory_id: UUID, user_id: UUID) -> Member | None:
        with self._lock:
            for member in self._members.values():
                if member.inventory_id == inventory_id and member.user_id == user_id:
                    return replace(member)
        return None

    def get_member_by_id(self, member_id: UUID) -> Member | None:
        with self._lock:
            member = self._members.get(member_id)
            return replace(member) if member else None

    def list_members(
        self,
        inventory_id: UUID,
        status: MemberStatus,
        roles: Iterable[MemberRole],
    ) -> list[Member]:
        roles = set(roles)
        with self._lock:
            return [
                replace(m)
                for m in self._members.values()
                if m.inventory_id == inventory_id and m.status == status and m.role in roles
            ]

    def add_member(self, member: Member) -> Member:
        with self._lock:
            if self._find_member(member.inventory_id, member.user_id):
                raise ConstraintViolation(
                    f"user {member.user_id} already a member of {member.inventory_id}"
                )
            self._members[member.id] = replace(member)
        return member

    def save_member(self, member: Member) -> Member:
        with self._lock:
            self._members[member.id] = replace(member)
        return member

    def list_user_memberships(self, user_id: UUID) -> list[Member]:
        with self._lock:
            return [replace(m) for m in self._members.values() if m.user_id == user_id]

    def delete_member(self, member_id: UUID) -> bool:
        with self._lock:
            return self._members.pop(member_id, None) is not None

    def _find_member(self, inventory_id: UUID, user_id: UUID) -> Member | None:
        for member in self._members.values():
            if member.inventory_id == inventory_id and member.user_id == user_id:
                return member
        return None

    # Item operations

    def get_item(
        self, inventory_id: UUID, item_id: UUID, include_deleted: bool = False
    ) -> Item | None:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.inventory_id != inventory_id:
                return None
            if item.is_deleted and not include_deleted:
                return None
            return replace(item)

    def list_items(self, inventory_id: UUID) -> list[Item]:
        with self._lock:
            items = [
                replace(i)
                for i in self._items.values()
                if i.inventory_id == inventory_id and not i.is_deleted
            ]
        return sorted(items, key=lambda i: i.reference_number)

    def save_item(self, item: Item) -> Item:
        item.updated_at = datetime.now(timezone.utc)
        with self._lock:
            self._items[item.id] = replace(item)
        return item

    @contextmanager
    def lock_scope(self, scope: AllocationScope) -> Iterator[_MemoryScopeTransaction]:
        with self._scope_locks.hold(scope.key):
            tx = _MemoryScopeTransaction(self, scope)
            yield tx
            with self._lock:
                for item in tx.pending:
                    if any(
                        self._same_numbering_space(existing, scope)
                        and existing.reference_number == item.reference_number
                        for existing in self._items.values()
                    ):
                        raise ConstraintViolation(
                            f"reference number {item.reference_number} taken in {scope.key}"
                        )
                    self._items[item.id] = item

    @staticmethod
    def _counts_toward_max(item: Item, scope: AllocationScope) -> bool:
        # Inventory scope continues after every item in the inventory,
        # categorized or not. Category scope counts its own items only.
        if item.inventory_id != scope.inventory_id:
            return False
        return scope.category_id is None or item.category_id == scope.category_id

    @staticmethod
    def _same_numbering_space(item: Item, scope: AllocationScope) -> bool:
        if item.inventory_id != scope.inventory_id:
            return False
        return item.category_id == scope.category_id

    # Claim operations

    def get_claim(self, claim_id: UUID) -> Claim | None:
        with self._lock:
            claim = self._claims.get(claim_id)
            return replace(claim) if claim else None

    def find_claim(self, item_id: UUID, user_id: UUID) -> Claim | None:
        with self._lock:
            for claim in self._claims.values():
                if claim.item_id == item_id and claim.user_id == user_id:
                    return replace(claim)
        return None

    def find_claim_by_status(self, item_id: UUID, status: ClaimStatus) -> Claim | None:
        with self._lock:
            for claim in self._claims.values():
                if claim.item_id == item_id and claim.status == status:
                    return replace(claim)
        return None

    def list_claims_for_item(self, item_id: UUID) -> list[Claim]:
        with self._lock:
            claims = [replace(c) for c in self._claims.values() if c.item_id == item_id]
        return sorted(claims, key=lambda c: c.created_at)

    def list_claims_for_items(self, item_ids: Iterable[UUID]) -> list[Claim]:
        wanted = set(item_ids)
        with self._lock:
            return [replace(c) for c in self._claims.values() if c.item_id in wanted]

    def list_claims_for_inventory(self, inventory_id: UUID) -> list[Claim]:
        with self._lock:
            rows = [
                (self._items[c.item_id].reference_number, c.created_at, replace(c))
                for c in self._claims.values()
                if c.item_id in self._items
                and self._items[c.item_id].inventory_id == inventory_id
                and not self._items[c.item_id].is_deleted
            ]
        rows.sort(key=lambda row: (row[0], row[1]))
        return [claim for _, _, claim in rows]

    def insert_claim(self, claim: Claim) -> Claim:
        with self._lock:
            for existing in self._claims.values():
                if existing.item_id == claim.item_id and existing.user_id == claim.user_id:
                    raise ConstraintViolation(
                        f"claim exists for item {claim.item_id}, user {claim.user_id}"
                    )
            self._check_single_assigned(claim.item_id, claim.id, claim.status)
            self._claims[claim.id] = replace(claim)
        logger.debug("claim_inserted", claim_id=str(claim.id), item_id=str(claim.item_id))
        return claim

    def update_claim_status(self, claim_id: UUID, status: ClaimStatus) -> Claim | None:
        with self._lock:
            claim = self._claims.get(claim_id)
            if claim is None:
                return None
            self._check_single_assigned(claim.item_id, claim_id, status)
            claim.status = status
            return replace(claim)

    def delete_claim(self, claim_id: UUID) -> bool:
        with self._lock:
            return self._claims.pop(claim_id, None) is not None

    def _check_single_assigned(self, item_id: UUID, claim_id: UUID, status: ClaimStatus) -> None:
        if status != ClaimStatus.ASSIGNED:
            return
        for existing in self._claims.values():
            if (
                existing.item_id == item_id
                and existing.id != claim_id
                and existing.status == ClaimStatus.ASSIGNED
            ):
                raise ConstraintViolation(f"item {item_id} already has an assigned claim")
