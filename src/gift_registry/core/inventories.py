"""Inventory creation and the inventories a user can see."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog

from gift_registry.core.errors import ConstraintViolation, Result
from gift_registry.core.models import Inventory, MemberRole, MemberStatus, User
from gift_registry.db.store import RegistryStore

logger = structlog.get_logger()


@dataclass
class InventorySummary:
    """An inventory as seen by one user."""

    inventory: Inventory
    is_owner: bool
    role: MemberRole | None
    item_count: int


class InventoryService:
    """Creates inventories and resolves the caller's view of them."""

    def __init__(self, store: RegistryStore):
        self._store = store

    def list_inventories(self, user: User) -> Result[list[InventorySummary]]:
        """Owned inventories first, then those the user is an active member of."""
        summaries = [
            self._summary(inventory, user, None)
            for inventory in self._store.list_owned_inventories(user.id)
        ]
        for membership in self._store.list_user_memberships(user.id):
            if membership.status != MemberStatus.ACTIVE:
                continue
            inventory = self._store.get_inventory(membership.inventory_id)
            if inventory is None or inventory.owner_id == user.id:
                continue
            summaries.append(self._summary(inventory, user, membership.role))

        logger.debug("inventories_listed", user_id=str(user.id), count=len(summaries))
        return Result.success(summaries)

    def get_inventory(self, user: User, inventory_id: UUID) -> Result[InventorySummary]:
        """Resolve one inventory for the user.

        A PENDING member becomes ACTIVE on first access.
        """
        inventory = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if inventory.owner_id == user.id:
            return Result.success(self._summary(inventory, user, None))

        member = self._store.get_member(inventory_id, user.id)
        if member is None:
            return Result.not_authorized(
                "You do not have access to this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )
        if member.status == MemberStatus.PENDING:
            member.status = MemberStatus.ACTIVE
            self._store.save_member(member)
            logger.info(
                "member_activated",
                member_id=str(member.id),
                user_id=str(user.id),
                inventory_id=str(inventory_id),
            )
        return Result.success(self._summary(inventory, user, member.role))

    def create_inventory(self, owner: User, name: str) -> Result[Inventory]:
        """Create an inventory owned by ``owner``.

        Names are unique per owner.
        """
        name = name.strip()
        if not name:
            return Result.bad_input("Inventory name is required", f"Owner: {owner.id}")
        if any(i.name == name for i in self._store.list_owned_inventories(owner.id)):
            return self._duplicate_name(owner, name)

        inventory = Inventory(owner_id=owner.id, name=name)
        try:
            self._store.add_inventory(inventory)
        except ConstraintViolation:
            return self._duplicate_name(owner, name)

        logger.info("inventory_created", inventory_id=str(inventory.id), owner_id=str(owner.id))
        return Result.success(inventory)

    def _summary(
        self, inventory: Inventory, user: User, role: MemberRole | None
    ) -> InventorySummary:
        is_owner = inventory.owner_id == user.id
        return InventorySummary(
            inventory=inventory,
            is_owner=is_owner,
            role=MemberRole.ADMIN if is_owner else role,
            item_count=self._store.count_items(inventory.id),
        )

    @staticmethod
    def _duplicate_name(owner: User, name: str) -> Result[Inventory]:
        return Result.bad_input(
            f"You already have an inventory named '{name}'",
            f"Inventory name: {name}, Owner: {owner.id}",
        )
