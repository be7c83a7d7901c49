"""Role and membership checks for inventories."""

from __future__ import annotations

from uuid import UUID

from gift_registry.core.errors import Result
from gift_registry.core.models import Inventory, Item, MemberRole, User
from gift_registry.db.store import RegistryStore

_CLAIM_ROLES = (MemberRole.ADMIN, MemberRole.CLAIMANT)


class AccessPolicy:
    """Answers what a user may do in an inventory.

    The owner is implicitly an admin and never has a member row consulted.
    Every other user needs an ACTIVE membership.
    """

    def __init__(self, store: RegistryStore):
        self._store = store

    def can_view(self, user: User, inventory: Inventory) -> bool:
        if inventory.owner_id == user.id:
            return True
        member = self._store.get_member(inventory.id, user.id)
        return member is not None and member.is_active

    def can_claim(self, user: User, inventory: Inventory) -> bool:
        if inventory.owner_id == user.id:
            return True
        member = self._store.get_member(inventory.id, user.id)
        return member is not None and member.is_active and member.role in _CLAIM_ROLES

    def can_manage(self, user: User, inventory: Inventory) -> bool:
        if inventory.owner_id == user.id:
            return True
        member = self._store.get_member(inventory.id, user.id)
        return member is not None and member.is_active and member.role == MemberRole.ADMIN

    def is_finished(self, user: User, inventory: Inventory) -> bool:
        """Whether the user is a claimant who has locked in their choices.

        Owners and admins are never restricted by the finished flag.
        """
        if inventory.owner_id == user.id:
            return False
        member = self._store.get_member(inventory.id, user.id)
        return (
            member is not None
            and member.role == MemberRole.CLAIMANT
            and member.finished_at is not None
        )

    def load_inventory(self, user: User, inventory_id: UUID) -> Result[Inventory]:
        """Resolve an inventory the user can view."""
        inventory = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if not self.can_view(user, inventory):
            return Result.not_authorized(
                "You do not have access to this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )
        return Result.success(inventory)

    def load_item(
        self,
        user: User,
        inventory_id: UUID,
        item_id: UUID,
        include_deleted: bool = False,
    ) -> Result[tuple[Inventory, Item]]:
        """Resolve a viewable inventory and one of its items."""
        loaded = self.load_inventory(user, inventory_id)
        if not loaded.ok:
            return loaded.propagate()
        item = self._store.get_item(inventory_id, item_id, include_deleted=include_deleted)
        if item is None:
            return Result.not_found(
                "Item not found", f"Item: {item_id}, Inventory: {inventory_id}"
            )
        return Result.success((loaded.value, item))
