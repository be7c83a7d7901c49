"""Item lifecycle operations for inventory managers."""

from __future__ import annotations

from uuid import UUID

import structlog

from gift_registry.core.access import AccessPolicy
from gift_registry.core.errors import Result
from gift_registry.core.event_hub import EventBroadcastHub
from gift_registry.core.models import (
    AllocationScope,
    ClaimStatus,
    DomainEvent,
    Inventory,
    Item,
    User,
)
from gift_registry.core.reference_numbers import ReferenceNumberAllocator
from gift_registry.db.store import RegistryStore

logger = structlog.get_logger()


class ItemService:
    """Create, edit, delete and collect items, publishing an event for each."""

    def __init__(
        self,
        store: RegistryStore,
        policy: AccessPolicy,
        allocator: ReferenceNumberAllocator,
        hub: EventBroadcastHub,
    ):
        self._store = store
        self._policy = policy
        self._allocator = allocator
        self._hub = hub

    def list_items(self, user: User, inventory_id: UUID) -> Result[list[Item]]:
        """Items ordered by reference number.

        Non-managers do not see collected items unless the item is assigned
        to them.
        """
        loaded = self._policy.load_inventory(user, inventory_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory = loaded.value

        items = self._store.list_items(inventory_id)
        if self._policy.can_manage(user, inventory):
            return Result.success(items)

        collected_ids = [i.id for i in items if i.is_collected]
        mine = {
            c.item_id
            for c in self._store.list_claims_for_items(collected_ids)
            if c.status == ClaimStatus.ASSIGNED and c.user_id == user.id
        }
        return Result.success([i for i in items if not i.is_collected or i.id in mine])

    def create_item(
        self,
        user: User,
        inventory_id: UUID,
        description: str,
        category_id: UUID | None = None,
    ) -> Result[Item]:
        """Create an item with the next reference number of its scope.

        Args:
            user: Creating user, must be able to manage the inventory
            inventory_id: Target inventory
            description: Item description
            category_id: Optional category; numbering is per category when set

        Returns:
            Result holding the persisted item
        """
        inventory = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if not self._policy.can_manage(user, inventory):
            return Result.not_authorized(
                "You do not have permission to add items to this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )
        if category_id is not None and self._store.get_category(inventory_id, category_id) is None:
            return Result.not_found(
                "Category not found",
                f"Category: {category_id}, Inventory: {inventory_id}",
            )

        item = Item(inventory_id=inventory_id, description=description, category_id=category_id)
        self._allocator.allocate(AllocationScope(inventory_id, category_id), item)

        logger.info(
            "item_created",
            item_id=str(item.id),
            reference_number=item.reference_number,
            inventory_id=str(inventory_id),
            category_id=str(category_id) if category_id else None,
        )
        self._hub.publish(DomainEvent.item_created(inventory_id, item.id))
        return Result.success(item)

    def update_item(
        self, user: User, inventory_id: UUID, item_id: UUID, description: str
    ) -> Result[Item]:
        loaded = self._load_for_edit(user, inventory_id, item_id, "edit items")
        if not loaded.ok:
            return loaded
        item = loaded.value
        item.description = description
        self._store.save_item(item)

        logger.info("item_updated", item_id=str(item.id))
        self._hub.publish(DomainEvent.item_updated(inventory_id, item.id))
        return Result.success(item)

    def delete_item(self, user: User, inventory_id: UUID, item_id: UUID) -> Result[Item]:
        """Soft-delete an item; its reference number stays taken."""
        loaded = self._load_for_edit(user, inventory_id, item_id, "delete items")
        if not loaded.ok:
            return loaded
        item = loaded.value
        item.is_deleted = True
        self._store.save_item(item)

        logger.info("item_deleted", item_id=str(item.id), inventory_id=str(inventory_id))
        self._hub.publish(DomainEvent.item_deleted(inventory_id, item.id))
        return Result.success(item)

    def undelete_item(self, user: User, inventory_id: UUID, item_id: UUID) -> Result[Item]:
        loaded = self._load_for_edit(
            user, inventory_id, item_id, "undelete items", include_deleted=True
        )
        if not loaded.ok:
            return loaded
        item = loaded.value
        item.is_deleted = False
        self._store.save_item(item)

        logger.info("item_undeleted", item_id=str(item.id), inventory_id=str(inventory_id))
        self._hub.publish(DomainEvent.item_undeleted(inventory_id, item.id))
        return Result.success(item)

    def collect_item(self, user: User, inventory_id: UUID, item_id: UUID) -> Result[Item]:
        """Mark an assigned item as handed over."""
        loaded = self._load_for_edit(user, inventory_id, item_id, "collect items")
        if not loaded.ok:
            return loaded
        item = loaded.value
        if self._store.find_claim_by_status(item.id, ClaimStatus.ASSIGNED) is None:
            return Result.bad_input(
                "Item must be assigned before it can be collected",
                f"Item: {item_id} is not assigned",
            )
        item.is_collected = True
        self._store.save_item(item)

        logger.info("item_collected", item_id=str(item.id), inventory_id=str(inventory_id))
        self._hub.publish(DomainEvent.item_collected(inventory_id, item.id))
        return Result.success(item)

    def uncollect_item(self, user: User, inventory_id: UUID, item_id: UUID) -> Result[Item]:
        loaded = self._load_for_edit(
            user, inventory_id, item_id, "uncollect items", include_deleted=True
        )
        if not loaded.ok:
            return loaded
        item = loaded.value
        item.is_collected = False
        self._store.save_item(item)

        logger.info("item_uncollected", item_id=str(item.id), inventory_id=str(inventory_id))
        self._hub.publish(DomainEvent.item_uncollected(inventory_id, item.id))
        return Result.success(item)

    def _load_for_edit(
        self,
        user: User,
        inventory_id: UUID,
        item_id: UUID,
        action: str,
        include_deleted: bool = False,
    ) -> Result[Item]:
        inventory: Inventory | None = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if not self._policy.can_manage(user, inventory):
            return Result.not_authorized(
                f"You do not have permission to {action} in this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )
        item = self._store.get_item(inventory_id, item_id, include_deleted=include_deleted)
        if item is None:
            return Result.not_found(
                "Item not found", f"Item: {item_id}, Inventory: {inventory_id}"
            )
        return Result.success(item)
