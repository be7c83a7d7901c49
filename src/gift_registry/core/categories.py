"""Categories within an inventory."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog

from gift_registry.core.access import AccessPolicy
from gift_registry.core.errors import ConstraintViolation, Result
from gift_registry.core.models import Category, User
from gift_registry.db.store import RegistryStore

logger = structlog.get_logger()


@dataclass
class CategorySummary:
    category: Category
    item_count: int


class CategoryService:
    """Lists and creates the categories items can be filed under."""

    def __init__(self, store: RegistryStore, policy: AccessPolicy):
        self._store = store
        self._policy = policy

    def list_categories(self, user: User, inventory_id: UUID) -> Result[list[CategorySummary]]:
        """Categories sorted by name, each with its live item count."""
        loaded = self._policy.load_inventory(user, inventory_id)
        if not loaded.ok:
            return loaded.propagate()

        categories = sorted(
            self._store.list_categories(inventory_id), key=lambda c: c.name.lower()
        )
        return Result.success(
            [
                CategorySummary(c, self._store.count_items(inventory_id, c.id))
                for c in categories
            ]
        )

    def create_category(self, user: User, inventory_id: UUID, name: str) -> Result[Category]:
        """Create a category; names are unique within the inventory."""
        inventory = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if not self._policy.can_manage(user, inventory):
            return Result.not_authorized(
                "You do not have permission to edit this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )

        name = name.strip()
        if not name:
            return Result.bad_input("Category name is required", f"Inventory: {inventory_id}")
        if any(c.name == name for c in self._store.list_categories(inventory_id)):
            return self._duplicate_name(inventory_id, name)

        category = Category(inventory_id=inventory_id, name=name)
        try:
            self._store.add_category(category)
        except ConstraintViolation:
            return self._duplicate_name(inventory_id, name)

        logger.info(
            "category_created",
            category_id=str(category.id),
            inventory_id=str(inventory_id),
            user_id=str(user.id),
        )
        return Result.success(category)

    @staticmethod
    def _duplicate_name(inventory_id: UUID, name: str) -> Result[Category]:
        return Result.bad_input(
            f"A category named '{name}' already exists in this inventory",
            f"Category name: {name}, Inventory: {inventory_id}",
        )
