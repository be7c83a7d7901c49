"""Sequential reference numbers for new items."""

from __future__ import annotations

import structlog

from gift_registry.core.models import AllocationScope, Item
from gift_registry.db.store import RegistryStore

logger = structlog.get_logger()


class ReferenceNumberAllocator:
    """Allocates the next reference number within an inventory or category.

    The read of the current maximum and the insert of the new item happen
    inside one ``store.lock_scope`` critical section, so concurrent creations
    in the same scope are serialized while other scopes proceed in parallel.
    Deleted items keep their numbers, so a number is never handed out twice.
    """

    def __init__(self, store: RegistryStore):
        self._store = store

    def allocate(self, scope: AllocationScope, item: Item) -> int:
        """Stamp the next number for ``scope`` on ``item`` and persist it.

        Args:
            scope: Inventory or category the number must be unique within
            item: New item; its ``reference_number`` is overwritten

        Returns:
            The allocated reference number
        """
        with self._store.lock_scope(scope) as tx:
            item.reference_number = tx.max_reference_number() + 1
            tx.insert_item(item)

        logger.debug(
            "reference_number_allocated",
            scope=scope.key[0],
            scope_id=str(scope.key[1]),
            reference_number=item.reference_number,
        )
        return item.reference_number
