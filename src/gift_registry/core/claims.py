"""Claim lifecycle: interest, withdrawal, assignment and unassignment.

A claim moves from absent to INTERESTED when a user expresses interest,
to ASSIGNED when a manager picks it, and back to INTERESTED on unassign.
Withdrawal deletes an INTERESTED claim; there is no withdrawn state.

Each check-then-write runs under a per-item lock. The store's uniqueness
constraints back this up across processes, and a violation is reported as a
conflict.
"""

from __future__ import annotations

from uuid import UUID

import structlog

from gift_registry.core.access import AccessPolicy
from gift_registry.core.errors import ConstraintViolation, Result
from gift_registry.core.event_hub import EventBroadcastHub
from gift_registry.core.locks import KeyedLock
from gift_registry.core.models import (
    Claim,
    ClaimStatus,
    DomainEvent,
    Inventory,
    User,
)
from gift_registry.db.store import RegistryStore

logger = structlog.get_logger()


class ClaimStateMachine:
    """Owns every transition of a claim and the rules guarding it."""

    def __init__(self, store: RegistryStore, policy: AccessPolicy, hub: EventBroadcastHub):
        self._store = store
        self._policy = policy
        self._hub = hub
        self._item_locks = KeyedLock()

    def create_claim(self, user: User, inventory_id: UUID, item_id: UUID) -> Result[Claim]:
        """Record the user's interest in an item.

        Requires claim rights; finished claimants are refused. A second claim
        by the same user on the same item is a conflict.
        """
        loaded = self._policy.load_item(user, inventory_id, item_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory, item = loaded.value

        if not self._policy.can_claim(user, inventory):
            return Result.not_authorized(
                "You do not have permission to claim items in this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )
        finished = self._check_not_finished(user, inventory)
        if not finished.ok:
            return finished.propagate()

        with self._item_locks.hold(item.id):
            if self._store.find_claim(item.id, user.id) is not None:
                return self._duplicate_claim(item.id, user.id)
            claim = Claim(item_id=item.id, user_id=user.id)
            try:
                self._store.insert_claim(claim)
            except ConstraintViolation:
                return self._duplicate_claim(item.id, user.id)

        logger.info(
            "claim_created",
            claim_id=str(claim.id),
            item_id=str(item.id),
            user_id=str(user.id),
        )
        self._hub.publish(DomainEvent.claim_created(inventory.id, item.id, claim.id))
        return Result.success(claim)

    def withdraw_claim(self, user: User, inventory_id: UUID, item_id: UUID) -> Result[Claim]:
        """Delete the user's own INTERESTED claim.

        An ASSIGNED claim cannot be withdrawn; a manager has to unassign it
        first.
        """
        loaded = self._policy.load_item(user, inventory_id, item_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory, item = loaded.value

        finished = self._check_not_finished(user, inventory)
        if not finished.ok:
            return finished.propagate()

        with self._item_locks.hold(item.id):
            claim = self._store.find_claim(item.id, user.id)
            if claim is None:
                return Result.not_found(
                    "You have not expressed interest in this item",
                    f"Item: {item.id}, User: {user.id}",
                )
            if claim.status == ClaimStatus.ASSIGNED:
                return Result.conflict(
                    "Cannot withdraw - this item has been assigned to you",
                    f"Claim: {claim.id}",
                )
            if not self._store.delete_claim(claim.id):
                return Result.not_found(
                    "You have not expressed interest in this item",
                    f"Claim: {claim.id} vanished",
                )

        logger.info(
            "claim_withdrawn",
            claim_id=str(claim.id),
            item_id=str(item.id),
            user_id=str(user.id),
        )
        self._hub.publish(DomainEvent.claim_deleted(inventory.id, item.id, claim.id))
        return Result.success(claim)

    def assign_item(
        self, manager: User, inventory_id: UUID, item_id: UUID, claim_id: UUID
    ) -> Result[Claim]:
        """Make one claim the sole ASSIGNED claim of its item."""
        loaded = self._policy.load_item(manager, inventory_id, item_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory, item = loaded.value

        if not self._policy.can_manage(manager, inventory):
            return Result.not_authorized(
                "You do not have permission to assign items in this inventory",
                f"Inventory: {inventory_id}, User: {manager.id}",
            )

        with self._item_locks.hold(item.id):
            existing = self._store.find_claim_by_status(item.id, ClaimStatus.ASSIGNED)
            if existing is not None:
                return self._already_assigned(existing)

            claim = self._store.get_claim(claim_id)
            if claim is None:
                return Result.not_found("Claim not found", f"Claim: {claim_id}")
            if claim.item_id != item.id:
                return Result.bad_input(
                    "Claim does not belong to this item",
                    f"Claim: {claim_id}, Item: {item.id}",
                )

            try:
                assigned = self._store.update_claim_status(claim.id, ClaimStatus.ASSIGNED)
            except ConstraintViolation:
                existing = self._store.find_claim_by_status(item.id, ClaimStatus.ASSIGNED)
                if existing is not None:
                    return self._already_assigned(existing)
                return Result.conflict(
                    "This item is already assigned", f"Item: {item.id}"
                )
            if assigned is None:
                return Result.not_found("Claim not found", f"Claim: {claim_id}")

        logger.info(
            "item_assigned",
            item_id=str(item.id),
            claim_id=str(assigned.id),
            user_id=str(assigned.user_id),
        )
        self._hub.publish(DomainEvent.item_assigned(inventory.id, item.id, assigned.id))
        return Result.success(assigned)

    def unassign_item(self, manager: User, inventory_id: UUID, item_id: UUID) -> Result[Claim]:
        """Return the item's ASSIGNED claim to INTERESTED."""
        loaded = self._policy.load_item(manager, inventory_id, item_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory, item = loaded.value

        if not self._policy.can_manage(manager, inventory):
            return Result.not_authorized(
                "You do not have permission to unassign items in this inventory",
                f"Inventory: {inventory_id}, User: {manager.id}",
            )

        with self._item_locks.hold(item.id):
            assigned = self._store.find_claim_by_status(item.id, ClaimStatus.ASSIGNED)
            if assigned is None:
                return Result.not_found(
                    "This item is not assigned to anyone", f"Item: {item.id}"
                )
            claim = self._store.update_claim_status(assigned.id, ClaimStatus.INTERESTED)
            if claim is None:
                return Result.not_found(
                    "This item is not assigned to anyone", f"Claim: {assigned.id} vanished"
                )

        logger.info(
            "item_unassigned",
            item_id=str(item.id),
            claim_id=str(claim.id),
            user_id=str(claim.user_id),
        )
        self._hub.publish(DomainEvent.item_unassigned(inventory.id, item.id))
        return Result.success(claim)

    def remove_claim(
        self, manager: User, inventory_id: UUID, item_id: UUID, claim_id: UUID
    ) -> Result[Claim]:
        """Delete any user's claim on an item, regardless of its status."""
        loaded = self._policy.load_item(manager, inventory_id, item_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory, item = loaded.value

        if not self._policy.can_manage(manager, inventory):
            return Result.not_authorized(
                "You do not have permission to remove claims in this inventory",
                f"Inventory: {inventory_id}, User: {manager.id}",
            )

        with self._item_locks.hold(item.id):
            claim = self._store.get_claim(claim_id)
            if claim is None:
                return Result.not_found("Claim not found", f"Claim: {claim_id}")
            if claim.item_id != item.id:
                return Result.bad_input(
                    "Claim does not belong to this item",
                    f"Claim: {claim_id}, Item: {item.id}",
                )
            if not self._store.delete_claim(claim.id):
                return Result.not_found("Claim not found", f"Claim: {claim_id} vanished")

        logger.info(
            "claim_removed",
            manager_id=str(manager.id),
            claim_id=str(claim_id),
            item_id=str(item.id),
        )
        self._hub.publish(DomainEvent.claim_deleted(inventory.id, item.id, claim.id))
        return Result.success(claim)

    def list_claims(self, viewer: User, inventory_id: UUID, item_id: UUID) -> Result[list[Claim]]:
        """All claims on an item, oldest first. Managers only."""
        loaded = self._policy.load_item(viewer, inventory_id, item_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory, item = loaded.value

        if not self._policy.can_manage(viewer, inventory):
            return Result.not_authorized(
                "You do not have permission to view claims for this item",
                f"Item: {item_id}, User: {viewer.id}",
            )
        return Result.success(self._store.list_claims_for_item(item.id))

    def _check_not_finished(self, user: User, inventory: Inventory) -> Result[None]:
        if self._policy.is_finished(user, inventory):
            return Result.conflict(
                "You have marked yourself as finished and can no longer change claims",
                f"User: {user.id}, Inventory: {inventory.id}",
            )
        return Result.success()

    @staticmethod
    def _duplicate_claim(item_id: UUID, user_id: UUID) -> Result[Claim]:
        return Result.conflict(
            "You have already expressed interest in this item",
            f"Item: {item_id}, User: {user_id}",
        )

    def _already_assigned(self, existing: Claim) -> Result[Claim]:
        holder = self._store.get_user(existing.user_id)
        holder_name = holder.display_name if holder else "another member"
        return Result.conflict(
            f"This item is already assigned to {holder_name}",
            f"Item: {existing.item_id}, Existing claim: {existing.id}",
        )
