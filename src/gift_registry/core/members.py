"""Inventory membership: roster management and the finished flag."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog

from gift_registry.core.access import AccessPolicy
from gift_registry.core.errors import ConstraintViolation, Result
from gift_registry.core.models import (
    Inventory,
    Member,
    MemberRole,
    MemberStatus,
    User,
)
from gift_registry.db.store import RegistryStore

logger = structlog.get_logger()


class MemberService:
    """Manages who belongs to an inventory and in which role.

    Claimants can also lock in their choices with the finished flag, which
    managers may reset.
    """

    def __init__(self, store: RegistryStore, policy: AccessPolicy):
        self._store = store
        self._policy = policy

    def list_members(self, manager: User, inventory_id: UUID) -> Result[list[Member]]:
        """Active members, then pending ones. The owner has no member row."""
        loaded = self._load_managed(manager, inventory_id)
        if not loaded.ok:
            return loaded.propagate()

        members = []
        for status in (MemberStatus.ACTIVE, MemberStatus.PENDING):
            members.extend(self._store.list_members(inventory_id, status, MemberRole))
        return Result.success(members)

    def add_member(
        self, manager: User, inventory_id: UUID, email: str, role: MemberRole
    ) -> Result[Member]:
        """Add a user by e-mail as a PENDING member.

        Unknown e-mail addresses are provisioned as users. The membership
        becomes ACTIVE the first time the user opens the inventory.
        """
        loaded = self._load_managed(manager, inventory_id)
        if not loaded.ok:
            return loaded.propagate()
        inventory = loaded.value

        email = email.strip()
        if "@" not in email:
            return Result.bad_input("A valid e-mail address is required", f"Email: {email!r}")
        user = self._find_or_add_user(email)
        if user.id == inventory.owner_id:
            return Result.bad_input(
                "The inventory owner cannot be added as a member",
                f"Inventory: {inventory_id}, Owner: {user.id}",
            )

        member = Member(inventory_id=inventory_id, user_id=user.id, role=role)
        try:
            self._store.add_member(member)
        except ConstraintViolation:
            return Result.conflict(
                "This user is already a member of this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )

        logger.info(
            "member_added",
            manager_id=str(manager.id),
            member_id=str(member.id),
            user_id=str(user.id),
            role=role.value,
            inventory_id=str(inventory_id),
        )
        return Result.success(member)

    def update_member(
        self,
        manager: User,
        inventory_id: UUID,
        member_id: UUID,
        role: MemberRole | None = None,
        status: MemberStatus | None = None,
    ) -> Result[Member]:
        """Change a member's role, status, or both. Omitted fields are kept."""
        loaded = self._load_managed(manager, inventory_id)
        if not loaded.ok:
            return loaded.propagate()
        found = self._load_member(inventory_id, member_id)
        if not found.ok:
            return found
        member = found.value

        if role is not None:
            member.role = role
        if status is not None:
            member.status = status
        self._store.save_member(member)

        logger.info(
            "member_updated",
            manager_id=str(manager.id),
            member_id=str(member_id),
            role=member.role.value,
            status=member.status.value,
            inventory_id=str(inventory_id),
        )
        return Result.success(member)

    def remove_member(self, manager: User, inventory_id: UUID, member_id: UUID) -> Result[Member]:
        """Remove a member. Their claims stay in place."""
        loaded = self._load_managed(manager, inventory_id)
        if not loaded.ok:
            return loaded.propagate()
        found = self._load_member(inventory_id, member_id)
        if not found.ok:
            return found
        member = found.value

        if member.user_id == loaded.value.owner_id:
            return Result.bad_input(
                "Cannot remove the inventory owner",
                f"Inventory: {inventory_id}, Owner: {member.user_id}",
            )
        if not self._store.delete_member(member.id):
            return Result.not_found(
                "Member not found in this inventory",
                f"Inventory: {inventory_id}, Member: {member_id} vanished",
            )

        logger.info(
            "member_removed",
            manager_id=str(manager.id),
            member_id=str(member_id),
            inventory_id=str(inventory_id),
        )
        return Result.success(member)

    def mark_finished(self, user: User, inventory_id: UUID) -> Result[Member]:
        """Mark the calling member as finished. Idempotent."""
        inventory = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if inventory.owner_id == user.id:
            return Result.bad_input(
                "Owners cannot mark themselves as finished",
                f"Inventory: {inventory_id}, User: {user.id}",
            )

        member = self._store.get_member(inventory_id, user.id)
        if member is None:
            return Result.not_authorized(
                "You are not a member of this inventory",
                f"Inventory: {inventory_id}, User: {user.id}",
            )

        if member.finished_at is None:
            member.finished_at = datetime.now(timezone.utc)
            self._store.save_member(member)
            logger.info("member_finished", user_id=str(user.id), inventory_id=str(inventory_id))
        return Result.success(member)

    def set_member_finished(
        self, manager: User, inventory_id: UUID, member_id: UUID, finished: bool
    ) -> Result[Member]:
        """Set or clear a member's finished flag on their behalf."""
        loaded = self._load_managed(manager, inventory_id)
        if not loaded.ok:
            return loaded.propagate()
        found = self._load_member(inventory_id, member_id)
        if not found.ok:
            return found
        member = found.value

        if finished and member.finished_at is None:
            member.finished_at = datetime.now(timezone.utc)
            self._store.save_member(member)
            logger.info(
                "member_marked_finished",
                manager_id=str(manager.id),
                member_id=str(member_id),
                inventory_id=str(inventory_id),
            )
        elif not finished and member.finished_at is not None:
            member.finished_at = None
            self._store.save_member(member)
            logger.info(
                "member_finished_reset",
                manager_id=str(manager.id),
                member_id=str(member_id),
                inventory_id=str(inventory_id),
            )
        return Result.success(member)

    def _load_managed(self, manager: User, inventory_id: UUID) -> Result[Inventory]:
        inventory = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if not self._policy.can_manage(manager, inventory):
            return Result.not_authorized(
                "You do not have permission to manage members for this inventory",
                f"Inventory: {inventory_id}, User: {manager.id}",
            )
        return Result.success(inventory)

    def _load_member(self, inventory_id: UUID, member_id: UUID) -> Result[Member]:
        member = self._store.get_member_by_id(member_id)
        if member is None or member.inventory_id != inventory_id:
            return Result.not_found(
                "Member not found in this inventory",
                f"Inventory: {inventory_id}, Member: {member_id}",
            )
        return Result.success(member)

    def _find_or_add_user(self, email: str) -> User:
        user = self._store.find_user_by_email(email)
        if user is not None:
            return user
        try:
            return self._store.add_user(User(email=email))
        except ConstraintViolation:
            return self._store.find_user_by_email(email)
