"""Per-member view of every claim in an inventory."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from uuid import UUID

from gift_registry.core.access import AccessPolicy
from gift_registry.core.errors import Result
from gift_registry.core.models import (
    Claim,
    ClaimStatus,
    MemberRole,
    MemberStatus,
    User,
)
from gift_registry.db.store import RegistryStore


@dataclass
class ClaimedItem:
    """An item one participant has claimed."""

    item_id: UUID
    reference_number: int
    category_name: str | None
    description: str
    claim_status: ClaimStatus
    is_collected: bool
    claim_count: int


@dataclass
class MemberClaims:
    """One participant's row in the all-claims view."""

    user_id: UUID
    member_id: UUID | None
    user_name: str
    role: MemberRole | None
    is_finished: bool
    claims: list[ClaimedItem] = field(default_factory=list)


class ClaimAggregator:
    """Read-only projection of claims grouped by participant."""

    def __init__(self, store: RegistryStore, policy: AccessPolicy):
        self._store = store
        self._policy = policy

    def get_all_claims(self, manager: User, inventory_id: UUID) -> Result[list[MemberClaims]]:
        """Build one row per participant: the owner, then active admins and
        claimants sorted case-insensitively by name."""
        inventory = self._store.get_inventory(inventory_id)
        if inventory is None:
            return Result.not_found("Inventory not found", f"Inventory: {inventory_id}")
        if not self._policy.can_manage(manager, inventory):
            return Result.not_authorized(
                "You do not have permission to view all claims",
                f"Inventory: {inventory_id}, User: {manager.id}",
            )

        members = self._store.list_members(
            inventory_id, MemberStatus.ACTIVE, (MemberRole.ADMIN, MemberRole.CLAIMANT)
        )
        claims = self._store.list_claims_for_inventory(inventory_id)
        items = {item.id: item for item in self._store.list_items(inventory_id)}
        categories = {c.id: c.name for c in self._store.list_categories(inventory_id)}

        claims_by_user: dict[UUID, list[Claim]] = defaultdict(list)
        for claim in claims:
            claims_by_user[claim.user_id].append(claim)
        claim_count_by_item = Counter(claim.item_id for claim in claims)

        def claimed_items(user_id: UUID) -> list[ClaimedItem]:
            rows = []
            for claim in claims_by_user.get(user_id, ()):
                item = items.get(claim.item_id)
                if item is None:
                    continue
                rows.append(
                    ClaimedItem(
                        item_id=item.id,
                        reference_number=item.reference_number,
                        category_name=categories.get(item.category_id),
                        description=item.description,
                        claim_status=claim.status,
                        is_collected=item.is_collected,
                        claim_count=claim_count_by_item[item.id],
                    )
                )
            return rows

        owner = self._store.get_user(inventory.owner_id)
        result = [
            MemberClaims(
                user_id=inventory.owner_id,
                member_id=None,
                user_name=owner.display_name if owner else "",
                role=None,
                is_finished=False,
                claims=claimed_items(inventory.owner_id),
            )
        ]

        rows = []
        for member in members:
            if member.user_id == inventory.owner_id:
                continue
            user = self._store.get_user(member.user_id)
            rows.append(
                MemberClaims(
                    user_id=member.user_id,
                    member_id=member.id,
                    user_name=user.display_name if user else "",
                    role=member.role,
                    is_finished=member.finished_at is not None,
                    claims=claimed_items(member.user_id),
                )
            )
        rows.sort(key=lambda row: row.user_name.casefold())
        result.extend(rows)
        return Result.success(result)
