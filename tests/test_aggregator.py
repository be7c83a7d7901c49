"""Tests for the all-claims view."""

import uuid

from gift_registry.core.errors import ErrorKind
from gift_registry.core.models import ClaimStatus, MemberRole


class TestClaimAggregator:
    def test_owner_first_then_members_sorted_case_insensitively(self, world):
        result = world.services.aggregator.get_all_claims(world.owner, world.inventory.id)

        assert result.ok
        names = [row.user_name for row in result.value]
        assert names == ["Olivia Owner", "aaron", "Alice Admin", "Carol Claimant"]
        owner_row = result.value[0]
        assert owner_row.member_id is None
        assert owner_row.role is None

    def test_viewers_and_pending_members_are_excluded(self, world):
        rows = world.services.aggregator.get_all_claims(world.admin, world.inventory.id).value
        user_ids = {row.user_id for row in rows}
        assert world.viewer.id not in user_ids
        assert world.pending.id not in user_ids

    def test_claims_are_grouped_per_member(self, world):
        claims = world.services.claims
        world.item("Lamp")
        kettle = world.item("Kettle")  # reference 2
        teapot = world.item("Teapot", world.category.id)  # reference 1 in Kitchen
        mine = claims.create_claim(world.claimant, world.inventory.id, teapot.id).value
        claims.create_claim(world.other_claimant, world.inventory.id, teapot.id)
        claims.create_claim(world.claimant, world.inventory.id, kettle.id)
        claims.assign_item(world.owner, world.inventory.id, teapot.id, mine.id)

        rows = world.services.aggregator.get_all_claims(world.owner, world.inventory.id).value
        by_user = {row.user_id: row for row in rows}

        carol = by_user[world.claimant.id]
        assert carol.role == MemberRole.CLAIMANT
        assert [c.description for c in carol.claims] == ["Teapot", "Kettle"]
        teapot_row, kettle_row = carol.claims
        assert teapot_row.claim_status == ClaimStatus.ASSIGNED
        assert teapot_row.category_name == "Kitchen"
        assert teapot_row.claim_count == 2
        assert kettle_row.category_name is None
        assert kettle_row.claim_count == 1

        aaron = by_user[world.other_claimant.id]
        assert [c.claim_status for c in aaron.claims] == [ClaimStatus.INTERESTED]
        assert by_user[world.admin.id].claims == []

    def test_finished_flag_is_reported(self, world):
        world.finish(world.claimant)
        rows = world.services.aggregator.get_all_claims(world.owner, world.inventory.id).value
        finished = {row.user_id: row.is_finished for row in rows}
        assert finished[world.claimant.id] is True
        assert finished[world.other_claimant.id] is False

    def test_deleted_items_are_left_out(self, world):
        item = world.item()
        world.services.claims.create_claim(world.claimant, world.inventory.id, item.id)
        world.services.items.delete_item(world.owner, world.inventory.id, item.id)

        rows = world.services.aggregator.get_all_claims(world.owner, world.inventory.id).value

        assert all(row.claims == [] for row in rows)

    def test_claimant_is_not_authorized(self, world):
        result = world.services.aggregator.get_all_claims(world.claimant, world.inventory.id)
        assert result.error.kind == ErrorKind.NOT_AUTHORIZED

    def test_unknown_inventory_is_not_found(self, world):
        result = world.services.aggregator.get_all_claims(world.owner, uuid.uuid4())
        assert result.error.kind == ErrorKind.NOT_FOUND
