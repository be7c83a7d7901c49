"""Tests for inventory creation and listing."""

import uuid

import pytest

from gift_registry.core.errors import ConstraintViolation, ErrorKind
from gift_registry.core.models import Inventory, MemberRole, MemberStatus


class TestCreateInventory:
    def test_creates_owned_inventory(self, world):
        result = world.services.inventories.create_inventory(world.claimant, "  Cabin ")

        assert result.ok
        inventory = result.value
        assert inventory.name == "Cabin"
        assert inventory.owner_id == world.claimant.id
        assert world.services.policy.can_manage(world.claimant, inventory)

    def test_duplicate_name_for_same_owner_is_bad_input(self, world):
        result = world.services.inventories.create_inventory(world.owner, "Grandma's house")

        assert result.error.kind == ErrorKind.BAD_INPUT
        assert result.error.message == "You already have an inventory named 'Grandma's house'"

    def test_same_name_for_another_owner_is_allowed(self, world):
        result = world.services.inventories.create_inventory(world.admin, "Grandma's house")
        assert result.ok

    def test_blank_name_is_bad_input(self, world):
        result = world.services.inventories.create_inventory(world.owner, "   ")
        assert result.error.kind == ErrorKind.BAD_INPUT


class TestListInventories:
    def test_owner_sees_owned_inventory_with_item_count(self, world):
        world.item("Lamp")
        deleted = world.item("Rug")
        world.services.items.delete_item(world.owner, world.inventory.id, deleted.id)

        (summary,) = world.services.inventories.list_inventories(world.owner).value

        assert summary.inventory.id == world.inventory.id
        assert summary.is_owner
        assert summary.role == MemberRole.ADMIN
        assert summary.item_count == 1

    def test_member_sees_role_and_owned_comes_first(self, world):
        own = world.services.inventories.create_inventory(world.claimant, "Cabin").value

        summaries = world.services.inventories.list_inventories(world.claimant).value

        assert [s.inventory.id for s in summaries] == [own.id, world.inventory.id]
        assert not summaries[1].is_owner
        assert summaries[1].role == MemberRole.CLAIMANT

    def test_pending_membership_is_hidden(self, world):
        assert world.services.inventories.list_inventories(world.pending).value == []

    def test_outsider_sees_nothing(self, world):
        assert world.services.inventories.list_inventories(world.outsider).value == []


class TestGetInventory:
    def test_pending_member_is_activated_on_first_access(self, world):
        result = world.services.inventories.get_inventory(world.pending, world.inventory.id)

        assert result.ok
        assert result.value.role == MemberRole.CLAIMANT
        assert world.member(world.pending).status == MemberStatus.ACTIVE
        assert world.services.policy.can_claim(world.pending, world.inventory)

    def test_owner_gets_admin_view(self, world):
        summary = world.services.inventories.get_inventory(world.owner, world.inventory.id).value
        assert summary.is_owner
        assert summary.role == MemberRole.ADMIN

    def test_outsider_is_not_authorized(self, world):
        result = world.services.inventories.get_inventory(world.outsider, world.inventory.id)
        assert result.error.kind == ErrorKind.NOT_AUTHORIZED

    def test_unknown_inventory_is_not_found(self, world):
        result = world.services.inventories.get_inventory(world.owner, uuid.uuid4())
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestInventoryStore:
    def test_store_rejects_duplicate_owner_name(self, world):
        other = Inventory(owner_id=world.owner.id, name="Grandma's house")
        with pytest.raises(ConstraintViolation):
            world.store.add_inventory(other)
