"""Shared fixtures: an in-memory inventory with one user per role."""

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from gift_registry.config import EventSettings
from gift_registry.core.models import (
    Category,
    Inventory,
    Item,
    Member,
    MemberRole,
    MemberStatus,
    User,
)
from gift_registry.core.services import Services
from gift_registry.db.memory import InMemoryStore


@dataclass
class World:
    """A populated inventory and the services operating on it."""

    services: Services
    inventory: Inventory
    category: Category
    owner: User
    admin: User
    claimant: User
    other_claimant: User
    viewer: User
    pending: User
    outsider: User

    @property
    def store(self) -> InMemoryStore:
        return self.services.store

    def item(self, description: str = "Teapot", category_id=None) -> Item:
        result = self.services.items.create_item(
            self.owner, self.inventory.id, description, category_id
        )
        assert result.ok, result.error
        return result.value

    def member(self, user: User) -> Member:
        return self.store.get_member(self.inventory.id, user.id)

    def finish(self, user: User) -> None:
        member = self.member(user)
        member.finished_at = datetime.now(timezone.utc)
        self.store.save_member(member)


def _make_user(store: InMemoryStore, email: str, first: str, last: str = "") -> User:
    return store.add_user(User(email=email, first_name=first, last_name=last))


def _make_member(
    store: InMemoryStore,
    inventory: Inventory,
    user: User,
    role: MemberRole,
    status: MemberStatus = MemberStatus.ACTIVE,
) -> Member:
    return store.add_member(
        Member(inventory_id=inventory.id, user_id=user.id, role=role, status=status)
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def services(store: InMemoryStore) -> Services:
    return Services.build(
        store,
        EventSettings(
            heartbeat_interval_seconds=30.0,
            max_connections_per_user=5,
            max_pending_messages=100,
            stream_poll_seconds=0.05,
        ),
    )


@pytest.fixture
def world(store: InMemoryStore, services: Services) -> World:
    owner = _make_user(store, "olivia@example.com", "Olivia", "Owner")
    admin = _make_user(store, "alice@example.com", "Alice", "Admin")
    claimant = _make_user(store, "carol@example.com", "Carol", "Claimant")
    # Lower-case name sorts first only with case-insensitive ordering
    other_claimant = _make_user(store, "aaron@example.com", "aaron")
    viewer = _make_user(store, "victor@example.com", "Victor", "Viewer")
    pending = _make_user(store, "paula@example.com", "Paula", "Pending")
    outsider = _make_user(store, "oscar@example.com", "Oscar", "Outsider")

    inventory = store.add_inventory(Inventory(owner_id=owner.id, name="Grandma's house"))
    category = store.add_category(Category(inventory_id=inventory.id, name="Kitchen"))

    _make_member(store, inventory, admin, MemberRole.ADMIN)
    _make_member(store, inventory, claimant, MemberRole.CLAIMANT)
    _make_member(store, inventory, other_claimant, MemberRole.CLAIMANT)
    _make_member(store, inventory, viewer, MemberRole.VIEWER)
    _make_member(store, inventory, pending, MemberRole.CLAIMANT, MemberStatus.PENDING)

    return World(
        services=services,
        inventory=inventory,
        category=category,
        owner=owner,
        admin=admin,
        claimant=claimant,
        other_claimant=other_claimant,
        viewer=viewer,
        pending=pending,
        outsider=outsider,
    )
