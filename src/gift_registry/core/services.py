"""Wiring of the core services around one store and one event hub."""

from __future__ import annotations

from dataclasses import dataclass

from gift_registry.config import EventSettings
from gift_registry.core.access import AccessPolicy
from gift_registry.core.aggregator import ClaimAggregator
from gift_registry.core.categories import CategoryService
from gift_registry.core.claims import ClaimStateMachine
from gift_registry.core.event_hub import EventBroadcastHub
from gift_registry.core.inventories import InventoryService
from gift_registry.core.items import ItemService
from gift_registry.core.members import MemberService
from gift_registry.core.reference_numbers import ReferenceNumberAllocator
from gift_registry.db.store import RegistryStore


@dataclass
class Services:
    """Everything a request handler needs, sharing a single hub."""

    store: RegistryStore
    policy: AccessPolicy
    hub: EventBroadcastHub
    allocator: ReferenceNumberAllocator
    inventories: InventoryService
    categories: CategoryService
    claims: ClaimStateMachine
    items: ItemService
    members: MemberService
    aggregator: ClaimAggregator

    @classmethod
    def build(cls, store: RegistryStore, events: EventSettings | None = None) -> Services:
        """Create the service graph.

        Args:
            store: Persistence backend
            events: Hub limits and heartbeat interval. If None, defaults apply.
        """
        events = events or EventSettings()
        policy = AccessPolicy(store)
        hub = EventBroadcastHub(
            max_connections_per_user=events.max_connections_per_user,
            max_pending_messages=events.max_pending_messages,
            heartbeat_interval_seconds=events.heartbeat_interval_seconds,
            stream_poll_seconds=events.stream_poll_seconds,
        )
        allocator = ReferenceNumberAllocator(store)
        return cls(
            store=store,
            policy=policy,
            hub=hub,
            allocator=allocator,
            inventories=InventoryService(store),
            categories=CategoryService(store, policy),
            claims=ClaimStateMachine(store, policy, hub),
            items=ItemService(store, policy, allocator, hub),
            members=MemberService(store, policy),
            aggregator=ClaimAggregator(store, policy),
        )
