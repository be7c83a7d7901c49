"""FastAPI application for Gift Registry."""

from contextlib import aclosing, asynccontextmanager
from typing import AsyncIterator, TypeVar
from uuid import UUID, uuid4

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from gift_registry import __version__
from gift_registry.api.schemas import (
    AssignRequest,
    CategoryRequest,
    CategoryResponse,
    ClaimResponse,
    CurrentUserResponse,
    FinishedRequest,
    HealthResponse,
    InventoryRequest,
    InventoryResponse,
    ItemListResponse,
    ItemRequest,
    ItemResponse,
    MemberClaimsResponse,
    MemberRequest,
    MemberResponse,
    MemberUpdateRequest,
)
from gift_registry.api.user import get_current_user, resolve_user
from gift_registry.config import get_settings
from gift_registry.core.errors import ErrorKind, Result
from gift_registry.core.event_hub import EventBroadcastHub, SubscriberStream, format_sse
from gift_registry.core.inventories import InventorySummary
from gift_registry.core.models import Claim, MemberRole, User
from gift_registry.core.services import Services
from gift_registry.db import get_store
from gift_registry.logging_setup import configure_logging

logger = structlog.get_logger()

T = TypeVar("T")

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BAD_INPUT: 400,
}


def unwrap(result: Result[T]) -> T:
    """Return the value of a successful result or raise the matching HTTP error."""
    if result.ok:
        return result.value
    error = result.error
    status_code = _STATUS_BY_KIND[error.kind]
    logger.warning(
        "request_failed",
        kind=error.kind.value,
        status=status_code,
        message=error.message,
        detail=error.detail,
    )
    raise HTTPException(status_code=status_code, detail=error.message)


def get_services(request: Request) -> Services:
    """Services attached to the running application."""
    return request.app.state.services


def current_user(request: Request, services: Services = Depends(get_services)) -> User:
    """Resolve the calling user, provisioning unknown identities."""
    identity = get_current_user(request)
    if not identity.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return resolve_user(identity, services.store)


def _claim_response(services: Services, claim: Claim) -> ClaimResponse:
    user = services.store.get_user(claim.user_id)
    return ClaimResponse(
        id=claim.id,
        item_id=claim.item_id,
        user_id=claim.user_id,
        user_name=user.display_name if user else "",
        status=claim.status,
        created_at=claim.created_at,
    )


def _inventory_response(summary: InventorySummary) -> InventoryResponse:
    return InventoryResponse(
        id=summary.inventory.id,
        owner_id=summary.inventory.owner_id,
        name=summary.inventory.name,
        is_owner=summary.is_owner,
        role=summary.role,
        item_count=summary.item_count,
    )


async def _event_stream(
    request: Request, hub: EventBroadcastHub, stream: SubscriberStream, poll_seconds: float
) -> AsyncIterator[str]:
    """Drain a subscriber stream as text/event-stream frames.

    Runs on the event loop, so idle subscribers hold no worker thread. The
    stream is released as soon as the client disconnects.
    """
    try:
        async with aclosing(stream.listen(poll_seconds)) as batches:
            async for batch in batches:
                if await request.is_disconnected():
                    logger.debug("subscriber_disconnected", stream_id=str(stream.id))
                    break
                for message in batch:
                    yield format_sse(message)
    finally:
        hub.unsubscribe(stream)


def create_app(services: Services | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Service graph to serve. If None, built from settings and
            the configured store.
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.json_logs)
    if services is None:
        services = Services.build(get_store(), settings.events)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services.hub.start()
        yield
        app.state.services.hub.stop()

    app = FastAPI(
        title="Gift Registry API",
        description="Shared inventories with claims, assignments and live updates",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS for frontend development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        logger.debug("request_started", method=request.method, path=request.url.path)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    prefix = "/api/v1/inventories/{inventory_id}"

    @app.get("/api/health", response_model=HealthResponse)
    def health(services: Services = Depends(get_services)) -> HealthResponse:
        """Health check endpoint with store connectivity status."""
        db_status = "connected" if services.store.health_check() else "disconnected"
        return HealthResponse(status="ok", version=__version__, database=db_status)

    @app.get("/api/me", response_model=CurrentUserResponse)
    def get_me(
        user: User = Depends(current_user), services: Services = Depends(get_services)
    ) -> CurrentUserResponse:
        """Get current user information."""
        return CurrentUserResponse(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            active_streams=services.hub.connection_count(user.id),
        )

    # Inventories

    @app.get("/api/v1/inventories", response_model=list[InventoryResponse])
    def list_inventories(
        user: User = Depends(current_user), services: Services = Depends(get_services)
    ) -> list[InventoryResponse]:
        """Inventories the caller owns or actively belongs to."""
        summaries = unwrap(services.inventories.list_inventories(user))
        return [_inventory_response(s) for s in summaries]

    @app.post("/api/v1/inventories", response_model=InventoryResponse, status_code=201)
    def create_inventory(
        body: InventoryRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> InventoryResponse:
        """Create an inventory owned by the caller."""
        inventory = unwrap(services.inventories.create_inventory(user, body.name))
        return _inventory_response(InventorySummary(inventory, True, MemberRole.ADMIN, 0))

    @app.get(prefix, response_model=InventoryResponse)
    def get_inventory(
        inventory_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> InventoryResponse:
        """Open an inventory, activating a pending membership."""
        return _inventory_response(unwrap(services.inventories.get_inventory(user, inventory_id)))

    # Categories

    @app.get(f"{prefix}/categories", response_model=list[CategoryResponse])
    def list_categories(
        inventory_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> list[CategoryResponse]:
        """Categories sorted by name with item counts."""
        summaries = unwrap(services.categories.list_categories(user, inventory_id))
        return [
            CategoryResponse(
                id=s.category.id,
                inventory_id=s.category.inventory_id,
                name=s.category.name,
                item_count=s.item_count,
            )
            for s in summaries
        ]

    @app.post(f"{prefix}/categories", response_model=CategoryResponse, status_code=201)
    def create_category(
        inventory_id: UUID,
        body: CategoryRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> CategoryResponse:
        """Create a category (managers only)."""
        category = unwrap(services.categories.create_category(user, inventory_id, body.name))
        return CategoryResponse(
            id=category.id, inventory_id=category.inventory_id, name=category.name
        )

    # Live events

    @app.get(f"{prefix}/events")
    def subscribe(
        inventory_id: UUID,
        request: Request,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> StreamingResponse:
        """Open a text/event-stream of the inventory's domain events."""
        unwrap(services.policy.load_inventory(user, inventory_id))
        hub = services.hub
        stream = unwrap(hub.subscribe(inventory_id, user))
        return StreamingResponse(
            _event_stream(request, hub, stream, hub.stream_poll_seconds),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    # Items

    @app.get(f"{prefix}/items", response_model=ItemListResponse)
    def list_items(
        inventory_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ItemListResponse:
        """List visible items ordered by reference number."""
        items = unwrap(services.items.list_items(user, inventory_id))
        return ItemListResponse(
            items=[ItemResponse.model_validate(i) for i in items],
            total_items=len(items),
        )

    @app.post(f"{prefix}/items", response_model=ItemResponse, status_code=201)
    def create_item(
        inventory_id: UUID,
        body: ItemRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ItemResponse:
        """Create an item with the next reference number of its scope."""
        item = unwrap(
            services.items.create_item(user, inventory_id, body.description, body.category_id)
        )
        return ItemResponse.model_validate(item)

    @app.put(f"{prefix}/items/{{item_id}}", response_model=ItemResponse)
    def update_item(
        inventory_id: UUID,
        item_id: UUID,
        body: ItemRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ItemResponse:
        item = unwrap(services.items.update_item(user, inventory_id, item_id, body.description))
        return ItemResponse.model_validate(item)

    @app.delete(f"{prefix}/items/{{item_id}}", status_code=204)
    def delete_item(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> None:
        unwrap(services.items.delete_item(user, inventory_id, item_id))

    @app.post(f"{prefix}/items/{{item_id}}/undelete", response_model=ItemResponse)
    def undelete_item(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ItemResponse:
        return ItemResponse.model_validate(
            unwrap(services.items.undelete_item(user, inventory_id, item_id))
        )

    @app.post(f"{prefix}/items/{{item_id}}/collect", response_model=ItemResponse)
    def collect_item(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ItemResponse:
        return ItemResponse.model_validate(
            unwrap(services.items.collect_item(user, inventory_id, item_id))
        )

    @app.post(f"{prefix}/items/{{item_id}}/uncollect", response_model=ItemResponse)
    def uncollect_item(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ItemResponse:
        return ItemResponse.model_validate(
            unwrap(services.items.uncollect_item(user, inventory_id, item_id))
        )

    # Claims

    @app.get(f"{prefix}/items/{{item_id}}/claims", response_model=list[ClaimResponse])
    def list_claims(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> list[ClaimResponse]:
        """List every claim on an item (managers only)."""
        claims = unwrap(services.claims.list_claims(user, inventory_id, item_id))
        return [_claim_response(services, c) for c in claims]

    @app.post(f"{prefix}/items/{{item_id}}/claims", response_model=ClaimResponse, status_code=201)
    def create_claim(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ClaimResponse:
        """Express interest in an item."""
        claim = unwrap(services.claims.create_claim(user, inventory_id, item_id))
        return _claim_response(services, claim)

    @app.delete(f"{prefix}/items/{{item_id}}/claims", status_code=204)
    def withdraw_claim(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> None:
        """Withdraw the caller's interest in an item."""
        unwrap(services.claims.withdraw_claim(user, inventory_id, item_id))

    @app.delete(f"{prefix}/items/{{item_id}}/claims/{{claim_id}}", status_code=204)
    def remove_claim(
        inventory_id: UUID,
        item_id: UUID,
        claim_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> None:
        """Remove any member's claim (managers only)."""
        unwrap(services.claims.remove_claim(user, inventory_id, item_id, claim_id))

    @app.post(f"{prefix}/items/{{item_id}}/assign", response_model=ClaimResponse)
    def assign_item(
        inventory_id: UUID,
        item_id: UUID,
        body: AssignRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ClaimResponse:
        """Assign an item to one of its claims."""
        claim = unwrap(services.claims.assign_item(user, inventory_id, item_id, body.claim_id))
        return _claim_response(services, claim)

    @app.post(f"{prefix}/items/{{item_id}}/unassign", response_model=ClaimResponse)
    def unassign_item(
        inventory_id: UUID,
        item_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> ClaimResponse:
        """Return an assigned item to the interested pool."""
        claim = unwrap(services.claims.unassign_item(user, inventory_id, item_id))
        return _claim_response(services, claim)

    @app.get(f"{prefix}/claims", response_model=list[MemberClaimsResponse])
    def all_claims(
        inventory_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> list[MemberClaimsResponse]:
        """All claims grouped by participant (managers only)."""
        rows = unwrap(services.aggregator.get_all_claims(user, inventory_id))
        return [MemberClaimsResponse.model_validate(row) for row in rows]

    # Members

    @app.get(f"{prefix}/members", response_model=list[MemberResponse])
    def list_members(
        inventory_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> list[MemberResponse]:
        """Active and pending members (managers only)."""
        members = unwrap(services.members.list_members(user, inventory_id))
        return [MemberResponse.model_validate(m) for m in members]

    @app.post(f"{prefix}/members", response_model=MemberResponse, status_code=201)
    def add_member(
        inventory_id: UUID,
        body: MemberRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> MemberResponse:
        """Add a user by e-mail as a pending member."""
        member = unwrap(services.members.add_member(user, inventory_id, body.email, body.role))
        return MemberResponse.model_validate(member)

    @app.put(f"{prefix}/members/{{member_id}}", response_model=MemberResponse)
    def update_member(
        inventory_id: UUID,
        member_id: UUID,
        body: MemberUpdateRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> MemberResponse:
        """Change a member's role or status."""
        member = unwrap(
            services.members.update_member(
                user, inventory_id, member_id, role=body.role, status=body.status
            )
        )
        return MemberResponse.model_validate(member)

    @app.delete(f"{prefix}/members/{{member_id}}", status_code=204)
    def remove_member(
        inventory_id: UUID,
        member_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> None:
        """Remove a member from the inventory."""
        unwrap(services.members.remove_member(user, inventory_id, member_id))

    @app.post(f"{prefix}/finished", response_model=MemberResponse)
    def mark_finished(
        inventory_id: UUID,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> MemberResponse:
        """Lock in the caller's choices."""
        member = unwrap(services.members.mark_finished(user, inventory_id))
        return MemberResponse.model_validate(member)

    @app.put(f"{prefix}/members/{{member_id}}/finished", response_model=MemberResponse)
    def set_member_finished(
        inventory_id: UUID,
        member_id: UUID,
        body: FinishedRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> MemberResponse:
        """Set or reset a member's finished flag (managers only)."""
        member = unwrap(
            services.members.set_member_finished(user, inventory_id, member_id, body.finished)
        )
        return MemberResponse.model_validate(member)


app = create_app()
