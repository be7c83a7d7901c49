"""Pydantic request/response schemas for Gift Registry API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from gift_registry.core.models import ClaimStatus, MemberRole, MemberStatus


# Request models


class InventoryRequest(BaseModel):
    """Request body for creating an inventory."""

    name: str = Field(..., min_length=1, max_length=200)


class CategoryRequest(BaseModel):
    """Request body for creating a category."""

    name: str = Field(..., min_length=1, max_length=200)


class ItemRequest(BaseModel):
    """Request body for creating or updating an item."""

    description: str = Field(..., min_length=1, description="Item description")
    category_id: UUID | None = Field(default=None, description="Category to file the item under")


class AssignRequest(BaseModel):
    """Request body for assigning an item to a claim."""

    claim_id: UUID


class FinishedRequest(BaseModel):
    """Request body for setting a member's finished flag."""

    finished: bool = False


class MemberRequest(BaseModel):
    """Request body for adding a member by e-mail."""

    email: str = Field(..., min_length=3)
    role: MemberRole = MemberRole.CLAIMANT


class MemberUpdateRequest(BaseModel):
    """Request body for changing a member. Omitted fields are kept."""

    role: MemberRole | None = None
    status: MemberStatus | None = None


# Response models


class InventoryResponse(BaseModel):
    """An inventory as seen by the caller."""

    id: UUID
    owner_id: UUID
    name: str
    is_owner: bool
    role: MemberRole | None
    item_count: int


class CategoryResponse(BaseModel):
    """A category with its live item count."""

    id: UUID
    inventory_id: UUID
    name: str
    item_count: int = 0


class ItemResponse(BaseModel):
    """Response for an item."""

    id: UUID
    inventory_id: UUID
    category_id: UUID | None
    reference_number: int
    description: str
    is_deleted: bool
    is_collected: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ItemListResponse(BaseModel):
    """Response for item list."""

    items: list[ItemResponse]
    total_items: int


class ClaimResponse(BaseModel):
    """Response for a claim."""

    id: UUID
    item_id: UUID
    user_id: UUID
    user_name: str
    status: ClaimStatus
    created_at: datetime


class ClaimedItemResponse(BaseModel):
    """An item claimed by one participant."""

    item_id: UUID
    reference_number: int
    category_name: str | None
    description: str
    claim_status: ClaimStatus
    is_collected: bool
    claim_count: int = Field(description="Claims on this item across all users")

    model_config = {"from_attributes": True}


class MemberClaimsResponse(BaseModel):
    """One participant's claims."""

    user_id: UUID
    member_id: UUID | None
    user_name: str
    role: MemberRole | None
    is_finished: bool
    claims: list[ClaimedItemResponse]

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    """Response for a member."""

    id: UUID
    inventory_id: UUID
    user_id: UUID
    role: MemberRole
    status: MemberStatus
    finished_at: datetime | None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str
    version: str
    database: str


class CurrentUserResponse(BaseModel):
    """Response for current user info."""

    id: UUID
    email: str
    display_name: str
    active_streams: int
