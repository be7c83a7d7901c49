"""SQLAlchemy ORM models for Gift Registry.

These declare the PostgreSQL schema used by ``PostgresDB``; the CLI creates
the tables from this metadata.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


class UserRecord(Base):
    """A user known to the registry."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    last_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=_utc_now, server_default=text("NOW()"))

    __table_args__ = (
        Index("uq_users_email", text("lower(email)"), unique=True),
    )


class InventoryRecord(Base):
    """A shared inventory."""

    __tablename__ = "inventories"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_utc_now, server_default=text("NOW()"))

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_inventories_owner_name"),
        Index("idx_inventories_owner", "owner_id"),
    )


class CategoryRecord(Base):
    """A category within an inventory."""

    __tablename__ = "categories"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    inventory_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("inventories.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("inventory_id", "name", name="uq_categories_inventory_name"),
        Index("idx_categories_inventory", "inventory_id"),
    )


class MemberRecord(Base):
    """Membership of a user in an inventory."""

    __tablename__ = "inventory_members"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    inventory_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("inventories.id"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(Text, nullable=False, default="VIEWER")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING")
    finished_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utc_now, server_default=text("NOW()"))
    updated_at: Mapped[datetime] = mapped_column(default=_utc_now, server_default=text("NOW()"))

    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'CLAIMANT', 'VIEWER')", name="ck_member_role"),
        CheckConstraint("status IN ('PENDING', 'ACTIVE')", name="ck_member_status"),
        UniqueConstraint("inventory_id", "user_id", name="uq_inventory_members_user"),
    )


class ItemRecord(Base):
    """An item with a reference number unique within its scope."""

    __tablename__ = "items"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    inventory_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("inventories.id"), nullable=False
    )
    category_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True
    )
    reference_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_collected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=_utc_now, server_default=text("NOW()"))
    updated_at: Mapped[datetime] = mapped_column(default=_utc_now, server_default=text("NOW()"))

    __table_args__ = (
        CheckConstraint("reference_number > 0", name="ck_reference_number_positive"),
        # Uncategorized numbers are unique per inventory, categorized ones per category
        Index(
            "uq_items_inventory_reference",
            "inventory_id",
            "reference_number",
            unique=True,
            postgresql_where=text("category_id IS NULL"),
        ),
        Index(
            "uq_items_category_reference",
            "category_id",
            "reference_number",
            unique=True,
            postgresql_where=text("category_id IS NOT NULL"),
        ),
    )


class ClaimRecord(Base):
    """A user's claim on an item."""

    __tablename__ = "item_claims"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    item_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("items.id"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="INTERESTED")
    created_at: Mapped[datetime] = mapped_column(default=_utc_now, server_default=text("NOW()"))

    __table_args__ = (
        CheckConstraint("status IN ('INTERESTED', 'ASSIGNED')", name="ck_claim_status"),
        UniqueConstraint("item_id", "user_id", name="uq_item_claims_item_user"),
        # At most one ASSIGNED claim per item
        Index(
            "uq_item_claims_one_assigned",
            "item_id",
            unique=True,
            postgresql_where=text("status = 'ASSIGNED'"),
        ),
    )
