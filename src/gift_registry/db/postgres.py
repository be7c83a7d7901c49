"""PostgreSQL store for Gift Registry."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Iterable
from uuid import UUID

import psycopg
import structlog
from psycopg import errors as pg_errors

from gift_registry.config import get_settings
from gift_registry.core.errors import ConstraintViolation
from gift_registry.core.models import (
    AllocationScope,
    Category,
    Claim,
    ClaimStatus,
    Inventory,
    Item,
    Member,
    MemberRole,
    MemberStatus,
    User,
)

logger = structlog.get_logger()

_ITEM_COLUMNS = """
    id, inventory_id, category_id, reference_number, description,
    is_deleted, is_collected, created_at, updated_at
"""
_CLAIM_COLUMNS = "id, item_id, user_id, status, created_at"
_MEMBER_COLUMNS = "id, inventory_id, user_id, role, status, finished_at"


def _user_from_row(row) -> User:
    return User(id=row[0], email=row[1], first_name=row[2], last_name=row[3])


def _member_from_row(row) -> Member:
    return Member(
        id=row[0],
        inventory_id=row[1],
        user_id=row[2],
        role=MemberRole(row[3]),
        status=MemberStatus(row[4]),
        finished_at=row[5],
    )


def _item_from_row(row) -> Item:
    return Item(
        id=row[0],
        inventory_id=row[1],
        category_id=row[2],
        reference_number=row[3],
        description=row[4],
        is_deleted=row[5],
        is_collected=row[6],
        created_at=row[7],
        updated_at=row[8],
    )


def _claim_from_row(row) -> Claim:
    return Claim(
        id=row[0],
        item_id=row[1],
        user_id=row[2],
        status=ClaimStatus(row[3]),
        created_at=row[4],
    )


@contextmanager
def _unique_violations() -> Generator[None, None, None]:
    """Translate PostgreSQL unique violations into ConstraintViolation."""
    try:
        yield
    except pg_errors.UniqueViolation as e:
        logger.debug("unique_violation", constraint=e.diag.constraint_name)
        raise ConstraintViolation(str(e)) from e


class _PostgresScopeTransaction:
    """Reads and writes inside a transaction holding the scope row lock."""

    def __init__(self, conn: psycopg.Connection, scope: AllocationScope):
        self._conn = conn
        self._scope = scope

    def max_reference_number(self) -> int:
        with self._conn.cursor() as cur:
            if self._scope.category_id is not None:
                cur.execute(
                    """
                    SELECT COALESCE(MAX(reference_number), 0)
                    FROM items
                    WHERE category_id = %s
                    """,
                    (self._scope.category_id,),
                )
            else:
                cur.execute(
                    """
                    SELECT COALESCE(MAX(reference_number), 0)
                    FROM items
                    WHERE inventory_id = %s
                    """,
                    (self._scope.inventory_id,),
                )
            return cur.fetchone()[0]

    def insert_item(self, item: Item) -> None:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO items
                    (id, inventory_id, category_id, reference_number, description,
                     is_deleted, is_collected, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    item.id,
                    item.inventory_id,
                    item.category_id,
                    item.reference_number,
                    item.description,
                    item.is_deleted,
                    item.is_collected,
                    item.created_at,
                    item.updated_at,
                ),
            )


class PostgresDB:
    """PostgreSQL store using psycopg."""

    def __init__(self, conninfo: str | None = None):
        """Initialize database client.

        Args:
            conninfo: libpq connection string. If None, built from settings.
        """
        self._conninfo = conninfo or get_settings().database.conninfo

    @contextmanager
    def session(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection context manager."""
        conn = psycopg.connect(self._conninfo)
        try:
            with _unique_violations():
                yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            with self.session() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            return True
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return False

    def _fetch_one(self, query: str, params: tuple):
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchone()

    def _fetch_all(self, query: str, params: tuple) -> list:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()

    # User operations

    def get_user(self, user_id: UUID) -> User | None:
        row = self._fetch_one(
            "SELECT id, email, first_name, last_name FROM users WHERE id = %s",
            (user_id,),
        )
        return _user_from_row(row) if row else None

    def find_user_by_email(self, email: str) -> User | None:
        row = self._fetch_one(
            "SELECT id, email, first_name, last_name FROM users WHERE lower(email) = lower(%s)",
            (email,),
        )
        return _user_from_row(row) if row else None

    def add_user(self, user: User) -> User:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO users (id, email, first_name, last_name)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (user.id, user.email, user.first_name, user.last_name),
                )
        logger.info("user_created", user_id=str(user.id))
        return user

    # Inventory and category operations

    def get_inventory(self, inventory_id: UUID) -> Inventory | None:
        row = self._fetch_one(
            "SELECT id, owner_id, name FROM inventories WHERE id = %s",
            (inventory_id,),
        )
        if row is None:
            return None
        return Inventory(id=row[0], owner_id=row[1], name=row[2])

    def add_inventory(self, inventory: Inventory) -> Inventory:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO inventories (id, owner_id, name) VALUES (%s, %s, %s)",
                    (inventory.id, inventory.owner_id, inventory.name),
                )
        return inventory

    def list_owned_inventories(self, owner_id: UUID) -> list[Inventory]:
        rows = self._fetch_all(
            "SELECT id, owner_id, name FROM inventories WHERE owner_id = %s ORDER BY created_at",
            (owner_id,),
        )
        return [Inventory(id=r[0], owner_id=r[1], name=r[2]) for r in rows]

    def get_category(self, inventory_id: UUID, category_id: UUID) -> Category | None:
        row = self._fetch_one(
            """
            SELECT id, inventory_id, name FROM categories
            WHERE id = %s AND inventory_id = %s
            """,
            (category_id, inventory_id),
        )
        if row is None:
            return None
        return Category(id=row[0], inventory_id=row[1], name=row[2])

    def list_categories(self, inventory_id: UUID) -> list[Category]:
        rows = self._fetch_all(
            "SELECT id, inventory_id, name FROM categories WHERE inventory_id = %s",
            (inventory_id,),
        )
        return [Category(id=r[0], inventory_id=r[1], name=r[2]) for r in rows]

    def add_category(self, category: Category) -> Category:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO categories (id, inventory_id, name) VALUES (%s, %s, %s)",
                    (category.id, category.inventory_id, category.name),
                )
        return category

    def count_items(self, inventory_id: UUID, category_id: UUID | None = None) -> int:
        query = "SELECT COUNT(*) FROM items WHERE inventory_id = %s AND is_deleted = FALSE"
        params: tuple = (inventory_id,)
        if category_id is not None:
            query += " AND category_id = %s"
            params += (category_id,)
        return self._fetch_one(query, params)[0]

    # Member operations

    def get_member(self, inventory_id: UUID, user_id: UUID) -> Member | None:
        row = self._fetch_one(
            f"""
            SELECT {_MEMBER_COLUMNS} FROM inventory_members
            WHERE inventory_id = %s AND user_id = %s
            """,
            (inventory_id, user_id),
        )
        return _member_from_row(row) if row else None

    def get_member_by_id(self, member_id: UUID) -> Member | None:
        row = self._fetch_one(
            f"SELECT {_MEMBER_COLUMNS} FROM inventory_members WHERE id = %s",
            (member_id,),
        )
        return _member_from_row(row) if row else None

    def list_members(
        self,
        inventory_id: UUID,
        status: MemberStatus,
        roles: Iterable[MemberRole],
    ) -> list[Member]:
        rows = self._fetch_all(
            f"""
            SELECT {_MEMBER_COLUMNS} FROM inventory_members
            WHERE inventory_id = %s AND status = %s AND role = ANY(%s)
            """,
            (inventory_id, status.value, [r.value for r in roles]),
        )
        return [_member_from_row(r) for r in rows]

    def add_member(self, member: Member) -> Member:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO inventory_members ({_MEMBER_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        member.id,
                        member.inventory_id,
                        member.user_id,
                        member.role.value,
                        member.status.value,
                        member.finished_at,
                    ),
                )
        return member

    def save_member(self, member: Member) -> Member:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE inventory_members
                    SET role = %s, status = %s, finished_at = %s, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (member.role.value, member.status.value, member.finished_at, member.id),
                )
        return member

    def list_user_memberships(self, user_id: UUID) -> list[Member]:
        rows = self._fetch_all(
            f"SELECT {_MEMBER_COLUMNS} FROM inventory_members WHERE user_id = %s",
            (user_id,),
        )
        return [_member_from_row(r) for r in rows]

    def delete_member(self, member_id: UUID) -> bool:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM inventory_members WHERE id = %s", (member_id,))
                return cur.rowcount > 0

    # Item operations

    def get_item(
        self, inventory_id: UUID, item_id: UUID, include_deleted: bool = False
    ) -> Item | None:
        query = f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = %s AND inventory_id = %s"
        if not include_deleted:
            query += " AND is_deleted = FALSE"
        row = self._fetch_one(query, (item_id, inventory_id))
        return _item_from_row(row) if row else None

    def list_items(self, inventory_id: UUID) -> list[Item]:
        rows = self._fetch_all(
            f"""
            SELECT {_ITEM_COLUMNS} FROM items
            WHERE inventory_id = %s AND is_deleted = FALSE
            ORDER BY reference_number ASC
            """,
            (inventory_id,),
        )
        return [_item_from_row(r) for r in rows]

    def save_item(self, item: Item) -> Item:
        row = self._fetch_one(
            """
            UPDATE items
            SET description = %s, is_deleted = %s, is_collected = %s, updated_at = NOW()
            WHERE id = %s
            RETURNING updated_at
            """,
            (item.description, item.is_deleted, item.is_collected, item.id),
        )
        if row is not None:
            item.updated_at = row[0]
        return item

    @contextmanager
    def lock_scope(
        self, scope: AllocationScope
    ) -> Generator[_PostgresScopeTransaction, None, None]:
        """Hold the scope's row lock for the read-max/insert critical section.

        Category scope locks the category row, inventory scope the inventory
        row, so different scopes never wait on each other.
        """
        with self.session() as conn:
            with conn.cursor() as cur:
                if scope.category_id is not None:
                    cur.execute(
                        "SELECT id FROM categories WHERE id = %s FOR UPDATE",
                        (scope.category_id,),
                    )
                else:
                    cur.execute(
                        "SELECT id FROM inventories WHERE id = %s FOR UPDATE",
                        (scope.inventory_id,),
                    )
            yield _PostgresScopeTransaction(conn, scope)

    # Claim operations

    def get_claim(self, claim_id: UUID) -> Claim | None:
        row = self._fetch_one(
            f"SELECT {_CLAIM_COLUMNS} FROM item_claims WHERE id = %s", (claim_id,)
        )
        return _claim_from_row(row) if row else None

    def find_claim(self, item_id: UUID, user_id: UUID) -> Claim | None:
        row = self._fetch_one(
            f"SELECT {_CLAIM_COLUMNS} FROM item_claims WHERE item_id = %s AND user_id = %s",
            (item_id, user_id),
        )
        return _claim_from_row(row) if row else None

    def find_claim_by_status(self, item_id: UUID, status: ClaimStatus) -> Claim | None:
        row = self._fetch_one(
            f"""
            SELECT {_CLAIM_COLUMNS} FROM item_claims
            WHERE item_id = %s AND status = %s
            LIMIT 1
            """,
            (item_id, status.value),
        )
        return _claim_from_row(row) if row else None

    def list_claims_for_item(self, item_id: UUID) -> list[Claim]:
        rows = self._fetch_all(
            f"""
            SELECT {_CLAIM_COLUMNS} FROM item_claims
            WHERE item_id = %s
            ORDER BY created_at ASC
            """,
            (item_id,),
        )
        return [_claim_from_row(r) for r in rows]

    def list_claims_for_items(self, item_ids: Iterable[UUID]) -> list[Claim]:
        ids = list(item_ids)
        if not ids:
            return []
        rows = self._fetch_all(
            f"SELECT {_CLAIM_COLUMNS} FROM item_claims WHERE item_id = ANY(%s)",
            (ids,),
        )
        return [_claim_from_row(r) for r in rows]

    def list_claims_for_inventory(self, inventory_id: UUID) -> list[Claim]:
        rows = self._fetch_all(
            """
            SELECT c.id, c.item_id, c.user_id, c.status, c.created_at
            FROM item_claims c
            JOIN items i ON i.id = c.item_id
            WHERE i.inventory_id = %s AND i.is_deleted = FALSE
            ORDER BY i.reference_number ASC, c.created_at ASC
            """,
            (inventory_id,),
        )
        return [_claim_from_row(r) for r in rows]

    def insert_claim(self, claim: Claim) -> Claim:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO item_claims ({_CLAIM_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (claim.id, claim.item_id, claim.user_id, claim.status.value, claim.created_at),
                )
        return claim

    def update_claim_status(self, claim_id: UUID, status: ClaimStatus) -> Claim | None:
        row = self._fetch_one(
            f"""
            UPDATE item_claims
            SET status = %s
            WHERE id = %s
            RETURNING {_CLAIM_COLUMNS}
            """,
            (status.value, claim_id),
        )
        return _claim_from_row(row) if row else None

    def delete_claim(self, claim_id: UUID) -> bool:
        with self.session() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM item_claims WHERE id = %s", (claim_id,))
                return cur.rowcount > 0
