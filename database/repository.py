"""PostgreSQL implementation of the tracking repository contract."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from core.types import (
    CatalogID,
    ItemID,
    Price,
    PriceObservation,
    TrackedItem,
    TrackedList,
    TrackingRelation,
    User,
    UserID,
)
from database.manager import DatabaseManager

logger = logging.getLogger(__name__)

_BOOK_COLUMNS = (
    "b.id, b.isbn13, b.link, b.price, b.title, b.author, b.image_url, "
    "b.description, b.details, b.discount_label"
)
_USER_COLUMNS = "u.id AS user_id, u.email, u.discount_threshold, u.plan"

_ITEM_FIELD_COLUMNS = {
    "catalog_id": "isbn13",
    "source_url": "link",
    "current_price": "price",
    "title": "title",
    "author": "author",
    "image_url": "image_url",
    "description": "description",
    "details": "details",
    "discount_label": "discount_label",
}


def _item_from_row(row: Dict[str, Any]) -> TrackedItem:
    return TrackedItem(
        id=row["id"],
        catalog_id=row["isbn13"],
        source_url=row["link"],
        current_price=row["price"],
        title=row["title"],
        author=row["author"],
        image_url=row["image_url"],
        description=row["description"],
        details=row["details"],
        discount_label=row["discount_label"],
    )


def _user_from_row(row: Dict[str, Any]) -> User:
    return User(
        id=row["user_id"],
        email=row["email"],
        discount_threshold=row["discount_threshold"],
        plan=row["plan"],
    )


def _list_from_row(row: Dict[str, Any]) -> TrackedList:
    return TrackedList(id=row["list_id"], user_id=row["user_id"], url=row["url_list"])


class PostgresTrackingRepository:
    """Tracking repository backed by the asyncpg DatabaseManager."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    # ==================== ITEMS ====================

    async def find_item_by_catalog_id(self, catalog_id: CatalogID) -> Optional[TrackedItem]:
        row = await self._db.fetch_one(
            f"SELECT {_BOOK_COLUMNS} FROM books b WHERE b.isbn13 = $1", catalog_id
        )
        return _item_from_row(row) if row else None

    async def create_item(self, fields: Dict[str, Any]) -> TrackedItem:
        columns = []
        values = []
        for key, column in _ITEM_FIELD_COLUMNS.items():
            if key in fields:
                columns.append(column)
                values.append(fields[key])
        placeholders = ", ".join(f"${i}" for i in range(1, len(values) + 1))
        row = await self._db.fetch_one(
            f"""
            INSERT INTO books AS b ({", ".join(columns)})
            VALUES ({placeholders})
            RETURNING {_BOOK_COLUMNS}
            """,
            *values,
        )
        return _item_from_row(row)

    async def update_item_price(self, item_id: ItemID, price: Price) -> None:
        await self._db.execute("UPDATE books SET price = $2 WHERE id = $1", item_id, price)

    async def list_items(self) -> List[TrackedItem]:
        rows = await self._db.fetch_all(f"SELECT {_BOOK_COLUMNS} FROM books b ORDER BY b.id")
        return [_item_from_row(row) for row in rows]

    # ==================== PRICE HISTORY ====================

    async def append_price_observation(
        self, item_id: ItemID, price: Price, timestamp: datetime
    ) -> None:
        await self._db.execute(
            "INSERT INTO price_history (book_id, price, observed_at) VALUES ($1, $2, $3)",
            item_id,
            price,
            timestamp,
        )

    async def list_observations(
        self, item_id: ItemID, newest_first: bool = True, limit: Optional[int] = None
    ) -> List[PriceObservation]:
        order = "DESC" if newest_first else "ASC"
        query = f"""
            SELECT book_id, price, observed_at FROM price_history
            WHERE book_id = $1
            ORDER BY observed_at {order}, id {order}
        """
        args: List[Any] = [item_id]
        if limit is not None:
            query += " LIMIT $2"
            args.append(limit)
        rows = await self._db.fetch_all(query, *args)
        return [
            PriceObservation(item_id=row["book_id"], price=row["price"], observed_at=row["observed_at"])
            for row in rows
        ]

    # ==================== RELATIONS ====================

    async def find_relation(self, user_id: UserID, item_id: ItemID) -> Optional[TrackingRelation]:
        row = await self._db.fetch_one(
            "SELECT user_id, book_id, from_list FROM user_books WHERE user_id = $1 AND book_id = $2",
            user_id,
            item_id,
        )
        if not row:
            return None
        return TrackingRelation(row["user_id"], row["book_id"], row["from_list"])

    async def create_relation(
        self, user_id: UserID, item_id: ItemID, origin_from_list: bool
    ) -> None:
        await self._db.execute(
            "INSERT INTO user_books (user_id, book_id, from_list) VALUES ($1, $2, $3)",
            user_id,
            item_id,
            origin_from_list,
        )

    async def delete_relation(self, user_id: UserID, item_id: ItemID) -> None:
        await self._db.execute(
            "DELETE FROM user_books WHERE user_id = $1 AND book_id = $2", user_id, item_id
        )

    async def list_relations_for_user(
        self, user_id: UserID
    ) -> List[Tuple[TrackingRelation, TrackedItem]]:
        rows = await self._db.fetch_all(
            f"""
            SELECT ub.user_id, ub.from_list, {_BOOK_COLUMNS}
            FROM user_books ub JOIN books b ON b.id = ub.book_id
            WHERE ub.user_id = $1
            ORDER BY b.id
            """,
            user_id,
        )
        return [
            (TrackingRelation(row["user_id"], row["id"], row["from_list"]), _item_from_row(row))
            for row in rows
        ]

    async def count_relations_for_user(self, user_id: UserID) -> int:
        count = await self._db.fetch_value(
            "SELECT COUNT(*) FROM user_books WHERE user_id = $1", user_id
        )
        return int(count or 0)

    # ==================== USERS ====================

    async def get_user(self, user_id: UserID) -> Optional[User]:
        row = await self._db.fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users u WHERE u.id = $1", user_id
        )
        return _user_from_row(row) if row else None

    async def list_users_tracking_item(self, item_id: ItemID) -> List[User]:
        rows = await self._db.fetch_all(
            f"""
            SELECT {_USER_COLUMNS}
            FROM user_books ub JOIN users u ON u.id = ub.user_id
            WHERE ub.book_id = $1
            ORDER BY u.id
            """,
            item_id,
        )
        return [_user_from_row(row) for row in rows]

    # ==================== LISTS ====================

    async def create_tracked_list(self, user_id: UserID, url: str) -> TrackedList:
        """
        Raises:
            DuplicateError: If the user already tracks this URL
        """
        row = await self._db.fetch_one(
            """
            INSERT INTO user_lists (user_id, url_list) VALUES ($1, $2)
            RETURNING id AS list_id, user_id, url_list
            """,
            user_id,
            url,
        )
        return _list_from_row(row)

    async def get_tracked_list(self, list_id: int) -> Optional[Tuple[TrackedList, User]]:
        row = await self._db.fetch_one(
            f"""
            SELECT ul.id AS list_id, ul.url_list, {_USER_COLUMNS}
            FROM user_lists ul JOIN users u ON u.id = ul.user_id
            WHERE ul.id = $1
            """,
            list_id,
        )
        if not row:
            return None
        return _list_from_row(row), _user_from_row(row)

    async def list_tracked_lists(self) -> List[Tuple[TrackedList, User]]:
        rows = await self._db.fetch_all(
            f"""
            SELECT ul.id AS list_id, ul.url_list, {_USER_COLUMNS}
            FROM user_lists ul JOIN users u ON u.id = ul.user_id
            ORDER BY ul.id
            """
        )
        return [(_list_from_row(row), _user_from_row(row)) for row in rows]

    # ==================== LIST MEMBERS ====================

    async def list_members(self, list_id: int) -> List[ItemID]:
        rows = await self._db.fetch_all(
            "SELECT book_id FROM user_list_books WHERE list_id = $1 ORDER BY book_id", list_id
        )
        return [row["book_id"] for row in rows]

    async def add_list_member(self, list_id: int, item_id: ItemID) -> None:
        await self._db.execute(
            """
            INSERT INTO user_list_books (list_id, book_id) VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            list_id,
            item_id,
        )

    async def remove_list_member(self, list_id: int, item_id: ItemID) -> None:
        await self._db.execute(
            "DELETE FROM user_list_books WHERE list_id = $1 AND book_id = $2", list_id, item_id
        )

    async def count_list_claims(self, user_id: UserID, item_id: ItemID) -> int:
        """Number of the user's lists that currently contain the item."""
        count = await self._db.fetch_value(
            """
            SELECT COUNT(*)
            FROM user_list_books ulb JOIN user_lists ul ON ul.id = ulb.list_id
            WHERE ul.user_id = $1 AND ulb.book_id = $2
            """,
            user_id,
            item_id,
        )
        return int(count or 0)
