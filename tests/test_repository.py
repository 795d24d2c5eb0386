"""Tests for row mapping in the PostgreSQL tracking repository."""

from datetime import datetime, timezone
from typing import Any

import pytest

from database.repository import PostgresTrackingRepository


BOOK_ROW = {
    "id": 5,
    "isbn13": "9788498381498",
    "link": "https://books.example.com/9788498381498",
    "price": 21380,
    "title": "El principito",
    "author": "Antoine de Saint-Exupery",
    "image_url": "",
    "description": "",
    "details": "",
    "discount_label": "",
}


class _RecordingDB:
    def __init__(self, rows: list[dict[str, Any]] | None = None, value: Any = None) -> None:
        self.rows = rows or []
        self.value = value
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def execute(self, query: str, *args: Any) -> str:
        self.calls.append((query, args))
        return "OK"

    async def fetch_one(self, query: str, *args: Any):
        self.calls.append((query, args))
        return self.rows[0] if self.rows else None

    async def fetch_all(self, query: str, *args: Any):
        self.calls.append((query, args))
        return list(self.rows)

    async def fetch_value(self, query: str, *args: Any):
        self.calls.append((query, args))
        return self.value


@pytest.mark.asyncio
async def test_find_item_maps_book_columns() -> None:
    repo = PostgresTrackingRepository(_RecordingDB([BOOK_ROW]))

    item = await repo.find_item_by_catalog_id("9788498381498")

    assert item.id == 5
    assert item.catalog_id == "9788498381498"
    assert item.source_url == BOOK_ROW["link"]
    assert item.current_price == 21380


@pytest.mark.asyncio
async def test_missing_item_is_none() -> None:
    repo = PostgresTrackingRepository(_RecordingDB())

    assert await repo.find_item_by_catalog_id("0") is None


@pytest.mark.asyncio
async def test_create_item_inserts_only_given_fields() -> None:
    db = _RecordingDB([BOOK_ROW])
    repo = PostgresTrackingRepository(db)

    await repo.create_item({"catalog_id": "9788498381498", "source_url": BOOK_ROW["link"], "current_price": 21380})

    query, args = db.calls[0]
    assert "(isbn13, link, price)" in query
    assert args == ("9788498381498", BOOK_ROW["link"], 21380)


@pytest.mark.asyncio
async def test_list_observations_applies_order_and_limit() -> None:
    observed = datetime(2024, 1, 1, tzinfo=timezone.utc)
    db = _RecordingDB([{"book_id": 5, "price": 100, "observed_at": observed}])
    repo = PostgresTrackingRepository(db)

    history = await repo.list_observations(5, newest_first=True, limit=1)

    query, args = db.calls[0]
    assert "DESC" in query and "LIMIT $2" in query
    assert args == (5, 1)
    assert history[0].price == 100
    assert history[0].observed_at == observed


@pytest.mark.asyncio
async def test_relations_for_user_carry_origin() -> None:
    row = dict(BOOK_ROW, user_id=1, from_list=True)
    repo = PostgresTrackingRepository(_RecordingDB([row]))

    [(relation, item)] = await repo.list_relations_for_user(1)

    assert relation.origin_from_list is True
    assert relation.item_id == item.id == 5


@pytest.mark.asyncio
async def test_tracked_lists_join_their_owner() -> None:
    row = {
        "list_id": 3,
        "url_list": "https://books.example.com/lista/1",
        "user_id": 1,
        "email": "reader@example.com",
        "discount_threshold": 15,
        "plan": "PREMIUM",
    }
    repo = PostgresTrackingRepository(_RecordingDB([row]))

    [(tracked_list, owner)] = await repo.list_tracked_lists()

    assert tracked_list.id == 3
    assert tracked_list.user_id == owner.id == 1
    assert owner.discount_threshold == 15


@pytest.mark.asyncio
async def test_count_relations_defaults_to_zero() -> None:
    repo = PostgresTrackingRepository(_RecordingDB(value=None))

    assert await repo.count_relations_for_user(1) == 0


@pytest.mark.asyncio
async def test_list_members_are_book_ids() -> None:
    db = _RecordingDB([{"book_id": 5}, {"book_id": 9}])
    repo = PostgresTrackingRepository(db)

    assert await repo.list_members(3) == [5, 9]
    assert db.calls[0][1] == (3,)


@pytest.mark.asyncio
async def test_adding_a_list_member_is_idempotent() -> None:
    db = _RecordingDB()
    repo = PostgresTrackingRepository(db)

    await repo.add_list_member(3, 5)

    query, args = db.calls[0]
    assert "INSERT INTO user_list_books" in query
    assert "ON CONFLICT DO NOTHING" in query
    assert args == (3, 5)


@pytest.mark.asyncio
async def test_list_claims_are_counted_across_the_users_lists() -> None:
    db = _RecordingDB(value=2)
    repo = PostgresTrackingRepository(db)

    assert await repo.count_list_claims(1, 5) == 2
    query, args = db.calls[0]
    assert "JOIN user_lists" in query
    assert args == (1, 5)
