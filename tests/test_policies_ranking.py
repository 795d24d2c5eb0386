"""Tests for plan policies and the discount ranking."""

from datetime import datetime, timedelta, timezone

import pytest

from core.policies import (
    AllowAllPolicy,
    PremiumOnlyPolicy,
    TrackingLimitPolicy,
    build_notification_policy,
)
from core.ranking import rank_by_recent_discount
from core.types import PriceObservation, TrackedItem, User
from utils.error_handling import PolicyViolation


FREE = User(id=1, email="free@example.com")
PREMIUM = User(id=2, email="premium@example.com", plan="PREMIUM")


def test_build_notification_policy_by_name() -> None:
    assert isinstance(build_notification_policy("all"), AllowAllPolicy)
    assert isinstance(build_notification_policy("premium_only"), PremiumOnlyPolicy)
    with pytest.raises(ValueError):
        build_notification_policy("vip")


def test_free_plan_item_limit() -> None:
    limits = TrackingLimitPolicy(free_plan_max_items=5)

    limits.check_add_item(FREE, 4)
    with pytest.raises(PolicyViolation):
        limits.check_add_item(FREE, 5)
    limits.check_add_item(PREMIUM, 50)


def test_free_plan_cannot_import_lists_by_default() -> None:
    with pytest.raises(PolicyViolation):
        TrackingLimitPolicy().check_add_list(FREE)
    TrackingLimitPolicy().check_add_list(PREMIUM)
    TrackingLimitPolicy(free_plan_allows_lists=True).check_add_list(FREE)


def _history(item_id: int, prices_oldest_first: list[int]) -> list[PriceObservation]:
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    history = [
        PriceObservation(item_id, price, start + timedelta(days=n))
        for n, price in enumerate(prices_oldest_first)
    ]
    return list(reversed(history))


def _item(item_id: int, price: int) -> TrackedItem:
    return TrackedItem(id=item_id, catalog_id=str(item_id), source_url=f"https://books.example.com/{item_id}", current_price=price)


def test_ranking_orders_by_latest_discount() -> None:
    entries = [
        (_item(1, 900), _history(1, [1000, 900])),
        (_item(2, 21380), _history(2, [26330, 21380])),
        (_item(3, 1200), _history(3, [1000, 1200])),
        (_item(4, 500), _history(4, [500])),
    ]

    ranked = rank_by_recent_discount(entries)

    assert [entry.item.id for entry in ranked[:2]] == [2, 1]
    assert ranked[0].discount_amount == 4950
    assert ranked[0].discount_percentage == 19
    assert ranked[0].price_history == [21380, 26330]
    no_discount = {entry.item.id: entry for entry in ranked[2:]}
    assert no_discount[3].discount_percentage == 0
    assert no_discount[4].previous_price is None
