"""Ranking of tracked books by their most recent discount."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from core.reconciliation import compute_discount
from core.types import PriceObservation, TrackedItem


@dataclass(frozen=True)
class RankedItem:
    item: TrackedItem
    current_price: int
    previous_price: Optional[int]
    discount_amount: int
    discount_percentage: int
    price_history: List[int]


def rank_by_recent_discount(
    entries: Iterable[Tuple[TrackedItem, Sequence[PriceObservation]]],
) -> List[RankedItem]:
    """
    Sort items by the discount between their two newest observations.

    Items with fewer than two observations, or whose price did not drop, rank
    with a zero discount. ``history`` must be newest first.
    """
    ranked: List[RankedItem] = []
    for item, history in entries:
        previous_price = None
        amount, percentage = 0, 0
        if len(history) > 1:
            previous_price = history[1].price
            if previous_price > item.current_price:
                amount, percentage = compute_discount(previous_price, item.current_price)
        ranked.append(
            RankedItem(
                item=item,
                current_price=item.current_price,
                previous_price=previous_price,
                discount_amount=amount,
                discount_percentage=percentage,
                price_history=[obs.price for obs in history],
            )
        )
    ranked.sort(key=lambda entry: entry.discount_percentage, reverse=True)
    return ranked
