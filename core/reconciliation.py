"""
Price reconciliation for tracked items.

For one item the engine fetches the product page, extracts the current
price, compares it with the last known price and, when it moved, appends a
price observation, updates the stored price and hands the decision to the
notification dispatcher. Steps for one item run strictly in sequence; the
batch processor runs many items side by side.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from core.notifications import NotificationDispatcher
from core.types import (
    BookRecord,
    DecisionKind,
    MonitoringDecision,
    PageFetcher,
    PriceObservation,
    TrackedItem,
    TrackingRepository,
    UnitOutcome,
    utc_now,
)
from parsers.book_parser import extract_book_data
from utils.error_handling import classify_error, describe_error

logger = logging.getLogger(__name__)

NOTIFYING_DECISIONS = (DecisionKind.PRICE_DROP, DecisionKind.BACK_IN_STOCK)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_discount(last_price: int, new_price: int) -> Tuple[int, int]:
    """
    Return (discount amount, discount percentage rounded half up).

    >>> compute_discount(26330, 21380)
    (4950, 19)
    """
    amount = last_price - new_price
    if last_price <= 0:
        return amount, 0
    return amount, round_half_up(amount / last_price * 100)


def classify_transition(last_price: int, new_price: int) -> DecisionKind:
    if new_price == last_price:
        return DecisionKind.NO_CHANGE
    if last_price == 0 and new_price > 0:
        return DecisionKind.BACK_IN_STOCK
    if new_price == 0:
        return DecisionKind.WENT_OUT_OF_STOCK
    if new_price < last_price:
        return DecisionKind.PRICE_DROP
    return DecisionKind.PRICE_INCREASE


def historical_minimum(
    observations: Sequence[PriceObservation],
) -> Tuple[Optional[int], Optional[datetime]]:
    """Lowest positive observed price and when it was seen; zeros are ignored."""
    available = [obs for obs in observations if obs.price > 0]
    if not available:
        return None, None
    lowest = min(available, key=lambda obs: obs.price)
    return lowest.price, lowest.observed_at


def first_seen_decision(record: BookRecord, observed_at: datetime) -> MonitoringDecision:
    return MonitoringDecision(
        kind=DecisionKind.FIRST_SEEN,
        old_price=None,
        new_price=record.price,
        historical_minimum=record.price if record.price > 0 else None,
        historical_minimum_at=observed_at if record.price > 0 else None,
    )


class PriceReconciliationEngine:
    """Compares fresh page data against persisted state for one item at a time."""

    def __init__(
        self,
        repository: TrackingRepository,
        fetcher: PageFetcher,
        dispatcher: NotificationDispatcher,
        extractor: Callable[[str, str], BookRecord] = extract_book_data,
        history_size: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.extractor = extractor
        self.history_size = history_size
        self.clock = clock

    async def reconcile_item(self, item: TrackedItem) -> UnitOutcome:
        """
        Fetch, extract and reconcile one item.

        Never raises: fetch, extraction and persistence errors are returned as
        a failed outcome so sibling items in the same batch keep going.
        """
        unit_id = item.catalog_id or str(item.id)
        try:
            html = await self.fetcher.fetch_text(item.source_url)
            record = self.extractor(html, item.source_url)
            decision = await self.reconcile_record(item, record)
        except Exception as exc:  # noqa: BLE001 - item boundary
            kind = classify_error(exc)
            logger.error(
                "Error processing book %s (%s): %s",
                unit_id,
                kind,
                exc,
                extra={"event_type": "reconcile"},
            )
            return UnitOutcome.failure(
                unit_id, describe_error(exc), kind, source_url=item.source_url
            )

        return UnitOutcome.success(unit_id, decision, source_url=item.source_url)

    async def reconcile_record(
        self, item: TrackedItem, record: BookRecord
    ) -> MonitoringDecision:
        """Reconcile an already-extracted record; persistence errors propagate."""
        latest = await self.repository.list_observations(item.id, newest_first=True, limit=1)
        last_price = latest[0].price if latest else item.current_price
        new_price = record.price

        kind = classify_transition(last_price, new_price)
        if kind is DecisionKind.NO_CHANGE:
            logger.debug(
                "No price change for %s (%s)", item.catalog_id, new_price,
                extra={"event_type": "reconcile"},
            )
            return MonitoringDecision(kind=kind, old_price=last_price, new_price=new_price)

        logger.info(
            "Price change detected for %s: %s -> %s",
            item.catalog_id,
            last_price,
            new_price,
            extra={"event_type": "reconcile"},
        )

        observed_at = self.clock()
        if latest and observed_at < latest[0].observed_at:
            observed_at = latest[0].observed_at

        await self.repository.append_price_observation(item.id, new_price, observed_at)
        await self.repository.update_item_price(item.id, new_price)
        item.current_price = new_price

        history = await self.repository.list_observations(item.id, newest_first=True)
        decision = self._build_decision(kind, last_price, new_price, history)

        if kind in NOTIFYING_DECISIONS:
            users = await self.repository.list_users_tracking_item(item.id)
            report = await self.dispatcher.dispatch(decision, item, users)
            logger.debug(
                "Dispatch for %s: %d sent, %d skipped, %d failed",
                item.catalog_id,
                len(report.sent),
                len(report.skipped),
                len(report.failed),
            )
        return decision

    def _build_decision(
        self,
        kind: DecisionKind,
        last_price: int,
        new_price: int,
        history: List[PriceObservation],
    ) -> MonitoringDecision:
        discount_amount, discount_percentage = 0, 0
        if kind is DecisionKind.PRICE_DROP:
            discount_amount, discount_percentage = compute_discount(last_price, new_price)

        minimum, minimum_at = historical_minimum(history)
        return MonitoringDecision(
            kind=kind,
            old_price=last_price,
            new_price=new_price,
            discount_amount=discount_amount,
            discount_percentage=discount_percentage,
            historical_minimum=minimum,
            historical_minimum_at=minimum_at,
            previous_prices=list(history[1 : 1 + self.history_size]),
        )
