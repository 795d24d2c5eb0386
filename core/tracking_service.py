"""
Trigger surface of the monitoring pipeline.

MonitoringService exposes the two argument-free scheduled operations, their
on-demand single-unit variants, and the interactive add/unlink flows. The
interactive flows report a TrackingResult whose OutcomeCode distinguishes
duplicates, missing records, refused requests, upstream fetch failures and
internal errors.
"""

from __future__ import annotations

import logging
from typing import Callable, List

from core.batch_processor import BatchProcessor
from core.catalog import ItemUpserter
from core.list_sync import ListSynchronizationEngine
from core.policies import TrackingLimitPolicy
from core.ranking import RankedItem, rank_by_recent_discount
from core.reconciliation import PriceReconciliationEngine, first_seen_decision
from core.types import (
    BatchSummary,
    BookRecord,
    CatalogID,
    OutcomeCode,
    PageFetcher,
    TrackingRepository,
    TrackingResult,
    UnitOutcome,
    UserID,
    utc_now,
)
from parsers.book_parser import extract_book_data
from utils.error_handling import (
    DuplicateError,
    ExtractionFailure,
    FetchFailure,
    NotFoundError,
    PolicyViolation,
)

logger = logging.getLogger(__name__)


class MonitoringService:
    def __init__(
        self,
        repository: TrackingRepository,
        fetcher: PageFetcher,
        batch_processor: BatchProcessor,
        reconciliation_engine: PriceReconciliationEngine,
        list_engine: ListSynchronizationEngine,
        upserter: ItemUpserter,
        limits: TrackingLimitPolicy,
        extractor: Callable[[str, str], BookRecord] = extract_book_data,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.batch_processor = batch_processor
        self.reconciliation_engine = reconciliation_engine
        self.list_engine = list_engine
        self.upserter = upserter
        self.limits = limits
        self.extractor = extractor

    # ==================== SCHEDULED ====================

    async def monitor_all_items(self) -> BatchSummary:
        return await self.batch_processor.monitor_all_items()

    async def sync_all_lists(self) -> BatchSummary:
        return await self.batch_processor.sync_all_lists()

    # ==================== ON DEMAND ====================

    async def monitor_item(self, catalog_id: CatalogID) -> UnitOutcome:
        """
        Reconcile a single item now.

        Raises:
            NotFoundError: If no item has this catalog id
        """
        item = await self.repository.find_item_by_catalog_id(catalog_id)
        if item is None:
            raise NotFoundError(f"Book {catalog_id} not found")
        return await self.reconciliation_engine.reconcile_item(item)

    async def sync_list(self, list_id: int) -> UnitOutcome:
        """
        Synchronise a single tracked list now.

        Raises:
            NotFoundError: If the list does not exist
        """
        found = await self.repository.get_tracked_list(list_id)
        if found is None:
            raise NotFoundError(f"List {list_id} not found")
        tracked_list, _owner = found
        return await self.list_engine.sync_list(tracked_list)

    async def discount_ranking(self) -> List[RankedItem]:
        items = await self.repository.list_items()
        entries = []
        for item in items:
            history = await self.repository.list_observations(item.id, newest_first=True)
            entries.append((item, history))
        return rank_by_recent_discount(entries)

    # ==================== INTERACTIVE ====================

    async def add_item_to_user(self, user_id: UserID, url: str) -> TrackingResult:
        try:
            return await self._add_item_to_user(user_id, url)
        except Exception:  # noqa: BLE001 - reported as internal_error
            logger.exception("Error adding book %s to user %s", url, user_id)
            return TrackingResult(OutcomeCode.INTERNAL_ERROR, "Error adding book to user")

    async def _add_item_to_user(self, user_id: UserID, url: str) -> TrackingResult:
        user = await self.repository.get_user(user_id)
        if user is None:
            return TrackingResult(OutcomeCode.NOT_FOUND, f"User {user_id} not found")

        try:
            count = await self.repository.count_relations_for_user(user_id)
            self.limits.check_add_item(user, count)
        except PolicyViolation as exc:
            return TrackingResult(OutcomeCode.FORBIDDEN, str(exc))

        try:
            html = await self.fetcher.fetch_text(url)
            record = self.extractor(html, url)
            item, created = await self.upserter.upsert(record)
        except (FetchFailure, ExtractionFailure) as exc:
            logger.warning("Could not read book page %s: %s", url, exc)
            return TrackingResult(
                OutcomeCode.UPSTREAM_FETCH_FAILED, f"Could not read book page: {exc}"
            )

        if await self.repository.find_relation(user_id, item.id) is not None:
            return TrackingResult(
                OutcomeCode.ALREADY_LINKED, "Book is already linked to the user", item=item
            )

        await self.repository.create_relation(user_id, item.id, origin_from_list=False)
        logger.info("Linked book %s to user %s", item.catalog_id, user_id)

        outcome = UnitOutcome.success(
            item.catalog_id,
            first_seen_decision(record, utc_now()) if created else None,
            created_item=created,
        )
        return TrackingResult(
            OutcomeCode.CREATED, "Book added to user successfully", item=item, outcome=outcome
        )

    async def add_list_to_user(self, user_id: UserID, url: str) -> TrackingResult:
        try:
            return await self._add_list_to_user(user_id, url)
        except Exception:  # noqa: BLE001 - reported as internal_error
            logger.exception("Error adding list %s to user %s", url, user_id)
            return TrackingResult(OutcomeCode.INTERNAL_ERROR, "Error adding list")

    async def _add_list_to_user(self, user_id: UserID, url: str) -> TrackingResult:
        user = await self.repository.get_user(user_id)
        if user is None:
            return TrackingResult(OutcomeCode.NOT_FOUND, f"User {user_id} not found")

        try:
            self.limits.check_add_list(user)
        except PolicyViolation as exc:
            return TrackingResult(OutcomeCode.FORBIDDEN, str(exc))

        try:
            tracked_list = await self.repository.create_tracked_list(user_id, url)
        except DuplicateError:
            return TrackingResult(
                OutcomeCode.DUPLICATE, "This list has already been added by this user"
            )

        # Members are synchronised right away instead of waiting for the schedule.
        outcome = await self.list_engine.sync_list(tracked_list)
        return TrackingResult(
            OutcomeCode.CREATED,
            "List added and processed successfully",
            tracked_list=tracked_list,
            outcome=outcome,
        )

    async def unlink_item(self, user_id: UserID, catalog_id: CatalogID) -> TrackingResult:
        try:
            item = await self.repository.find_item_by_catalog_id(catalog_id)
            if item is None:
                return TrackingResult(OutcomeCode.NOT_FOUND, f"Book {catalog_id} not found")
            if await self.repository.find_relation(user_id, item.id) is None:
                return TrackingResult(
                    OutcomeCode.NOT_FOUND, "The book is not linked to the user", item=item
                )
            await self.repository.delete_relation(user_id, item.id)
        except Exception:  # noqa: BLE001 - reported as internal_error
            logger.exception("Error unlinking book %s from user %s", catalog_id, user_id)
            return TrackingResult(OutcomeCode.INTERNAL_ERROR, "Error unlinking book from user")

        logger.info("Unlinked book %s from user %s", catalog_id, user_id)
        return TrackingResult(OutcomeCode.UNLINKED, "Book unlinked successfully", item=item)
