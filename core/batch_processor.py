import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar

from tqdm import tqdm

from core.list_sync import ListSynchronizationEngine
from core.reconciliation import PriceReconciliationEngine
from core.types import (
    BatchSummary,
    TrackedItem,
    TrackedList,
    TrackingRepository,
    UnitOutcome,
    utc_now,
)
from utils.error_handling import PersistenceFailure, classify_error, describe_error
from utils.logger import log_batch_summary

logger = logging.getLogger(__name__)

T = TypeVar("T")

MONITOR_ITEMS = "monitor_items"
SYNC_LISTS = "sync_lists"


class BatchProcessor:
    """
    Fans a per-unit worker out over every tracked item or list.

    One task is spawned per unit and all of them are awaited regardless of
    individual outcome; the summary only counts, so completion order does not
    matter.
    """

    def __init__(
        self,
        repository: TrackingRepository,
        reconciliation_engine: PriceReconciliationEngine,
        list_engine: ListSynchronizationEngine,
        show_progress: bool = False,
    ):
        self.repository = repository
        self.reconciliation_engine = reconciliation_engine
        self.list_engine = list_engine
        self.show_progress = show_progress

    async def process(
        self,
        operation: str,
        units: Sequence[T],
        worker: Callable[[T], Awaitable[UnitOutcome]],
        unit_id: Callable[[T], str],
    ) -> BatchSummary:
        summary = BatchSummary(operation=operation)
        if not units:
            logger.info("%s: nothing to process", operation)
            summary.finished_at = utc_now()
            return summary

        logger.info("%s: processing %d units", operation, len(units))

        with tqdm(
            total=len(units),
            desc=operation,
            unit="unit",
            disable=not self.show_progress,
        ) as pbar:

            async def _run(unit: T) -> UnitOutcome:
                try:
                    return await worker(unit)
                finally:
                    pbar.update(1)

            results: List[Any] = await asyncio.gather(
                *(_run(unit) for unit in units), return_exceptions=True
            )

        for unit, result in zip(units, results):
            if isinstance(result, BaseException):
                # Workers convert their own errors; this catches the ones that escaped.
                logger.error(
                    "%s: unhandled error for %s: %s",
                    operation,
                    unit_id(unit),
                    result,
                    extra={"event_type": "batch"},
                )
                result = UnitOutcome.failure(
                    unit_id(unit), describe_error(result), classify_error(result)
                )
            summary.record(result)

        summary.finished_at = utc_now()
        log_batch_summary(logger, operation, summary)
        return summary

    async def monitor_all_items(self) -> BatchSummary:
        """Reconcile every tracked item. Raises only if items cannot be listed."""
        items = await self._enumerate(self.repository.list_items, "tracked items")
        return await self.process(
            MONITOR_ITEMS,
            items,
            self.reconciliation_engine.reconcile_item,
            _item_unit_id,
        )

    async def sync_all_lists(self) -> BatchSummary:
        """Synchronise every tracked list. Raises only if lists cannot be listed."""
        lists = await self._enumerate(self.repository.list_tracked_lists, "tracked lists")
        return await self.process(
            SYNC_LISTS,
            [tracked_list for tracked_list, _owner in lists],
            self.list_engine.sync_list,
            _list_unit_id,
        )

    async def _enumerate(self, loader: Callable[[], Awaitable[list]], what: str) -> list:
        try:
            return list(await loader())
        except PersistenceFailure:
            logger.exception("Could not load %s", what)
            raise
        except Exception as exc:
            logger.exception("Could not load %s", what)
            raise PersistenceFailure(f"Could not load {what}: {exc}") from exc


def _item_unit_id(item: TrackedItem) -> str:
    return item.catalog_id or str(item.id)


def _list_unit_id(tracked_list: TrackedList) -> str:
    return f"list:{tracked_list.id}"
