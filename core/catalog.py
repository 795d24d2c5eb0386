"""Find-or-create of tracked items keyed by catalog identifier."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Tuple

from core.locks import KeyedLocks
from core.types import BookRecord, TrackedItem, TrackingRepository, utc_now
from utils.error_handling import ExtractionFailure

logger = logging.getLogger(__name__)


class ItemUpserter:
    """
    Creates an item the first time its catalog id is seen and reuses it after.

    Concurrent upserts of the same catalog id are serialised so a page listed
    twice in one run does not create the item twice.
    """

    def __init__(
        self,
        repository: TrackingRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.clock = clock
        self._locks = KeyedLocks()

    async def upsert(self, record: BookRecord) -> Tuple[TrackedItem, bool]:
        """Return (item, created)."""
        if not record.catalog_id:
            raise ExtractionFailure(
                f"No catalog identifier found on {record.link}", {"url": record.link}
            )

        async with self._locks.hold(record.catalog_id):
            item = await self.repository.find_item_by_catalog_id(record.catalog_id)
            if item is not None:
                return item, False

            item = await self.repository.create_item(record.item_fields())
            await self.repository.append_price_observation(item.id, record.price, self.clock())
            logger.info(
                "Book with ISBN %s did not exist, created entry %s",
                record.catalog_id,
                item.id,
            )
            return item, True
