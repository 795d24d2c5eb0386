"""
Synchronisation of user-tracked catalog lists.

A tracked list is a catalog URL owned by a user. Every member page is
fetched, its item upserted and linked to the owner with
``origin_from_list=True``. Each list remembers which items it contained at
its last sync. A list-originated link is removed once none of the owner's
lists contains its item any more; manually added links are never touched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Set

from core.catalog import ItemUpserter
from core.locks import KeyedLocks
from core.types import (
    BookRecord,
    ItemID,
    PageFetcher,
    TrackedItem,
    TrackedList,
    TrackingRepository,
    UnitOutcome,
    UserID,
)
from network.link_extractor import LinkExtractor
from parsers.book_parser import extract_book_data
from parsers.catalog_parser import normalize_link
from utils.error_handling import ERROR_KIND_FETCH, classify_error, describe_error

logger = logging.getLogger(__name__)


class ListSynchronizationEngine:
    def __init__(
        self,
        repository: TrackingRepository,
        fetcher: PageFetcher,
        link_extractor: LinkExtractor,
        upserter: ItemUpserter,
        extractor: Callable[[str, str], BookRecord] = extract_book_data,
        unlink_on_fetch_failure: bool = False,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.link_extractor = link_extractor
        self.upserter = upserter
        self.extractor = extractor
        self.unlink_on_fetch_failure = unlink_on_fetch_failure
        self._user_locks = KeyedLocks()

    async def sync_list(self, tracked_list: TrackedList) -> UnitOutcome:
        """Synchronise one list; never raises."""
        unit_id = f"list:{tracked_list.id}"
        try:
            # Lists of one user share relations, so they are applied one at a time.
            async with self._user_locks.hold(tracked_list.user_id):
                return await self._sync(tracked_list, unit_id)
        except Exception as exc:  # noqa: BLE001 - list boundary
            kind = classify_error(exc)
            logger.error(
                "Error processing list %s for user %s: %s",
                tracked_list.url,
                tracked_list.user_id,
                exc,
                extra={"event_type": "list_sync"},
            )
            return UnitOutcome.failure(
                unit_id, describe_error(exc), kind, list_url=tracked_list.url
            )

    async def _sync(self, tracked_list: TrackedList, unit_id: str) -> UnitOutcome:
        user_id = tracked_list.user_id
        extraction = await self.link_extractor.extract(tracked_list.url)

        if not extraction.ok and not self.unlink_on_fetch_failure:
            logger.warning(
                "Skipping list %s for user %s this cycle, list fetch failed: %s",
                tracked_list.url,
                user_id,
                extraction.failure,
                extra={"event_type": "list_sync"},
            )
            return UnitOutcome.failure(
                unit_id,
                describe_error(extraction.failure),
                ERROR_KIND_FETCH,
                list_url=tracked_list.url,
                skipped=True,
            )

        links = extraction.links
        logger.info(
            "Processing list for user %s with %d books",
            user_id,
            len(links),
            extra={"event_type": "list_sync"},
        )

        previous: Set[ItemID] = set(await self.repository.list_members(tracked_list.id))

        results = await asyncio.gather(
            *(self._fetch_member(link) for link in links),
            return_exceptions=True,
        )
        present: Set[ItemID] = set()
        failed_links: Set[str] = set()
        processed = 0
        failed = 0
        linked = 0
        for link, result in zip(links, results):
            if isinstance(result, BaseException):
                failed += 1
                failed_links.add(normalize_link(link))
                logger.error(
                    "Error processing book link %s: %s",
                    link,
                    result,
                    extra={"event_type": "list_sync"},
                )
                continue
            processed += 1
            if result.id in present:
                continue
            present.add(result.id)
            if result.id not in previous:
                await self.repository.add_list_member(tracked_list.id, result.id)
            linked += int(await self._link(user_id, result))

        departed = previous - present
        if departed and failed_links:
            # A member whose page failed this cycle is still on the list.
            for _, item in await self.repository.list_relations_for_user(user_id):
                if item.id in departed and normalize_link(item.source_url) in failed_links:
                    departed.discard(item.id)

        unlinked = 0
        for item_id in sorted(departed):
            unlinked += int(await self._release(tracked_list, item_id))

        logger.info(
            "Finished processing list for user %s: %d processed, %d errors, %d linked, %d unlinked",
            user_id,
            processed,
            failed,
            linked,
            unlinked,
            extra={"event_type": "list_sync"},
        )
        return UnitOutcome.success(
            unit_id,
            list_url=tracked_list.url,
            members_processed=processed,
            members_failed=failed,
            linked=linked,
            unlinked=unlinked,
            fetch_failed=not extraction.ok,
        )

    async def _fetch_member(self, link: str) -> TrackedItem:
        html = await self.fetcher.fetch_text(link)
        record = self.extractor(html, link)
        item, _ = await self.upserter.upsert(record)
        return item

    async def _link(self, user_id: UserID, item: TrackedItem) -> bool:
        """Link a list member to the owner; True when a relation was created."""
        if await self.repository.find_relation(user_id, item.id) is not None:
            return False
        await self.repository.create_relation(user_id, item.id, origin_from_list=True)
        logger.debug("Linked book %s to user %s", item.catalog_id, user_id)
        return True

    async def _release(self, tracked_list: TrackedList, item_id: ItemID) -> bool:
        """
        Drop the list's claim on an item that left it.

        The owner's relation goes only when it came from a list and no other
        list of the same owner still contains the item. Returns True when the
        relation was deleted.
        """
        user_id = tracked_list.user_id
        await self.repository.remove_list_member(tracked_list.id, item_id)
        relation = await self.repository.find_relation(user_id, item_id)
        if relation is None or not relation.origin_from_list:
            return False
        if await self.repository.count_list_claims(user_id, item_id) > 0:
            return False
        await self.repository.delete_relation(user_id, item_id)
        logger.info(
            "Unlinked book %s from user %s, no longer in any of their lists",
            item_id,
            user_id,
            extra={"event_type": "list_sync"},
        )
        return True
