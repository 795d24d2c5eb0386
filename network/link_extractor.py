"""Expands a catalog/list URL into its member product URLs."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from core.types import PageFetcher
from parsers.catalog_parser import parse_book_links
from utils.error_handling import FetchFailure

logger = logging.getLogger(__name__)


@dataclass
class LinkExtractionResult:
    links: List[str] = field(default_factory=list)
    failure: Optional[FetchFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class LinkExtractor:
    """Fetches list pages through the shared fetcher; never raises."""

    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    async def extract(self, url: str) -> LinkExtractionResult:
        try:
            html = await self.fetcher.fetch_text(url)
            links = parse_book_links(html, base_url=url)
        except FetchFailure as exc:
            logger.error("Error extracting book links from %s: %s", url, exc)
            return LinkExtractionResult(failure=exc)
        except Exception as exc:  # noqa: BLE001 - parse errors become a fetch failure
            logger.exception("Error extracting book links from %s", url)
            return LinkExtractionResult(
                failure=FetchFailure(f"Could not read list page {url}: {exc}", url=url)
            )

        logger.info("Found %d book links on %s", len(links), url)
        return LinkExtractionResult(links=links)
