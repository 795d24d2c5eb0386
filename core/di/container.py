from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from core.batch_processor import BatchProcessor
from core.catalog import ItemUpserter
from core.list_sync import ListSynchronizationEngine
from core.notifications import LoggingNotifier, NotificationDispatcher
from core.policies import TrackingLimitPolicy, build_notification_policy
from core.reconciliation import PriceReconciliationEngine
from core.tracking_service import MonitoringService
from database.manager import DatabaseManager
from database.repository import PostgresTrackingRepository
from network.link_extractor import LinkExtractor
from network.rate_limited_fetcher import RateLimitedFetcher
from services.api.config import Settings
from services.notifiers.email import SmtpEmailNotifier

logger = logging.getLogger(__name__)


class Container:
    def __init__(self) -> None:
        self._providers: Dict[str, Callable[["Container"], Any]] = {}
        self._cache: Dict[str, Any] = {}

    def register(self, key: str, provider: Callable[["Container"], Any]) -> None:
        self._providers[key] = provider

    def resolve(self, key: str) -> Any:
        if key in self._cache:
            return self._cache[key]
        provider = self._providers[key]
        instance = provider(self)
        self._cache[key] = instance
        return instance

    def override(self, key: str, instance: Any) -> None:
        """Pin a ready-made instance, e.g. a fake repository in tests."""
        self._cache[key] = instance

    async def startup(self, settings: Settings) -> None:
        """Open the database pool and the shared HTTP client."""
        db: DatabaseManager = self.resolve("db")
        await db.init_pool(
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
        )
        await self.resolve("fetcher").__aenter__()
        logger.info("Container started")

    async def shutdown(self) -> None:
        fetcher: Optional[RateLimitedFetcher] = self._cache.get("fetcher")
        if fetcher is not None:
            await fetcher.aclose()
        db: Optional[DatabaseManager] = self._cache.get("db")
        if db is not None:
            await db.close()
        logger.info("Container stopped")


def _build_notifier(settings: Settings):
    if settings.smtp_configured:
        return SmtpEmailNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
            timeout=settings.notification_timeout_seconds,
        )
    logger.warning("SMTP is not configured; alerts will only be logged")
    return LoggingNotifier()


def build_container(settings: Settings) -> Container:
    """
    Wire the monitoring pipeline.

    A single RateLimitedFetcher is shared by every component so the request
    cap and dispatch spacing hold across item monitoring, list sync and the
    interactive flows.
    """
    container = Container()

    container.register("settings", lambda _: settings)
    container.register("db", lambda c: DatabaseManager(c.resolve("settings").database_url))
    container.register("repository", lambda c: PostgresTrackingRepository(c.resolve("db")))
    container.register(
        "fetcher",
        lambda c: RateLimitedFetcher(
            max_concurrent=c.resolve("settings").fetch_max_concurrent,
            min_interval=c.resolve("settings").fetch_min_interval,
            timeout=c.resolve("settings").fetch_timeout_seconds,
            user_agent_rotation=c.resolve("settings").user_agent_rotation,
        ),
    )
    container.register("notifier", lambda c: _build_notifier(c.resolve("settings")))
    container.register(
        "dispatcher",
        lambda c: NotificationDispatcher(
            c.resolve("notifier"),
            policy=build_notification_policy(c.resolve("settings").notification_policy),
            timeout=c.resolve("settings").notification_timeout_seconds,
        ),
    )
    container.register("upserter", lambda c: ItemUpserter(c.resolve("repository")))
    container.register("link_extractor", lambda c: LinkExtractor(c.resolve("fetcher")))
    container.register(
        "reconciliation_engine",
        lambda c: PriceReconciliationEngine(
            c.resolve("repository"), c.resolve("fetcher"), c.resolve("dispatcher")
        ),
    )
    container.register(
        "list_engine",
        lambda c: ListSynchronizationEngine(
            c.resolve("repository"),
            c.resolve("fetcher"),
            c.resolve("link_extractor"),
            c.resolve("upserter"),
            unlink_on_fetch_failure=c.resolve("settings").list_sync_unlink_on_fetch_failure,
        ),
    )
    container.register(
        "batch_processor",
        lambda c: BatchProcessor(
            c.resolve("repository"),
            c.resolve("reconciliation_engine"),
            c.resolve("list_engine"),
            show_progress=c.resolve("settings").show_progress,
        ),
    )
    container.register(
        "limits",
        lambda c: TrackingLimitPolicy(
            free_plan_max_items=c.resolve("settings").free_plan_max_items,
            free_plan_allows_lists=c.resolve("settings").free_plan_allows_lists,
        ),
    )
    container.register(
        "service",
        lambda c: MonitoringService(
            c.resolve("repository"),
            c.resolve("fetcher"),
            c.resolve("batch_processor"),
            c.resolve("reconciliation_engine"),
            c.resolve("list_engine"),
            c.resolve("upserter"),
            c.resolve("limits"),
        ),
    )

    return container
