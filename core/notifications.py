"""
Best-effort notification dispatch.

The dispatcher decides which tracking users should hear about a decision and
calls the Notifier once per user. Every call is awaited inside its own guard:
a transport failure is logged, never retried, and never undoes the price
update that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from core.policies import AllowAllPolicy, NotificationPolicy
from core.types import DecisionKind, MonitoringDecision, TrackedItem, User
from utils.error_handling import NotificationFailure

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    sent: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


def should_notify(user: User, decision: MonitoringDecision) -> bool:
    """Back-in-stock always qualifies; a drop must beat the user's threshold."""
    if decision.kind is DecisionKind.BACK_IN_STOCK:
        return True
    if decision.kind is DecisionKind.PRICE_DROP:
        return decision.discount_percentage > user.discount_threshold
    return False


class LoggingNotifier:
    """Notifier used when no mail transport is configured."""

    async def notify_price_drop(
        self, item: TrackedItem, user: User, decision: MonitoringDecision
    ) -> None:
        logger.info(
            "Price drop for %s (%s): %s -> %s (-%d%%), would notify %s",
            item.catalog_id,
            item.title,
            decision.old_price,
            decision.new_price,
            decision.discount_percentage,
            user.email,
            extra={"event_type": "notify"},
        )

    async def notify_back_in_stock(
        self, item: TrackedItem, user: User, decision: MonitoringDecision
    ) -> None:
        logger.info(
            "Back in stock %s (%s) at %s, would notify %s",
            item.catalog_id,
            item.title,
            decision.new_price,
            user.email,
            extra={"event_type": "notify"},
        )


class NotificationDispatcher:
    def __init__(
        self,
        notifier,
        policy: Optional[NotificationPolicy] = None,
        timeout: Optional[float] = 30.0,
    ):
        self.notifier = notifier
        self.policy = policy or AllowAllPolicy()
        self.timeout = timeout

    async def dispatch(
        self,
        decision: MonitoringDecision,
        item: TrackedItem,
        users: Iterable[User],
    ) -> DispatchReport:
        report = DispatchReport()
        if decision.kind not in (DecisionKind.PRICE_DROP, DecisionKind.BACK_IN_STOCK):
            return report

        for user in users:
            if not should_notify(user, decision):
                logger.debug(
                    "Discount %d%% does not exceed threshold %d%% of user %s",
                    decision.discount_percentage,
                    user.discount_threshold,
                    user.id,
                )
                report.skipped.append(user.id)
                continue
            if not self.policy.allows(user, decision):
                logger.debug("Policy declined %s alert for user %s", decision.kind.value, user.id)
                report.skipped.append(user.id)
                continue

            if await self._send(decision, item, user):
                report.sent.append(user.id)
            else:
                report.failed.append(user.id)
        return report

    async def _send(self, decision: MonitoringDecision, item: TrackedItem, user: User) -> bool:
        if decision.kind is DecisionKind.BACK_IN_STOCK:
            call = self.notifier.notify_back_in_stock(item, user, decision)
        else:
            call = self.notifier.notify_price_drop(item, user, decision)

        try:
            if self.timeout:
                await asyncio.wait_for(call, timeout=self.timeout)
            else:
                await call
        except NotificationFailure as exc:
            logger.error(
                "Notification %s for %s to user %s failed: %s",
                decision.kind.value,
                item.catalog_id,
                user.id,
                exc,
                extra={"event_type": "notify"},
            )
            return False
        except Exception:  # noqa: BLE001 - notifications are best effort
            logger.exception(
                "Unexpected error sending %s for %s to user %s",
                decision.kind.value,
                item.catalog_id,
                user.id,
                extra={"event_type": "notify"},
            )
            return False

        logger.info(
            "Sent %s notification for %s to user %s",
            decision.kind.value,
            item.catalog_id,
            user.id,
            extra={"event_type": "notify"},
        )
        return True
