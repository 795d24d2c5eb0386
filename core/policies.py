"""
Eligibility hooks consulted by the pipeline.

Plan/tier rules live outside the reconciliation logic: the dispatcher asks a
NotificationPolicy whether a user may receive an alert, and the interactive
tracking flows ask a TrackingLimitPolicy whether a user may add more.
"""

from __future__ import annotations

from typing import Protocol

from core.types import MonitoringDecision, Plan, User
from utils.error_handling import PolicyViolation


class NotificationPolicy(Protocol):
    def allows(self, user: User, decision: MonitoringDecision) -> bool: ...


class AllowAllPolicy:
    """Every tracking user is eligible for every alert."""

    def allows(self, user: User, decision: MonitoringDecision) -> bool:
        return True


class PremiumOnlyPolicy:
    """Only premium subscribers receive alerts."""

    def allows(self, user: User, decision: MonitoringDecision) -> bool:
        return user.plan == Plan.PREMIUM.value


NOTIFICATION_POLICIES = {
    "all": AllowAllPolicy,
    "premium_only": PremiumOnlyPolicy,
}


def build_notification_policy(name: str) -> NotificationPolicy:
    try:
        return NOTIFICATION_POLICIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown notification policy {name!r}; expected one of {sorted(NOTIFICATION_POLICIES)}"
        ) from None


class TrackingLimitPolicy:
    """Caps what free-plan users may track."""

    def __init__(self, free_plan_max_items: int = 5, free_plan_allows_lists: bool = False):
        self.free_plan_max_items = free_plan_max_items
        self.free_plan_allows_lists = free_plan_allows_lists

    def check_add_item(self, user: User, current_count: int) -> None:
        if user.plan != Plan.FREE.value:
            return
        if current_count >= self.free_plan_max_items:
            raise PolicyViolation(
                f"The free plan allows monitoring at most {self.free_plan_max_items} books",
                {"user_id": user.id, "current_count": current_count},
            )

    def check_add_list(self, user: User) -> None:
        if user.plan == Plan.FREE.value and not self.free_plan_allows_lists:
            raise PolicyViolation(
                "The free plan does not allow importing lists", {"user_id": user.id}
            )
