"""
Core data types for the book price monitor.

Holds the domain records shared by the parsers, the reconciliation and list
engines, the repository and the API layer, plus the Protocol classes that
describe the external collaborators (persistence and notification).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)


# ============================================================================
# Basic aliases
# ============================================================================

URL = str
CatalogID = str
ItemID = int
UserID = int
Price = int
HTMLContent = str


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class DecisionKind(str, Enum):
    """Outcome of reconciling a fresh price against the last known one."""

    NO_CHANGE = "no_change"
    PRICE_DROP = "price_drop"
    PRICE_INCREASE = "price_increase"
    BACK_IN_STOCK = "back_in_stock"
    WENT_OUT_OF_STOCK = "went_out_of_stock"
    FIRST_SEEN = "first_seen"


class Plan(str, Enum):
    """Subscription tiers known to the policy hooks."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"


class OutcomeCode(str, Enum):
    """Result codes of the interactive tracking flows."""

    CREATED = "created"
    ALREADY_LINKED = "already_linked"
    UNLINKED = "unlinked"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UPSTREAM_FETCH_FAILED = "upstream_fetch_failed"
    INTERNAL_ERROR = "internal_error"


# ============================================================================
# Domain records
# ============================================================================


@dataclass(frozen=True)
class BookRecord:
    """Structured data extracted from one product page."""

    title: str
    catalog_id: CatalogID
    link: URL
    image_url: str
    price: Price
    discount_label: str
    author: str
    details: str
    description: str
    out_of_stock: bool

    def item_fields(self) -> Dict[str, Any]:
        """Fields used when creating a TrackedItem from this record."""
        return {
            "catalog_id": self.catalog_id,
            "source_url": self.link,
            "current_price": self.price,
            "title": self.title,
            "author": self.author,
            "image_url": self.image_url,
            "description": self.description,
            "details": self.details,
            "discount_label": self.discount_label,
        }


@dataclass
class TrackedItem:
    """A catalog product being monitored."""

    id: ItemID
    catalog_id: CatalogID
    source_url: URL
    current_price: Price = 0
    title: str = ""
    author: str = ""
    image_url: str = ""
    description: str = ""
    details: str = ""
    discount_label: str = ""


@dataclass(frozen=True)
class PriceObservation:
    """Immutable price point for one item; price 0 means unavailable."""

    item_id: ItemID
    price: Price
    observed_at: datetime


@dataclass(frozen=True)
class TrackingRelation:
    """Link between a user and an item, tagged with how it was created."""

    user_id: UserID
    item_id: ItemID
    origin_from_list: bool = False


@dataclass(frozen=True)
class TrackedList:
    """A user-owned catalog URL whose members are synchronised."""

    id: int
    user_id: UserID
    url: URL


@dataclass(frozen=True)
class User:
    id: UserID
    email: str
    discount_threshold: int = 0
    plan: str = Plan.FREE.value


@dataclass
class MonitoringDecision:
    """Transient result of reconciling one observation for one item."""

    kind: DecisionKind
    old_price: Optional[Price]
    new_price: Price
    discount_amount: int = 0
    discount_percentage: int = 0
    historical_minimum: Optional[Price] = None
    historical_minimum_at: Optional[datetime] = None
    previous_prices: List[PriceObservation] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.kind is not DecisionKind.NO_CHANGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "old_price": self.old_price,
            "new_price": self.new_price,
            "discount_amount": self.discount_amount,
            "discount_percentage": self.discount_percentage,
            "historical_minimum": self.historical_minimum,
            "historical_minimum_at": (
                self.historical_minimum_at.isoformat()
                if self.historical_minimum_at
                else None
            ),
            "previous_prices": [
                {"price": obs.price, "observed_at": obs.observed_at.isoformat()}
                for obs in self.previous_prices
            ],
        }


# ============================================================================
# Outcomes and summaries
# ============================================================================


@dataclass
class UnitOutcome:
    """Result of processing one item or list inside a batch."""

    unit_id: str
    succeeded: bool
    decision: Optional[MonitoringDecision] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(
        cls,
        unit_id: str,
        decision: Optional[MonitoringDecision] = None,
        **detail: Any,
    ) -> "UnitOutcome":
        return cls(unit_id=unit_id, succeeded=True, decision=decision, detail=detail)

    @classmethod
    def failure(
        cls, unit_id: str, error: str, error_kind: str, **detail: Any
    ) -> "UnitOutcome":
        return cls(
            unit_id=unit_id,
            succeeded=False,
            error=error,
            error_kind=error_kind,
            detail=detail,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "succeeded": self.succeeded,
            "decision": self.decision.to_dict() if self.decision else None,
            "error": self.error,
            "error_kind": self.error_kind,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class UnitFailure:
    unit_id: str
    error: str
    error_kind: str


@dataclass
class BatchSummary:
    """Aggregate, order-independent view of a batch run."""

    operation: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: List[UnitFailure] = field(default_factory=list)
    decisions: Dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def record(self, outcome: UnitOutcome) -> None:
        self.total += 1
        if outcome.succeeded:
            self.succeeded += 1
            if outcome.decision is not None:
                kind = outcome.decision.kind.value
                self.decisions[kind] = self.decisions.get(kind, 0) + 1
        else:
            self.failed += 1
            self.failures.append(
                UnitFailure(
                    unit_id=outcome.unit_id,
                    error=outcome.error or "",
                    error_kind=outcome.error_kind or "internal",
                )
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": [asdict(f) for f in self.failures],
            "decisions": dict(self.decisions),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class TrackingResult:
    """Result of an interactive add/unlink flow."""

    code: OutcomeCode
    message: str
    item: Optional[TrackedItem] = None
    tracked_list: Optional[TrackedList] = None
    outcome: Optional[UnitOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "item": asdict(self.item) if self.item else None,
            "list": asdict(self.tracked_list) if self.tracked_list else None,
            "outcome": self.outcome.to_dict() if self.outcome else None,
        }


# ============================================================================
# Collaborator protocols
# ============================================================================


@runtime_checkable
class PageFetcher(Protocol):
    """Anything that can return the HTML text of a URL."""

    async def fetch_text(self, url: URL) -> HTMLContent: ...


class TrackingRepository(Protocol):
    """Narrow persistence contract consumed by the pipeline."""

    async def find_item_by_catalog_id(self, catalog_id: CatalogID) -> Optional[TrackedItem]: ...

    async def create_item(self, fields: Dict[str, Any]) -> TrackedItem: ...

    async def update_item_price(self, item_id: ItemID, price: Price) -> None: ...

    async def append_price_observation(
        self, item_id: ItemID, price: Price, timestamp: datetime
    ) -> None: ...

    async def list_observations(
        self, item_id: ItemID, newest_first: bool = True, limit: Optional[int] = None
    ) -> List[PriceObservation]: ...

    async def find_relation(self, user_id: UserID, item_id: ItemID) -> Optional[TrackingRelation]: ...

    async def create_relation(
        self, user_id: UserID, item_id: ItemID, origin_from_list: bool
    ) -> None: ...

    async def delete_relation(self, user_id: UserID, item_id: ItemID) -> None: ...

    async def list_tracked_lists(self) -> List[Tuple[TrackedList, User]]: ...

    async def list_users_tracking_item(self, item_id: ItemID) -> List[User]: ...

    async def list_items(self) -> List[TrackedItem]: ...

    async def list_relations_for_user(
        self, user_id: UserID
    ) -> List[Tuple[TrackingRelation, TrackedItem]]: ...

    async def get_user(self, user_id: UserID) -> Optional[User]: ...

    async def count_relations_for_user(self, user_id: UserID) -> int: ...

    async def create_tracked_list(self, user_id: UserID, url: URL) -> TrackedList: ...

    async def get_tracked_list(self, list_id: int) -> Optional[Tuple[TrackedList, User]]: ...

    # Which items each tracked list contained at its last sync.

    async def list_members(self, list_id: int) -> List[ItemID]: ...

    async def add_list_member(self, list_id: int, item_id: ItemID) -> None: ...

    async def remove_list_member(self, list_id: int, item_id: ItemID) -> None: ...

    async def count_list_claims(self, user_id: UserID, item_id: ItemID) -> int: ...


class Notifier(Protocol):
    """Outbound notification transport (email in production)."""

    async def notify_price_drop(
        self, item: TrackedItem, user: User, decision: MonitoringDecision
    ) -> None: ...

    async def notify_back_in_stock(
        self, item: TrackedItem, user: User, decision: MonitoringDecision
    ) -> None: ...


ObservationHistory = Sequence[PriceObservation]
