"""Tests for alert eligibility, dispatch and email formatting."""

import asyncio
import smtplib
from datetime import datetime, timezone

import pytest

from core.notifications import NotificationDispatcher, should_notify
from core.policies import PremiumOnlyPolicy
from core.types import DecisionKind, MonitoringDecision, PriceObservation, TrackedItem, User
from fakes import RecordingNotifier
from services.notifiers.email import SmtpEmailNotifier, build_price_drop_message
from utils.error_handling import NotificationFailure


ITEM = TrackedItem(id=1, catalog_id="9788498381498", source_url="https://books.example.com/1", title="El principito")


def _drop(percentage: int) -> MonitoringDecision:
    return MonitoringDecision(
        kind=DecisionKind.PRICE_DROP,
        old_price=1000,
        new_price=1000 - percentage * 10,
        discount_amount=percentage * 10,
        discount_percentage=percentage,
    )


def _user(user_id: int, threshold: int = 0, plan: str = "FREE") -> User:
    return User(id=user_id, email=f"user{user_id}@example.com", discount_threshold=threshold, plan=plan)


def test_should_notify_threshold_is_strict() -> None:
    assert should_notify(_user(1, threshold=20), _drop(21))
    assert not should_notify(_user(1, threshold=20), _drop(20))


def test_should_notify_back_in_stock_ignores_threshold() -> None:
    decision = MonitoringDecision(kind=DecisionKind.BACK_IN_STOCK, old_price=0, new_price=500)

    assert should_notify(_user(1, threshold=100), decision)


def test_should_notify_ignores_other_decisions() -> None:
    decision = MonitoringDecision(kind=DecisionKind.PRICE_INCREASE, old_price=500, new_price=600)

    assert not should_notify(_user(1), decision)


@pytest.mark.asyncio
async def test_dispatch_reports_sent_skipped_and_failed() -> None:
    notifier = RecordingNotifier()
    notifier.fail_for.add(3)
    dispatcher = NotificationDispatcher(notifier)

    report = await dispatcher.dispatch(
        _drop(30), ITEM, [_user(1), _user(2, threshold=50), _user(3)]
    )

    assert report.sent == [1]
    assert report.skipped == [2]
    assert report.failed == [3]


@pytest.mark.asyncio
async def test_premium_only_policy_skips_free_users() -> None:
    notifier = RecordingNotifier()
    dispatcher = NotificationDispatcher(notifier, policy=PremiumOnlyPolicy())

    report = await dispatcher.dispatch(_drop(30), ITEM, [_user(1), _user(2, plan="PREMIUM")])

    assert report.sent == [2]
    assert report.skipped == [1]


@pytest.mark.asyncio
async def test_slow_notifier_times_out_without_raising() -> None:
    class _SlowNotifier:
        async def notify_price_drop(self, item, user, decision) -> None:
            await asyncio.sleep(1)

    dispatcher = NotificationDispatcher(_SlowNotifier(), timeout=0.01)

    report = await dispatcher.dispatch(_drop(30), ITEM, [_user(1)])

    assert report.failed == [1]


def test_price_drop_message_lists_recent_prices() -> None:
    observed = datetime(2024, 3, 1, tzinfo=timezone.utc)
    decision = _drop(19)
    decision.historical_minimum = 810
    decision.previous_prices = [PriceObservation(1, 1000, observed)]

    subject, body = build_price_drop_message(ITEM, decision)

    assert "19%" in subject
    assert "El principito" in subject
    assert "2024-03-01" in body
    assert ITEM.source_url in body


@pytest.mark.asyncio
async def test_smtp_errors_become_notification_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class _BrokenSMTP:
        def __init__(self, *_args, **_kwargs) -> None:
            raise smtplib.SMTPConnectError(421, "service not available")

    monkeypatch.setattr(smtplib, "SMTP", _BrokenSMTP)
    notifier = SmtpEmailNotifier("smtp.example.com", 587, "alerts", "secret")

    with pytest.raises(NotificationFailure):
        await notifier.notify_price_drop(ITEM, _user(1), _drop(30))
