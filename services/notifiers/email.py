"""Plain-text email notifications over SMTP."""

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from typing import Optional

from core.types import MonitoringDecision, TrackedItem, User
from utils.error_handling import NotificationFailure

logger = logging.getLogger(__name__)


def _format_price(value: Optional[int]) -> str:
    if value is None:
        return "n/a"
    return f"${value:,}".replace(",", ".")


def build_price_drop_message(
    item: TrackedItem, decision: MonitoringDecision
) -> tuple[str, str]:
    subject = (
        f"Discount detected! {item.title} now {decision.discount_percentage}% off"
    )
    lines = [
        f"{item.title}",
        f"Author: {item.author or 'Not available'}",
        "",
        f"Current price: {_format_price(decision.new_price)}",
        f"Previous price: {_format_price(decision.old_price)}",
        f"You save: {_format_price(decision.discount_amount)} ({decision.discount_percentage}%)",
        f"Lowest price seen: {_format_price(decision.historical_minimum)}",
    ]
    if decision.previous_prices:
        lines.append("")
        lines.append("Recent prices:")
        for obs in decision.previous_prices:
            lines.append(f"  {obs.observed_at:%Y-%m-%d}  {_format_price(obs.price)}")
    lines.extend(["", item.source_url])
    return subject, "\n".join(lines)


def build_back_in_stock_message(
    item: TrackedItem, decision: MonitoringDecision
) -> tuple[str, str]:
    subject = f"Back in stock: {item.title}"
    lines = [
        f"{item.title} is available again.",
        f"Author: {item.author or 'Not available'}",
        "",
        f"Price: {_format_price(decision.new_price)}",
        f"Lowest price seen: {_format_price(decision.historical_minimum)}",
        "",
        item.source_url,
    ]
    return subject, "\n".join(lines)


class SmtpEmailNotifier:
    """
    Sends alerts through an SMTP relay with STARTTLS.

    smtplib is blocking, so each message is sent from a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        sender: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.timeout = timeout

    async def notify_price_drop(
        self, item: TrackedItem, user: User, decision: MonitoringDecision
    ) -> None:
        subject, body = build_price_drop_message(item, decision)
        await asyncio.to_thread(self._send, user.email, subject, body)

    async def notify_back_in_stock(
        self, item: TrackedItem, user: User, decision: MonitoringDecision
    ) -> None:
        subject, body = build_back_in_stock_message(item, decision)
        await asyncio.to_thread(self._send, user.email, subject, body)

    def _send(self, to_addr: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = self.sender
        msg["To"] = to_addr
        msg["Subject"] = subject

        try:
            logger.debug("Email: sending %r to %s", subject, to_addr)
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.sendmail(self.sender, [to_addr], msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            raise NotificationFailure(f"Email authentication failed: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure(f"Email SMTP error: {e}", {"to": to_addr}) from e
        logger.info("Email: alert sent to %s", to_addr)
