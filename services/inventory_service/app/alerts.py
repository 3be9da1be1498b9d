"""Stock alert evaluation and fire-and-forget alert emails."""

from __future__ import annotations

import asyncio
import html
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Sequence

from .metrics import (
    INVENTORY_ALERT_DISPATCH_FAILURES_TOTAL,
    INVENTORY_ALERT_NOTIFICATIONS_TOTAL,
    INVENTORY_ALERTS_TOTAL,
    normalise_alert_type,
)
from .models import InventoryItem, OwnerContact
from .providers import EmailProvider

_LOGGER = logging.getLogger(__name__)

DEFAULT_EXPIRING_WINDOW_DAYS = 7


@dataclass(frozen=True, slots=True)
class StockAlert:
    type: str
    message: str


def _today() -> date:
    return datetime.now(timezone.utc).date()


def days_until(expiration: date | datetime, today: date) -> int:
    """Whole days left before expiration, rounded up like a calendar countdown."""

    if isinstance(expiration, datetime):
        now = datetime.combine(today, datetime.min.time(), tzinfo=timezone.utc)
        target = expiration if expiration.tzinfo else expiration.replace(tzinfo=timezone.utc)
        return math.ceil((target - now).total_seconds() / 86400)
    return (expiration - today).days


def evaluate_alerts(
    item: InventoryItem,
    *,
    today: date | None = None,
    window_days: int = DEFAULT_EXPIRING_WINDOW_DAYS,
) -> list[StockAlert]:
    """Return the alerts the item currently qualifies for.

    Each rule is gated by the item's own alert flag. Already-expired items do not
    raise ``expiring_soon``; only a countdown inside ``(0, window_days]`` does.
    """

    current = item.quantity_current
    label = f"{item.name} ({item.sku})"
    alerts: list[StockAlert] = []

    if item.alert_low_stock and 0 < current <= item.reorder_point:
        alerts.append(
            StockAlert(
                type="low_stock",
                message=f"{label} is running low. Current: {current}, Reorder Point: {item.reorder_point}",
            )
        )

    if item.alert_out_of_stock and current == 0:
        alerts.append(StockAlert(type="out_of_stock", message=f"{label} is out of stock"))

    if item.alert_overstock and current >= item.stock_maximum:
        alerts.append(
            StockAlert(
                type="overstock",
                message=f"{label} is overstocked. Current: {current}, Maximum: {item.stock_maximum}",
            )
        )

    if item.alert_expiring_soon and item.is_perishable and item.expiration_date is not None:
        remaining = days_until(item.expiration_date, today or _today())
        if 0 < remaining <= window_days:
            alerts.append(StockAlert(type="expiring_soon", message=f"{label} expires in {remaining} days"))

    return alerts


def render_alert_email(alerts: Sequence[StockAlert], *, frontend_url: str | None) -> tuple[str, str]:
    subject = f"VBMS Inventory Alert - {len(alerts)} item(s) need attention"
    entries = "".join(f"<li>{html.escape(alert.message)}</li>" for alert in alerts)
    body = (
        "<h2>Inventory Alerts</h2>"
        "<p>The following items in your inventory need attention:</p>"
        f"<ul>{entries}</ul>"
    )
    if frontend_url:
        link = html.escape(f"{frontend_url.rstrip('/')}/customer-inventory.html", quote=True)
        body += f'<p><a href="{link}">View Inventory</a></p>'
    return subject, body


class AlertNotifier:
    """Sends alert emails in the background so inventory writes never wait on mail delivery."""

    def __init__(self, provider: EmailProvider | None, *, frontend_url: str | None = None) -> None:
        self._provider = provider
        self._frontend_url = frontend_url
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def notify(self, contact: OwnerContact | None, alerts: Sequence[StockAlert]) -> bool:
        """Schedule an alert email; return True when a send was queued."""

        for alert in alerts:
            INVENTORY_ALERTS_TOTAL.labels(type=normalise_alert_type(alert.type)).inc()
        if not alerts or self._provider is None:
            return False
        if contact is None or not contact.notifications_enabled or not contact.email:
            return False

        subject, body = render_alert_email(alerts, frontend_url=self._frontend_url)
        task = asyncio.create_task(self._send(self._provider, contact.email, subject, body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _send(self, provider: EmailProvider, recipient: str, subject: str, body: str) -> None:
        try:
            await provider.send(recipient=recipient, subject=subject, html_body=body)
        except Exception:
            INVENTORY_ALERT_DISPATCH_FAILURES_TOTAL.inc()
            _LOGGER.exception("Failed to send inventory alert email to %s", recipient)
            return
        INVENTORY_ALERT_NOTIFICATIONS_TOTAL.inc()
        _LOGGER.info("Sent inventory alert email to %s", recipient)

    async def drain(self) -> None:
        """Wait for queued alert emails to finish."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
