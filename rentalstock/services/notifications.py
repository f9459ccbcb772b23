"""Notification port for stock and workflow alerts.

Mutation paths never talk to a transport directly: they build a
``Notification`` and hand it to ``dispatch`` once their transaction has
committed. ``dispatch`` never raises; a failing transport is logged and the
caller carries on.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

import httpx

from ..core.config import settings
from ..core.timeutil import utcnow_iso

logger = logging.getLogger(__name__)

KIND_LOW_STOCK = "low_stock"
KIND_OUT_OF_STOCK = "out_of_stock"
KIND_AUTO_REORDER = "auto_reorder"
KIND_ORDER_CREATED = "order_created"
KIND_ORDER_UPDATED = "order_updated"
KIND_ORDER_CANCELLED = "order_cancelled"
KIND_INVENTORY_UPDATED = "inventory_updated"
KIND_DAMAGE_REPORTED = "damage_reported"

_TITLES = {
    KIND_LOW_STOCK: "Low Stock Alert",
    KIND_OUT_OF_STOCK: "Out of Stock Alert",
    KIND_AUTO_REORDER: "Automatic Reorder Placed",
    KIND_ORDER_CREATED: "New Stock Order Created",
    KIND_ORDER_UPDATED: "Stock Order Updated",
    KIND_ORDER_CANCELLED: "Stock Order Cancelled",
    KIND_INVENTORY_UPDATED: "Inventory Updated",
    KIND_DAMAGE_REPORTED: "Damage Reported",
}


@dataclass(frozen=True)
class Notification:
    kind: str
    equipment_id: int | None = None
    name: str | None = None
    quantity: int | None = None
    threshold: int | None = None
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utcnow_iso)

    @property
    def title(self) -> str:
        return _TITLES.get(self.kind, "Stock Notification")

    def as_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["title"] = self.title
        return payload


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LogNotifier:
    """Write notifications to the application log only."""

    def notify(self, notification: Notification) -> None:
        logger.info("notification.sent", extra={"extra_data": {"channel": "log", **notification.as_payload()}})


class WebhookNotifier:
    """POST each notification as JSON to every configured URL.

    The first URL is conventionally the admin hook; the rest are subscribed
    parties. A failing URL does not stop delivery to the others.
    """

    def __init__(self, urls: list[str], *, timeout: float = 5.0, client: httpx.Client | None = None) -> None:
        self.urls = list(urls)
        self.timeout = timeout
        self._client = client

    def _post(self, client: httpx.Client, url: str, payload: dict[str, Any]) -> None:
        try:
            response = client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "notification.webhook_failed",
                extra={"extra_data": {"url": url, "kind": payload.get("kind"), "error": str(exc)}},
            )

    def notify(self, notification: Notification) -> None:
        payload = notification.as_payload()
        if self._client is not None:
            for url in self.urls:
                self._post(self._client, url, payload)
            return
        with httpx.Client(timeout=self.timeout) as client:
            for url in self.urls:
                self._post(client, url, payload)


def build_notifier() -> Notifier:
    urls = settings.alert_webhook_urls
    if urls:
        return WebhookNotifier(urls, timeout=settings.ALERT_WEBHOOK_TIMEOUT_SECONDS)
    return LogNotifier()


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier


def set_notifier(notifier: Notifier | None) -> None:
    """Swap the process-wide notifier; ``None`` restores the configured one."""

    global _notifier
    _notifier = notifier


def dispatch(notification: Notification, notifier: Notifier | None = None) -> bool:
    target = notifier or get_notifier()
    try:
        target.notify(notification)
    except Exception:
        logger.exception(
            "notification.failed",
            extra={"extra_data": {"kind": notification.kind, "equipment_id": notification.equipment_id}},
        )
        return False
    return True
