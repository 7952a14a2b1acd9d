"""
Notification dispatch for appointment lifecycle events.

Notifications are sent only after the state change has been committed. A
failing channel is logged and never rolls anything back.
"""

import logging
from typing import Any, Optional

import httpx

from ..config import NOTIFY_TIMEOUT_SECONDS, NOTIFY_WEBHOOK_URL

logger = logging.getLogger(__name__)


class Notifier:
    """Sink for domain events; subclasses deliver them somewhere"""

    def notify(self, tenant_id: int, appointment_id: int, event_type: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def notify(self, tenant_id: int, appointment_id: int, event_type: str, payload: dict[str, Any]) -> None:
        logger.info(f"🔔 {event_type} for appointment {appointment_id} (tenant {tenant_id}): {payload}")


class WebhookNotifier(Notifier):
    """POSTs each event as JSON to a configured URL"""

    def __init__(
        self,
        url: str,
        timeout: float = NOTIFY_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def notify(self, tenant_id: int, appointment_id: int, event_type: str, payload: dict[str, Any]) -> None:
        body = {
            "tenantId": tenant_id,
            "appointmentId": appointment_id,
            "type": event_type,
            "payload": payload,
        }
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(self.url, json=body)
            response.raise_for_status()
        logger.info(f"✅ {event_type} webhook delivered for appointment {appointment_id}")


def get_default_notifier() -> Notifier:
    """Webhook delivery when NOTIFY_WEBHOOK_URL is set, log-only otherwise"""
    if NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(NOTIFY_WEBHOOK_URL)
    return LoggingNotifier()


def dispatch_notification(
    notifier: Optional[Notifier],
    tenant_id: int,
    appointment_id: int,
    event_type: str,
    payload: Optional[dict[str, Any]] = None,
) -> bool:
    """
    Deliver one event, swallowing delivery failures.

    Returns:
        True if the notifier accepted the event
    """
    if notifier is None:
        return False
    try:
        notifier.notify(tenant_id, appointment_id, event_type, payload or {})
        return True
    except Exception as e:
        logger.error(f"❌ Failed to send {event_type} notification for appointment {appointment_id}: {e}")
        return False
