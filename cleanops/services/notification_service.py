"""
Customer Notification Service

Hands structured notification requests to the external messaging gateway.
The core supplies a template identifier plus parameters; chat channels
format the final body on their side. A plain-text rendering is kept for
SMS fallback and logging.

With MESSAGING_WEBHOOK_URL unset the request is only logged.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from uuid import uuid4

import httpx
from pydantic import BaseModel, Field

from cleanops.config import settings
from cleanops.models.order import Order, OrderStatus


logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Notification delivery channels."""
    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class NotificationTemplate(str, Enum):
    """Template identifiers known to the messaging gateway."""
    # Status changes
    ORDER_READY = "order_ready"
    ORDER_OUT_FOR_DELIVERY = "order_out_for_delivery"
    ORDER_DELIVERED = "order_delivered"

    # Uncollected order escalation
    UNCOLLECTED_7_DAY = "uncollected_reminder_7day"
    UNCOLLECTED_14_DAY = "uncollected_reminder_14day"
    UNCOLLECTED_30_DAY = "uncollected_reminder_30day"
    UNCOLLECTED_MONTHLY = "uncollected_reminder_monthly"
    UNCOLLECTED_DISPOSAL = "uncollected_reminder_disposal"


# Plain-text renderings (SMS fallback)
SMS_TEMPLATES = {
    NotificationTemplate.ORDER_READY: (
        "Dear {customer_name}, your order {order_id} is ready. "
        "Collection method: {collection_method}."
    ),
    NotificationTemplate.ORDER_OUT_FOR_DELIVERY: (
        "Dear {customer_name}, your order {order_id} is out for delivery."
    ),
    NotificationTemplate.ORDER_DELIVERED: (
        "Dear {customer_name}, your order {order_id} has been delivered. Thank you!"
    ),
}

STATUS_TEMPLATES = {
    OrderStatus.READY.value: NotificationTemplate.ORDER_READY,
    OrderStatus.QUEUED_FOR_DELIVERY.value: NotificationTemplate.ORDER_READY,
    OrderStatus.OUT_FOR_DELIVERY.value: NotificationTemplate.ORDER_OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED.value: NotificationTemplate.ORDER_DELIVERED,
}


class NotificationRequest(BaseModel):
    """Outbound request to the messaging collaborator."""
    order_id: str
    recipient_phone: Optional[str] = None
    recipient_email: Optional[str] = None
    template: NotificationTemplate
    params: Dict[str, Any] = Field(default_factory=dict)
    channel: NotificationChannel = NotificationChannel.WHATSAPP
    message: Optional[str] = None  # Plain-text fallback
    metadata: Dict[str, Any] = Field(default_factory=dict)


def build_status_notification(order: Order, status: str) -> Optional[NotificationRequest]:
    """Request for a status that requires customer notification, or None."""
    template = STATUS_TEMPLATES.get(status)
    if template is None:
        return None

    params = {
        "customer_name": order.customer_name or "Valued Customer",
        "order_id": order.order_number,
    }
    if template == NotificationTemplate.ORDER_READY:
        params["collection_method"] = order.return_method

    return NotificationRequest(
        order_id=order.order_number,
        recipient_phone=order.customer_phone,
        recipient_email=order.customer_email,
        template=template,
        params=params,
        message=SMS_TEMPLATES[template].format(**params),
        metadata={"status": status},
    )


class NotificationService:
    """Sends NotificationRequests to the messaging gateway."""

    def __init__(self, webhook_url: Optional[str] = None, api_key: Optional[str] = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.MESSAGING_WEBHOOK_URL
        self.api_key = api_key if api_key is not None else settings.MESSAGING_API_KEY

    async def send_notification(self, request: NotificationRequest) -> Dict[str, Any]:
        """
        Send a notification.

        Returns:
            Dict with success flag, notification id, channel and message.
            Gateway errors are reported with success False, not raised.
        """
        notification_id = str(uuid4())
        message = request.message or ""

        if not request.recipient_phone and not request.recipient_email:
            logger.warning(f"[NOTIFICATION] No contact for order {request.order_id}, skipping")
            return {
                "success": False,
                "notification_id": notification_id,
                "channel": request.channel.value,
                "message": message,
                "error": "No customer contact on file",
            }

        if not self.webhook_url:
            logger.info(
                f"[NOTIFICATION] {request.channel.value.upper()} {request.template.value} "
                f"to {request.recipient_phone}: {message[:100]}"
            )
            return {
                "success": True,
                "notification_id": notification_id,
                "channel": request.channel.value,
                "message": message,
            }

        payload = {
            "notification_id": notification_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **request.model_dump(mode="json"),
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.webhook_url,
                    json=payload,
                    headers=headers,
                    timeout=settings.MESSAGING_TIMEOUT_SECONDS,
                )
        except httpx.TimeoutException:
            logger.error(f"Messaging gateway timed out for order {request.order_id}")
            return {
                "success": False,
                "notification_id": notification_id,
                "channel": request.channel.value,
                "message": message,
                "error": "Messaging gateway timed out",
            }
        except httpx.HTTPError as e:
            logger.error(f"Messaging gateway error for order {request.order_id}: {e}")
            return {
                "success": False,
                "notification_id": notification_id,
                "channel": request.channel.value,
                "message": message,
                "error": str(e),
            }

        if response.status_code >= 400:
            logger.error(f"Messaging gateway returned HTTP {response.status_code} for order {request.order_id}")
            return {
                "success": False,
                "notification_id": notification_id,
                "channel": request.channel.value,
                "message": message,
                "error": f"HTTP {response.status_code}",
            }

        logger.info(f"[NOTIFICATION] {request.template.value} sent for order {request.order_id}")
        return {
            "success": True,
            "notification_id": notification_id,
            "channel": request.channel.value,
            "message": message,
        }
