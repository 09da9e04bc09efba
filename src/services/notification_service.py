"""
Notification collaborator: typed order events sent to restaurant, customer and admin channels
"""
import aiohttp
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from config.settings import settings
from src.business.errors import NotificationFailure
from src.models.base import Urgency
from src.models.order import Order, Restaurant
from src.utils.logger import logger


class NotificationEvent(str, Enum):
    ORDER_PLACED = "order_placed"
    NEW_ORDER_ASSIGNMENT = "new_order_assignment"
    ORDER_STATUS_CHANGE = "order_status_change"
    SLA_VIOLATION = "sla_violation"
    ORDER_ISSUE = "order_issue"


class Audience(str, Enum):
    RESTAURANT = "restaurant"
    CUSTOMER = "customer"
    ADMIN = "admin"


class OrderNotification(BaseModel):
    """Payload of one notification"""

    event: NotificationEvent
    audience: Audience
    recipients: List[str] = Field(default_factory=list)
    order_id: str
    order_number: str = ""
    status: str
    customer_name: str = ""
    restaurant_name: str = ""
    total_amount: Decimal = Decimal("0")
    estimated_delivery_at: Optional[datetime] = None
    urgency: Urgency = Urgency.MEDIUM
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class NotificationChannel(ABC):
    """Transport for notifications (email/SMS/push gateway)"""

    @abstractmethod
    async def send(self, notification: OrderNotification) -> None:
        """Deliver or raise NotificationFailure"""


class LoggingNotificationChannel(NotificationChannel):
    """Writes notifications to the log; default when no gateway is configured"""

    def __init__(self):
        self.sent: List[OrderNotification] = []

    async def send(self, notification: OrderNotification) -> None:
        self.sent.append(notification)
        logger.info(f"📨 {notification.event.value} → {notification.audience.value}",
                    order_id=notification.order_id,
                    recipients=notification.recipients,
                    urgency=notification.urgency.value)


class WebhookNotificationChannel(NotificationChannel):
    """POSTs each notification as JSON to the messaging gateway"""

    def __init__(self, url: str, timeout: int = settings.NOTIFICATION_TIMEOUT):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def send(self, notification: OrderNotification) -> None:
        payload = notification.model_dump(mode="json")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, json=payload) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise NotificationFailure(
                            f"Gateway returned {response.status} for {notification.event.value}: {body[:200]}"
                        )
        except aiohttp.ClientError as e:
            raise NotificationFailure(f"Gateway unreachable: {e}") from e


class NotificationService:
    """Fire-and-forget dispatch of order events.

    Every method returns ``True`` when the channel accepted the message and
    ``False`` otherwise; failures are logged and never raised.
    """

    def __init__(self, channel: Optional[NotificationChannel] = None):
        self.channel = channel or self._default_channel()
        self._stats = {"sent": 0, "failed": 0}

    @staticmethod
    def _default_channel() -> NotificationChannel:
        if settings.use_webhook_notifications():
            return WebhookNotificationChannel(settings.NOTIFICATION_WEBHOOK_URL)
        return LoggingNotificationChannel()

    async def notify_order_placed(self, order: Order) -> bool:
        return await self._dispatch(self._build(
            order, NotificationEvent.ORDER_PLACED, Audience.CUSTOMER,
            recipients=[order.customer_email, order.customer_phone],
        ))

    async def notify_new_order(self, restaurant: Restaurant, order: Order,
                               urgency: Urgency = Urgency.MEDIUM) -> bool:
        return await self._dispatch(self._build(
            order, NotificationEvent.NEW_ORDER_ASSIGNMENT, Audience.RESTAURANT,
            recipients=[restaurant.email, restaurant.phone],
            restaurant_name=restaurant.name,
            urgency=urgency,
            details={"restaurant_id": restaurant.id},
        ))

    async def notify_order_status_change(self, order: Order, message: str,
                                         urgency: Urgency = Urgency.HIGH) -> bool:
        return await self._dispatch(self._build(
            order, NotificationEvent.ORDER_STATUS_CHANGE, Audience.CUSTOMER,
            recipients=[order.customer_email, order.customer_phone],
            message=message,
            urgency=urgency,
        ))

    async def notify_sla_violation(self, admin_emails: List[str], order: Order,
                                   violation_type: str, expected_time: datetime,
                                   actual_time: datetime, delay_minutes: float) -> bool:
        return await self._dispatch(self._build(
            order, NotificationEvent.SLA_VIOLATION, Audience.ADMIN,
            recipients=admin_emails,
            urgency=Urgency.HIGH,
            details={
                "violation_type": violation_type,
                "expected_time": expected_time.isoformat(),
                "actual_time": actual_time.isoformat(),
                "delay_minutes": round(delay_minutes, 1),
            },
        ))

    async def notify_order_issue(self, recipients: List[str], order: Order, issue_type: str,
                                 description: str, urgency: Urgency = Urgency.CRITICAL,
                                 audience: Audience = Audience.ADMIN) -> bool:
        return await self._dispatch(self._build(
            order, NotificationEvent.ORDER_ISSUE, audience,
            recipients=recipients,
            urgency=urgency,
            message=description,
            details={"issue_type": issue_type},
        ))

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    # -------------------- internals --------------------

    @staticmethod
    def _build(order: Order, event: NotificationEvent, audience: Audience, **extra) -> OrderNotification:
        recipients = [r for r in extra.pop("recipients", []) if r]
        return OrderNotification(
            event=event,
            audience=audience,
            recipients=recipients,
            order_id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            customer_name=order.customer_name,
            total_amount=order.total_amount,
            estimated_delivery_at=order.estimated_delivery_at,
            **extra,
        )

    async def _dispatch(self, notification: OrderNotification) -> bool:
        try:
            await self.channel.send(notification)
            self._stats["sent"] += 1
            return True
        except Exception as e:
            self._stats["failed"] += 1
            logger.error("Notification dispatch failed",
                         event=notification.event.value,
                         order_id=notification.order_id,
                         error=str(e))
            return False
