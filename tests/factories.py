"""
Test data builders shared by the engine tests
"""
from datetime import datetime, timedelta
from decimal import Decimal

from src.models.base import OrderType, OrderPriority
from src.models.order import Order, Restaurant, DeliveryAddress, OrderItem
from src.services.notification_service import NotificationChannel, NotificationEvent, OrderNotification

PLACED_AT = datetime(2026, 10, 19, 9, 0)


class FakeClock:
    def __init__(self, now: datetime = PLACED_AT):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingChannel(NotificationChannel):
    """Keeps sent notifications; optionally fails for given restaurants"""

    def __init__(self, failing_restaurants=()):
        self.sent = []
        self.failing_restaurants = set(failing_restaurants)

    async def send(self, notification: OrderNotification) -> None:
        if notification.details.get("restaurant_id") in self.failing_restaurants:
            raise ConnectionError("SMS gateway down")
        self.sent.append(notification)

    def of(self, event: NotificationEvent):
        return [n for n in self.sent if n.event == event]


def make_restaurant(id="r1", **overrides) -> Restaurant:
    data = dict(
        id=id,
        name=f"Restaurant {id}",
        email=f"{id}@vendors.ph",
        phone="+639170000000",
        city="Makati",
        is_active=True,
        accepts_orders=True,
        rating=4.5,
        minimum_order=Decimal("200"),
    )
    data.update(overrides)
    return Restaurant(**data)


def make_order(id="o1", **overrides) -> Order:
    data = dict(
        id=id,
        order_number=f"ORD-{id}",
        customer_id="c1",
        customer_name="Juan Dela Cruz",
        customer_email="juan@example.ph",
        customer_phone="+639171234567",
        order_type=OrderType.FOOD,
        priority=OrderPriority.NORMAL,
        subtotal=Decimal("250"),
        delivery_fee=Decimal("50"),
        total_amount=Decimal("300"),
        placed_at=PLACED_AT,
        delivery_address=DeliveryAddress(street="Ayala Ave 123", city="Makati", lat=14.5547, lng=121.0244),
        restaurant_id="r1",
        items=[OrderItem(id="i1", name="Chicken Adobo", quantity=2, price=Decimal("125"))],
    )
    data.update(overrides)
    return Order(**data)
