"""
Order and restaurant models used by the automation engine
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from src.models.base import AutomationBaseModel, OrderStatus, OrderType, OrderPriority, SLAPhase


class DeliveryAddress(BaseModel):
    """Адрес доставки"""
    street: str = Field("", description="Street and building")
    city: str = Field(..., min_length=1, description="Service city")
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


class OrderItem(BaseModel):
    """Read-only snapshot of an ordered menu item"""
    id: str
    name: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    price: Decimal = Field(Decimal("0"), ge=0)
    available: bool = Field(True, description="False when the vendor flagged the item as out of stock")


class Restaurant(AutomationBaseModel):
    """Restaurant or vendor that can fulfil orders"""

    id: str
    name: str
    email: str = ""
    phone: str = ""
    city: str = ""
    is_active: bool = True
    accepts_orders: bool = True
    rating: float = Field(0.0, ge=0, le=5)
    minimum_order: Decimal = Field(Decimal("0"), ge=0)
    opening_hour: Optional[int] = Field(None, ge=0, le=23)
    closing_hour: Optional[int] = Field(None, ge=0, le=23)
    unavailable_items: List[str] = Field(default_factory=list, description="Menu item ids or names out of stock")

    def is_item_unavailable(self, item: OrderItem) -> bool:
        if not item.available:
            return True
        flagged = {entry.lower() for entry in self.unavailable_items}
        return item.id.lower() in flagged or item.name.lower() in flagged


class Order(AutomationBaseModel):
    """Order as seen by the automation engine"""

    id: str
    order_number: str = ""
    customer_id: str = ""
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""

    order_type: OrderType = OrderType.FOOD
    priority: OrderPriority = OrderPriority.NORMAL
    status: OrderStatus = OrderStatus.PENDING

    subtotal: Decimal = Field(Decimal("0"), ge=0)
    delivery_fee: Decimal = Field(Decimal("0"), ge=0)
    total_amount: Decimal = Field(Decimal("0"), ge=0)

    placed_at: datetime = Field(default_factory=datetime.now)
    estimated_delivery_at: Optional[datetime] = None
    delivery_address: DeliveryAddress
    restaurant_id: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)

    # Engine bookkeeping
    version: int = Field(0, ge=0, description="Bumped on every write")
    base_delivery_fee: Optional[Decimal] = None
    surge_applied: bool = False
    needs_attention: bool = False
    escalation_level: int = 0
    rider_incentive: Decimal = Decimal("0")
    compensation_offered: Decimal = Decimal("0")
    corrective_actions: List[SLAPhase] = Field(default_factory=list)
    cancellation_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class SLACheckResult(BaseModel):
    """Outcome of one deferred SLA check"""

    order_id: str
    check_type: SLAPhase
    target_minutes: float
    actual_minutes: float
    delay_minutes: float
    expected_statuses: List[OrderStatus]
    actual_status: OrderStatus
    breached: bool
    checked_at: datetime = Field(default_factory=datetime.now)
