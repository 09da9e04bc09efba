"""
Base models and enumerations for the order automation engine
"""
from pydantic import BaseModel, ConfigDict
from enum import Enum


class AutomationBaseModel(BaseModel):
    """Base model with common configuration"""

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
    )


class OrderStatus(str, Enum):
    """Order lifecycle status"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    """Order type"""
    FOOD = "food"
    PABILI = "pabili"
    PABAYAD = "pabayad"
    PARCEL = "parcel"


class OrderPriority(str, Enum):
    """Priority tier"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    EXPRESS = "express"
    CRITICAL = "critical"


class SLAPhase(str, Enum):
    """Lifecycle phases watched by the SLA monitor"""
    ACCEPTANCE = "acceptance"
    PREPARATION = "preparation"
    RIDER_ASSIGNMENT = "rider_assignment"
    PICKUP = "pickup"
    DELIVERY = "delivery"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
