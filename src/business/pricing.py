"""
Priority and time-of-day adjustments applied to an accepted order
"""
from datetime import timedelta
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from src.models.order import Order
from src.utils.logger import logger
from .standards import RuleCatalog
from .state_machine import guarded_update

if TYPE_CHECKING:
    from src.services.storage import OrderStorage


class PricingAdjuster:
    """Projects the delivery ETA and applies the peak-hour surcharge"""

    def __init__(self, storage: "OrderStorage", catalog: Optional[RuleCatalog] = None):
        self.storage = storage
        self.catalog = catalog or RuleCatalog.from_settings()

    def projected_delivery(self, order: Order):
        minutes = self.catalog.adjusted_total_minutes(order.order_type, order.priority)
        return order.placed_at + timedelta(minutes=minutes)

    def surge_fields(self, order: Order) -> dict:
        """Fee/total changes for peak placement; empty when not applicable"""
        if order.surge_applied or not self.catalog.is_peak_hour(order.placed_at.hour):
            return {}

        base_fee = order.base_delivery_fee if order.base_delivery_fee is not None else order.delivery_fee
        surged_fee = base_fee * Decimal(str(self.catalog.surge_multiplier))
        return {
            "base_delivery_fee": base_fee,
            "delivery_fee": surged_fee,
            "total_amount": order.total_amount - order.delivery_fee + surged_fee,
            "surge_applied": True,
        }

    async def apply(self, order_id: str) -> Optional[Order]:
        """Write the ETA and surcharge; running it twice changes nothing"""

        def build(order: Order) -> dict:
            changes = {"estimated_delivery_at": self.projected_delivery(order)}
            changes.update(self.surge_fields(order))
            return changes

        updated = await guarded_update(self.storage, order_id, build)
        if updated is not None:
            logger.business_event(
                "pricing_adjusted",
                order_id=order_id,
                estimated_delivery_at=updated.estimated_delivery_at,
                delivery_fee=updated.delivery_fee,
                total_amount=updated.total_amount,
                surge_applied=updated.surge_applied,
            )
        return updated
