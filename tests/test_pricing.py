"""
Tests for ETA projection and peak-hour surcharge
"""
import pytest
from datetime import timedelta
from decimal import Decimal

from src.business import PricingAdjuster, RuleCatalog
from src.business.standards import SLATargets
from src.models.base import OrderType, OrderPriority, OrderStatus
from src.services.storage import InMemoryOrderStorage
from tests.factories import PLACED_AT, make_order


@pytest.mark.asyncio
class TestPricingAdjuster:

    def setup_method(self):
        self.storage = InMemoryOrderStorage()
        self.pricing = PricingAdjuster(self.storage, RuleCatalog())

    async def test_peak_surcharge_is_exactly_twenty_percent(self):
        self.storage.add_order(make_order(placed_at=PLACED_AT.replace(hour=12)))

        updated = await self.pricing.apply("o1")

        assert updated.delivery_fee == Decimal("60")
        assert updated.total_amount == Decimal("300") - Decimal("50") + Decimal("50") * Decimal("1.2")
        assert updated.base_delivery_fee == Decimal("50")
        assert updated.surge_applied is True

    async def test_surcharge_applied_once(self):
        self.storage.add_order(make_order(placed_at=PLACED_AT.replace(hour=18, minute=30)))

        await self.pricing.apply("o1")
        again = await self.pricing.apply("o1")

        assert again.delivery_fee == Decimal("60")
        assert again.total_amount == Decimal("310")

    async def test_no_surcharge_off_peak(self):
        self.storage.add_order(make_order())

        updated = await self.pricing.apply("o1")

        assert updated.delivery_fee == Decimal("50")
        assert updated.total_amount == Decimal("300")
        assert updated.surge_applied is False

    async def test_critical_food_eta_is_36_minutes(self):
        self.storage.add_order(make_order(priority=OrderPriority.CRITICAL))

        updated = await self.pricing.apply("o1")

        assert updated.estimated_delivery_at - PLACED_AT == timedelta(minutes=36)

    @pytest.mark.parametrize("order_type,priority,minutes", [
        (OrderType.FOOD, OrderPriority.NORMAL, 60),
        (OrderType.PABILI, OrderPriority.HIGH, 81),
        (OrderType.PARCEL, OrderPriority.EXPRESS, 90),
        (OrderType.PABAYAD, OrderPriority.LOW, 45),
    ])
    async def test_eta_projection(self, order_type, priority, minutes):
        self.storage.add_order(make_order(order_type=order_type, priority=priority))

        updated = await self.pricing.apply("o1")

        assert updated.estimated_delivery_at == PLACED_AT + timedelta(minutes=minutes)

    async def test_overridden_catalog_targets(self):
        fast = dict(RuleCatalog().sla_targets)
        fast[OrderType.FOOD] = SLATargets(1, 2, 3, 4, 5, 10)
        pricing = PricingAdjuster(self.storage, RuleCatalog(sla_targets=fast))
        self.storage.add_order(make_order())

        updated = await pricing.apply("o1")

        assert updated.estimated_delivery_at == PLACED_AT + timedelta(minutes=10)

    async def test_cancelled_order_is_left_alone(self):
        self.storage.add_order(make_order(status=OrderStatus.CANCELLED,
                                          placed_at=PLACED_AT.replace(hour=12)))

        assert await self.pricing.apply("o1") is None
        stored = await self.storage.get_order("o1")
        assert stored.delivery_fee == Decimal("50")

    @pytest.mark.parametrize("hour,minute,surged", [
        (10, 59, False),
        (11, 0, True),
        (13, 30, True),
        (14, 0, False),
        (20, 59, True),
        (21, 0, False),
    ])
    async def test_peak_windows_cover_whole_boundary_hours(self, hour, minute, surged):
        self.storage.add_order(make_order(placed_at=PLACED_AT.replace(hour=hour, minute=minute)))

        updated = await self.pricing.apply("o1")

        assert updated.surge_applied is surged
        assert updated.delivery_fee == (Decimal("60") if surged else Decimal("50"))
