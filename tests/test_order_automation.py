"""
Tests for the order placement entrypoint
"""
import asyncio
import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from src.business import RuleCatalog
from src.business.errors import OrderNotFound, StorageFailure
from src.business.state_machine import cancel_order, transition
from src.models.base import OrderStatus, OrderType
from src.models.order import OrderItem
from src.services.admin_directory import StaticAdminDirectory
from src.services.notification_service import NotificationEvent, NotificationService
from src.services.order_automation_service import create_automation_service
from src.services.scheduler import InMemoryJobStore, JobKind, Scheduler
from src.services.storage import InMemoryOrderStorage
from tests.factories import PLACED_AT, FakeClock, RecordingChannel, make_order, make_restaurant


@pytest.mark.asyncio
class TestOrderAutomationService:

    def setup_method(self):
        self.storage = InMemoryOrderStorage()
        self.storage.add_restaurant(make_restaurant(unavailable_items=["Calamansi"]))
        self.clock = FakeClock()
        self.channel = RecordingChannel()
        self.automation = self.build()

    def build(self):
        return create_automation_service(
            self.storage,
            notifications=NotificationService(self.channel),
            admin_directory=StaticAdminDirectory(["ops@delivery.ph"]),
            scheduler=Scheduler(InMemoryJobStore(), clock=self.clock),
            catalog=RuleCatalog(),
            clock=self.clock,
            candidate_timeout=0.1,
            poll_interval=0.01,
        )

    async def jobs_for(self, order_id):
        return await self.automation.scheduler.store.for_order(order_id)

    async def test_pabili_order_accepted_with_inventory_warning(self):
        self.storage.add_order(make_order(
            order_type=OrderType.PABILI,
            items=[
                OrderItem(id="i1", name="Rice 5kg", price=Decimal("250")),
                OrderItem(id="i2", name="Calamansi", price=Decimal("30")),
            ],
        ))

        result = await self.automation.process_order_placement("o1")

        assert result.accepted is True
        assert [v.type for v in result.violations] == ["item_unavailable"]

        order = await self.storage.get_order("o1")
        assert order.status == OrderStatus.PENDING
        assert order.estimated_delivery_at == PLACED_AT + timedelta(minutes=90)
        assert order.delivery_fee == Decimal("50")

        jobs = await self.jobs_for("o1")
        assert sum(j.kind == JobKind.ASSIGNMENT_START for j in jobs) == 1
        assert sum(j.kind == JobKind.SLA_CHECK for j in jobs) == 5
        assert len(self.channel.of(NotificationEvent.ORDER_PLACED)) == 1

    async def test_blocked_order_is_cancelled_and_customer_told(self):
        self.storage.add_order(make_order(total_amount=Decimal("120")))

        result = await self.automation.process_order_placement("o1")

        assert result.accepted is False
        assert result.to_dict()["violations"][0]["type"] == "below_minimum_order"
        order = await self.storage.get_order("o1")
        assert order.status == OrderStatus.CANCELLED
        assert "below minimum" in order.cancellation_reason
        assert len(self.channel.of(NotificationEvent.ORDER_STATUS_CHANGE)) == 1
        assert self.channel.of(NotificationEvent.ORDER_PLACED) == []
        assert await self.jobs_for("o1") == []

    async def test_peak_order_is_surcharged_on_placement(self):
        self.storage.add_order(make_order(placed_at=PLACED_AT.replace(hour=12)))

        await self.automation.process_order_placement("o1")

        order = await self.storage.get_order("o1")
        assert order.delivery_fee == Decimal("60")
        assert order.total_amount == Decimal("310")

    async def test_unknown_order_raises(self):
        with pytest.raises(OrderNotFound):
            await self.automation.process_order_placement("missing")

    async def test_storage_failure_propagates(self):
        self.storage.add_order(make_order())
        failure = StorageFailure("database unavailable")

        with patch.object(self.storage, "get_orders_by_customer", AsyncMock(side_effect=failure)):
            with pytest.raises(StorageFailure):
                await self.automation.process_order_placement("o1")

        assert await self.jobs_for("o1") == []

    async def test_recover_rearms_jobs_on_fresh_scheduler(self):
        self.storage.add_order(make_order())
        await self.automation.process_order_placement("o1")

        restarted = self.build()
        assert await restarted.recover_order("o1") is True
        jobs = await restarted.scheduler.store.for_order("o1")
        assert len(jobs) == 6

    async def test_recover_ignores_finished_orders(self):
        self.storage.add_order(make_order(status=OrderStatus.DELIVERED))

        assert await self.automation.recover_order("o1") is False

    async def test_confirmed_order_recovers_only_sla_checks(self):
        self.storage.add_order(make_order())
        await transition(self.storage, "o1", OrderStatus.CONFIRMED, restaurant_id="r1")

        assert await self.automation.recover_order("o1") is True
        kinds = {j.kind for j in await self.jobs_for("o1")}
        assert kinds == {JobKind.SLA_CHECK}

    async def test_full_flow_from_placement_to_confirmation(self):
        self.storage.add_order(make_order())
        await self.automation.process_order_placement("o1")

        async def restaurant_accepts():
            while not self.channel.of(NotificationEvent.NEW_ORDER_ASSIGNMENT):
                await asyncio.sleep(0.001)
            await transition(self.storage, "o1", OrderStatus.CONFIRMED, restaurant_id="r1")

        self.clock.advance(minutes=2, seconds=30)
        acceptor = asyncio.create_task(restaurant_accepts())
        await asyncio.gather(*await self.automation.scheduler.run_pending())
        await acceptor

        order = await self.storage.get_order("o1")
        assert order.status == OrderStatus.CONFIRMED
        assert self.automation.get_stats()["accepted"] == 1

    async def test_cancelled_order_is_not_armed(self):
        self.storage.add_order(make_order())
        await cancel_order(self.storage, "o1", "customer_request")

        result = await self.automation.process_order_placement("o1")

        assert result.accepted is False
        assert result.to_dict()["skipped_status"] == "cancelled"
        assert self.channel.of(NotificationEvent.ORDER_PLACED) == []
        assert await self.jobs_for("o1") == []

    async def test_confirmed_order_is_not_placed_twice(self):
        self.storage.add_order(make_order(status=OrderStatus.CONFIRMED))

        result = await self.automation.process_order_placement("o1")

        assert result.accepted is False
        assert result.skipped_status == OrderStatus.CONFIRMED
        assert await self.jobs_for("o1") == []

    async def test_cancellation_during_validation_is_not_reported_as_accepted(self):
        self.storage.add_order(make_order())

        async def cancelled_mid_validation(order):
            await cancel_order(self.storage, order.id, "customer_request")
            return []

        with patch.object(self.automation.validator, "validate", side_effect=cancelled_mid_validation):
            result = await self.automation.process_order_placement("o1")

        assert result.accepted is False
        assert result.skipped_status == OrderStatus.CANCELLED
        assert self.channel.of(NotificationEvent.ORDER_PLACED) == []
        assert await self.jobs_for("o1") == []

    async def test_jobs_dropped_once_order_terminates(self):
        for i in range(5):
            self.storage.add_order(make_order(f"o{i}"))
            await self.automation.process_order_placement(f"o{i}")
            await cancel_order(self.storage, f"o{i}", "customer_request")

        self.clock.advance(hours=3)
        await asyncio.gather(*await self.automation.scheduler.run_pending())

        assert await self.automation.scheduler.store.all() == []
        assert self.automation.scheduler.get_stats()["purged"] == 30

    async def test_live_order_keeps_finished_jobs(self):
        self.storage.add_order(make_order())
        await self.automation.process_order_placement("o1")
        await transition(self.storage, "o1", OrderStatus.IN_TRANSIT, restaurant_id="r1")

        self.clock.advance(hours=3)
        await asyncio.gather(*await self.automation.scheduler.run_pending())

        assert len(await self.jobs_for("o1")) == 6
        assert await self.automation.recover_order("o1") is True
        assert await self.automation.scheduler.run_pending() == []

    async def test_sweep_drops_jobs_of_orders_delivered_after_last_check(self):
        self.storage.add_order(make_order())
        await self.automation.process_order_placement("o1")
        await transition(self.storage, "o1", OrderStatus.IN_TRANSIT, restaurant_id="r1")
        self.clock.advance(hours=3)
        await asyncio.gather(*await self.automation.scheduler.run_pending())

        await transition(self.storage, "o1", OrderStatus.DELIVERED)
        removed = await self.automation.scheduler.purge_finished()

        assert removed == 6
        assert await self.jobs_for("o1") == []
