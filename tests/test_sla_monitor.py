"""
Tests for SLA checks and corrective actions
"""
import asyncio
import pytest
from datetime import timedelta
from decimal import Decimal

from src.business import RuleCatalog
from src.models.base import OrderPriority, OrderStatus, SLAPhase, Urgency
from src.services.admin_directory import StaticAdminDirectory
from src.services.notification_service import Audience, NotificationEvent, NotificationService
from src.services.order_automation_service import create_automation_service
from src.services.scheduler import InMemoryJobStore, JobStatus, Scheduler
from src.services.storage import InMemoryOrderStorage
from tests.factories import PLACED_AT, FakeClock, RecordingChannel, make_order, make_restaurant

ADMINS = ["ops@delivery.ph"]


@pytest.mark.asyncio
class TestSLAMonitor:

    def setup_method(self):
        self.storage = InMemoryOrderStorage()
        self.storage.add_restaurant(make_restaurant("r1", rating=4.5))
        self.storage.add_restaurant(make_restaurant("r2", rating=4.8))
        self.storage.add_restaurant(make_restaurant("r3", rating=4.1))
        self.clock = FakeClock()
        self.channel = RecordingChannel()
        self.scheduler = Scheduler(InMemoryJobStore(), clock=self.clock)
        self.automation = create_automation_service(
            self.storage,
            notifications=NotificationService(self.channel),
            admin_directory=StaticAdminDirectory(ADMINS),
            scheduler=self.scheduler,
            catalog=RuleCatalog(),
            clock=self.clock,
            candidate_timeout=0.05,
            poll_interval=0.01,
        )
        self.monitor = self.automation.sla_monitor

    def add_order(self, **overrides):
        return self.storage.add_order(make_order(**overrides))

    async def test_check_schedule_for_critical_food(self):
        order = self.add_order(priority=OrderPriority.CRITICAL)

        schedule = self.monitor.check_schedule(order)

        assert schedule[SLAPhase.ACCEPTANCE] == PLACED_AT + timedelta(minutes=3)
        assert schedule[SLAPhase.PREPARATION] == PLACED_AT + timedelta(minutes=12)
        assert schedule[SLAPhase.DELIVERY] == PLACED_AT + timedelta(minutes=36)

    async def test_acceptance_breach_escalates_to_alternatives(self):
        self.add_order()
        self.clock.advance(minutes=6)

        result = await self.monitor.perform_check("o1", SLAPhase.ACCEPTANCE)

        assert result.breached is True
        assert result.delay_minutes == pytest.approx(1.0)
        violation = self.channel.of(NotificationEvent.SLA_VIOLATION)[0]
        assert violation.recipients == ADMINS
        assert violation.details["violation_type"] == "acceptance"

        offers = self.channel.of(NotificationEvent.NEW_ORDER_ASSIGNMENT)
        assert [n.details["restaurant_id"] for n in offers] == ["r2", "r3"]
        assert all(n.urgency == Urgency.HIGH for n in offers)

        order = await self.storage.get_order("o1")
        assert order.escalation_level == 1
        assert order.corrective_actions == [SLAPhase.ACCEPTANCE]

    async def test_exactly_at_target_is_not_a_breach(self):
        self.add_order()
        self.clock.advance(minutes=5)

        assert await self.monitor.perform_check("o1", SLAPhase.ACCEPTANCE) is None
        assert self.storage.get_sla_checks("o1")[0].breached is False

    async def test_confirmed_order_passes_acceptance(self):
        self.add_order(status=OrderStatus.CONFIRMED)
        self.clock.advance(minutes=30)

        assert await self.monitor.perform_check("o1", SLAPhase.ACCEPTANCE) is None
        assert self.channel.sent == []

    async def test_preparation_breach_notifies_without_corrective_action(self):
        self.add_order(status=OrderStatus.CONFIRMED)
        self.clock.advance(minutes=25)

        result = await self.monitor.perform_check("o1", SLAPhase.PREPARATION)

        assert result.breached is True
        assert len(self.channel.of(NotificationEvent.SLA_VIOLATION)) == 1
        order = await self.storage.get_order("o1")
        assert order.corrective_actions == []
        assert order.version == 0

    async def test_terminal_order_is_skipped(self):
        self.add_order(status=OrderStatus.DELIVERED)
        self.clock.advance(hours=3)

        assert await self.monitor.perform_check("o1", SLAPhase.DELIVERY) is None
        assert self.storage.get_sla_checks("o1") == []

    async def test_rider_incentive_applied_once(self):
        self.add_order(status=OrderStatus.PREPARING)
        self.clock.advance(minutes=11)

        await self.monitor.perform_check("o1", SLAPhase.RIDER_ASSIGNMENT)
        await self.monitor.perform_check("o1", SLAPhase.RIDER_ASSIGNMENT)

        order = await self.storage.get_order("o1")
        assert order.rider_incentive == Decimal("20")
        assert order.corrective_actions == [SLAPhase.RIDER_ASSIGNMENT]

    async def test_rider_incentive_is_capped(self):
        self.add_order(status=OrderStatus.READY, rider_incentive=Decimal("90"))
        self.clock.advance(minutes=11)

        await self.monitor.perform_check("o1", SLAPhase.RIDER_ASSIGNMENT)

        assert (await self.storage.get_order("o1")).rider_incentive == Decimal("100")

    async def test_late_delivery_offers_compensation(self):
        self.add_order(status=OrderStatus.IN_TRANSIT)
        self.clock.advance(minutes=61)

        await self.monitor.perform_check("o1", SLAPhase.DELIVERY)

        order = await self.storage.get_order("o1")
        assert order.compensation_offered == Decimal("50.00")
        notice = self.channel.of(NotificationEvent.ORDER_ISSUE)[0]
        assert notice.audience == Audience.CUSTOMER
        assert notice.details["issue_type"] == "delivery_delayed"
        assert notice.recipients == ["juan@example.ph", "+639171234567"]

    async def test_one_check_per_phase_through_scheduler(self):
        order = self.add_order()
        jobs = await self.monitor.start(order)
        assert len(jobs) == len(SLAPhase)

        self.clock.advance(hours=2)
        await asyncio.gather(*await self.scheduler.run_pending())
        assert await self.scheduler.run_pending() == []

        assert len(self.storage.get_sla_checks("o1")) == len(SLAPhase)
        assert len(self.channel.of(NotificationEvent.SLA_VIOLATION)) == len(SLAPhase)
        stored = await self.scheduler.store.for_order("o1")
        assert {j.status for j in stored} == {JobStatus.DONE}
        assert self.monitor.get_stats() == {"checks": 5, "breaches": 5}

    async def test_reconcile_skips_terminal_orders(self):
        order = self.add_order(status=OrderStatus.CANCELLED)

        assert await self.monitor.reconcile(order) == []
