"""
Assignment Orchestrator - binds a pending order to an accepting restaurant or escalates
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable, Iterable, List

from config.settings import settings
from src.business.errors import AssignmentTimeout
from src.business.state_machine import cancel_order, guarded_update
from src.models.base import OrderStatus, Urgency
from src.models.order import Order, Restaurant
from src.services.admin_directory import AdminDirectory
from src.services.notification_service import NotificationService
from src.services.scheduler import JobKind, ScheduledJob, Scheduler
from src.services.storage import OrderStorage
from src.utils.logger import logger


class AssignmentOrchestrator:
    """Automatic restaurant assignment with bounded waits and escalation"""

    def __init__(self, storage: OrderStorage, notifications: NotificationService,
                 admin_directory: AdminDirectory, scheduler: Scheduler,
                 clock: Callable[[], datetime] = datetime.now,
                 grace_seconds: float = settings.ASSIGNMENT_GRACE_SECONDS,
                 candidate_timeout: float = settings.CANDIDATE_RESPONSE_TIMEOUT_SECONDS,
                 poll_interval: float = settings.ASSIGNMENT_POLL_INTERVAL_SECONDS,
                 escalation_delay: float = settings.ESCALATION_DELAY_SECONDS,
                 max_candidates: int = settings.MAX_ASSIGNMENT_CANDIDATES):
        self.storage = storage
        self.notifications = notifications
        self.admin_directory = admin_directory
        self.scheduler = scheduler
        self.clock = clock
        self.grace_seconds = grace_seconds
        self.candidate_timeout = candidate_timeout
        self.poll_interval = poll_interval
        self.escalation_delay = escalation_delay
        self.max_candidates = max_candidates

        scheduler.register(JobKind.ASSIGNMENT_START, self._on_assignment_job)
        scheduler.register(JobKind.ASSIGNMENT_ESCALATION, self._on_escalation_job)

    async def start(self, order: Order) -> ScheduledJob:
        """Arm automatic assignment after the manual-acceptance grace period"""
        due_at = order.placed_at + timedelta(seconds=self.grace_seconds)
        return await self.scheduler.schedule(order.id, JobKind.ASSIGNMENT_START, due_at)

    async def find_candidates(self, order: Order, exclude: Iterable[str] = ()) -> List[Restaurant]:
        """Top-rated active restaurants serving the delivery city"""
        excluded = set(exclude)
        restaurants = await self.storage.get_restaurants_by_city(order.delivery_address.city)
        candidates = [
            r for r in restaurants
            if r.is_active and r.accepts_orders and r.id not in excluded
        ]
        candidates.sort(key=lambda r: r.rating, reverse=True)
        return candidates[:self.max_candidates]

    async def run_assignment(self, order_id: str) -> bool:
        """Try candidates in rank order; True when one of them accepted"""
        order = await self.storage.get_order(order_id)
        if order is None or order.status != OrderStatus.PENDING:
            return False

        candidates = await self.find_candidates(order)
        if not candidates:
            await self._handle_no_restaurants(order)
            return False

        logger.info("Starting automatic assignment",
                    order_id=order_id,
                    candidates=[c.id for c in candidates])

        for rank, restaurant in enumerate(candidates, start=1):
            current = await self.storage.get_order(order_id)
            if current is None or current.status != OrderStatus.PENDING:
                logger.info("Order left pending during assignment, stopping",
                            order_id=order_id,
                            status=current.status.value if current else None)
                return bool(current and current.status == OrderStatus.CONFIRMED)

            if await self.attempt_assignment(current, restaurant, rank):
                return True

        due_at = self.clock() + timedelta(seconds=self.escalation_delay)
        await self.scheduler.schedule(order_id, JobKind.ASSIGNMENT_ESCALATION, due_at)
        logger.warning("No candidate accepted, escalation armed",
                       order_id=order_id, escalate_at=due_at)
        return False

    async def attempt_assignment(self, order: Order, restaurant: Restaurant, rank: int = 1) -> bool:
        sent = await self.notifications.notify_new_order(restaurant, order)
        if not sent:
            logger.assignment_attempt(order.id, restaurant.id, "notification_failed", rank=rank)
            return False

        try:
            await self.wait_for_acceptance(order.id, restaurant.id)
        except AssignmentTimeout as e:
            logger.assignment_attempt(order.id, restaurant.id, "timeout", rank=rank, detail=str(e))
            return False

        logger.assignment_attempt(order.id, restaurant.id, "accepted", rank=rank)
        return True

    async def wait_for_acceptance(self, order_id: str, restaurant_id: str):
        """Return once the candidate confirmed the order; AssignmentTimeout otherwise.

        Woken by the storage change signal when available, otherwise polls
        every ``poll_interval`` seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.candidate_timeout

        while True:
            order = await self.storage.get_order(order_id)
            if order is not None and order.status == OrderStatus.CONFIRMED \
                    and order.restaurant_id == restaurant_id:
                return
            if order is None or order.status != OrderStatus.PENDING:
                raise AssignmentTimeout(order_id, restaurant_id, self.candidate_timeout)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise AssignmentTimeout(order_id, restaurant_id, self.candidate_timeout)
            await self.storage.wait_for_change(order_id, min(self.poll_interval, remaining))

    async def escalate(self, order_id: str) -> bool:
        """Flag a still-pending order for admins"""
        updated = await guarded_update(
            self.storage,
            order_id,
            lambda o: {"needs_attention": True, "escalation_level": o.escalation_level + 1},
            allowed_statuses=[OrderStatus.PENDING],
        )
        if updated is None:
            return False

        admins = await self.admin_directory.get_admin_emails()
        await self.notifications.notify_order_issue(
            admins,
            updated,
            issue_type="unassigned_order",
            description="Order remains unassigned after automatic assignment attempts",
            urgency=Urgency.CRITICAL,
        )
        logger.business_event("order_escalated", order_id=order_id,
                              escalation_level=updated.escalation_level)
        return True

    async def _handle_no_restaurants(self, order: Order):
        cancelled = await cancel_order(self.storage, order.id, "no_restaurants_available")
        if cancelled is None:
            return
        await self.notifications.notify_order_status_change(
            cancelled,
            "Unfortunately, no restaurants are available to fulfill your order at this time",
        )

    # -------------------- job handlers --------------------

    async def _on_assignment_job(self, job: ScheduledJob):
        await self.run_assignment(job.order_id)

    async def _on_escalation_job(self, job: ScheduledJob):
        await self.escalate(job.order_id)
