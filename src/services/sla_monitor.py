"""
SLA Monitor - one deferred check per lifecycle phase, measured from placement time
"""
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from src.business.corrective_actions import CorrectiveActionDispatcher
from src.business.standards import RuleCatalog
from src.business.state_machine import is_terminal
from src.models.base import SLAPhase
from src.models.order import Order, SLACheckResult
from src.services.admin_directory import AdminDirectory
from src.services.notification_service import NotificationService
from src.services.scheduler import JobKind, ScheduledJob, Scheduler
from src.services.storage import OrderStorage
from src.utils.logger import logger


class SLAMonitor:
    """Checks each phase against its priority-adjusted target"""

    def __init__(self, storage: OrderStorage, notifications: NotificationService,
                 admin_directory: AdminDirectory, scheduler: Scheduler,
                 corrective_actions: CorrectiveActionDispatcher,
                 catalog: Optional[RuleCatalog] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.storage = storage
        self.notifications = notifications
        self.admin_directory = admin_directory
        self.scheduler = scheduler
        self.corrective_actions = corrective_actions
        self.catalog = catalog or RuleCatalog.from_settings()
        self.clock = clock
        self._stats = {"checks": 0, "breaches": 0}

        scheduler.register(JobKind.SLA_CHECK, self._on_sla_job)

    def check_schedule(self, order: Order) -> Dict[SLAPhase, datetime]:
        """When each phase check is due, derived only from the order"""
        return {
            phase: order.placed_at + timedelta(
                minutes=self.catalog.adjusted_minutes(order.order_type, order.priority, phase)
            )
            for phase in SLAPhase
        }

    async def start(self, order: Order) -> List[ScheduledJob]:
        schedule = self.check_schedule(order)
        jobs = []
        for phase, due_at in schedule.items():
            jobs.append(await self.scheduler.schedule(order.id, JobKind.SLA_CHECK, due_at, phase=phase.value))
        logger.info("SLA monitoring started",
                    order_id=order.id,
                    checks={p.value: d.isoformat() for p, d in schedule.items()})
        return jobs

    async def reconcile(self, order: Order) -> List[ScheduledJob]:
        """Re-arm outstanding checks after a restart; finished checks stay finished"""
        if is_terminal(order.status):
            return []
        return await self.start(order)

    def evaluate(self, order: Order, phase: SLAPhase, now: datetime) -> SLACheckResult:
        target = self.catalog.adjusted_minutes(order.order_type, order.priority, phase)
        expected = self.catalog.expected_statuses[phase]
        elapsed = (now - order.placed_at).total_seconds() / 60

        breached = elapsed > target and order.status not in expected
        return SLACheckResult(
            order_id=order.id,
            check_type=phase,
            target_minutes=target,
            actual_minutes=elapsed,
            delay_minutes=max(0.0, elapsed - target),
            expected_statuses=sorted(expected, key=lambda s: s.value),
            actual_status=order.status,
            breached=breached,
            checked_at=now,
        )

    async def perform_check(self, order_id: str, phase: SLAPhase) -> Optional[SLACheckResult]:
        """Run one phase check; returns the result only on breach"""
        order = await self.storage.get_order(order_id)
        if order is None or is_terminal(order.status):
            return None

        now = self.clock()
        result = self.evaluate(order, phase, now)
        self._stats["checks"] += 1

        await self.storage.record_sla_check(result)
        logger.sla_check(order_id, phase.value, result.breached,
                         target_minutes=round(result.target_minutes, 2),
                         actual_minutes=round(result.actual_minutes, 2),
                         status=order.status.value)
        logger.performance_metric(
            f"sla_{phase.value}_elapsed", round(result.actual_minutes, 2), "min",
            order_id=order_id, breached=result.breached,
        )

        if not result.breached:
            return None

        self._stats["breaches"] += 1
        await self.handle_violation(order, result)
        return result

    async def handle_violation(self, order: Order, result: SLACheckResult):
        admins = await self.admin_directory.get_admin_emails()
        await self.notifications.notify_sla_violation(
            admins,
            order,
            violation_type=result.check_type.value,
            expected_time=order.placed_at + timedelta(minutes=result.target_minutes),
            actual_time=result.checked_at,
            delay_minutes=result.delay_minutes,
        )
        await self.corrective_actions.dispatch(order, result)

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def _on_sla_job(self, job: ScheduledJob):
        await self.perform_check(job.order_id, SLAPhase(job.phase))
