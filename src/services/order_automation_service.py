"""
Order automation entrypoint: validation, pricing, then assignment and SLA monitoring
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from src.business.corrective_actions import CorrectiveActionDispatcher
from src.business.errors import OrderNotFound
from src.business.pricing import PricingAdjuster
from src.business.rules import BusinessRuleValidator
from src.business.standards import RuleCatalog, Violation
from src.business.state_machine import cancel_order, is_terminal
from src.models.base import OrderStatus
from src.services.admin_directory import AdminDirectory, StaticAdminDirectory
from src.services.assignment_orchestrator import AssignmentOrchestrator
from src.services.notification_service import NotificationService
from src.services.scheduler import Scheduler
from src.services.sla_monitor import SLAMonitor
from src.services.storage import OrderStorage
from src.utils.logger import logger, performance_logger


@dataclass
class PlacementResult:
    accepted: bool
    violations: List[Violation] = field(default_factory=list)
    skipped_status: Optional[OrderStatus] = None  # set when the order was no longer pending

    def to_dict(self) -> dict:
        data = {
            "accepted": self.accepted,
            "violations": [v.to_dict() for v in self.violations],
        }
        if self.skipped_status is not None:
            data["skipped_status"] = self.skipped_status.value
        return data


class OrderAutomationService:
    """Hands a freshly persisted order over to automation"""

    def __init__(self, storage: OrderStorage, validator: BusinessRuleValidator,
                 pricing: PricingAdjuster, notifications: NotificationService,
                 orchestrator: AssignmentOrchestrator, sla_monitor: SLAMonitor,
                 scheduler: Scheduler):
        self.storage = storage
        self.validator = validator
        self.pricing = pricing
        self.notifications = notifications
        self.orchestrator = orchestrator
        self.sla_monitor = sla_monitor
        self.scheduler = scheduler
        self._stats = {"processed": 0, "accepted": 0, "blocked": 0, "skipped": 0}

        scheduler.set_retention(self.is_order_finished)

    async def process_order_placement(self, order_id: str) -> PlacementResult:
        """
        Validate and arm automation for a new order.

        Storage and validator errors propagate: the caller must know
        placement failed. Blocking violations are handled here by
        cancelling the order.
        """
        timer_id = performance_logger.start_timer("order_placement")
        success = False
        try:
            order = await self.storage.get_order(order_id)
            if order is None:
                raise OrderNotFound(order_id)
            if order.status != OrderStatus.PENDING:
                success = True
                return self._skipped(order_id, order.status)

            violations = await self.validator.validate(order)
            self._stats["processed"] += 1

            blocking = self.validator.blocking(violations)
            if blocking:
                await self._handle_blocked(order_id, blocking)
                self._stats["blocked"] += 1
                success = True
                return PlacementResult(accepted=False, violations=violations)

            priced = await self.pricing.apply(order_id)
            if priced is None:
                # Отменен между валидацией и расчетом цены
                current = await self.storage.get_order(order_id)
                success = True
                return self._skipped(order_id, current.status if current else OrderStatus.CANCELLED,
                                     violations)

            await self.notifications.notify_order_placed(priced)

            await self.sla_monitor.start(priced)
            await self.orchestrator.start(priced)

            self._stats["accepted"] += 1
            logger.business_event("order_accepted",
                                  order_id=order_id,
                                  warnings=[v.type for v in violations])
            success = True
            return PlacementResult(accepted=True, violations=violations)
        except Exception as e:
            logger.error("Order placement automation failed", order_id=order_id, error=str(e))
            raise
        finally:
            performance_logger.end_timer(timer_id, success=success, order_id=order_id)

    async def recover_order(self, order_id: str) -> bool:
        """Re-arm outstanding jobs for an order from its current state"""
        order = await self.storage.get_order(order_id)
        if order is None or is_terminal(order.status):
            return False
        await self.sla_monitor.reconcile(order)
        if order.status == OrderStatus.PENDING:
            await self.orchestrator.start(order)
        logger.info("Order automation recovered", order_id=order_id, status=order.status.value)
        return True

    async def is_order_finished(self, order_id: str) -> bool:
        """Retention check for the scheduler: gone or terminal orders need no jobs"""
        order = await self.storage.get_order(order_id)
        return order is None or is_terminal(order.status)

    async def retire_order(self, order_id: str) -> int:
        """Drop scheduled jobs of an order that reached a terminal status"""
        return await self.scheduler.purge_if_finished(order_id)

    def _skipped(self, order_id: str, status: OrderStatus,
                 violations: Optional[List[Violation]] = None) -> PlacementResult:
        self._stats["skipped"] += 1
        logger.warning("Order is no longer pending, automation not armed",
                       order_id=order_id, status=status.value)
        return PlacementResult(accepted=False, violations=violations or [], skipped_status=status)

    async def _handle_blocked(self, order_id: str, blocking: List[Violation]):
        reason = "; ".join(v.message for v in blocking)
        cancelled = await cancel_order(self.storage, order_id, reason)
        if cancelled is None:
            return
        await self.notifications.notify_order_status_change(
            cancelled,
            f"Order cancelled: {reason}",
        )
        logger.warning("Order blocked by business rules",
                       order_id=order_id,
                       violations=[v.type for v in blocking])

    def get_stats(self) -> dict:
        return {
            **self._stats,
            "sla": self.sla_monitor.get_stats(),
            "notifications": self.notifications.get_stats(),
            "scheduler": self.scheduler.get_stats(),
            "performance": performance_logger.get_metrics_summary(),
        }


def create_automation_service(storage: OrderStorage,
                              notifications: Optional[NotificationService] = None,
                              admin_directory: Optional[AdminDirectory] = None,
                              scheduler: Optional[Scheduler] = None,
                              catalog: Optional[RuleCatalog] = None,
                              clock: Callable[[], datetime] = datetime.now,
                              **orchestrator_options) -> OrderAutomationService:
    """Wire the engine components around the given collaborators"""
    catalog = catalog or RuleCatalog.from_settings()
    notifications = notifications or NotificationService()
    admin_directory = admin_directory or StaticAdminDirectory()
    scheduler = scheduler or Scheduler(clock=clock)

    orchestrator = AssignmentOrchestrator(
        storage, notifications, admin_directory, scheduler, clock=clock, **orchestrator_options
    )
    corrective_actions = CorrectiveActionDispatcher(storage, notifications, orchestrator)
    sla_monitor = SLAMonitor(
        storage, notifications, admin_directory, scheduler, corrective_actions,
        catalog=catalog, clock=clock,
    )

    return OrderAutomationService(
        storage=storage,
        validator=BusinessRuleValidator(storage, catalog),
        pricing=PricingAdjuster(storage, catalog),
        notifications=notifications,
        orchestrator=orchestrator,
        sla_monitor=sla_monitor,
        scheduler=scheduler,
    )
