"""
Corrective actions triggered by SLA breaches
"""
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from config.settings import settings
from src.models.base import SLAPhase, Urgency
from src.models.order import Order, SLACheckResult
from src.services.notification_service import Audience
from src.utils.logger import logger
from .state_machine import guarded_update

if TYPE_CHECKING:
    from src.services.storage import OrderStorage
    from src.services.notification_service import NotificationService
    from src.services.assignment_orchestrator import AssignmentOrchestrator


class CorrectiveActionDispatcher:
    """Phase-specific remediation, applied at most once per order and phase"""

    def __init__(self, storage: "OrderStorage", notifications: "NotificationService",
                 orchestrator: "AssignmentOrchestrator",
                 incentive_step: int = settings.RIDER_INCENTIVE_STEP,
                 incentive_cap: int = settings.RIDER_INCENTIVE_CAP,
                 compensation_percent: int = settings.COMPENSATION_PERCENT,
                 escalation_alternatives: int = settings.ESCALATION_ALTERNATIVES):
        self.storage = storage
        self.notifications = notifications
        self.orchestrator = orchestrator
        self.incentive_step = Decimal(incentive_step)
        self.incentive_cap = Decimal(incentive_cap)
        self.compensation_percent = Decimal(compensation_percent)
        self.escalation_alternatives = escalation_alternatives

        self._actions = {
            SLAPhase.ACCEPTANCE: self.escalate_to_alternative_restaurants,
            SLAPhase.RIDER_ASSIGNMENT: self.increase_rider_incentive,
            SLAPhase.DELIVERY: self.offer_customer_compensation,
        }

    def handles(self, phase: SLAPhase) -> bool:
        return phase in self._actions

    async def dispatch(self, order: Order, result: SLACheckResult) -> Optional[Order]:
        """Run the action for the breached phase; None when nothing applies"""
        action = self._actions.get(result.check_type)
        if action is None:
            logger.debug("No corrective action for phase", order_id=order.id, phase=result.check_type.value)
            return None
        return await action(order, result)

    def _record(self, order: Order, phase: SLAPhase, **fields) -> dict:
        return {"corrective_actions": [*order.corrective_actions, phase], **fields}

    @staticmethod
    def _not_yet(phase: SLAPhase):
        return lambda o: phase not in o.corrective_actions

    async def escalate_to_alternative_restaurants(self, order: Order, result: SLACheckResult) -> Optional[Order]:
        updated = await guarded_update(
            self.storage, order.id,
            lambda o: self._record(o, SLAPhase.ACCEPTANCE, escalation_level=o.escalation_level + 1),
            predicate=self._not_yet(SLAPhase.ACCEPTANCE),
        )
        if updated is None:
            return None

        exclude = [updated.restaurant_id] if updated.restaurant_id else []
        alternatives = await self.orchestrator.find_candidates(updated, exclude=exclude)
        alternatives = alternatives[:self.escalation_alternatives]
        for restaurant in alternatives:
            await self.notifications.notify_new_order(restaurant, updated, urgency=Urgency.HIGH)

        logger.business_event("escalated_to_alternatives",
                              order_id=order.id,
                              restaurants=[r.id for r in alternatives],
                              delay_minutes=round(result.delay_minutes, 1))
        return updated

    async def increase_rider_incentive(self, order: Order, result: SLACheckResult) -> Optional[Order]:
        updated = await guarded_update(
            self.storage, order.id,
            lambda o: self._record(
                o, SLAPhase.RIDER_ASSIGNMENT,
                rider_incentive=min(o.rider_incentive + self.incentive_step, self.incentive_cap),
            ),
            predicate=self._not_yet(SLAPhase.RIDER_ASSIGNMENT),
        )
        if updated is not None:
            logger.business_event("rider_incentive_increased",
                                  order_id=order.id,
                                  rider_incentive=updated.rider_incentive)
        return updated

    async def offer_customer_compensation(self, order: Order, result: SLACheckResult) -> Optional[Order]:
        def build(o: Order) -> dict:
            fee = o.base_delivery_fee if o.base_delivery_fee is not None else o.delivery_fee
            amount = (fee * self.compensation_percent / Decimal(100)).quantize(Decimal("0.01"))
            return self._record(o, SLAPhase.DELIVERY, compensation_offered=amount)

        updated = await guarded_update(
            self.storage, order.id, build,
            predicate=self._not_yet(SLAPhase.DELIVERY),
        )
        if updated is None:
            return None

        await self.notifications.notify_order_issue(
            [updated.customer_email, updated.customer_phone],
            updated,
            issue_type="delivery_delayed",
            description=(
                f"Your order is running {result.delay_minutes:.0f} minutes late. "
                f"We've added a ₱{updated.compensation_offered:,.2f} credit to your account."
            ),
            urgency=Urgency.HIGH,
            audience=Audience.CUSTOMER,
        )
        logger.business_event("compensation_offered",
                              order_id=order.id,
                              amount=updated.compensation_offered)
        return updated
