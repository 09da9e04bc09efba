from typing import Dict, Any, List, Optional, TYPE_CHECKING
from src.models.order import Order
from src.utils.logger import logger
from .validators import (
    ValidationContext,
    RestaurantStatusValidator, OperatingHoursValidator, InventoryValidator,
    DeliveryAreaValidator, MinimumOrderValidator, PeakHourValidator, CustomerLimitValidator,
)
from .standards import RuleCatalog, Violation, ViolationSeverity, ViolationAction

if TYPE_CHECKING:
    from src.services.storage import OrderStorage


class BusinessRuleValidator:
    """Движок валидации бизнес-правил заказа"""

    def __init__(self, storage: "OrderStorage", catalog: Optional[RuleCatalog] = None):
        self.storage = storage
        self.catalog = catalog or RuleCatalog.from_settings()
        # Порядок важен: он определяет порядок нарушений в ответе
        self.validators = [
            RestaurantStatusValidator,
            OperatingHoursValidator,
            InventoryValidator,
            DeliveryAreaValidator,
            MinimumOrderValidator,
            PeakHourValidator,
            CustomerLimitValidator,
        ]

    async def validate(self, order: Order) -> List[Violation]:
        """
        Evaluate every business rule against the order.

        Args:
            order: Order snapshot; never mutated

        Returns:
            Violations in rule order. A missing restaurant is fatal and
            returned alone.
        """
        restaurant = None
        if order.restaurant_id:
            restaurant = await self.storage.get_restaurant(order.restaurant_id)
        if restaurant is None:
            return [Violation(
                type="restaurant_not_found",
                severity=ViolationSeverity.CRITICAL,
                message="Restaurant not found in system",
                action=ViolationAction.BLOCK,
            )]

        customer_orders = []
        if order.customer_id:
            customer_orders = await self.storage.get_orders_by_customer(order.customer_id)

        ctx = ValidationContext(
            order=order,
            restaurant=restaurant,
            catalog=self.catalog,
            customer_orders=customer_orders,
        )

        violations = []
        for validator in self.validators:
            violations.extend(validator.validate(ctx))

        logger.info("Business rules evaluated",
                    order_id=order.id,
                    **self.summarize(violations))
        return violations

    @staticmethod
    def has_blocking(violations: List[Violation]) -> bool:
        return any(v.is_blocking for v in violations)

    @staticmethod
    def blocking(violations: List[Violation]) -> List[Violation]:
        return [v for v in violations if v.is_blocking]

    @classmethod
    def summarize(cls, violations: List[Violation]) -> Dict[str, Any]:
        """Подсчет нарушений по уровням и действиям"""
        by_severity = {s.value: 0 for s in ViolationSeverity}
        by_action = {a.value: 0 for a in ViolationAction}
        for violation in violations:
            by_severity[violation.severity.value] += 1
            by_action[violation.action.value] += 1

        return {
            "total_violations": len(violations),
            "by_severity": by_severity,
            "by_action": by_action,
            "blocked": cls.has_blocking(violations),
        }
