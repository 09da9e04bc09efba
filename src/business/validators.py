from dataclasses import dataclass, field
from typing import List, Optional
from src.models.order import Order, Restaurant
from .standards import RuleCatalog, Violation, ViolationSeverity, ViolationAction


@dataclass
class ValidationContext:
    """Everything the validators need, loaded once per validation pass"""
    order: Order
    restaurant: Optional[Restaurant]
    catalog: RuleCatalog
    customer_orders: List[Order] = field(default_factory=list)


class RestaurantStatusValidator:
    """Валидатор статуса ресторана"""

    @staticmethod
    def validate(ctx: ValidationContext) -> List[Violation]:
        results = []
        if not ctx.restaurant.is_active:
            results.append(Violation(
                type="restaurant_inactive",
                severity=ViolationSeverity.ERROR,
                message=f"Restaurant {ctx.restaurant.name} is currently inactive",
                action=ViolationAction.BLOCK,
            ))
        return results


class OperatingHoursValidator:
    """Валидатор часов работы"""

    @staticmethod
    def is_open(restaurant: Restaurant, catalog: RuleCatalog, hour: int) -> bool:
        opening = restaurant.opening_hour if restaurant.opening_hour is not None else catalog.default_opening_hour
        closing = restaurant.closing_hour if restaurant.closing_hour is not None else catalog.default_closing_hour
        if opening <= closing:
            return opening <= hour <= closing
        # Ночной режим, например 18-02
        return hour >= opening or hour <= closing

    @classmethod
    def validate(cls, ctx: ValidationContext) -> List[Violation]:
        results = []
        if not cls.is_open(ctx.restaurant, ctx.catalog, ctx.order.placed_at.hour):
            results.append(Violation(
                type="outside_operating_hours",
                severity=ViolationSeverity.ERROR,
                message=f"Order placed at {ctx.order.placed_at:%H:%M}, outside restaurant operating hours",
                action=ViolationAction.BLOCK,
            ))
        return results


class InventoryValidator:
    """Валидатор наличия позиций меню"""

    @staticmethod
    def validate(ctx: ValidationContext) -> List[Violation]:
        results = []
        if ctx.order.order_type not in ctx.catalog.inventory_checked_types:
            return results

        for item in ctx.order.items:
            if ctx.restaurant.is_item_unavailable(item):
                results.append(Violation(
                    type="item_unavailable",
                    severity=ViolationSeverity.WARNING,
                    message=f'Item "{item.name}" may not be available',
                    action=ViolationAction.WARN,
                ))
        return results


class DeliveryAreaValidator:
    """Валидатор зоны доставки"""

    @staticmethod
    def validate(ctx: ValidationContext) -> List[Violation]:
        results = []
        city = ctx.order.delivery_address.city
        if not ctx.catalog.serves_city(city):
            results.append(Violation(
                type="outside_delivery_area",
                severity=ViolationSeverity.ERROR,
                message=f"Delivery address in {city} is outside the service area",
                action=ViolationAction.BLOCK,
            ))
        return results


class MinimumOrderValidator:
    """Валидатор минимальной суммы заказа"""

    @staticmethod
    def validate(ctx: ValidationContext) -> List[Violation]:
        results = []
        minimum = ctx.restaurant.minimum_order
        if ctx.order.total_amount < minimum:
            results.append(Violation(
                type="below_minimum_order",
                severity=ViolationSeverity.ERROR,
                message=f"Order value below minimum (₱{minimum:,.2f})",
                action=ViolationAction.BLOCK,
            ))
        return results


class PeakHourValidator:
    """Предупреждение о пиковых часах"""

    @staticmethod
    def validate(ctx: ValidationContext) -> List[Violation]:
        results = []
        is_peak = ctx.catalog.is_peak_hour(ctx.order.placed_at.hour)
        if is_peak and ctx.order.priority not in ctx.catalog.peak_advisory_exempt_priorities:
            results.append(Violation(
                type="peak_hour_delay",
                severity=ViolationSeverity.WARNING,
                message="Order placed during peak hours - expect delays",
                action=ViolationAction.MONITOR,
            ))
        return results


class CustomerLimitValidator:
    """Лимит заказов клиента за день"""

    @staticmethod
    def validate(ctx: ValidationContext) -> List[Violation]:
        results = []
        day = ctx.order.placed_at.date()
        todays_orders = [o for o in ctx.customer_orders if o.placed_at.date() == day]

        if len(todays_orders) >= ctx.catalog.daily_order_limit:
            results.append(Violation(
                type="daily_order_limit",
                severity=ViolationSeverity.WARNING,
                message=f"Customer placed {len(todays_orders)} orders today, approaching daily limit",
                action=ViolationAction.MONITOR,
            ))
        return results
