"""
Storage collaborator contract and an in-memory implementation
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from src.models.order import Order, Restaurant, SLACheckResult
from src.business.errors import ConcurrencyConflict, OrderNotFound
from src.utils.logger import logger


class OrderStorage(ABC):
    """System of record for orders and restaurants.

    Implementations must give read-your-writes consistency for a single
    order id and bump ``Order.version`` on every write.
    """

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    async def update_order(self, order_id: str, fields: Dict[str, Any],
                           expected_version: Optional[int] = None) -> Order:
        """Apply a partial update; raise ConcurrencyConflict on version mismatch"""

    @abstractmethod
    async def get_restaurant(self, restaurant_id: str) -> Optional[Restaurant]:
        ...

    @abstractmethod
    async def get_restaurants_by_city(self, city: str) -> List[Restaurant]:
        ...

    @abstractmethod
    async def get_orders_by_customer(self, customer_id: str) -> List[Order]:
        ...

    async def record_sla_check(self, result: SLACheckResult) -> None:
        """Persist an SLA check for analytics (optional)"""
        logger.debug("SLA check recording not supported by storage", order_id=result.order_id)

    async def wait_for_change(self, order_id: str, timeout: float) -> bool:
        """Block until the order changes or ``timeout`` elapses.

        The default has no change signal and simply sleeps, which turns
        callers into interval pollers.
        """
        await asyncio.sleep(timeout)
        return False


class InMemoryOrderStorage(OrderStorage):
    """Dictionary-backed storage with versioning and change signals"""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._restaurants: Dict[str, Restaurant] = {}
        self._sla_checks: List[SLACheckResult] = []
        self._change_events: Dict[str, asyncio.Event] = {}

    # -------------------- seeding --------------------

    def add_order(self, order: Order) -> Order:
        self._orders[order.id] = order
        return order

    def add_restaurant(self, restaurant: Restaurant) -> Restaurant:
        self._restaurants[restaurant.id] = restaurant
        return restaurant

    # -------------------- contract --------------------

    async def get_order(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def update_order(self, order_id: str, fields: Dict[str, Any],
                           expected_version: Optional[int] = None) -> Order:
        current = self._orders.get(order_id)
        if current is None:
            raise OrderNotFound(order_id)
        if expected_version is not None and expected_version != current.version:
            raise ConcurrencyConflict(order_id, expected_version, current.version)

        data = current.model_dump()
        data.update(fields)
        data["version"] = current.version + 1
        updated = Order.model_validate(data)
        self._orders[order_id] = updated

        self._signal_change(order_id)
        return updated.model_copy(deep=True)

    async def get_restaurant(self, restaurant_id: str) -> Optional[Restaurant]:
        return self._restaurants.get(restaurant_id)

    async def get_restaurants_by_city(self, city: str) -> List[Restaurant]:
        wanted = city.strip().lower()
        return [r for r in self._restaurants.values() if r.city.strip().lower() == wanted]

    async def get_orders_by_customer(self, customer_id: str) -> List[Order]:
        return [o.model_copy(deep=True) for o in self._orders.values() if o.customer_id == customer_id]

    async def record_sla_check(self, result: SLACheckResult) -> None:
        self._sla_checks.append(result)

    async def wait_for_change(self, order_id: str, timeout: float) -> bool:
        event = self._change_events.setdefault(order_id, asyncio.Event())
        try:
            await asyncio.wait_for(event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # -------------------- helpers --------------------

    def get_sla_checks(self, order_id: Optional[str] = None) -> List[SLACheckResult]:
        if order_id is None:
            return list(self._sla_checks)
        return [c for c in self._sla_checks if c.order_id == order_id]

    def _signal_change(self, order_id: str):
        # Wake current waiters, then arm a fresh event for the next change.
        event = self._change_events.pop(order_id, None)
        if event is not None:
            event.set()
