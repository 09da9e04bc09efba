from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Tuple, FrozenSet

from config.settings import settings
from src.models.base import OrderStatus, OrderType, OrderPriority, SLAPhase


class ViolationSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ViolationAction(str, Enum):
    BLOCK = "block"
    WARN = "warn"
    MONITOR = "monitor"


@dataclass
class Violation:
    type: str
    severity: ViolationSeverity
    message: str
    action: ViolationAction

    @property
    def is_blocking(self) -> bool:
        return self.action == ViolationAction.BLOCK

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "action": self.action.value,
        }


@dataclass(frozen=True)
class SLATargets:
    """Бюджеты времени по фазам (минуты)"""
    acceptance: float
    preparation: float
    rider_assignment: float
    pickup: float
    delivery: float
    total_delivery: float

    def for_phase(self, phase: SLAPhase) -> float:
        # Delivery check measures the end-to-end promise, not the last leg.
        if phase == SLAPhase.DELIVERY:
            return self.total_delivery
        return getattr(self, phase.value)


@dataclass(frozen=True)
class PriorityProfile:
    level: OrderPriority
    multiplier: float  # fee multiplier
    sla_reduction: int  # % reduction of every SLA target
    assignment_priority: int  # ranking hint only

    def __post_init__(self):
        if not 0 <= self.sla_reduction <= 100:
            raise ValueError(f"sla_reduction must be within 0-100, got {self.sla_reduction}")

    @property
    def adjustment_factor(self) -> float:
        return (100 - self.sla_reduction) / 100


DEFAULT_SLA_TARGETS: Mapping[OrderType, SLATargets] = MappingProxyType({
    OrderType.FOOD: SLATargets(5, 20, 10, 15, 30, 60),
    OrderType.PABILI: SLATargets(10, 30, 15, 20, 45, 90),
    OrderType.PABAYAD: SLATargets(15, 5, 10, 15, 30, 45),
    OrderType.PARCEL: SLATargets(20, 10, 15, 20, 60, 120),
})

DEFAULT_PRIORITY_PROFILES: Mapping[OrderPriority, PriorityProfile] = MappingProxyType({
    OrderPriority.LOW: PriorityProfile(OrderPriority.LOW, 0.9, 0, 1),
    OrderPriority.NORMAL: PriorityProfile(OrderPriority.NORMAL, 1.0, 0, 5),
    OrderPriority.HIGH: PriorityProfile(OrderPriority.HIGH, 1.2, 10, 8),
    OrderPriority.EXPRESS: PriorityProfile(OrderPriority.EXPRESS, 1.5, 25, 10),
    OrderPriority.CRITICAL: PriorityProfile(OrderPriority.CRITICAL, 2.0, 40, 15),
})

# Статусы, при которых фаза считается выполненной (этап достигнут или пройден)
DEFAULT_EXPECTED_STATUSES: Mapping[SLAPhase, FrozenSet[OrderStatus]] = MappingProxyType({
    SLAPhase.ACCEPTANCE: frozenset({
        OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY,
        OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED,
    }),
    SLAPhase.PREPARATION: frozenset({
        OrderStatus.READY, OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED,
    }),
    SLAPhase.RIDER_ASSIGNMENT: frozenset({
        OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED,
    }),
    SLAPhase.PICKUP: frozenset({OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED}),
    SLAPhase.DELIVERY: frozenset({OrderStatus.DELIVERED}),
})

DEFAULT_SERVICE_CITIES: FrozenSet[str] = frozenset({
    "Manila", "Quezon City", "Makati", "Pasig", "Taguig",
    "Marikina", "San Juan", "Mandaluyong", "Pasay",
})


@dataclass(frozen=True)
class RuleCatalog:
    """Immutable business rule tables injected into every engine component"""

    sla_targets: Mapping[OrderType, SLATargets] = field(default_factory=lambda: DEFAULT_SLA_TARGETS)
    priority_profiles: Mapping[OrderPriority, PriorityProfile] = field(default_factory=lambda: DEFAULT_PRIORITY_PROFILES)
    expected_statuses: Mapping[SLAPhase, FrozenSet[OrderStatus]] = field(default_factory=lambda: DEFAULT_EXPECTED_STATUSES)

    # Пиковые часы: 11:00-13:59 и 18:00-20:59
    peak_windows: Tuple[Tuple[int, int], ...] = ((11, 13), (18, 20))
    surge_multiplier: float = 1.2
    peak_advisory_exempt_priorities: FrozenSet[OrderPriority] = frozenset({OrderPriority.EXPRESS})

    default_opening_hour: int = 6
    default_closing_hour: int = 22
    service_cities: FrozenSet[str] = DEFAULT_SERVICE_CITIES
    daily_order_limit: int = 10
    inventory_checked_types: FrozenSet[OrderType] = frozenset({OrderType.FOOD, OrderType.PABILI})

    @classmethod
    def from_settings(cls) -> "RuleCatalog":
        return cls(
            surge_multiplier=settings.PEAK_SURGE_MULTIPLIER,
            service_cities=frozenset(settings.SERVICE_CITIES),
            daily_order_limit=settings.DAILY_ORDER_LIMIT,
        )

    def with_overrides(self, **changes) -> "RuleCatalog":
        return replace(self, **changes)

    def targets_for(self, order_type: OrderType) -> SLATargets:
        return self.sla_targets.get(order_type, self.sla_targets[OrderType.FOOD])

    def profile_for(self, priority: OrderPriority) -> PriorityProfile:
        return self.priority_profiles.get(priority, self.priority_profiles[OrderPriority.NORMAL])

    def adjusted_minutes(self, order_type: OrderType, priority: OrderPriority, phase: SLAPhase) -> float:
        """Phase target shrunk by the priority's SLA reduction"""
        return self.targets_for(order_type).for_phase(phase) * self.profile_for(priority).adjustment_factor

    def adjusted_total_minutes(self, order_type: OrderType, priority: OrderPriority) -> float:
        return self.targets_for(order_type).total_delivery * self.profile_for(priority).adjustment_factor

    def is_peak_hour(self, hour: int) -> bool:
        return any(start <= hour <= end for start, end in self.peak_windows)

    def serves_city(self, city: str) -> bool:
        wanted = city.strip().lower()
        return any(wanted == c.lower() for c in self.service_cities)

    def to_dict(self) -> dict:
        return {
            "sla_targets": {t.value: vars(s) for t, s in self.sla_targets.items()},
            "priority_profiles": {
                p.value: {
                    "multiplier": prof.multiplier,
                    "sla_reduction": prof.sla_reduction,
                    "assignment_priority": prof.assignment_priority,
                }
                for p, prof in self.priority_profiles.items()
            },
            "expected_statuses": {
                phase.value: sorted(s.value for s in statuses)
                for phase, statuses in self.expected_statuses.items()
            },
            "peak_windows": [list(w) for w in self.peak_windows],
            "surge_multiplier": self.surge_multiplier,
            "operating_hours": [self.default_opening_hour, self.default_closing_hour],
            "service_cities": sorted(self.service_cities),
            "daily_order_limit": self.daily_order_limit,
            "inventory_checked_types": sorted(t.value for t in self.inventory_checked_types),
        }
