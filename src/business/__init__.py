"""
Business Logic Core: order rules, pricing and state machine
"""

from .rules import BusinessRuleValidator
from .pricing import PricingAdjuster
from .standards import (
    RuleCatalog,
    SLATargets,
    PriorityProfile,
    Violation,
    ViolationSeverity,
    ViolationAction,
)
from .validators import (
    ValidationContext,
    RestaurantStatusValidator,
    OperatingHoursValidator,
    InventoryValidator,
    DeliveryAreaValidator,
    MinimumOrderValidator,
    PeakHourValidator,
    CustomerLimitValidator,
)

__all__ = [
    'BusinessRuleValidator',
    'PricingAdjuster',
    'RuleCatalog',
    'SLATargets',
    'PriorityProfile',
    'Violation',
    'ViolationSeverity',
    'ViolationAction',
    'ValidationContext',
    'RestaurantStatusValidator',
    'OperatingHoursValidator',
    'InventoryValidator',
    'DeliveryAreaValidator',
    'MinimumOrderValidator',
    'PeakHourValidator',
    'CustomerLimitValidator',
]

__version__ = '1.0.0'
