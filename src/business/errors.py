"""
Error taxonomy of the automation engine
"""


class AutomationError(Exception):
    """Base class for engine errors"""


class OrderNotFound(AutomationError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class StorageFailure(AutomationError):
    """Raised by the storage collaborator; never retried by the engine"""


class ConcurrencyConflict(StorageFailure):
    """Optimistic version check failed on write"""

    def __init__(self, order_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Order {order_id} changed concurrently (expected v{expected_version}, found v{actual_version})"
        )
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class InvalidTransition(AutomationError):
    """Raised when a status change would break the order state machine"""


class NotificationFailure(AutomationError):
    """Notification dispatch failed; logged and swallowed by the notification service"""


class AssignmentTimeout(AutomationError):
    """A candidate restaurant did not accept within its window"""

    def __init__(self, order_id: str, restaurant_id: str, timeout: float):
        super().__init__(f"Restaurant {restaurant_id} did not accept order {order_id} within {timeout:.0f}s")
        self.order_id = order_id
        self.restaurant_id = restaurant_id
        self.timeout = timeout
