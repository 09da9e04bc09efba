"""
Logging configuration for the order automation engine
"""
import itertools
import json
import logging
import sys
import time
from typing import Any, Dict, Tuple
from config.settings import settings

MAX_TEXT_CHARS = 200
MAX_COLLECTION_CHARS = 500


def _clip(value: Any) -> Any:
    """Shorten long strings and collections before they hit the log line"""
    if isinstance(value, str) and len(value) > MAX_TEXT_CHARS:
        return f"{value[:MAX_TEXT_CHARS]}..."
    if isinstance(value, (dict, list, tuple, set, frozenset)):
        size = len(str(value))
        if size > MAX_COLLECTION_CHARS:
            return f"<{type(value).__name__} size={size}>"
    return value


class AutomationLogger:
    """Logger with a JSON context suffix for automation events"""

    def __init__(self, name: str = "order_automation"):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            self.logger.addHandler(self._console_handler())
            self.logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
            # Без propagate, иначе root logger из main.py дублирует строки
            self.logger.propagate = False

    @staticmethod
    def _console_handler() -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=settings.LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        return handler

    def _log(self, level: int, message: str, context: Dict[str, Any], exc_info: bool = False):
        if not self.logger.isEnabledFor(level):
            return
        if context and (settings.DETAILED_LOGGING or level >= logging.WARNING):
            message = f"{message} {self._format_context(**context)}"
        self.logger.log(level, message, exc_info=exc_info)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def debug(self, message: str, **kwargs):
        if settings.DEBUG:
            self._log(logging.DEBUG, message, kwargs)

    def exception(self, message: str, **kwargs):
        """Error with the active traceback attached"""
        self._log(logging.ERROR, message, kwargs, exc_info=True)

    def assignment_attempt(self, order_id: str, restaurant_id: str, outcome: str, **kwargs):
        """Логирование попытки назначения ресторана"""
        self.info(
            f"🍽️ Assignment attempt {outcome}",
            order_id=order_id,
            restaurant_id=restaurant_id,
            outcome=outcome,
            **kwargs
        )

    def sla_check(self, order_id: str, phase: str, breached: bool, **kwargs):
        """Логирование SLA проверки"""
        log = self.warning if breached else self.info
        log(
            f"⏱️ SLA check {phase}: {'BREACH' if breached else 'ok'}",
            order_id=order_id,
            phase=phase,
            breached=breached,
            **kwargs
        )

    def performance_metric(self, metric_name: str, value: Any, unit: str = "", **kwargs):
        self.info(
            f"📊 Performance: {metric_name} = {value}{unit}",
            metric=metric_name,
            value=value,
            unit=unit,
            **kwargs
        )

    def business_event(self, event: str, **kwargs):
        self.info(f"💼 Business event: {event}", event=event, **kwargs)

    @staticmethod
    def _format_context(**kwargs) -> str:
        context = {key: _clip(value) for key, value in kwargs.items() if value is not None}
        if not context:
            return ""
        return f"| {json.dumps(context, ensure_ascii=False, default=str)}"


class PerformanceLogger:
    """Times engine operations.

    Only timers still running are kept individually; finished ones are
    folded into per-operation aggregates, so memory stays bounded by the
    number of distinct operations.
    """

    def __init__(self, logger: AutomationLogger):
        self.logger = logger
        self._ids = itertools.count(1)
        self._running: Dict[str, Tuple[str, float]] = {}
        self._totals: Dict[str, Dict[str, Any]] = {}

    def start_timer(self, operation: str) -> str:
        timer_id = f"{operation}#{next(self._ids)}"
        self._running[timer_id] = (operation, time.perf_counter())
        return timer_id

    def end_timer(self, timer_id: str, success: bool = True, **kwargs) -> int:
        started = self._running.pop(timer_id, None)
        if started is None:
            return 0

        operation, start = started
        duration_ms = int((time.perf_counter() - start) * 1000)

        totals = self._totals.setdefault(operation, {
            "count": 0, "successes": 0, "total_ms": 0, "min_ms": duration_ms, "max_ms": duration_ms,
        })
        totals["count"] += 1
        totals["successes"] += int(success)
        totals["total_ms"] += duration_ms
        totals["min_ms"] = min(totals["min_ms"], duration_ms)
        totals["max_ms"] = max(totals["max_ms"], duration_ms)

        self.logger.performance_metric(f"{operation}_duration", duration_ms, "ms", success=success, **kwargs)
        return duration_ms

    def running_count(self) -> int:
        return len(self._running)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Сводка по завершенным операциям"""
        count = sum(t["count"] for t in self._totals.values())
        if not count:
            return {"total_operations": 0}

        successes = sum(t["successes"] for t in self._totals.values())
        return {
            "total_operations": count,
            "successful_operations": successes,
            "success_rate": successes / count * 100,
            "avg_duration_ms": sum(t["total_ms"] for t in self._totals.values()) / count,
            "min_duration_ms": min(t["min_ms"] for t in self._totals.values()),
            "max_duration_ms": max(t["max_ms"] for t in self._totals.values()),
            "by_operation": {
                op: {"count": t["count"], "avg_duration_ms": t["total_ms"] / t["count"]}
                for op, t in self._totals.items()
            },
        }


# Глобальные экземпляры логгеров
logger = AutomationLogger("order_automation")
performance_logger = PerformanceLogger(logger)
