"""
Tests for the logging helpers
"""
from src.utils.logger import AutomationLogger, PerformanceLogger


class TestPerformanceLogger:

    def setup_method(self):
        self.performance = PerformanceLogger(AutomationLogger("order_automation.tests"))

    def test_finished_timers_are_not_retained(self):
        for _ in range(50):
            timer_id = self.performance.start_timer("order_placement")
            self.performance.end_timer(timer_id, order_id="o1")

        summary = self.performance.get_metrics_summary()

        assert self.performance.running_count() == 0
        assert summary["total_operations"] == 50
        assert summary["by_operation"]["order_placement"]["count"] == 50

    def test_concurrent_timers_get_distinct_ids(self):
        first = self.performance.start_timer("order_placement")
        second = self.performance.start_timer("order_placement")

        assert first != second
        assert self.performance.running_count() == 2

        self.performance.end_timer(second, success=False)
        summary = self.performance.get_metrics_summary()
        assert summary["successful_operations"] == 0
        assert self.performance.running_count() == 1

    def test_unknown_timer_is_ignored(self):
        assert self.performance.end_timer("missing#1") == 0
        assert self.performance.get_metrics_summary() == {"total_operations": 0}


class TestContextFormatting:

    def test_long_values_are_clipped_and_none_dropped(self):
        context = AutomationLogger._format_context(
            order_id="o1",
            note="x" * 300,
            items=list(range(400)),
            restaurant_id=None,
        )

        assert context.startswith("| ")
        assert '"order_id": "o1"' in context
        assert "x" * 200 + "..." in context
        assert "<list size=" in context
        assert "restaurant_id" not in context

    def test_empty_context(self):
        assert AutomationLogger._format_context() == ""
        assert AutomationLogger._format_context(order_id=None) == ""
