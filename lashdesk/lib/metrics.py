"""
Prometheus-compatible counters for the booking ledger and Labs checkout.

Usage:
    from lashdesk.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_payments(method="cash", status="recorded")
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Optional, Tuple
from threading import Lock


LabelKey = Tuple[Tuple[str, str], ...]


class MetricsCollector:
    """
    Counters:
    - booking_payments_total: Payments by method and outcome
    - booking_transitions_total: Ledger operations (cancel, reschedule, fine, ...)
    - discount_validations_total: Discount-code checks by result kind
    - checkouts_total: Completed Labs checkouts by payment status
    - notifications_total: Side-effect dispatches by kind and outcome

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "booking_payments_total": "Total number of booking payment attempts",
        "booking_transitions_total": "Total number of booking ledger operations",
        "discount_validations_total": "Total number of discount code validations",
        "checkouts_total": "Total number of completed Labs checkouts",
        "notifications_total": "Total number of notification dispatches",
    }

    def __init__(self):
        self._lock = Lock()
        self._counters: Dict[Tuple[str, LabelKey], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, LabelKey]:
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def increment_payments(self, method: str, status: str = "recorded", amount: int = 1):
        self._increment(
            "booking_payments_total",
            {"method": method.lower(), "status": status.lower()},
            amount,
        )

    def increment_transitions(self, action: str, amount: int = 1):
        self._increment("booking_transitions_total", {"action": action.lower()}, amount)

    def increment_discount_validations(self, result: str, amount: int = 1):
        """
        Args:
            result: "valid" or the rejection kind (ExhaustedPool, BelowMinimum, ...)
        """
        self._increment("discount_validations_total", {"result": result}, amount)

    def increment_checkouts(self, payment_status: str, amount: int = 1):
        self._increment("checkouts_total", {"payment_status": payment_status.lower()}, amount)

    def increment_notifications(self, kind: str, status: str, amount: int = 1):
        self._increment(
            "notifications_total",
            {"kind": kind.lower(), "status": status.lower()},
            amount,
        )

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics() -> None:
    """Drop the global collector (for testing)."""
    global _metrics_collector
    _metrics_collector = None
