"""
Unit tests for metrics collection and Prometheus export.
"""
import pytest

from lashdesk.lib.metrics import MetricsCollector, get_metrics_collector, reset_metrics


@pytest.fixture
def metrics():
    """Fresh metrics collector for each test."""
    return MetricsCollector()


@pytest.mark.unit
def test_metrics_collector_initialization(metrics):
    assert metrics.export_prometheus() == ""


@pytest.mark.unit
def test_increment_payments_lowercases_labels(metrics):
    metrics.increment_payments(method="MPESA")
    metrics.increment_payments(method="mpesa", status="Recorded", amount=2)

    value = metrics.get_counter_value("booking_payments_total", {"method": "mpesa", "status": "recorded"})
    assert value == 3


@pytest.mark.unit
def test_discount_validation_result_kept_as_is(metrics):
    metrics.increment_discount_validations("ExhaustedPool")

    assert metrics.get_counter_value("discount_validations_total", {"result": "ExhaustedPool"}) == 1
    assert metrics.get_counter_value("discount_validations_total", {"result": "exhaustedpool"}) == 0


@pytest.mark.unit
def test_export_prometheus_format(metrics):
    metrics.increment_transitions("cancel")
    metrics.increment_transitions("reschedule", amount=2)
    metrics.increment_checkouts("partial")

    output = metrics.export_prometheus()

    assert "# HELP booking_transitions_total Total number of booking ledger operations" in output
    assert "# TYPE booking_transitions_total counter" in output
    assert 'booking_transitions_total{action="cancel"} 1' in output
    assert 'booking_transitions_total{action="reschedule"} 2' in output
    assert 'checkouts_total{payment_status="partial"} 1' in output
    # metric families are sorted by name
    assert output.index("booking_transitions_total") < output.index("checkouts_total")


@pytest.mark.unit
def test_notification_labels(metrics):
    metrics.increment_notifications("aftercare", "sent")
    metrics.increment_notifications("aftercare", "skipped")

    assert metrics.get_counter_value("notifications_total", {"kind": "aftercare", "status": "sent"}) == 1
    assert 'notifications_total{kind="aftercare",status="skipped"} 1' in metrics.export_prometheus()


@pytest.mark.unit
def test_reset_all(metrics):
    metrics.increment_checkouts("pending")
    metrics.reset_all()

    assert metrics.export_prometheus() == ""


@pytest.mark.unit
def test_global_collector_is_shared_until_reset():
    first = get_metrics_collector()
    assert get_metrics_collector() is first

    reset_metrics()
    assert get_metrics_collector() is not first
