from service_callback.prometheus import CallbackMetrics


def test_callback_metrics_counters_and_gauge():
    metrics = CallbackMetrics()

    metrics.inc_delivered("probate")
    metrics.inc_retried(None)
    metrics.inc_dead_lettered("", "InvalidMessage")
    metrics.inc_settlement_error("probate")
    metrics.inc_notification(True)
    metrics.inc_notification(False)
    metrics.set_batch_size(7)

    output = metrics.generate_latest()
    assert b'scb_delivered_total{service="probate"} 1.0' in output
    assert b'scb_retried_total{service="unknown"} 1.0' in output
    assert b'scb_dead_lettered_total{service="unknown",reason="InvalidMessage"} 1.0' in output
    assert b'scb_settlement_errors_total{service="probate"} 1.0' in output
    assert b'scb_notifications_total{status="sent"} 1.0' in output
    assert b'scb_notifications_total{status="failed"} 1.0' in output
    assert b"scb_last_batch_size 7.0" in output


def test_instances_do_not_share_registries():
    first, second = CallbackMetrics(), CallbackMetrics()
    first.inc_delivered("a")

    assert b"scb_delivered_total{" not in second.generate_latest()
