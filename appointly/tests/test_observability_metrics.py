from appointly.observability.metrics import InMemoryMetrics


def test_metrics_snapshot_includes_latency_percentiles_and_counts():
    m = InMemoryMetrics(latency_window=10)

    m.observe_request("/api/health", 200, 12.0)
    m.observe_request("/api/appointments", 201, 24.0, tenant="clinic.com")
    m.observe_request("/api/appointments", 409, 30.0, tenant="clinic.com")
    m.observe_request("/api/specialists/1/available-slots", 500, 200.0, tenant="other.org")

    snap = m.snapshot()

    assert snap["requests_total"] == 4
    assert snap["status_counts"] == {"2xx": 2, "4xx": 1, "5xx": 1}
    assert snap["path_counts"]["/api/appointments"] == 2
    assert snap["tenant_counts"] == {"clinic.com": 2, "other.org": 1}
    assert snap["booking_conflicts"] == 1
    assert snap["latency_ms"]["samples"] == 4
    assert snap["latency_ms"]["p95"] >= snap["latency_ms"]["p50"]


def test_reset_clears_counters():
    m = InMemoryMetrics()
    m.observe_request("/api/appointments", 409, 5.0, tenant="clinic.com")

    m.reset()

    snap = m.snapshot()
    assert snap["requests_total"] == 0
    assert snap["tenant_counts"] == {}
    assert snap["latency_ms"]["p50"] == 0.0
