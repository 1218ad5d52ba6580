import urllib.error
import urllib.request

import pytest

from imageupdater import metrics
from imageupdater.metrics import (
    ApplicationMetrics,
    ClientMetrics,
    EndpointMetrics,
    MetricsRegistry,
)


def test_counter_add_and_value():
    reg = MetricsRegistry()
    c = reg.counter("things_total", "Things", ["kind"])
    c.add(3, "a")
    c.add(2, "a")
    assert c.value("a") == 3 + 2
    assert c.value("b") == 0


def test_counter_rejects_negative():
    c = MetricsRegistry().counter("things_total", "Things")
    with pytest.raises(ValueError):
        c.add(-1)


def test_wrong_label_count_raises():
    c = MetricsRegistry().counter("things_total", "Things", ["kind"])
    with pytest.raises(ValueError):
        c.inc()
    with pytest.raises(ValueError):
        c.inc("a", "b")


def test_gauge_set_overwrites():
    g = MetricsRegistry().gauge("level", "Level", ["app"])
    g.set(7, "x")
    g.set(4, "x")
    assert g.value("x") == 4


def test_duplicate_registration_raises():
    reg = MetricsRegistry()
    reg.counter("dup_total", "Dup")
    with pytest.raises(ValueError):
        reg.gauge("dup_total", "Dup")


def test_render_exposition_format():
    reg = MetricsRegistry()
    c = reg.counter("requests_total", "Total requests", ["registry"])
    c.inc("a")
    text = reg.render()
    assert "# HELP requests_total Total requests\n" in text
    assert "# TYPE requests_total counter\n" in text
    assert 'requests_total{registry="a"} 1\n' in text


def test_render_escapes_label_values():
    reg = MetricsRegistry()
    reg.gauge("g", "G", ["l"]).set(2, 'a"b')
    assert 'g{l="a\\"b"} 2' in reg.render()


def test_endpoint_metrics_counts_failures():
    m = EndpointMetrics(MetricsRegistry())
    m.increase_request("https://registry.example.com", False)
    assert m.requests_total.value("https://registry.example.com") == 1
    assert m.requests_failed.value("https://registry.example.com") == 0
    m.increase_request("https://registry.example.com", True)
    assert m.requests_failed.value("https://registry.example.com") == 1


def test_application_metrics():
    reg = MetricsRegistry()
    m = ApplicationMetrics(reg)
    m.set_number_of_applications(5)
    m.set_number_of_images_watched("app", 4)
    m.increase_image_update("app", 2)
    m.increase_update_errors("app", 6)
    assert m.applications_total.value() == 5
    assert m.images_watched_total.value("app") == 4
    assert m.images_updated_total.value("app") == 2
    assert m.images_updated_errors_total.value("app") == 6
    assert "argocd_image_updater_applications_watched_total 5" in reg.render()


def test_client_metrics():
    m = ClientMetrics(MetricsRegistry())
    m.increase_argocd_client_request("argocd.example.com", 3)
    m.increase_argocd_client_error("argocd.example.com", 2)
    m.increase_k8s_client_request(8)
    m.increase_k8s_client_error(5)
    assert m.argocd_requests_total.value("argocd.example.com") == 3
    assert m.argocd_requests_errors_total.value("argocd.example.com") == 2
    assert m.kube_api_requests_total.value() == 8
    assert m.kube_api_requests_errors_total.value() == 5


def test_global_metrics_use_default_registry():
    before = metrics.applications().images_updated_total.value("global-app")
    metrics.applications().increase_image_update("global-app", 3)
    assert metrics.applications().images_updated_total.value("global-app") == before + 3
    assert 'argocd_image_updater_images_updated_total{application="global-app"}' in (
        metrics.default_registry().render()
    )
    assert metrics.endpoint() is metrics.endpoint()
    assert metrics.clients() is metrics.clients()


def test_metrics_server_serves_metrics():
    server = metrics.start_metrics_server(0)
    try:
        port = server.server_address[1]
        with urllib.request.urlopen(f"http://127.0.0.1:{port}/metrics") as resp:
            body = resp.read().decode()
            assert resp.status == 200
        assert "# TYPE argocd_image_updater_registry_requests_total counter" in body
        with pytest.raises(urllib.error.HTTPError) as excinfo:
            urllib.request.urlopen(f"http://127.0.0.1:{port}/other")
        assert excinfo.value.code == 404
    finally:
        server.shutdown()
        server.server_close()