"""Counters and gauges for registry, application and client activity."""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterable, Sequence
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

_server_logger = logging.getLogger(__name__)


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str, labels: Sequence[str] = ()) -> None:
        self.name = name
        self.help = help
        self.labels = tuple(labels)
        self._values: dict[tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def _key(self, args: Iterable[object]) -> tuple[str, ...]:
        key = tuple(str(a) for a in args)
        if len(key) != len(self.labels):
            raise ValueError(
                f"metric {self.name} expects {len(self.labels)} label values, got {len(key)}"
            )
        return key

    def value(self, *args: object) -> float:
        """Return the current value for the given label values."""
        key = self._key(args)
        with self._lock:
            return self._values.get(key, 0.0)

    def samples(self) -> list[tuple[tuple[str, ...], float]]:
        with self._lock:
            items = dict(self._values)
        if not self.labels and not items:
            items[()] = 0.0
        return sorted(items.items())


class Counter(_Metric):
    """A monotonically increasing value, optionally partitioned by labels."""

    kind = "counter"

    def inc(self, *args: object) -> None:
        self.add(1, *args)

    def add(self, amount: float, *args: object) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease in value")
        key = self._key(args)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, *args: object) -> float:
        return super().value(*args)


class Gauge(_Metric):
    """A value that can go up and down, optionally partitioned by labels."""

    kind = "gauge"

    def set(self, amount: float, *args: object) -> None:
        key = self._key(args)
        with self._lock:
            self._values[key] = float(amount)

    def value(self, *args: object) -> float:
        return super().value(*args)


def _format_value(value: float) -> str:
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if math.isnan(value):
        return "NaN"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


class MetricsRegistry:
    """A set of named metrics that can be rendered in text exposition format."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _register(self, metric: _Metric) -> None:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"duplicate metric registration: {metric.name}")
            self._metrics[metric.name] = metric

    def counter(self, name: str, help: str, labels: Sequence[str] = ()) -> Counter:
        metric = Counter(name, help, labels)
        self._register(metric)
        return metric

    def gauge(self, name: str, help: str, labels: Sequence[str] = ()) -> Gauge:
        metric = Gauge(name, help, labels)
        self._register(metric)
        return metric

    def render(self) -> str:
        """Return all metrics, sorted by name, in text exposition format."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        lines = []
        for metric in metrics:
            lines.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for key, value in metric.samples():
                if key:
                    pairs = ",".join(
                        f'{label}="{_escape_label(v)}"' for label, v in zip(metric.labels, key)
                    )
                    lines.append(f"{metric.name}{{{pairs}}} {_format_value(value)}")
                else:
                    lines.append(f"{metric.name} {_format_value(value)}")
        return "".join(line + "\n" for line in lines)


class EndpointMetrics:
    """Metrics for registry endpoints."""

    def __init__(self, registry: MetricsRegistry | None = None) -> None:
        registry = registry or default_registry()
        self.requests_total = registry.counter(
            "argocd_image_updater_registry_requests_total",
            "The total number of requests to this endpoint",
            ["registry"],
        )
        self.requests_failed = registry.counter(
            "argocd_image_updater_registry_requests_failed_total",
            "The number of failed requests to this endpoint",
            ["registry"],
        )

    def increase_request(self, registry_url: str, is_failed: bool) -> None:
        self.requests_total.inc(registry_url)
        if is_failed:
            self.requests_failed.inc(registry_url)


class ApplicationMetrics:
    """Metrics for watched applications."""

    def __init__(self, registry: MetricsRegistry | None = None) -> None:
        registry = registry or default_registry()
        self.applications_total = registry.gauge(
            "argocd_image_updater_applications_watched_total",
            "The total number of applications watched by Argo CD Image Updater",
        )
        self.images_watched_total = registry.gauge(
            "argocd_image_updater_images_watched_total",
            "Number of images watched by Argo CD Image Updater",
            ["application"],
        )
        self.images_updated_total = registry.counter(
            "argocd_image_updater_images_updated_total",
            "Number of images updates by Argo CD Image Updater",
            ["application"],
        )
        self.images_updated_errors_total = registry.counter(
            "argocd_image_updater_images_errors_total",
            "Number of errors reported by Argo CD Image Updater",
            ["application"],
        )

    def set_number_of_applications(self, num: int) -> None:
        self.applications_total.set(num)

    def set_number_of_images_watched(self, application: str, num: int) -> None:
        self.images_watched_total.set(num, application)

    def increase_image_update(self, application: str, by: int) -> None:
        self.images_updated_total.add(by, application)

    def increase_update_errors(self, application: str, by: int) -> None:
        self.images_updated_errors_total.add(by, application)


class ClientMetrics:
    """Metrics for Kubernetes and Argo CD API clients."""

    def __init__(self, registry: MetricsRegistry | None = None) -> None:
        registry = registry or default_registry()
        self.argocd_requests_total = registry.counter(
            "argocd_image_updater_argocd_api_requests_total",
            "The total number of Argo CD API requests performed by the Argo CD Image Updater",
            ["argocd_server"],
        )
        self.argocd_requests_errors_total = registry.counter(
            "argocd_image_updater_argocd_api_errors_total",
            "The total number of Argo CD API requests resulting in error",
            ["argocd_server"],
        )
        self.kube_api_requests_total = registry.counter(
            "argocd_image_updater_k8s_api_requests_total",
            "The total number of Argo CD API requests resulting in error",
        )
        self.kube_api_requests_errors_total = registry.counter(
            "argocd_image_updater_k8s_api_errors_total",
            "The total number of Argo CD API requests resulting in error",
        )

    def increase_argocd_client_request(self, server: str, by: int) -> None:
        self.argocd_requests_total.add(by, server)

    def increase_argocd_client_error(self, server: str, by: int) -> None:
        self.argocd_requests_errors_total.add(by, server)

    def increase_k8s_client_request(self, by: int) -> None:
        self.kube_api_requests_total.add(by)

    def increase_k8s_client_error(self, by: int) -> None:
        self.kube_api_requests_errors_total.add(by)


_default_registry = MetricsRegistry()
_endpoint_metrics = EndpointMetrics(_default_registry)
_application_metrics = ApplicationMetrics(_default_registry)
_client_metrics = ClientMetrics(_default_registry)


def default_registry() -> MetricsRegistry:
    """Return the process-wide metrics registry."""
    return _default_registry


def endpoint() -> EndpointMetrics:
    return _endpoint_metrics


def applications() -> ApplicationMetrics:
    return _application_metrics


def clients() -> ClientMetrics:
    return _client_metrics


def start_metrics_server(port: int) -> ThreadingHTTPServer:
    """Serve the default registry on ``/metrics`` in a background thread.

    Binding errors are raised immediately. Call ``shutdown()`` on the
    returned server to stop it.
    """
    registry = default_registry()

    class _Handler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            if self.path.split("?", 1)[0] != "/metrics":
                self.send_error(404)
                return
            body = registry.render().encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:
            # Route access logs to the logging system at debug level instead of stderr.
            _server_logger.debug("%s - %s", self.address_string(), format % args)

    server = ThreadingHTTPServer(("", port), _Handler)
    thread = threading.Thread(target=server.serve_forever, name="metrics-server", daemon=True)
    thread.start()
    return server