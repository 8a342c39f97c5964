"""
Prometheus metrics: HTTP instrumentation plus quote line counters.

/metrics is not authenticated; restrict it to the monitoring network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'HTTP requests currently being processed',
    registry=_metric_registry
)

quote_line_derivations_total = Counter(
    'quote_line_derivations_total',
    'Quote line derivations served by the API',
    ['rule_set', 'initial_load'],
    registry=_metric_registry
)

quote_line_batch_saves_total = Counter(
    'quote_line_batch_saves_total',
    'Quote line batch saves',
    ['outcome'],
    registry=_metric_registry
)

quote_lines_saved_total = Counter(
    'quote_lines_saved_total',
    'Quote lines written by batch saves',
    registry=_metric_registry
)


def setup_metrics_instrumentation(app):
    """Register request hooks that time every request except /metrics itself."""

    @app.before_request
    def start_request_timer():
        if request.path == '/metrics':
            return
        g._metrics_started = time.perf_counter()
        http_requests_in_flight.inc()

    @app.after_request
    def record_request(response):
        started = g.pop('_metrics_started', None)
        if started is None:
            return response
        try:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(
                time.perf_counter() - started
            )
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except Exception as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        finally:
            http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus exposition of the process (or multiprocess) registry."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
