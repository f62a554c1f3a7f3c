"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and QuickBooks sync counters.
This endpoint should be restricted to internal network or monitoring systems only.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
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
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# QuickBooks sync metrics
quickbooks_sync_operations_total = Counter(
    'quickbooks_sync_operations_total',
    'QuickBooks push/pull operations by outcome',
    ['direction', 'outcome'],
    registry=_metric_registry
)

quickbooks_pulled_estimates_total = Counter(
    'quickbooks_pulled_estimates_total',
    'Estimates processed by the QuickBooks pull',
    ['result'],
    registry=_metric_registry
)


def record_push(outcome):
    """outcome: 'created', 'updated', 'configuration' or 'upstream'."""
    quickbooks_sync_operations_total.labels(direction='push', outcome=outcome).inc()


def record_pull(result):
    """Record a SyncResult from the pull."""
    if not result.ok:
        quickbooks_sync_operations_total.labels(direction='pull', outcome=result.error_kind).inc()
        return

    quickbooks_sync_operations_total.labels(direction='pull', outcome='ok').inc()
    quickbooks_pulled_estimates_total.labels(result='created').inc(result.created)
    quickbooks_pulled_estimates_total.labels(result='updated').inc(result.updated)
    quickbooks_pulled_estimates_total.labels(result='error').inc(len(result.errors))


def setup_metrics_instrumentation(app):
    """
    Setup before_request and after_request hooks for automatic metrics collection.

    This should be called from app factory after app creation.
    """

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        try:
            if hasattr(g, '_prometheus_metrics_start_time'):
                duration = time.time() - g._prometheus_metrics_start_time

                # Endpoint name (e.g., 'quotes.get_quote')
                endpoint = request.endpoint or 'unknown'
                method = request.method

                http_request_duration_seconds.labels(
                    method=method,
                    endpoint=endpoint
                ).observe(duration)

                http_requests_total.labels(
                    method=method,
                    endpoint=endpoint,
                    http_status=response.status_code
                ).inc()

                http_requests_in_flight.dec()
        except Exception as e:
            # Don't break request flow if metrics fail
            app.logger.warning(f"Failed to record metrics: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint.

    Not authenticated; restrict by network/firewall rules in production.
    """
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
