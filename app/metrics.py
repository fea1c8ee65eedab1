from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from flask import Response, request
import time

# Catalog Metrics
catalog_appends_total = Counter("moviebot_catalog_appends_total", "Catalog append attempts", ["status"])

catalog_flushes_total = Counter("moviebot_catalog_flushes_total", "Catalog buffer flushes", ["status"])

catalog_records = Gauge("moviebot_catalog_records", "Records in the last catalog snapshot")

catalog_searches_total = Counter("moviebot_catalog_searches_total", "Catalog searches", ["outcome"])

# Request Ledger Metrics
requests_total = Counter("moviebot_requests_total", "Movie request operations", ["operation", "code"])

requests_auto_approved_total = Counter("moviebot_requests_auto_approved_total", "Requests approved by ingestion")

# Telegram Metrics
telegram_calls_total = Counter("moviebot_telegram_calls_total", "Telegram Bot API calls", ["method", "status"])

telegram_call_duration_seconds = Histogram(
    "moviebot_telegram_call_duration_seconds", "Telegram Bot API call duration", ["method"]
)

updates_total = Counter("moviebot_updates_total", "Telegram updates handled", ["kind"])

# Auto-delete Metrics
auto_delete_tracked = Gauge("moviebot_auto_delete_tracked", "Messages scheduled for deletion")

auto_delete_deleted_total = Counter("moviebot_auto_delete_deleted_total", "Messages deleted by the sweep", ["status"])

# API Metrics
api_request_duration_seconds = Histogram(
    "moviebot_api_request_duration_seconds", "API request duration", ["endpoint", "method"]
)

api_requests_total = Counter("moviebot_api_requests_total", "Total API requests", ["endpoint", "method", "status_code"])


def init_metrics(app):
    @app.route("/api/metrics")
    def metrics():
        return get_metrics_export()

    @app.before_request
    def before_request():
        request.start_time = time.time()

    @app.after_request
    def after_request(response):
        duration = time.time() - getattr(request, "start_time", time.time())
        api_request_duration_seconds.labels(endpoint=request.endpoint or "unknown", method=request.method).observe(
            duration
        )
        api_requests_total.labels(
            endpoint=request.endpoint or "unknown", method=request.method, status_code=response.status_code
        ).inc()
        return response

    app.logger.info("Prometheus metrics initialized at /api/metrics")


def get_metrics_export():
    """Get Prometheus metrics export for API endpoints."""
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
