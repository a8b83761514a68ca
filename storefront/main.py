# storefront/main.py
import logging
import time

from flask import Flask, g, jsonify, request

from storefront.config import Config
from storefront.database import close_db, get_db, init_db
from storefront.blueprints.admin import admin_bp, admin_required
from storefront.blueprints.storefront import storefront_bp
from storefront.exceptions import StorefrontError
from storefront.observability import (
    check_database_health,
    check_gateway_configuration,
    configure_logging,
    get_metrics_snapshot,
    increment_counter,
    observe_latency,
)
from storefront.observability.logging_config import ensure_request_id

app = Flask(__name__)
Config.configure_app(app)
configure_logging(app)
app.register_blueprint(storefront_bp)
app.register_blueprint(admin_bp)

logger = logging.getLogger(__name__)

init_db()
logger.info("Database tables initialized")


@app.before_request
def before_request_logging():
    g.request_started_at = time.perf_counter()
    g.request_id = ensure_request_id()
    increment_counter(
        "http_requests_total",
        labels={
            "method": request.method,
            "endpoint": request.endpoint or request.path,
        },
    )


@app.after_request
def after_request_logging(response):
    started = getattr(g, "request_started_at", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000
        observe_latency(
            "http_request_latency_ms",
            duration_ms,
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
    request_id = getattr(g, "request_id", None)
    if request_id:
        response.headers[Config.REQUEST_ID_HEADER] = request_id
    if response.status_code >= 500:
        increment_counter(
            "http_errors_total",
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
        logger.error("Request finished with error status %s", response.status_code)
    else:
        logger.info("Request finished", extra={"status_code": response.status_code})
    return response


@app.teardown_appcontext
def teardown_db(exception):
    close_db(exception)


@app.errorhandler(StorefrontError)
def handle_storefront_error(error: StorefrontError):
    increment_counter("storefront_errors_total", labels={"kind": error.kind})
    if error.status_code >= 500:
        logger.error("Request failed: %s", error.message, extra={"kind": error.kind})
    else:
        logger.info("Request rejected: %s", error.message, extra={"kind": error.kind})
    return jsonify(error.to_dict()), error.status_code


@app.route("/health", methods=["GET"])
def health():
    db_status = check_database_health()
    gateway_status = (
        check_gateway_configuration(get_db()) if db_status.get("status") == "UP" else {"status": "UNKNOWN"}
    )
    overall = "UP" if db_status.get("status") == "UP" else "DEGRADED"
    status_code = 200 if overall == "UP" else 503
    return jsonify({
        "status": overall,
        "components": {
            "database": db_status,
            "paymentGateway": gateway_status,
        }
    }), status_code


@app.route("/metrics", methods=["GET"])
@admin_required
def metrics():
    return jsonify(get_metrics_snapshot())
