"""
System Routes - health and statistics endpoints
"""

from flask import Blueprint, current_app

from api_responses import success_response, handle_api_errors
from constants import BUILD_VERSION
from utils import now_utc

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _services():
    return current_app.extensions["moviebot"]


@system_bp.route("/health", methods=["GET"])
@handle_api_errors
def health_check_api():
    """Liveness plus the state of the catalog write buffer"""
    services = _services()
    return success_response(
        data={
            "status": "healthy",
            "version": BUILD_VERSION,
            "timestamp": now_utc().isoformat(),
            "pending_writes": len(services.catalog.pending()),
            "maintenance": bool(services.settings["bot"]["maintenance"]),
        }
    )


@system_bp.route("/catalog/stats", methods=["GET"])
@handle_api_errors
def catalog_stats_api():
    stats = _services().catalog.stats()
    # JSON object keys must be strings
    stats["channels"] = {str(channel_id): count for channel_id, count in stats["channels"].items()}
    return success_response(data=stats)


@system_bp.route("/requests/stats", methods=["GET"])
@handle_api_errors
def requests_stats_api():
    return success_response(data=_services().ledger.stats())
