"""
Webhook Routes - Telegram update intake
"""
import hmac
import logging

from flask import Blueprint, current_app, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from api_responses import error_response, ErrorCode

logger = logging.getLogger("main")

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

webhook_bp = Blueprint("webhook", __name__)

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


@webhook_bp.route("/webhook", methods=["POST"])
@limiter.limit("30 per minute")
def telegram_webhook():
    services = current_app.extensions["moviebot"]

    secret = services.settings["bot"]["webhook_secret"]
    if secret and not hmac.compare_digest(request.headers.get(SECRET_HEADER, ""), secret):
        logger.warning(f"Webhook call with invalid secret from {request.remote_addr}")
        return error_response(ErrorCode.UNAUTHORIZED, status_code=401, log_error=False)

    update = request.get_json(silent=True)
    if not isinstance(update, dict):
        return error_response(ErrorCode.VALIDATION_ERROR, message="Update must be a JSON object", status_code=400)

    services.bot.handle_update(update)
    return jsonify({"ok": True})
