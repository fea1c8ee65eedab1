"""
Movie Bot - Custom Exceptions and Exception Handlers
"""
import structlog
from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = structlog.get_logger('exceptions')


class MovieBotException(Exception):
    """Base exception for the bot"""
    def __init__(self, message: str, code: str = "MOVIEBOT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {
            'error': True,
            'code': self.code,
            'message': self.message
        }


class ValidationException(MovieBotException):
    """Malformed movie names, ids or payloads"""
    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")
        logger.warning(f"Validation error: {message}")


class StorageException(MovieBotException):
    """Ledger file I/O failures"""
    def __init__(self, message: str, code: str = "STORAGE_ERROR"):
        super().__init__(message, code=code)
        logger.error(f"Storage error: {message}")


class LockTimeoutException(StorageException):
    """A ledger lock could not be acquired within its bounded wait"""
    def __init__(self, message: str):
        super().__init__(message, code="LOCK_TIMEOUT")


class TelegramAPIException(MovieBotException):
    """Telegram Bot API call failed"""
    def __init__(self, message: str, method: str = None):
        self.method = method
        super().__init__(message, code="TELEGRAM_ERROR")
        logger.error(f"Telegram API error ({method}): {message}")


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Handle HTTP exceptions"""
        return jsonify({
            'error': True,
            'code': e.name.upper().replace(' ', '_'),
            'message': e.description
        }), e.code

    @app.errorhandler(MovieBotException)
    def handle_moviebot_exception(e):
        return jsonify(e.to_dict()), 400

    @app.errorhandler(ValidationException)
    def handle_validation_exception(e):
        return jsonify(e.to_dict()), 400

    @app.errorhandler(StorageException)
    def handle_storage_exception(e):
        """Storage details stay in the log"""
        return jsonify({'error': True, 'code': e.code, 'message': 'Storage temporarily unavailable'}), 503

    @app.errorhandler(TelegramAPIException)
    def handle_telegram_exception(e):
        return jsonify(e.to_dict()), 502

    @app.errorhandler(Exception)
    def handle_generic_exception(e):
        """Handle all other exceptions"""
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify({
            'error': True,
            'code': 'INTERNAL_ERROR',
            'message': 'An unexpected error occurred'
        }), 500
