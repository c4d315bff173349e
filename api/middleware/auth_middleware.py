import hmac
from functools import wraps
from typing import Optional
from flask import request, jsonify, current_app

from core.logging_config import get_logger

logger = get_logger(__name__)

class AuthMiddleware:
    """
    Bearer token authentication for the accounts API.
    The bot that owns the accounts presents its token on every request.
    """

    @staticmethod
    def init_app(app, bot_token: Optional[str]) -> None:
        """Initialize authentication middleware with Flask app.

        The token is stored in the Flask configuration once so requests do
        not need to consult the application config again.
        """
        if not bot_token:
            raise RuntimeError('BOT_TOKEN is required to serve the API')

        app.config['BOT_TOKEN'] = bot_token

    @staticmethod
    def require_auth(f):
        """Decorator to require the bot token for protected endpoints."""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            header = request.headers.get('Authorization', '')
            scheme, _, token = header.partition(' ')

            if scheme != 'Bearer' or not token:
                logger.warning("Missing bot token", method=request.method, path=request.path)
                return jsonify({
                    'error': 'Unauthorized',
                    'message': 'Please provide Authorization: Bearer <token>'
                }), 401

            expected_token = current_app.config.get('BOT_TOKEN')
            if not expected_token:
                return jsonify({
                    'error': 'API not configured',
                    'message': 'Bot token not configured on server'
                }), 500

            if not AuthMiddleware._verify_token(token, expected_token):
                logger.warning("Incorrect bot token", method=request.method, path=request.path)
                return jsonify({
                    'error': 'Unauthorized',
                    'message': 'The provided token is invalid'
                }), 401

            return f(*args, **kwargs)
        return decorated_function

    @staticmethod
    def _verify_token(provided_token: str, expected_token: str) -> bool:
        """Securely verify the token using constant-time comparison."""
        return hmac.compare_digest(provided_token.encode(), expected_token.encode())
