from flask import jsonify
from werkzeug.exceptions import HTTPException
from core.exceptions import (
    AccountsError,
    ConflictError,
    NotFoundError,
    ValidationError,
    PersistenceError,
    DeadlineExceededError
)
from core.logging_config import get_logger

logger = get_logger(__name__)

class ErrorHandler:
    """
    Centralized error handling for the accounts API.
    """

    @staticmethod
    def init_app(app) -> None:
        """Initialize error handlers with Flask app."""

        @app.errorhandler(ConflictError)
        def handle_user_exists(e):
            return jsonify({
                'error': 'User already exists',
                'message': str(e)
            }), 409

        @app.errorhandler(NotFoundError)
        def handle_user_not_found(e):
            return jsonify({
                'error': 'User not found',
                'message': str(e)
            }), 404

        @app.errorhandler(ValidationError)
        def handle_validation_error(e):
            return jsonify({
                'error': 'Validation error',
                'message': str(e)
            }), 400

        @app.errorhandler(DeadlineExceededError)
        def handle_deadline_exceeded(e):
            logger.error("Request deadline exceeded", error=str(e))
            return jsonify({
                'error': 'Timeout',
                'message': str(e)
            }), 504

        @app.errorhandler(PersistenceError)
        def handle_database_error(e):
            logger.error("Database error", error=str(e))
            return jsonify({
                'error': 'Database error',
                'message': str(e)
            }), 500

        @app.errorhandler(AccountsError)
        def handle_accounts_error(e):
            logger.error("Accounts error", error=str(e))
            return jsonify({
                'error': 'Accounts error',
                'message': str(e)
            }), 500

        @app.errorhandler(404)
        def handle_not_found(e):
            return jsonify({
                'error': 'Not found',
                'message': 'The requested endpoint does not exist'
            }), 404

        @app.errorhandler(405)
        def handle_method_not_allowed(e):
            return jsonify({
                'error': 'Method not allowed',
                'message': 'The HTTP method is not allowed for this endpoint'
            }), 405

        @app.errorhandler(Exception)
        def handle_generic_error(e):
            if isinstance(e, HTTPException):
                return jsonify({
                    'error': e.name,
                    'message': e.description
                }), e.code
            logger.exception("Unhandled error")
            return jsonify({
                'error': 'Internal server error',
                'message': 'An unexpected error occurred'
            }), 500
