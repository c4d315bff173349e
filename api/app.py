#!/usr/bin/env python3
import os
from typing import Optional
from flask import Flask
from flask_cors import CORS

from config.app_config import AppConfig, get_config
from core.dependency_container import initialize_container, get_service, cleanup_container
from core.exceptions import ConfigurationError
from core.logging_config import setup_structured_logging, get_logger
from .routes.user_routes import user_bp
from .middleware.error_handler import ErrorHandler
from .middleware.auth_middleware import AuthMiddleware

logger = get_logger(__name__)

def create_app(config: Optional[AppConfig] = None) -> Flask:
    """
    Creates and configures the Flask application serving the accounts API.
    """
    config = config or get_config()
    app = Flask(__name__)
    app.config['REQUEST_TIMEOUT'] = config.server.request_timeout

    CORS(
        app,
        origins=config.server.cors_origins,
        methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Origin", "Authorization", "Content-Type"],
        expose_headers=["Content-Length"],
        supports_credentials=True,
        max_age=12 * 60 * 60
    )

    AuthMiddleware.init_app(app, config.security.bot_token)
    ErrorHandler.init_app(app)

    app.register_blueprint(user_bp, url_prefix='/users')

    @app.route("/api/health")
    def health_check():
        return {"status": "healthy", "message": "Accounts API is running"}

    return app


def main() -> None:
    try:
        config = get_config()
    except ConfigurationError as e:
        raise SystemExit(f"Invalid configuration: {e}")

    setup_structured_logging(config.monitoring.log_level)
    initialize_container(config)

    # Building the repository creates the schema and removes orphaned subscriptions
    get_service('user_repository')
    scheduler = get_service('scheduler')
    scheduler.start()

    app = create_app(config)

    from waitress import serve

    logger.info("Starting accounts API server", host=config.server.host, port=config.server.port, pid=os.getpid())
    try:
        serve(app, host=config.server.host, port=config.server.port, threads=config.server.threads)
    finally:
        cleanup_container()
        logger.info("Accounts API server stopped")


if __name__ == "__main__":
    main()
