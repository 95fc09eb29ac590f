"""Flask application factory."""

import os
import logging
from typing import Any, Dict, Optional

from flask import Flask
from flask_cors import CORS  # type: ignore[import-untyped]
from flask_limiter import Limiter  # type: ignore[import-untyped]
from flask_limiter.util import get_remote_address  # type: ignore[import-untyped]

from ..config import load_settings
from ..utils.errors import register_error_handlers
from .routes import register_routes

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMITS = {
    "EXPORT_RATE_LIMIT": "50 per hour",
    "COVER_RATE_LIMIT": "100 per hour",
    "FILENAME_RATE_LIMIT": "200 per hour",
    "CHECK_URL_RATE_LIMIT": "200 per hour",
}


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Extra Flask configuration (applied last). A ``SETTINGS``
            entry replaces the settings loaded from the environment.

    Returns:
        Configured Flask application
    """
    flask_app = Flask(__name__)

    for key, default in DEFAULT_RATE_LIMITS.items():
        flask_app.config[key] = os.getenv(key, default)
    flask_app.config["RATELIMIT_STORAGE_URI"] = os.getenv("REDIS_URL", "memory://")
    if config:
        flask_app.config.update(config)
    if "SETTINGS" not in flask_app.config:
        flask_app.config["SETTINGS"] = load_settings()

    CORS(flask_app)

    limiter = Limiter(
        app=flask_app,
        key_func=get_remote_address,
        default_limits=["200 per day", "50 per hour"],
        storage_uri=flask_app.config["RATELIMIT_STORAGE_URI"],
        headers_enabled=True
    )
    flask_app.extensions["storykeep_limiter"] = limiter

    debug = flask_app.config.get("DEBUG", False) or os.getenv("FLASK_ENV") == "development"
    register_error_handlers(flask_app, debug=debug)
    register_routes(flask_app, limiter)

    logger.info("Story archive API initialized")
    return flask_app
