"""
Error types and JSON error responses for storykeep.

Every failure the synthesis core, the export service or the CLI reports
is an APIError carrying a machine-readable code. The Flask handlers
registered here render those, and the HTTP errors raised by Flask and
flask-limiter, as ``{"error", "error_code", "details"}`` bodies.
"""

import logging
import traceback
from typing import Any, Dict, Optional

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

# Codes for HTTP errors raised by routing and rate limiting
HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMIT_EXCEEDED",
}


class APIError(Exception):
    """Base exception for storykeep errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            status_code: HTTP status code used when served over the API
            details: Extra fields that help the caller fix the request
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(APIError):
    """A story, option, setting or template was rejected."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", 400, details)


class CoverRenderError(APIError):
    """A cover image could not be drawn or encoded."""

    def __init__(self, message: str, theme: Optional[str] = None):
        super().__init__(
            message,
            "COVER_RENDER_FAILED",
            500,
            {"theme": theme} if theme else None
        )


class ServiceUnavailableError(APIError):
    """Document synthesis could not complete."""

    def __init__(self, service: str, message: Optional[str] = None):
        super().__init__(
            message or f"Service '{service}' is currently unavailable.",
            "SERVICE_UNAVAILABLE",
            503,
            {"service": service}
        )


class MissingDependencyError(APIError):
    """An optional export library is not installed."""

    def __init__(self, dependency: str, install_command: str):
        super().__init__(
            f"Export requires '{dependency}'. Install with: {install_command}",
            "MISSING_DEPENDENCY",
            503,
            {"dependency": dependency, "install_command": install_command}
        )


def http_error_as_api_error(error: HTTPException) -> APIError:
    """Describe a routing or rate-limit error in storykeep's terms."""
    if error.code == 404:
        message = f"No endpoint at '{request.path}'."
        details = {"path": request.path}
    elif error.code == 405:
        message = f"Method '{request.method}' not allowed for this endpoint."
        details = {"method": request.method}
    else:
        # flask-limiter puts the exceeded limit in the description
        message = "Rate limit exceeded. Please try again later."
        details = {"limit": error.description} if error.description else None
    return APIError(message, HTTP_ERROR_CODES[error.code], error.code, details)


def create_error_response(error: Exception, include_traceback: bool = False) -> tuple:
    """
    Render an exception as a JSON response.

    APIErrors keep their message and code. Anything else is reported as
    INTERNAL_ERROR and its message is only shown with tracebacks on.

    Returns:
        Tuple of (json_response, status_code)
    """
    where = f"{request.method} {request.path}"
    if isinstance(error, APIError):
        if error.status_code >= 500:
            logger.error(f"{error.error_code} on {where}: {error.message}", exc_info=True)
        else:
            logger.warning(f"{error.error_code} on {where}: {error.message}")
        body = error.to_dict()
        status_code = error.status_code
    else:
        logger.error(f"Unhandled {type(error).__name__} on {where}: {error}", exc_info=True)
        body = {
            "error": str(error) if include_traceback else "The request could not be processed. Please try again.",
            "error_code": "INTERNAL_ERROR",
        }
        status_code = 500

    if include_traceback:
        body["traceback"] = traceback.format_exc()
    return jsonify(body), status_code


def register_error_handlers(app, debug: bool = False):
    """
    Register JSON error handlers on the Flask app.

    Args:
        app: Flask application instance
        debug: Whether to include tracebacks in error responses
    """
    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):
        return create_error_response(error, include_traceback=debug)

    def handle_http_error(error: HTTPException):
        return create_error_response(http_error_as_api_error(error), include_traceback=debug)

    for status_code in HTTP_ERROR_CODES:
        app.register_error_handler(status_code, handle_http_error)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        # Other HTTP errors keep werkzeug's own response
        if isinstance(error, HTTPException):
            return error
        return create_error_response(error, include_traceback=debug)
