"""
Global Error Handlers for Flask Application

This module provides global error handlers that catch unhandled exceptions
and return standardized error responses.
"""

import logging
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from outreach_automation.extensions import db
from outreach_automation.utils.exceptions import OutreachError
from .error_handling import (
    handle_exception,
    handle_not_found_error,
    handle_validation_error,
    create_error_response
)

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register global error handlers for the Flask application."""

    @app.errorhandler(404)
    def not_found_error(error):
        """Handle 404 Not Found errors."""
        return handle_not_found_error("Resource")

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        """Handle 405 Method Not Allowed errors."""
        return create_error_response(
            'BAD_REQUEST',
            "Method not allowed for this endpoint",
            status_code=405
        )

    @app.errorhandler(400)
    def bad_request_error(error):
        """Handle 400 Bad Request errors."""
        return handle_validation_error("Invalid request data")

    @app.errorhandler(OutreachError)
    def outreach_error(error):
        """Handle engine, compiler and deployment errors raised out of a route."""
        db.session.rollback()
        return handle_exception(error, "request processing")

    @app.errorhandler(SQLAlchemyError)
    def database_error(error):
        """Handle SQLAlchemy database errors."""
        db.session.rollback()
        return handle_exception(error, "database operation")

    @app.errorhandler(HTTPException)
    def http_error(error):
        """Handle HTTP exceptions."""
        return create_error_response(
            'BAD_REQUEST',
            error.description or "HTTP error occurred",
            status_code=error.code
        )

    @app.errorhandler(Exception)
    def generic_error(error):
        """Handle all other unhandled exceptions."""
        logger.exception(f"Unhandled error: {str(error)}")
        db.session.rollback()
        return handle_exception(error, "request processing")
