"""API module for HTTP routes.

This module exposes the FastAPI router and error handlers for the sandbox manager.
"""

from api.errors import register_exception_handlers
from api.routes import router

__all__ = ["register_exception_handlers", "router"]
