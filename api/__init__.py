"""Campaign Reports - API Module.

This module provides the FastAPI application for the
campaign reports REST API.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
