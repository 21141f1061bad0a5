"""
API Module for the knowledge-base retrieval service.

FastAPI application with routes for:
- Context retrieval with optional traces
- Health and Prometheus metrics
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
