"""HTTP API: application factory, dependencies and routes."""

from .app import create_api_app

__all__ = ["create_api_app"]
