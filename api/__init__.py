"""
HTTP surface of the fan-out engine.

A FastAPI application exposing subscriptions, publishing and the read paths
(hydrated events, notifications).
"""

from api.main import app, create_app

__all__ = ["app", "create_app"]
