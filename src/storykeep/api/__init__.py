"""HTTP surface for the story archive engine."""

from .factory import create_app
from .routes import register_routes

__all__ = ["create_app", "register_routes"]
