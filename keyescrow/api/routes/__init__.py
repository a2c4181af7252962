"""API routes."""

from keyescrow.api.routes import devices, health

__all__ = [
    "devices",
    "health",
]
