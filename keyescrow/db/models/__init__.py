"""Database models."""

from keyescrow.db.models.device import Device
from keyescrow.db.models.wrapped_key import WrappedKey

__all__ = [
    "Device",
    "WrappedKey",
]
