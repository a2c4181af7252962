"""Device enrollment and wrapped-key escrow server."""

__version__ = "0.1.0"
