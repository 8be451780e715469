"""Enterprise-architecture modeling studio core."""

__version__ = "0.4.0"
