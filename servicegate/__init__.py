"""Dynamic service registry and reverse-proxy gateway."""

__version__ = "0.1.0"
