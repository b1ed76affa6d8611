"""Sharded map, configuration, client messages, broadcasting and group management for a snake game server."""

__version__ = "4.3.0"
__all__ = ["__version__"]