"""
Local package for devserver.

This package provides the configuration, errors and process management used
to supervise the application server.
"""

from .config import Config, resolve_config

__all__ = ["Config", "resolve_config"]
