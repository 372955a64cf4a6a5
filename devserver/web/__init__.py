"""
Web package for devserver.

This package contains the in-process (embedded) ASGI server used while the
application has no source file of its own.
"""

from .server import EmbeddedServer, build_app

__all__ = ["EmbeddedServer", "build_app"]
