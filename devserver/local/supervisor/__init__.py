"""
The Supervisor package.
Manages the lifecycle of the application server during development.

This package contains the central ServerHandler class and its helper modules,
which together handle compiling, starting, stopping and restarting the
application, and switching between the embedded and external modes.
"""
from .strategies import ServerMode, ServerStrategy, EmbeddedStrategy, ExternalProcessStrategy
from .supervisor import ServerHandler
from .mode import ServerModeHandler, STORE_KEY_EXTERNAL_SERVER
from .persistence import JsonFileStore

__all__ = [
    'ServerHandler', 'ServerMode', 'ServerStrategy', 'EmbeddedStrategy', 'ExternalProcessStrategy',
    'ServerModeHandler', 'STORE_KEY_EXTERNAL_SERVER', 'JsonFileStore',
]
