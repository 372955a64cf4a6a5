"""
devserver: run, scaffold and hot-restart a web application during development.
"""

from devserver.local.config import Config
from devserver.local.supervisor import ServerHandler, ServerMode

__all__ = ["Config", "ServerHandler", "ServerMode"]
__version__ = "0.1.0"
