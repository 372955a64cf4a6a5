"""
Logging module for devserver.
This module provides functionality to set up console logging for the supervisor
and the output of its child processes.
"""

from .setup import setup_logging, child_logger, MainFormatter

__all__ = ["setup_logging", "child_logger", "MainFormatter"]
