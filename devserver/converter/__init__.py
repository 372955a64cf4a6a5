"""
Converter package for devserver.

This package turns the embedded Markdown template into a runnable server
source file and translates file system events for the supervisor.
"""

from .generator import Generator, TemplateData, load_embedded_document
from .handler import SourceChangeHandler

__all__ = ['Generator', 'TemplateData', 'load_embedded_document', 'SourceChangeHandler']
