"""
Utility functions for the scaffold generator.
"""

from .content import extract_code_blocks, fence_label_for, join_code_blocks

__all__ = ['extract_code_blocks', 'fence_label_for', 'join_code_blocks']
