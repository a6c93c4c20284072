"""
Retrieval Modules

This module contains search over indexed content.
"""

from .email.search_manager import EmailSearchManager

__all__ = ["EmailSearchManager"]
