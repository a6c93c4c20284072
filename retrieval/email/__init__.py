"""Email search over the index table."""

from .search_manager import EmailSearchManager

__all__ = ["EmailSearchManager"]
