"""Utility helpers for the Mail Indexer."""

from .logger import setup_logging

__all__ = ["setup_logging"]
