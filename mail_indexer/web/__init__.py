"""Web layer of the Mail Indexer: Flask routes and input validation."""

from .routes import WebRoutes
from .validation import InputValidator, ValidationError

__all__ = ["WebRoutes", "InputValidator", "ValidationError"]
