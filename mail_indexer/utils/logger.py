"""
Centralized logging configuration for the Mail Indexer.

This module provides logging configuration and utilities for the entire
application, ensuring consistent logging behavior across all components.
"""

import os
import logging
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s'


def get_log_dir() -> str:
    """
    Get the configured log directory from environment variables.

    Returns:
        str: The log directory path (defaults to "logs" if not configured)
    """
    return os.getenv("LOG_DIR", "logs")


def setup_logging(log_dir: Optional[str] = None, level: str = "INFO") -> None:
    """
    Set up centralized logging configuration for the application.

    Args:
        log_dir: Log directory override (defaults to configured LOG_DIR)
        level: Root log level name
    """
    if log_dir is None:
        log_dir = get_log_dir()

    # Ensure log directory exists
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_path / 'mail_indexer.log')
        ]
    )

    # Suppress noisy external library logs
    logging.getLogger('imapclient').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('werkzeug').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured - log directory: {log_path.absolute()}")
