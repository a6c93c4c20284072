#!/usr/bin/env python3
"""
Main entry point for the Mail Indexer.

Continuously ingests mail from every enabled IMAP account into a searchable
index and serves the account and search API.
"""

import logging
import sys

from mail_indexer.app import MailIndexerApp

logger = logging.getLogger(__name__)


def main() -> None:
    """
    Main entry point for the Mail Indexer application.

    Initializes the application, boots the account workers and runs the
    Flask web server.
    """
    try:
        app_manager = MailIndexerApp()
        app_manager.run()
    except Exception as e:
        logger.exception(f"Boot error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
