"""
Main application class for the Mail Indexer.

This module contains the MailIndexerApp class that wires the account store,
the email index, the account workers and the web interface together.
"""

import logging
from typing import Optional

from flask import Flask

from ingestion.email.account_manager import EmailAccountManager
from ingestion.email.connectors import IMAPConnector
from ingestion.email.processor import MessageIndexer
from ingestion.email.registry import WorkerRegistry
from ingestion.email.worker import AccountWorker
from retrieval.email.search_manager import EmailSearchManager

from .core.config import Config
from .core.models import Account
from .data.account_data import AccountDataManager
from .data.email_data import EmailIndexGateway
from .managers.postgres_manager import PostgreSQLConfig, PostgreSQLManager
from .utils.logger import setup_logging
from .web.routes import WebRoutes

# Logging will be set up by the application initialization

logger = logging.getLogger(__name__)


class MailIndexerApp:
    """
    Main application class that owns every long-lived component.

    Construction connects to PostgreSQL and registers the routes; nothing is
    ingested until :meth:`boot` runs.
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        """Initialize the Mail Indexer application."""
        self.config = config or Config()

        # Setup logging with configured log directory
        setup_logging(self.config.LOG_DIR, self.config.LOG_LEVEL)

        self.app = Flask(__name__)

        self.postgres_manager = PostgreSQLManager(PostgreSQLConfig.from_config(self.config))
        logger.info("PostgreSQL integration initialized successfully")

        self.account_data = AccountDataManager(self.postgres_manager)
        self.email_gateway = EmailIndexGateway(self.postgres_manager, self.config.EMAIL_INDEX_TABLE)
        self.account_manager = EmailAccountManager(self.account_data, self.config.EMAILS_MASTER_KEY)
        self.message_indexer = MessageIndexer(self.email_gateway)
        self.search_manager = EmailSearchManager(
            self.postgres_manager,
            self.config.EMAIL_INDEX_TABLE,
            default_size=self.config.SEARCH_DEFAULT_SIZE,
            max_size=self.config.SEARCH_MAX_SIZE,
        )
        self.registry = WorkerRegistry(self.build_worker, stop_timeout=self.config.WORKER_STOP_TIMEOUT_SECONDS)

        self.web_routes = WebRoutes(self.app, self.config, self)

    def build_worker(self, account: Account) -> AccountWorker:
        """Create an unstarted worker for ``account`` with its decrypted password."""
        password = self.account_manager.resolve_password(account)

        def client_factory() -> IMAPConnector:
            return IMAPConnector(
                account.host,
                account.username,
                password,
                port=account.port,
                secure=account.secure,
                require_starttls=self.config.IMAP_REQUIRE_STARTTLS,
                timeout=self.config.IMAP_TIMEOUT_SECONDS,
            )

        return AccountWorker(account, client_factory, self.message_indexer, self.config)

    def boot(self) -> None:
        """Bootstrap the index, then start a worker for every enabled account."""
        self.email_gateway.ensure_index()
        self.registry.start_all(self.account_manager.list_enabled_accounts())

    def shutdown(self) -> None:
        logger.info("Shutting down account workers")
        self.registry.stop_all()
        self.postgres_manager.close()

    def run(self) -> None:
        """
        Run the Flask application.

        Boots the workers first so ingestion starts before the API is served.
        """
        self.boot()
        logger.info(f"Starting Mail Indexer on {self.config.FLASK_HOST}:{self.config.FLASK_PORT}")
        try:
            # The reloader would fork a second process with its own workers
            self.app.run(
                host=self.config.FLASK_HOST,
                port=self.config.FLASK_PORT,
                debug=self.config.FLASK_DEBUG,
                use_reloader=False,
                threaded=True,
            )
        finally:
            self.shutdown()
