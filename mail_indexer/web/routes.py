"""
Web routes module for the Mail Indexer.

This module contains the Flask route definitions of the JSON control plane:
account management, email search and worker diagnostics.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from flask import Flask, jsonify, request

from ..core.config import Config
from ..core.exceptions import ConfigurationError
from ..data.email_data import document_id
from .validation import InputValidator, ValidationError

# Configure logging
logger = logging.getLogger(__name__)


class WebRoutes:
    """
    Manages Flask routes and handlers for the Mail Indexer.

    Handlers reach the application components through ``indexer_app``, which
    exposes ``account_manager``, ``registry``, ``search_manager`` and
    ``email_gateway``.
    """

    def __init__(self, app: Flask, config: Config, indexer_app: Any) -> None:
        """
        Initialize web routes.

        Args:
            app: Flask application instance
            config: Application configuration
            indexer_app: Main application instance
        """
        self.app = app
        self.config = config
        self.indexer_app = indexer_app

        self._register_error_handlers()
        self._register_routes()
        logger.info("Web routes initialized")

    def _register_error_handlers(self) -> None:
        """Map application errors to JSON responses."""

        @self.app.errorhandler(ValidationError)
        def handle_validation_error(e: ValidationError):
            logger.info(f"Rejected request to {request.path}: {e}")
            return jsonify({"error": str(e)}), 400

        @self.app.errorhandler(ConfigurationError)
        def handle_configuration_error(e: ConfigurationError):
            logger.error(f"Configuration error on {request.path}: {e}")
            return jsonify({"error": str(e)}), 500

    def _register_routes(self) -> None:
        """Register Flask routes for the JSON API."""

        @self.app.route('/health')
        def health():
            payload: Dict[str, Any] = {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}
            postgres_manager = getattr(self.indexer_app, 'postgres_manager', None)
            if postgres_manager is not None:
                payload["database"] = postgres_manager.get_version_info()
            return jsonify(payload)

        @self.app.route('/api/accounts', methods=['POST'])
        def create_account():
            """Create an IMAP account and start its worker."""
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                raise ValidationError("Request body must be a JSON object")
            record = self._parse_account(data)

            logger.info(
                "Request to add email account '%s' on %s:%s for %s",
                record['name'], record['host'], record['port'], record['username'],
            )
            try:
                account = self.indexer_app.account_manager.create_account(record)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.exception("Failed to add email account '%s': %s", record['name'], e)
                return jsonify({"error": f"Failed to create account: {e}"}), 500

            try:
                self.indexer_app.registry.start(account)
            except Exception as e:
                logger.error(f"Failed to start worker for newly created account {account.id}: {e}")

            return jsonify({"account": account.to_dict()})

        @self.app.route('/api/accounts', methods=['GET'])
        def list_accounts():
            """Return JSON list of configured email accounts."""
            try:
                accounts = self.indexer_app.account_manager.list_accounts()
                return jsonify({"accounts": [account.to_dict() for account in accounts]})
            except Exception as e:
                logger.error(f"Failed to fetch email accounts: {e}")
                return jsonify({"error": "Failed to fetch email accounts"}), 500

        @self.app.route('/api/accounts/<int:account_id>/disable', methods=['POST'])
        def disable_account(account_id: int):
            """Disable an account and stop its worker."""
            try:
                found = self.indexer_app.account_manager.disable_account(account_id)
            except Exception as e:
                logger.error(f"Failed to disable account {account_id}: {e}")
                return jsonify({"error": f"Failed to disable account: {e}"}), 500
            if not found:
                return jsonify({"error": "not found"}), 404
            self.indexer_app.registry.stop(account_id)
            return jsonify({"ok": True})

        @self.app.route('/api/emails', methods=['GET'])
        def search_emails():
            args = request.args
            size = InputValidator.validate_integer(args.get('size'), 'size', min_val=1, required=False)
            params = {
                'q': InputValidator.validate_string(args.get('q'), 'q', max_length=500, required=False, sanitize=False),
                'account': InputValidator.validate_string(args.get('account'), 'account', max_length=64, required=False),
                'folder': InputValidator.validate_string(args.get('folder'), 'folder', max_length=500, required=False, sanitize=False),
                'label': InputValidator.validate_string(args.get('label'), 'label', max_length=255, required=False, sanitize=False),
                'from_date': InputValidator.validate_date(args.get('fromDate'), 'fromDate'),
                'to_date': InputValidator.validate_date(args.get('toDate'), 'toDate', end_of_day=True),
                'size': size,
            }
            try:
                return jsonify(self.indexer_app.search_manager.search(**params))
            except Exception as e:
                logger.error(f"Search error: {e}")
                return jsonify({"error": str(e)}), 500

        @self.app.route('/api/emails/<path:email_id>', methods=['GET'])
        def get_email(email_id: str):
            """
            Return one indexed email.

            ``email_id`` is the document id, or a raw message id when the
            ``account`` query parameter is given and the id has no underscore.
            """
            account = request.args.get('account')
            doc_id = email_id
            if account and '_' not in email_id:
                doc_id = document_id(account, email_id)
            try:
                document = self.indexer_app.email_gateway.get(doc_id)
            except Exception as e:
                logger.error(f"Get email error for {doc_id}: {e}")
                return jsonify({"error": str(e)}), 500
            if document is None:
                return jsonify({"error": "not found"}), 404
            return jsonify({"id": doc_id, "source": document})

        @self.app.route('/admin/workers')
        def worker_status():
            return jsonify({"workers": self.indexer_app.registry.status()})

    # ------------------------------------------------------------------
    def _parse_account(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate the account creation payload."""
        return {
            'name': InputValidator.validate_string(data.get('name'), 'name'),
            'host': InputValidator.validate_host(data.get('host'), 'host'),
            'port': InputValidator.validate_port(data.get('port'), 'port'),
            'secure': InputValidator.validate_boolean(data.get('secure'), 'secure', default=True),
            'username': InputValidator.validate_string(data.get('username'), 'username', max_length=320, sanitize=False).strip(),
            'password': InputValidator.validate_string(data.get('password'), 'password', max_length=1024, sanitize=False),
        }
