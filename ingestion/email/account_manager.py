#!/usr/bin/env python
"""
Email Account Manager

This module provides email account management functionality for creating,
listing and disabling mail accounts. Passwords are encrypted before they are
persisted and decrypted only when a worker needs them.
Delegates row access to the shared AccountDataManager.
"""

import logging
from typing import Any, Dict, List, Optional

from mail_indexer.core.models import Account
from mail_indexer.data.account_data import AccountDataManager

from .crypto import encrypt, resolve_stored_password

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {"name", "host", "port", "username", "password"}


class EmailAccountManager:
    """Email account manager backed by the ``accounts`` table."""

    def __init__(self, account_data: AccountDataManager, master_key: Optional[str] = None) -> None:
        """Initialize with the account data manager and the credential master key."""
        self.account_data = account_data
        self.master_key = master_key
        logger.info("Email Account Manager initialized")

    def create_account(self, record: Dict[str, Any]) -> Account:
        """
        Create a new email account with an encrypted password.

        Raises:
            ValueError: If required fields are missing
            ConfigurationError: If no master key is configured
        """
        missing = REQUIRED_FIELDS - record.keys()
        if missing:
            raise ValueError(f"record missing required fields: {', '.join(sorted(missing))}")

        # Encrypt the password before persisting
        record = dict(record)
        record["password"] = encrypt(str(record["password"]), self.master_key)

        logger.info(
            "Creating email account '%s' on %s:%s for %s",
            record.get("name"),
            record.get("host"),
            record.get("port"),
            record.get("username"),
        )
        try:
            return self.account_data.create_account(record)
        except Exception as e:
            logger.error("Failed to create email account: %s", e)
            raise

    def list_accounts(self) -> List[Account]:
        return self.account_data.list_accounts()

    def list_enabled_accounts(self) -> List[Account]:
        return self.account_data.list_accounts(enabled_only=True)

    def get_account(self, account_id: int) -> Optional[Account]:
        return self.account_data.get_account(account_id)

    def disable_account(self, account_id: int) -> bool:
        """Mark an account disabled. Returns False when it does not exist."""
        return self.account_data.set_enabled(account_id, False)

    def resolve_password(self, account: Account) -> str:
        """Return the plaintext IMAP password of ``account``."""
        return resolve_stored_password(account.password, self.master_key)
