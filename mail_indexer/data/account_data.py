#!/usr/bin/env python
"""
Account Data Manager

Pure data access operations for the ``accounts`` table. Passwords are
stored exactly as handed in; encryption is the caller's concern.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.models import Account
from .base_data import BaseDataManager

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = "id, name, host, port, secure, username, password, enabled, created_at"


class AccountDataManager(BaseDataManager):
    """Data access manager for mail accounts."""

    def create_account(self, record: Dict[str, Any]) -> Account:
        """
        Insert a new account row.

        Args:
            record: Mapping with name, host, port, secure, username and password

        Returns:
            The persisted account including its generated id
        """
        query = f"""
            INSERT INTO accounts (name, host, port, secure, username, password, enabled)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_ACCOUNT_COLUMNS}
        """
        params = (
            record["name"],
            record["host"],
            int(record["port"]),
            bool(record.get("secure", True)),
            record["username"],
            record["password"],
            bool(record.get("enabled", True)),
        )
        row = self.execute_query(query, params, fetch_one=True)
        if not row:
            raise RuntimeError(f"Failed to create account {record.get('name')}")
        account = Account.from_row(row)
        logger.info("Created account %s (%s)", account.id, account.name)
        return account

    def list_accounts(self, enabled_only: bool = False) -> List[Account]:
        """Return all accounts, optionally only the enabled ones."""
        query = f"SELECT {_ACCOUNT_COLUMNS} FROM accounts"
        if enabled_only:
            query += " WHERE enabled = TRUE"
        query += " ORDER BY id"
        rows = self.execute_query(query, fetch_all=True) or []
        return [Account.from_row(row) for row in rows]

    def get_account(self, account_id: int) -> Optional[Account]:
        row = self.execute_query(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = %s",
            (account_id,),
            fetch_one=True,
        )
        return Account.from_row(row) if row else None

    def set_enabled(self, account_id: int, enabled: bool) -> bool:
        """
        Flip the enabled flag of an account.

        Returns:
            True if the account exists, False otherwise
        """
        row = self.execute_query(
            "UPDATE accounts SET enabled = %s WHERE id = %s RETURNING id",
            (enabled, account_id),
            fetch_one=True,
        )
        updated = row is not None
        if updated:
            logger.info("Account %s enabled=%s", account_id, enabled)
        else:
            logger.warning("Account %s not found while setting enabled=%s", account_id, enabled)
        return updated
