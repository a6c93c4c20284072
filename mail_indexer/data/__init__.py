"""
Data access layer.

- BaseDataManager: shared query helpers
- AccountDataManager: persisted mail accounts
- EmailIndexGateway: dedup-aware email document index
"""

from .base_data import BaseDataManager
from .account_data import AccountDataManager
from .email_data import EmailIndexGateway, document_id

__all__ = ["BaseDataManager", "AccountDataManager", "EmailIndexGateway", "document_id"]
