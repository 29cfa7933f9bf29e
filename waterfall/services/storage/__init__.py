"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory store backs tests
and unconfigured runs.
"""

from waterfall.services.storage.interface import (
    AuditStorageInterface,
    BalanceWriterInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RuleStoreInterface,
    StorageError,
    TargetCatalogInterface,
)
from waterfall.services.storage.memory import InMemoryStore
from waterfall.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsCatalog,
    GoogleSheetsClient,
    GoogleSheetsRuleStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BalanceWriterInterface",
    "RuleStoreInterface",
    "TargetCatalogInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsCatalog",
    "GoogleSheetsClient",
    "GoogleSheetsRuleStore",
]
