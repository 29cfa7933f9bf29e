"""Services package."""

from waterfall.services.storage import (
    AuditStorageInterface,
    BalanceWriterInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsCatalog,
    GoogleSheetsClient,
    GoogleSheetsRuleStore,
    InMemoryStore,
    NotFoundError,
    RuleStoreInterface,
    StorageError,
    TargetCatalogInterface,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "BalanceWriterInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsCatalog",
    "GoogleSheetsClient",
    "GoogleSheetsRuleStore",
    "InMemoryStore",
    "NotFoundError",
    "RuleStoreInterface",
    "StorageError",
    "TargetCatalogInterface",
]
