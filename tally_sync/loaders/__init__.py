"""
Database loaders for Tally data.

- Database: connection handling and statement execution
- BulkLoader: batched, tenant-scoped INSERT/DELETE
- BookkeepingStore: per-tenant sync state in the config table
"""

from .base import Database
from .bookkeeping import BookkeepingStore
from .bulk import BulkLoader, TENANT_COLUMNS
from .dialects import Dialect, get_dialect

__all__ = [
    "Database",
    "BookkeepingStore",
    "BulkLoader",
    "TENANT_COLUMNS",
    "Dialect",
    "get_dialect",
]
