"""
Tally Sync - multi-tenant synchronization from Tally to SQL databases.

Exports master and transaction tables from TallyPrime through its XML/HTTP
interface using compiled TDL report definitions, normalizes the output and
bulk-loads it into PostgreSQL, MySQL or SQL Server, scoped per company and
division.

Key Features:
- Table definitions declared in YAML, compiled to TDL reports
- Full sync, or incremental sync driven by Tally's AlterIDs
- Many tenants per database, each with its own Tally endpoint
- Batched, dialect-aware INSERT statements

Usage:
    # One sync pass using config.json
    python -m tally_sync

    # Incremental pass every 5 minutes
    python -m tally_sync --mode incremental --interval 300

    # Test every configured Tally endpoint
    python -m tally_sync --test-connection
"""

__version__ = "1.0.0"

from .config import SyncConfig, Tenant, load_config
from .sync import TallySync, run_sync

__all__ = ["SyncConfig", "Tenant", "load_config", "TallySync", "run_sync", "__version__"]
